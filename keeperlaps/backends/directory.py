#  _  __
# | |/ /___ ___ _ __  ___ _ _ ®
# | ' </ -_) -_) '_ \/ -_) '_|
# |_|\_\___\___| .__/\___|_|
#              |_|
#
# Keeper LAPS
# Copyright 2026 Keeper Security Inc.
# Contact: ops@keepersecurity.com
#

import json
import logging
from datetime import datetime
from typing import Optional

from .base import RotationBackend
from .. import clock
from ..directory import DirectoryClient, DirectoryHandle, DirectoryWriteError, Replica
from ..error import BackendError, ErrorKind
from ..records import SCHEMA_ATTRIBUTES, Credential, ExpirationRecord, SchemaVariant


def password_payload(schema, credential, updated_at):
    if schema == SchemaVariant.ExtendedSchema:
        return json.dumps({
            'n': credential.account_name,
            't': format(clock.to_directory_native(updated_at), 'x'),
            'p': credential.plaintext,
        }, separators=(',', ':'))
    return credential.plaintext


class DirectoryBackend(RotationBackend):
    """Escrows the password on the computer object in Active Directory"""
    name = 'AD'

    def __init__(self, config, accounts, escrow, client, now=clock.utc_now):
        super().__init__(config, accounts, escrow, now=now)
        self.client = client    # type: DirectoryClient
        self.handle = None      # type: Optional[DirectoryHandle]
        self.schema = None      # type: Optional[SchemaVariant]

    def connect(self):    # type: () -> DirectoryHandle
        if self.handle is None:
            self.handle = self.client.bind()
        return self.handle

    def close(self):
        if self.handle is not None:
            self.client.unbind(self.handle)
            self.handle = None

    def detect_schema(self, handle):    # type: (DirectoryHandle) -> SchemaVariant
        for variant in (SchemaVariant.ExtendedSchema, SchemaVariant.Classic):
            if self.client.has_attribute(handle, SCHEMA_ATTRIBUTES[variant].expiration):
                logging.debug('Using %s LAPS schema', variant.value)
                return variant
        raise BackendError(ErrorKind.SchemaNotProvisioned,
                           'The directory schema has not been extended with LAPS attributes')

    def read_expiration(self, handle, schema):    # type: (DirectoryHandle, SchemaVariant) -> ExpirationRecord
        raw = self.client.read_attribute(handle, SCHEMA_ATTRIBUTES[schema].expiration)
        if raw is None:
            logging.info('No expiration is recorded in the directory for this computer')
            expires_at = clock.FILETIME_EPOCH
        else:
            expires_at = clock.from_directory_native(raw)
        return ExpirationRecord(account_name=self.account_name, expires_at=expires_at, schema_variant=schema)

    def _ensure_schema(self):    # type: () -> SchemaVariant
        handle = self.connect()
        if self.schema is None:
            self.schema = self.detect_schema(handle)
        return self.schema

    def current_expiration(self):
        schema = self._ensure_schema()
        return self.read_expiration(self.handle, schema)

    def verify_writable_replica(self, handle):    # type: (DirectoryHandle) -> Replica
        """Rewrites the current expiration on a replica to prove it accepts writes.

        The first replica that accepts the probe becomes the write target.
        """
        schema = self._ensure_schema()
        attribute = SCHEMA_ATTRIBUTES[schema].expiration
        probe_value = self.client.read_attribute(handle, attribute) or '0'

        replicas = self.client.enumerate_replicas(handle)
        if not replicas:
            replicas = [Replica(address=handle.address, writable=True)]
        for replica in replicas:
            if not replica.writable:
                logging.debug('Skipping read-only domain controller %s', replica.address)
                continue
            target = handle
            try:
                if replica.address.lower() != handle.address.lower():
                    target = self.client.bind(replica.address)
                self.client.write_attribute(target, attribute, probe_value)
            except (BackendError, DirectoryWriteError) as e:
                logging.info('Domain controller %s is not writable: %s', replica.address, e)
                if target is not handle:
                    self.client.unbind(target)
                continue
            if target is not handle:
                self.client.unbind(handle)
                self.handle = target
            logging.debug('Domain controller %s is writable', replica.address)
            return replica
        raise BackendError(ErrorKind.NoWritableReplica,
                           'None of the reachable domain controllers accepts writes to the LAPS attributes')

    def publish(self, handle, schema, credential, expires_at):
        # type: (DirectoryHandle, SchemaVariant, Credential, datetime) -> None
        attributes = SCHEMA_ATTRIBUTES[schema]
        self.client.write_attributes(handle, {
            attributes.password: password_payload(schema, credential, self.now()),
            attributes.expiration: str(clock.to_directory_native(expires_at)),
        })

    def rotate(self, policy, current_password=None):
        schema = self._ensure_schema()
        self.verify_writable_replica(self.handle)
        credential = self.apply(policy, current_password)
        expires_at = self.next_expiration()
        try:
            self.publish(self.handle, schema, credential, expires_at)
        except (BackendError, DirectoryWriteError) as e:
            raise BackendError(ErrorKind.PartialRotation,
                               f'Password for {self.account_name} was changed locally but the directory '
                               f'was not updated: {e}. The directory write will be retried on the next run.') from e
        self.escrow.clear_pending()
        logging.info('Password and expiration were written to %s', self.handle.address)
        return ExpirationRecord(account_name=self.account_name, expires_at=expires_at, schema_variant=schema)
