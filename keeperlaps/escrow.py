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

"""Secret escrow on top of a secure store.

Three kinds of items are kept in the store:

* the escrow record, a durable item holding the current password and its expiration;
* the pending item, holding a password that was applied to the account but not yet
  published to the backend;
* export items, one-time copies landed under a random handle for on-demand retrieval.
  The handle of the last export is written to a marker file and the export is deleted
  by the next invocation.
"""

import json
import logging
import os
import tempfile
import uuid
from datetime import datetime
from typing import Optional, Tuple

from . import clock
from .error import ErrorKind, EscrowError
from .keychain import SecureStore
from .records import Credential, EscrowHandle, ExpirationRecord

ESCROW_SERVICE = 'keeperlaps'
PENDING_SERVICE = 'keeperlaps.pending'
EXPORT_PREFIX = 'keeperlaps.export.'


def _encode(credential, expires_at=None):    # type: (Credential, Optional[datetime]) -> bytes
    payload = {'account': credential.account_name, 'password': credential.plaintext}
    if expires_at is not None:
        payload['expires_at'] = clock.ensure_utc(expires_at).isoformat()
        payload['expires_display'] = clock.format_expiration(expires_at)
    return json.dumps(payload).encode('utf-8')


def _decode(handle, data):    # type: (str, bytes) -> Tuple[Credential, Optional[datetime]]
    try:
        payload = json.loads(data.decode('utf-8'))
        credential = Credential(account_name=payload['account'], plaintext=payload['password'])
        expires_at = clock.parse_expiration(payload['expires_at']) if 'expires_at' in payload else None
    except (ValueError, KeyError, TypeError) as e:
        raise EscrowError(ErrorKind.NotFound, f'Escrow item "{handle}" is unreadable: {e}')
    return credential, expires_at


class SecretEscrow:
    def __init__(self, store, marker_path):    # type: (SecureStore, str) -> None
        self.store = store
        self.marker_path = marker_path

    def deposit(self, credential, expires_at):    # type: (Credential, datetime) -> None
        """Replaces the escrow record"""
        self.store.store(ESCROW_SERVICE, _encode(credential, expires_at))
        logging.debug('Escrow record updated for %s', credential.account_name)

    def retrieve(self):    # type: () -> Tuple[Credential, ExpirationRecord]
        data = self.store.load(ESCROW_SERVICE)
        if data is None:
            raise EscrowError(ErrorKind.NotFound, 'There is no escrowed password. Most likely a password change '
                                                  'has never been performed or the first one has failed.')
        credential, expires_at = _decode(ESCROW_SERVICE, data)
        if expires_at is None:
            raise EscrowError(ErrorKind.NotFound, 'Escrow record does not contain an expiration date')
        return credential, ExpirationRecord(account_name=credential.account_name, expires_at=expires_at)

    def land(self, credential, expires_at, handle_id=None):
        # type: (Credential, datetime, Optional[str]) -> EscrowHandle
        """Lands a one-time copy of the secret and records its handle in the marker file"""
        self.reclaim_prior()
        handle = EscrowHandle(id=handle_id or EXPORT_PREFIX + str(uuid.uuid4()).upper(), created_at=clock.utc_now())
        self.store.store(handle.id, _encode(credential, expires_at))
        try:
            self._write_marker(handle)
        except OSError as e:
            self.store.delete(handle.id)
            raise EscrowError(ErrorKind.AccessDenied, f'Unable to write marker file {self.marker_path}: {e}')
        logging.info('Password was landed to keychain item %s. It WILL BE deleted on next run.', handle.id)
        return handle

    def _write_marker(self, handle):    # type: (EscrowHandle) -> None
        directory = os.path.dirname(os.path.abspath(self.marker_path))
        fd, temp_path = tempfile.mkstemp(dir=directory, prefix='.keeperlaps.')
        try:
            with os.fdopen(fd, 'w') as fp:
                json.dump({'id': handle.id, 'created_at': handle.created_at.isoformat()}, fp)
            os.chmod(temp_path, 0o600)
            os.replace(temp_path, self.marker_path)
        except OSError:
            if os.path.exists(temp_path):
                os.remove(temp_path)
            raise

    def current_handle(self):    # type: () -> Optional[EscrowHandle]
        if not os.path.isfile(self.marker_path):
            return None
        with open(self.marker_path, 'r') as fp:
            return self._parse_marker(fp.read())

    @staticmethod
    def _parse_marker(text):    # type: (str) -> Optional[EscrowHandle]
        text = text.strip()
        if not text:
            return None
        try:
            data = json.loads(text)
        except ValueError:
            # a bare handle id
            return EscrowHandle(id=text, created_at=clock.utc_now())
        if not isinstance(data, dict) or not data.get('id'):
            return None
        created_at = clock.parse_expiration(data['created_at']) if data.get('created_at') else clock.utc_now()
        return EscrowHandle(id=str(data['id']), created_at=created_at)

    def reclaim_prior(self):    # type: () -> Optional[str]
        """Deletes the secret named by the marker file and clears the marker.

        The marker is renamed before it is read, so only one process can claim it.
        """
        claim_path = f'{self.marker_path}.{os.getpid()}.claim'
        try:
            os.rename(self.marker_path, claim_path)
        except FileNotFoundError:
            return None
        except OSError as e:
            raise EscrowError(ErrorKind.AccessDenied, f'Unable to claim marker file {self.marker_path}: {e}')

        with open(claim_path, 'r') as fp:
            handle = self._parse_marker(fp.read())
        if handle is None:
            logging.warning('Marker file %s is empty or malformed. Discarding.', self.marker_path)
            os.remove(claim_path)
            return None

        try:
            deleted = self.store.delete(handle.id)
        except EscrowError:
            os.replace(claim_path, self.marker_path)
            raise
        os.remove(claim_path)
        if deleted:
            logging.info('Deleted previously exported keychain item %s', handle.id)
        else:
            logging.debug('Previously exported keychain item %s was already gone', handle.id)
        return handle.id

    def stash_pending(self, credential):    # type: (Credential) -> None
        self.store.store(PENDING_SERVICE, _encode(credential))

    def pending(self):    # type: () -> Optional[Credential]
        data = self.store.load(PENDING_SERVICE)
        if data is None:
            return None
        try:
            credential, _ = _decode(PENDING_SERVICE, data)
        except EscrowError as e:
            logging.warning('Discarding an unreadable pending password. %s', e)
            self.clear_pending()
            return None
        return credential

    def clear_pending(self):    # type: () -> None
        self.store.delete(PENDING_SERVICE)
