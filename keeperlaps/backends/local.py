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

import logging

from .base import RotationBackend
from .. import clock
from ..error import BackendError, ErrorKind, EscrowError
from ..records import ExpirationRecord


class LocalBackend(RotationBackend):
    """Escrows the password in the keychain of this host only.

    Reporting the password elsewhere is left to an MDM or inventory tool reading the
    keychain; no network calls are made.
    """
    name = 'Local'

    def prepare(self):
        self.escrow.reclaim_prior()

    def current_expiration(self):
        try:
            _, record = self.escrow.retrieve()
        except EscrowError as e:
            if e.kind != ErrorKind.NotFound:
                raise
            logging.info('No escrowed password was found for %s', self.account_name)
            return ExpirationRecord(account_name=self.account_name, expires_at=clock.FILETIME_EPOCH)
        return record

    def rotate(self, policy, current_password=None):
        credential = self.apply(policy, current_password)
        expires_at = self.next_expiration()
        try:
            self.escrow.deposit(credential, expires_at)
        except EscrowError as e:
            raise BackendError(ErrorKind.PartialRotation,
                               f'Password for {self.account_name} was changed but could not be escrowed: {e}. '
                               f'It is kept as pending and will be escrowed on the next run.') from e
        self.escrow.clear_pending()
        return ExpirationRecord(account_name=self.account_name, expires_at=expires_at)
