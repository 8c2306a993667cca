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
from typing import Optional

from . import clock
from .accounts import AccountStore
from .config import LapsConfig
from .engine import Outcome
from .error import ErrorKind, LapsError, RetrievalError
from .escrow import SecretEscrow
from .locking import RunLock


class PasswordRetrieval:
    """Exports the escrowed password to a one-time keychain item.

    The escrowed password is handed out only after it verifies against the live
    account record.
    """

    def __init__(self, config, accounts, escrow, lock=None):
        # type: (LapsConfig, AccountStore, SecretEscrow, Optional[RunLock]) -> None
        self.config = config
        self.accounts = accounts
        self.escrow = escrow
        self.lock = lock or RunLock(config.lock_path)

    def run(self):    # type: () -> Outcome
        try:
            with self.lock:
                return self._retrieve()
        except LapsError as e:
            logging.error('Unable to retrieve the password for %s. %s', self.config.local_admin, e)
            return Outcome.failed(e)

    def _retrieve(self):    # type: () -> Outcome
        self.escrow.reclaim_prior()
        credential, record = self.escrow.retrieve()
        if not self.accounts.verify(credential.account_name, credential.plaintext):
            raise RetrievalError(ErrorKind.VerificationFailed,
                                 f'The escrowed password does not work for {credential.account_name}. '
                                 f'Reset it with sysadminctl, then run with --firstpass.')
        logging.info('Password has been verified to work. Extracting...')
        handle = self.escrow.land(credential, record.expires_at)
        logging.info('Password for %s expires %s', credential.account_name,
                     clock.format_expiration(record.expires_at))
        return Outcome.retrieved(credential.plaintext, record.expires_at, handle_id=handle.id)
