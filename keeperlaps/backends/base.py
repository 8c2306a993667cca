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

import abc
import logging
from datetime import datetime
from typing import Callable, Optional

from .. import clock, generator
from ..accounts import AccountStore
from ..config import LapsConfig
from ..error import BackendError, ErrorKind
from ..escrow import SecretEscrow
from ..generator import PolicyConfig
from ..records import Credential, ExpirationRecord


class RotationBackend(abc.ABC):
    """Where the current password and its expiration are recorded.

    Every rotation applies the new password to the local account first and publishes
    it to the backend second. A password that was applied but not published is kept
    in the pending escrow item until the publish succeeds.
    """
    name = ''

    def __init__(self, config, accounts, escrow, now=clock.utc_now):
        # type: (LapsConfig, AccountStore, SecretEscrow, Callable[[], datetime]) -> None
        self.config = config
        self.accounts = accounts
        self.escrow = escrow
        self.now = now

    @property
    def account_name(self):
        return self.config.local_admin

    def prepare(self):    # type: () -> None
        pass

    def close(self):    # type: () -> None
        pass

    @abc.abstractmethod
    def current_expiration(self):    # type: () -> ExpirationRecord
        pass

    @abc.abstractmethod
    def rotate(self, policy, current_password=None):    # type: (PolicyConfig, Optional[str]) -> ExpirationRecord
        pass

    def pending_publish(self):    # type: () -> Optional[Credential]
        """Returns the pending password if the local account already uses it"""
        credential = self.escrow.pending()
        if credential is None:
            return None
        if credential.account_name == self.account_name and \
                self.accounts.verify(self.account_name, credential.plaintext):
            return credential
        logging.info('Discarding a pending password that was never applied to %s', self.account_name)
        self.escrow.clear_pending()
        return None

    def apply(self, policy, current_password=None):    # type: (PolicyConfig, Optional[str]) -> Credential
        credential = self.pending_publish()
        if credential is not None:
            logging.warning('%s already uses the pending password. Only publishing it.', self.account_name)
            return credential

        if current_password is not None:
            if not self.accounts.verify(self.account_name, current_password):
                raise BackendError(ErrorKind.PreconditionFailed,
                                   f'The supplied first password does not match the current password of '
                                   f'{self.account_name}. The password has not been changed.')
            logging.info('The supplied first password has been verified for %s', self.account_name)

        credential = Credential(account_name=self.account_name, plaintext=generator.generate(policy))
        self.escrow.stash_pending(credential)
        try:
            self.accounts.set_password(self.account_name, credential.plaintext, old_password=current_password)
        except BackendError as e:
            if self.accounts.verify(self.account_name, credential.plaintext):
                raise BackendError(ErrorKind.PartialRotation,
                                   f'Password for {self.account_name} was changed but the change reported an error: '
                                   f'{e.message}. The new password is kept pending and will be published '
                                   f'on the next run.') from e
            self.escrow.clear_pending()
            if e.kind == ErrorKind.ApplyRejected:
                raise
            raise BackendError(ErrorKind.ApplyRejected, e.message) from e
        logging.info('Password for %s has been changed on the local account', self.account_name)
        return credential

    def next_expiration(self):    # type: () -> datetime
        return clock.compute_next_expiration(self.now(), self.config.days_till_expiration)
