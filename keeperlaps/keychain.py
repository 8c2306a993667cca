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
import subprocess
from typing import List, Optional

from .error import ErrorKind, EscrowError

ERR_SEC_ITEM_NOT_FOUND = 44
SECURITY_TIMEOUT = 30


class SecureStore(abc.ABC):
    """Named secret storage"""

    @abc.abstractmethod
    def store(self, handle, secret):    # type: (str, bytes) -> None
        pass

    @abc.abstractmethod
    def load(self, handle):    # type: (str) -> Optional[bytes]
        pass

    @abc.abstractmethod
    def delete(self, handle):    # type: (str) -> bool
        pass


class KeychainStore(SecureStore):
    """macOS keychain generic password items managed through the security tool"""

    def __init__(self, keychain_path, account='root', timeout_seconds=SECURITY_TIMEOUT):
        self.keychain_path = keychain_path
        self.account = account
        self.timeout_seconds = timeout_seconds

    def _security(self, args):    # type: (List[str]) -> subprocess.CompletedProcess
        command = ['security'] + args + [self.keychain_path]
        try:
            return subprocess.run(command, capture_output=True, text=True, timeout=self.timeout_seconds)
        except (OSError, subprocess.TimeoutExpired) as e:
            raise EscrowError(ErrorKind.AccessDenied, f'Unable to run security {args[0]}: {e}')

    def store(self, handle, secret):
        result = self._security([
            'add-generic-password',
            '-a', self.account,
            '-s', handle,
            '-w', secret.decode('utf-8'),
            '-T', '/usr/bin/security',
            '-U'
        ])
        if result.returncode != 0:
            raise EscrowError(ErrorKind.AccessDenied,
                              f'Unable to store keychain item "{handle}": {result.stderr.strip()}')
        logging.debug('Stored keychain item %s', handle)

    def load(self, handle):
        result = self._security(['find-generic-password', '-s', handle, '-w'])
        if result.returncode == ERR_SEC_ITEM_NOT_FOUND:
            return None
        if result.returncode != 0:
            raise EscrowError(ErrorKind.AccessDenied,
                              f'Unable to read keychain item "{handle}": {result.stderr.strip()}')
        return result.stdout.rstrip('\n').encode('utf-8')

    def delete(self, handle):
        result = self._security(['delete-generic-password', '-s', handle])
        if result.returncode == ERR_SEC_ITEM_NOT_FOUND:
            return False
        if result.returncode != 0:
            raise EscrowError(ErrorKind.AccessDenied,
                              f'Unable to delete keychain item "{handle}": {result.stderr.strip()}')
        logging.debug('Deleted keychain item %s', handle)
        return True
