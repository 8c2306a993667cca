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
import glob
import logging
import os
import subprocess
from typing import List, Optional

from .error import BackendError, ErrorKind

DSCL_TIMEOUT = 30


class AccountStore(abc.ABC):
    """Local user records"""

    @abc.abstractmethod
    def exists(self, account):    # type: (str) -> bool
        pass

    @abc.abstractmethod
    def verify(self, account, password):    # type: (str, str) -> bool
        pass

    @abc.abstractmethod
    def set_password(self, account, new_password, old_password=None):    # type: (str, str, Optional[str]) -> None
        pass

    @abc.abstractmethod
    def remove_login_keychain(self, account):    # type: (str) -> List[str]
        pass


class DsclAccountStore(AccountStore):
    """Local directory node accessed through dscl"""

    def __init__(self, node='.', timeout_seconds=DSCL_TIMEOUT):
        self.node = node
        self.timeout_seconds = timeout_seconds

    def _dscl(self, args):    # type: (List[str]) -> subprocess.CompletedProcess
        try:
            return subprocess.run(['dscl', self.node] + args, capture_output=True, text=True,
                                  timeout=self.timeout_seconds)
        except (OSError, subprocess.TimeoutExpired) as e:
            raise BackendError(ErrorKind.Unreachable, f'Unable to connect to the local node: {e}')

    def exists(self, account):
        return self._dscl(['-read', f'/Users/{account}', 'RecordName']).returncode == 0

    def verify(self, account, password):
        return self._dscl(['-authonly', account, password]).returncode == 0

    def set_password(self, account, new_password, old_password=None):
        if not self.exists(account):
            raise BackendError(ErrorKind.ApplyRejected, f'Local account "{account}" does not exist')
        args = ['-passwd', f'/Users/{account}']
        if old_password is not None:
            args.append(old_password)
        args.append(new_password)
        result = self._dscl(args)
        if result.returncode != 0:
            raise BackendError(ErrorKind.ApplyRejected,
                               f'Password change for "{account}" was rejected: {result.stderr.strip()}')
        if not self.verify(account, new_password):
            raise BackendError(ErrorKind.ApplyRejected,
                               f'Password change for "{account}" reported success but the new password does not verify')

    def home_directory(self, account):    # type: (str) -> Optional[str]
        result = self._dscl(['-read', f'/Users/{account}', 'NFSHomeDirectory'])
        if result.returncode != 0:
            return None
        _, _, value = result.stdout.partition(':')
        return value.strip() or None

    def remove_login_keychain(self, account):
        home = self.home_directory(account)
        if not home:
            logging.warning('Unable to locate the home directory of %s. Login keychain was not removed.', account)
            return []
        removed = []
        for path in glob.glob(os.path.join(home, 'Library', 'Keychains', 'login.keychain*')):
            os.remove(path)
            removed.append(path)
            logging.info('Removed keychain %s', path)
        return removed
