import os
import tempfile
from datetime import datetime, timezone
from typing import Dict, List

from keeperlaps.accounts import AccountStore
from keeperlaps.config import DirectoryConfig, LapsConfig
from keeperlaps.directory import DirectoryClient, DirectoryHandle, DirectoryWriteError, Replica
from keeperlaps.error import BackendError, ErrorKind, EscrowError
from keeperlaps.generator import PolicyConfig
from keeperlaps.keychain import SecureStore

NOW = datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc)
ADMIN = 'admin'
CURRENT_PASSWORD = 'Current-Passw0rd!'
COMPUTER_DN = 'CN=MAC01,OU=Computers,DC=corp,DC=example,DC=com'


def fixed_now():
    return NOW


def make_config(work_dir, method='Local', days=60, remove_keychain=False, **kwargs):
    policy = kwargs.pop('policy', PolicyConfig(length=12, required_classes={
        'Uppercase': 1, 'Lowercase': 1, 'Number': 1, 'Symbol': 1}))
    return LapsConfig(
        local_admin=ADMIN,
        days_till_expiration=days,
        method=method,
        remove_keychain=remove_keychain,
        policy=policy,
        directory=DirectoryConfig(domain='corp.example.com', preferred_dc='dc1.corp.example.com',
                                  computer_name='MAC01'),
        keychain_path=os.path.join(work_dir, 'test.keychain'),
        marker_path=os.path.join(work_dir, 'marker'),
        lock_path=os.path.join(work_dir, 'keeperlaps.lock'),
        log_path=os.path.join(work_dir, 'keeperlaps.log'),
        **kwargs)


class WorkDir:
    def __init__(self):
        self._temp = tempfile.TemporaryDirectory()
        self.path = self._temp.name

    def cleanup(self):
        self._temp.cleanup()


class InMemorySecureStore(SecureStore):
    def __init__(self):
        self.items = {}    # type: Dict[str, bytes]
        self.deny_store = set()
        self.deny_delete = set()

    def store(self, handle, secret):
        if handle in self.deny_store:
            raise EscrowError(ErrorKind.AccessDenied, f'store {handle} denied')
        self.items[handle] = secret

    def load(self, handle):
        return self.items.get(handle)

    def delete(self, handle):
        if handle in self.deny_delete:
            raise EscrowError(ErrorKind.AccessDenied, f'delete {handle} denied')
        return self.items.pop(handle, None) is not None


class FakeAccountStore(AccountStore):
    def __init__(self, passwords=None):
        self.passwords = dict(passwords or {ADMIN: CURRENT_PASSWORD})
        self.reject = False
        self.set_calls = []    # type: List[tuple]
        self.verify_calls = []    # type: List[tuple]
        self.removed_keychains = []    # type: List[str]

    def exists(self, account):
        return account in self.passwords

    def verify(self, account, password):
        self.verify_calls.append((account, password))
        return self.passwords.get(account) == password

    def set_password(self, account, new_password, old_password=None):
        self.set_calls.append((account, new_password, old_password))
        if self.reject or account not in self.passwords:
            raise BackendError(ErrorKind.ApplyRejected, f'{account}: rejected')
        if old_password is not None and self.passwords[account] != old_password:
            raise BackendError(ErrorKind.ApplyRejected, f'{account}: old password mismatch')
        self.passwords[account] = new_password

    def remove_login_keychain(self, account):
        self.removed_keychains.append(account)
        return []


class FakeDirectoryClient(DirectoryClient):
    """One computer object replicated to every domain controller"""

    def __init__(self, schema_attributes=('msLAPS-PasswordExpirationTime', 'msLAPS-Password'), replicas=None):
        self.schema_attributes = set(schema_attributes)
        self.attributes = {}    # type: Dict[str, str]
        self.replicas = list(replicas if replicas is not None else [Replica('dc1.corp.example.com', True)])
        self.unwritable = set()
        self.unreachable = set()
        self.fail_attributes = set()
        self.writes = []    # type: List[tuple]
        self.bound = []    # type: List[str]
        self.unbound = []    # type: List[str]

    def bind(self, address=None):
        address = address or 'dc1.corp.example.com'
        if address in self.unreachable:
            raise BackendError(ErrorKind.Unreachable, f'{address} is unreachable')
        self.bound.append(address)
        return DirectoryHandle(None, address, COMPUTER_DN)

    def read_attribute(self, handle, name):
        return self.attributes.get(name)

    def write_attributes(self, handle, values):
        if handle.address in self.unwritable:
            raise DirectoryWriteError(f'{handle.address}: unwillingToPerform')
        if self.fail_attributes.intersection(values):
            raise DirectoryWriteError(f'{handle.address}: insufficientAccessRights')
        self.writes.append((handle.address, dict(values)))
        self.attributes.update(values)

    def has_attribute(self, handle, name):
        return name in self.schema_attributes

    def enumerate_replicas(self, handle):
        return list(self.replicas)

    def unbind(self, handle):
        self.unbound.append(handle.address)
