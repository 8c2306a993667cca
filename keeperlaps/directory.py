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
import ssl
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import ldap3
from ldap3.core.exceptions import LDAPException
from ldap3.utils.conv import escape_filter_chars
from ldap3.utils.dn import to_dn

from .config import DirectoryConfig
from .error import BackendError, Error, ErrorKind

"""Active Directory access over LDAP
   Dependencies:
       pip install ldap3
"""

CONNECT_TIMEOUT = 5


class DirectoryWriteError(Error):
    """The directory refused a modification"""


@dataclass(frozen=True)
class Replica:
    address: str
    writable: bool


class DirectoryHandle:
    def __init__(self, connection, address, computer_dn, default_context='', configuration_context='',
                 schema_context=''):
        self.connection = connection
        self.address = address
        self.computer_dn = computer_dn
        self.default_context = default_context
        self.configuration_context = configuration_context
        self.schema_context = schema_context


class DirectoryClient(abc.ABC):
    @abc.abstractmethod
    def bind(self, address=None):    # type: (Optional[str]) -> DirectoryHandle
        pass

    @abc.abstractmethod
    def read_attribute(self, handle, name):    # type: (DirectoryHandle, str) -> Optional[str]
        pass

    @abc.abstractmethod
    def write_attributes(self, handle, values):    # type: (DirectoryHandle, Dict[str, str]) -> None
        pass

    def write_attribute(self, handle, name, value):    # type: (DirectoryHandle, str, str) -> None
        self.write_attributes(handle, {name: value})

    @abc.abstractmethod
    def has_attribute(self, handle, name):    # type: (DirectoryHandle, str) -> bool
        pass

    @abc.abstractmethod
    def enumerate_replicas(self, handle):    # type: (DirectoryHandle) -> List[Replica]
        pass

    def unbind(self, handle):    # type: (DirectoryHandle) -> None
        pass


def _first_value(value):    # type: (Any) -> Optional[str]
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    if value is None:
        return None
    if isinstance(value, bytes):
        return value.decode('utf-8')
    return str(value)


def _parent_dn(dn):    # type: (str) -> str
    return ','.join(to_dn(dn)[1:])


class LdapDirectoryClient(DirectoryClient):
    """Binds to the computer object of this host"""

    def __init__(self, config):    # type: (DirectoryConfig) -> None
        self.config = config

    def _connection(self, server):
        if self.config.bind_user:
            return ldap3.Connection(
                server, version=3, auto_bind=ldap3.AUTO_BIND_NONE, read_only=False,
                authentication=ldap3.SIMPLE if server.ssl else ldap3.NTLM,
                user=self.config.bind_user, password=self.config.bind_password)
        return ldap3.Connection(
            server, version=3, auto_bind=ldap3.AUTO_BIND_NONE, read_only=False,
            authentication=ldap3.SASL, sasl_mechanism=ldap3.KERBEROS)

    def bind(self, address=None):
        host = address or self.config.preferred_dc or self.config.domain
        if not host:
            raise BackendError(ErrorKind.Unreachable, 'Neither "PreferredDC" nor "Domain" is configured')
        tls = ldap3.Tls(validate=ssl.CERT_REQUIRED) if self.config.use_ssl else None
        server = ldap3.Server(host=host, use_ssl=self.config.use_ssl, tls=tls,
                              connect_timeout=CONNECT_TIMEOUT, get_info=ldap3.DSA)
        try:
            conn = self._connection(server)
            if not conn.bind():
                raise BackendError(ErrorKind.Unreachable, f'Unable to bind to {host}: {conn.result}')
            info = server.info.other if server.info else {}
            default_context = _first_value(info.get('defaultNamingContext')) or ''
            configuration_context = _first_value(info.get('configurationNamingContext')) or ''
            schema_context = _first_value(info.get('schemaNamingContext')) or ''
            if not default_context:
                raise BackendError(ErrorKind.Unreachable, f'{host}: cannot query Root DSE')

            account = escape_filter_chars(self.config.computer_name.upper().rstrip('$') + '$')
            conn.search(default_context, f'(&(objectClass=computer)(sAMAccountName={account}))',
                        search_scope=ldap3.SUBTREE, attributes=['distinguishedName'])
            if len(conn.response or []) == 0 or 'dn' not in conn.response[0]:
                raise BackendError(ErrorKind.Unreachable,
                                   f'Unable to find computer record for {self.config.computer_name} on {host}')
            computer_dn = conn.response[0]['dn']
        except LDAPException as e:
            raise BackendError(ErrorKind.Unreachable, f'Unable to connect to {host}: {e}')

        logging.debug('Bound to %s as computer %s', host, computer_dn)
        return DirectoryHandle(conn, host, computer_dn, default_context=default_context,
                               configuration_context=configuration_context, schema_context=schema_context)

    def read_attribute(self, handle, name):
        try:
            handle.connection.search(handle.computer_dn, '(objectClass=*)', search_scope=ldap3.BASE,
                                     attributes=[name])
        except LDAPException as e:
            raise BackendError(ErrorKind.Unreachable, f'Unable to read {name}: {e}')
        for entry in handle.connection.response or []:
            attributes = entry.get('attributes') or {}
            for key, value in attributes.items():
                if key.lower() == name.lower():
                    return _first_value(value)
        return None

    def write_attributes(self, handle, values):
        changes = {name: [(ldap3.MODIFY_REPLACE, [value])] for name, value in values.items()}
        try:
            result = handle.connection.modify(handle.computer_dn, changes)
        except LDAPException as e:
            raise DirectoryWriteError(f'{handle.address}: {e}')
        if not result:
            raise DirectoryWriteError(f'{handle.address}: {handle.connection.result.get("description", "")} '
                                      f'{handle.connection.result.get("message", "")}'.strip())

    def has_attribute(self, handle, name):
        if not handle.schema_context:
            return False
        try:
            handle.connection.search(
                handle.schema_context,
                f'(&(objectClass=attributeSchema)(lDAPDisplayName={escape_filter_chars(name)}))',
                search_scope=ldap3.LEVEL, attributes=['lDAPDisplayName'])
        except LDAPException as e:
            raise BackendError(ErrorKind.Unreachable, f'Unable to query the directory schema: {e}')
        return len(handle.connection.response or []) > 0

    def enumerate_replicas(self, handle):
        if not handle.configuration_context:
            return []
        conn = handle.connection
        try:
            conn.search(f'CN=Sites,{handle.configuration_context}', '(objectClass=nTDSDSA)',
                        search_scope=ldap3.SUBTREE, attributes=['msDS-isRODC'])
            dsa_entries = list(conn.response or [])
            replicas = []
            for dsa in dsa_entries:
                if 'dn' not in dsa:
                    continue
                is_rodc = _first_value((dsa.get('attributes') or {}).get('msDS-isRODC'))
                conn.search(_parent_dn(dsa['dn']), '(objectClass=server)', search_scope=ldap3.BASE,
                            attributes=['dNSHostName'])
                host = next((_first_value((x.get('attributes') or {}).get('dNSHostName'))
                             for x in conn.response or [] if 'dn' in x), None)
                if host:
                    replicas.append(Replica(address=host, writable=str(is_rodc).upper() != 'TRUE'))
        except LDAPException as e:
            raise BackendError(ErrorKind.Unreachable, f'Unable to enumerate domain controllers: {e}')

        preferred = (self.config.preferred_dc or '').lower()
        replicas.sort(key=lambda x: (x.address.lower() != preferred, x.address.lower() != handle.address.lower()))
        return replicas

    def unbind(self, handle):
        try:
            handle.connection.unbind()
        except LDAPException as e:
            logging.debug('Unbind from %s failed: %s', handle.address, e)
