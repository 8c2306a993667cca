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
import os
import plistlib
import socket
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional

from .error import ConfigError
from .generator import DEFAULT_REQUIREMENTS, PolicyConfig

PREFERENCE_DOMAIN = 'com.keepersecurity.laps'
PREFERENCE_FILES = (
    f'/Library/Preferences/{PREFERENCE_DOMAIN}.plist',
    f'/Library/Managed Preferences/{PREFERENCE_DOMAIN}.plist',
)
CONFIG_ENV_VARIABLE = 'KEEPER_LAPS_CONFIG'

METHOD_LOCAL = 'Local'
METHOD_AD = 'AD'
METHODS = (METHOD_LOCAL, METHOD_AD)

DEFAULTS = {
    'LocalAdminAccount': 'admin',
    'PasswordLength': 12,
    'DaysTillExpiration': 60,
    'RemoveKeychain': True,
    'RemovePassChars': '',
    'ExclusionSets': [],
    'PasswordRequirements': dict(DEFAULT_REQUIREMENTS),
    'Method': METHOD_LOCAL,
    'FirstPass': '',
    'PreferredDC': '',
    'Domain': '',
    'ComputerName': '',
    'BindUser': '',
    'BindPassword': '',
    'UseSSL': True,
    'KeychainPath': '/Library/Keychains/System.keychain',
    'MarkerPath': '/var/root/.KeeperLAPSExportHandle',
    'LockPath': '/var/run/keeperlaps.lock',
    'LogPath': '/Library/Logs/keeperlaps.log',
}    # type: Dict[str, Any]


@dataclass(frozen=True)
class DirectoryConfig:
    domain: str = ''
    preferred_dc: str = ''
    computer_name: str = ''
    bind_user: str = ''
    bind_password: str = field(default='', repr=False)
    use_ssl: bool = True


@dataclass(frozen=True)
class LapsConfig:
    local_admin: str = DEFAULTS['LocalAdminAccount']
    days_till_expiration: int = DEFAULTS['DaysTillExpiration']
    method: str = METHOD_LOCAL
    remove_keychain: bool = True
    first_password: str = field(default='', repr=False)
    policy: PolicyConfig = field(default_factory=PolicyConfig)
    directory: DirectoryConfig = field(default_factory=DirectoryConfig)
    keychain_path: str = DEFAULTS['KeychainPath']
    marker_path: str = DEFAULTS['MarkerPath']
    lock_path: str = DEFAULTS['LockPath']
    log_path: str = DEFAULTS['LogPath']


def _as_bool(name, value):    # type: (str, Any) -> bool
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ('true', 'yes', '1', 'false', 'no', '0'):
        return value.lower() in ('true', 'yes', '1')
    if isinstance(value, int):
        return value != 0
    raise ConfigError(f'"{name}" must be a boolean: {value!r}')


def _as_int(name, value):    # type: (str, Any) -> int
    if isinstance(value, bool):
        raise ConfigError(f'"{name}" must be an integer: {value!r}')
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigError(f'"{name}" must be an integer: {value!r}')


def read_plist(path):    # type: (str) -> Dict[str, Any]
    with open(path, 'rb') as fp:
        try:
            data = plistlib.load(fp)
        except (plistlib.InvalidFileException, ValueError) as e:
            raise ConfigError(f'Unable to parse preference file "{path}": {e}')
    if not isinstance(data, dict):
        raise ConfigError(f'Preference file "{path}" does not contain a dictionary')
    return data


def read_json(path):    # type: (str) -> Dict[str, Any]
    with open(path, 'r', encoding='utf-8') as fp:
        try:
            data = json.load(fp)
        except ValueError as e:
            raise ConfigError(f'Unable to parse JSON configuration file "{path}": {e}')
    if not isinstance(data, dict):
        raise ConfigError(f'Configuration file "{path}" does not contain a JSON object')
    return data


def collect_settings(config_filename=None, preference_files=PREFERENCE_FILES):
    # type: (Optional[str], Iterable[str]) -> Dict[str, Any]
    settings = dict(DEFAULTS)
    for path in preference_files:
        if os.path.isfile(path):
            logging.debug('Loading preferences from %s', path)
            settings.update(read_plist(path))

    config_filename = config_filename or os.getenv(CONFIG_ENV_VARIABLE)
    if config_filename:
        config_filename = os.path.expanduser(config_filename)
        if not os.path.isfile(config_filename):
            raise ConfigError(f'Configuration file "{config_filename}" does not exist')
        logging.debug('Loading configuration from %s', config_filename)
        settings.update(read_json(config_filename))

    unknown = set(settings) - set(DEFAULTS)
    for key in sorted(unknown):
        logging.warning('Ignoring unknown configuration key "%s"', key)
    return settings


def build_config(settings):    # type: (Dict[str, Any]) -> LapsConfig
    method = str(settings['Method'])
    matched = next((x for x in METHODS if x.lower() == method.lower()), None)
    if matched is None:
        raise ConfigError(f'Unsupported method "{method}". Expected one of: {", ".join(METHODS)}')

    local_admin = str(settings['LocalAdminAccount']).strip()
    if not local_admin:
        raise ConfigError('"LocalAdminAccount" cannot be empty')

    days = _as_int('DaysTillExpiration', settings['DaysTillExpiration'])
    if days < 0:
        raise ConfigError(f'"DaysTillExpiration" cannot be negative: {days}')

    requirements = settings['PasswordRequirements'] or {}
    if not isinstance(requirements, dict):
        raise ConfigError('"PasswordRequirements" must be a dictionary of character class to minimum count')
    exclusion_sets = settings['ExclusionSets'] or []
    if isinstance(exclusion_sets, str):
        exclusion_sets = [exclusion_sets]

    policy = PolicyConfig(
        length=_as_int('PasswordLength', settings['PasswordLength']),
        required_classes={k: _as_int(k, v) for k, v in requirements.items()},
        excluded_chars=frozenset(str(settings['RemovePassChars'] or '')),
        exclusion_sets=tuple(exclusion_sets))

    directory = DirectoryConfig(
        domain=str(settings['Domain'] or ''),
        preferred_dc=str(settings['PreferredDC'] or ''),
        computer_name=str(settings['ComputerName'] or '') or socket.gethostname().split('.')[0],
        bind_user=str(settings['BindUser'] or ''),
        bind_password=str(settings['BindPassword'] or ''),
        use_ssl=_as_bool('UseSSL', settings['UseSSL']))

    return LapsConfig(
        local_admin=local_admin,
        days_till_expiration=days,
        method=matched,
        remove_keychain=_as_bool('RemoveKeychain', settings['RemoveKeychain']),
        first_password=str(settings['FirstPass'] or ''),
        policy=policy,
        directory=directory,
        keychain_path=str(settings['KeychainPath']),
        marker_path=str(settings['MarkerPath']),
        lock_path=str(settings['LockPath']),
        log_path=str(settings['LogPath']))


def load_config(config_filename=None, preference_files=PREFERENCE_FILES):
    # type: (Optional[str], Iterable[str]) -> LapsConfig
    return build_config(collect_settings(config_filename, preference_files))
