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

from typing import Optional

from .base import RotationBackend
from .directory import DirectoryBackend
from .local import LocalBackend
from ..accounts import AccountStore
from ..config import METHOD_AD, METHOD_LOCAL, LapsConfig
from ..directory import DirectoryClient, LdapDirectoryClient
from ..error import ConfigError
from ..escrow import SecretEscrow


def load_backend(config, accounts, escrow, client=None):
    # type: (LapsConfig, AccountStore, SecretEscrow, Optional[DirectoryClient]) -> RotationBackend
    """Creates the backend selected by the "Method" setting"""
    if config.method == METHOD_LOCAL:
        return LocalBackend(config, accounts, escrow)
    if config.method == METHOD_AD:
        return DirectoryBackend(config, accounts, escrow, client or LdapDirectoryClient(config.directory))
    raise ConfigError(f'Unsupported method "{config.method}"')
