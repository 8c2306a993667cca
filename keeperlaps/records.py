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

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Optional


class SchemaVariant(enum.Enum):
    """Directory attribute conventions used to escrow the password"""
    Classic = 'Classic'
    ExtendedSchema = 'ExtendedSchema'


@dataclass(frozen=True)
class SchemaAttributes:
    password: str
    expiration: str


SCHEMA_ATTRIBUTES = {
    SchemaVariant.Classic: SchemaAttributes(password='ms-Mcs-AdmPwd',
                                            expiration='ms-Mcs-AdmPwdExpirationTime'),
    SchemaVariant.ExtendedSchema: SchemaAttributes(password='msLAPS-Password',
                                                   expiration='msLAPS-PasswordExpirationTime'),
}


@dataclass
class Credential:
    account_name: str
    plaintext: str

    def __repr__(self):
        return f'Credential(account_name={self.account_name!r}, plaintext=***)'


@dataclass(frozen=True)
class ExpirationRecord:
    account_name: str
    expires_at: datetime
    schema_variant: Optional[SchemaVariant] = None


@dataclass(frozen=True)
class EscrowHandle:
    id: str
    created_at: datetime
