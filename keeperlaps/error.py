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


class ErrorKind(enum.Enum):
    Unsatisfiable = 'Unsatisfiable'
    ConversionOverflow = 'ConversionOverflow'
    NotFound = 'NotFound'
    AccessDenied = 'AccessDenied'
    Unreachable = 'Unreachable'
    SchemaNotProvisioned = 'SchemaNotProvisioned'
    NoWritableReplica = 'NoWritableReplica'
    ApplyRejected = 'ApplyRejected'
    PartialRotation = 'PartialRotation'
    PreconditionFailed = 'PreconditionFailed'
    VerificationFailed = 'VerificationFailed'
    ConcurrentRunDetected = 'ConcurrentRunDetected'
    NotPrivileged = 'NotPrivileged'
    InvalidConfig = 'InvalidConfig'


class Error(Exception):
    """Base class for exceptions in this module."""
    def __init__(self, message):
        self.message = message

    def __str__(self):
        return self.message


class LapsError(Error):
    """Error carrying the kind reported back to the operator"""
    kinds = ()     # type: tuple

    def __init__(self, kind, message):   # type: (ErrorKind, str) -> None
        super().__init__(message)
        if self.kinds and kind not in self.kinds:
            raise ValueError(f'{type(self).__name__} does not support kind {kind.value}')
        self.kind = kind

    def __str__(self):
        return f'{self.kind.value}: {self.message or ""}'


class PolicyError(LapsError):
    kinds = (ErrorKind.Unsatisfiable,)


class ClockError(LapsError):
    kinds = (ErrorKind.ConversionOverflow,)


class EscrowError(LapsError):
    kinds = (ErrorKind.NotFound, ErrorKind.AccessDenied)


class BackendError(LapsError):
    kinds = (ErrorKind.Unreachable, ErrorKind.SchemaNotProvisioned, ErrorKind.NoWritableReplica,
             ErrorKind.ApplyRejected, ErrorKind.PartialRotation, ErrorKind.PreconditionFailed)


class RetrievalError(LapsError):
    kinds = (ErrorKind.VerificationFailed,)


class EngineError(LapsError):
    kinds = (ErrorKind.ConcurrentRunDetected, ErrorKind.NotPrivileged)


class ConfigError(LapsError):
    kinds = (ErrorKind.InvalidConfig,)

    def __init__(self, message):
        super().__init__(ErrorKind.InvalidConfig, message)
