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
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional

from . import clock
from .accounts import AccountStore
from .backends import DirectoryBackend, RotationBackend
from .config import LapsConfig
from .error import BackendError, ErrorKind, LapsError
from .locking import RunLock
from .records import ExpirationRecord


class EngineState(enum.Enum):
    Idle = 'Idle'
    Deciding = 'Deciding'
    Skipped = 'Skipped'
    RotatingLocal = 'RotatingLocal'
    RotatingDirectory = 'RotatingDirectory'
    Done = 'Done'
    Failed = 'Failed'


TRANSITIONS = {
    EngineState.Idle: (EngineState.Deciding, EngineState.Failed),
    EngineState.Deciding: (EngineState.Skipped, EngineState.RotatingLocal, EngineState.RotatingDirectory,
                           EngineState.Failed),
    EngineState.RotatingLocal: (EngineState.Done, EngineState.Failed),
    EngineState.RotatingDirectory: (EngineState.Done, EngineState.Failed),
    EngineState.Skipped: (),
    EngineState.Done: (),
    EngineState.Failed: (),
}


class DecisionKind(enum.Enum):
    NotDue = 'NotDue'
    DueNormal = 'DueNormal'
    DueForced = 'DueForced'
    FailedPrecondition = 'FailedPrecondition'


@dataclass(frozen=True)
class RotationDecision:
    kind: DecisionKind
    reason: str = ''

    @property
    def due(self):
        return self.kind in (DecisionKind.DueNormal, DecisionKind.DueForced)


class OutcomeStatus(enum.Enum):
    Skipped = 'Skipped'
    Rotated = 'Rotated'
    Retrieved = 'Retrieved'
    Failed = 'Failed'


@dataclass(frozen=True)
class Outcome:
    status: OutcomeStatus
    expires_at: Optional[datetime] = None
    plaintext: Optional[str] = field(default=None, repr=False)
    handle_id: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    message: str = ''

    @classmethod
    def skipped(cls, expires_at):
        return cls(status=OutcomeStatus.Skipped, expires_at=expires_at)

    @classmethod
    def rotated(cls, expires_at):
        return cls(status=OutcomeStatus.Rotated, expires_at=expires_at)

    @classmethod
    def retrieved(cls, plaintext, expires_at, handle_id=None):
        return cls(status=OutcomeStatus.Retrieved, plaintext=plaintext, expires_at=expires_at, handle_id=handle_id)

    @classmethod
    def failed(cls, error):    # type: (LapsError) -> Outcome
        return cls(status=OutcomeStatus.Failed, error_kind=error.kind, message=str(error))

    @property
    def ok(self):
        return self.status != OutcomeStatus.Failed


@dataclass(frozen=True)
class RotationRequest:
    force: bool = False
    first_password: Optional[str] = field(default=None, repr=False)


def decide(request, record, now, pending_publish=False):
    # type: (RotationRequest, Optional[ExpirationRecord], datetime, bool) -> RotationDecision
    if request.first_password is not None and not request.first_password:
        return RotationDecision(DecisionKind.FailedPrecondition,
                                'No password is specified via the FirstPass setting or on the command line')
    if pending_publish:
        return RotationDecision(DecisionKind.DueForced, 'a changed password has not been published yet')
    if request.first_password is not None:
        return RotationDecision(DecisionKind.DueForced, 'first password was supplied')
    if request.force:
        return RotationDecision(DecisionKind.DueForced, 'password reset was requested')
    if record is None:
        return RotationDecision(DecisionKind.FailedPrecondition, 'current expiration is unknown')
    if clock.is_due(record.expires_at, now):
        return RotationDecision(DecisionKind.DueNormal, 'password has expired')
    return RotationDecision(DecisionKind.NotDue)


class RotationEngine:
    def __init__(self, config, backend, accounts=None, lock=None, now=clock.utc_now):
        # type: (LapsConfig, RotationBackend, Optional[AccountStore], Optional[RunLock], Callable[[], datetime]) -> None
        self.config = config
        self.backend = backend
        self.accounts = accounts
        self.lock = lock or RunLock(config.lock_path)
        self.now = now
        self.state = EngineState.Idle
        self.history = [EngineState.Idle]    # type: List[EngineState]
        self.decision = None    # type: Optional[RotationDecision]

    def _transition(self, state):    # type: (EngineState) -> None
        if state not in TRANSITIONS[self.state]:
            raise RuntimeError(f'Invalid rotation state transition {self.state.value} -> {state.value}')
        logging.debug('Rotation state: %s -> %s', self.state.value, state.value)
        self.state = state
        self.history.append(state)

    def _fail(self, error):    # type: (LapsError) -> Outcome
        self._transition(EngineState.Failed)
        if error.kind == ErrorKind.PartialRotation:
            logging.error('PARTIAL ROTATION for %s. %s', self.config.local_admin, error)
        else:
            logging.error('Password rotation for %s failed. %s', self.config.local_admin, error)
        return Outcome.failed(error)

    def run(self, request=None):    # type: (Optional[RotationRequest]) -> Outcome
        request = request or RotationRequest()
        try:
            self.lock.acquire()
        except LapsError as e:
            return self._fail(e)
        try:
            return self._run(request)
        finally:
            self.backend.close()
            self.lock.release()

    def _run(self, request):    # type: (RotationRequest) -> Outcome
        try:
            self.backend.prepare()
            self._transition(EngineState.Deciding)
            pending = self.backend.pending_publish() is not None
            record = None
            if not (request.force or pending or request.first_password is not None):
                record = self.backend.current_expiration()
            now = self.now()
            self.decision = decide(request, record, now, pending_publish=pending)
        except LapsError as e:
            return self._fail(e)

        if self.decision.kind == DecisionKind.FailedPrecondition:
            return self._fail(BackendError(ErrorKind.PreconditionFailed, self.decision.reason))

        if self.decision.kind == DecisionKind.NotDue:
            self._transition(EngineState.Skipped)
            logging.info('Password change is not required as the password for %s does not expire until %s',
                         self.config.local_admin, clock.format_expiration(record.expires_at))
            return Outcome.skipped(record.expires_at)

        if self.decision.kind == DecisionKind.DueForced:
            logging.info('Password change for %s is forced: %s. Effective expiration is %s',
                         self.config.local_admin, self.decision.reason,
                         clock.format_expiration(clock.forced_expiration(now)))
        else:
            logging.info('Password change is required as the password for %s has expired',
                         self.config.local_admin)

        if isinstance(self.backend, DirectoryBackend):
            self._transition(EngineState.RotatingDirectory)
        else:
            self._transition(EngineState.RotatingLocal)
        try:
            new_record = self.backend.rotate(self.config.policy, current_password=request.first_password)
        except LapsError as e:
            return self._fail(e)

        self._transition(EngineState.Done)
        logging.info('Password change has been completed for the local admin %s. New expiration date is %s',
                     self.config.local_admin, clock.format_expiration(new_record.expires_at))
        if self.config.remove_keychain and self.accounts is not None:
            self._remove_login_keychain()
        return Outcome.rotated(new_record.expires_at)

    def _remove_login_keychain(self):
        try:
            self.accounts.remove_login_keychain(self.config.local_admin)
        except OSError as e:
            logging.warning('Unable to remove the login keychain of %s: %s', self.config.local_admin, e)
