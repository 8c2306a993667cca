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

import errno
import fcntl
import logging
import os
from typing import Optional

from .error import ConfigError, EngineError, ErrorKind


class RunLock:
    """Advisory lock held for the duration of one invocation.

    Invocations are expected to be serialized by the scheduler; the lock turns an
    accidental overlap into ConcurrentRunDetected.
    """

    def __init__(self, lock_path):    # type: (str) -> None
        self.lock_path = lock_path
        self._lock_fd = None    # type: Optional[int]

    @property
    def locked(self):
        return self._lock_fd is not None

    def acquire(self):
        try:
            fd = os.open(self.lock_path, os.O_CREAT | os.O_WRONLY, 0o600)
        except OSError as e:
            raise ConfigError(f'LockPath: unable to open lock file {self.lock_path}: {e}') from e
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError as e:
            os.close(fd)
            if e.errno not in (errno.EAGAIN, errno.EWOULDBLOCK):
                raise
            raise EngineError(ErrorKind.ConcurrentRunDetected,
                              f'Another invocation holds {self.lock_path}. Not rotating concurrently.')
        os.ftruncate(fd, 0)
        os.write(fd, str(os.getpid()).encode())
        self._lock_fd = fd
        logging.debug('Acquired run lock %s', self.lock_path)

    def release(self):
        if self._lock_fd is None:
            return
        try:
            fcntl.flock(self._lock_fd, fcntl.LOCK_UN)
        finally:
            os.close(self._lock_fd)
            self._lock_fd = None
        logging.debug('Released run lock %s', self.lock_path)

    def __enter__(self):
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()
        return False
