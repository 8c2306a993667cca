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

"""Expiration bookkeeping.

All timestamps handled here are timezone aware UTC datetimes. The directory stores
expirations as the number of 100-nanosecond ticks since 1601-01-01 UTC (FILETIME).
"""

from datetime import datetime, timedelta, timezone
from typing import Union

from .error import ClockError, ErrorKind

FILETIME_EPOCH = datetime(1601, 1, 1, tzinfo=timezone.utc)
TICKS_PER_SECOND = 10_000_000
TICKS_PER_MICROSECOND = 10
MAX_FILETIME = 0x7FFFFFFFFFFFFFFF
FORCED_EXPIRATION_DAYS = 7
DISPLAY_FORMAT = '%Y-%m-%d %H:%M:%S %Z'


def utc_now():    # type: () -> datetime
    return datetime.now(timezone.utc)


def ensure_utc(ts):    # type: (datetime) -> datetime
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def compute_next_expiration(now, days_till_expiration):    # type: (datetime, int) -> datetime
    return ensure_utc(now) + timedelta(days=days_till_expiration)


def is_due(expires_at, now):    # type: (datetime, datetime) -> bool
    return ensure_utc(expires_at) < ensure_utc(now)


def forced_expiration(now):    # type: (datetime) -> datetime
    return ensure_utc(now) - timedelta(days=FORCED_EXPIRATION_DAYS)


def to_directory_native(ts):    # type: (datetime) -> int
    delta = ensure_utc(ts) - FILETIME_EPOCH
    ticks = (delta.days * 86400 + delta.seconds) * TICKS_PER_SECOND + delta.microseconds * TICKS_PER_MICROSECOND
    if ticks < 0 or ticks > MAX_FILETIME:
        raise ClockError(ErrorKind.ConversionOverflow, f'{ts.isoformat()} cannot be stored as a directory timestamp')
    return ticks


def from_directory_native(raw):    # type: (Union[str, int, bytes]) -> datetime
    """Converts a directory timestamp to UTC.

    Sub-microsecond ticks are truncated: only whole microseconds are representable
    on the datetime side.
    """
    if isinstance(raw, bytes):
        raw = raw.decode('ascii', errors='replace')
    try:
        ticks = int(str(raw).strip())
    except (TypeError, ValueError):
        raise ClockError(ErrorKind.ConversionOverflow, f'"{raw}" is not a directory timestamp')
    if ticks < 0 or ticks > MAX_FILETIME:
        raise ClockError(ErrorKind.ConversionOverflow, f'Directory timestamp {ticks} is out of range')
    try:
        return FILETIME_EPOCH + timedelta(microseconds=ticks // TICKS_PER_MICROSECOND)
    except OverflowError:
        raise ClockError(ErrorKind.ConversionOverflow, f'Directory timestamp {ticks} is out of range')


def format_expiration(ts):    # type: (datetime) -> str
    return ensure_utc(ts).strftime(DISPLAY_FORMAT)


def parse_expiration(text):    # type: (str) -> datetime
    return ensure_utc(datetime.fromisoformat(text))
