"""Local-clock day arithmetic on epoch-millisecond timestamps."""
import time
from datetime import datetime, timedelta

ONE_SECOND = 1000
ONE_MINUTE = ONE_SECOND * 60
ONE_HOUR = ONE_MINUTE * 60
ONE_DAY = ONE_HOUR * 24


def now_ms() -> int:
    """Current instant in epoch milliseconds."""
    return int(time.time() * 1000)


def to_local_datetime(timestamp_ms: int) -> datetime:
    return datetime.fromtimestamp(timestamp_ms / 1000)


def from_local_datetime(value: datetime) -> int:
    return int(round(value.timestamp() * 1000))


def start_of_local_day(timestamp_ms: int) -> int:
    """
    Get local midnight at or before a timestamp.

    Args:
        timestamp_ms: Epoch milliseconds

    Returns:
        Epoch milliseconds of 00:00:00.000 on the same local day
    """
    local = to_local_datetime(timestamp_ms)
    midnight = local.replace(hour=0, minute=0, second=0, microsecond=0)
    return from_local_datetime(midnight)


def next_local_midnight(timestamp_ms: int) -> int:
    """
    Get the first local midnight strictly after the day of a timestamp.

    Calendar-day arithmetic, so days shortened or stretched by a DST
    transition still end at local midnight.

    Args:
        timestamp_ms: Epoch milliseconds

    Returns:
        Epoch milliseconds of 00:00 on the following local day
    """
    local = to_local_datetime(timestamp_ms)
    following = local.date() + timedelta(days=1)
    return from_local_datetime(datetime(following.year, following.month, following.day))


def end_of_local_day(timestamp_ms: int) -> int:
    """Last millisecond (23:59:59.999) of the local day of a timestamp."""
    return next_local_midnight(timestamp_ms) - 1


def local_year(timestamp_ms: int) -> int:
    return to_local_datetime(timestamp_ms).year
