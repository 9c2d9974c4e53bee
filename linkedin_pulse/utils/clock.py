"""Epoch-millisecond clock helpers shared by the stores and the sync job."""

import time
from collections.abc import Callable
from datetime import UTC, date, datetime

Clock = Callable[[], int]


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def ms_to_datetime(value: int | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromtimestamp(value / 1000, tz=UTC)


def ms_to_date(value: int) -> date:
    """UTC calendar date for an epoch-millisecond timestamp."""
    return datetime.fromtimestamp(value / 1000, tz=UTC).date()


def date_start_ms(day: date) -> int:
    """Epoch milliseconds at 00:00:00 UTC of ``day``."""
    return int(datetime(day.year, day.month, day.day, tzinfo=UTC).timestamp() * 1000)


def date_end_ms(day: date) -> int:
    """Epoch milliseconds at the last millisecond of ``day`` (UTC)."""
    return date_start_ms(day) + 24 * 60 * 60 * 1000 - 1
