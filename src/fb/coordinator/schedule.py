"""
Scheduling helpers.

The acting market is a deterministic function of local wall-clock time:
hours inside the domestic window map to KR, all others to US. Scheduled
runs happen every few hours on weekdays.
"""

from __future__ import annotations

from datetime import datetime, timedelta, tzinfo
from zoneinfo import ZoneInfo

from fb.types import Market, utc_now

DEFAULT_TIMEZONE = ZoneInfo("Asia/Seoul")


def to_local(now: datetime | None, tz: tzinfo) -> datetime:
    """Express now in tz; naive datetimes are taken as already local."""
    now = now or utc_now()
    if now.tzinfo is None:
        return now.replace(tzinfo=tz)
    return now.astimezone(tz)


def select_market(
    now: datetime | None = None,
    tz: tzinfo = DEFAULT_TIMEZONE,
    start_hour: int = 9,
    end_hour: int = 16,
) -> Market:
    """Pick the acting market from the local hour.

    Args:
        now: Reference time; naive datetimes are taken as local time.
        tz: Timezone of the domestic market.
        start_hour: First hour (inclusive) of the domestic window.
        end_hour: End hour (exclusive) of the domestic window.

    Returns:
        Market.KR inside the window, Market.US otherwise.
    """
    hour = to_local(now, tz).hour
    return Market.KR if start_hour <= hour < end_hour else Market.US


def is_weekend(now: datetime | None = None, tz: tzinfo = DEFAULT_TIMEZONE) -> bool:
    """True on Saturday and Sunday in the given timezone."""
    return to_local(now, tz).weekday() >= 5


def seconds_until_next_run(
    now: datetime | None = None,
    interval_hours: int = 3,
    tz: tzinfo = DEFAULT_TIMEZONE,
) -> int:
    """Seconds until the next run slot.

    Slots are multiples of interval_hours since local midnight, and midnight
    always starts a new slot. Exactly on a slot boundary the wait is zero.
    """
    local = to_local(now, tz)
    midnight = local.replace(hour=0, minute=0, second=0, microsecond=0)
    elapsed = int((local - midnight).total_seconds())
    interval = interval_hours * 3600
    next_slot = -(-elapsed // interval) * interval
    next_slot = min(next_slot, 24 * 3600)
    return next_slot - elapsed


def next_run_at(
    now: datetime | None = None,
    interval_hours: int = 3,
    tz: tzinfo = DEFAULT_TIMEZONE,
) -> datetime:
    """Local datetime of the next run slot."""
    local = to_local(now, tz).replace(microsecond=0)
    return local + timedelta(seconds=seconds_until_next_run(local, interval_hours, tz))
