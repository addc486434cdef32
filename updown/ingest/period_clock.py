"""Period boundary arithmetic in a configured wall-clock zone.

Boundaries are multiples of the period length since local midnight, so a
15-minute period always starts at :00/:15/:30/:45 local time, including on
daylight-saving transition days. Returned instants are UTC so that
subtraction and comparison never depend on the zone's fold handling.
"""

from datetime import UTC, datetime, timedelta
from zoneinfo import ZoneInfo

from updown.models.market import Period


def period_start(now: datetime, period_minutes: int, zone: ZoneInfo) -> datetime:
    """Start of the period containing `now`, as a UTC instant."""
    if now.tzinfo is None:
        raise ValueError("now must be timezone-aware")
    local = now.astimezone(zone)
    minute_of_day = local.hour * 60 + local.minute
    floored = minute_of_day - minute_of_day % period_minutes
    # replace() keeps local.fold, so the repeated hour at fall-back resolves
    # to the same offset as `now`
    start_local = local.replace(
        hour=floored // 60, minute=floored % 60, second=0, microsecond=0
    )
    start = start_local.astimezone(UTC)
    length = timedelta(minutes=period_minutes)
    # a floor that lands before a repeated hour can end before `now`
    while start + length <= now:
        start += length
    return start


def current_and_next(
    now: datetime, period_minutes: int, zone: ZoneInfo, asset: str = ""
) -> tuple[Period, Period]:
    length = timedelta(minutes=period_minutes)
    start = period_start(now, period_minutes, zone)
    current = Period(asset=asset, start=start, end=start + length)
    nxt = Period(asset=asset, start=current.end, end=current.end + length)
    return current, nxt


def minutes_until(instant: datetime, now: datetime) -> float:
    return (instant - now).total_seconds() / 60.0


def minutes_remaining(period: Period, now: datetime) -> float:
    return max(0.0, minutes_until(period.end, now))


def minutes_elapsed(period: Period, now: datetime) -> float:
    return max(0.0, -minutes_until(period.start, now))
