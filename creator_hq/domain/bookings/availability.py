"""
Bookable-slot derivation.

Pure functions over the three availability views; nothing here touches the
store, so the rules can be tested in isolation. A candidate slot is
available iff

1. it fits inside an available weekly window on its weekday,
2. none of its local dates is covered by a blocked range, and
3. its [start, start + duration) interval overlaps no pending or confirmed
   booking's interval.

Weekly windows and blocked dates are in the creator's timezone; booking
instants are UTC.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from ...models import ACTIVE_BOOKING_STATUSES

MINUTES_PER_DAY = 24 * 60


@dataclass(frozen=True)
class AvailabilityWindow:
    day_of_week: int  # 0=Sunday ... 6=Saturday
    start_time: time
    end_time: time


@dataclass(frozen=True)
class BlockedRange:
    start_date: date
    end_date: date  # inclusive
    reason: Optional[str] = None

    def covers(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date


@dataclass(frozen=True)
class BookedInterval:
    start: datetime  # aware UTC
    duration_minutes: int
    status: str = "pending"

    @property
    def end(self) -> datetime:
        return self.start + timedelta(minutes=self.duration_minutes)


@dataclass
class AvailabilityViews:
    availability: list[AvailabilityWindow] = field(default_factory=list)
    blocked_dates: list[BlockedRange] = field(default_factory=list)
    bookings: list[BookedInterval] = field(default_factory=list)
    timezone: str = "UTC"


@dataclass(frozen=True)
class SlotCheck:
    available: bool
    reason: Optional[str] = None


def day_of_week(day: date) -> int:
    """Sunday-based weekday index (Sunday=0 ... Saturday=6)"""
    return (day.weekday() + 1) % 7


def intervals_overlap(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> bool:
    """Half-open intervals [start, end) overlap iff each starts before the other ends"""
    return start_a < end_b and start_b < end_a


def _minutes(value: time) -> int:
    return value.hour * 60 + value.minute


def _within_weekly_window(views: AvailabilityViews, local_start: datetime, duration_minutes: int) -> bool:
    start_min = _minutes(local_start.time())
    end_min = start_min + duration_minutes
    weekday = day_of_week(local_start.date())
    return any(
        window.day_of_week == weekday
        and _minutes(window.start_time) <= start_min
        and end_min <= _minutes(window.end_time)
        for window in views.availability
    )


def _local_dates(local_start: datetime, duration_minutes: int) -> list[date]:
    last_moment = local_start + timedelta(minutes=duration_minutes) - timedelta(microseconds=1)
    days = []
    day = local_start.date()
    while day <= last_moment.date():
        days.append(day)
        day += timedelta(days=1)
    return days


def check_slot(views: AvailabilityViews, start: datetime, duration_minutes: int) -> SlotCheck:
    """Evaluate one candidate slot; `start` must be timezone-aware"""
    if start.tzinfo is None:
        raise ValueError("Slot start must be timezone-aware")
    if duration_minutes <= 0:
        return SlotCheck(False, "invalid_duration")

    local_start = start.astimezone(ZoneInfo(views.timezone))

    if not _within_weekly_window(views, local_start, duration_minutes):
        return SlotCheck(False, "outside_availability")

    for day in _local_dates(local_start, duration_minutes):
        if any(blocked.covers(day) for blocked in views.blocked_dates):
            return SlotCheck(False, "blocked_date")

    start_utc = start.astimezone(timezone.utc)
    end_utc = start_utc + timedelta(minutes=duration_minutes)
    for booking in views.bookings:
        if booking.status not in ACTIVE_BOOKING_STATUSES:
            continue
        if intervals_overlap(start_utc, end_utc, booking.start, booking.end):
            return SlotCheck(False, "overlapping_booking")

    return SlotCheck(True)


def is_slot_available(views: AvailabilityViews, start: datetime, duration_minutes: int) -> bool:
    return check_slot(views, start, duration_minutes).available


def bookable_slots(
    views: AvailabilityViews,
    on_date: date,
    duration_minutes: int,
    step_minutes: Optional[int] = None,
    not_before: Optional[datetime] = None,
) -> list[datetime]:
    """
    List available slot starts (aware UTC) on a local calendar date.

    Candidates start at each window's opening time and advance by
    `step_minutes` (default: the duration).
    """
    step = step_minutes or duration_minutes
    if step <= 0 or duration_minutes <= 0:
        return []

    tz = ZoneInfo(views.timezone)
    weekday = day_of_week(on_date)
    starts: set[datetime] = set()

    for window in views.availability:
        if window.day_of_week != weekday:
            continue
        cursor = _minutes(window.start_time)
        window_end = _minutes(window.end_time)
        while cursor + duration_minutes <= window_end:
            local_start = datetime.combine(on_date, time(cursor // 60, cursor % 60), tzinfo=tz)
            candidate = local_start.astimezone(timezone.utc)
            if (not_before is None or candidate > not_before) and is_slot_available(
                views, candidate, duration_minutes
            ):
                starts.add(candidate)
            cursor += step

    return sorted(starts)
