"""Availability Resolver - loads the three availability views for a creator"""

import asyncio
import logging
from typing import Any, Callable, Optional

from sqlalchemy.orm import Session, sessionmaker

from ...errors import NotFoundError, UpstreamError
from ...models import Booking, CreatorAvailability, CreatorBlockedDate
from ...shared.datetimes import as_utc
from .availability import AvailabilityViews, AvailabilityWindow, BlockedRange, BookedInterval
from .repository import BookingRepository

logger = logging.getLogger(__name__)


def to_window(rule: CreatorAvailability) -> AvailabilityWindow:
    return AvailabilityWindow(rule.day_of_week, rule.start_time, rule.end_time)


def to_blocked_range(blocked: CreatorBlockedDate) -> BlockedRange:
    return BlockedRange(blocked.start_date, blocked.end_date, blocked.reason)


def to_interval(booking: Booking) -> BookedInterval:
    return BookedInterval(as_utc(booking.booking_date), booking.duration_minutes, booking.status)


def load_views(db: Session, creator_id: str, timezone: str = "UTC") -> AvailabilityViews:
    """Read the views inside the caller's session and transaction"""
    repo = BookingRepository()
    return AvailabilityViews(
        availability=[to_window(r) for r in repo.get_availability_rules(db, creator_id)],
        blocked_dates=[to_blocked_range(b) for b in repo.get_blocked_dates(db, creator_id)],
        bookings=[to_interval(b) for b in repo.get_active_bookings(db, creator_id)],
        timezone=timezone or "UTC",
    )


class AvailabilityResolver:
    """
    Fetches availability rules, blocked dates and active bookings concurrently.

    Each fetch runs in a worker thread with its own session. If any fetch
    fails or the deadline passes, the pending fetches are cancelled and the
    whole resolve fails; partial views are never returned.
    """

    def __init__(self, session_factory: sessionmaker, timeout_seconds: float = 10.0):
        self.session_factory = session_factory
        self.timeout_seconds = timeout_seconds
        self.repo = BookingRepository()

    def _fetch(self, fn: Callable[[Session], Any]) -> Any:
        db = self.session_factory()
        try:
            return fn(db)
        finally:
            db.close()

    def _creator_timezone(self, db: Session, creator_id: str) -> Optional[str]:
        creator = self.repo.get_creator(db, creator_id)
        if creator is None:
            return None
        return creator.timezone or "UTC"

    async def resolve(self, creator_id: str) -> AvailabilityViews:
        # One deadline covers the creator lookup and the three fetches
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout_seconds

        try:
            timezone = await asyncio.wait_for(
                asyncio.to_thread(self._fetch, lambda db: self._creator_timezone(db, creator_id)),
                timeout=self.timeout_seconds,
            )
        except Exception as e:
            logger.error(f"Creator lookup failed for {creator_id}: {e!r}")
            raise UpstreamError("Failed to load availability") from e
        if timezone is None:
            raise NotFoundError("Creator not found")

        tasks = [
            asyncio.create_task(
                asyncio.to_thread(
                    self._fetch,
                    lambda db: [to_window(r) for r in self.repo.get_availability_rules(db, creator_id)],
                )
            ),
            asyncio.create_task(
                asyncio.to_thread(
                    self._fetch,
                    lambda db: [to_blocked_range(b) for b in self.repo.get_blocked_dates(db, creator_id)],
                )
            ),
            asyncio.create_task(
                asyncio.to_thread(
                    self._fetch,
                    lambda db: [to_interval(b) for b in self.repo.get_active_bookings(db, creator_id)],
                )
            ),
        ]

        try:
            availability, blocked, bookings = await asyncio.wait_for(
                asyncio.gather(*tasks), timeout=max(0.0, deadline - loop.time())
            )
        except Exception as e:
            for task in tasks:
                task.cancel()
            logger.error(f"Availability fetch failed for creator {creator_id}: {e!r}")
            raise UpstreamError("Failed to load availability") from e

        return AvailabilityViews(
            availability=availability,
            blocked_dates=blocked,
            bookings=bookings,
            timezone=timezone,
        )
