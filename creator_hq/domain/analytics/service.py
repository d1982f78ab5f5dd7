"""Analytics service - booking, revenue and engagement metrics for a date window"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...errors import ForbiddenError, UpstreamError, ValidationError
from ...models import Profile
from ...shared.datetimes import to_iso_instant, to_naive_utc, utc_now
from ...shared.validators import parse_booking_date
from .repository import AnalyticsRepository

logger = logging.getLogger(__name__)

DEFAULT_WINDOW = timedelta(days=30)


def resolve_window(
    start_date: Optional[str], end_date: Optional[str], now: Optional[datetime] = None
) -> tuple[datetime, datetime]:
    """
    Aware UTC (start, end); omitted bounds default to the trailing 30 days.

    Raises:
        ValidationError: If a bound is unparseable or the window is inverted
    """
    fields = {}
    end = now or utc_now()
    start = None
    if end_date:
        try:
            end = parse_booking_date(end_date)
        except ValueError:
            fields["end_date"] = "Invalid date"
    if start_date:
        try:
            start = parse_booking_date(start_date)
        except ValueError:
            fields["start_date"] = "Invalid date"
    if fields:
        raise ValidationError("Invalid data", fields=fields)

    start = start or end - DEFAULT_WINDOW
    if start > end:
        raise ValidationError("Invalid data", fields={"start_date": "Start date must be before end date"})
    return start, end


class AnalyticsService:
    def __init__(self, db: Session):
        self.db = db
        self.repo = AnalyticsRepository()

    def get_booking_analytics(
        self,
        creator: Profile,
        creator_id: Optional[str],
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> dict:
        if not creator_id:
            raise ValidationError("Creator ID required", fields={"creator_id": "Creator ID required"})
        if creator_id != creator.id:
            logger.warning(f"Creator {creator.id} requested analytics for {creator_id}")
            raise ForbiddenError("Not allowed to view these analytics")

        start, end = resolve_window(start_date, end_date)
        naive_start, naive_end = to_naive_utc(start), to_naive_utc(end)

        try:
            booking_stats = self.repo.booking_metrics(self.db, creator_id, start, end)
            revenue = self.repo.revenue_metrics(self.db, creator_id, naive_start, naive_end)
            engagement = self.repo.engagement_metrics(self.db, creator_id, start, end)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Analytics error for creator {creator_id}: {e!r}")
            raise UpstreamError("Failed to fetch analytics") from e

        return {
            "bookingStats": booking_stats,
            "revenueMetrics": [
                {
                    "id": m.id,
                    "date": to_iso_instant(m.date),
                    "amount": m.amount,
                    "source_type": m.source_type,
                    "details": m.details or {},
                }
                for m in revenue
            ],
            "engagementMetrics": engagement,
            "window": {"start_date": to_iso_instant(start), "end_date": to_iso_instant(end)},
        }
