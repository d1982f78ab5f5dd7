"""Analytics repository - stored-procedure calls and the revenue ledger"""

from datetime import datetime
from typing import Any

from sqlalchemy import text
from sqlalchemy.orm import Session

from ...models import RevenueMetric

BOOKING_METRICS_SQL = text(
    "SELECT * FROM aggregate_booking_metrics(:p_creator_id, :p_start_date, :p_end_date)"
)
ENGAGEMENT_METRICS_SQL = text(
    "SELECT * FROM aggregate_engagement_metrics(:creator_id, :start_date, :end_date)"
)


class AnalyticsRepository:
    """The aggregate procedures live in the database; their rows pass through as-is"""

    @staticmethod
    def booking_metrics(db: Session, creator_id: str, start: datetime, end: datetime) -> list[dict[str, Any]]:
        result = db.execute(
            BOOKING_METRICS_SQL,
            {"p_creator_id": creator_id, "p_start_date": start, "p_end_date": end},
        )
        return [dict(row._mapping) for row in result]

    @staticmethod
    def engagement_metrics(db: Session, creator_id: str, start: datetime, end: datetime) -> list[dict[str, Any]]:
        result = db.execute(
            ENGAGEMENT_METRICS_SQL,
            {"creator_id": creator_id, "start_date": start, "end_date": end},
        )
        return [dict(row._mapping) for row in result]

    @staticmethod
    def revenue_metrics(db: Session, creator_id: str, start: datetime, end: datetime) -> list[RevenueMetric]:
        return (
            db.query(RevenueMetric)
            .filter(
                RevenueMetric.creator_id == creator_id,
                RevenueMetric.date >= start,
                RevenueMetric.date <= end,
            )
            .order_by(RevenueMetric.date.asc())
            .all()
        )
