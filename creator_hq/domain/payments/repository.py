"""Payment repository - revenue ledger writes"""

from typing import Any, Optional

from sqlalchemy.orm import Session

from ...models import RevenueMetric
from ...shared.datetimes import to_naive_utc, utc_now


class RevenueRepository:
    @staticmethod
    def record(
        db: Session,
        creator_id: str,
        amount: float,
        source_type: str,
        details: Optional[dict[str, Any]] = None,
    ) -> RevenueMetric:
        metric = RevenueMetric(
            creator_id=creator_id,
            date=to_naive_utc(utc_now()),
            amount=amount,
            source_type=source_type,
            details=details or {},
        )
        db.add(metric)
        db.commit()
        return metric
