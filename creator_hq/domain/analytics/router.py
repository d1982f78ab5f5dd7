"""Analytics router"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_creator
from ...database import get_db
from ...models import Profile
from .service import AnalyticsService

router = APIRouter(prefix="/bookings", tags=["Analytics"])


def get_analytics_service(db: Session = Depends(get_db)) -> AnalyticsService:
    """Dependency injection for AnalyticsService"""
    return AnalyticsService(db)


@router.get("/analytics")
async def get_booking_analytics(
    creator_id: Optional[str] = Query(None),
    start_date: Optional[str] = Query(None),
    end_date: Optional[str] = Query(None),
    current_creator: Profile = Depends(get_current_creator),
    service: AnalyticsService = Depends(get_analytics_service),
):
    """Booking stats, revenue and engagement; defaults to the trailing 30 days"""
    return service.get_booking_analytics(current_creator, creator_id, start_date, end_date)
