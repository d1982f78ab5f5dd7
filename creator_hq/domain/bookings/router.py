"""Booking router - public intake, availability views and creator actions"""

import json
import logging
from datetime import date
from typing import Optional

import httpx
from fastapi import APIRouter, Depends, Header, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session, sessionmaker

from ...auth import get_current_creator
from ...config import Settings
from ...database import get_db
from ...dependencies import get_http_client, get_session_factory, get_settings
from ...errors import ValidationError
from ...models import Profile
from ...rate_limiter import create_rate_limiter
from .schemas import (
    BookingActionRequest,
    BookingCreatedResponse,
    BookingInfoResponse,
    MeetingLinkRequest,
    SlotsResponse,
)
from .service import BookingService
from .validation import validate_booking_request

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Bookings"])

# Public intake uses the configured policy (5 per 60s by default)
rate_limit_booking_intake = create_rate_limiter("bookings")
rate_limit_booking_views = create_rate_limiter("booking_views", limit=60, window_seconds=60)
rate_limit_meeting_link = create_rate_limiter("meeting_link", limit=20, window_seconds=60)


def get_booking_service(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    session_factory: sessionmaker = Depends(get_session_factory),
    http_client: httpx.AsyncClient = Depends(get_http_client),
) -> BookingService:
    """Dependency injection for BookingService"""
    return BookingService(db, settings, session_factory=session_factory, http_client=http_client)


# ============================================================================
# PUBLIC ENDPOINTS
# ============================================================================


@router.post("/bookings", status_code=201, response_model=BookingCreatedResponse)
async def create_booking(
    request: Request,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    service: BookingService = Depends(get_booking_service),
    _: None = Depends(rate_limit_booking_intake),
):
    """
    Public booking intake - Rate limited per client IP.

    Returns 201 for a new booking and 200 when an earlier submission with the
    same idempotency key is replayed. Any client-supplied status is ignored.
    """
    try:
        payload = json.loads(await request.body() or b"null")
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ValidationError("Invalid JSON body") from e

    validated = validate_booking_request(payload, default_creator_id=service.settings.default_creator_id)
    booking, replayed = service.create_public_booking(validated, idempotency_key)

    response = BookingCreatedResponse(booking_id=booking.id, replayed=replayed)
    return JSONResponse(status_code=200 if replayed else 201, content=response.model_dump())


@router.get("/creator/{creator_id}/booking-info", response_model=BookingInfoResponse)
async def get_booking_info(
    creator_id: str,
    service: BookingService = Depends(get_booking_service),
    _: None = Depends(rate_limit_booking_views),
):
    """Availability rules, blocked dates and occupied slots for a creator"""
    return await service.get_booking_info(creator_id)


@router.get("/creator/{creator_id}/slots", response_model=SlotsResponse)
async def get_bookable_slots(
    creator_id: str,
    on_date: date = Query(..., alias="date"),
    duration_minutes: int = Query(60, ge=15, le=24 * 60),
    service: BookingService = Depends(get_booking_service),
    _: None = Depends(rate_limit_booking_views),
):
    """Bookable start instants (UTC) on a date in the creator's timezone"""
    return await service.get_slots(creator_id, on_date, duration_minutes)


# ============================================================================
# CREATOR ENDPOINTS
# ============================================================================


@router.post("/bookings/confirm")
async def confirm_booking(
    data: BookingActionRequest,
    current_creator: Profile = Depends(get_current_creator),
    service: BookingService = Depends(get_booking_service),
):
    """Confirm a booking and sync it to the creator's calendar"""
    return await service.confirm_booking(data.bookingId, current_creator)


@router.post("/creator/meeting-link")
async def set_meeting_link(
    data: MeetingLinkRequest,
    current_creator: Profile = Depends(get_current_creator),
    service: BookingService = Depends(get_booking_service),
    _: None = Depends(rate_limit_meeting_link),
):
    """Attach a meeting link to a booking and email it to the client"""
    return await service.set_meeting_link(data, current_creator)
