"""Calendar router - Google Calendar connection endpoints"""

import logging
from typing import Optional

import httpx
from fastapi import APIRouter, Depends, Query
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from ...auth import get_current_creator
from ...config import Settings
from ...database import get_db
from ...dependencies import get_http_client, get_settings
from ...models import Profile
from .service import CalendarService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/calendar", tags=["Calendar"])


def get_calendar_service(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    http_client: httpx.AsyncClient = Depends(get_http_client),
) -> CalendarService:
    """Dependency injection for CalendarService"""
    return CalendarService(db, settings, http_client)


@router.get("/connect")
async def connect_calendar(
    current_creator: Profile = Depends(get_current_creator),
    service: CalendarService = Depends(get_calendar_service),
):
    """Start Google Calendar OAuth; returns the consent URL"""
    return {"url": service.connect_url(current_creator)}


@router.get("/callback")
async def calendar_callback(
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    service: CalendarService = Depends(get_calendar_service),
):
    """OAuth redirect target; always answers with a redirect to the dashboard"""
    redirect_url = await service.handle_callback(code, state, error)
    return RedirectResponse(url=redirect_url, status_code=302)


@router.get("/status")
async def calendar_status(
    current_creator: Profile = Depends(get_current_creator),
    service: CalendarService = Depends(get_calendar_service),
):
    return service.status(current_creator)


@router.post("/disconnect")
async def disconnect_calendar(
    current_creator: Profile = Depends(get_current_creator),
    service: CalendarService = Depends(get_calendar_service),
):
    """Disconnect Google Calendar integration"""
    await service.disconnect(current_creator)
    return {"success": True, "message": "Google Calendar disconnected"}
