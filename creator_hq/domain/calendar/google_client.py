"""
Google OAuth and Calendar REST client.
Raw httpx calls over the injected AsyncClient; no Google SDK.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional
from urllib.parse import quote, urlencode

import httpx

from ...config import Settings
from ...errors import UpstreamError
from ...models import Booking
from ...shared.datetimes import as_utc, to_iso_instant, utc_now

logger = logging.getLogger(__name__)

# Google OAuth URLs
GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"  # noqa: S105 - OAuth endpoint URL
GOOGLE_REVOKE_URL = "https://oauth2.googleapis.com/revoke"
GOOGLE_CALENDAR_API = "https://www.googleapis.com/calendar/v3"
GOOGLE_CALENDAR_SCOPES = [
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/calendar.events",
]


@dataclass
class TokenGrant:
    access_token: str
    refresh_token: Optional[str]
    expires_at: datetime  # aware UTC


def build_booking_event(booking: Booking) -> dict[str, Any]:
    """Calendar event body for a booking: one attendee, email and popup reminders"""
    start = as_utc(booking.booking_date)
    end = start + timedelta(minutes=booking.duration_minutes)
    return {
        "summary": f"{booking.service_type.title()} with {booking.client_name}",
        "description": booking.notes or "",
        "start": {"dateTime": to_iso_instant(start), "timeZone": "UTC"},
        "end": {"dateTime": to_iso_instant(end), "timeZone": "UTC"},
        "attendees": [{"email": booking.client_email}],
        "reminders": {
            "useDefault": False,
            "overrides": [
                {"method": "email", "minutes": 24 * 60},
                {"method": "popup", "minutes": 30},
            ],
        },
    }


class GoogleCalendarClient:
    def __init__(self, http_client: httpx.AsyncClient, settings: Settings):
        self.http = http_client
        self.settings = settings
        self.timeout = settings.outbound_timeout_seconds

    def authorization_url(self, state: str) -> str:
        params = {
            "client_id": self.settings.google_client_id,
            "redirect_uri": self.settings.google_redirect_uri,
            "response_type": "code",
            "scope": " ".join(GOOGLE_CALENDAR_SCOPES),
            "access_type": "offline",
            "prompt": "consent",
            "state": state,
        }
        return f"{GOOGLE_AUTH_URL}?{urlencode(params, quote_via=quote)}"

    async def _token_request(self, data: dict[str, str], action: str) -> dict[str, Any]:
        try:
            response = await self.http.post(GOOGLE_TOKEN_URL, data=data, timeout=self.timeout)
        except httpx.HTTPError as e:
            logger.error(f"Google {action} request failed: {e!r}")
            raise UpstreamError("Calendar provider unavailable") from e

        if response.status_code != 200:
            logger.error(f"Google {action} failed: {response.status_code} {response.text}")
            raise UpstreamError("Calendar provider rejected the request")
        return self._json(response, action)

    @staticmethod
    def _json(response: httpx.Response, action: str) -> dict[str, Any]:
        try:
            body = response.json()
        except ValueError as e:
            logger.error(f"Google {action} returned a non-JSON body: {response.text[:200]!r}")
            raise UpstreamError("Invalid response from calendar provider") from e
        if not isinstance(body, dict):
            logger.error(f"Google {action} returned an unexpected body: {body!r}")
            raise UpstreamError("Invalid response from calendar provider")
        return body

    @staticmethod
    def _grant_from(tokens: dict[str, Any], fallback_refresh: Optional[str] = None) -> TokenGrant:
        access_token = tokens.get("access_token")
        if not access_token:
            logger.error("No access token in Google token response")
            raise UpstreamError("Invalid token response")
        try:
            expires_in = int(tokens.get("expires_in", 3600))
        except (TypeError, ValueError) as e:
            logger.error(f"Invalid expires_in in Google token response: {tokens.get('expires_in')!r}")
            raise UpstreamError("Invalid token response") from e
        return TokenGrant(
            access_token=access_token,
            refresh_token=tokens.get("refresh_token") or fallback_refresh,
            expires_at=utc_now() + timedelta(seconds=expires_in),
        )

    async def exchange_code(self, code: str) -> TokenGrant:
        tokens = await self._token_request(
            {
                "code": code,
                "client_id": self.settings.google_client_id,
                "client_secret": self.settings.google_client_secret,
                "redirect_uri": self.settings.google_redirect_uri,
                "grant_type": "authorization_code",
            },
            "token exchange",
        )
        return self._grant_from(tokens)

    async def refresh(self, refresh_token: str) -> TokenGrant:
        # Google only returns a new refresh token on rotation; keep the old one otherwise
        tokens = await self._token_request(
            {
                "client_id": self.settings.google_client_id,
                "client_secret": self.settings.google_client_secret,
                "refresh_token": refresh_token,
                "grant_type": "refresh_token",
            },
            "token refresh",
        )
        return self._grant_from(tokens, fallback_refresh=refresh_token)

    async def insert_event(self, access_token: str, calendar_id: str, event: dict[str, Any]) -> dict[str, Any]:
        url = f"{GOOGLE_CALENDAR_API}/calendars/{quote(calendar_id, safe='')}/events"
        try:
            response = await self.http.post(
                url,
                json=event,
                params={"sendUpdates": "all"},
                headers={"Authorization": f"Bearer {access_token}"},
                timeout=self.timeout,
            )
        except httpx.HTTPError as e:
            logger.error(f"Google Calendar event request failed: {e!r}")
            raise UpstreamError("Calendar provider unavailable") from e

        if response.status_code not in (200, 201):
            logger.error(f"Failed to create calendar event: {response.status_code} {response.text}")
            raise UpstreamError("Failed to create calendar event")
        return self._json(response, "event insert")

    async def revoke(self, token: str) -> bool:
        try:
            response = await self.http.post(
                GOOGLE_REVOKE_URL,
                params={"token": token},
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=self.timeout,
            )
        except httpx.HTTPError as e:
            logger.warning(f"Failed to revoke Google tokens: {e!r}")
            return False
        return response.status_code == 200
