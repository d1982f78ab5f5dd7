"""
Calendar Sync Bridge.

Per creator: disconnected -> pending_callback -> connected. Connecting issues
a signed state and an authorization URL; the provider callback exchanges the
code and upserts the token set. Callback failures never surface as HTTP
errors: the creator is redirected back to the UI with an error flag and the
cause is logged here.
"""

import logging
from datetime import timedelta
from typing import Optional

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...config import Settings
from ...errors import NotFoundError, UpstreamError
from ...models import Booking, CreatorCalendarToken, Profile
from ...security_utils import decrypt_token, encrypt_token, get_token_cipher
from ...shared.datetimes import as_utc, to_iso_instant, to_naive_utc, utc_now
from .google_client import GoogleCalendarClient, build_booking_event
from .oauth_state import issue_state, read_state
from .repository import CalendarTokenRepository

logger = logging.getLogger(__name__)

REFRESH_MARGIN = timedelta(minutes=5)

DISCONNECTED = "disconnected"
PENDING_CALLBACK = "pending_callback"
CONNECTED = "connected"


class CalendarService:
    def __init__(self, db: Session, settings: Settings, http_client: httpx.AsyncClient):
        self.db = db
        self.settings = settings
        self.repo = CalendarTokenRepository()
        self.google = GoogleCalendarClient(http_client, settings)
        self.cipher = get_token_cipher(settings)

    def _redirect(self, ok: bool) -> str:
        flag = "connected=true" if ok else "error=true"
        return f"{self.settings.frontend_url.rstrip('/')}/dashboard/settings/calendar?{flag}"

    def connect_url(self, creator: Profile) -> str:
        """Move the creator to pending_callback and return the provider's consent URL"""
        if not self.settings.google_configured:
            logger.error("Google Calendar OAuth credentials not configured")
            raise UpstreamError("Google Calendar not configured")

        state = issue_state(self.settings.secret_key, creator.id)
        self.repo.set_oauth_requested(self.db, creator, to_naive_utc(utc_now()))
        logger.info(f"Google Calendar OAuth initiated for creator: {creator.id}")
        return self.google.authorization_url(state)

    async def handle_callback(
        self, code: Optional[str], state: Optional[str], error: Optional[str] = None
    ) -> str:
        """Complete the OAuth round-trip; returns the UI URL to redirect to"""
        if error:
            logger.warning(f"Google Calendar consent denied or failed: {error}")
            return self._redirect(False)

        creator_id = read_state(self.settings.secret_key, state, self.settings.oauth_state_max_age_seconds)
        if not creator_id:
            logger.warning("Google Calendar callback rejected: invalid or expired state")
            return self._redirect(False)

        if not code:
            logger.warning(f"Google Calendar callback for creator {creator_id} missing authorization code")
            return self._redirect(False)

        try:
            creator = self.db.query(Profile).filter(Profile.id == creator_id).first()
            if not creator:
                logger.error(f"Google Calendar callback for unknown creator {creator_id}")
                return self._redirect(False)

            grant = await self.google.exchange_code(code)
            self.repo.upsert_token(
                self.db,
                creator_id,
                access_token=encrypt_token(self.cipher, grant.access_token),
                refresh_token=encrypt_token(self.cipher, grant.refresh_token),
                expiry_date=to_naive_utc(grant.expires_at),
            )
            self.repo.set_oauth_requested(self.db, creator, None)
        except (UpstreamError, SQLAlchemyError) as e:
            self.db.rollback()
            logger.error(f"Google Calendar callback error for creator {creator_id}: {e!r}")
            return self._redirect(False)

        logger.info(f"Google Calendar connected for creator: {creator_id}")
        return self._redirect(True)

    def status(self, creator: Profile) -> dict:
        token = self.repo.get_token(self.db, creator.id)
        if token:
            return {
                "status": CONNECTED,
                "connected": True,
                "calendar_id": token.calendar_id,
                "expires_at": to_iso_instant(token.expiry_date),
            }

        requested_at = as_utc(creator.calendar_oauth_requested_at)
        pending = requested_at is not None and utc_now() - requested_at < timedelta(
            seconds=self.settings.oauth_state_max_age_seconds
        )
        return {
            "status": PENDING_CALLBACK if pending else DISCONNECTED,
            "connected": False,
            "calendar_id": None,
            "expires_at": None,
        }

    async def disconnect(self, creator: Profile) -> None:
        token = self.repo.get_token(self.db, creator.id)
        if not token:
            raise NotFoundError("Google Calendar not connected")

        # Revocation is best effort; the local token set is removed regardless
        try:
            revoke_with = decrypt_token(self.cipher, token.refresh_token or token.access_token)
            if not await self.google.revoke(revoke_with):
                logger.warning(f"Google rejected token revocation for creator {creator.id}")
        except ValueError as e:
            logger.warning(f"Failed to revoke Google tokens: {e}")

        self.repo.delete_token(self.db, token)
        self.repo.set_oauth_requested(self.db, creator, None)
        logger.info(f"Google Calendar disconnected for creator: {creator.id}")

    async def refresh_if_expiring(self, token: CreatorCalendarToken) -> CreatorCalendarToken:
        """
        Refresh the access token when it expires within five minutes.

        Raises:
            UpstreamError: If no refresh token is stored or the refresh fails
        """
        if as_utc(token.expiry_date) > utc_now() + REFRESH_MARGIN:
            return token

        logger.info(f"Google Calendar token for creator {token.creator_id} expiring, refreshing...")
        try:
            refresh_token = decrypt_token(self.cipher, token.refresh_token)
        except ValueError as e:
            raise UpstreamError("Calendar credentials unreadable") from e
        if not refresh_token:
            logger.error(f"No refresh token stored for creator {token.creator_id}")
            raise UpstreamError("Calendar connection expired")

        grant = await self.google.refresh(refresh_token)
        token.access_token = encrypt_token(self.cipher, grant.access_token)
        if grant.refresh_token and grant.refresh_token != refresh_token:
            token.refresh_token = encrypt_token(self.cipher, grant.refresh_token)
        token.expiry_date = to_naive_utc(grant.expires_at)
        self.db.commit()
        logger.info(f"Google Calendar token refreshed for creator {token.creator_id}")
        return token

    async def push_booking(self, booking: Booking) -> Optional[str]:
        """
        Create the calendar event for a confirmed booking.

        Returns the provider event id, or None when the creator has no
        calendar connected or the event already exists.

        Raises:
            UpstreamError: If the refresh or the event insert fails
        """
        if booking.google_event_id:
            return None

        token = self.repo.get_token(self.db, booking.creator_id)
        if not token:
            logger.info(f"Creator {booking.creator_id} has no calendar connected; skipping event push")
            return None

        token = await self.refresh_if_expiring(token)
        try:
            access_token = decrypt_token(self.cipher, token.access_token)
        except ValueError as e:
            raise UpstreamError("Calendar credentials unreadable") from e

        event = await self.google.insert_event(access_token, token.calendar_id, build_booking_event(booking))
        booking.google_event_id = event.get("id")
        self.db.commit()
        logger.info(f"Calendar event {booking.google_event_id} created for booking {booking.id}")
        return booking.google_event_id
