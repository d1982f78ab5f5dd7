"""Booking service - Business logic for booking intake and management"""

import hashlib
import logging
from datetime import date
from typing import Optional

import httpx
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ...config import Settings
from ...email_service import send_booking_confirmed_emails, send_meeting_link_email
from ...errors import ConflictError, NotFoundError, SlotUnavailableError, UpstreamError, ValidationError
from ...models import Booking, BookingStatus, PaymentStatus, Profile
from ...shared.datetimes import to_iso_instant, to_naive_utc, utc_now
from ...shared.validators import validate_uuid
from ..calendar.service import CalendarService
from .availability import bookable_slots, check_slot
from .repository import BookingRepository
from .resolver import AvailabilityResolver, load_views
from .schemas import (
    AvailabilityRuleOut,
    BlockedDateOut,
    BookedSlotOut,
    BookingInfoResponse,
    MeetingLinkRequest,
    SlotsResponse,
    ValidatedBooking,
)

logger = logging.getLogger(__name__)

MAX_IDEMPOTENCY_KEY_LENGTH = 128

SLOT_UNAVAILABLE_MESSAGES = {
    "outside_availability": "The selected time is outside the creator's availability",
    "blocked_date": "The creator is unavailable on the selected date",
    "overlapping_booking": "This time slot is no longer available",
    "invalid_duration": "Invalid booking duration",
}


def request_fingerprint(booking: ValidatedBooking) -> str:
    """Stable digest of who is booking which slot; also the key when the client sends none"""
    material = "|".join(
        [
            booking.creator_id,
            booking.client_email.lower(),
            to_iso_instant(booking.booking_date),
            booking.service_type.value,
            str(booking.duration_minutes),
        ]
    )
    return hashlib.sha256(material.encode("utf-8")).hexdigest()


def scoped_idempotency_key(booking: ValidatedBooking, client_key: str) -> str:
    """A client-sent key only identifies a retry from the same submitter to the same creator"""
    material = "|".join([booking.creator_id, booking.client_email.lower(), client_key])
    return hashlib.sha256(material.encode("utf-8")).hexdigest()


class BookingService:
    """Service layer for booking business logic"""

    def __init__(
        self,
        db: Session,
        settings: Settings,
        session_factory: Optional[sessionmaker] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.db = db
        self.settings = settings
        self.session_factory = session_factory
        self.http_client = http_client
        self.repo = BookingRepository()

    # ------------------------------------------------------------------
    # Public intake
    # ------------------------------------------------------------------

    def create_public_booking(
        self, booking: ValidatedBooking, idempotency_key: Optional[str] = None
    ) -> tuple[Booking, bool]:
        """
        Persist a validated booking as pending.

        The creator row is locked for the transaction so the slot check and
        the insert cannot interleave with another submission for the same
        creator. Returns (booking, replayed); replayed is True when the
        idempotency key matched an earlier, still active submission of the
        same request. A cancelled match releases its key and a new booking
        is written.

        Raises:
            NotFoundError: If the creator does not exist
            SlotUnavailableError: If the slot fails the availability check
            ConflictError: If the key was already used for a different request
            UpstreamError: If the store fails
        """
        client_key = (idempotency_key or "").strip()
        if len(client_key) > MAX_IDEMPOTENCY_KEY_LENGTH:
            raise ValidationError(
                "Invalid data", fields={"idempotency_key": "Idempotency key is too long"}
            )
        fingerprint = request_fingerprint(booking)
        key = scoped_idempotency_key(booking, client_key) if client_key else fingerprint

        try:
            existing = self._replayable(key, fingerprint)
            if existing:
                logger.info(f"Replayed booking submission {existing.id}")
                return existing, True

            creator = self.repo.lock_creator(self.db, booking.creator_id)
            if not creator:
                raise NotFoundError("Creator not found")

            views = load_views(self.db, booking.creator_id, creator.timezone)
            check = check_slot(views, booking.booking_date, booking.duration_minutes)
            if not check.available:
                self.db.rollback()
                logger.info(f"Slot rejected for creator {booking.creator_id}: {check.reason}")
                raise SlotUnavailableError(SLOT_UNAVAILABLE_MESSAGES[check.reason])

            row = self.repo.add_booking(
                self.db,
                creator_id=booking.creator_id,
                client_name=booking.client_name,
                client_email=booking.client_email,
                phone=booking.phone,
                service_type=booking.service_type.value,
                booking_date=to_naive_utc(booking.booking_date),
                booking_time=booking.booking_time,
                duration_minutes=booking.duration_minutes,
                price=booking.price,
                payment_method=booking.payment_method,
                notes=booking.notes,
                agree_terms=booking.agree_terms,
                idempotency_key=key,
                request_fingerprint=fingerprint,
                # Never taken from the client
                status=BookingStatus.PENDING.value,
                payment_status=PaymentStatus.PENDING.value,
            )
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            existing = self.repo.get_by_idempotency_key(self.db, key)
            if existing and self._is_active(existing):
                if existing.request_fingerprint != fingerprint:
                    raise ConflictError("Idempotency key was already used for a different booking") from e
                logger.info(f"Concurrent duplicate submission resolved to booking {existing.id}")
                return existing, True
            logger.error(f"Error creating booking: {e!r}")
            raise UpstreamError("Failed to create booking") from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error creating booking: {e!r}")
            raise UpstreamError("Failed to create booking") from e

        logger.info(f"Booking {row.id} created for creator {row.creator_id}")
        return row, False

    @staticmethod
    def _is_active(booking: Booking) -> bool:
        return booking.status in (BookingStatus.PENDING.value, BookingStatus.CONFIRMED.value)

    def _replayable(self, key: str, fingerprint: str) -> Optional[Booking]:
        """
        The earlier booking a retry should resolve to, or None to write a new one.
        A cancelled holder of the key gives it up inside the current transaction.
        """
        existing = self.repo.get_by_idempotency_key(self.db, key)
        if not existing:
            return None
        if not self._is_active(existing):
            logger.info(f"Releasing idempotency key of {existing.status} booking {existing.id}")
            existing.idempotency_key = None
            self.db.flush()
            return None
        if existing.request_fingerprint != fingerprint:
            logger.warning(f"Idempotency key reused with a different request (booking {existing.id})")
            raise ConflictError("Idempotency key was already used for a different booking")
        return existing

    # ------------------------------------------------------------------
    # Availability views
    # ------------------------------------------------------------------

    def _resolver(self) -> AvailabilityResolver:
        return AvailabilityResolver(self.session_factory, self.settings.outbound_timeout_seconds)

    async def get_booking_info(self, creator_id: str) -> BookingInfoResponse:
        """The three availability views, uncombined. Client details are not exposed."""
        if not validate_uuid(creator_id):
            raise NotFoundError("Creator not found")

        views = await self._resolver().resolve(creator_id)
        return BookingInfoResponse(
            availability=[
                AvailabilityRuleOut(
                    day_of_week=w.day_of_week,
                    start_time=w.start_time.strftime("%H:%M"),
                    end_time=w.end_time.strftime("%H:%M"),
                )
                for w in views.availability
            ],
            blockedDates=[
                BlockedDateOut(
                    start_date=b.start_date.isoformat(),
                    end_date=b.end_date.isoformat(),
                    reason=b.reason,
                )
                for b in views.blocked_dates
            ],
            bookings=[
                BookedSlotOut(
                    booking_date=to_iso_instant(b.start),
                    duration_minutes=b.duration_minutes,
                    status=b.status,
                )
                for b in views.bookings
            ],
        )

    async def get_slots(self, creator_id: str, on_date: date, duration_minutes: int) -> SlotsResponse:
        if not validate_uuid(creator_id):
            raise NotFoundError("Creator not found")

        views = await self._resolver().resolve(creator_id)
        slots = bookable_slots(views, on_date, duration_minutes, not_before=utc_now())
        return SlotsResponse(
            date=on_date.isoformat(),
            duration_minutes=duration_minutes,
            timezone=views.timezone,
            slots=[to_iso_instant(s) for s in slots],
        )

    # ------------------------------------------------------------------
    # Creator actions
    # ------------------------------------------------------------------

    def get_booking(self, booking_id: str, creator: Profile) -> Booking:
        booking = self.repo.get_booking(self.db, booking_id, creator.id)
        if not booking:
            raise NotFoundError("Booking not found")
        return booking

    async def confirm_booking(self, booking_id: str, creator: Profile) -> dict:
        """
        Confirm a booking, notify both parties and push it to the calendar.
        Email and calendar failures are logged and never undo the confirmation.
        """
        booking = self.get_booking(booking_id, creator)
        if booking.status == BookingStatus.CANCELLED.value:
            raise ValidationError("Cancelled bookings cannot be confirmed")

        if booking.status != BookingStatus.CONFIRMED.value:
            self.repo.update_booking(self.db, booking, status=BookingStatus.CONFIRMED.value)
            logger.info(f"Booking {booking.id} confirmed by creator {creator.id}")
            await send_booking_confirmed_emails(self.settings, booking, creator)

        event_id = None
        calendar_synced = False
        try:
            event_id = await CalendarService(self.db, self.settings, self.http_client).push_booking(booking)
            calendar_synced = booking.google_event_id is not None
        except UpstreamError as e:
            logger.error(f"Calendar push failed for booking {booking.id}: {e.message}")

        return {
            "success": True,
            "booking_id": booking.id,
            "status": booking.status,
            "calendar_synced": calendar_synced,
            "calendar_event_id": event_id or booking.google_event_id,
        }

    async def set_meeting_link(self, data: MeetingLinkRequest, creator: Profile) -> dict:
        booking = self.get_booking(data.bookingId, creator)
        self.repo.update_booking(self.db, booking, meeting_link=data.meetingLink)
        email_sent = await send_meeting_link_email(self.settings, booking, data.meetingLink, note=data.note)
        logger.info(f"Meeting link set for booking {booking.id} (email sent: {email_sent})")
        return {"success": True, "booking_id": booking.id, "emailSent": email_sent}
