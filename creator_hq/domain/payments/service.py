"""Payment service - booking checkout and webhook event handling"""

import logging
from typing import Any, Optional

import httpx
from sqlalchemy.orm import Session

from ...config import Settings
from ...email_service import send_payment_received_emails
from ...errors import NotFoundError, UpstreamError, ValidationError
from ...models import Booking, BookingStatus, PaymentStatus, Profile
from ..bookings.repository import BookingRepository
from ..calendar.service import CalendarService
from .repository import RevenueRepository
from .stripe_client import StripeCheckoutClient

logger = logging.getLogger(__name__)

PAYABLE_SESSION_TYPES = ("booking", "payment_link")


class PaymentService:
    def __init__(self, db: Session, settings: Settings, http_client: httpx.AsyncClient):
        self.db = db
        self.settings = settings
        self.http_client = http_client
        self.bookings = BookingRepository()
        self.revenue = RevenueRepository()
        self.stripe = StripeCheckoutClient(http_client, settings)

    async def create_booking_checkout(self, booking_id: str, creator: Profile) -> dict:
        booking = self.bookings.get_booking(self.db, booking_id, creator.id)
        if not booking:
            raise NotFoundError("Booking not found")
        if booking.payment_status == PaymentStatus.PAID.value:
            raise ValidationError("Booking is already paid")
        if booking.status == BookingStatus.CANCELLED.value:
            raise ValidationError("Booking is cancelled")
        if not booking.price or booking.price <= 0:
            raise ValidationError("Booking has no price", fields={"price": "A price is required to take payment"})

        session = await self.stripe.create_booking_session(booking)
        self.bookings.update_booking(self.db, booking, payment_id=session.get("id"))
        return {"sessionId": session.get("id"), "url": session.get("url")}

    # ------------------------------------------------------------------
    # Webhook events
    # ------------------------------------------------------------------

    async def handle_event(self, event: dict[str, Any]) -> dict:
        event_type = event.get("type")
        obj = (event.get("data") or {}).get("object") or {}
        logger.info(f"Payment webhook received id={event.get('id')} type={event_type}")

        if event_type == "checkout.session.completed":
            return await self._session_completed(obj)
        if event_type == "checkout.session.expired":
            return self._session_expired(obj)
        if event_type == "charge.refunded":
            return self._charge_refunded(obj)

        logger.info(f"Ignoring unhandled payment event type: {event_type}")
        return {"received": True, "handled": False}

    def _find_session_booking(self, session: dict[str, Any]) -> Optional[Booking]:
        metadata = session.get("metadata") or {}
        booking_id = metadata.get("bookingId")
        if booking_id:
            return self.bookings.get_booking(self.db, booking_id)
        if session.get("id"):
            return self.bookings.get_by_payment_id(self.db, session["id"])
        return None

    async def _session_completed(self, session: dict[str, Any]) -> dict:
        metadata = session.get("metadata") or {}
        session_type = metadata.get("type")
        if session_type not in PAYABLE_SESSION_TYPES:
            logger.info(f"Ignoring checkout session of type {session_type}")
            return {"received": True, "handled": False}

        booking = self._find_session_booking(session)
        amount_total = session.get("amount_total")

        if not booking:
            creator_id = metadata.get("creator_id")
            if session_type == "payment_link" and creator_id and amount_total:
                self.revenue.record(
                    self.db,
                    creator_id,
                    amount_total / 100,
                    session_type,
                    details={"session_id": session.get("id")},
                )
                return {"received": True, "handled": True}
            logger.warning(f"Checkout session {session.get('id')} references no known booking")
            return {"received": True, "handled": False}

        if booking.payment_status == PaymentStatus.PAID.value:
            logger.info(f"Booking {booking.id} already marked paid; duplicate delivery ignored")
            return {"received": True, "handled": True}

        amount = amount_total / 100 if amount_total else (booking.price or 0.0)
        self.bookings.update_booking(
            self.db,
            booking,
            payment_status=PaymentStatus.PAID.value,
            status=BookingStatus.CONFIRMED.value,
            payment_id=session.get("id") or booking.payment_id,
            payment_intent_id=session.get("payment_intent") or booking.payment_intent_id,
        )
        self.revenue.record(
            self.db,
            booking.creator_id,
            amount,
            session_type,
            details={"booking_id": booking.id, "session_id": session.get("id")},
        )
        logger.info(f"Booking {booking.id} paid and confirmed")

        creator = self.bookings.get_creator(self.db, booking.creator_id)
        await send_payment_received_emails(self.settings, booking, creator, amount)
        try:
            await CalendarService(self.db, self.settings, self.http_client).push_booking(booking)
        except UpstreamError as e:
            logger.error(f"Calendar push failed for paid booking {booking.id}: {e.message}")
        return {"received": True, "handled": True}

    def _session_expired(self, session: dict[str, Any]) -> dict:
        booking = self._find_session_booking(session)
        if not booking:
            return {"received": True, "handled": False}
        if booking.payment_status != PaymentStatus.PENDING.value:
            return {"received": True, "handled": True}

        self.bookings.update_booking(
            self.db,
            booking,
            payment_status=PaymentStatus.EXPIRED.value,
            status=BookingStatus.CANCELLED.value,
            idempotency_key=None,
        )
        logger.info(f"Checkout expired; booking {booking.id} cancelled")
        return {"received": True, "handled": True}

    def _charge_refunded(self, charge: dict[str, Any]) -> dict:
        payment_intent = charge.get("payment_intent")
        booking = self.bookings.get_by_payment_intent(self.db, payment_intent) if payment_intent else None
        if not booking:
            logger.info(f"Refund for unknown payment intent {payment_intent}")
            return {"received": True, "handled": False}

        self.bookings.update_booking(
            self.db,
            booking,
            payment_status=PaymentStatus.REFUNDED.value,
            status=BookingStatus.CANCELLED.value,
            idempotency_key=None,
        )
        logger.info(f"Booking {booking.id} refunded and cancelled")
        return {"received": True, "handled": True}
