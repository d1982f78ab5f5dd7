"""Stripe Checkout over the REST API (form-encoded, basic auth with the secret key)"""

import logging
from typing import Any

import httpx

from ...config import Settings
from ...errors import UpstreamError
from ...models import Booking

logger = logging.getLogger(__name__)

STRIPE_API_BASE = "https://api.stripe.com/v1"


def to_minor_units(amount: float) -> int:
    return int(round(amount * 100))


class StripeCheckoutClient:
    def __init__(self, http_client: httpx.AsyncClient, settings: Settings):
        self.http = http_client
        self.settings = settings

    async def create_booking_session(self, booking: Booking) -> dict[str, Any]:
        """
        Create a hosted checkout session for a booking.

        Raises:
            UpstreamError: If Stripe is not configured or rejects the request
        """
        if not self.settings.stripe_secret_key:
            logger.error("STRIPE_SECRET_KEY not configured")
            raise UpstreamError("Payments not configured")

        frontend = self.settings.frontend_url.rstrip("/")
        form = {
            "mode": "payment",
            "customer_email": booking.client_email,
            "line_items[0][quantity]": "1",
            "line_items[0][price_data][currency]": "usd",
            "line_items[0][price_data][unit_amount]": str(to_minor_units(booking.price)),
            "line_items[0][price_data][product_data][name]": f"{booking.service_type.title()} session",
            "success_url": f"{frontend}/booking/success?session_id={{CHECKOUT_SESSION_ID}}",
            "cancel_url": f"{frontend}/booking/cancelled?booking_id={booking.id}",
            "metadata[type]": "booking",
            "metadata[bookingId]": booking.id,
            "metadata[creator_id]": booking.creator_id,
            "payment_intent_data[metadata][bookingId]": booking.id,
        }

        try:
            response = await self.http.post(
                f"{STRIPE_API_BASE}/checkout/sessions",
                data=form,
                auth=(self.settings.stripe_secret_key, ""),
                timeout=self.settings.outbound_timeout_seconds,
            )
        except httpx.HTTPError as e:
            logger.error(f"Stripe checkout request failed: {e!r}")
            raise UpstreamError("Payment provider unavailable") from e

        if response.status_code != 200:
            logger.error(f"Stripe checkout failed: {response.status_code} {response.text}")
            raise UpstreamError("Failed to create payment session")

        session = response.json()
        logger.info(f"Checkout session {session.get('id')} created for booking {booking.id}")
        return session
