"""Payment router - booking checkout and the payment-provider webhook"""

import json
import logging

import httpx
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from ...auth import get_current_creator
from ...config import Settings
from ...database import get_db
from ...dependencies import get_http_client, get_settings
from ...errors import ValidationError
from ...models import Profile
from ...rate_limiter import create_rate_limiter
from ...webhook_security import verify_stripe_webhook
from ..bookings.schemas import BookingActionRequest
from .service import PaymentService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Payments"])

# Signed deliveries bypass this; only unsigned calls are counted
rate_limit_webhook = create_rate_limiter("payment_webhook")


def get_payment_service(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    http_client: httpx.AsyncClient = Depends(get_http_client),
) -> PaymentService:
    """Dependency injection for PaymentService"""
    return PaymentService(db, settings, http_client)


@router.post("/bookings/payment")
async def create_booking_payment(
    data: BookingActionRequest,
    current_creator: Profile = Depends(get_current_creator),
    service: PaymentService = Depends(get_payment_service),
):
    """Create a hosted checkout session for a booking"""
    return await service.create_booking_checkout(data.bookingId, current_creator)


async def stripe_webhook(
    request: Request,
    service: PaymentService = Depends(get_payment_service),
    _: None = Depends(rate_limit_webhook),
):
    """
    Verify signature and process booking payment events.

    Headers:
      - 'Stripe-Signature': 't=<timestamp>,v1=<hex hmac_sha256(timestamp.payload)>'
    """
    settings: Settings = request.app.state.settings
    raw_body = await verify_stripe_webhook(request, settings.stripe_webhook_secret)

    try:
        event = json.loads(raw_body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.error(f"Failed to parse webhook JSON: {e}")
        raise ValidationError("Invalid JSON payload") from e

    return await service.handle_event(event)

