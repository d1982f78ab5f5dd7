"""Input validation for public booking intake"""

from datetime import datetime
from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError

from ...errors import ValidationError
from ...shared.datetimes import utc_now
from ...shared.validators import normalize_booking_instant
from .schemas import PublicBookingRequest, ValidatedBooking


def _field_errors(exc: PydanticValidationError) -> dict[str, str]:
    fields: dict[str, str] = {}
    for error in exc.errors():
        loc = error.get("loc") or ("body",)
        name = str(loc[0])
        message = error.get("msg", "Invalid value")
        # Strip pydantic's prefix from custom validator messages
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        fields.setdefault(name, message)
    return fields


def validate_booking_request(
    payload: Any,
    default_creator_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> ValidatedBooking:
    """
    Validate and normalize a raw intake payload.

    Every violated field is reported together; nothing is partially accepted.
    On success booking_date is replaced by the date at booking_time, UTC.

    Raises:
        ValidationError: With `fields` naming each violated field
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid data", fields={"body": "Expected a JSON object"})

    fields: dict[str, str] = {}
    request: Optional[PublicBookingRequest] = None
    try:
        request = PublicBookingRequest.model_validate(payload)
    except PydanticValidationError as e:
        fields.update(_field_errors(e))

    instant = None
    if "booking_date" not in fields and "booking_time" not in fields:
        try:
            instant = normalize_booking_instant(payload.get("booking_date"), payload.get("booking_time"))
        except (ValueError, TypeError) as e:
            fields["booking_date"] = str(e)

    if instant is not None and instant <= (now or utc_now()):
        fields["booking_date"] = "Booking date must be in the future"

    creator_id = (request.creator_id if request else payload.get("creator_id")) or default_creator_id
    if not creator_id and "creator_id" not in fields:
        fields["creator_id"] = "Creator is required"

    if fields or request is None:
        raise ValidationError("Invalid data", fields=fields)

    return ValidatedBooking(
        creator_id=creator_id,
        client_name=request.client_name,
        client_email=request.client_email.lower(),
        phone=request.phone,
        service_type=request.service_type,
        booking_date=instant,
        booking_time=request.booking_time,
        duration_minutes=request.duration_minutes,
        price=request.price,
        payment_method=request.payment_method,
        notes=request.notes,
        agree_terms=request.agree_terms,
    )
