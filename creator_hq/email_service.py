"""
Transactional email via Resend.
Every send is bounded by the outbound timeout; callers decide whether a
failed send matters.
"""

import asyncio
import logging
from typing import Optional, Union

import resend

from .config import Settings
from .email_templates import (
    booking_confirmed_client_template,
    booking_confirmed_creator_template,
    meeting_link_template,
    payment_received_client_template,
    payment_received_creator_template,
)
from .errors import UpstreamError
from .models import Booking, Profile
from .shared.datetimes import as_utc

logger = logging.getLogger(__name__)


def format_booking_when(booking: Booking) -> str:
    return as_utc(booking.booking_date).strftime("%A, %B %d, %Y at %H:%M UTC")


async def send_email(
    settings: Settings,
    to: Union[str, list[str]],
    subject: str,
    html_content: str,
    from_address: Optional[str] = None,
) -> dict:
    """
    Send an email through Resend.

    Raises:
        UpstreamError: If email is not configured or the send fails
    """
    if not settings.resend_api_key:
        logger.error("No email service configured - RESEND_API_KEY missing")
        raise UpstreamError("Email service not configured")

    recipients = [to] if isinstance(to, str) else to
    email_data = {
        "from": from_address or settings.email_from_address,
        "to": recipients,
        "subject": subject,
        "html": html_content,
    }

    resend.api_key = settings.resend_api_key
    try:
        logger.info(f"Sending email via Resend: {subject}")
        response = await asyncio.wait_for(
            asyncio.to_thread(resend.Emails.send, email_data),
            timeout=settings.outbound_timeout_seconds,
        )
    except Exception as e:
        logger.error(f"Email send error for '{subject}': {e!r}")
        raise UpstreamError("Failed to send email") from e

    logger.info(f"Email sent successfully via Resend: {response.get('id') if isinstance(response, dict) else response}")
    return response


async def send_quietly(settings: Settings, to: Optional[str], subject: str, html_content: str) -> bool:
    """Send and swallow failures; for notifications that must never fail the caller"""
    if not to:
        return False
    if not settings.resend_api_key:
        logger.info(f"Email skipped (not configured): {subject}")
        return False
    try:
        await send_email(settings, to, subject, html_content)
        return True
    except UpstreamError:
        return False


async def send_booking_confirmed_emails(settings: Settings, booking: Booking, creator: Profile) -> None:
    when = format_booking_when(booking)
    await send_quietly(
        settings,
        booking.client_email,
        f"Your {booking.service_type} is confirmed",
        booking_confirmed_client_template(
            booking.client_name,
            booking.service_type,
            when,
            booking.duration_minutes,
            meeting_link=booking.meeting_link,
        ),
    )
    await send_quietly(
        settings,
        creator.contact_email,
        f"Booking confirmed: {booking.client_name}",
        booking_confirmed_creator_template(
            booking.client_name,
            booking.client_email,
            booking.service_type,
            when,
            booking.duration_minutes,
            notes=booking.notes,
        ),
    )


async def send_payment_received_emails(
    settings: Settings, booking: Booking, creator: Optional[Profile], amount: float
) -> None:
    when = format_booking_when(booking)
    await send_quietly(
        settings,
        booking.client_email,
        "Payment received",
        payment_received_client_template(booking.client_name, booking.service_type, when, amount),
    )
    if creator:
        await send_quietly(
            settings,
            creator.contact_email,
            f"Payment received from {booking.client_name}",
            payment_received_creator_template(booking.client_name, booking.service_type, when, amount),
        )


async def send_meeting_link_email(
    settings: Settings, booking: Booking, meeting_link: str, note: Optional[str] = None
) -> bool:
    return await send_quietly(
        settings,
        booking.client_email,
        f"Meeting link for your {booking.service_type}",
        meeting_link_template(
            booking.client_name,
            booking.service_type,
            format_booking_when(booking),
            meeting_link,
            note=note,
        ),
    )
