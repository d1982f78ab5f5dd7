"""Shared validation utilities"""

import re
import uuid
from datetime import date, datetime, time, timezone
from typing import Optional

import phonenumbers
from phonenumbers import NumberParseException

from .datetimes import as_utc

TIME_OF_DAY_PATTERN = re.compile(r"^(\d{1,2}):(\d{2})$")


def validate_uuid(value: str) -> bool:
    """Validate UUID format"""
    try:
        uuid.UUID(value)
        return True
    except (ValueError, AttributeError, TypeError):
        return False


def validate_phone(phone: Optional[str]) -> str:
    """
    Validate a phone number against the international numbering plan.

    The number must carry its country calling code (e.g. +44 20 7946 0958).

    Returns:
        Normalized phone number in E.164 format

    Raises:
        ValueError: If phone number is invalid
    """
    if not phone or not isinstance(phone, str):
        raise ValueError("Please enter a valid phone number")

    try:
        parsed = phonenumbers.parse(phone.strip(), None)
    except NumberParseException as e:
        raise ValueError("Please enter a valid phone number") from e

    if not phonenumbers.is_valid_number(parsed):
        raise ValueError("Please enter a valid phone number")

    return phonenumbers.format_number(parsed, phonenumbers.PhoneNumberFormat.E164)


def parse_time_of_day(value: str) -> time:
    """
    Parse "HH:MM" into a time of day.

    Raises:
        ValueError: If the value is empty or not a valid 24h time
    """
    if not value or not value.strip():
        raise ValueError("Please select a time")

    match = TIME_OF_DAY_PATTERN.match(value.strip())
    if not match:
        raise ValueError("Time must be in HH:MM format")

    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise ValueError("Time must be in HH:MM format")
    return time(hour, minute)


def parse_booking_date(value: str) -> datetime:
    """
    Parse a booking date into an aware UTC datetime.

    Accepts a bare date (taken as UTC midnight) or an ISO-8601 datetime. A
    datetime without an offset is read as UTC so the result never depends on
    the server's local timezone.
    """
    if not value or not isinstance(value, str):
        raise ValueError("Booking date is required")

    raw = value.strip()
    try:
        if len(raw) == 10:
            parsed_date = date.fromisoformat(raw)
            return datetime.combine(parsed_date, time(0, 0), tzinfo=timezone.utc)
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        return as_utc(datetime.fromisoformat(raw))
    except ValueError as e:
        raise ValueError("Booking date is not a valid date") from e


def normalize_booking_instant(booking_date: str, booking_time: str) -> datetime:
    """
    Combine the UTC calendar date of booking_date with booking_time.

    Any time component already present in booking_date is discarded; the
    result is that date at HH:MM:00.000 UTC.
    """
    day = parse_booking_date(booking_date)
    time_of_day = parse_time_of_day(booking_time)
    return day.replace(hour=time_of_day.hour, minute=time_of_day.minute, second=0, microsecond=0)
