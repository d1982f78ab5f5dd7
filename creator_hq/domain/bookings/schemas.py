"""Booking domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, StrictBool, field_validator

from ...models import ServiceType
from ...shared.validators import parse_time_of_day, validate_phone


class PublicBookingRequest(BaseModel):
    """
    Public booking intake payload.

    Unknown keys (including any client-supplied `status`) are dropped.
    """

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    creator_id: Optional[str] = None
    client_name: str = Field(min_length=2, max_length=255)
    client_email: EmailStr
    phone: str
    service_type: ServiceType
    booking_date: str
    booking_time: str
    duration_minutes: int = Field(ge=15, le=24 * 60)
    price: Optional[float] = Field(default=None, ge=0)
    payment_method: Optional[str] = Field(default=None, max_length=50)
    notes: Optional[str] = Field(default=None, max_length=5000)
    agree_terms: StrictBool

    @field_validator("phone")
    @classmethod
    def check_phone(cls, v):
        return validate_phone(v)

    @field_validator("booking_time")
    @classmethod
    def check_booking_time(cls, v):
        parse_time_of_day(v)
        return v

    @field_validator("agree_terms")
    @classmethod
    def check_agree_terms(cls, v):
        if v is not True:
            raise ValueError("You must agree to the terms and conditions")
        return v


class ValidatedBooking(BaseModel):
    """Intake payload after normalization; booking_date is the combined UTC instant"""

    creator_id: str
    client_name: str
    client_email: str
    phone: str
    service_type: ServiceType
    booking_date: datetime
    booking_time: str
    duration_minutes: int
    price: Optional[float] = None
    payment_method: Optional[str] = None
    notes: Optional[str] = None
    agree_terms: bool


class BookingCreatedResponse(BaseModel):
    success: bool = True
    booking_id: str
    replayed: bool = False


class AvailabilityRuleOut(BaseModel):
    day_of_week: int
    start_time: str
    end_time: str


class BlockedDateOut(BaseModel):
    start_date: str
    end_date: str
    reason: Optional[str] = None


class BookedSlotOut(BaseModel):
    booking_date: str
    duration_minutes: int
    status: str


class BookingInfoResponse(BaseModel):
    availability: list[AvailabilityRuleOut]
    blockedDates: list[BlockedDateOut]
    bookings: list[BookedSlotOut]


class SlotsResponse(BaseModel):
    date: str
    duration_minutes: int
    timezone: str
    slots: list[str]


class BookingActionRequest(BaseModel):
    bookingId: str


class MeetingLinkRequest(BaseModel):
    bookingId: str
    meetingLink: str = Field(min_length=1, max_length=500, pattern=r"^https?://")
    note: Optional[str] = Field(default=None, max_length=2000)
