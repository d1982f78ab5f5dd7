import enum
import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    Time,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


def generate_uuid():
    return str(uuid.uuid4())


class ServiceType(str, enum.Enum):
    CONSULTATION = "consultation"
    WORKSHOP = "workshop"
    MENTORING = "mentoring"
    CUSTOM = "custom"


class BookingStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    REFUNDED = "refunded"
    # Set by the payment webhook when a checkout session lapses
    EXPIRED = "expired"


# Bookings in these states occupy their slot
ACTIVE_BOOKING_STATUSES = (BookingStatus.PENDING.value, BookingStatus.CONFIRMED.value)


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    full_name = Column(String(255), nullable=True)
    contact_email = Column(String(255), nullable=True)
    timezone = Column(String(64), default="UTC", nullable=False)
    role = Column(String(20), default="creator", nullable=False)  # creator, user
    calendar_oauth_requested_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, server_default=func.now())

    bookings = relationship("Booking", back_populates="creator")
    calendar_token = relationship("CreatorCalendarToken", back_populates="creator", uselist=False)


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    creator_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)

    client_name = Column(String(255), nullable=False)
    client_email = Column(String(255), nullable=False, index=True)
    phone = Column(String(32), nullable=False)  # E.164

    service_type = Column(String(20), nullable=False)
    # Stored as a naive UTC instant
    booking_date = Column(DateTime, nullable=False, index=True)
    booking_time = Column(String(5), nullable=False)  # HH:MM as submitted
    duration_minutes = Column(Integer, nullable=False)
    price = Column(Float, nullable=True)

    payment_status = Column(String(20), default=PaymentStatus.PENDING.value, nullable=False)
    payment_method = Column(String(50), nullable=True)
    payment_id = Column(String(255), nullable=True, index=True)  # checkout session id
    payment_intent_id = Column(String(255), nullable=True, index=True)

    status = Column(String(20), default=BookingStatus.PENDING.value, nullable=False, index=True)
    notes = Column(Text, nullable=True)
    agree_terms = Column(Boolean, default=False, nullable=False)

    # Released (set to NULL) once the booking is cancelled so the slot can be requested again
    idempotency_key = Column(String(128), unique=True, nullable=True)
    request_fingerprint = Column(String(64), nullable=True)  # sha256 of the submitted slot and client
    meeting_link = Column(String(500), nullable=True)
    google_event_id = Column(String(255), nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    creator = relationship("Profile", back_populates="bookings")


class CreatorAvailability(Base):
    """Recurring weekly availability template"""

    __tablename__ = "creator_availability"

    id = Column(Integer, primary_key=True, index=True)
    creator_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    # 0=Sunday ... 6=Saturday
    day_of_week = Column(Integer, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    is_available = Column(Boolean, default=True, nullable=False)


class CreatorBlockedDate(Base):
    """Inclusive date range that overrides the weekly template"""

    __tablename__ = "creator_blocked_dates"

    id = Column(Integer, primary_key=True, index=True)
    creator_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    reason = Column(String(255), nullable=True)


class CreatorCalendarToken(Base):
    __tablename__ = "creator_calendar_tokens"

    id = Column(Integer, primary_key=True, index=True)
    creator_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, unique=True)

    # OAuth tokens (encrypted)
    access_token = Column(Text, nullable=False)
    refresh_token = Column(Text, nullable=True)
    expiry_date = Column(DateTime, nullable=False)

    calendar_id = Column(String(500), default="primary", nullable=False)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    creator = relationship("Profile", back_populates="calendar_token")


class RevenueMetric(Base):
    __tablename__ = "revenue_metrics"

    id = Column(Integer, primary_key=True, index=True)
    creator_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    date = Column(DateTime, nullable=False, index=True)
    amount = Column(Float, nullable=False)
    source_type = Column(String(50), nullable=False)  # booking, payment_link
    details = Column(JSON, nullable=True)
