"""Booking repository - Database operations for bookings and availability"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import (
    ACTIVE_BOOKING_STATUSES,
    Booking,
    CreatorAvailability,
    CreatorBlockedDate,
    Profile,
)


class BookingRepository:
    """Repository for booking database operations"""

    @staticmethod
    def get_creator(db: Session, creator_id: str) -> Optional[Profile]:
        return db.query(Profile).filter(Profile.id == creator_id).first()

    @staticmethod
    def lock_creator(db: Session, creator_id: str) -> Optional[Profile]:
        """
        Lock the creator row for the rest of the transaction.
        Serializes concurrent booking writes for one creator.
        """
        return db.query(Profile).filter(Profile.id == creator_id).with_for_update().first()

    @staticmethod
    def get_availability_rules(db: Session, creator_id: str) -> list[CreatorAvailability]:
        return (
            db.query(CreatorAvailability)
            .filter(
                CreatorAvailability.creator_id == creator_id,
                CreatorAvailability.is_available.is_(True),
            )
            .order_by(CreatorAvailability.day_of_week, CreatorAvailability.start_time)
            .all()
        )

    @staticmethod
    def get_blocked_dates(db: Session, creator_id: str) -> list[CreatorBlockedDate]:
        return (
            db.query(CreatorBlockedDate)
            .filter(CreatorBlockedDate.creator_id == creator_id)
            .order_by(CreatorBlockedDate.start_date)
            .all()
        )

    @staticmethod
    def get_active_bookings(db: Session, creator_id: str) -> list[Booking]:
        """Pending and confirmed bookings, earliest first"""
        return (
            db.query(Booking)
            .filter(Booking.creator_id == creator_id, Booking.status.in_(ACTIVE_BOOKING_STATUSES))
            .order_by(Booking.booking_date.asc())
            .all()
        )

    @staticmethod
    def get_booking(db: Session, booking_id: str, creator_id: Optional[str] = None) -> Optional[Booking]:
        query = db.query(Booking).filter(Booking.id == booking_id)
        if creator_id is not None:
            query = query.filter(Booking.creator_id == creator_id)
        return query.first()

    @staticmethod
    def get_by_idempotency_key(db: Session, idempotency_key: str) -> Optional[Booking]:
        return db.query(Booking).filter(Booking.idempotency_key == idempotency_key).first()

    @staticmethod
    def get_by_payment_id(db: Session, payment_id: str) -> Optional[Booking]:
        return db.query(Booking).filter(Booking.payment_id == payment_id).first()

    @staticmethod
    def get_by_payment_intent(db: Session, payment_intent_id: str) -> Optional[Booking]:
        return db.query(Booking).filter(Booking.payment_intent_id == payment_intent_id).first()

    @staticmethod
    def add_booking(db: Session, **booking_data) -> Booking:
        """Stage a new booking; the caller owns the transaction"""
        booking = Booking(**booking_data)
        db.add(booking)
        db.flush()
        return booking

    @staticmethod
    def update_booking(db: Session, booking: Booking, **updates) -> Booking:
        for key, value in updates.items():
            if hasattr(booking, key):
                setattr(booking, key, value)
        db.commit()
        db.refresh(booking)
        return booking
