"""Calendar token repository - one token set per creator"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...models import CreatorCalendarToken, Profile

logger = logging.getLogger(__name__)


class CalendarTokenRepository:
    @staticmethod
    def get_token(db: Session, creator_id: str) -> Optional[CreatorCalendarToken]:
        return db.query(CreatorCalendarToken).filter(CreatorCalendarToken.creator_id == creator_id).first()

    @staticmethod
    def upsert_token(
        db: Session,
        creator_id: str,
        access_token: str,
        refresh_token: Optional[str],
        expiry_date: datetime,
    ) -> CreatorCalendarToken:
        """
        Insert or replace the creator's token set.

        A refresh token is only overwritten when a new one is supplied. If a
        concurrent callback inserts first, the unique constraint trips and the
        write is retried as an update.
        """

        def apply(token: CreatorCalendarToken) -> None:
            token.access_token = access_token
            if refresh_token:
                token.refresh_token = refresh_token
            token.expiry_date = expiry_date

        token = CalendarTokenRepository.get_token(db, creator_id)
        if token:
            apply(token)
            db.commit()
            return token

        token = CreatorCalendarToken(
            creator_id=creator_id,
            access_token=access_token,
            refresh_token=refresh_token,
            expiry_date=expiry_date,
        )
        db.add(token)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            logger.info(f"Token set for creator {creator_id} inserted concurrently; updating instead")
            token = CalendarTokenRepository.get_token(db, creator_id)
            apply(token)
            db.commit()
        return token

    @staticmethod
    def delete_token(db: Session, token: CreatorCalendarToken) -> None:
        db.delete(token)
        db.commit()

    @staticmethod
    def set_oauth_requested(db: Session, creator: Profile, requested_at: Optional[datetime]) -> None:
        creator.calendar_oauth_requested_at = requested_at
        db.commit()
