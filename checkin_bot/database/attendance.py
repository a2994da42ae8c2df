"""database.attendance – Attendance record store

Thin repository over :class:`checkin_bot.database.models.UserCheckin`.  All
methods are synchronous; the gateway calls them from worker threads so that
database round-trips never stall heartbeats.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Tuple

from sqlalchemy import select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from checkin_bot.database.models import Base, UserCheckin, local_day
from checkin_bot.helper_functions import logging

__all__ = ["AttendanceStore"]


class AttendanceStore:
    """Check-in bookkeeping keyed by Discord user id and local day."""

    def __init__(self, engine: Engine, tz) -> None:
        self._engine = engine
        self._tz = tz
        self._sessions = sessionmaker(bind=engine, expire_on_commit=False)

    def create_schema(self) -> None:
        Base.metadata.create_all(self._engine)
        logging.log_text("Attendance schema ensured.", severity="INFO")

    def dispose(self) -> None:
        self._engine.dispose()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _open_today(self, db: Session, user_id: str, now: datetime) -> Optional[UserCheckin]:
        stmt = (
            select(UserCheckin)
            .where(UserCheckin.discord_user_id == user_id)
            .where(UserCheckin.checkin_date == local_day(now, self._tz))
            .where(UserCheckin.checkout_at.is_(None))
            .order_by(UserCheckin.checkin_at.desc())
            .limit(1)
        )
        return db.scalars(stmt).first()

    def open_checkin(self, user_id: str, now: datetime) -> Optional[UserCheckin]:
        with self._sessions() as db:
            return self._open_today(db, user_id, now)

    def todays_checkin(self, user_id: str, now: datetime) -> Optional[UserCheckin]:
        """Return today's open check-in, else the most recent one from today."""
        with self._sessions() as db:
            record = self._open_today(db, user_id, now)
            if record is not None:
                return record
            stmt = (
                select(UserCheckin)
                .where(UserCheckin.discord_user_id == user_id)
                .where(UserCheckin.checkin_date == local_day(now, self._tz))
                .order_by(UserCheckin.checkin_at.desc())
                .limit(1)
            )
            return db.scalars(stmt).first()

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def check_in(self, user_id: str, username: str, now: datetime) -> Tuple[UserCheckin, bool]:
        """Open a check-in for today unless one is already open.

        Returns ``(record, created)``; when ``created`` is ``False`` the record
        is the existing open check-in.
        """
        with self._sessions() as db:
            existing = self._open_today(db, user_id, now)
            if existing is not None:
                return existing, False

            record = UserCheckin(
                discord_user_id=user_id,
                username=username,
                checkin_at=now,
                checkin_date=local_day(now, self._tz),
            )
            db.add(record)
            try:
                db.commit()
            except IntegrityError:
                # Lost the race against a concurrent check-in.
                db.rollback()
                existing = self._open_today(db, user_id, now)
                if existing is None:
                    raise
                return existing, False

            logging.log_text(f"Check-in created for user {user_id}.", severity="INFO")
            return record, True

    def check_out(self, user_id: str, now: datetime) -> Optional[UserCheckin]:
        """Close today's open check-in; ``None`` when there is none."""
        with self._sessions() as db:
            record = self._open_today(db, user_id, now)
            if record is None:
                return None
            record.checkout_at = now
            db.commit()
            logging.log_text(f"Check-out recorded for user {user_id}.", severity="INFO")
            return record
