"""database.models
===================

SQLAlchemy declarative models backing the attendance table.

Tables
------
1. user_checkins – One row per check-in.  A row is *open* while
   ``checkout_at`` is NULL.

Invariants
----------
* At most one open check-in per user per local day.  Enforced by the partial
  unique index ``uq_open_checkin_per_day`` so that concurrent ``!checkin``
  commands cannot both insert.
* Timestamps are stored in UTC.  SQLite drops the offset on the way back, so
  readers go through :pyfunc:`as_utc`.
"""

from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import (
    BigInteger,
    Column,
    Date,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Return *value* as an aware UTC datetime (naive values are assumed UTC)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class TimestampMixin:
    created_at = Column(DateTime(timezone=True), nullable=False, default=func.now())
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=func.now(), onupdate=func.now()
    )


class UserCheckin(Base, TimestampMixin):
    __tablename__ = "user_checkins"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True)
    discord_user_id = Column(String, nullable=False, index=True)
    username = Column(String, nullable=False)
    checkin_at = Column(DateTime(timezone=True), nullable=False, index=True)
    # Local calendar day of ``checkin_at`` in the report time zone.
    checkin_date = Column(Date, nullable=False)
    checkout_at = Column(DateTime(timezone=True), nullable=True)
    work_notes = Column(Text, nullable=True)

    __table_args__ = (
        Index("ix_user_checkins_user_checkin_at", "discord_user_id", "checkin_at"),
        Index(
            "uq_open_checkin_per_day",
            "discord_user_id",
            "checkin_date",
            unique=True,
            postgresql_where=checkout_at.is_(None),
            sqlite_where=checkout_at.is_(None),
        ),
    )

    @property
    def checkin_at_utc(self) -> datetime:
        return as_utc(self.checkin_at)  # type: ignore[return-value]

    @property
    def checkout_at_utc(self) -> Optional[datetime]:
        return as_utc(self.checkout_at)

    @property
    def is_checked_in(self) -> bool:
        return self.checkout_at is None

    @property
    def worked_minutes(self) -> int:
        """Whole minutes between check-in and check-out (0 while still open)."""
        if self.checkout_at is None:
            return 0
        return elapsed_minutes(self.checkin_at_utc, self.checkout_at_utc)

    @property
    def formatted_worked_time(self) -> str:
        hours, minutes = divmod(self.worked_minutes, 60)
        return f"{hours}h {minutes}m"

    def __repr__(self) -> str:
        return (
            f"<UserCheckin id={self.id} user={self.discord_user_id} "
            f"day={self.checkin_date} open={self.is_checked_in}>"
        )


def elapsed_minutes(start: datetime, end: datetime) -> int:
    seconds = (end - start).total_seconds()
    return max(0, int(seconds // 60))


def local_day(moment: datetime, tz) -> date:
    return moment.astimezone(tz).date()
