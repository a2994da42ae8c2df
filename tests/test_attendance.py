"""Tests for the attendance store and the `UserCheckin` model."""

from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import IntegrityError

from checkin_bot.database.models import UserCheckin, as_utc, elapsed_minutes, local_day


def test_check_in_creates_one_open_record(store, clock):
    record, created = store.check_in("1001", "artha", clock())
    assert created
    assert record.is_checked_in
    assert record.checkin_date == date(2026, 10, 19)

    again, created_again = store.check_in("1001", "artha", clock() + timedelta(minutes=5))
    assert not created_again
    assert again.id == record.id
    assert again.checkin_at_utc == clock()


def test_check_out_closes_the_open_record(store, clock):
    store.check_in("1001", "artha", clock())
    closed = store.check_out("1001", clock() + timedelta(hours=3, minutes=10))

    assert closed is not None
    assert not closed.is_checked_in
    assert closed.worked_minutes == 190
    assert closed.formatted_worked_time == "3h 10m"
    assert store.open_checkin("1001", clock()) is None


def test_check_out_without_open_record(store, clock):
    assert store.check_out("1001", clock()) is None


def test_todays_checkin_prefers_open_then_latest(store, clock):
    assert store.todays_checkin("1001", clock()) is None

    store.check_in("1001", "artha", clock())
    store.check_out("1001", clock() + timedelta(hours=1))
    latest = store.todays_checkin("1001", clock() + timedelta(hours=2))
    assert latest is not None and not latest.is_checked_in

    store.check_in("1001", "artha", clock() + timedelta(hours=3))
    current = store.todays_checkin("1001", clock() + timedelta(hours=4))
    assert current.is_checked_in
    assert current.checkin_at_utc == clock() + timedelta(hours=3)


def test_day_boundary_follows_report_timezone(store):
    # 23:30 Singapore on Monday, then 00:30 Singapore on Tuesday.
    monday_late = datetime(2026, 10, 19, 15, 30, tzinfo=timezone.utc)
    tuesday_early = monday_late + timedelta(hours=1)

    store.check_in("1001", "artha", monday_late)
    assert store.open_checkin("1001", tuesday_early) is None

    record, created = store.check_in("1001", "artha", tuesday_early)
    assert created
    assert record.checkin_date == date(2026, 10, 20)


def test_second_open_row_for_same_day_is_rejected(store, clock):
    store.check_in("1001", "artha", clock())

    with store._sessions() as db:
        db.add(
            UserCheckin(
                discord_user_id="1001",
                username="artha",
                checkin_at=clock(),
                checkin_date=date(2026, 10, 19),
            )
        )
        with pytest.raises(IntegrityError):
            db.commit()


def test_elapsed_minutes_floors_and_never_goes_negative():
    start = datetime(2026, 10, 19, 1, 0, tzinfo=timezone.utc)
    assert elapsed_minutes(start, start + timedelta(minutes=59, seconds=59)) == 59
    assert elapsed_minutes(start, start - timedelta(minutes=5)) == 0


def test_as_utc_and_local_day(settings):
    naive = datetime(2026, 10, 19, 20, 0)
    assert as_utc(naive) == datetime(2026, 10, 19, 20, 0, tzinfo=timezone.utc)
    assert as_utc(None) is None
    assert local_day(as_utc(naive), settings.tz) == date(2026, 10, 20)
