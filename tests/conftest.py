import os
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

# Ensure the repository root (parent directory of this file) is on the import path.
# This allows test modules to do `import checkin_bot...` even when pytest is executed
# from a sub-directory or when the working directory is not the project root.
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

# Route `logging.log_text` to the stdlib so no test ever builds a Cloud Logging client.
os.environ["LOG_TARGET"] = "stdlib"

from checkin_bot.config import Settings  # noqa: E402
from checkin_bot.database.attendance import AttendanceStore  # noqa: E402
from checkin_bot.helper_functions import create_db_engine  # noqa: E402

# Monday 2026-10-19, 09:30 in Asia/Singapore.
MONDAY_MORNING = datetime(2026, 10, 19, 1, 30, tzinfo=timezone.utc)


class FakeClock:
    """Mutable stand-in for ``datetime.now(timezone.utc)``."""

    def __init__(self, now: datetime = MONDAY_MORNING):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def settings() -> Settings:
    return Settings(
        bot_token="test-token",
        webhook_url="https://discord.test/api/webhooks/1/abc",
        github_token="gh-token",
        github_repo="acme/widgets",
        user_mapping={"Artha": "1001", "KirinZero0": "1002"},
        report_timezone="Asia/Singapore",
        database_url="sqlite:///:memory:",
        reconnect_base_delay=0.0,
        reconnect_max_delay=0.0,
        reconnect_max_attempts=3,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(settings):
    attendance = AttendanceStore(create_db_engine("sqlite:///:memory:"), settings.tz)
    attendance.create_schema()
    yield attendance
    attendance.dispose()
