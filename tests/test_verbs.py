"""Tests for `checkin_bot.verbs`."""

from datetime import timedelta

import pytest

from checkin_bot.errors import GitHubError
from checkin_bot.verbs import (
    ChannelTarget,
    CommandHandler,
    CommandRequest,
    InteractionTarget,
    Reply,
)

REPORT = {"embeds": [{"title": "👤 Artha's Commits"}]}


def _request(name, *, interaction=False, user_id="1001", username="artha"):
    target = InteractionTarget("i1", "itok") if interaction else ChannelTarget("c1")
    return CommandRequest(
        command_name=name, user_id=user_id, username=username, reply_target=target
    )


@pytest.fixture
def reports():
    """Report stub whose return value (or exception) the test controls."""

    class _Reports:
        result = {}
        calls = []

        def __call__(self, user_id):
            self.calls.append(user_id)
            if isinstance(self.result, Exception):
                raise self.result
            return self.result

    return _Reports()


@pytest.fixture
def handler(store, settings, clock, reports):
    return CommandHandler(store, reports, settings.tz, clock=clock)


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


def test_ping(handler):
    assert handler.handle(_request("ping")).content == "🏓 Pong! Bot is working perfectly!"


def test_unknown_interaction_command_is_answered(handler):
    reply = handler.handle(_request("dance", interaction=True))
    assert reply.content == "❌ Unknown command: /dance"


def test_unknown_message_command_is_ignored(handler):
    assert handler.handle(_request("dance")) is None


def test_collaborator_failure_becomes_failure_reply(store, settings, clock, reports, monkeypatch):
    def broken_check_in(*args, **kwargs):
        raise RuntimeError("database is locked")

    monkeypatch.setattr(store, "check_in", broken_check_in)
    handler = CommandHandler(store, reports, settings.tz, clock=clock)

    reply = handler.handle(_request("checkin"))
    assert reply.content == (
        "❌ Sorry artha, the `checkin` command failed. Please try again later."
    )


def test_reply_payload_omits_empty_keys():
    assert Reply().to_payload() == {}
    assert Reply(content="hi").to_payload() == {"content": "hi"}
    assert Reply(embeds=[{"title": "x"}]).to_payload() == {"embeds": [{"title": "x"}]}


# ---------------------------------------------------------------------------
# checkin
# ---------------------------------------------------------------------------


def test_checkin_then_duplicate_checkin(handler, clock):
    first = handler.handle(_request("checkin"))
    assert first.content == (
        "✅ artha checked in successfully at 09:30! Have a productive day! 🚀"
    )

    clock.now += timedelta(minutes=20)
    second = handler.handle(_request("checkin"))
    assert second.content == "⚠️ artha, you're already checked in today at 09:30!"


def test_checkin_allowed_again_after_checkout(handler, clock):
    handler.handle(_request("checkin"))
    clock.now += timedelta(hours=1)
    handler.handle(_request("checkout"))
    clock.now += timedelta(hours=1)

    reply = handler.handle(_request("checkin"))
    assert reply.content.startswith("✅ artha checked in successfully at 11:30!")


# ---------------------------------------------------------------------------
# checkout
# ---------------------------------------------------------------------------


def test_checkout_reports_worked_time_and_attaches_report(handler, clock, reports):
    reports.result = REPORT
    handler.handle(_request("checkin"))
    clock.now += timedelta(hours=8, minutes=5, seconds=59)

    reply = handler.handle(_request("checkout"))
    assert reply.content == (
        "✅ artha checked out at 17:35!\n"
        "⏱️ Total time worked: 8hours 5minutes\n\n"
        "Great work today! 🎉"
    )
    assert reply.embeds == REPORT["embeds"]
    assert reports.calls == ["1001"]


def test_checkout_under_an_hour_shows_zero_hours(handler, clock):
    handler.handle(_request("checkin"))
    clock.now += timedelta(minutes=45)

    reply = handler.handle(_request("checkout"))
    assert "✅ artha checked out at 10:15!" in reply.content
    assert "Total time worked: 0hours 45minutes" in reply.content


def test_checkout_without_checkin_and_no_commits(handler):
    reply = handler.handle(_request("checkout"))
    assert reply.content == (
        "❌ artha, you haven't checked in today or already checked out!"
        "\n\nYou have not committed anything yet. 🥀"
    )
    assert reply.embeds == []


def test_checkout_without_checkin_still_shows_report(handler, reports):
    reports.result = REPORT
    reply = handler.handle(_request("checkout"))
    assert reply.content == "❌ artha, you haven't checked in today or already checked out!"
    assert reply.embeds == REPORT["embeds"]


def test_second_checkout_is_rejected(handler, clock):
    handler.handle(_request("checkin"))
    clock.now += timedelta(hours=1)
    handler.handle(_request("checkout"))

    reply = handler.handle(_request("checkout"))
    assert reply.content.startswith("❌ artha, you haven't checked in today")


def test_report_failure_degrades_to_plain_checkout(handler, clock, reports):
    reports.result = GitHubError("GitHub API error: 502")
    handler.handle(_request("checkin"))
    clock.now += timedelta(minutes=90)

    reply = handler.handle(_request("checkout"))
    assert "Total time worked: 1hours 30minutes" in reply.content
    assert reply.embeds == []


# ---------------------------------------------------------------------------
# status
# ---------------------------------------------------------------------------


def test_status_before_checkin(handler):
    reply = handler.handle(_request("status"))
    assert reply.content == (
        "📊 artha, you haven't checked in today yet. Use `checkin` to start your day!"
    )


def test_status_while_checked_in(handler, clock):
    handler.handle(_request("checkin"))
    clock.now += timedelta(hours=2, minutes=15)

    reply = handler.handle(_request("status"))
    assert reply.content == (
        "📊 **artha's Status:** Currently checked in\n"
        "🕐 Checked in at: 09:30\n"
        "⏱️ Time elapsed: 2h 15m"
    )


def test_status_after_checkout(handler, clock):
    handler.handle(_request("checkin"))
    clock.now += timedelta(hours=7, minutes=45)
    handler.handle(_request("checkout"))

    reply = handler.handle(_request("status"))
    assert reply.content == (
        "📊 **artha's Status:** Already checked out\n"
        "⏱️ Total time worked: 7h 45m"
    )


def test_users_are_tracked_independently(handler):
    handler.handle(_request("checkin", user_id="1001", username="artha"))
    reply = handler.handle(_request("status", user_id="1002", username="kirin"))
    assert "haven't checked in today yet" in reply.content
