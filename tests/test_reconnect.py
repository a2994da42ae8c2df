"""Tests for `checkin_bot.gateway.reconnect`."""

import pytest

from checkin_bot.gateway.reconnect import NextAction, ReconnectPolicy
from checkin_bot.gateway.session import Session

# ---------------------------------------------------------------------------
# Back-off
# ---------------------------------------------------------------------------


def test_delay_doubles_up_to_cap():
    policy = ReconnectPolicy(base_delay=1.0, max_delay=10.0, jitter=0.0)
    assert [policy.delay(n) for n in range(6)] == [1.0, 2.0, 4.0, 8.0, 10.0, 10.0]


def test_delay_jitter_stays_within_bounds():
    policy = ReconnectPolicy(base_delay=4.0, max_delay=60.0, jitter=0.25)
    assert policy.delay(0, rand=lambda: 0.0) == pytest.approx(3.0)
    assert policy.delay(0, rand=lambda: 1.0) == pytest.approx(5.0)
    assert policy.delay(0, rand=lambda: 0.5) == pytest.approx(4.0)


def test_delay_handles_huge_attempt_numbers():
    policy = ReconnectPolicy(base_delay=1.0, max_delay=30.0, jitter=0.0)
    assert policy.delay(10_000) == 30.0


def test_exhausted_counts_retries_after_first_failure():
    policy = ReconnectPolicy(max_attempts=3)
    assert not policy.exhausted(3)
    assert policy.exhausted(4)


def test_zero_max_attempts_retries_forever():
    assert not ReconnectPolicy(max_attempts=0).exhausted(1_000)


def test_policy_from_settings(settings):
    policy = ReconnectPolicy.from_settings(settings)
    assert policy.base_delay == settings.reconnect_base_delay
    assert policy.max_delay == settings.reconnect_max_delay
    assert policy.max_attempts == settings.reconnect_max_attempts


# ---------------------------------------------------------------------------
# Resume or identify, close codes
# ---------------------------------------------------------------------------


def test_next_action_requires_session_and_sequence():
    session = Session()
    assert ReconnectPolicy.next_action(session) is NextAction.IDENTIFY
    session.session_id = "abc"
    assert ReconnectPolicy.next_action(session) is NextAction.IDENTIFY
    session.record_sequence(1)
    assert ReconnectPolicy.next_action(session) is NextAction.RESUME


def test_next_action_after_discard_is_identify():
    session = Session(session_id="abc")
    session.record_sequence(7)
    session.discard()
    assert ReconnectPolicy.next_action(session) is NextAction.IDENTIFY


@pytest.mark.parametrize("code", [4004, 4010, 4011, 4012, 4013, 4014])
def test_fatal_close_codes(code):
    assert ReconnectPolicy.is_fatal(code)
    assert not ReconnectPolicy.resets_session(code)


@pytest.mark.parametrize("code", [1000, 1001, 1006, 4000, 4007, 4009, None])
def test_recoverable_close_codes(code):
    assert not ReconnectPolicy.is_fatal(code)


def test_session_reset_close_codes():
    assert ReconnectPolicy.resets_session(4007)
    assert ReconnectPolicy.resets_session(4009)
    assert not ReconnectPolicy.resets_session(4000)
