"""reconnect.py – Reconnect policy

Decides *when* to reconnect after a connection ends (capped exponential
back-off with jitter) and *how* (resume the previous session or identify
from scratch).  Close codes that Discord documents as fatal stop the bot
instead of reconnecting.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from checkin_bot.config import Settings
from checkin_bot.gateway.session import Session

__all__ = [
    "FATAL_CLOSE_CODES",
    "NextAction",
    "ReconnectPolicy",
    "SESSION_RESET_CLOSE_CODES",
]

# Authentication failed, invalid shard, sharding required, invalid API
# version, invalid intents, disallowed intents.
FATAL_CLOSE_CODES = frozenset({4004, 4010, 4011, 4012, 4013, 4014})

# Invalid seq, session timed out: reconnecting is fine, resuming is not.
SESSION_RESET_CLOSE_CODES = frozenset({4007, 4009})


class NextAction(Enum):
    RESUME = "resume"
    IDENTIFY = "identify"


@dataclass(frozen=True)
class ReconnectPolicy:
    base_delay: float = 1.0
    max_delay: float = 60.0
    max_attempts: int = 10
    # Fraction of the delay randomly added or removed.
    jitter: float = 0.1

    @classmethod
    def from_settings(cls, settings: Settings) -> "ReconnectPolicy":
        return cls(
            base_delay=settings.reconnect_base_delay,
            max_delay=settings.reconnect_max_delay,
            max_attempts=settings.reconnect_max_attempts,
        )

    def delay(self, attempt: int, rand: Callable[[], float] = random.random) -> float:
        """Seconds to wait before reconnect ``attempt`` (0-based)."""
        capped = min(self.base_delay * (2 ** min(attempt, 16)), self.max_delay)
        return max(0.0, capped + capped * self.jitter * (2 * rand() - 1))

    def exhausted(self, consecutive_failures: int) -> bool:
        return self.max_attempts > 0 and consecutive_failures > self.max_attempts

    @staticmethod
    def next_action(session: Session) -> NextAction:
        return NextAction.RESUME if session.resumable else NextAction.IDENTIFY

    @staticmethod
    def is_fatal(close_code: Optional[int]) -> bool:
        return close_code in FATAL_CLOSE_CODES

    @staticmethod
    def resets_session(close_code: Optional[int]) -> bool:
        return close_code in SESSION_RESET_CLOSE_CODES
