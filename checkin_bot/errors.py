"""errors.py – Exception hierarchy shared across the bot.

Everything raised on purpose by this package derives from
:class:`CheckinBotError` so the CLI can map failures to exit codes without
catching unrelated exceptions.
"""

from __future__ import annotations

from typing import Optional


class CheckinBotError(Exception):
    """Base class for all errors raised by the check-in bot."""


class ConfigurationError(CheckinBotError):
    """A configuration value is present but cannot be parsed."""


class DiscoveryError(CheckinBotError):
    """The gateway URL could not be resolved. Fatal at startup."""


class GatewayConnectionError(CheckinBotError):
    """The websocket endpoint is unreachable or the handshake failed."""


class SendError(CheckinBotError):
    """A frame could not be written because the connection is closed."""


class GatewayClosedError(CheckinBotError):
    """The gateway closed the connection with a code that forbids reconnecting."""

    def __init__(self, code: Optional[int], reason: str = "") -> None:
        super().__init__(f"Gateway closed the connection with code {code}: {reason}")
        self.code = code
        self.reason = reason


class ReconnectExhausted(CheckinBotError):
    """The reconnect policy ran out of attempts."""


class GitHubError(CheckinBotError):
    """The GitHub REST API returned an error response."""


class ReportError(CheckinBotError):
    """The daily commit report could not be built or delivered."""
