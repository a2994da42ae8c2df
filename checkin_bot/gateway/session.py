"""session.py – Gateway session state

:class:`Session` is the one explicit, mutable record of a gateway session.
It is owned by :class:`checkin_bot.gateway.client.GatewayClient` and only
ever mutated from the event-loop thread, so it needs no locking.

Invariants
----------
* ``last_sequence`` never decreases while a session lives; it is cleared
  only together with ``session_id`` when the session is discarded.
* ``awaiting_ack`` is set by every heartbeat sent and cleared by the ack.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from checkin_bot.connections import discord_rest
from checkin_bot.gateway.protocol import gateway_url
from checkin_bot.helper_functions import logging

__all__ = [
    "ConnectionState",
    "Session",
    "resolve_gateway",
]


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    AWAITING_HELLO = "awaiting_hello"
    IDENTIFYING = "identifying"
    READY = "ready"
    AWAITING_HEARTBEAT_ACK = "awaiting_heartbeat_ack"


@dataclass
class Session:
    gateway_endpoint: str = ""
    session_id: Optional[str] = None
    last_sequence: Optional[int] = None
    heartbeat_interval_ms: int = 0
    connection_state: ConnectionState = ConnectionState.DISCONNECTED
    awaiting_ack: bool = False
    resume_gateway_url: Optional[str] = None
    last_heartbeat_sent: Optional[float] = None
    last_heartbeat_ack: Optional[float] = None

    @property
    def resumable(self) -> bool:
        return self.session_id is not None and self.last_sequence is not None

    def connect_url(self) -> str:
        """Endpoint for the next connection: the resume URL when resuming."""
        if self.resumable and self.resume_gateway_url:
            return gateway_url(self.resume_gateway_url)
        return self.gateway_endpoint

    def record_sequence(self, sequence: Optional[int]) -> None:
        if sequence is None:
            return
        if self.last_sequence is None or sequence > self.last_sequence:
            self.last_sequence = sequence

    def heartbeat_sent(self, now: Optional[float] = None) -> None:
        self.awaiting_ack = True
        self.last_heartbeat_sent = time.monotonic() if now is None else now
        if self.connection_state is ConnectionState.READY:
            self.connection_state = ConnectionState.AWAITING_HEARTBEAT_ACK

    def heartbeat_acked(self, now: Optional[float] = None) -> None:
        self.awaiting_ack = False
        self.last_heartbeat_ack = time.monotonic() if now is None else now
        if self.connection_state is ConnectionState.AWAITING_HEARTBEAT_ACK:
            self.connection_state = ConnectionState.READY

    def discard(self) -> None:
        """Forget the session so the next handshake is a fresh identify."""
        self.session_id = None
        self.last_sequence = None
        self.resume_gateway_url = None

    def disconnected(self) -> None:
        self.connection_state = ConnectionState.DISCONNECTED
        self.awaiting_ack = False

    def snapshot(self) -> Dict[str, Any]:
        return {
            "state": self.connection_state.value,
            "session_id": self.session_id,
            "last_sequence": self.last_sequence,
            "heartbeat_interval_ms": self.heartbeat_interval_ms,
            "awaiting_ack": self.awaiting_ack,
            "last_heartbeat_ack": self.last_heartbeat_ack,
        }


def resolve_gateway(token: Optional[str]) -> str:
    """Look up the gateway endpoint, ready to connect to.

    Raises
    ------
    DiscoveryError
        No token, or the lookup did not succeed.
    """
    endpoint = gateway_url(discord_rest.get_gateway_bot(token))
    logging.log_text(f"Gateway URL: {endpoint}", severity="INFO")
    return endpoint
