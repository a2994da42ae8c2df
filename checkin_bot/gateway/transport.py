"""transport.py – Websocket transport for the gateway

A thin wrapper over :pyclass:`aiohttp.ClientWebSocketResponse`.  Instead of
``on('message')`` / ``on('close')`` / ``on('error')`` callbacks, a
:class:`Connection` exposes a single async stream of tagged
:class:`TransportEvent` values consumed by one loop, which preserves
delivery order.  No retry logic lives here.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Optional

import aiohttp

from checkin_bot.errors import GatewayConnectionError, SendError
from checkin_bot.helper_functions import logging

__all__ = [
    "Connection",
    "TransportEvent",
    "TransportEventKind",
    "connect",
]


class TransportEventKind(Enum):
    MESSAGE = "message"
    CLOSE = "close"
    ERROR = "error"


@dataclass(frozen=True)
class TransportEvent:
    kind: TransportEventKind
    text: Optional[str] = None
    close_code: Optional[int] = None
    reason: str = ""
    error: Optional[BaseException] = None

    @classmethod
    def message(cls, text: str) -> "TransportEvent":
        return cls(TransportEventKind.MESSAGE, text=text)

    @classmethod
    def closed(cls, code: Optional[int], reason: str = "") -> "TransportEvent":
        return cls(TransportEventKind.CLOSE, close_code=code, reason=reason)

    @classmethod
    def failed(cls, error: Optional[BaseException]) -> "TransportEvent":
        return cls(TransportEventKind.ERROR, error=error)


class Connection:
    """One open websocket to the gateway."""

    def __init__(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        self._ws = ws

    @property
    def closed(self) -> bool:
        return self._ws.closed

    @property
    def close_code(self) -> Optional[int]:
        return self._ws.close_code

    async def send(self, text: str) -> None:
        """Write one text frame.

        Raises
        ------
        SendError
            The socket is closed or the write failed.
        """
        if self._ws.closed:
            raise SendError("gateway connection is closed")
        try:
            await self._ws.send_str(text)
        except (ConnectionResetError, RuntimeError, aiohttp.ClientError) as exc:
            raise SendError(f"gateway send failed: {exc}") from exc

    async def events(self) -> AsyncIterator[TransportEvent]:
        """Yield inbound frames, then exactly one CLOSE or ERROR event."""
        async for msg in self._ws:
            if msg.type == aiohttp.WSMsgType.TEXT:
                yield TransportEvent.message(msg.data)
            elif msg.type == aiohttp.WSMsgType.BINARY:
                yield TransportEvent.message(msg.data.decode("utf-8", errors="replace"))
            elif msg.type == aiohttp.WSMsgType.ERROR:
                yield TransportEvent.failed(self._ws.exception())
                return
        # aiohttp stops iterating on CLOSE / CLOSING / CLOSED.
        yield TransportEvent.closed(self._ws.close_code)

    async def close(self, code: int = 1000) -> None:
        if not self._ws.closed:
            await self._ws.close(code=code)


async def connect(http_session: aiohttp.ClientSession, url: str) -> Connection:
    """Open a websocket to ``url``.

    Raises
    ------
    GatewayConnectionError
        The endpoint is unreachable or the websocket handshake failed.
    """
    try:
        ws = await http_session.ws_connect(url, autoping=True)
    except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as exc:
        raise GatewayConnectionError(f"Could not connect to {url}: {exc}") from exc

    logging.log_text("Connected to Discord Gateway!", severity="INFO")
    return Connection(ws)
