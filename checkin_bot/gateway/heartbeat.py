"""heartbeat.py – Gateway heartbeat scheduler

One :class:`Heartbeater` runs per connection as its own asyncio task, so a
slow dispatch handler can never delay a beat.  The first beat waits a random
fraction of the interval (spreads reconnect storms), after which beats go out
every interval until the task is stopped.

If the previous beat is still unacknowledged when the next one is due, or a
beat cannot be written, the connection is a zombie: ``on_zombie`` is awaited
and the scheduler ends.
"""

from __future__ import annotations

import asyncio
import random
from typing import Awaitable, Callable, Optional

from checkin_bot.errors import SendError
from checkin_bot.gateway.protocol import encode_payload, heartbeat_payload
from checkin_bot.gateway.session import Session
from checkin_bot.helper_functions import logging

__all__ = ["Heartbeater"]


class Heartbeater:
    def __init__(
        self,
        session: Session,
        send: Callable[[str], Awaitable[None]],
        on_zombie: Callable[[], Awaitable[None]],
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        jitter: Callable[[], float] = random.random,
    ) -> None:
        self._session = session
        self._send = send
        self._on_zombie = on_zombie
        self._sleep = sleep
        self._jitter = jitter
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, interval_ms: int) -> None:
        if self.running:
            self._task.cancel()  # type: ignore[union-attr]
        self._task = asyncio.create_task(self._run(interval_ms), name="gateway-heartbeat")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def beat(self) -> bool:
        """Send one heartbeat now; ``False`` when the write failed."""
        payload = encode_payload(heartbeat_payload(self._session.last_sequence))
        try:
            await self._send(payload)
        except SendError as exc:
            logging.log_text(f"Heartbeat send failed: {exc}", severity="WARNING")
            return False
        self._session.heartbeat_sent()
        logging.log_text(
            f"Sent heartbeat (seq={self._session.last_sequence})", severity="DEBUG"
        )
        return True

    async def _run(self, interval_ms: int) -> None:
        interval = interval_ms / 1000.0
        await self._sleep(self._jitter() * interval)
        while True:
            if self._session.awaiting_ack:
                logging.log_text(
                    "Heartbeat not acknowledged before the next beat – connection is a zombie",
                    severity="WARNING",
                )
                await self._on_zombie()
                return
            if not await self.beat():
                await self._on_zombie()
                return
            await self._sleep(interval)
