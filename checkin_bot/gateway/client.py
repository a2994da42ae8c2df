"""client.py – Discord Gateway client

:class:`GatewayClient` owns the whole session lifecycle:

1. Discover the gateway endpoint (``GET /gateway/bot``).
2. Connect, wait for HELLO, IDENTIFY (or RESUME), start heartbeating.
3. Consume frames in delivery order: protocol opcodes update the
   :class:`~checkin_bot.gateway.session.Session`, dispatch frames go to the
   dispatcher, recognized commands run in background tasks.
4. When the connection ends, cancel its heartbeat and reconnect according to
   the :class:`~checkin_bot.gateway.reconnect.ReconnectPolicy`.

Everything runs on one asyncio loop.  Blocking work (REST calls, database)
is pushed to worker threads with :pyfunc:`asyncio.to_thread`, so heartbeats
keep firing while a command is being served.
"""

from __future__ import annotations

import asyncio
import random
from typing import Any, Awaitable, Callable, Dict, Optional, Set

import aiohttp

from checkin_bot.config import Settings
from checkin_bot.connections import discord_rest
from checkin_bot.errors import GatewayClosedError, GatewayConnectionError, ReconnectExhausted, SendError
from checkin_bot.gateway import transport
from checkin_bot.gateway.dispatcher import GuildAvailable, Ready, to_command_request, to_inbound_event
from checkin_bot.gateway.heartbeat import Heartbeater
from checkin_bot.gateway.protocol import (
    GatewayFrame,
    Opcode,
    encode_payload,
    decode_frame,
    identify_payload,
    resume_payload,
)
from checkin_bot.gateway.reconnect import NextAction, ReconnectPolicy
from checkin_bot.gateway.session import ConnectionState, Session, resolve_gateway
from checkin_bot.gateway.transport import TransportEventKind
from checkin_bot.helper_functions import logging
from checkin_bot.verbs import CommandHandler, CommandRequest, InteractionTarget

__all__ = ["GatewayClient"]

# Any close code other than 1000/1001 keeps the session resumable.
RESUMABLE_CLOSE_CODE = 4000


class GatewayClient:
    """Holds one gateway session open and serves commands from it.

    Parameters
    ----------
    settings:
        Process configuration (token, intents, prefix, reconnect policy).
    handler:
        The command handler; called from a worker thread.
    session:
        Session record to drive; a fresh one by default.
    policy:
        Reconnect policy; derived from ``settings`` by default.

    The remaining keyword arguments swap out I/O for tests.
    """

    def __init__(
        self,
        settings: Settings,
        handler: CommandHandler,
        *,
        session: Optional[Session] = None,
        policy: Optional[ReconnectPolicy] = None,
        connect: Callable[..., Awaitable[transport.Connection]] = transport.connect,
        resolve: Callable[[Optional[str]], str] = resolve_gateway,
        send_channel_message: Callable[..., bool] = discord_rest.send_channel_message,
        send_interaction_response: Callable[..., bool] = discord_rest.send_interaction_response,
        http_session_factory: Callable[[], Any] = aiohttp.ClientSession,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        heartbeat_sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        jitter: Callable[[], float] = random.random,
    ) -> None:
        self._settings = settings
        self._handler = handler
        self.session = session or Session()
        self._policy = policy or ReconnectPolicy.from_settings(settings)
        self._connect = connect
        self._resolve = resolve
        self._send_channel_message = send_channel_message
        self._send_interaction_response = send_interaction_response
        self._http_session_factory = http_session_factory
        self._sleep = sleep
        self._connection: Optional[transport.Connection] = None
        self._running = False
        self._consecutive_failures = 0
        self._tasks: Set[asyncio.Task] = set()
        self._heartbeater = Heartbeater(
            self.session,
            self._send,
            self._on_zombie,
            sleep=heartbeat_sleep,
            jitter=jitter,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """Run until :pyfunc:`stop` is called or a fatal error occurs.

        Raises
        ------
        DiscoveryError
            The gateway endpoint could not be resolved.
        GatewayClosedError
            Discord closed the connection with a non-recoverable code.
        ReconnectExhausted
            Too many consecutive connections failed to reach READY.
        """
        self._running = True
        self.session.gateway_endpoint = await asyncio.to_thread(
            self._resolve, self._settings.bot_token
        )

        async with self._http_session_factory() as http:
            try:
                while self._running:
                    await self._run_connection(http)
                    if not self._running:
                        break

                    self._consecutive_failures += 1
                    if self._policy.exhausted(self._consecutive_failures):
                        raise ReconnectExhausted(
                            f"Gave up after {self._consecutive_failures - 1} reconnect attempts"
                        )

                    delay = self._policy.delay(self._consecutive_failures - 1)
                    action = self._policy.next_action(self.session)
                    logging.log_text(
                        f"Reconnecting to Discord Gateway in {delay:.1f}s ({action.value})",
                        severity="INFO",
                    )
                    await self._sleep(delay)
            finally:
                self._running = False
                await self._cancel_tasks()

    async def stop(self) -> None:
        """Close the connection and stop reconnecting."""
        self._running = False
        await self._close_connection(1000)

    def status(self) -> Dict[str, Any]:
        snapshot = self.session.snapshot()
        snapshot["running"] = self._running
        snapshot["consecutive_failures"] = self._consecutive_failures
        return snapshot

    async def drain(self) -> None:
        """Wait for in-flight command replies to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _run_connection(self, http: Any) -> None:
        url = self.session.connect_url()
        try:
            conn = await self._connect(http, url)
        except GatewayConnectionError as exc:
            logging.log_text(f"Could not connect: {exc}", severity="ERROR")
            return

        self._connection = conn
        self.session.connection_state = ConnectionState.AWAITING_HELLO
        try:
            async for event in conn.events():
                if event.kind is TransportEventKind.MESSAGE:
                    frame = decode_frame(event.text)
                    if frame is None:
                        logging.log_text("Dropped malformed gateway frame", severity="DEBUG")
                        continue
                    await self.handle_frame(frame)
                elif event.kind is TransportEventKind.CLOSE:
                    self._on_close(event.close_code, event.reason)
                else:
                    logging.log_text(f"WebSocket error: {event.error}", severity="ERROR")
        finally:
            await self._heartbeater.stop()
            self._connection = None
            self.session.disconnected()
            await conn.close()

    def _on_close(self, code: Optional[int], reason: str) -> None:
        logging.log_text(f"Connection closed ({code} - {reason})", severity="WARNING")
        if self._policy.is_fatal(code):
            self._running = False
            raise GatewayClosedError(code, reason)
        if self._policy.resets_session(code):
            self.session.discard()

    async def _cancel_tasks(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Connection helpers
    # ------------------------------------------------------------------

    async def _send(self, text: str) -> None:
        conn = self._connection
        if conn is None:
            raise SendError("no open gateway connection")
        await conn.send(text)

    async def _close_connection(self, code: int) -> None:
        conn = self._connection
        if conn is not None:
            await conn.close(code)

    async def _on_zombie(self) -> None:
        await self._close_connection(RESUMABLE_CLOSE_CODE)

    # ------------------------------------------------------------------
    # Frame handling
    # ------------------------------------------------------------------

    async def handle_frame(self, frame: GatewayFrame) -> None:
        op = frame.opcode
        if op == Opcode.HELLO:
            payload = frame.payload if isinstance(frame.payload, dict) else {}
            interval = payload.get("heartbeat_interval")
            if not isinstance(interval, int) or isinstance(interval, bool) or interval <= 0:
                logging.log_text("HELLO without a valid heartbeat interval", severity="WARNING")
                return
            await self.on_hello(interval)
        elif op == Opcode.HEARTBEAT_ACK:
            self.on_heartbeat_ack()
        elif op == Opcode.HEARTBEAT:
            await self.on_heartbeat_request()
        elif op == Opcode.RECONNECT:
            await self.on_reconnect_request()
        elif op == Opcode.INVALID_SESSION:
            await self.on_invalid_session(frame.payload is True)
        elif op == Opcode.DISPATCH:
            await self.on_dispatch(frame.sequence, frame.event_type, frame.payload)
        else:
            logging.log_text(f"Ignored gateway opcode {op}", severity="DEBUG")

    async def on_hello(self, heartbeat_interval_ms: int) -> None:
        self.session.heartbeat_interval_ms = heartbeat_interval_ms
        self.session.awaiting_ack = False
        self.session.connection_state = ConnectionState.IDENTIFYING
        logging.log_text(
            f"Received Hello. Heartbeat interval: {heartbeat_interval_ms}ms", severity="INFO"
        )

        action = self._policy.next_action(self.session)
        if action is NextAction.RESUME:
            payload = resume_payload(
                self._settings.bot_token or "",
                self.session.session_id or "",
                self.session.last_sequence,
            )
        else:
            payload = identify_payload(self._settings.bot_token or "", self._settings.intents)

        try:
            await self._send(encode_payload(payload))
        except SendError as exc:
            logging.log_text(f"Failed to send {action.value} payload: {exc}", severity="ERROR")
            await self._close_connection(RESUMABLE_CLOSE_CODE)
            return

        logging.log_text(f"Sent {action.value} payload", severity="INFO")
        self._heartbeater.start(heartbeat_interval_ms)

    def on_heartbeat_ack(self) -> None:
        self.session.heartbeat_acked()
        logging.log_text("Heartbeat acknowledged", severity="DEBUG")

    async def on_heartbeat_request(self) -> None:
        if not await self._heartbeater.beat():
            await self._on_zombie()

    async def on_reconnect_request(self) -> None:
        logging.log_text("Received reconnect request", severity="INFO")
        await self._close_connection(RESUMABLE_CLOSE_CODE)

    async def on_invalid_session(self, resumable: bool) -> None:
        logging.log_text(f"Invalid session (resumable={resumable})", severity="WARNING")
        # Always start over; the resumable hint is only logged.
        self.session.discard()
        await self._close_connection(RESUMABLE_CLOSE_CODE)

    async def on_dispatch(self, sequence: Optional[int], event_type: Optional[str], data: Any) -> None:
        self.session.record_sequence(sequence)

        if event_type == "RESUMED":
            self.session.connection_state = ConnectionState.READY
            self._consecutive_failures = 0
            logging.log_text("Session resumed", severity="INFO")
            return

        event = to_inbound_event(event_type, data)
        if isinstance(event, Ready):
            self.session.session_id = event.session_id
            self.session.resume_gateway_url = event.resume_gateway_url
            self.session.connection_state = ConnectionState.READY
            self._consecutive_failures = 0
            if event.username:
                logging.log_text(f"Logged in as {event.username}", severity="INFO")
            logging.log_text(f"Bot ready! Session ID: {event.session_id}", severity="INFO")
            logging.log_text(f"Connected to {event.guild_count} guilds", severity="INFO")
            return
        if isinstance(event, GuildAvailable):
            logging.log_text(f"Guild available: {event.name}", severity="INFO")
            return

        request = to_command_request(event, self._settings.command_prefix)
        if request is not None:
            self._spawn(self._serve(request))

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def _spawn(self, coro: Awaitable[None]) -> None:
        task = asyncio.create_task(coro)  # type: ignore[arg-type]
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logging.log_text(f"Command task failed: {exc!r}", severity="ERROR")

    async def _serve(self, request: CommandRequest) -> None:
        reply = await asyncio.to_thread(self._handler.handle, request)
        if reply is None:
            return
        payload = reply.to_payload()
        if not payload:
            return

        token = self._settings.bot_token or ""
        target = request.reply_target
        if isinstance(target, InteractionTarget):
            await asyncio.to_thread(
                self._send_interaction_response,
                token,
                target.interaction_id,
                target.token,
                payload,
            )
        else:
            await asyncio.to_thread(self._send_channel_message, token, target.channel_id, payload)
