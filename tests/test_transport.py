"""Tests for `checkin_bot.gateway.transport`."""

from types import SimpleNamespace

import aiohttp
import pytest

from checkin_bot.errors import GatewayConnectionError, SendError
from checkin_bot.gateway import transport
from checkin_bot.gateway.transport import TransportEventKind


class FakeWebSocket:
    """Iterates over scripted aiohttp messages, then reports ``close_code``."""

    def __init__(self, messages=(), close_code=1000, error=None):
        self._messages = list(messages)
        self.close_code = close_code
        self._error = error
        self.closed = False
        self.sent = []
        self.close_calls = []

    def __aiter__(self):
        return self

    async def __anext__(self):
        if not self._messages:
            self.closed = True
            raise StopAsyncIteration
        return self._messages.pop(0)

    def exception(self):
        return self._error

    async def send_str(self, text):
        if isinstance(self._error, Exception):
            raise self._error
        self.sent.append(text)

    async def close(self, code=1000):
        self.close_calls.append(code)
        self.closed = True


def _msg(kind, data=None):
    return SimpleNamespace(type=kind, data=data)


async def _collect(conn):
    return [event async for event in conn.events()]


@pytest.mark.asyncio
async def test_events_yield_messages_then_close():
    ws = FakeWebSocket(
        [
            _msg(aiohttp.WSMsgType.TEXT, '{"op": 11}'),
            _msg(aiohttp.WSMsgType.BINARY, b'{"op": 1}'),
        ],
        close_code=4000,
    )
    events = await _collect(transport.Connection(ws))

    assert [e.kind for e in events] == [
        TransportEventKind.MESSAGE,
        TransportEventKind.MESSAGE,
        TransportEventKind.CLOSE,
    ]
    assert events[0].text == '{"op": 11}'
    assert events[1].text == '{"op": 1}'
    assert events[2].close_code == 4000


@pytest.mark.asyncio
async def test_error_message_ends_the_stream():
    failure = ConnectionResetError("peer went away")
    ws = FakeWebSocket(
        [_msg(aiohttp.WSMsgType.ERROR), _msg(aiohttp.WSMsgType.TEXT, "never seen")],
        error=failure,
    )
    events = await _collect(transport.Connection(ws))

    assert len(events) == 1
    assert events[0].kind is TransportEventKind.ERROR
    assert events[0].error is failure


@pytest.mark.asyncio
async def test_send_writes_text_frames():
    ws = FakeWebSocket()
    await transport.Connection(ws).send('{"op":1,"d":null}')
    assert ws.sent == ['{"op":1,"d":null}']


@pytest.mark.asyncio
async def test_send_on_closed_socket_raises():
    ws = FakeWebSocket()
    ws.closed = True
    with pytest.raises(SendError):
        await transport.Connection(ws).send("{}")


@pytest.mark.asyncio
async def test_send_failure_raises_send_error():
    ws = FakeWebSocket(error=ConnectionResetError("reset"))
    with pytest.raises(SendError):
        await transport.Connection(ws).send("{}")


@pytest.mark.asyncio
async def test_close_is_idempotent():
    ws = FakeWebSocket()
    conn = transport.Connection(ws)
    await conn.close(4000)
    await conn.close(1000)
    assert ws.close_calls == [4000]
    assert conn.closed


@pytest.mark.asyncio
async def test_connect_wraps_handshake_failures():
    class _FailingSession:
        async def ws_connect(self, url, **kwargs):
            raise aiohttp.ClientConnectionError("handshake refused")

    with pytest.raises(GatewayConnectionError):
        await transport.connect(_FailingSession(), "wss://gateway.test/?v=10&encoding=json")


@pytest.mark.asyncio
async def test_connect_returns_connection():
    ws = FakeWebSocket()

    class _Session:
        async def ws_connect(self, url, **kwargs):
            assert url == "wss://gateway.test/?v=10&encoding=json"
            return ws

    conn = await transport.connect(_Session(), "wss://gateway.test/?v=10&encoding=json")
    assert isinstance(conn, transport.Connection)
    assert not conn.closed
