"""protocol.py – Discord Gateway wire format

Frames are UTF-8 JSON objects ``{"op", "d", "s", "t"}``.  This module owns
their decoding and the construction of every payload the bot sends.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Dict, Optional
from urllib.parse import urlencode

__all__ = [
    "GATEWAY_VERSION",
    "GatewayFrame",
    "Opcode",
    "decode_frame",
    "encode_payload",
    "gateway_url",
    "heartbeat_payload",
    "identify_payload",
    "resume_payload",
]

GATEWAY_VERSION = 10
GATEWAY_ENCODING = "json"

DEFAULT_PROPERTIES = {
    "os": "linux",
    "browser": "checkin-bot",
    "device": "checkin-bot",
}


class Opcode(IntEnum):
    DISPATCH = 0
    HEARTBEAT = 1
    IDENTIFY = 2
    RESUME = 6
    RECONNECT = 7
    INVALID_SESSION = 9
    HELLO = 10
    HEARTBEAT_ACK = 11


@dataclass(frozen=True)
class GatewayFrame:
    opcode: int
    sequence: Optional[int] = None
    event_type: Optional[str] = None
    payload: Any = None


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def decode_frame(text: Any) -> Optional[GatewayFrame]:
    """Decode one text frame; ``None`` for anything that is not a gateway frame."""
    if isinstance(text, (bytes, bytearray)):
        try:
            text = text.decode("utf-8")
        except UnicodeDecodeError:
            return None
    try:
        data = json.loads(text)
    except (TypeError, ValueError):
        return None
    if not isinstance(data, dict):
        return None

    opcode = data.get("op")
    if not _is_int(opcode):
        return None

    sequence = data.get("s")
    event_type = data.get("t")
    return GatewayFrame(
        opcode=opcode,
        sequence=sequence if _is_int(sequence) else None,
        event_type=event_type if isinstance(event_type, str) else None,
        payload=data.get("d"),
    )


def encode_payload(payload: Dict[str, Any]) -> str:
    return json.dumps(payload, separators=(",", ":"))


def heartbeat_payload(sequence: Optional[int]) -> Dict[str, Any]:
    return {"op": int(Opcode.HEARTBEAT), "d": sequence}


def identify_payload(
    token: str,
    intents: int,
    properties: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    return {
        "op": int(Opcode.IDENTIFY),
        "d": {
            "token": token,
            "intents": intents,
            "properties": dict(properties or DEFAULT_PROPERTIES),
        },
    }


def resume_payload(token: str, session_id: str, sequence: Optional[int]) -> Dict[str, Any]:
    return {
        "op": int(Opcode.RESUME),
        "d": {"token": token, "session_id": session_id, "seq": sequence},
    }


def gateway_url(base: str) -> str:
    """Append the protocol version and encoding query string to ``base``."""
    query = urlencode({"v": GATEWAY_VERSION, "encoding": GATEWAY_ENCODING})
    separator = "&" if "?" in base else "?"
    return f"{base}{separator}{query}"
