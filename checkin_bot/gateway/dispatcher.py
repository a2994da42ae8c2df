"""dispatcher.py – Dispatch events to command requests

Pure functions, no I/O:

1. :pyfunc:`to_inbound_event` projects a dispatch frame's ``(t, d)`` onto a
   typed :data:`InboundEvent`.
2. :pyfunc:`to_command_request` extracts zero or one
   :class:`checkin_bot.verbs.CommandRequest` from that event.

Unrecognized event types and payloads missing required fields become
:class:`Other` and produce no request; this is not an error.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from checkin_bot.verbs import ChannelTarget, CommandRequest, InteractionTarget

__all__ = [
    "APPLICATION_COMMAND",
    "GuildAvailable",
    "InboundEvent",
    "InteractionCreate",
    "MessageCreate",
    "Other",
    "Ready",
    "to_command_request",
    "to_inbound_event",
]

# Interaction type 2
APPLICATION_COMMAND = 2


@dataclass(frozen=True)
class Ready:
    session_id: str
    resume_gateway_url: Optional[str]
    guild_count: int
    username: Optional[str] = None


@dataclass(frozen=True)
class MessageCreate:
    channel_id: str
    author_id: str
    author_name: str
    author_is_bot: bool
    content: str


@dataclass(frozen=True)
class InteractionCreate:
    interaction_id: str
    token: str
    interaction_type: int
    command_name: Optional[str]
    user_id: str
    username: str


@dataclass(frozen=True)
class GuildAvailable:
    guild_id: Optional[str]
    name: str


@dataclass(frozen=True)
class Other:
    event_type: Optional[str]


InboundEvent = Union[Ready, MessageCreate, InteractionCreate, GuildAvailable, Other]


def _display_name(user: Dict[str, Any]) -> str:
    return str(user.get("global_name") or user.get("username") or user.get("id") or "unknown")


def _ready(data: Dict[str, Any]) -> Optional[Ready]:
    session_id = data.get("session_id")
    if not isinstance(session_id, str):
        return None
    guilds = data.get("guilds")
    user = data.get("user") if isinstance(data.get("user"), dict) else {}
    return Ready(
        session_id=session_id,
        resume_gateway_url=data.get("resume_gateway_url") or None,
        guild_count=len(guilds) if isinstance(guilds, list) else 0,
        username=user.get("username"),
    )


def _message_create(data: Dict[str, Any]) -> Optional[MessageCreate]:
    author = data.get("author")
    channel_id = data.get("channel_id")
    if not isinstance(author, dict) or "id" not in author or channel_id is None:
        return None
    return MessageCreate(
        channel_id=str(channel_id),
        author_id=str(author["id"]),
        author_name=str(author.get("username") or author["id"]),
        author_is_bot=bool(author.get("bot", False)),
        content=str(data.get("content") or ""),
    )


def _interaction_create(data: Dict[str, Any]) -> Optional[InteractionCreate]:
    interaction_id = data.get("id")
    token = data.get("token")
    interaction_type = data.get("type")
    if interaction_id is None or not token or not isinstance(interaction_type, int):
        return None

    # Guild interactions carry member.user, DMs carry user.
    member = data.get("member") if isinstance(data.get("member"), dict) else {}
    user = member.get("user") if isinstance(member.get("user"), dict) else data.get("user")
    if not isinstance(user, dict) or "id" not in user:
        return None

    command = data.get("data") if isinstance(data.get("data"), dict) else {}
    name = command.get("name")
    return InteractionCreate(
        interaction_id=str(interaction_id),
        token=str(token),
        interaction_type=interaction_type,
        command_name=name if isinstance(name, str) else None,
        user_id=str(user["id"]),
        username=_display_name(user),
    )


def _guild_available(data: Dict[str, Any]) -> GuildAvailable:
    guild_id = data.get("id")
    return GuildAvailable(
        guild_id=str(guild_id) if guild_id is not None else None,
        name=str(data.get("name") or "unknown"),
    )


def to_inbound_event(event_type: Optional[str], data: Any) -> InboundEvent:
    if not isinstance(data, dict):
        return Other(event_type)

    event: Optional[InboundEvent] = None
    if event_type == "READY":
        event = _ready(data)
    elif event_type == "MESSAGE_CREATE":
        event = _message_create(data)
    elif event_type == "INTERACTION_CREATE":
        event = _interaction_create(data)
    elif event_type == "GUILD_CREATE":
        event = _guild_available(data)
    return event if event is not None else Other(event_type)


def to_command_request(event: InboundEvent, prefix: str = "!") -> Optional[CommandRequest]:
    """Command carried by ``event``, if any.

    Message commands: the author must not be a bot and the content must
    start with ``prefix``; the name is the first word after the prefix,
    lowercased.  Interaction commands: only application commands count and
    the name is used verbatim.
    """
    if isinstance(event, MessageCreate):
        if event.author_is_bot:
            return None
        content = event.content.strip()
        if not prefix or not content.startswith(prefix):
            return None
        words = content[len(prefix):].split()
        if not words:
            return None
        return CommandRequest(
            command_name=words[0].lower(),
            user_id=event.author_id,
            username=event.author_name,
            reply_target=ChannelTarget(event.channel_id),
        )

    if isinstance(event, InteractionCreate):
        if event.interaction_type != APPLICATION_COMMAND or not event.command_name:
            return None
        return CommandRequest(
            command_name=event.command_name,
            user_id=event.user_id,
            username=event.username,
            reply_target=InteractionTarget(event.interaction_id, event.token),
        )

    return None
