from __future__ import annotations

"""verbs.py – Commands the bot executes on behalf of a user

This module exposes *verbs* – the actions behind ``checkin``, ``checkout``,
``status`` and ``ping``.  The gateway turns a Discord message or slash
command into a :class:`CommandRequest`; :class:`CommandHandler` maps it onto
the attendance store and the commit reporter and returns the :class:`Reply`
to send back.

Verbs never raise: any collaborator failure becomes a user-visible "command
failed" reply so that one broken command cannot tear down the gateway
session.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Union

from checkin_bot.database.attendance import AttendanceStore
from checkin_bot.database.models import elapsed_minutes
from checkin_bot.helper_functions import logging

__all__ = [
    "ChannelTarget",
    "CommandHandler",
    "CommandRequest",
    "InteractionTarget",
    "RECOGNIZED_COMMANDS",
    "Reply",
]

RECOGNIZED_COMMANDS = frozenset({"checkin", "checkout", "status", "ping"})


# ---------------------------------------------------------------------------
# Request / reply types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ChannelTarget:
    channel_id: str


@dataclass(frozen=True)
class InteractionTarget:
    interaction_id: str
    token: str


ReplyTarget = Union[ChannelTarget, InteractionTarget]


@dataclass(frozen=True)
class CommandRequest:
    command_name: str
    user_id: str
    username: str
    reply_target: ReplyTarget


@dataclass
class Reply:
    content: Optional[str] = None
    embeds: List[Dict[str, Any]] = field(default_factory=list)

    def to_payload(self) -> Dict[str, Any]:
        """Discord message body; empty keys are omitted."""
        payload: Dict[str, Any] = {}
        if self.content:
            payload["content"] = self.content
        if self.embeds:
            payload["embeds"] = self.embeds
        return payload


# ---------------------------------------------------------------------------
# Handler
# ---------------------------------------------------------------------------


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CommandHandler:
    """Maps normalized commands onto attendance bookkeeping.

    Parameters
    ----------
    store:
        The attendance record store.
    generate_report:
        ``generate_report(user_id) -> dict`` – commit report attached to
        checkout replies.  Failures degrade to a checkout without a report.
    tz:
        Time zone used to render clock times.
    clock:
        Returns the current aware UTC time; injectable for tests.
    """

    def __init__(
        self,
        store: AttendanceStore,
        generate_report: Callable[[str], Dict[str, Any]],
        tz,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._generate_report = generate_report
        self._tz = tz
        self._clock = clock
        self._verbs: Dict[str, Callable[[CommandRequest], Reply]] = {
            "checkin": self.check_in,
            "checkout": self.check_out,
            "status": self.status,
            "ping": self.ping,
        }

    def _hhmm(self, moment: datetime) -> str:
        return moment.astimezone(self._tz).strftime("%H:%M")

    def handle(self, request: CommandRequest) -> Optional[Reply]:
        """Run the verb named by ``request``.

        Unknown names are answered only for slash commands; plain messages
        with an unknown ``!`` command get no reply at all.
        """
        verb = self._verbs.get(request.command_name)
        if verb is None:
            if isinstance(request.reply_target, InteractionTarget):
                return Reply(content=f"❌ Unknown command: /{request.command_name}")
            return None

        logging.log_text(
            f"Command '{request.command_name}' from {request.username} ({request.user_id})",
            severity="INFO",
        )
        try:
            return verb(request)
        except Exception as exc:
            logging.log_text(
                f"Command '{request.command_name}' failed for {request.user_id}: {exc!r}",
                severity="ERROR",
            )
            return Reply(
                content=(
                    f"❌ Sorry {request.username}, the `{request.command_name}` command "
                    "failed. Please try again later."
                )
            )

    # ------------------------------------------------------------------
    # Verbs
    # ------------------------------------------------------------------

    def check_in(self, request: CommandRequest) -> Reply:
        now = self._clock()
        record, created = self._store.check_in(request.user_id, request.username, now)
        if not created:
            return Reply(
                content=(
                    f"⚠️ {request.username}, you're already checked in today at "
                    f"{self._hhmm(record.checkin_at_utc)}!"
                )
            )
        return Reply(
            content=(
                f"✅ {request.username} checked in successfully at {self._hhmm(now)}! "
                "Have a productive day! 🚀"
            )
        )

    def _report_for(self, user_id: str) -> Dict[str, Any]:
        try:
            return self._generate_report(user_id) or {}
        except Exception as exc:
            logging.log_text(f"Commit report failed for {user_id}: {exc!r}", severity="WARNING")
            return {}

    def check_out(self, request: CommandRequest) -> Reply:
        report = self._report_for(request.user_id)
        report_embeds = list(report.get("embeds", []))

        now = self._clock()
        record = self._store.check_out(request.user_id, now)
        if record is None:
            content = f"❌ {request.username}, you haven't checked in today or already checked out!"
            if not report:
                content += "\n\nYou have not committed anything yet. 🥀"
            return Reply(content=content, embeds=report_embeds)

        hours, minutes = divmod(elapsed_minutes(record.checkin_at_utc, now), 60)
        content = (
            f"✅ {request.username} checked out at {self._hhmm(now)}!\n"
            f"⏱️ Total time worked: {hours}hours {minutes}minutes\n\n"
            "Great work today! 🎉"
        )
        return Reply(content=content, embeds=report_embeds)

    def status(self, request: CommandRequest) -> Reply:
        now = self._clock()
        record = self._store.todays_checkin(request.user_id, now)
        if record is None:
            return Reply(
                content=(
                    f"📊 {request.username}, you haven't checked in today yet. "
                    "Use `checkin` to start your day!"
                )
            )

        if not record.is_checked_in:
            return Reply(
                content=(
                    f"📊 **{request.username}'s Status:** Already checked out\n"
                    f"⏱️ Total time worked: {record.formatted_worked_time}"
                )
            )

        hours, minutes = divmod(elapsed_minutes(record.checkin_at_utc, now), 60)
        return Reply(
            content=(
                f"📊 **{request.username}'s Status:** Currently checked in\n"
                f"🕐 Checked in at: {self._hhmm(record.checkin_at_utc)}\n"
                f"⏱️ Time elapsed: {hours}h {minutes}m"
            )
        )

    def ping(self, request: CommandRequest) -> Reply:
        return Reply(content="🏓 Pong! Bot is working perfectly!")
