"""reports.py – Daily GitHub commit reports

Builds Discord message payloads (``content`` / ``embeds``) describing the
commits pushed to the configured repository during the current local day.

Two consumers:

* :pyfunc:`CommitReporter.generate_report` – attached to a user's
  ``checkout`` reply; covers that user's commits only.
* :pyfunc:`CommitReporter.post_daily_report` – the scheduled team summary
  delivered to the Discord webhook.

"Today" is the calendar day in ``Settings.report_timezone``; reports are
skipped on Saturdays and Sundays.
"""

from __future__ import annotations

from datetime import datetime, time, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from checkin_bot.config import Settings
from checkin_bot.connections import discord_rest, github
from checkin_bot.errors import GitHubError, ReportError
from checkin_bot.helper_functions import logging

__all__ = [
    "CommitReporter",
    "ReportPayload",
]

ReportPayload = Dict[str, Any]

REPORT_HEADER = "📋 **Daily GitHub Activity Report**"
COLOR_SUMMARY = 0x0099FF
COLOR_USER = 0x00FF00
COLOR_EMPTY = 0xFFA500
MAX_COMMITS_PER_USER = 5
MAX_MESSAGE_LENGTH = 100
# Discord rejects fields longer than this and messages with more than ten embeds.
MAX_FIELD_LENGTH = 1024
MAX_EMBEDS = 10


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_github_date(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _commit_date(commit: Dict[str, Any]) -> Optional[datetime]:
    raw = ((commit.get("commit") or {}).get("author") or {}).get("date")
    if not raw:
        return None
    try:
        return _parse_github_date(raw)
    except ValueError:
        return None


def _commit_author(commit: Dict[str, Any]) -> str:
    return ((commit.get("commit") or {}).get("author") or {}).get("name") or "unknown"


def truncate_message(message: str, length: int = MAX_MESSAGE_LENGTH) -> str:
    """First line of a commit message, cut to ``length`` characters."""
    first_line = message.split("\n", 1)[0]
    return first_line[:length] + "..." if len(first_line) > length else first_line


def _plural(count: int) -> str:
    return f"{count} commit" + ("s" if count != 1 else "")


class CommitReporter:
    """Fetches today's commits and renders them as Discord embeds."""

    def __init__(
        self,
        settings: Settings,
        *,
        clock: Callable[[], datetime] = _utcnow,
        fetch_commits: Callable[..., List[Dict[str, Any]]] = github.list_commits,
        post_webhook: Callable[[str, Dict[str, Any]], bool] = discord_rest.post_webhook,
    ) -> None:
        self._settings = settings
        self._tz = settings.tz
        self._clock = clock
        self._fetch_commits = fetch_commits
        self._post_webhook = post_webhook

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _now_local(self) -> datetime:
        return self._clock().astimezone(self._tz)

    def _today_label(self) -> str:
        return self._now_local().strftime("%Y-%m-%d")

    def _footer(self) -> Dict[str, str]:
        generated = self._now_local().strftime("%Y-%m-%d %H:%M:%S")
        return {"text": f"Generated at {generated} ({self._settings.report_timezone})"}

    def is_weekend(self) -> bool:
        return self._now_local().weekday() >= 5

    def today_window(self) -> Tuple[datetime, datetime]:
        """UTC bounds of the current local day."""
        day = self._now_local().date()
        start = datetime.combine(day, time.min, tzinfo=self._tz)
        end = start + timedelta(days=1) - timedelta(microseconds=1)
        return start.astimezone(timezone.utc), end.astimezone(timezone.utc)

    def github_username_for(self, discord_user_id: str) -> Optional[str]:
        for github_name, discord_id in self._settings.user_mapping.items():
            if discord_id == discord_user_id:
                return github_name
        return None

    def discord_id_for(self, author_name: str, author_email: str = "") -> Optional[str]:
        """Map a commit author to a Discord id by name, email, then case-insensitive name."""
        mapping = self._settings.user_mapping
        if author_name in mapping:
            return mapping[author_name]
        if author_email and author_email in mapping:
            return mapping[author_email]
        for github_name, discord_id in mapping.items():
            if github_name.lower() == author_name.lower():
                return discord_id
        return None

    # ------------------------------------------------------------------
    # Data
    # ------------------------------------------------------------------

    def fetch_today_commits(self) -> List[Dict[str, Any]]:
        """Today's non-merge commits, newest first.

        Raises
        ------
        GitHubError
            The GitHub API call failed.
        """
        repo = self._settings.github_repo
        if not repo:
            raise GitHubError("GITHUB_REPO is not configured")

        start, end = self.today_window()
        commits = self._fetch_commits(
            self._settings.github_token,
            repo,
            since=start.isoformat().replace("+00:00", "Z"),
            until=end.isoformat().replace("+00:00", "Z"),
        )

        today = self._now_local().date()
        kept: List[Tuple[datetime, Dict[str, Any]]] = []
        for commit in commits:
            message = ((commit.get("commit") or {}).get("message") or "").lower()
            if "merge" in message:
                continue
            committed_at = _commit_date(commit)
            if committed_at is None or committed_at.astimezone(self._tz).date() != today:
                continue
            kept.append((committed_at, commit))

        kept.sort(key=lambda item: item[0], reverse=True)
        return [commit for _, commit in kept]

    def group_by_author(self, commits: List[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
        grouped: Dict[str, Dict[str, Any]] = {}
        for commit in commits:
            name = _commit_author(commit)
            entry = grouped.setdefault(
                name,
                {
                    "commits": [],
                    "email": ((commit.get("commit") or {}).get("author") or {}).get("email", ""),
                },
            )
            entry["commits"].append(commit)
        return grouped

    # ------------------------------------------------------------------
    # Embeds
    # ------------------------------------------------------------------

    def no_commits_report(self) -> ReportPayload:
        repo = self._settings.github_repo or "repository"
        embed = {
            "title": f"📊 Daily Commit Report - {repo}",
            "description": f"No commits found for {self._today_label()}",
            "color": COLOR_EMPTY,
            "footer": self._footer(),
            "fields": [
                {
                    "name": "😴 No commits today",
                    "value": "No commits were made today.\nTime to get coding! 💻",
                    "inline": False,
                }
            ],
        }
        return {"content": REPORT_HEADER, "embeds": [embed]}

    def user_commits_embed(self, author_name: str, commits: List[Dict[str, Any]]) -> Dict[str, Any]:
        lines: List[str] = []
        for commit in commits[:MAX_COMMITS_PER_USER]:
            message = truncate_message((commit.get("commit") or {}).get("message") or "No message")
            sha = (commit.get("sha") or "")[:7]
            committed_at = _commit_date(commit)
            clock = committed_at.astimezone(self._tz).strftime("%H:%M") if committed_at else "--:--"
            url = commit.get("html_url") or ""
            lines.append(f"**[{sha}]({url})** - {clock}\n└ {message}\n")

        value = "\n".join(lines)[:MAX_FIELD_LENGTH] or "No commits."
        return {
            "title": f"👤 {author_name}'s Commits",
            "description": f"{_plural(len(commits))} on {self._today_label()}",
            "color": COLOR_USER,
            "timestamp": self._clock().isoformat(),
            "fields": [{"name": "📝 Commits", "value": value, "inline": False}],
        }

    def summary_embed(self, commits_by_author: Dict[str, Dict[str, Any]]) -> Dict[str, Any]:
        total = sum(len(entry["commits"]) for entry in commits_by_author.values())
        contributors = []
        for author_name, entry in commits_by_author.items():
            discord_id = self.discord_id_for(author_name, entry.get("email", ""))
            display = f"<@{discord_id}>" if discord_id else author_name
            contributors.append(f"{display} ({_plural(len(entry['commits']))})")

        return {
            "title": f"📊 Daily Commit Report - {self._settings.github_repo}",
            "description": f"Summary for {self._today_label()}",
            "color": COLOR_SUMMARY,
            "timestamp": self._clock().isoformat(),
            "footer": self._footer(),
            "fields": [
                {
                    "name": "📈 Summary",
                    "value": f"**Total commits:** {total}\n**Contributors:** {len(commits_by_author)}",
                    "inline": True,
                },
                {
                    "name": "👥 Contributors",
                    "value": "\n".join(contributors)[:MAX_FIELD_LENGTH],
                    "inline": False,
                },
            ],
        }

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def generate_report(self, discord_user_id: str) -> ReportPayload:
        """Report payload for one user's checkout reply.

        Returns an empty dict on weekends, when the repository is not
        configured, or when the user has no commits today while others do.
        """
        if self.is_weekend():
            return {}
        if not self._settings.github_repo:
            logging.log_text(
                "GITHUB_REPO not configured – skipping commit report.", severity="WARNING"
            )
            return {}

        commits = self.fetch_today_commits()
        if not commits:
            return self.no_commits_report()

        github_name = self.github_username_for(discord_user_id)
        if github_name is None:
            logging.log_text(
                f"No GitHub mapping for Discord user {discord_user_id}", severity="INFO"
            )
            return {}

        own = [c for c in commits if _commit_author(c) == github_name]
        if not own:
            return {}
        return {"embeds": [self.user_commits_embed(github_name, own)]}

    def build_daily_summary(self) -> ReportPayload:
        """Team-wide payload: summary embed followed by one embed per author."""
        commits = self.fetch_today_commits()
        if not commits:
            return self.no_commits_report()

        grouped = self.group_by_author(commits)
        embeds = [self.summary_embed(grouped)]
        for author_name, entry in grouped.items():
            if len(embeds) >= MAX_EMBEDS:
                break
            embeds.append(self.user_commits_embed(author_name, entry["commits"]))
        return {"content": REPORT_HEADER, "embeds": embeds}

    def post_daily_report(self) -> Optional[ReportPayload]:
        """Build the team summary and deliver it to the webhook.

        Returns the payload sent, or ``None`` on weekends.

        Raises
        ------
        ReportError
            Missing webhook, GitHub failure, or webhook delivery failure.
        """
        if self.is_weekend():
            logging.log_text("Weekend – daily report skipped.", severity="INFO")
            return None
        if not self._settings.webhook_url:
            raise ReportError("DISCORD_WEBHOOK_URL is not configured")

        try:
            payload = self.build_daily_summary()
        except GitHubError as exc:
            logging.log_text(f"GitHub reporting failed: {exc}", severity="ERROR")
            raise ReportError(str(exc)) from exc

        if not self._post_webhook(self._settings.webhook_url, payload):
            raise ReportError("Discord webhook delivery failed")

        logging.log_text(
            f"Daily report posted with {len(payload.get('embeds', []))} embeds.", severity="INFO"
        )
        return payload
