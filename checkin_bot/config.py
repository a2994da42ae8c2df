"""config.py – Process-wide settings

All configuration is read once from environment variables when the bot
starts and is immutable afterwards.  Tokens fall back to Google Secret
Manager (see :pyfunc:`checkin_bot.helper_functions.resolve_secret`) so that
production deployments never need plain-text secrets in the environment.

Environment variables
---------------------
DISCORD_BOT_TOKEN / DISCORD_BOT_TOKEN_SECRET_ID
DISCORD_INTENTS                 Gateway intents bitmask (default 513).
DISCORD_COMMAND_PREFIX          Marker for message commands (default "!").
DISCORD_WEBHOOK_URL             Target of the daily commit summary.
DISCORD_USER_MAPPING            JSON object, GitHub author name -> Discord id.
GITHUB_TOKEN / GITHUB_TOKEN_SECRET_ID
GITHUB_REPO                     ``owner/repository``.
REPORT_TIMEZONE                 IANA zone for "today" (default Asia/Singapore).
DATABASE_URL                    SQLAlchemy URL (default sqlite:///checkins.db).
CLOUD_SQL_INSTANCE, API_DB_USER, API_DB_PASSWORD_SECRET_ID, API_DB_NAME
GATEWAY_RECONNECT_BASE_DELAY, GATEWAY_RECONNECT_MAX_DELAY,
GATEWAY_RECONNECT_MAX_ATTEMPTS
PORT                            Health endpoint port (default 8080).
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from checkin_bot.errors import ConfigurationError
from checkin_bot.helper_functions import logging, resolve_secret

__all__ = [
    "DEFAULT_INTENTS",
    "Settings",
    "load_settings",
]

# GUILDS (1 << 0) | GUILD_MESSAGES (1 << 9)
DEFAULT_INTENTS = 513


@dataclass(frozen=True)
class Settings:
    bot_token: Optional[str] = None
    intents: int = DEFAULT_INTENTS
    command_prefix: str = "!"
    webhook_url: Optional[str] = None
    github_token: Optional[str] = None
    github_repo: Optional[str] = None
    user_mapping: Mapping[str, str] = field(default_factory=dict)
    report_timezone: str = "Asia/Singapore"
    database_url: str = "sqlite:///checkins.db"
    cloud_sql_instance: Optional[str] = None
    db_user: Optional[str] = None
    db_password: Optional[str] = None
    db_name: str = "postgres"
    reconnect_base_delay: float = 1.0
    reconnect_max_delay: float = 60.0
    reconnect_max_attempts: int = 10
    port: int = 8080

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.report_timezone)

    def engine_kwargs(self) -> Dict[str, Optional[str]]:
        """Keyword arguments for :pyfunc:`helper_functions.create_db_engine`."""
        return {
            "cloud_sql_instance": self.cloud_sql_instance,
            "db_user": self.db_user,
            "db_password": self.db_password,
            "db_name": self.db_name,
        }


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from exc


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from exc


def _user_mapping_env() -> Dict[str, str]:
    raw = os.getenv("DISCORD_USER_MAPPING")
    if not raw:
        return {}
    try:
        mapping = json.loads(raw)
    except ValueError as exc:
        raise ConfigurationError("DISCORD_USER_MAPPING is not valid JSON") from exc
    if not isinstance(mapping, dict):
        raise ConfigurationError("DISCORD_USER_MAPPING must be a JSON object")
    return {str(github_name): str(discord_id) for github_name, discord_id in mapping.items()}


def load_settings() -> Settings:
    """Build :class:`Settings` from the current environment."""

    report_timezone = os.getenv("REPORT_TIMEZONE", "Asia/Singapore")
    try:
        ZoneInfo(report_timezone)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ConfigurationError(f"Unknown REPORT_TIMEZONE {report_timezone!r}") from exc

    cloud_sql_instance = os.getenv("CLOUD_SQL_INSTANCE") or None
    db_password = None
    if cloud_sql_instance:
        db_password = resolve_secret("API_DB_PASSWORD", "API_DB_PASSWORD_SECRET_ID")

    settings = Settings(
        bot_token=resolve_secret("DISCORD_BOT_TOKEN", "DISCORD_BOT_TOKEN_SECRET_ID"),
        intents=_int_env("DISCORD_INTENTS", DEFAULT_INTENTS),
        command_prefix=os.getenv("DISCORD_COMMAND_PREFIX", "!") or "!",
        webhook_url=os.getenv("DISCORD_WEBHOOK_URL") or None,
        github_token=resolve_secret("GITHUB_TOKEN", "GITHUB_TOKEN_SECRET_ID"),
        github_repo=os.getenv("GITHUB_REPO") or None,
        user_mapping=_user_mapping_env(),
        report_timezone=report_timezone,
        database_url=os.getenv("DATABASE_URL", "sqlite:///checkins.db"),
        cloud_sql_instance=cloud_sql_instance,
        db_user=os.getenv("API_DB_USER") or None,
        db_password=db_password,
        db_name=os.getenv("API_DB_NAME", "postgres"),
        reconnect_base_delay=_float_env("GATEWAY_RECONNECT_BASE_DELAY", 1.0),
        reconnect_max_delay=_float_env("GATEWAY_RECONNECT_MAX_DELAY", 60.0),
        reconnect_max_attempts=_int_env("GATEWAY_RECONNECT_MAX_ATTEMPTS", 10),
        port=_int_env("PORT", 8080),
    )

    logging.log_text(
        f"Settings loaded (repo={settings.github_repo!r}, intents={settings.intents}, "
        f"timezone={settings.report_timezone}, bot token present={settings.bot_token is not None})",
        severity="INFO",
    )
    return settings
