"""discord_rest.py – Discord REST API wrapper

Purpose
-------
Centralizes every HTTP call the bot makes against Discord:

* gateway discovery (``GET /gateway/bot``) – the only call allowed to raise,
  because the bot cannot start without it;
* channel replies to prefixed message commands;
* interaction callbacks for slash commands;
* webhook posts for the daily commit report.

Reply paths are fire-and-forget: failures are logged and reported through
the boolean return value, never raised, so a Discord outage cannot tear
down the gateway session.  All functions are blocking (``requests``); the
gateway runs them through :pyfunc:`asyncio.to_thread`.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import requests

from checkin_bot.errors import DiscoveryError
from checkin_bot.helper_functions import logging

__all__ = [
    "DISCORD_API_BASE",
    "INTERACTION_CALLBACK_CHANNEL_MESSAGE",
    "get_gateway_bot",
    "send_channel_message",
    "send_interaction_response",
    "post_webhook",
]

DISCORD_API_BASE = "https://discord.com/api/v10"
USER_AGENT = "DiscordBot (https://github.com/checkin-bot, 0.1.0)"
REQUEST_TIMEOUT = 30

# Interaction callback type 4: CHANNEL_MESSAGE_WITH_SOURCE
INTERACTION_CALLBACK_CHANNEL_MESSAGE = 4


def _headers(token: str) -> Dict[str, str]:
    return {
        "Authorization": f"Bot {token}",
        "Content-Type": "application/json",
        "User-Agent": USER_AGENT,
    }


def _post(url: str, payload: Dict[str, Any], headers: Dict[str, str], what: str) -> bool:
    """POST *payload* as JSON; log and swallow transport / HTTP failures."""
    try:
        response = requests.post(url, json=payload, headers=headers, timeout=REQUEST_TIMEOUT)
    except requests.RequestException as exc:
        logging.log_text(f"Failed to send {what}: {exc}", severity="ERROR")
        return False

    if not response.ok:
        logging.log_text(
            f"Failed to send {what}: HTTP {response.status_code} – {response.text[:500]}",
            severity="ERROR",
        )
        return False

    logging.log_text(f"{what.capitalize()} sent successfully", severity="DEBUG")
    return True


def get_gateway_bot(token: Optional[str]) -> str:
    """Return the websocket base URL advertised by ``GET /gateway/bot``.

    Raises
    ------
    DiscoveryError
        The token is missing, the request failed, the response was not 2xx
        or it carried no ``url``.
    """
    if not token:
        raise DiscoveryError("Discord bot token not configured")

    try:
        response = requests.get(
            f"{DISCORD_API_BASE}/gateway/bot",
            headers=_headers(token),
            timeout=REQUEST_TIMEOUT,
        )
    except requests.RequestException as exc:
        raise DiscoveryError(f"Gateway discovery request failed: {exc}") from exc

    if not response.ok:
        raise DiscoveryError(
            f"Failed to get gateway URL: HTTP {response.status_code} – {response.text[:500]}"
        )

    try:
        url = response.json().get("url")
    except (ValueError, AttributeError) as exc:
        raise DiscoveryError("Gateway discovery returned a malformed body") from exc

    if not isinstance(url, str) or not url:
        raise DiscoveryError("Gateway discovery response has no url")
    return url


def send_channel_message(token: str, channel_id: str, payload: Dict[str, Any]) -> bool:
    """Post ``payload`` (``content`` and/or ``embeds``) to a channel."""
    return _post(
        f"{DISCORD_API_BASE}/channels/{channel_id}/messages",
        payload,
        _headers(token),
        f"message to channel {channel_id}",
    )


def send_interaction_response(
    token: str,
    interaction_id: str,
    interaction_token: str,
    payload: Dict[str, Any],
) -> bool:
    """Answer an interaction with a channel message (callback type 4)."""
    return _post(
        f"{DISCORD_API_BASE}/interactions/{interaction_id}/{interaction_token}/callback",
        {"type": INTERACTION_CALLBACK_CHANNEL_MESSAGE, "data": payload},
        _headers(token),
        f"interaction response for {interaction_id}",
    )


def post_webhook(webhook_url: str, payload: Dict[str, Any]) -> bool:
    """Execute a Discord webhook.  The URL itself carries the credentials."""
    return _post(
        webhook_url,
        payload,
        {"Content-Type": "application/json", "User-Agent": USER_AGENT},
        "webhook report",
    )
