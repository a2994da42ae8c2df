"""github.py – GitHub REST API wrapper

Purpose
-------
Fetches the commits of one repository inside a time window.  Transient
failures (connection errors, timeouts, 429 and 5xx responses) are retried
with exponential back-off; anything else raises :class:`GitHubError`.
"""

from __future__ import annotations

import time
from typing import Any, Callable, Dict, List, Optional

import requests

from checkin_bot.errors import GitHubError
from checkin_bot.helper_functions import logging

__all__ = [
    "list_commits",
]

GITHUB_API_BASE = "https://api.github.com"
REQUEST_TIMEOUT = 30
_TRANSIENT_STATUSES = frozenset({429, 500, 502, 503, 504})


class _TransientGitHubError(GitHubError):
    """Raised internally for failures worth retrying."""


def _retry(
    fn: Callable[[], Any],
    *,
    max_retries: int = 3,
    backoff_factor: float = 2.0,
    initial_delay: float = 1.0,
) -> Any:
    """Retry helper with exponential back-off for transient GitHub errors."""
    attempt = 0
    delay = initial_delay
    while True:
        try:
            return fn()
        except _TransientGitHubError as exc:
            attempt += 1
            if attempt > max_retries:
                logging.log_text(
                    f"GitHub request failed after {attempt} attempts",
                    severity="ERROR",
                )
                raise GitHubError(str(exc)) from exc
            logging.log_text(
                f"GitHub request failed ({exc}). Retrying in {delay:.1f}s (attempt {attempt}/{max_retries})…",
                severity="WARNING",
            )
            time.sleep(delay)
            delay *= backoff_factor


def _headers(token: Optional[str]) -> Dict[str, str]:
    headers = {
        "Accept": "application/vnd.github.v3+json",
        "User-Agent": "checkin-bot-github-reporter",
    }
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return headers


def list_commits(
    token: Optional[str],
    repo: str,
    *,
    since: str,
    until: str,
    per_page: int = 100,
    max_retries: int = 3,
    timeout: float = REQUEST_TIMEOUT,
) -> List[Dict[str, Any]]:
    """Return the raw commit objects of ``repo`` between ``since`` and ``until``.

    Parameters
    ----------
    token:
        Personal access token; anonymous requests are attempted without one.
    repo:
        ``owner/repository``.
    since, until:
        ISO-8601 timestamps (UTC) bounding the commit author date.
    per_page:
        Page size; only the first page is fetched, which is plenty for a
        single day of a small team's work.
    max_retries, timeout:
        Retry budget and per-request timeout in seconds.  Interactive callers
        pass small values so a slow GitHub cannot stall a reply.
    """
    url = f"{GITHUB_API_BASE}/repos/{repo}/commits"
    params = {"since": since, "until": until, "per_page": per_page}

    def _dispatch() -> List[Dict[str, Any]]:
        try:
            response = requests.get(
                url, headers=_headers(token), params=params, timeout=timeout
            )
        except (requests.ConnectionError, requests.Timeout) as exc:
            raise _TransientGitHubError(f"GitHub API unreachable: {exc}") from exc
        except requests.RequestException as exc:
            raise GitHubError(f"GitHub API request failed: {exc}") from exc

        if response.status_code in _TRANSIENT_STATUSES:
            raise _TransientGitHubError(f"GitHub API error: {response.status_code}")
        if not response.ok:
            raise GitHubError(
                f"GitHub API error: {response.status_code} - {response.text[:500]}"
            )

        try:
            commits = response.json()
        except ValueError as exc:
            raise GitHubError("GitHub API returned invalid JSON") from exc
        if not isinstance(commits, list):
            raise GitHubError("GitHub API returned an unexpected payload")
        return commits

    logging.log_text(f"Fetching commits for {repo} between {since} and {until}", severity="DEBUG")
    commits = _retry(_dispatch, max_retries=max_retries)
    logging.log_text(f"GitHub returned {len(commits)} commits for {repo}", severity="DEBUG")
    return commits
