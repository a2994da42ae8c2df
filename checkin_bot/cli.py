"""cli.py – Check-in Bot Command-Line Interface

Click-based entry point for running the bot and its one-shot jobs.

Usage examples
--------------
# Run the gateway listener (health endpoint on $PORT)
$ checkin-bot listen

# Post today's team commit summary to the Discord webhook (cron / Cloud Scheduler)
$ checkin-bot report

# Print the payloads instead of posting them
$ checkin-bot report --dry-run
$ checkin-bot report --user-id 1164018590295527424

# Create the attendance table
$ checkin-bot init-db
"""

from __future__ import annotations

import asyncio
import functools
import json
import logging as pylogging
import threading
from typing import Any, Dict

import click

from checkin_bot import create_app
from checkin_bot.config import Settings, load_settings
from checkin_bot.connections import github
from checkin_bot.database.attendance import AttendanceStore
from checkin_bot.errors import (
    ConfigurationError,
    DiscoveryError,
    GatewayClosedError,
    GitHubError,
    ReconnectExhausted,
    ReportError,
)
from checkin_bot.gateway.client import GatewayClient
from checkin_bot.helper_functions import (
    configure_root_logging,
    create_db_engine,
    engine_scope,
    logging,
)
from checkin_bot.reports import CommitReporter
from checkin_bot.verbs import CommandHandler

# Discord rejects interaction replies sent more than 3 s after the command, so
# the checkout report gets one short GitHub attempt.
CHECKOUT_REPORT_TIMEOUT = 2.0

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _settings(ctx: click.Context) -> Settings:
    return ctx.obj["settings"]


def _echo_json(payload: Dict[str, Any]) -> None:
    click.echo(json.dumps(payload, indent=2, ensure_ascii=False))


def _start_health_server(app, port: int) -> threading.Thread:
    """Serve the Flask health app from a daemon thread."""
    thread = threading.Thread(
        target=app.run,
        kwargs={"host": "0.0.0.0", "port": port, "debug": False, "use_reloader": False},
        name="health-server",
        daemon=True,
    )
    thread.start()
    logging.log_text(f"Health endpoint listening on port {port}", severity="INFO")
    return thread


# ---------------------------------------------------------------------------
# Click entry-point
# ---------------------------------------------------------------------------


@click.group()
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="INFO",
    show_default=True,
    help="Minimum level for stdlib log records (aiohttp, werkzeug).",
)
@click.pass_context
def cli(ctx: click.Context, log_level: str):  # noqa: D401 – Click callback
    """Discord check-in bot."""

    configure_root_logging(getattr(pylogging, log_level.upper()))
    try:
        ctx.obj = {"settings": load_settings()}
    except ConfigurationError as exc:
        raise click.ClickException(str(exc)) from exc


# ---------------------------------------------------------------------------
# `listen` command – gateway session
# ---------------------------------------------------------------------------


@cli.command("listen", help="Connect to the Discord Gateway and serve commands.")
@click.option(
    "--health/--no-health",
    default=True,
    help="Serve the liveness endpoint alongside the gateway loop.",
)
@click.option("--port", type=int, default=None, help="Health endpoint port (default: $PORT).")
@click.option(
    "--init-db/--no-init-db",
    default=True,
    help="Create the attendance table when it does not exist yet.",
)
@click.pass_context
def listen_command(ctx: click.Context, health: bool, port: int | None, init_db: bool) -> None:
    settings = _settings(ctx)

    store = AttendanceStore(
        create_db_engine(settings.database_url, **settings.engine_kwargs()), settings.tz
    )
    if init_db:
        store.create_schema()

    reporter = CommitReporter(
        settings,
        fetch_commits=functools.partial(
            github.list_commits, max_retries=0, timeout=CHECKOUT_REPORT_TIMEOUT
        ),
    )
    handler = CommandHandler(store, reporter.generate_report, settings.tz)
    client = GatewayClient(settings, handler)

    if health:
        _start_health_server(create_app(client.status), port or settings.port)

    logging.log_text("Starting Discord bot...", severity="INFO")
    try:
        asyncio.run(client.run())
    except DiscoveryError as exc:
        raise click.ClickException(f"Gateway discovery failed: {exc}") from exc
    except (GatewayClosedError, ReconnectExhausted) as exc:
        logging.log_text(f"Gateway stopped: {exc}", severity="CRITICAL")
        raise click.ClickException(str(exc)) from exc
    except KeyboardInterrupt:
        logging.log_text("Interrupted – shutting down.", severity="INFO")
    finally:
        store.dispose()


# ---------------------------------------------------------------------------
# `report` command – daily commit summary
# ---------------------------------------------------------------------------


@cli.command("report", help="Post today's commit summary to the Discord webhook.")
@click.option(
    "--user-id",
    default=None,
    metavar="DISCORD_ID",
    help="Print the checkout report of one Discord user instead.",
)
@click.option("--dry-run", is_flag=True, help="Print the summary payload instead of posting it.")
@click.pass_context
def report_command(ctx: click.Context, user_id: str | None, dry_run: bool) -> None:
    reporter = CommitReporter(_settings(ctx))

    try:
        if user_id:
            _echo_json(reporter.generate_report(user_id))
        elif dry_run:
            _echo_json(reporter.build_daily_summary())
        else:
            payload = reporter.post_daily_report()
            if payload is None:
                click.echo("Weekend – no report posted.")
            else:
                click.echo(f"Daily report posted ({len(payload.get('embeds', []))} embeds).")
    except (GitHubError, ReportError) as exc:
        raise click.ClickException(f"Reporting failed: {exc}") from exc


# ---------------------------------------------------------------------------
# `init-db` command
# ---------------------------------------------------------------------------


@cli.command("init-db", help="Create the attendance table.")
@click.pass_context
def init_db_command(ctx: click.Context) -> None:
    settings = _settings(ctx)
    with engine_scope(settings.database_url, **settings.engine_kwargs()) as engine:
        AttendanceStore(engine, settings.tz).create_schema()
    click.echo("Attendance table ready.")


if __name__ == "__main__":  # pragma: no cover – manual execution shortcut
    cli()  # pylint: disable=no-value-for-parameter
