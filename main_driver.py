"""Container entrypoint.

Runs ``checkin-bot listen`` with the process environment.  Extra arguments
are forwarded, e.g. ``python main_driver.py --no-health``.
"""

import os
import sys

from checkin_bot.cli import cli
from checkin_bot.helper_functions import logging

ENV_NAME = os.getenv("ENV_NAME", "dev")


def run_bot(argv=None) -> None:
    """Start the gateway listener; blocks until the bot stops."""

    args = list(sys.argv[1:] if argv is None else argv)
    logging.log_text(f"Check-in bot starting in {ENV_NAME} mode", severity="INFO")
    cli.main(args=["listen", *args], prog_name="checkin-bot")


if __name__ == "__main__":
    run_bot()
