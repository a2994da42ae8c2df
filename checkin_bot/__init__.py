"""
Check-in Bot – Discord attendance tracking with daily commit reports

The long-running part of this package is the Discord Gateway client
(:pymod:`checkin_bot.gateway`).  This module only provides the small Flask
application that exposes its health to Cloud Run / load balancers while the
gateway loop runs in the foreground.

Routes
------
GET /        Liveness.  Always 200 while the process serves HTTP.
GET /ready   Readiness.  200 once the gateway session is READY, else 503.
"""

from typing import Any, Callable, Dict, Optional

from flask import Flask, jsonify, request
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

from checkin_bot.helper_functions import logging

__version__ = "0.1.0"

StatusProvider = Callable[[], Dict[str, Any]]

# Session states in which the bot is serving commands.
READY_STATES = frozenset({"ready", "awaiting_heartbeat_ack"})

# Module level so tests and the CLI share one limiter across app instances.
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["120 per minute"],
    storage_uri="memory://",
)


def create_app(status_provider: Optional[StatusProvider] = None) -> Flask:
    """Build the health application.

    Parameters
    ----------
    status_provider:
        Zero-argument callable returning the gateway status snapshot (see
        :pyfunc:`checkin_bot.gateway.client.GatewayClient.status`).  When
        omitted, ``/`` reports process liveness only and ``/ready`` is 503.
    """

    app = Flask(__name__)
    limiter.init_app(app)

    def _gateway() -> Optional[Dict[str, Any]]:
        return status_provider() if status_provider is not None else None

    # -- probes ------------------------------------------------------------

    @app.get("/")
    @limiter.exempt
    def liveness():
        body: Dict[str, Any] = {"status": "ok"}
        gateway = _gateway()
        if gateway is not None:
            body["gateway"] = gateway
        return jsonify(body), 200

    @app.get("/ready")
    def readiness():
        gateway = _gateway() or {}
        ready = gateway.get("state") in READY_STATES
        body = {"status": "ready" if ready else "starting", "gateway": gateway}
        return jsonify(body), 200 if ready else 503

    # -- errors ------------------------------------------------------------

    @app.errorhandler(429)  # type: ignore[arg-type]
    def too_many_probes(error):
        logging.log_text(
            f"Health probe throttled on {request.path} from "
            f"{request.remote_addr or 'unknown'}: {error}",
            severity="WARNING",
        )
        return jsonify({"status": "error", "message": "Too many health probes."}), 429

    logging.log_text(f"Health application {__version__} initialised", severity="INFO")
    return app
