import os
import logging as pylogging
from contextlib import contextmanager
from typing import Any, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from google.cloud import logging as gcp_logging, secretmanager
from google.cloud.sql.connector import Connector


LOCAL_CREDS = os.getenv("LOCAL_CREDS")

if LOCAL_CREDS is not None:
    os.environ["GOOGLE_APPLICATION_CREDENTIALS"] = LOCAL_CREDS


# ---------------------------------------------------------------------------
# Google Cloud Logging setup
# ---------------------------------------------------------------------------
# Every module logs with ``logging.log_text(msg, severity=...)``.  The Cloud
# Logging client is only built on the first call so that importing a module
# never talks to GCP.  ``LOG_TARGET=stdlib`` routes the same calls to the
# standard-library root logger (local runs, CI).

LOG_NAME = f"{os.getenv('ENV_NAME', 'dev')}_checkin_bot"


def _default_log(message: str, *, severity: str = "INFO") -> None:
    """Fallback logger that writes to the stdlib logger of the same name."""
    level = getattr(pylogging, severity.upper(), pylogging.INFO)
    pylogging.getLogger(LOG_NAME).log(level, message)


class _CloudLog:
    """Lazy facade over a Google Cloud ``Logger``."""

    def __init__(self, name: str) -> None:
        self._name = name
        self._logger: Any = None

    def _target(self) -> str:
        return os.getenv("LOG_TARGET", "gcp").lower()

    def log_text(self, text: str, *, severity: str = "INFO") -> None:
        if self._target() == "stdlib":
            _default_log(text, severity=severity)
            return
        if self._logger is None:
            self._logger = gcp_logging.Client().logger(self._name)
        self._logger.log_text(text, severity=severity.upper())


# Re-exported under the well-known name used throughout the package.
logging = _CloudLog(LOG_NAME)


class CloudLoggingHandler(pylogging.Handler):
    """Stdlib logging handler that forwards records to Google Cloud Logging.

    Third-party libraries (aiohttp, werkzeug) log through the stdlib; this
    handler makes their records land next to ours.
    """

    def __init__(self, cloud_log: _CloudLog):
        super().__init__()
        self._cloud_log = cloud_log

    def emit(self, record: pylogging.LogRecord) -> None:
        try:
            msg = self.format(record)
            self._cloud_log.log_text(msg, severity=record.levelname)
        except Exception:  # pragma: no cover – never let logging crash the app
            super().handleError(record)


def configure_root_logging(level: int = pylogging.INFO) -> None:
    """Attach the right handler to the *root* logger exactly once."""

    root_logger = pylogging.getLogger()
    if getattr(root_logger, "_checkin_bot_configured", False):
        return

    if logging._target() == "stdlib":
        handler: pylogging.Handler = pylogging.StreamHandler()
    else:
        handler = CloudLoggingHandler(logging)
        # Our own records already go straight to Cloud Logging.
        handler.addFilter(lambda record: record.name != LOG_NAME)

    handler.setFormatter(
        pylogging.Formatter("%(asctime)s %(levelname)s %(name)s – %(message)s")
    )
    root_logger.setLevel(level)
    root_logger.addHandler(handler)
    root_logger._checkin_bot_configured = True  # type: ignore[attr-defined]


# ---------------------------------------------------------------------------
# Secrets
# ---------------------------------------------------------------------------


def get_secret_value(project_id, secret_id, version_id="latest"):
    """
    Retrieve a secret value from Google Cloud Secret Manager.

    Parameters
    ----------
    project_id : str
        The Google Cloud project ID where the secret is stored
    secret_id : str
        The ID of the secret to retrieve
    version_id : str, optional
        The version of the secret to retrieve, defaults to "latest"

    Returns
    -------
    str
        The secret payload as a UTF-8 decoded string

    Notes
    -----
    Uses Application Default Credentials.  The payload is never logged.
    """
    logging.log_text(
        f"Fetching secret '{secret_id}' from project '{project_id}' (version '{version_id}').",
        severity="DEBUG",
    )
    client = secretmanager.SecretManagerServiceClient()

    name = f"projects/{project_id}/secrets/{secret_id}/versions/{version_id}"
    response = client.access_secret_version(request={"name": name})
    payload = response.payload.data.decode("UTF-8")

    logging.log_text(f"Successfully fetched secret '{secret_id}'.", severity="INFO")
    return payload


def resolve_secret(env_var: str, secret_env_var: str) -> Optional[str]:
    """Return ``env_var`` from the environment, else from Secret Manager.

    The secret id itself is read from ``secret_env_var``; Secret Manager is
    only consulted when both that variable and ``GOOGLE_CLOUD_PROJECT`` are
    set.
    """

    value = os.getenv(env_var)
    if value:
        return value

    secret_id = os.getenv(secret_env_var)
    project_id = os.getenv("GOOGLE_CLOUD_PROJECT")
    if not secret_id or not project_id:
        return None

    try:
        return get_secret_value(project_id, secret_id)
    except Exception as exc:  # pragma: no cover – network / IAM failures
        logging.log_text(
            f"Failed to retrieve {env_var} from Secret Manager: {exc}",
            severity="ERROR",
        )
        return None


# ---------------------------------------------------------------------------
# Database engine
# ---------------------------------------------------------------------------


def create_db_engine(
    database_url: str,
    *,
    cloud_sql_instance: Optional[str] = None,
    db_user: Optional[str] = None,
    db_password: Optional[str] = None,
    db_name: str = "postgres",
) -> Engine:
    """
    Build the SQLAlchemy engine backing the attendance table.

    Parameters
    ----------
    database_url : str
        Any SQLAlchemy URL.  Ignored when ``cloud_sql_instance`` is given.
    cloud_sql_instance : str, optional
        ``project:region:instance`` connection name.  When set, connections
        are opened through the Cloud SQL Python Connector with ``pg8000``.
    db_user, db_password, db_name : str, optional
        Credentials for the Cloud SQL connection.

    Returns
    -------
    sqlalchemy.engine.Engine
    """
    if cloud_sql_instance:
        connector = Connector()
        engine = create_engine(
            "postgresql+pg8000://",
            creator=lambda: connector.connect(
                cloud_sql_instance,
                "pg8000",
                user=db_user,
                password=db_password,
                db=db_name,
            ),
        )
        logging.log_text("Database engine created via Connector.", severity="DEBUG")
        return engine

    kwargs: dict[str, Any] = {}
    if database_url.startswith("sqlite"):
        # Commands run in worker threads.
        kwargs["connect_args"] = {"check_same_thread": False}
        if ":memory:" in database_url or database_url.rstrip("/") == "sqlite:":
            kwargs["poolclass"] = StaticPool

    engine = create_engine(database_url, **kwargs)
    logging.log_text(f"Database engine created for {engine.url.drivername}.", severity="DEBUG")
    return engine


@contextmanager
def engine_scope(database_url: str, **engine_kwargs: Any):
    """
    Context manager that creates and safely disposes of a database engine.

    Yields
    ------
    sqlalchemy.engine.Engine
        A configured engine; disposed of (pool closed) when the context exits.
    """
    engine = create_db_engine(database_url, **engine_kwargs)
    try:
        yield engine
    finally:
        engine.dispose()
        logging.log_text("Database engine disposed.", severity="DEBUG")
