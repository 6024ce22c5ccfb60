"""Runtime settings read from the environment (and a local .env file)."""
from __future__ import annotations
import logging
import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


API_BASE_URL = os.getenv("APPOINTMENTS_API_BASE_URL", "http://localhost:8080")
HTTP_TIMEOUT = float(os.getenv("APPOINTMENTS_HTTP_TIMEOUT", "15"))
HTTP2 = _get_bool(os.getenv("APPOINTMENTS_HTTP2"), default=True)

# seconds between unread-count refreshes
NOTIFICATION_POLL_INTERVAL = float(os.getenv("NOTIFICATION_POLL_INTERVAL", "30"))

SESSION_FILE = Path(
    os.getenv("APPOINTMENTS_SESSION_FILE", str(Path.home() / ".appointments_client" / "session.json"))
).expanduser()

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


def configure_logging() -> None:
    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    # Reduce verbosity of third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
