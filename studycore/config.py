"""
Configuration - environment-driven settings for the review scheduler.

Values are read from the process environment (optionally populated from a
``.env`` file). The remote store is optional: without ``DATABASE_URL`` the
scheduler runs in local-only mode.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


LOCAL_DB_DIR = Path("logs")
DEFAULT_REMOTE_TIMEOUT_SECONDS = 10.0
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def is_test_mode() -> bool:
    """Check if running in test mode."""
    return os.getenv("TEST_MODE", "false").lower() == "true"


def get_database_url() -> Optional[str]:
    """
    Get the remote database URL from environment variables.

    In test mode the production database name ``learning_db`` is replaced
    with ``test_learning_db`` in the connection string.

    Returns:
        Database URL, or None when no remote store is configured
    """
    base_url = os.getenv("DATABASE_URL")
    if not base_url:
        return None

    if is_test_mode():
        return base_url.replace("learning_db", "test_learning_db")

    return base_url


def get_local_db_path() -> Path:
    """
    Get the on-device store path.

    ``LOCAL_DB_PATH`` wins when set; otherwise a file under ``logs/`` is used,
    with a separate file in test mode.
    """
    override = os.getenv("LOCAL_DB_PATH")
    if override:
        return Path(override)

    db_name = "test_local_schedule.sqlite" if is_test_mode() else "local_schedule.sqlite"
    return LOCAL_DB_DIR / db_name


def get_remote_timeout() -> float:
    """Seconds to wait for a single remote store call before giving up."""
    raw = os.getenv("REMOTE_TIMEOUT_SECONDS")
    if not raw:
        return DEFAULT_REMOTE_TIMEOUT_SECONDS
    try:
        return float(raw)
    except ValueError:
        logging.getLogger(__name__).warning(
            "Ignoring invalid REMOTE_TIMEOUT_SECONDS=%r", raw
        )
        return DEFAULT_REMOTE_TIMEOUT_SECONDS


def configure_logging(level: Optional[str] = None) -> None:
    """
    Set up root logging for scripts.

    Args:
        level: Log level name; defaults to ``LOG_LEVEL`` or INFO
    """
    level_name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(level=getattr(logging, level_name, logging.INFO), format=LOG_FORMAT)
