"""
Logging for cartsync.

Every module logs under the ``cartsync`` namespace:

    from cartsync.logging import get_logger
    logger = get_logger(__name__)

Only that namespace is configured, and only when the host application has not
set up logging itself. Identities and device ids go through
``sanitize_id_for_logging`` before they reach a log line.

Environment:
    CARTSYNC_LOG_LEVEL  level for cartsync loggers (falls back to LOG_LEVEL, then INFO)
    CARTSYNC_ENV        "production" drops timestamps (the platform adds its own)
"""

import logging
import os
import sys
from functools import cache

PACKAGE_LOGGER = "cartsync"

_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
_FORMAT_PRODUCTION = "%(levelname)s - %(name)s - %(message)s"


def _get_log_level() -> int:
    level_name = os.environ.get("CARTSYNC_LOG_LEVEL") or os.environ.get("LOG_LEVEL", "INFO")
    return getattr(logging, level_name.upper(), logging.INFO)


def _configure_package_logger() -> None:
    """Attach a stdout handler to the cartsync logger unless someone already handles it."""
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(_get_log_level())

    if package_logger.handlers or logging.getLogger().handlers:
        return

    handler = logging.StreamHandler(sys.stdout)
    is_production = os.environ.get("CARTSYNC_ENV") == "production"
    handler.setFormatter(logging.Formatter(_FORMAT_PRODUCTION if is_production else _FORMAT))
    package_logger.addHandler(handler)

    # supabase and upstash both talk over httpx; their request logs drown cart events
    for noisy in ("httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


_configure_package_logger()


@cache
def get_logger(name: str) -> logging.Logger:
    """
    Get a logger inside the cartsync namespace.

    Names from outside the package (tests, host code) are nested under
    ``cartsync`` so they share its level and handler.
    """
    if name != PACKAGE_LOGGER and not name.startswith(PACKAGE_LOGGER + "."):
        name = f"{PACKAGE_LOGGER}.{name}"
    return logging.getLogger(name)


def _escape_log_injection(value: str) -> str:
    """Escape control characters that could forge log entries (CWE-117)."""
    return (
        value.replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\t", "\\t")
        .replace("\x00", "")
    )


def sanitize_id_for_logging(id_value: str | None) -> str:
    """
    Shorten an identity or device id for logging.

    Keeps the first 8 characters and escapes log injection characters;
    "N/A" for a missing id (an anonymous cart).
    """
    if not id_value:
        return "N/A"
    safe_value = _escape_log_injection(str(id_value))
    return safe_value[:8]


__all__ = [
    "PACKAGE_LOGGER",
    "get_logger",
    "sanitize_id_for_logging",
]
