"""Logging setup for the SoloSphere backend.

All loggers live under the ``solosphere`` hierarchy so one handler on the
root of that hierarchy covers routes, auth and the store lifecycle.
"""

import logging
import sys

ROOT_LOGGER = "solosphere"
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> logging.Logger:
    """Install a stream handler on the ``solosphere`` logger.

    Safe to call more than once; the handler is only added the first time.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level.upper())
    if not any(getattr(h, "_solosphere", False) for h in logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._solosphere = True
        logger.addHandler(handler)
    return logger


def get_logger(name: str) -> logging.Logger:
    """Return a named logger, nested under ``solosphere`` if it isn't already."""
    if name != ROOT_LOGGER and not name.startswith(f"{ROOT_LOGGER}."):
        name = f"{ROOT_LOGGER}.{name}"
    return logging.getLogger(name)


def log_auth_event(
    event: str,
    email: str | None,
    success: bool,
    detail: str | None = None,
) -> None:
    """Record a session event (issue, logout, guard rejection)."""
    logger = get_logger("solosphere.auth")
    msg = f"AUTH {event} | email={email or '-'} | success={success}"
    if detail:
        msg += f" | detail={detail}"
    if success:
        logger.info(msg)
    else:
        logger.warning(msg)
