"""Opt-in debug logging for wa-socket modules."""

from __future__ import annotations

import logging
import os

DEBUG_ENV = "WA_SOCKET_DEBUG"
LOG_FORMAT = "[%(asctime)s] %(name)s - %(levelname)s - %(message)s"

_TRUTHY = ("1", "true", "yes", "on", "dbg", "debug")


def debug_requested() -> bool:
    return (os.getenv(DEBUG_ENV) or "").strip().lower() in _TRUTHY


def maybe_enable_debug_logger(logger: logging.Logger, *, force: bool = False) -> bool:
    """Attach a local DEBUG stream handler to *logger* when debugging is on.

    Returns whether debug tracing is active so callers can gate expensive
    log formatting on it.
    """

    if not (force or debug_requested()):
        return False
    has_local = any(getattr(h, "_wa_socket_local", False) for h in logger.handlers)
    if not has_local:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler.setLevel(logging.DEBUG)
        setattr(handler, "_wa_socket_local", True)
        logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    return True


__all__ = ["DEBUG_ENV", "LOG_FORMAT", "debug_requested", "maybe_enable_debug_logger"]
