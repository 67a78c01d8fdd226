"""Logging setup for the Care Fayre backend.

Route handlers log one pipe-delimited line per call, e.g.
``POST /requests/{id}/accept | user=usr_123 | bid=...``.
"""

import logging
import os

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_configured = False


def configure_logging(level: str | None = None) -> None:
    """Configure root logging once. LOG_LEVEL overrides the default INFO."""
    global _configured
    if _configured:
        return
    level = (level or os.environ.get("LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(level=level, format=LOG_FORMAT)
    _configured = True


def get_logger(name: str) -> logging.Logger:
    """Get a named logger, configuring logging on first use."""
    configure_logging()
    return logging.getLogger(name)
