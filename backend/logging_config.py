"""Centralized logging configuration."""

import logging
from typing import Optional

from config import settings

# Third-party loggers that flood INFO with per-request/per-query lines
NOISY_LOGGERS = (
    "sqlalchemy.engine",
    "sqlalchemy.pool",
    "httpx",
    "httpcore",
    "aiosqlite",
)


def setup_logging(level: Optional[str] = None) -> None:
    """Configure root logging for the API process and CLI scripts.

    Args:
        level: Explicit level name (e.g. ``"DEBUG"`` from a ``--verbose``
            flag). Defaults to ``settings.LOG_LEVEL``.
    """
    level_name = (level or settings.LOG_LEVEL).upper()
    logging.basicConfig(
        format="%(asctime)s %(levelname)-8s %(name)s  %(message)s",
        datefmt="%H:%M:%S",
        level=getattr(logging, level_name),
        force=True,
    )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
