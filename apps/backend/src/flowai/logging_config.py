"""Logging configuration for FlowAI.

Application modules log through ``logging.getLogger(__name__)``; this module
only installs the root handler and quiets chatty HTTP libraries.
"""

import logging
import sys

from .config import get_settings

NOISY_LOGGERS = [
    "httpx",
    "httpcore",
    "asyncio",
    "uvicorn.access",
]

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def suppress_noisy_loggers() -> None:
    """Raise third-party loggers to WARNING so request lines don't flood the output."""
    for logger_name in NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.WARNING)


def setup_logging(level: str | None = None) -> None:
    """Configure the root logger once.

    Args:
        level: Log level name; defaults to ``Settings.log_level``.
    """
    level_name = (level or get_settings().log_level).upper()
    root = logging.getLogger()
    root.setLevel(getattr(logging, level_name, logging.INFO))

    if not any(getattr(h, "_flowai", False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._flowai = True  # type: ignore[attr-defined]
        root.addHandler(handler)

    suppress_noisy_loggers()
