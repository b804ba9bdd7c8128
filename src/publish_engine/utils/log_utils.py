"""
Logging setup shared by the publish engine.

Modules log through ``logging.getLogger(__name__)``; the host application decides
whether to call ``setup_logging`` or wire the ``publish_engine`` logger itself.
"""

import logging
import sys
from pathlib import Path

from .. import config

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
ROOT_LOGGER = "publish_engine"


def setup_logging(log_file: str | None = None, level: int = logging.INFO) -> logging.Logger:
    """Attach console (and optional file) handlers to the package logger.

    ``log_file`` defaults to ``config.LOG_FILE`` (``PUBLISH_LOG_FILE``). Calling it twice
    does not duplicate handlers.
    """
    log_file = log_file or config.LOG_FILE
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)

    if not any(getattr(h, "_publish_engine", False) for h in logger.handlers):
        ch = logging.StreamHandler(sys.stdout)
        ch.setFormatter(logging.Formatter(LOG_FORMAT, LOG_DATE_FORMAT))
        ch._publish_engine = True  # type: ignore[attr-defined]
        logger.addHandler(ch)

    if log_file:
        log_path = Path(log_file)
        known = {
            getattr(h, "baseFilename", None)
            for h in logger.handlers
            if isinstance(h, logging.FileHandler)
        }
        if str(log_path.resolve()) not in known:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            fh = logging.FileHandler(log_path, encoding="utf-8")
            fh.setFormatter(logging.Formatter(LOG_FORMAT, LOG_DATE_FORMAT))
            fh._publish_engine = True  # type: ignore[attr-defined]
            logger.addHandler(fh)

    return logger


def shorten(text: str | None, limit: int = 120) -> str:
    """Collapse whitespace and cut long page text for log lines."""
    if not text:
        return ""
    collapsed = " ".join(str(text).split())
    if len(collapsed) <= limit:
        return collapsed
    return collapsed[: max(0, limit - 1)] + "…"
