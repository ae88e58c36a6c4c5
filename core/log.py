from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler

from core.settings import LOG_DIR

LOG_PATH = LOG_DIR / "focus.log"


def _ensure_root() -> logging.Logger:
    logger = logging.getLogger("focus")
    if not logger.handlers:
        LOG_PATH.parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(LOG_PATH, maxBytes=1_000_000, backupCount=3, encoding="utf-8")
        formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    return logger


def get_logger(name: str) -> logging.Logger:
    """Return ``focus.<name>``; the rotating file handler lives on the parent."""
    _ensure_root()
    return logging.getLogger(f"focus.{name}")


__all__ = ["LOG_PATH", "get_logger"]
