from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
import os


_configured = False
_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
# Per-request and per-event chatter from the dev server and the observer
_NOISY = ("werkzeug", "watchdog")


def _ensure_base_logger() -> None:
    global _configured
    if _configured:
        return
    level = getattr(logging, os.getenv("ASSETFLOW_LOG_LEVEL", "INFO").upper(), logging.INFO)
    logging.basicConfig(level=level, format=_FORMAT)
    if level > logging.DEBUG:
        for name in _NOISY:
            logging.getLogger(name).setLevel(logging.WARNING)
    _configured = True


def get_logger(name: str, log_file: Path | None = None) -> logging.Logger:
    _ensure_base_logger()
    logger = logging.getLogger(name)
    # One file handler per logger, even when called again with a path
    if log_file and not any(
        isinstance(h, RotatingFileHandler) for h in logger.handlers
    ):
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(log_file, maxBytes=1_000_000, backupCount=3)
        handler.setFormatter(logging.Formatter(_FORMAT))
        logger.addHandler(handler)
    return logger


def task_logger(task_name: str) -> logging.Logger:
    """Logger for a task body, `assetflow.task.<name>`."""
    return get_logger(f"assetflow.task.{task_name}")
