from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
import os


ROOT_LOGGER = "sitebuild"
# Tasks run on pool threads; the thread name tells parallel steps apart
LOG_FORMAT = "%(asctime)s | %(threadName)s | %(name)s | %(levelname)s | %(message)s"

# Chatty below WARNING: per-request access lines, per-poll file events
LIBRARY_LOGGERS = ("tornado.access", "livereload", "watchdog", "PIL")

_configured = False


def _level_from_env() -> int:
    name = os.getenv("SITEBUILD_LOG_LEVEL", "INFO").upper()
    return getattr(logging, name, logging.INFO)


def _ensure_base_logger() -> None:
    global _configured
    if _configured:
        return
    logging.basicConfig(level=_level_from_env(), format=LOG_FORMAT)
    quiet_libraries()
    _configured = True


def quiet_libraries() -> None:
    """Hold third-party loggers at WARNING unless running at DEBUG."""
    if _level_from_env() <= logging.DEBUG:
        return
    for name in LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def add_file_handler(log_file: Path, max_bytes: int = 1_000_000, backups: int = 3) -> None:
    """Mirror everything under ``sitebuild`` into a rotating ``log_file``."""
    root = logging.getLogger(ROOT_LOGGER)
    target = str(Path(log_file).resolve())
    if any(
        isinstance(h, RotatingFileHandler) and h.baseFilename == target for h in root.handlers
    ):
        return
    Path(target).parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(target, maxBytes=max_bytes, backupCount=backups)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)


def get_logger(name: str, log_file: Path | None = None) -> logging.Logger:
    _ensure_base_logger()
    if name != ROOT_LOGGER and not name.startswith(f"{ROOT_LOGGER}."):
        name = f"{ROOT_LOGGER}.{name}"
    if log_file:
        add_file_handler(log_file)
    return logging.getLogger(name)
