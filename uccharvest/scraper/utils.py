from __future__ import annotations

import logging
import re
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import List

from . import config

LOGGER = logging.getLogger("uccharvest")
_LOGGER_INITIALISED = False
_CURRENT_LOG_FILE: Path = config.LOG_FILE


def _configure_logger(log_path: Path) -> None:
    """Point the shared logger at stdout and, unless disabled, ``log_path``."""

    global _LOGGER_INITIALISED, _CURRENT_LOG_FILE

    for handler in list(LOGGER.handlers):
        LOGGER.removeHandler(handler)
        try:
            handler.close()
        except Exception:  # noqa: BLE001
            continue

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if config.LOG_TO_FILE:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))

    formatter = logging.Formatter(fmt="[%(asctime)s] %(message)s", datefmt="%Y-%m-%d %H:%M:%S")
    for handler in handlers:
        handler.setFormatter(formatter)
        LOGGER.addHandler(handler)

    LOGGER.setLevel(getattr(logging, config.LOG_LEVEL, logging.INFO))
    LOGGER.propagate = False

    _CURRENT_LOG_FILE = log_path
    _LOGGER_INITIALISED = True


def _ensure_logger() -> None:
    """Initialise the logger lazily using the default log file."""

    if _LOGGER_INITIALISED:
        return

    _configure_logger(config.LOG_FILE)


def setup_run_logger() -> Path:
    """Rotate to a fresh timestamped log file for the current batch."""

    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
    log_path = config.LOG_DIR / f"search_{timestamp}.log"
    _configure_logger(log_path)
    LOGGER.info("Logging to %s", log_path)
    return log_path


def get_current_log_path() -> Path:
    """Return the path to the log file currently receiving log lines."""

    _ensure_logger()
    return _CURRENT_LOG_FILE


def log_line(message: str) -> None:
    """Write a timestamped log line to stdout and the active log file."""

    _ensure_logger()
    LOGGER.info(message)


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def short_error_message(exc: BaseException, max_length: int = 200) -> str:
    """Return a single-line, length-capped rendering of ``exc``."""

    message = " ".join(str(exc).split()) or type(exc).__name__
    if len(message) > max_length:
        return message[: max_length - 3] + "..."
    return message


def sanitize_filename(name: str) -> str:
    """
    Return a filesystem-safe filename derived from *name*.
    Keeps only alphanumerics, dot, underscore, dash.
    """
    cleaned = "".join(
        ch if ch.isalnum() or ch in {".", "_", "-"} else "_"
        for ch in name.strip()
    ).strip("._")
    cleaned = re.sub(r"_+", "_", cleaned)

    return cleaned or "file"


def collapse_whitespace(value: object) -> str:
    """Return ``value`` as text with internal whitespace runs collapsed."""

    if value is None:
        return ""
    return " ".join(str(value).split())


__all__ = [
    "LOGGER",
    "collapse_whitespace",
    "get_current_log_path",
    "log_line",
    "now_iso",
    "sanitize_filename",
    "setup_run_logger",
    "short_error_message",
]
