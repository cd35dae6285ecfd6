"""Logging setup for the aztec-chat command line.

Only the ``aztec`` package logger is configured, so embedding applications keep
control of the root logger. Records always go to a rotating file next to the
chat session registry; ``--debug`` also echoes them to stderr.
"""

from __future__ import annotations

import logging
import logging.handlers
import os
import sys
from pathlib import Path

from .file_io import ensure_dir

__all__ = ["LOG_FILENAME", "configure_logging", "default_log_dir", "get_log_path"]

LOG_FILENAME = "aztec.log"
FILE_FORMAT = "%(asctime)s %(levelname)-7s [%(name)s] %(message)s"
CONSOLE_FORMAT = "%(levelname)s %(name)s: %(message)s"
_PACKAGE_LOGGER = "aztec"
# Held at WARNING even under --debug.
_TRANSPORT_LOGGERS: tuple[str, ...] = ("httpx", "httpcore", "openai")
_LOG_PATH: Path | None = None


def default_log_dir(config_dir: Path | str | None = None) -> Path:
    """``$AZTEC_LOG_DIR`` when set, else ``<config_dir>/logs`` (``~/.aztec/logs``)."""

    override = os.environ.get("AZTEC_LOG_DIR")
    if override:
        return Path(override).expanduser()
    base = Path(config_dir).expanduser() if config_dir else Path.home() / ".aztec"
    return base / "logs"


def configure_logging(
    debug: bool = False,
    *,
    console: bool = False,
    log_dir: Path | str | None = None,
    config_dir: Path | str | None = None,
    max_bytes: int = 512_000,
    backup_count: int = 2,
) -> Path:
    """Attach file (and optionally stderr) handlers to the ``aztec`` logger.

    Calling it again replaces the handlers from the previous call.
    """

    global _LOG_PATH
    target_dir = ensure_dir(Path(log_dir).expanduser() if log_dir else default_log_dir(config_dir))
    log_path = target_dir / LOG_FILENAME
    level = logging.DEBUG if debug else logging.INFO

    package_logger = logging.getLogger(_PACKAGE_LOGGER)
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()

    file_handler = logging.handlers.RotatingFileHandler(
        log_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
    )
    file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    package_logger.addHandler(file_handler)

    if console:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
        package_logger.addHandler(stderr_handler)

    package_logger.setLevel(level)
    for name in _TRANSPORT_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    _LOG_PATH = log_path
    package_logger.debug("Logging to %s (level=%s)", log_path, logging.getLevelName(level))
    return log_path


def get_log_path() -> Path | None:
    """Return the log file chosen by the last :func:`configure_logging` call."""

    return _LOG_PATH
