# chapwatch/utils/log.py
# Logging setup shared by every chapwatch module.
# get_logger(name) configures the root logger once: console output always,
# plus a rotating chapwatch.log when LOG_TO_FILE=true.

from __future__ import annotations
import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"
DIVIDER = "-" * 72

_configured = False


def _level_from_env() -> int:
    lvl = logging.getLevelName(os.getenv("LOG_LEVEL", "INFO").strip().upper())
    return lvl if isinstance(lvl, int) else logging.INFO


def _file_handler(level: int, formatter: logging.Formatter) -> RotatingFileHandler:
    log_dir = Path(os.getenv("LOG_DIR", "logs"))
    log_dir.mkdir(parents=True, exist_ok=True)
    fh = RotatingFileHandler(
        log_dir / "chapwatch.log",
        maxBytes=int(os.getenv("LOG_MAX_BYTES", "1048576")),
        backupCount=int(os.getenv("LOG_BACKUPS", "5")),
        encoding="utf-8",
    )
    fh.setLevel(level)
    fh.setFormatter(formatter)
    return fh


def configure(force: bool = False) -> None:
    """Install chapwatch's handlers on the root logger.

    Safe to call repeatedly; only the first call (or a forced one) touches
    the handler list.
    """
    global _configured
    if _configured and not force:
        return

    level = _level_from_env()
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT)

    root = logging.getLogger()
    root.setLevel(level)
    for h in list(root.handlers):
        root.removeHandler(h)

    console = logging.StreamHandler()
    console.setLevel(level)
    console.setFormatter(formatter)
    root.addHandler(console)

    if os.getenv("LOG_TO_FILE", "false").strip().lower() == "true":
        root.addHandler(_file_handler(level, formatter))

    _configured = True


def get_logger(name: str) -> logging.Logger:
    """Return a logger under the chapwatch formatting/level setup.

    Usage:
        from .utils.log import get_logger
        logger = get_logger("chapwatch.poller")
    """
    configure()
    return logging.getLogger(name)
