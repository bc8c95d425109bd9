# spritr/core/logging.py
from __future__ import annotations
import logging, logging.handlers
import sys
from pathlib import Path
from typing import Optional, Union

from app_config import APP_NAME, COMPANY_NAME, LOG_DIR, ensure_app_dirs

LOG_FILE = LOG_DIR / f"{APP_NAME.lower()}.log"
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Rotation for the on-disk log
LOG_MAX_BYTES = 10_000_000
LOG_BACKUPS = 5


def _rotating_handler(path: Path) -> logging.Handler:
    if path.parent == LOG_DIR:
        ensure_app_dirs()
    else:
        path.parent.mkdir(parents=True, exist_ok=True)
    return logging.handlers.RotatingFileHandler(
        path, maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUPS, encoding="utf-8"
    )


def setup_logging(
    level: int = logging.INFO,
    log_file: Optional[Union[str, Path]] = LOG_FILE,
) -> logging.Logger:
    """
    Configure the root logger: stderr always, plus a rotating file unless
    ``log_file`` is None. Safe to call again; earlier handlers are detached.
    """
    root = logging.getLogger()
    root.setLevel(level)
    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)
    handlers = [logging.StreamHandler(sys.stderr)]
    if log_file is not None:
        handlers.append(_rotating_handler(Path(log_file)))
    for h in handlers:
        h.setFormatter(fmt)
        h.setLevel(level)
        root.addHandler(h)

    root.info("%s logging initialised • %s • %s", APP_NAME, COMPANY_NAME, log_file or "console only")
    return root


def get_logger(name: str | None = None) -> logging.Logger:
    """Module logger; ``get_logger(__name__)`` from spritr code."""
    return logging.getLogger(name or APP_NAME)
