from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path

from elomondo.config import env_float

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def setup_logging() -> None:
    """
    Configure the root logger from the environment.

    - ELOMONDO_LOG_LEVEL: level name (default INFO)
    - ELOMONDO_LOG_FILE: optional path for a rotating file log
    - ELOMONDO_LOG_MAX_MB / ELOMONDO_LOG_BACKUP_COUNT: rotation settings
    """
    log_level = (os.getenv("ELOMONDO_LOG_LEVEL", "INFO") or "INFO").upper()
    log_file = (os.getenv("ELOMONDO_LOG_FILE") or "").strip()

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(log_level)

    fmt = logging.Formatter(LOG_FORMAT)

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(fmt)
    root.addHandler(stream_handler)

    if log_file:
        max_mb = env_float("ELOMONDO_LOG_MAX_MB", 10, positive=True)
        backup_count = int(env_float("ELOMONDO_LOG_BACKUP_COUNT", 5, non_negative=True))
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=int(max_mb * 1024 * 1024),
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(fmt)
        root.addHandler(file_handler)

    # Per-request access lines drown out engine logs.
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
