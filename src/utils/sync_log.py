"""logging setup for sync runs: console plus an append-only rotating log file."""

import logging
from collections import deque
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List, Optional, Union

from src.config import DataConfig

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

MAX_LOG_BYTES = 5 * 1024 * 1024
BACKUP_COUNT = 5


def setup_logging(level=logging.INFO, log_file: Optional[Union[str, Path]] = None):
    """
    configure logging for sync runs.

    args:
        level: root log level
        log_file: log file path (defaults to the configured log file). pass an
            empty string to log to the console only.
    """
    handlers: List[logging.Handler] = [logging.StreamHandler()]

    path = DataConfig.LOG_FILE if log_file is None else log_file
    if path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(RotatingFileHandler(path, maxBytes=MAX_LOG_BYTES, backupCount=BACKUP_COUNT, encoding="utf-8"))

    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt=DATE_FORMAT, handlers=handlers, force=True)

    # requests/urllib3 connection chatter drowns the sync lines
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def read_log_tail(path: Optional[Union[str, Path]] = None, lines: int = 50) -> List[str]:
    """return the last `lines` lines of the log file (empty if it does not exist yet)."""
    path = Path(path) if path else DataConfig.LOG_FILE
    if not path.exists():
        return []
    with open(path, "r", encoding="utf-8", errors="replace") as f:
        return [line.rstrip("\n") for line in deque(f, maxlen=max(lines, 0))]
