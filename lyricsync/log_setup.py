"""Logging configuration for LyricSync."""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional

from .utils import ensure_dir_exists

LOG_FORMAT = '%(asctime)s - %(levelname)s - [%(name)s:%(lineno)d] - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'
MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUPS = 5

# Dependencies that log far more than is useful at INFO
NOISY_LOGGERS = ("numba", "urllib3", "httpx", "httpcore", "asyncio")


def _file_handler(log_dir: str, log_file: str, formatter: logging.Formatter) -> Optional[logging.Handler]:
    """A rotating handler under log_dir, or None if the directory is unusable."""
    try:
        ensure_dir_exists(log_dir)
        handler = RotatingFileHandler(
            os.path.join(log_dir, log_file),
            maxBytes=MAX_LOG_BYTES,
            backupCount=LOG_BACKUPS,
            encoding='utf-8'
        )
    except Exception as e:
        sys.stderr.write(f"File logging disabled ({log_dir}/{log_file}): {e}\n")
        return None
    handler.setFormatter(formatter)
    return handler


def setup_logging(log_level: int = logging.INFO, log_dir: str = "logs", log_file: str = "lyricsync.log") -> None:
    """
    Routes the root logger to stdout and to a rotating file.

    The CLI calls this twice: once before the config is read, and again with
    the config's log_dir/log_file. Each call closes and replaces the handlers
    the previous one installed.
    """
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()

    root.setLevel(log_level)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(formatter)
    console.setLevel(log_level)
    root.addHandler(console)

    file_handler = _file_handler(log_dir, log_file, formatter)
    if file_handler is not None:
        root.addHandler(file_handler)
        root.info(f"Logging initialized. Log file: {file_handler.baseFilename}")

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
