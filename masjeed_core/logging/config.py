# =============================================================================
# masjeed_core/logging/config.py
# Logging Configuration for the Masjeed client
# =============================================================================

import logging
import sys
import time
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional


LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

LOG_DIR = Path("logs")

# Rotation limits for the local log file
MAX_LOG_BYTES = 1_000_000
LOG_BACKUP_COUNT = 3

NOISY_LOGGERS = ("urllib3", "requests", "asyncio", "watchdog")


def setup_logging(
    level: int = logging.INFO,
    log_to_file: bool = True,
    log_filename: Optional[str] = None,
    log_dir: Optional[Path] = None,
) -> None:
    """
    Configure logging for the app and the offline core.

    Args:
        level: Root logging level
        log_to_file: Also write a rotating, dated log file
        log_filename: Override the file name (default: masjeed_YYYY-MM-DD.log)
        log_dir: Override the log directory (default: ./logs)
    """
    handlers = [logging.StreamHandler(sys.stdout)]

    if log_to_file:
        directory = Path(log_dir) if log_dir is not None else LOG_DIR
        directory.mkdir(parents=True, exist_ok=True)
        filename = log_filename or f"masjeed_{datetime.now():%Y-%m-%d}.log"
        handlers.append(
            RotatingFileHandler(
                directory / filename,
                maxBytes=MAX_LOG_BYTES,
                backupCount=LOG_BACKUP_COUNT,
                encoding="utf-8",
            )
        )

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        handlers=handlers,
        force=True,
    )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger("masjeed_core").info(
        f"Logging initialized (level={logging.getLevelName(level)}, file={log_to_file})"
    )


def get_logger(name: str) -> logging.Logger:
    """
    Usage:
        from masjeed_core.logging import get_logger
        logger = get_logger(__name__)
    """
    return logging.getLogger(name)


class LogContext:
    """
    Logs the start, duration and outcome of an operation.

    Usage:
        with LogContext(logger, "Draining offline queue") as ctx:
            ...
        ctx.elapsed  # seconds
    """

    def __init__(self, logger: logging.Logger, operation: str, level: int = logging.INFO):
        self.logger = logger
        self.operation = operation
        self.level = level
        self.elapsed: Optional[float] = None
        self._started: Optional[float] = None

    def __enter__(self):
        self._started = time.perf_counter()
        self.logger.log(self.level, f"{self.operation}... started")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.elapsed = time.perf_counter() - self._started

        if exc_type is None:
            self.logger.log(self.level, f"{self.operation}... completed ({self.elapsed:.2f}s)")
        else:
            self.logger.error(
                f"{self.operation}... failed after {self.elapsed:.2f}s: {exc_val}",
                exc_info=(exc_type, exc_val, exc_tb),
            )

        return False
