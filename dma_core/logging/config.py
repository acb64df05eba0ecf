# =============================================================================
# dma_core/logging/config.py
# Logging Configuration for the DM App core
# =============================================================================

import logging
import os
import sys
import time
from pathlib import Path
from datetime import datetime
from typing import Optional, Union


LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Overridden by DMA_LOG_DIR
LOG_DIR = Path("logs")

# HTTP and Supabase client chatter
NOISY_LOGGERS = ("urllib3", "httpx", "httpcore", "hpack", "supabase", "postgrest", "gotrue")


def _resolve_level(level: Union[int, str, None]) -> int:
    if level is None:
        level = os.getenv("DMA_LOG_LEVEL", "INFO")
    if isinstance(level, str):
        # getLevelName maps known names to ints and anything else to "Level x"
        value = logging.getLevelName(level.upper())
        return value if isinstance(value, int) else logging.INFO
    return level


def setup_logging(
    level: Union[int, str, None] = None,
    log_to_file: bool = True,
    log_filename: Optional[str] = None,
) -> Optional[Path]:
    """
    Configure logging for the app once at startup.

    Args:
        level: Level or level name (default: DMA_LOG_LEVEL, else INFO)
        log_to_file: Also write to a daily file under DMA_LOG_DIR / logs
        log_filename: Custom log filename (default: dma_YYYY-MM-DD.log)

    Returns:
        Path of the log file, or None when logging to stdout only
    """
    handlers = [logging.StreamHandler(sys.stdout)]
    log_path = None

    if log_to_file:
        log_dir = Path(os.getenv("DMA_LOG_DIR") or LOG_DIR)
        log_dir.mkdir(parents=True, exist_ok=True)
        log_path = log_dir / (log_filename or f"dma_{datetime.now():%Y-%m-%d}.log")
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))

    logging.basicConfig(
        level=_resolve_level(level),
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        handlers=handlers,
        force=True,
    )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger("dma_core").info(f"Logging initialized (file: {log_path or 'none'})")
    return log_path


def get_logger(name: str) -> logging.Logger:
    """Logger for a module or service class."""
    return logging.getLogger(name)


class LogContext:
    """
    Times an operation and logs its start and outcome.

    Usage:
        with LogContext(logger, "Downloading offline data", municipality="Daraga"):
            service.download_for_offline(ctx, "Daraga")
        # Downloading offline data [municipality=Daraga]... started
        # Downloading offline data [municipality=Daraga]... completed (0.84s)
    """

    def __init__(self, logger: logging.Logger, operation: str, **fields):
        self.logger = logger
        self.label = operation
        if fields:
            self.label += " [" + ", ".join(f"{k}={v}" for k, v in fields.items()) + "]"
        self.start_time: Optional[float] = None
        self.elapsed: Optional[float] = None

    def __enter__(self):
        self.start_time = time.perf_counter()
        self.logger.info(f"{self.label}... started")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.elapsed = time.perf_counter() - self.start_time

        if exc_type is None:
            self.logger.info(f"{self.label}... completed ({self.elapsed:.2f}s)")
        else:
            self.logger.error(f"{self.label}... failed ({self.elapsed:.2f}s): {exc_val}", exc_info=True)

        return False
