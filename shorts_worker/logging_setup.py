import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

LOGGER_NAME = "shorts_worker"
LOG_FORMAT = '%(asctime)s - %(name)s - %(threadName)s - %(levelname)s - %(message)s'
LOG_MAX_BYTES = 5 * 1024 * 1024
LOG_BACKUP_COUNT = 3

# chatty libraries pinned to WARNING unless the worker itself runs at DEBUG
_NOISY_LOGGERS = ("uvicorn", "uvicorn.error", "psycopg.pool", "httpx")


def setup_logging(log_level: str = "INFO", data_dir: Optional[str] = None) -> logging.Logger:
    """
    Route the worker logger to {DATA_DIR}/worker/log.log and the console.

    Safe to call more than once; previous handlers are closed and replaced.
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    log_file = _log_file_path(data_dir)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT)

    file_handler = RotatingFileHandler(log_file, maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUP_COUNT)
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if level > logging.DEBUG:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    logger.info(f"Logging initialized at {logging.getLevelName(level)}. Log file: {log_file}")
    return logger


def _log_file_path(data_dir: Optional[str]) -> Path:
    log_dir = Path(data_dir or os.getenv("DATA_DIR", "/app/data")) / "worker"
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir / "log.log"


def log_exception(logger: logging.Logger, message: str) -> None:
    """Log an error message together with the active exception's traceback"""
    logger.error(message, exc_info=True)
