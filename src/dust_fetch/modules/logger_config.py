"""
Logger Configuration for Dust Fetch
Centralized logging setup with unified paths.
"""

import logging
import sys
import time
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union

from ..config.app_config import AppConfig

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logger(name: str, log_file: Optional[Union[str, Path]] = None, level: str = AppConfig.LOG_LEVEL) -> logging.Logger:
    """
    Set up a logger with console and file output using centralized paths

    Args:
        name (str): Logger name
        log_file (str, optional): Log file name (will be placed in centralized logs directory)
        level (str): Logging level

    Returns:
        logging.Logger: Configured logger
    """
    logger = logging.getLogger(name)

    # Avoid adding handlers multiple times
    if logger.handlers:
        return logger

    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    formatter = logging.Formatter(LOG_FORMAT, datefmt='%H:%M:%S')

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        # Relative names go to the centralized logs directory
        if not Path(log_file).is_absolute():
            log_path = Path(AppConfig.get_logs_dir()) / log_file
        else:
            log_path = Path(log_file)

        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=AppConfig.LOG_MAX_SIZE,
            backupCount=AppConfig.LOG_BACKUP_COUNT,
            encoding='utf-8'
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

        logger.debug(f"Logger '{name}' initialized with file output: {log_path}")

    return logger


def set_log_level(logger_name: str, level: int):
    """
    Set logging level for a specific logger

    Args:
        logger_name (str): Logger name
        level (int): New logging level
    """
    logger = logging.getLogger(logger_name)
    logger.setLevel(level)

    for handler in logger.handlers:
        if isinstance(handler, RotatingFileHandler):
            handler.setLevel(level)


def cleanup_old_logs(days_to_keep: int = 7) -> int:
    """
    Delete rotated log files older than the given number of days

    Args:
        days_to_keep (int): Number of days to keep log files

    Returns:
        int: Number of deleted files
    """
    logs_dir = Path(AppConfig.get_logs_dir())
    cutoff_time = time.time() - (days_to_keep * 24 * 60 * 60)
    deleted = 0

    for log_file in logs_dir.glob('*.log*'):
        try:
            if log_file.stat().st_mtime < cutoff_time:
                log_file.unlink()
                deleted += 1
        except OSError as e:
            logging.getLogger(__name__).warning(f"Could not delete old log file {log_file}: {e}")

    return deleted


# Configure root logger to avoid unwanted messages
logging.getLogger().setLevel(logging.WARNING)

# Suppress some noisy third-party loggers
logging.getLogger('urllib3').setLevel(logging.WARNING)
logging.getLogger('aiohttp').setLevel(logging.WARNING)
logging.getLogger('werkzeug').setLevel(logging.WARNING)
