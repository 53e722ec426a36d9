"""
Tests for logging setup.
"""
import logging
import os
import time
from logging.handlers import RotatingFileHandler
from pathlib import Path

from dust_fetch.config.app_config import AppConfig
from dust_fetch.modules.logger_config import cleanup_old_logs, set_log_level, setup_logger


def test_setup_logger_adds_handlers_once():
    logger = setup_logger('dust_fetch.tests.setup', 'tests_setup.log')
    again = setup_logger('dust_fetch.tests.setup', 'tests_setup.log')

    assert logger is again
    assert len(logger.handlers) == 2
    file_handler = next(h for h in logger.handlers if isinstance(h, RotatingFileHandler))
    assert Path(file_handler.baseFilename).parent == Path(AppConfig.get_logs_dir())


def test_set_log_level_updates_file_handler():
    logger = setup_logger('dust_fetch.tests.level', 'tests_level.log')

    set_log_level('dust_fetch.tests.level', logging.WARNING)

    assert logger.level == logging.WARNING
    file_handler = next(h for h in logger.handlers if isinstance(h, RotatingFileHandler))
    assert file_handler.level == logging.WARNING


def test_cleanup_old_logs_keeps_recent_files():
    logs_dir = Path(AppConfig.get_logs_dir())
    old_log = logs_dir / 'old_test.log.1'
    new_log = logs_dir / 'new_test.log'
    old_log.write_text('old')
    new_log.write_text('new')
    ten_days_ago = time.time() - 10 * 24 * 60 * 60
    os.utime(old_log, (ten_days_ago, ten_days_ago))

    assert cleanup_old_logs(days_to_keep=7) >= 1
    assert not old_log.exists()
    assert new_log.exists()
