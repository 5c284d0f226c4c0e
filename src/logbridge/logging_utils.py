"""
Logging Utilities

Provides logging setup for the logbridge logger hierarchy:
- Configurable log levels (DEBUG, INFO, WARNING, ERROR)
- Optional file output
- Per-importer loggers so interleaved watchers stay distinguishable

Log Format:
    %(asctime)s - %(name)s - %(levelname)s - %(message)s

Loggers:
    - logbridge: Root logger
    - logbridge.importer.<name>: One logger per import watcher
    - logbridge.<module>: Module loggers (exporter, storage providers, ...)

Environment:
    - LOGBRIDGE_LOG_LEVEL: Default level (INFO)
    - LOGBRIDGE_LOG_FILE: Optional log file path
    - LOGBRIDGE_DEBUG: true/1/yes forces DEBUG
"""

import logging
import os
import sys
from typing import Optional

DEFAULT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

ROOT_LOGGER_NAME = 'logbridge'


def _resolve_level(level: Optional[str], debug: bool) -> int:
    if debug:
        return logging.DEBUG
    return getattr(logging, (level or 'INFO').upper(), logging.INFO)


def setup_logging(
    level: Optional[str] = None,
    log_file: Optional[str] = None,
    debug: Optional[bool] = None,
    format_string: Optional[str] = None,
) -> logging.Logger:
    """
    Setup logging for the logbridge hierarchy.

    Should be called once at application startup. Calling it again replaces
    the handlers it installed before. Arguments left as None fall back to
    the LOGBRIDGE_* environment variables.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional file path for log output
        debug: Enable debug mode (verbose output)
        format_string: Custom format string for log messages

    Returns:
        Configured root logbridge logger

    Example:
        >>> setup_logging(level='DEBUG', log_file='logbridge.log')
        >>> get_logger('logbridge.importer.orders').info('watching')
    """
    if level is None:
        level = os.getenv('LOGBRIDGE_LOG_LEVEL', 'INFO')
    if log_file is None:
        log_file = os.getenv('LOGBRIDGE_LOG_FILE') or None
    if debug is None:
        debug = os.getenv('LOGBRIDGE_DEBUG', '').lower() in ('true', '1', 'yes')

    root = logging.getLogger(ROOT_LOGGER_NAME)
    log_level = _resolve_level(level, debug)
    root.setLevel(log_level)

    for handler in list(root.handlers):
        if getattr(handler, '_logbridge', False):
            root.removeHandler(handler)
            handler.close()

    formatter = logging.Formatter(format_string or DEFAULT_FORMAT, datefmt='%Y-%m-%d %H:%M:%S')

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler.setLevel(log_level)
    console_handler._logbridge = True
    root.addHandler(console_handler)

    if log_file:
        try:
            os.makedirs(os.path.dirname(log_file) or '.', exist_ok=True)
            file_handler = logging.FileHandler(log_file)
            file_handler.setFormatter(formatter)
            file_handler.setLevel(log_level)
            file_handler._logbridge = True
            root.addHandler(file_handler)
        except OSError as e:
            root.warning(f'Failed to create log file {log_file}: {e}')

    return root


def get_logger(name: str = ROOT_LOGGER_NAME, level: Optional[str] = None) -> logging.Logger:
    """
    Get a logger in the logbridge hierarchy.

    Args:
        name: Logger name (e.g., 'logbridge.importer.orders')
        level: Optional log level override

    Returns:
        logging.Logger instance
    """
    logger = logging.getLogger(name)
    if level is not None:
        logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    return logger


def get_importer_logger(name: str) -> logging.Logger:
    """Logger for one import watcher."""
    return get_logger(f'{ROOT_LOGGER_NAME}.importer.{name}')
