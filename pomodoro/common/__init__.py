"""Shared services for the timer service: config, logging and storage."""
from .config import configure_logger, get_config, setup_logging
from .database import TimerDatabase
from .errors import StorageConnectionError

__all__ = [
    'get_config',
    'configure_logger',
    'setup_logging',
    'TimerDatabase',
    'StorageConnectionError',
]
