#!/usr/bin/env python3
# -*- coding: utf-8 -*-
import copy
import json
import logging
from typing import Any, Dict, Optional

import yaml

LOG_FORMAT = '[%(asctime).19s] [%(name)s] [%(levelname)s] %(message)s'

DEFAULT_CONFIG: Dict[str, Any] = {
    'log_level': 'info',
    'log_file': None,
    'database': {
        'url': 'pomodoro.db',
    },
    'storage_key': 'pomodoro-timers',
    'tick_interval': 1.0,
    'background_ticker': {
        'enabled': True,
        'interval': 1.0,
        'start_method': 'spawn',
        'ready_timeout': 2.0,
    },
    'nats': {
        'url': 'nats://localhost:4222',
        'connection_timeout': 5,
        'max_reconnect_attempts': -1,
    },
}


def configure_logger(logger,
                     log_file=None,
                     log_format=None,
                     log_level=logging.INFO):
    """Configure a logger with a file or stream handler

    Args:
        logger: Logger instance or logger name string
        log_file: File path string or file-like object (None for stderr)
        log_format: Format string for log messages
        log_level: Logging level (e.g., logging.INFO, logging.DEBUG)

    Returns:
        Configured logger instance
    """
    if isinstance(log_file, str):
        handler = logging.FileHandler(
            log_file,
            mode='a',
            encoding='utf-8',
            errors='replace'
        )
    else:
        handler = logging.StreamHandler(log_file)  # Default to stderr if None

    formatter = logging.Formatter(log_format or LOG_FORMAT)

    if isinstance(logger, str):
        logger = logging.getLogger(logger)

    handler.setFormatter(formatter)
    logger.addHandler(handler)
    logger.setLevel(log_level)

    return logger


def parse_log_level(level_str: str) -> int:
    """Map 'debug' / 'info' / ... to a logging constant.

    Raises:
        ValueError: If the name is not a logging level
    """
    level = getattr(logging, str(level_str).upper(), None)
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {level_str!r}")
    return level


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge override into a copy of base."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config_file(config_file: str) -> Dict[str, Any]:
    """Load a JSON or YAML configuration file

    The format is chosen by extension; anything other than .yaml/.yml is
    read as JSON.
    """
    with open(config_file, 'r', encoding='utf-8') as fp:
        if config_file.endswith(('.yaml', '.yml')):
            conf = yaml.safe_load(fp)
        else:
            conf = json.load(fp)

    if conf is None:
        return {}
    if not isinstance(conf, dict):
        raise ValueError(f"Config file {config_file} must contain a mapping")
    return conf


def get_config(config_file: Optional[str] = None) -> Dict[str, Any]:
    """Load configuration and merge it over the defaults

    Args:
        config_file: Path to a JSON or YAML file, or None for defaults only

    Returns:
        Full configuration dictionary

    Raises:
        ValueError: If the log level is unknown or the file is not a mapping
    """
    if config_file:
        conf = _merge(DEFAULT_CONFIG, load_config_file(config_file))
    else:
        conf = copy.deepcopy(DEFAULT_CONFIG)

    # Validate early so a typo fails at startup
    parse_log_level(conf['log_level'])

    return conf


def setup_logging(conf: Dict[str, Any]) -> None:
    """Configure the root logger from a loaded config"""
    log_level = parse_log_level(conf.get('log_level', 'info'))
    log_file = conf.get('log_file')

    if log_file:
        configure_logger(logging.getLogger(), log_file=log_file, log_level=log_level)
    else:
        logging.basicConfig(level=log_level, format=LOG_FORMAT)
