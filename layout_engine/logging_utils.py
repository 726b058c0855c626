#!/usr/bin/env python3
"""
Logging setup for the layout optimizer.

Configures the root logger with:
  - Console output at a configurable level
  - Optional rotating file logs (10MB, 5 backups) when paths.logs is set
  - Timestamp-based log file names

Configuration options via config:
    logging:
        console_level: Minimum level for console output
        file_level: Minimum level for file output
        format: Log message format string
    paths:
        logs: Directory for log files (None = console only)
"""

import logging
from logging.handlers import RotatingFileHandler
from datetime import datetime
from pathlib import Path
from typing import Dict, Any, Optional


DEFAULT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def _level(name: Optional[str], default: int) -> int:
    """Translate a level name such as 'INFO' into its numeric value."""
    if not name:
        return default
    level = logging.getLevelName(str(name).upper())
    return level if isinstance(level, int) else default


def setup_logging(config: Dict[str, Any], verbose: bool = False) -> Optional[Path]:
    """
    Initialize the logging system from configuration.

    Args:
        config: Merged configuration dictionary
        verbose: If True, force console output down to INFO

    Returns:
        Path of the log file, or None when logging to console only
    """
    logging_config = config.get('logging') or {}
    log_format = logging_config.get('format') or DEFAULT_FORMAT

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    # Clear any existing handlers
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    console_level = _level(logging_config.get('console_level'), logging.WARNING)
    if verbose:
        console_level = min(console_level, logging.INFO)
    console_handler = logging.StreamHandler()
    console_handler.setLevel(console_level)
    console_handler.setFormatter(logging.Formatter('%(message)s'))
    root_logger.addHandler(console_handler)

    logs_dir = (config.get('paths') or {}).get('logs')
    if not logs_dir:
        return None

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_dir = Path(logs_dir)
    log_file = log_dir / f"layout_optimizer_{timestamp}.log"

    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=10*1024*1024,  # 10MB per file
            backupCount=5,          # Keep 5 backup files
            encoding='utf-8'
        )
    except OSError as e:
        logging.getLogger(__name__).warning(f"Could not create log file in {log_dir}: {e}")
        return None

    file_handler.setLevel(_level(logging_config.get('file_level'), logging.DEBUG))
    file_handler.setFormatter(logging.Formatter(log_format))
    root_logger.addHandler(file_handler)

    logging.getLogger(__name__).info(f"Logging initialized - writing to {log_file}")
    return log_file
