"""
Logging configuration for scionlat.

Everything goes to stderr and, if configured, to a size-rotated file. The
measurement report is the only thing the speed client writes to stdout.
"""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional

from .config import LoggingConfig

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

# Chatty below WARNING when exporting
QUIET_LOGGERS = ('urllib3', 'influxdb_client')


def level_from_name(name: str) -> int:
    return getattr(logging, name.upper(), logging.WARNING)


def _rotating_file_handler(config: LoggingConfig) -> logging.Handler:
    log_path = Path(config.file)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    return logging.handlers.RotatingFileHandler(
        log_path,
        maxBytes=config.max_size * 1024 * 1024,
        backupCount=config.backup_count,
    )


def setup_logging(config: LoggingConfig, level: Optional[int] = None) -> None:
    """Replace the root handlers with a stderr handler and an optional log file.

    ``level`` overrides ``config.level``; the speed client passes DEBUG for -v.
    """
    if level is None:
        level = level_from_name(config.level)

    handlers = [logging.StreamHandler(sys.stderr)]
    file_error = None
    if config.file:
        try:
            handlers.append(_rotating_file_handler(config))
        except OSError as e:
            file_error = e

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)
    root_logger.setLevel(level)

    logging.getLogger('scionlat').setLevel(level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    if file_error is not None:
        logging.getLogger(__name__).warning(
            f"Logging to {config.file} disabled: {file_error}"
        )
