"""Logging configuration for Nomacode backend

Layout under <instance>/logs:
    nomacode.log  nomacode.* records at the configured level
    error.log     WARNING+ from every module (uvicorn, starlette, ...)

Session output never goes to the logs, only lifecycle events.
"""

import logging
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Optional

LOG_FORMAT = '%(asctime)s.%(msecs)03d - %(levelname)s - %(threadName)s - %(name)s:%(lineno)d - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_BACKUP_COUNT = 14

# Chatty third-party loggers capped on the console
NOISY_LOGGERS = ("uvicorn.access", "multipart", "watchfiles")


class ProjectOnlyFilter(logging.Filter):
    """Filter to only allow logs from nomacode.* modules"""

    def filter(self, record):
        return record.name.startswith('nomacode.')


def _level(value, default: int) -> int:
    if isinstance(value, int):
        return value
    level = logging.getLevelName(str(value).upper()) if value else default
    return level if isinstance(level, int) else default


def _rotating_handler(path: Path, level: int, backup_count: int) -> TimedRotatingFileHandler:
    handler = TimedRotatingFileHandler(
        filename=path,
        when='midnight',
        interval=1,
        backupCount=backup_count,
        encoding='utf-8'
    )
    handler.setLevel(level)
    return handler


def setup_logging(instance_path: Path, log_config: Optional[dict] = None) -> None:
    """Setup logging configuration for Nomacode backend

    Args:
        instance_path: Path to the Nomacode instance directory
        log_config: The [logging] table of config.toml. Keys:
            level: Level for nomacode.* records (default INFO)
            console_level: Level printed to the console (default: level)
            backup_count: Days of rotated files kept (default 14)

    Raises:
        OSError: If the logs directory cannot be created
    """
    log_config = log_config or {}
    level = _level(log_config.get('level'), logging.INFO)
    console_level = _level(log_config.get('console_level'), level)
    backup_count = int(log_config.get('backup_count', DEFAULT_BACKUP_COUNT))

    logs_dir = instance_path / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    root_logger = logging.getLogger()
    root_logger.setLevel(min(level, console_level, logging.WARNING))

    # Clear existing handlers to avoid duplicate logs
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    # ==================== Project Handler ====================
    project_handler = _rotating_handler(logs_dir / "nomacode.log", level, backup_count)
    project_handler.addFilter(ProjectOnlyFilter())

    # ==================== Error Handler ====================
    error_handler = _rotating_handler(logs_dir / "error.log", logging.WARNING, backup_count)

    # ==================== Console Handler ====================
    console_handler = logging.StreamHandler()
    console_handler.setLevel(console_level)

    for handler in (project_handler, error_handler, console_handler):
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(console_level, logging.WARNING))

    logger = logging.getLogger(__name__)
    logger.info(
        f"Logging initialized for instance: {instance_path} "
        f"(level={logging.getLevelName(level)}, console={logging.getLevelName(console_level)})"
    )
