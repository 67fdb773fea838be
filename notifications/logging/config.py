"""Structlog configuration: JSON lines to a rotating file, colored console."""

import logging
import logging.handlers
import os
import time
from pathlib import Path

import structlog

from notifications.logging.processors import (
    add_process_info,
    add_request_context,
    add_service_context,
    console_renderer,
)

DEFAULT_LOG_FILE = "./logs/notification-dispatch-service.log"
MAX_LOG_FILE_BYTES = 100 * 1024 * 1024
LOG_BACKUP_COUNT = 240
DEFAULT_RETENTION_DAYS = 10


def _shared_processors() -> list:
    return [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        add_request_context,
        add_service_context,
        add_process_info,
    ]


def setup_logging(
    log_file_path: str | None = None, log_level: str | None = None
) -> None:
    """Configure structlog with JSON file output and colored console output.

    File output is JSON with every context field, rotated at 100MB.
    Console output is a single colored line per event and is always enabled.

    Environment Variables:
    - LOG_FILE_PATH: Path to log file (default: ./logs/notification-dispatch-service.log)
    - LOG_LEVEL: Logging level (default: INFO)
    - SERVICE_NAME / ENVIRONMENT: attached to every event

    Args:
        log_file_path: Overrides LOG_FILE_PATH when given.
        log_level: Overrides LOG_LEVEL when given.
    """
    log_file_path = log_file_path or os.getenv("LOG_FILE_PATH", DEFAULT_LOG_FILE)
    level_name = (log_level or os.getenv("LOG_LEVEL", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    Path(log_file_path).parent.mkdir(parents=True, exist_ok=True)

    file_handler = logging.handlers.RotatingFileHandler(
        filename=log_file_path,
        maxBytes=MAX_LOG_FILE_BYTES,
        backupCount=LOG_BACKUP_COUNT,
        encoding="utf-8",
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=structlog.processors.JSONRenderer(),
            foreign_pre_chain=_shared_processors(),
        )
    )

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=console_renderer,
            foreign_pre_chain=_shared_processors(),
        )
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *_shared_processors(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)
    root_logger.setLevel(level)

    structlog.get_logger(__name__).info(
        "logging_configured",
        log_file=log_file_path,
        log_level=level_name,
        max_file_size_mb=MAX_LOG_FILE_BYTES // (1024 * 1024),
    )


def cleanup_old_logs(
    log_file_path: str | None = None,
    retention_days: int = DEFAULT_RETENTION_DAYS,
) -> int:
    """Remove rotated log files older than the retention period.

    The active log file is never removed.

    Args:
        log_file_path: Path to the main log file. If None, uses LOG_FILE_PATH.
        retention_days: Number of days to retain rotated logs.

    Returns:
        Number of files deleted.
    """
    log_file_path = log_file_path or os.getenv("LOG_FILE_PATH", DEFAULT_LOG_FILE)
    log_path = Path(log_file_path)
    cutoff = time.time() - retention_days * 24 * 60 * 60
    logger = structlog.get_logger(__name__)

    deleted_count = 0
    for rotated in log_path.parent.glob(f"{log_path.name}.*"):
        if rotated.stat().st_mtime >= cutoff:
            continue
        try:
            rotated.unlink()
        except OSError as e:
            logger.warning("log_file_delete_failed", file=str(rotated), error=str(e))
            continue
        deleted_count += 1

    if deleted_count:
        logger.info(
            "old_log_files_removed",
            deleted_count=deleted_count,
            retention_days=retention_days,
        )
    return deleted_count
