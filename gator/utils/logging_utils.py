"""
Logging utilities for gator.
Contains helper functions for consistent logging across modules.
"""
import logging, os
from logging.handlers import TimedRotatingFileHandler
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


def log_ingestion_results(logger: logging.Logger, feed_id: str, stats: Dict[str, int]) -> None:
    """
    Log ingestion results for one feed in a consistent format.

    Args:
        logger: Logger instance to use
        feed_id: Feed the items belong to
        stats: Statistics dictionary returned by ingest_items
    """
    total = stats.get('total_items', 0)
    new = stats.get('new_posts', 0)
    duplicates = stats.get('duplicates_found', 0)
    failed = stats.get('failed', 0)

    if total == 0:
        logger.info(f"Feed {feed_id}: no items to process")
        return

    duplicate_percentage = duplicates / total * 100

    logger.info(
        f"Feed {feed_id}: {total} items, {new} new, {duplicates} duplicates "
        f"({duplicate_percentage:.1f}%), {failed} failed"
    )

    if stats.get('undated', 0) > 0:
        logger.debug(f"Feed {feed_id}: {stats['undated']} items stored without a publication date")

    if failed > 0:
        logger.warning(f"Feed {feed_id}: {failed} items could not be stored")


def log_fetch_failure(logger: logging.Logger, feed_name: str, error: Any) -> None:
    """
    Log failed feed fetch.

    Args:
        logger: Logger instance to use
        feed_name: Name of the feed that failed
        error: Error or message describing the failure
    """
    logger.error(f"Failed to fetch feed '{feed_name}': {error}")


def log_scheduler_event(logger: logging.Logger, event: str, details: Optional[str] = None) -> None:
    """
    Log scheduler events.

    Args:
        logger: Logger instance to use
        event: Event type (started, stopped, tick, etc.)
        details: Optional additional details
    """
    message = f"Scheduler {event}"
    if details:
        message += f": {details}"

    logger.info(message)


def setup_module_logger(module_name: str, level: Optional[str] = None) -> logging.Logger:
    """
    Setup a logger for a specific module.

    Args:
        module_name: Name of the module
        level: Logging level. Accepted values are "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL".
               None leaves the level to the root logger.

    Returns:
        Configured logger instance
    """
    module_logger = logging.getLogger(module_name)
    if level:
        module_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    return module_logger


def format_duration(seconds: float) -> str:
    """
    Format duration in human-readable format.

    Args:
        seconds: Duration in seconds

    Returns:
        Formatted string (e.g., "2m 30s", "1h 5m")
    """
    if seconds < 60:
        return f"{seconds:.1f}s"

    minutes = int(seconds // 60)
    remaining_seconds = int(seconds % 60)

    if minutes < 60:
        return f"{minutes}m {remaining_seconds}s"

    hours = int(minutes // 60)
    remaining_minutes = int(minutes % 60)

    return f"{hours}h {remaining_minutes}m"


def setup_logging(log_level: str = "INFO", log_dir: Optional[str] = "logs") -> logging.Logger:
    """
    Configure console and file logging.

    Args:
        log_level: Minimum logging level (e.g., "INFO", "DEBUG")
        log_dir: Directory to store log files; None disables the file handler

    Returns:
        The configured root logger instance.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    # Repeated calls must not stack handlers
    for handler in list(root_logger.handlers):
        if getattr(handler, '_gator_handler', False):
            root_logger.removeHandler(handler)
            handler.close()

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(logging.Formatter('%(levelname)s: %(message)s'))
    console_handler._gator_handler = True
    root_logger.addHandler(console_handler)

    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        # File handler (daily rotation)
        file_handler = TimedRotatingFileHandler(os.path.join(log_dir, 'gator.log'), when='midnight', interval=1, backupCount=7)
        file_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
        file_handler._gator_handler = True
        root_logger.addHandler(file_handler)

    # APScheduler logs every job run at INFO
    logging.getLogger('apscheduler').setLevel(logging.WARNING)

    logger.info(f"Logging configured to level {log_level.upper()}. Log files in {log_dir}")
    return root_logger
