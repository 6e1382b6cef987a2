"""
Scheduler for feed scraping.
Claims one feed per tick, fetches it and ingests its items.
"""
import threading
import time
from datetime import datetime
from typing import Any, Dict, Optional

import pytz
from apscheduler.schedulers.background import BackgroundScheduler

from gator.ingestion import ingest_items
from gator.rss_fetcher import FetchFailed
from gator.storage_manager import StorageError
from gator.utils.logging_utils import (
    format_duration,
    log_fetch_failure,
    log_scheduler_event,
    setup_module_logger,
)

logger = setup_module_logger(__name__)

SCRAPE_JOB_ID = 'scrape_feeds'
DEFAULT_FETCH_TIMEOUT_RATIO = 0.8


def derive_fetch_timeout(interval_seconds: float, configured_timeout: Optional[float] = None,
                         ratio: float = DEFAULT_FETCH_TIMEOUT_RATIO) -> float:
    """
    Fetch deadline for one tick, kept below the tick interval.

    Args:
        interval_seconds: Seconds between ticks
        configured_timeout: Configured network timeout, if any
        ratio: Fraction of the interval a fetch may use

    Returns:
        Deadline in seconds
    """
    bound = interval_seconds * ratio
    if not configured_timeout or configured_timeout <= 0:
        return bound
    return min(configured_timeout, bound)


def scrape_next_feed(state, fetch_timeout: Optional[float] = None) -> Optional[Dict[str, int]]:
    """
    Run one scrape tick.

    Claims the least recently fetched feed before fetching it, so a slow or
    failing feed is not picked again ahead of the others.

    Args:
        state: Application state with `storage` and `fetcher`
        fetch_timeout: Deadline for the network fetch; the fetcher's default if None

    Returns:
        Ingestion statistics, or None if nothing was ingested this tick
    """
    try:
        feed = state.storage.claim_next_feed()
    except StorageError as e:
        logger.error(f"Error getting next feed to fetch: {e}")
        return None

    if feed is None:
        logger.debug("No feeds to fetch")
        return None

    logger.info(f"Fetching feed '{feed.name}' ({feed.url})")

    try:
        rss_feed = state.fetcher.fetch_feed(feed.url, timeout=fetch_timeout)
    except FetchFailed as e:
        log_fetch_failure(logger, feed.name, e.cause)
        return None

    return ingest_items(state.storage, feed.id, rss_feed.items)


class FeedScheduler:
    """
    Runs scrape ticks on a fixed interval in a background thread.
    """

    def __init__(self, state, interval_seconds: float, timezone: str = "UTC",
                 fetch_timeout: Optional[float] = None):
        """
        Initialize the scheduler.

        Args:
            state: Application state passed to every tick
            interval_seconds: Seconds between ticks, must be positive
            timezone: Timezone for the scheduler clock
            fetch_timeout: Deadline for each fetch; defaults to a fraction of the interval
        """
        if interval_seconds <= 0:
            raise ValueError(f"interval must be positive, got {interval_seconds}")

        self.state = state
        self.interval_seconds = interval_seconds
        self.fetch_timeout = fetch_timeout if fetch_timeout is not None else derive_fetch_timeout(interval_seconds)
        self.tick_count = 0
        self.last_result: Optional[Dict[str, int]] = None

        try:
            self.tz = pytz.timezone(timezone)
        except pytz.exceptions.UnknownTimeZoneError:
            logger.warning(f"Unknown timezone: {timezone}, using UTC")
            self.tz = pytz.utc

        self.scheduler = BackgroundScheduler(
            job_defaults={
                'coalesce': True,
                'max_instances': 1,
                'misfire_grace_time': None
            },
            timezone=self.tz
        )

        logger.debug(f"FeedScheduler initialized with interval {interval_seconds}s, fetch timeout {self.fetch_timeout}s")

    @property
    def running(self) -> bool:
        return bool(self.scheduler.running)

    def _run_tick_safely(self):
        """
        Run one tick; nothing raised here may stop the schedule.
        """
        start_time = time.time()
        try:
            self.last_result = scrape_next_feed(self.state, fetch_timeout=self.fetch_timeout)
        except Exception as e:
            self.last_result = None
            logger.error(f"Error executing scrape tick: {e}", exc_info=True)
        finally:
            self.tick_count += 1
            logger.debug(f"Tick {self.tick_count} finished in {format_duration(time.time() - start_time)}")

    def start(self):
        """
        Start ticking; the first tick runs immediately.
        """
        if self.running:
            logger.warning("Scheduler is already running")
            return

        self.scheduler.add_job(
            self._run_tick_safely,
            trigger='interval',
            seconds=self.interval_seconds,
            id=SCRAPE_JOB_ID,
            name='Scrape next feed',
            next_run_time=datetime.now(self.tz),
            replace_existing=True
        )
        self.scheduler.start()

        log_scheduler_event(logger, "started", f"every {format_duration(self.interval_seconds)}")

    def shutdown(self, wait: bool = True):
        """
        Stop ticking. With wait=True an in-flight tick finishes first.
        """
        if not self.running:
            logger.warning("Scheduler is not running")
            return

        self.scheduler.shutdown(wait=wait)
        log_scheduler_event(logger, "stopped", f"after {self.tick_count} ticks")

    def get_status(self) -> Dict[str, Any]:
        """
        Get scheduler status information.

        Returns:
            Dictionary with scheduler status
        """
        job = self.scheduler.get_job(SCRAPE_JOB_ID) if self.running else None
        next_run = getattr(job, 'next_run_time', None) if job else None

        return {
            "running": self.running,
            "interval_seconds": self.interval_seconds,
            "fetch_timeout": self.fetch_timeout,
            "timezone": str(self.tz),
            "ticks": self.tick_count,
            "next_run": next_run.isoformat() if next_run else None,
        }


def run_scheduler(state, interval_seconds: float, stop_event: Optional[threading.Event] = None,
                  timezone: str = "UTC", fetch_timeout: Optional[float] = None,
                  poll_interval: float = 1.0) -> int:
    """
    Scrape feeds every interval until stop_event is set or the process is interrupted.

    Cancellation takes effect between ticks; a tick in progress is allowed
    to finish.

    Args:
        state: Application state with `storage` and `fetcher`
        interval_seconds: Seconds between ticks
        stop_event: Event that ends the loop when set
        timezone: Timezone for the scheduler clock
        fetch_timeout: Deadline for each fetch
        poll_interval: How often the waiting thread checks stop_event

    Returns:
        Number of ticks run
    """
    stop_event = stop_event or threading.Event()
    scheduler = FeedScheduler(state, interval_seconds, timezone=timezone, fetch_timeout=fetch_timeout)
    scheduler.start()

    try:
        while not stop_event.is_set():
            stop_event.wait(poll_interval)
    except KeyboardInterrupt:
        logger.info("Scheduler interrupted by user")
    finally:
        scheduler.shutdown(wait=True)

    return scheduler.tick_count
