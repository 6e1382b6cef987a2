"""
gator Package

A command-line RSS feed aggregator that polls subscribed feeds in
round-robin order and stores new posts without duplicates.
"""

__version__ = "1.0.0"

# Package-level imports for convenience
from .config_manager import ConfigManager
from .rss_fetcher import RSSFetcher, FetchFailed
from .rss_parser import RSSParser
from .storage_manager import StorageManager, StorageError, DuplicateKeyError
from .ingestion import ingest_items
from .scheduler import FeedScheduler, run_scheduler, scrape_next_feed

__all__ = [
    'ConfigManager',
    'RSSFetcher',
    'FetchFailed',
    'RSSParser',
    'StorageManager',
    'StorageError',
    'DuplicateKeyError',
    'ingest_items',
    'FeedScheduler',
    'run_scheduler',
    'scrape_next_feed',
]
