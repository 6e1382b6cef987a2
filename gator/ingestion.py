"""
Ingestion pipeline: turns fetched feed items into stored posts.
"""
import logging
from datetime import datetime
from typing import Dict, Iterable, Optional

from gator.models import FeedItem
from gator.storage_manager import DuplicateKeyError, StorageError, StorageManager
from gator.utils.helpers import parse_published_at
from gator.utils.logging_utils import log_ingestion_results

logger = logging.getLogger(__name__)


def resolve_published_at(raw_date: Optional[str]) -> Optional[datetime]:
    """
    Parse an item's publication date, degrading to None.

    Args:
        raw_date: Raw date string from the feed, possibly empty

    Returns:
        UTC datetime, or None when the date is missing or unparseable
    """
    if not raw_date or not raw_date.strip():
        return None

    try:
        return parse_published_at(raw_date)
    except (ValueError, OverflowError) as e:
        logger.warning(f"Storing item without publication date: {e}")
        return None


def ingest_items(storage: StorageManager, feed_id: str, items: Iterable[FeedItem]) -> Dict[str, int]:
    """
    Store feed items as posts, skipping ones the feed already has.

    Every item is attempted independently: a duplicate is skipped silently
    and any other storage failure is logged and counted without stopping
    the rest of the batch.

    Args:
        storage: Storage capability providing create_post
        feed_id: Feed the items belong to
        items: Parsed feed items

    Returns:
        Dictionary with statistics about the ingestion
    """
    stats = {
        'total_items': 0,
        'new_posts': 0,
        'duplicates_found': 0,
        'failed': 0,
        'undated': 0,
    }

    for item in items:
        stats['total_items'] += 1

        published_at = resolve_published_at(item.pub_date)
        if published_at is None:
            stats['undated'] += 1

        try:
            storage.create_post(
                feed_id=feed_id,
                title=item.title,
                url=item.link,
                description=item.description or None,
                published_at=published_at,
            )
        except DuplicateKeyError:
            stats['duplicates_found'] += 1
            continue
        except StorageError as e:
            stats['failed'] += 1
            logger.error(f"Error creating post '{item.link}' for feed {feed_id}: {e}")
            continue

        stats['new_posts'] += 1

    log_ingestion_results(logger, feed_id, stats)
    return stats
