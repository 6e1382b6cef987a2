"""
RSS Parser module for processing RSS feeds.
Extracts channel metadata and items from feed XML into structured format.
"""
import logging
from typing import Optional, Union
from xml.sax import SAXException

import feedparser

from gator.models import FeedItem, RSSFeed

logger = logging.getLogger(__name__)


class RSSParseError(ValueError):
    """Raised when a feed document is not well-formed XML."""


class RSSParser:
    """
    Parses RSS/Atom documents and extracts channel data and items.
    """

    def __init__(self):
        """Initialize the RSS parser."""
        logger.debug("RSSParser initialized")

    def parse_rss(self, rss_content: Union[bytes, str], source: str = "") -> RSSFeed:
        """
        Parse RSS content into structured format.

        Args:
            rss_content: Raw RSS XML content
            source: Where the content came from, used in log messages

        Returns:
            RSSFeed with channel metadata and items in document order

        Raises:
            RSSParseError: If the document is empty or is not a well-formed feed
        """
        if not rss_content or not rss_content.strip():
            raise RSSParseError(f"empty document from {source or 'feed'}")

        parsed = feedparser.parse(rss_content)

        if parsed.bozo and isinstance(parsed.get('bozo_exception'), SAXException):
            raise RSSParseError(f"malformed XML from {source or 'feed'}: {parsed.bozo_exception}")

        if not parsed.get('version') and not parsed.entries:
            raise RSSParseError(f"no RSS or Atom document from {source or 'feed'}")

        channel = parsed.feed
        feed = RSSFeed(
            title=channel.get('title', ''),
            link=channel.get('link', ''),
            description=channel.get('description', channel.get('subtitle', '')),
        )

        for entry in parsed.entries:
            feed.items.append(self._extract_item(entry))

        if not feed.items:
            logger.warning(f"No items found in feed {source or feed.title}")
        else:
            logger.debug(f"Extracted {len(feed.items)} items from {source or feed.title}")

        return feed

    def _extract_item(self, entry) -> FeedItem:
        """
        Extract item data from a feed entry.

        Args:
            entry: Feed entry from feedparser

        Returns:
            FeedItem with the raw publication date string
        """
        description: Optional[str] = None
        if 'summary' in entry:
            description = entry.summary
        elif 'content' in entry and entry.content:
            description = entry.content[0].get('value', '')

        # Keep the raw string; date parsing happens during ingestion
        pub_date = entry.get('published') or entry.get('updated') or None

        return FeedItem(
            title=entry.get('title', '').strip(),
            link=entry.get('link', '').strip(),
            description=description or None,
            pub_date=pub_date,
        )
