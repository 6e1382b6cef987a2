#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
rss_fetcher.py - Module for fetching RSS feeds using requests.
"""

import time
from typing import Optional

import requests

from gator import __version__
from gator.models import RSSFeed
from gator.rss_parser import RSSParser, RSSParseError
from gator.utils.logging_utils import setup_module_logger

logger = setup_module_logger(__name__)

DEFAULT_USER_AGENT = f"gator/{__version__}"
FEED_ACCEPT = 'application/rss+xml, application/xml;q=0.9, text/xml;q=0.8'
CHUNK_SIZE = 8192


class FetchFailed(Exception):
    """Raised when a feed cannot be fetched or parsed."""

    def __init__(self, url: str, cause):
        super().__init__(f"fetching {url} failed: {cause}")
        self.url = url
        self.cause = cause


class RSSFetcher:
    """
    Class for fetching RSS feeds using a requests session.
    Relies on RSSParser for parsing the fetched content.
    """

    def __init__(self, timeout: float = 10.0, user_agent: str = DEFAULT_USER_AGENT,
                 parser: Optional[RSSParser] = None,
                 session: Optional[requests.Session] = None):
        """
        Initialize the RSS Fetcher with configuration and dependencies.

        Args:
            timeout (float): Total fetch deadline in seconds, used when a call gives none.
            user_agent (str): User-Agent header sent with every request.
            parser (RSSParser): Parser for the fetched content.
            session (requests.Session): Session to reuse; one is created if omitted.
        """
        self.timeout = timeout
        self.parser = parser or RSSParser()

        self.session = session or requests.Session()
        self.session.headers.update({
            'User-Agent': user_agent,
            'Accept': FEED_ACCEPT,
        })

        logger.debug(f"RSSFetcher initialized with timeout {timeout}s and user agent '{user_agent}'")

    def _fetch_raw_content(self, url: str, timeout: float) -> bytes:
        """
        Fetches the raw feed body, enforcing a total deadline.

        requests only bounds individual socket operations, so the body is
        streamed and the deadline checked between chunks.

        Args:
            url (str): URL of the RSS feed
            timeout (float): Seconds allowed for connect plus download

        Returns:
            bytes: Raw response body
        """
        deadline = time.monotonic() + timeout

        logger.debug(f"Attempting to fetch {url}")
        with self.session.get(url, timeout=timeout, stream=True) as response:
            response.raise_for_status()

            chunks = []
            for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                if time.monotonic() > deadline:
                    raise requests.exceptions.Timeout(f"deadline of {timeout}s exceeded")
                chunks.append(chunk)

        logger.debug(f"Successfully fetched {url}")
        return b''.join(chunks)

    def fetch_feed(self, url: str, timeout: Optional[float] = None) -> RSSFeed:
        """
        Fetches a feed URL and parses it into structured feed data.

        Args:
            url (str): Feed URL
            timeout (float): Total deadline for this call; defaults to the fetcher's timeout

        Returns:
            RSSFeed: Parsed channel and items

        Raises:
            FetchFailed: On network errors, non-2xx responses, deadline overrun or malformed XML
        """
        timeout = timeout if timeout is not None else self.timeout

        try:
            raw_content = self._fetch_raw_content(url, timeout)
        except requests.exceptions.RequestException as e:
            raise FetchFailed(url, e) from e

        try:
            feed = self.parser.parse_rss(raw_content, url)
        except RSSParseError as e:
            raise FetchFailed(url, e) from e

        logger.info(f"Fetched {len(feed.items)} items from {url}")
        return feed
