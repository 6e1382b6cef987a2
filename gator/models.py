"""
Data models shared by the storage layer, the fetcher and the CLI.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional


@dataclass
class User:
    """Registered user"""
    id: str
    created_at: datetime
    updated_at: datetime
    name: str


@dataclass
class Feed:
    """Feed subscription; last_fetched_at is None until the first claim"""
    id: str
    created_at: datetime
    updated_at: datetime
    name: str
    url: str
    user_id: str
    last_fetched_at: Optional[datetime] = None


@dataclass
class FeedFollow:
    """A user following a feed"""
    id: str
    created_at: datetime
    updated_at: datetime
    user_id: str
    feed_id: str
    user_name: str = ""
    feed_name: str = ""


@dataclass
class Post:
    """Stored feed item"""
    id: str
    created_at: datetime
    updated_at: datetime
    title: str
    url: str
    feed_id: str
    description: Optional[str] = None
    published_at: Optional[datetime] = None


@dataclass
class FeedItem:
    """One <item> of a fetched feed document, before it is stored"""
    title: str
    link: str
    description: Optional[str] = None
    pub_date: Optional[str] = None


@dataclass
class RSSFeed:
    """Parsed feed document"""
    title: str = ""
    link: str = ""
    description: str = ""
    items: List[FeedItem] = field(default_factory=list)
