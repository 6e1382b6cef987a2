"""
Storage Manager module for the SQLite database behind gator.

Holds users, feeds, follows and posts. Uniqueness violations surface as
DuplicateKeyError; every other database failure as StorageError.
"""
import logging
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime
from typing import Generator, List, Optional, Tuple

from gator.models import Feed, FeedFollow, Post, User
from gator.utils.helpers import format_timestamp, parse_timestamp, utc_now

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when a database operation fails."""


class DuplicateKeyError(StorageError):
    """Raised when an insert collides with an existing unique key."""


SCHEMA = """
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        name TEXT NOT NULL UNIQUE
    );

    CREATE TABLE IF NOT EXISTS feeds (
        id TEXT PRIMARY KEY,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        name TEXT NOT NULL,
        url TEXT NOT NULL UNIQUE,
        user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        last_fetched_at TEXT
    );

    CREATE TABLE IF NOT EXISTS feed_follows (
        id TEXT PRIMARY KEY,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        feed_id TEXT NOT NULL REFERENCES feeds(id) ON DELETE CASCADE,
        UNIQUE(user_id, feed_id)
    );

    CREATE TABLE IF NOT EXISTS posts (
        id TEXT PRIMARY KEY,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        title TEXT NOT NULL,
        url TEXT NOT NULL,
        description TEXT,
        published_at TEXT,
        feed_id TEXT NOT NULL REFERENCES feeds(id) ON DELETE CASCADE,
        UNIQUE(feed_id, url)
    );

    CREATE INDEX IF NOT EXISTS idx_feeds_last_fetched_at ON feeds(last_fetched_at);
    CREATE INDEX IF NOT EXISTS idx_posts_published_at ON posts(published_at);
"""

# NULL first, then oldest; created_at and id keep ties stable
NEXT_FEED_QUERY = """
    SELECT * FROM feeds
    ORDER BY last_fetched_at IS NOT NULL, last_fetched_at, created_at, id
    LIMIT 1
"""


def _new_id() -> str:
    return str(uuid.uuid4())


class StorageManager:
    """
    Manages the relational storage of users, feeds, follows and posts.
    """

    def __init__(self, db_path: str, busy_timeout: float = 5.0):
        """
        Initialize the storage manager and create tables if needed.

        Args:
            db_path: Path to the SQLite database file
            busy_timeout: Seconds to wait for a locked database
        """
        self.db_path = db_path
        self.busy_timeout = busy_timeout
        self._init_db()

        logger.debug(f"StorageManager initialized with database: {self.db_path}")

    @contextmanager
    def _get_conn(self) -> Generator[sqlite3.Connection, None, None]:
        """Get a connection that commits on success and maps errors to StorageError."""
        try:
            conn = sqlite3.connect(self.db_path, timeout=self.busy_timeout)
        except sqlite3.Error as e:
            raise StorageError(f"cannot open database {self.db_path}: {e}") from e

        conn.row_factory = sqlite3.Row
        try:
            conn.execute("PRAGMA foreign_keys = ON")
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StorageError(str(e)) from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self) -> None:
        """Initialize database tables"""
        with self._get_conn() as conn:
            conn.executescript(SCHEMA)

    # Row mapping
    @staticmethod
    def _row_to_user(row: sqlite3.Row) -> User:
        return User(
            id=row["id"],
            created_at=parse_timestamp(row["created_at"]),
            updated_at=parse_timestamp(row["updated_at"]),
            name=row["name"],
        )

    @staticmethod
    def _row_to_feed(row: sqlite3.Row) -> Feed:
        return Feed(
            id=row["id"],
            created_at=parse_timestamp(row["created_at"]),
            updated_at=parse_timestamp(row["updated_at"]),
            name=row["name"],
            url=row["url"],
            user_id=row["user_id"],
            last_fetched_at=parse_timestamp(row["last_fetched_at"]),
        )

    @staticmethod
    def _row_to_post(row: sqlite3.Row) -> Post:
        return Post(
            id=row["id"],
            created_at=parse_timestamp(row["created_at"]),
            updated_at=parse_timestamp(row["updated_at"]),
            title=row["title"],
            url=row["url"],
            feed_id=row["feed_id"],
            description=row["description"],
            published_at=parse_timestamp(row["published_at"]),
        )

    # User operations
    def create_user(self, name: str) -> User:
        """Create a user; DuplicateKeyError if the name is taken"""
        now = utc_now()
        user = User(id=_new_id(), created_at=now, updated_at=now, name=name)
        with self._get_conn() as conn:
            cursor = conn.execute(
                "INSERT INTO users (id, created_at, updated_at, name) VALUES (?, ?, ?, ?) "
                "ON CONFLICT(name) DO NOTHING",
                (user.id, format_timestamp(now), format_timestamp(now), name)
            )
            if cursor.rowcount == 0:
                raise DuplicateKeyError(f"user '{name}' already exists")
        return user

    def get_user(self, name: str) -> Optional[User]:
        """Get user by name"""
        with self._get_conn() as conn:
            row = conn.execute("SELECT * FROM users WHERE name = ?", (name,)).fetchone()
        return self._row_to_user(row) if row else None

    def get_users(self) -> List[User]:
        with self._get_conn() as conn:
            rows = conn.execute("SELECT * FROM users ORDER BY created_at, name").fetchall()
        return [self._row_to_user(row) for row in rows]

    def reset(self) -> int:
        """Delete all users; feeds, follows and posts go with them. Returns users removed."""
        with self._get_conn() as conn:
            cursor = conn.execute("DELETE FROM users")
            removed = cursor.rowcount
        logger.info(f"Reset database: removed {removed} users")
        return removed

    # Feed operations
    def create_feed(self, name: str, url: str, user_id: str) -> Feed:
        """Create a feed; DuplicateKeyError if the URL is already registered"""
        now = utc_now()
        feed = Feed(id=_new_id(), created_at=now, updated_at=now, name=name, url=url, user_id=user_id)
        with self._get_conn() as conn:
            cursor = conn.execute(
                "INSERT INTO feeds (id, created_at, updated_at, name, url, user_id) "
                "VALUES (?, ?, ?, ?, ?, ?) ON CONFLICT(url) DO NOTHING",
                (feed.id, format_timestamp(now), format_timestamp(now), name, url, user_id)
            )
            if cursor.rowcount == 0:
                raise DuplicateKeyError(f"feed with url '{url}' already exists")
        return feed

    def get_feeds(self) -> List[Tuple[Feed, str]]:
        """All feeds with the name of the user who added them"""
        with self._get_conn() as conn:
            rows = conn.execute(
                "SELECT feeds.*, users.name AS user_name FROM feeds "
                "JOIN users ON users.id = feeds.user_id ORDER BY feeds.created_at, feeds.id"
            ).fetchall()
        return [(self._row_to_feed(row), row["user_name"]) for row in rows]

    def get_feed_by_url(self, url: str) -> Optional[Feed]:
        with self._get_conn() as conn:
            row = conn.execute("SELECT * FROM feeds WHERE url = ?", (url,)).fetchone()
        return self._row_to_feed(row) if row else None

    def get_feed(self, feed_id: str) -> Optional[Feed]:
        with self._get_conn() as conn:
            row = conn.execute("SELECT * FROM feeds WHERE id = ?", (feed_id,)).fetchone()
        return self._row_to_feed(row) if row else None

    # Follow operations
    def create_feed_follow(self, user_id: str, feed_id: str) -> FeedFollow:
        """Follow a feed; DuplicateKeyError if already following"""
        now = utc_now()
        follow_id = _new_id()
        with self._get_conn() as conn:
            cursor = conn.execute(
                "INSERT INTO feed_follows (id, created_at, updated_at, user_id, feed_id) "
                "VALUES (?, ?, ?, ?, ?) ON CONFLICT(user_id, feed_id) DO NOTHING",
                (follow_id, format_timestamp(now), format_timestamp(now), user_id, feed_id)
            )
            if cursor.rowcount == 0:
                raise DuplicateKeyError("feed is already followed")
            row = conn.execute(
                "SELECT users.name AS user_name, feeds.name AS feed_name FROM users, feeds "
                "WHERE users.id = ? AND feeds.id = ?",
                (user_id, feed_id)
            ).fetchone()

        return FeedFollow(
            id=follow_id,
            created_at=now,
            updated_at=now,
            user_id=user_id,
            feed_id=feed_id,
            user_name=row["user_name"] if row else "",
            feed_name=row["feed_name"] if row else "",
        )

    def get_feed_follows_for_user(self, user_id: str) -> List[FeedFollow]:
        with self._get_conn() as conn:
            rows = conn.execute(
                "SELECT feed_follows.*, users.name AS user_name, feeds.name AS feed_name "
                "FROM feed_follows "
                "JOIN users ON users.id = feed_follows.user_id "
                "JOIN feeds ON feeds.id = feed_follows.feed_id "
                "WHERE feed_follows.user_id = ? ORDER BY feed_follows.created_at",
                (user_id,)
            ).fetchall()
        return [
            FeedFollow(
                id=row["id"],
                created_at=parse_timestamp(row["created_at"]),
                updated_at=parse_timestamp(row["updated_at"]),
                user_id=row["user_id"],
                feed_id=row["feed_id"],
                user_name=row["user_name"],
                feed_name=row["feed_name"],
            )
            for row in rows
        ]

    def delete_feed_follow(self, user_id: str, feed_id: str) -> bool:
        """Remove a follow. Returns False if there was nothing to remove"""
        with self._get_conn() as conn:
            cursor = conn.execute(
                "DELETE FROM feed_follows WHERE user_id = ? AND feed_id = ?",
                (user_id, feed_id)
            )
            return cursor.rowcount > 0

    # Fetch cursor
    def next_feed_to_fetch(self) -> Optional[Feed]:
        """The feed never fetched or fetched longest ago, or None if there are no feeds"""
        with self._get_conn() as conn:
            row = conn.execute(NEXT_FEED_QUERY).fetchone()
        return self._row_to_feed(row) if row else None

    def mark_feed_fetched(self, feed_id: str, fetched_at: Optional[datetime] = None) -> None:
        """Set last_fetched_at; StorageError if the feed does not exist"""
        stamp = format_timestamp(fetched_at or utc_now())
        with self._get_conn() as conn:
            cursor = conn.execute(
                "UPDATE feeds SET last_fetched_at = ?, updated_at = ? WHERE id = ?",
                (stamp, stamp, feed_id)
            )
            if cursor.rowcount == 0:
                raise StorageError(f"feed {feed_id} not found")

    def claim_next_feed(self, now: Optional[datetime] = None) -> Optional[Feed]:
        """
        Select the next feed and mark it fetched in one write transaction.

        BEGIN IMMEDIATE takes the write lock before the read, so two
        schedulers sharing the database never claim the same feed.

        Returns:
            The claimed feed with last_fetched_at updated, or None if there are no feeds
        """
        now = now or utc_now()
        stamp = format_timestamp(now)
        with self._get_conn() as conn:
            conn.execute("BEGIN IMMEDIATE")
            row = conn.execute(NEXT_FEED_QUERY).fetchone()
            if row is None:
                return None
            conn.execute(
                "UPDATE feeds SET last_fetched_at = ?, updated_at = ? WHERE id = ?",
                (stamp, stamp, row["id"])
            )

        feed = self._row_to_feed(row)
        feed.last_fetched_at = parse_timestamp(stamp)
        feed.updated_at = feed.last_fetched_at
        return feed

    # Post operations
    def create_post(self, feed_id: str, title: str, url: str,
                    description: Optional[str] = None,
                    published_at: Optional[datetime] = None) -> Post:
        """
        Store a post.

        Raises:
            DuplicateKeyError: If the feed already has a post with this URL
            StorageError: For any other database failure
        """
        now = utc_now()
        post = Post(
            id=_new_id(),
            created_at=now,
            updated_at=now,
            title=title,
            url=url,
            feed_id=feed_id,
            description=description,
            published_at=published_at,
        )
        with self._get_conn() as conn:
            cursor = conn.execute(
                "INSERT INTO posts (id, created_at, updated_at, title, url, description, published_at, feed_id) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?) ON CONFLICT(feed_id, url) DO NOTHING",
                (
                    post.id,
                    format_timestamp(now),
                    format_timestamp(now),
                    title,
                    url,
                    description,
                    format_timestamp(published_at) if published_at else None,
                    feed_id,
                )
            )
            if cursor.rowcount == 0:
                raise DuplicateKeyError(f"post '{url}' already stored for feed {feed_id}")
        return post

    def get_posts_for_user(self, user_id: str, limit: int = 2) -> List[Post]:
        """Newest posts from the feeds a user follows; undated posts last"""
        with self._get_conn() as conn:
            rows = conn.execute(
                "SELECT posts.* FROM posts "
                "JOIN feed_follows ON feed_follows.feed_id = posts.feed_id "
                "WHERE feed_follows.user_id = ? "
                "ORDER BY posts.published_at IS NULL, posts.published_at DESC, posts.created_at DESC "
                "LIMIT ?",
                (user_id, limit)
            ).fetchall()
        return [self._row_to_post(row) for row in rows]

    def get_posts_for_feed(self, feed_id: str) -> List[Post]:
        with self._get_conn() as conn:
            rows = conn.execute(
                "SELECT * FROM posts WHERE feed_id = ? ORDER BY created_at, id", (feed_id,)
            ).fetchall()
        return [self._row_to_post(row) for row in rows]
