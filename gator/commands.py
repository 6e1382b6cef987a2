"""
Command handlers for the gator CLI.

Handlers take the application state and the command, print their output
and raise CommandError for anything the user should see as an error.
"""
import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, List

from gator.config_manager import ConfigManager
from gator.models import User
from gator.rss_fetcher import RSSFetcher
from gator.scheduler import derive_fetch_timeout, run_scheduler, scrape_next_feed
from gator.storage_manager import DuplicateKeyError, StorageManager
from gator.utils.helpers import parse_duration, validate_url

logger = logging.getLogger(__name__)


class CommandError(Exception):
    """Raised when a command cannot be carried out."""


@dataclass
class AppState:
    storage: StorageManager
    config: ConfigManager
    fetcher: RSSFetcher
    stop_event: threading.Event = field(default_factory=threading.Event)


@dataclass
class Command:
    name: str
    args: List[str] = field(default_factory=list)


Handler = Callable[[AppState, Command], None]
UserHandler = Callable[[AppState, Command, User], None]


class Commands:
    """
    Registry mapping command names to handlers.
    """

    def __init__(self):
        self.handlers: Dict[str, Handler] = {}

    def register(self, name: str, handler: Handler) -> None:
        self.handlers[name] = handler

    def run(self, state: AppState, cmd: Command) -> None:
        handler = self.handlers.get(cmd.name)
        if handler is None:
            raise CommandError(f"unknown command: {cmd.name}")
        handler(state, cmd)

    def names(self) -> List[str]:
        return sorted(self.handlers)


def middleware_logged_in(handler: UserHandler) -> Handler:
    """Wrap a handler that needs the current user."""

    def wrapped(state: AppState, cmd: Command) -> None:
        name = state.config.current_user_name
        if not name:
            raise CommandError("no user logged in")

        user = state.storage.get_user(name)
        if user is None:
            raise CommandError(f"current user '{name}' does not exist")

        handler(state, cmd, user)

    return wrapped


# User commands

def handler_register(state: AppState, cmd: Command) -> None:
    if len(cmd.args) < 1:
        raise CommandError("usage: register <name>")

    try:
        user = state.storage.create_user(cmd.args[0])
    except DuplicateKeyError:
        raise CommandError(f"user '{cmd.args[0]}' already exists")

    state.config.set_current_user(user.name)
    logger.debug(f"User created: {user}")
    print(f"User {user.name} created")


def handler_login(state: AppState, cmd: Command) -> None:
    if len(cmd.args) < 1:
        raise CommandError("usage: login <name>")

    username = cmd.args[0]
    if state.storage.get_user(username) is None:
        raise CommandError(f"user '{username}' does not exist")

    state.config.set_current_user(username)
    print(f"Logged in as {username}")


def handler_reset(state: AppState, cmd: Command) -> None:
    state.storage.reset()
    print("Database reset successful")


def handler_users(state: AppState, cmd: Command) -> None:
    current = state.config.current_user_name
    for user in state.storage.get_users():
        if user.name == current:
            print(f"* {user.name} (current)")
        else:
            print(f"* {user.name}")


# Feeds

def handler_add_feed(state: AppState, cmd: Command, user: User) -> None:
    if len(cmd.args) != 2:
        raise CommandError("usage: addfeed <name> <url>")

    name, url = cmd.args
    if not validate_url(url):
        raise CommandError(f"invalid feed url: {url}")

    try:
        feed = state.storage.create_feed(name, url, user.id)
    except DuplicateKeyError:
        raise CommandError(f"feed '{url}' already exists")

    state.storage.create_feed_follow(user.id, feed.id)

    print("Feed created:")
    print(f"Name: {feed.name}")
    print(f"URL: {feed.url}")


def handler_feeds(state: AppState, cmd: Command) -> None:
    for feed, user_name in state.storage.get_feeds():
        print(f"* {feed.name} ({feed.url}) by {user_name}")


# Following

def handler_follow(state: AppState, cmd: Command, user: User) -> None:
    if len(cmd.args) < 1:
        raise CommandError("usage: follow <url>")

    feed = state.storage.get_feed_by_url(cmd.args[0])
    if feed is None:
        raise CommandError(f"no feed with url {cmd.args[0]}")

    try:
        follow = state.storage.create_feed_follow(user.id, feed.id)
    except DuplicateKeyError:
        raise CommandError(f"{user.name} already follows {feed.name}")

    print(f"{follow.user_name} is now following {follow.feed_name}")


def handler_following(state: AppState, cmd: Command, user: User) -> None:
    for follow in state.storage.get_feed_follows_for_user(user.id):
        print(f"* {follow.feed_name}")


def handler_unfollow(state: AppState, cmd: Command, user: User) -> None:
    if len(cmd.args) < 1:
        raise CommandError("usage: unfollow <url>")

    feed = state.storage.get_feed_by_url(cmd.args[0])
    if feed is None:
        raise CommandError(f"no feed with url {cmd.args[0]}")

    if not state.storage.delete_feed_follow(user.id, feed.id):
        raise CommandError(f"{user.name} does not follow {feed.name}")

    print(f"{user.name} unfollowed {feed.name}")


# Aggregation

def handler_agg(state: AppState, cmd: Command) -> None:
    interval_text = cmd.args[0] if cmd.args else state.config.get_config_value("schedule.interval", "1m")

    try:
        interval = parse_duration(interval_text)
    except ValueError as e:
        raise CommandError(str(e))
    if interval <= 0:
        raise CommandError("interval must be positive")

    fetch_timeout = derive_fetch_timeout(
        interval,
        state.config.get_config_value("networking.timeout_seconds"),
        state.config.get_config_value("schedule.fetch_timeout_ratio", 0.8),
    )

    print(f"Collecting feeds every {interval_text}")
    ticks = run_scheduler(
        state,
        interval,
        stop_event=state.stop_event,
        timezone=state.config.get_config_value("schedule.timezone", "UTC"),
        fetch_timeout=fetch_timeout,
    )
    logger.info(f"Aggregation stopped after {ticks} ticks")


def handler_scrape(state: AppState, cmd: Command) -> None:
    stats = scrape_next_feed(state)
    if stats is None:
        print("Nothing ingested")
        return
    print(f"Stored {stats['new_posts']} new posts ({stats['duplicates_found']} duplicates, {stats['failed']} failed)")


def handler_browse(state: AppState, cmd: Command, user: User) -> None:
    limit = state.config.get_config_value("browse.default_limit", 2)
    if cmd.args:
        try:
            limit = int(cmd.args[0])
        except ValueError:
            raise CommandError("invalid limit")
        if limit <= 0:
            raise CommandError("invalid limit")

    for post in state.storage.get_posts_for_user(user.id, limit=limit):
        print(f"Title: {post.title}")
        print(f"URL: {post.url}")
        if post.published_at:
            print(f"Published: {post.published_at.isoformat()}")
        print("----")
