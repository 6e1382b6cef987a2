"""
Main entry point for gator.
Parses the command line, wires the components together and dispatches the command.
"""
import argparse
import logging
import os
import signal
import sys
import threading
from json.decoder import JSONDecodeError
from typing import List, Optional

from dotenv import load_dotenv

from gator import __version__
from gator.commands import (
    AppState,
    Command,
    CommandError,
    Commands,
    handler_add_feed,
    handler_agg,
    handler_browse,
    handler_feeds,
    handler_follow,
    handler_following,
    handler_login,
    handler_register,
    handler_reset,
    handler_scrape,
    handler_unfollow,
    handler_users,
    middleware_logged_in,
)
from gator.config_manager import DEFAULT_CONFIG_PATH, ConfigManager
from gator.rss_fetcher import DEFAULT_USER_AGENT, RSSFetcher
from gator.rss_parser import RSSParser
from gator.storage_manager import StorageError, StorageManager
from gator.utils.logging_utils import setup_logging

logger = logging.getLogger(__name__)


def build_commands() -> Commands:
    """Build the command registry."""
    cmds = Commands()
    cmds.register("register", handler_register)
    cmds.register("login", handler_login)
    cmds.register("reset", handler_reset)
    cmds.register("users", handler_users)
    cmds.register("addfeed", middleware_logged_in(handler_add_feed))
    cmds.register("feeds", handler_feeds)
    cmds.register("follow", middleware_logged_in(handler_follow))
    cmds.register("following", middleware_logged_in(handler_following))
    cmds.register("unfollow", middleware_logged_in(handler_unfollow))
    cmds.register("agg", handler_agg)
    cmds.register("scrape", handler_scrape)
    cmds.register("browse", middleware_logged_in(handler_browse))
    return cmds


def create_state(config_manager: ConfigManager) -> AppState:
    """Initialize all components from configuration."""
    storage = StorageManager(
        config_manager.get_config_value("database.path", "gator.db"),
        busy_timeout=config_manager.get_config_value("database.busy_timeout_seconds", 5.0),
    )

    fetcher = RSSFetcher(
        timeout=config_manager.get_config_value("networking.timeout_seconds", 10),
        user_agent=config_manager.get_config_value("networking.user_agent") or DEFAULT_USER_AGENT,
        parser=RSSParser(),
    )

    return AppState(storage=storage, config=config_manager, fetcher=fetcher)


def parse_arguments(argv: Optional[List[str]] = None, command_names: Optional[List[str]] = None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="gator",
        description="gator - RSS feed aggregator",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  gator register alice                          # Create a user and log in
  gator addfeed "Hacker News" https://hnrss.org/newest
  gator agg 30s                                 # Scrape one feed every 30 seconds
  gator browse 5                                # Show the five newest posts
        """
    )
    parser.add_argument(
        "--config",
        default=os.environ.get("GATOR_CONFIG", DEFAULT_CONFIG_PATH),
        help="Path to the settings file (default: ~/.gatorconfig.json)"
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging"
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"gator v{__version__}"
    )
    parser.add_argument(
        "command",
        help=f"Command to run: {', '.join(command_names or [])}"
    )
    parser.add_argument(
        "args",
        nargs=argparse.REMAINDER,
        help="Command arguments"
    )

    return parser.parse_args(argv)


def _install_stop_handler(stop_event: threading.Event) -> None:
    """Let SIGTERM end the scheduler loop between ticks."""
    if threading.current_thread() is not threading.main_thread():
        return
    signal.signal(signal.SIGTERM, lambda signum, frame: stop_event.set())


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the application.

    Returns:
        Process exit status
    """
    load_dotenv()

    cmds = build_commands()
    args = parse_arguments(argv, cmds.names())

    try:
        config_manager = ConfigManager(args.config, create_missing=True)
    except (JSONDecodeError, TypeError, ValueError, OSError) as e:
        print(f"error: invalid configuration in {args.config}: {e}", file=sys.stderr)
        return 1

    log_level = 'DEBUG' if args.debug else config_manager.get_config_value("logging.level", "INFO")
    setup_logging(log_level=log_level, log_dir=config_manager.get_config_value("logging.log_dir", "./logs"))

    try:
        state = create_state(config_manager)
        _install_stop_handler(state.stop_event)
        cmds.run(state, Command(name=args.command, args=list(args.args)))
    except (CommandError, StorageError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        logger.info("Process interrupted by user")
        return 0
    except Exception as e:
        logger.critical(f"An unexpected critical error occurred: {e}", exc_info=True)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
