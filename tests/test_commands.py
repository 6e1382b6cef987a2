"""
Tests for the CLI commands

Unit tests for the command registry, middleware and handlers.
"""

import io
import os
import shutil
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

from gator.commands import AppState, Command, CommandError, Commands, middleware_logged_in
from gator.config_manager import ENV_OVERRIDES, ConfigManager
from gator.main import build_commands, main
from gator.storage_manager import StorageManager

FEED_URL = "https://blog.example.com/rss"


class CommandTestCase(unittest.TestCase):
    """Base class with a temporary config file and database."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        env_patch = patch.dict(os.environ)
        env_patch.start()
        self.addCleanup(env_patch.stop)
        for env_var in ENV_OVERRIDES:
            os.environ.pop(env_var, None)

        self.config = ConfigManager(os.path.join(self.temp_dir, '.gatorconfig.json'), create_missing=True)
        self.storage = StorageManager(os.path.join(self.temp_dir, 'gator.db'))
        self.fetcher = MagicMock()
        self.state = AppState(storage=self.storage, config=self.config, fetcher=self.fetcher)
        self.commands = build_commands()

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def run_command(self, name, *args):
        output = io.StringIO()
        with redirect_stdout(output):
            self.commands.run(self.state, Command(name=name, args=list(args)))
        return output.getvalue()


class TestCommands(unittest.TestCase):
    """Test cases for the Commands registry."""

    def test_register_and_run(self):
        handler = MagicMock()
        cmds = Commands()
        cmds.register("ping", handler)
        state = MagicMock()
        cmd = Command(name="ping", args=["x"])

        cmds.run(state, cmd)

        handler.assert_called_once_with(state, cmd)
        self.assertEqual(cmds.names(), ["ping"])

    def test_unknown_command(self):
        with self.assertRaises(CommandError):
            Commands().run(MagicMock(), Command(name="nope"))

    def test_all_commands_registered(self):
        self.assertEqual(build_commands().names(), sorted([
            "register", "login", "reset", "users", "addfeed", "feeds",
            "follow", "following", "unfollow", "agg", "scrape", "browse",
        ]))


class TestMiddleware(CommandTestCase):
    """Test cases for middleware_logged_in."""

    def test_no_current_user(self):
        handler = MagicMock()

        with self.assertRaises(CommandError):
            middleware_logged_in(handler)(self.state, Command(name="x"))

        handler.assert_not_called()

    def test_current_user_missing_from_database(self):
        self.config.set_current_user("ghost")

        with self.assertRaises(CommandError):
            middleware_logged_in(MagicMock())(self.state, Command(name="x"))

    def test_passes_user(self):
        user = self.storage.create_user("alice")
        self.config.set_current_user("alice")
        handler = MagicMock()
        cmd = Command(name="x")

        middleware_logged_in(handler)(self.state, cmd)

        handler.assert_called_once()
        self.assertEqual(handler.call_args.args[2].id, user.id)


class TestUserHandlers(CommandTestCase):
    """Test cases for register, login, users and reset."""

    def test_register_logs_in(self):
        output = self.run_command("register", "alice")

        self.assertIn("alice", output)
        self.assertEqual(self.config.current_user_name, "alice")
        self.assertIsNotNone(self.storage.get_user("alice"))

    def test_register_duplicate(self):
        self.run_command("register", "alice")

        with self.assertRaises(CommandError):
            self.run_command("register", "alice")

    def test_register_requires_name(self):
        with self.assertRaises(CommandError):
            self.run_command("register")

    def test_login(self):
        self.run_command("register", "alice")
        self.run_command("register", "bob")

        self.run_command("login", "alice")

        self.assertEqual(self.config.current_user_name, "alice")

    def test_login_unknown_user(self):
        with self.assertRaises(CommandError):
            self.run_command("login", "nobody")

    def test_users_marks_current(self):
        self.run_command("register", "alice")
        self.run_command("register", "bob")

        output = self.run_command("users")

        self.assertIn("* alice\n", output)
        self.assertIn("* bob (current)\n", output)

    def test_reset(self):
        self.run_command("register", "alice")

        self.run_command("reset")

        self.assertEqual(self.storage.get_users(), [])


class TestFeedHandlers(CommandTestCase):
    """Test cases for feed and follow commands."""

    def setUp(self):
        super().setUp()
        self.run_command("register", "alice")

    def test_addfeed_follows_feed(self):
        output = self.run_command("addfeed", "Blog", FEED_URL)

        self.assertIn("Name: Blog", output)
        self.assertIn(f"URL: {FEED_URL}", output)
        self.assertEqual(self.run_command("following"), "* Blog\n")

    def test_addfeed_invalid_url(self):
        with self.assertRaises(CommandError):
            self.run_command("addfeed", "Blog", "not-a-url")

    def test_addfeed_duplicate_url(self):
        self.run_command("addfeed", "Blog", FEED_URL)

        with self.assertRaises(CommandError):
            self.run_command("addfeed", "Same blog", FEED_URL)

    def test_feeds_lists_owner(self):
        self.run_command("addfeed", "Blog", FEED_URL)

        self.assertEqual(self.run_command("feeds"), f"* Blog ({FEED_URL}) by alice\n")

    def test_follow_and_unfollow(self):
        self.run_command("addfeed", "Blog", FEED_URL)
        self.run_command("register", "bob")

        self.assertEqual(self.run_command("follow", FEED_URL), "bob is now following Blog\n")
        with self.assertRaises(CommandError):
            self.run_command("follow", FEED_URL)

        self.run_command("unfollow", FEED_URL)
        self.assertEqual(self.run_command("following"), "")
        with self.assertRaises(CommandError):
            self.run_command("unfollow", FEED_URL)

    def test_follow_unknown_feed(self):
        with self.assertRaises(CommandError):
            self.run_command("follow", "https://unknown.example.com/rss")


class TestBrowseHandler(CommandTestCase):
    """Test cases for browse."""

    def setUp(self):
        super().setUp()
        self.run_command("register", "alice")
        self.run_command("addfeed", "Blog", FEED_URL)
        feed = self.storage.get_feed_by_url(FEED_URL)
        for day in range(1, 4):
            self.storage.create_post(
                feed.id, f"Post {day}", f"https://blog.example.com/{day}",
                published_at=datetime(2024, 1, day, tzinfo=timezone.utc)
            )

    def test_default_limit(self):
        output = self.run_command("browse")

        self.assertEqual(output.count("Title: "), 2)
        self.assertLess(output.index("Post 3"), output.index("Post 2"))
        self.assertNotIn("Post 1", output)

    def test_explicit_limit(self):
        output = self.run_command("browse", "5")

        self.assertEqual(output.count("----"), 3)
        self.assertIn("Published: 2024-01-03T00:00:00+00:00", output)

    def test_invalid_limit(self):
        for value in ["abc", "0", "-1"]:
            with self.subTest(value=value):
                with self.assertRaises(CommandError):
                    self.run_command("browse", value)


class TestAggregationHandlers(CommandTestCase):
    """Test cases for agg and scrape."""

    @patch('gator.commands.run_scheduler')
    def test_agg_parses_interval(self, mock_run):
        mock_run.return_value = 0

        output = self.run_command("agg", "30s")

        self.assertIn("Collecting feeds every 30s", output)
        args, kwargs = mock_run.call_args
        self.assertEqual(args[1], 30.0)
        self.assertIs(kwargs['stop_event'], self.state.stop_event)
        self.assertEqual(kwargs['fetch_timeout'], 10)

    @patch('gator.commands.run_scheduler')
    def test_agg_uses_configured_interval(self, mock_run):
        mock_run.return_value = 0

        self.run_command("agg")

        self.assertEqual(mock_run.call_args.args[1], 60.0)

    def test_agg_rejects_bad_interval(self):
        for value in ["soon", "0s", "-5s"]:
            with self.subTest(value=value):
                with self.assertRaises(CommandError):
                    self.run_command("agg", value)

    def test_agg_stops_when_event_is_set(self):
        self.state.stop_event.set()

        output = self.run_command("agg", "1h")

        self.assertIn("Collecting feeds every 1h", output)

    def test_scrape_without_feeds(self):
        self.assertEqual(self.run_command("scrape"), "Nothing ingested\n")


class TestMain(unittest.TestCase):
    """Test cases for the main entry point."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.config_path = os.path.join(self.temp_dir, '.gatorconfig.json')
        env_patch = patch.dict(os.environ)
        env_patch.start()
        self.addCleanup(env_patch.stop)
        for env_var in ENV_OVERRIDES:
            os.environ.pop(env_var, None)
        os.environ['GATOR_DB_PATH'] = os.path.join(self.temp_dir, 'gator.db')

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def run_main(self, *argv):
        stdout, stderr = io.StringIO(), io.StringIO()
        with patch('gator.main.setup_logging'), patch('gator.main._install_stop_handler'), \
                redirect_stdout(stdout), redirect_stderr(stderr):
            status = main(['--config', self.config_path] + list(argv))
        return status, stdout.getvalue(), stderr.getvalue()

    def test_register_then_users(self):
        status, _, _ = self.run_main('register', 'alice')
        self.assertEqual(status, 0)

        status, output, _ = self.run_main('users')
        self.assertEqual(status, 0)
        self.assertIn("* alice (current)", output)

    def test_command_error_exit_status(self):
        status, _, errors = self.run_main('login', 'nobody')

        self.assertEqual(status, 1)
        self.assertIn("error:", errors)

    def test_unknown_command(self):
        status, _, errors = self.run_main('frobnicate')

        self.assertEqual(status, 1)
        self.assertIn("unknown command", errors)


if __name__ == '__main__':
    unittest.main()
