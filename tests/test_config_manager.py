"""
Tests for ConfigManager

Unit tests for configuration loading and validation.
"""

import unittest
import tempfile
import json
import os
import shutil
from json.decoder import JSONDecodeError
from unittest.mock import patch

from gator.config_manager import DEFAULT_SETTINGS, ENV_OVERRIDES, ConfigManager


class TestConfigManager(unittest.TestCase):
    """Test cases for ConfigManager class."""

    def setUp(self):
        """Set up test fixtures."""
        self.temp_dir = tempfile.mkdtemp()
        self.settings_path = os.path.join(self.temp_dir, '.gatorconfig.json')

        self.sample_settings = {
            "database": {
                "path": os.path.join(self.temp_dir, 'gator.db')
            },
            "schedule": {
                "interval": "30s"
            },
            "current_user_name": "alice"
        }

        env_patch = patch.dict(os.environ)
        env_patch.start()
        self.addCleanup(env_patch.stop)
        for env_var in ENV_OVERRIDES:
            os.environ.pop(env_var, None)

    def tearDown(self):
        """Clean up test fixtures."""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _write_settings(self, settings):
        with open(self.settings_path, 'w') as f:
            json.dump(settings, f, indent=2)

    def _read_settings(self):
        with open(self.settings_path) as f:
            return json.load(f)

    def test_load_valid_config(self):
        """Test loading valid configuration files."""
        self._write_settings(self.sample_settings)

        config_manager = ConfigManager(self.settings_path)

        self.assertEqual(config_manager.get_config_value('database.path'),
                         self.sample_settings['database']['path'])
        self.assertEqual(config_manager.get_config_value('schedule.interval'), '30s')
        self.assertEqual(config_manager.current_user_name, 'alice')

    def test_defaults_fill_missing_keys(self):
        """Missing sections and keys take default values."""
        self._write_settings(self.sample_settings)

        config_manager = ConfigManager(self.settings_path)

        self.assertEqual(config_manager.get_config_value('database.busy_timeout_seconds'), 5.0)
        self.assertEqual(config_manager.get_config_value('schedule.timezone'), 'UTC')
        self.assertEqual(config_manager.get_config_value('browse.default_limit'), 2)
        self.assertEqual(config_manager.get_config_value('networking.timeout_seconds'), 10)

    def test_get_config_value_default(self):
        """Unknown paths return the given default."""
        self._write_settings(self.sample_settings)

        config_manager = ConfigManager(self.settings_path)

        self.assertEqual(config_manager.get_config_value('nonexistent.key', 'fallback'), 'fallback')
        self.assertIsNone(config_manager.get_config_value('database.path.deeper'))

    def test_missing_config_file(self):
        """Test handling of missing configuration files."""
        with self.assertRaises(FileNotFoundError):
            ConfigManager(self.settings_path)

    def test_create_missing_config_file(self):
        """create_missing writes a default settings file."""
        config_manager = ConfigManager(self.settings_path, create_missing=True)

        self.assertTrue(os.path.exists(self.settings_path))
        self.assertEqual(self._read_settings(), DEFAULT_SETTINGS)
        self.assertEqual(config_manager.current_user_name, '')

    def test_invalid_json(self):
        """Test handling of invalid JSON."""
        with open(self.settings_path, 'w') as f:
            f.write('{"invalid": json}')

        with self.assertRaises(JSONDecodeError):
            ConfigManager(self.settings_path)

    def test_invalid_section_type(self):
        """A section that is not an object is rejected."""
        self._write_settings({"database": "gator.db"})

        with self.assertRaises(TypeError):
            ConfigManager(self.settings_path)

    def test_invalid_values(self):
        """Invalid values are rejected."""
        cases = [
            {"networking": {"timeout_seconds": "ten"}},
            {"schedule": {"interval": "soon"}},
            {"schedule": {"interval": "0s"}},
            {"schedule": {"fetch_timeout_ratio": 1.5}},
            {"browse": {"default_limit": 0}},
            {"current_user_name": 42},
        ]
        for settings in cases:
            with self.subTest(settings=settings):
                self._write_settings(settings)
                with self.assertRaises((TypeError, ValueError)):
                    ConfigManager(self.settings_path)

    def test_set_current_user_persists(self):
        """The logged-in user is written back to the file."""
        self._write_settings(self.sample_settings)
        config_manager = ConfigManager(self.settings_path)

        config_manager.set_current_user('bob')

        self.assertEqual(config_manager.current_user_name, 'bob')
        self.assertEqual(self._read_settings()['current_user_name'], 'bob')
        self.assertEqual(ConfigManager(self.settings_path).current_user_name, 'bob')

    def test_env_override(self):
        """Environment variables take precedence over the file."""
        self._write_settings(self.sample_settings)
        os.environ['GATOR_DB_PATH'] = '/tmp/override.db'
        os.environ['GATOR_LOG_LEVEL'] = 'DEBUG'

        config_manager = ConfigManager(self.settings_path)

        self.assertEqual(config_manager.get_config_value('database.path'), '/tmp/override.db')
        self.assertEqual(config_manager.get_config_value('logging.level'), 'DEBUG')

    def test_env_override_not_saved(self):
        """Saving keeps the file values rather than the overrides."""
        self._write_settings(self.sample_settings)
        os.environ['GATOR_DB_PATH'] = '/tmp/override.db'
        config_manager = ConfigManager(self.settings_path)

        config_manager.set_current_user('bob')

        saved = self._read_settings()
        self.assertEqual(saved['database']['path'], self.sample_settings['database']['path'])
        self.assertEqual(saved['current_user_name'], 'bob')
        self.assertEqual(config_manager.get_config_value('database.path'), '/tmp/override.db')


if __name__ == '__main__':
    unittest.main()
