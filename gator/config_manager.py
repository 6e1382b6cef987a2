"""
Configuration manager for gator.
Handles loading, validation and persistence of configuration settings.
"""
import copy
import json
import logging
import os
from typing import Any, Dict
from json.decoder import JSONDecodeError # Import specific exception

from gator.utils.helpers import parse_duration

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = os.path.join(os.path.expanduser("~"), ".gatorconfig.json")

DEFAULT_SETTINGS = {
    "database": {
        "path": "gator.db",
        "busy_timeout_seconds": 5.0
    },
    "networking": {
        "timeout_seconds": 10,
        "user_agent": ""
    },
    "schedule": {
        "interval": "1m",
        "timezone": "UTC",
        "fetch_timeout_ratio": 0.8
    },
    "logging": {
        "level": "INFO",
        "log_dir": "./logs"
    },
    "browse": {
        "default_limit": 2
    },
    "current_user_name": ""
}

# Environment variables that take precedence over the settings file
ENV_OVERRIDES = {
    "GATOR_DB_PATH": "database.path",
    "GATOR_LOG_LEVEL": "logging.level",
    "GATOR_USER_AGENT": "networking.user_agent",
}


class ConfigManager:
    """
    Manages configuration loading and the logged-in user.
    """

    def __init__(self, settings_path: str = DEFAULT_CONFIG_PATH, create_missing: bool = False):
        """
        Initialize configuration manager.

        Args:
            settings_path: Path to the JSON settings file
            create_missing: Write a default settings file if none exists
        """
        self.settings_path = settings_path
        self.settings = None
        self._file_values: Dict[str, Any] = {}

        logger.debug(f"ConfigManager initialized with settings: {settings_path}")

        if create_missing and not os.path.exists(settings_path):
            logger.warning(f"No configuration found at {settings_path}, creating one with defaults")
            self.settings = copy.deepcopy(DEFAULT_SETTINGS)
            self.save()

        try:
            self._load_all_configs()
        except FileNotFoundError as e:
            logger.critical(f"Fatal: Configuration file not found: {e}.", exc_info=True)
            raise

    def _load_all_configs(self):
        """Load the settings file, merge defaults and validate."""
        self.settings = self._load_json_file(self.settings_path, "settings")
        self._validate_settings()

    def _load_json_file(self, file_path: str, config_type: str) -> Dict[str, Any]:
        """
        Load a JSON configuration file.

        Args:
            file_path: Path to JSON file
            config_type: Type of config for error messages

        Returns:
            Configuration dictionary

        Raises:
            FileNotFoundError: If the file does not exist.
            json.JSONDecodeError: If the file contains invalid JSON.
        """
        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                config = json.load(f)

            logger.info(f"Loaded {config_type} configuration from {file_path}")
            return config

        except FileNotFoundError:
            raise
        except JSONDecodeError as e:
            logger.error(f"Invalid JSON in {config_type} configuration file '{file_path}': {e}")
            raise

    def _validate_settings(self):
        """Validate settings configuration."""
        if not isinstance(self.settings, dict):
            raise ValueError("Settings configuration must be a JSON object")

        required_sections = ("database", "networking", "schedule", "logging", "browse")

        for section in required_sections:
            if section not in self.settings:
                logger.debug(f"Missing configuration section: '{section}', using defaults")
                self.settings[section] = {}
            elif not isinstance(self.settings[section], dict):
                raise TypeError(f"Invalid type for configuration section '{section}'. Expected dict")

        self._set_default_settings()
        self._apply_env_overrides()
        self._validate_specific_settings()

        logger.info("Settings configuration validated")

    def _validate_specific_settings(self):
        """Validate specific key values within settings."""
        database = self.settings["database"]
        if not database.get("path") or not isinstance(database.get("path"), str):
            raise TypeError("Missing or invalid type for 'database.path'. Expected non-empty string.")
        if not isinstance(database.get("busy_timeout_seconds"), (int, float)):
            raise TypeError("Invalid type for 'database.busy_timeout_seconds'. Expected int or float.")

        networking = self.settings["networking"]
        if not isinstance(networking.get("timeout_seconds"), (int, float)) or networking["timeout_seconds"] <= 0:
            raise TypeError("Invalid value for 'networking.timeout_seconds'. Expected a positive number.")
        if not isinstance(networking.get("user_agent"), str):
            raise TypeError("Invalid type for 'networking.user_agent'. Expected a string.")

        schedule = self.settings["schedule"]
        if not isinstance(schedule.get("interval"), str):
            raise TypeError("Invalid type for 'schedule.interval'. Expected a duration string such as '1m'.")
        if parse_duration(schedule["interval"]) <= 0:
            raise ValueError("'schedule.interval' must be a positive duration")
        if not isinstance(schedule.get("timezone"), str):
            raise TypeError("Invalid type for 'schedule.timezone'. Expected a string.")
        ratio = schedule.get("fetch_timeout_ratio")
        if not isinstance(ratio, (int, float)) or not 0 < ratio < 1:
            raise ValueError("'schedule.fetch_timeout_ratio' must be between 0 and 1")

        if not isinstance(self.settings["logging"].get("level"), str):
            raise TypeError("Invalid type for 'logging.level'. Expected a string.")

        limit = self.settings["browse"].get("default_limit")
        if not isinstance(limit, int) or isinstance(limit, bool) or limit <= 0:
            raise TypeError("Invalid value for 'browse.default_limit'. Expected a positive integer.")

        if not isinstance(self.settings.get("current_user_name"), str):
            raise TypeError("Invalid type for 'current_user_name'. Expected a string.")

    def _set_default_settings(self):
        """Recursively set default values for missing settings."""

        def merge_dicts(source, default):
            """Recursively merges default dict into source dict."""
            for key, value in default.items():
                if key not in source:
                    source[key] = copy.deepcopy(value)
                elif isinstance(value, dict) and isinstance(source[key], dict):
                    merge_dicts(source[key], value)
                # No else: existing values in source take precedence

        merge_dicts(self.settings, DEFAULT_SETTINGS)

    def _apply_env_overrides(self):
        """Let environment variables (and .env files) replace file values."""
        for env_var, key_path in ENV_OVERRIDES.items():
            value = os.environ.get(env_var)
            if value:
                section, key = key_path.split('.')
                self._file_values.setdefault(key_path, self.settings[section].get(key))
                self.settings[section][key] = value
                logger.debug(f"Using {env_var} for '{key_path}'")

    def get_config_value(self, key_path: str, default=None):
        """
        Get configuration value using dot notation.

        Args:
            key_path: Dot-separated path to configuration value (e.g., "database.path")
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        if not self.settings:
            logger.warning(f"Settings configuration not loaded when trying to get value for '{key_path}'. Returning default.")
            return default

        keys = key_path.split('.')
        value = self.settings

        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default

        return value

    @property
    def current_user_name(self) -> str:
        return self.settings.get("current_user_name", "")

    def set_current_user(self, name: str) -> None:
        """Persist the logged-in user to the settings file."""
        self.settings["current_user_name"] = name
        self.save()
        logger.debug(f"Current user set to '{name}'")

    def save(self) -> None:
        """Write the settings back to disk."""
        directory = os.path.dirname(self.settings_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        # Environment overrides stay out of the file
        settings = copy.deepcopy(self.settings)
        for key_path, value in self._file_values.items():
            section, key = key_path.split('.')
            settings[section][key] = value

        with open(self.settings_path, 'w', encoding='utf-8') as f:
            json.dump(settings, f, indent=2)
