"""
Configuration management for the hackbox portal.
Supports both JSON file configuration and environment variable overrides.
"""

import copy
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

DATA_PROVIDERS = ("file", "sqlite")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class HackboxConfig:
    """Configuration management for the hackbox portal."""

    DEFAULT_CONFIG = {
        "hack_name": "Microhack",
        "storage": {
            "data_provider": "file",  # file or sqlite
            "data_dir": "config-data",
            "db_path": "hackbox.db",
        },
        "content": {
            "challenges_dir": "hackcontent/challenges",
            "solutions_dir": "hackcontent/solutions",
        },
        "auth": {
            "users_file": "config-data/users.json",
        },
        "server": {
            "allowed_origins": ["http://localhost:3000", "https://localhost:3000"],
            "secure_cookies": True,
        },
        "logging": {
            "level": "INFO",
        },
    }

    def __init__(
        self,
        config_path: str = "hackbox_config.json",
        create_if_missing: bool = True,
    ) -> None:
        """Initialize configuration from file, environment variables, or defaults."""
        self.config_path = Path(config_path)
        self.create_if_missing = create_if_missing
        self.config = self._load_config()
        self._apply_env_overrides()
        self._validate_config()

    @classmethod
    def from_dict(cls, overrides: Dict[str, Any]) -> "HackboxConfig":
        """
        Build a configuration from defaults plus an in-memory override dict.

        No file is read or written and environment overrides are skipped.

        @param overrides: Nested dictionary merged over the defaults
        @return: Validated configuration instance
        """
        instance = cls.__new__(cls)
        instance.config_path = Path(os.devnull)
        instance.create_if_missing = False
        instance.config = copy.deepcopy(cls.DEFAULT_CONFIG)
        instance._deep_merge(instance.config, overrides)
        instance._validate_config()
        return instance

    def _load_config(self) -> Dict[str, Any]:
        """
        Load configuration from JSON file or create default.

        @return: Dictionary containing the loaded configuration
        """
        if self.config_path.exists():
            try:
                with open(self.config_path, "r", encoding="utf-8") as f:
                    loaded_config = json.load(f)

                # Merge with defaults to ensure all keys exist
                config = copy.deepcopy(self.DEFAULT_CONFIG)
                self._deep_merge(config, loaded_config)
                return config

            except (json.JSONDecodeError, IOError) as e:
                logger.warning(
                    "Error loading config from %s: %s; using default configuration",
                    self.config_path,
                    e,
                )
                return copy.deepcopy(self.DEFAULT_CONFIG)

        if self.create_if_missing:
            self._create_default_config()
        return copy.deepcopy(self.DEFAULT_CONFIG)

    def _deep_merge(
        self,
        base_dict: Dict[str, Any],
        update_dict: Dict[str, Any],
    ) -> None:
        """
        Recursively merge dictionaries.

        @param base_dict: Base dictionary to merge into
        @param update_dict: Dictionary with updates to merge
        """
        for key, value in update_dict.items():
            if (
                key in base_dict
                and isinstance(base_dict[key], dict)
                and isinstance(value, dict)
            ):
                self._deep_merge(base_dict[key], value)
            else:
                base_dict[key] = value

    def _apply_env_overrides(self) -> None:
        """
        Apply environment variable overrides to configuration.

        Environment variables follow the pattern: SECTION_KEY (e.g., DATA_PROVIDER, DB_PATH)
        """
        env_mappings = {
            "HACK_NAME": ("hack_name",),

            # Storage
            "DATA_PROVIDER": ("storage", "data_provider"),
            "DATA_DIR": ("storage", "data_dir"),
            "DB_PATH": ("storage", "db_path"),

            # Content
            "CHALLENGES_DIR": ("content", "challenges_dir"),
            "SOLUTIONS_DIR": ("content", "solutions_dir"),

            # Auth
            "USERS_FILE": ("auth", "users_file"),

            # Server
            "SECURE_COOKIES": ("server", "secure_cookies"),

            "LOG_LEVEL": ("logging", "level"),
        }

        for env_var, config_path in env_mappings.items():
            env_value = os.getenv(env_var)
            if env_value is not None:
                converted_value = self._convert_env_value(env_value)
                self._set_nested_config(config_path, converted_value)

        origins = os.getenv("ALLOWED_ORIGINS")
        if origins:
            self._set_nested_config(
                ("server", "allowed_origins"),
                [origin.strip() for origin in origins.split(",") if origin.strip()],
            )

    def _convert_env_value(self, value: str) -> Any:
        """
        Convert environment variable string to appropriate type.

        @param value: String value from environment variable
        @return: Converted value (bool, int, or string)
        """
        if value.lower() in ("true", "1", "yes", "on"):
            return True
        elif value.lower() in ("false", "0", "no", "off"):
            return False

        try:
            return int(value)
        except ValueError:
            pass

        return value

    def _set_nested_config(self, path: tuple, value: Any) -> None:
        """
        Set a nested configuration value using a path tuple.

        @param path: Tuple representing the nested path (e.g., ("storage", "db_path"))
        @param value: Value to set
        """
        current = self.config
        for key in path[:-1]:
            if key not in current:
                current[key] = {}
            current = current[key]
        current[path[-1]] = value

    def _create_default_config(self) -> None:
        """
        Create a default configuration file.

        Writes the default configuration to the configured file path.
        """
        try:
            with open(self.config_path, "w", encoding="utf-8") as f:
                json.dump(self.DEFAULT_CONFIG, f, indent=2)
            logger.info("Created default configuration file: %s", self.config_path)
        except IOError as e:
            logger.warning("Could not create config file %s: %s", self.config_path, e)

    def _validate_config(self) -> None:
        """
        Validate configuration values.

        Unsupported storage providers abort startup; cosmetic values fall
        back to their defaults.
        """
        provider = str(self.config["storage"]["data_provider"]).lower()
        if provider not in DATA_PROVIDERS:
            raise ConfigurationError(
                f"Unsupported data provider '{self.config['storage']['data_provider']}'"
                f" (expected one of: {', '.join(DATA_PROVIDERS)})"
            )
        self.config["storage"]["data_provider"] = provider

        level = str(self.config["logging"]["level"]).upper()
        if level not in LOG_LEVELS:
            logger.warning("Invalid logging level, using 'INFO'")
            level = "INFO"
        self.config["logging"]["level"] = level

        origins = self.config["server"]["allowed_origins"]
        if isinstance(origins, str):
            origins = [o.strip() for o in origins.split(",") if o.strip()]
        if not isinstance(origins, list):
            logger.warning("Invalid allowed_origins, using defaults")
            origins = list(self.DEFAULT_CONFIG["server"]["allowed_origins"])
        self.config["server"]["allowed_origins"] = origins

        if not isinstance(self.config["server"]["secure_cookies"], bool):
            logger.warning("Invalid secure_cookies, using True")
            self.config["server"]["secure_cookies"] = True

    def get(
        self,
        *keys: str,
    ) -> Any:
        """
        Get nested configuration value.

        @param keys: Variable arguments representing nested keys to traverse
        @return: Configuration value at the specified path, None if not found
        """
        value = self.config

        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return None
        return value

    @property
    def data_provider(self) -> str:
        return self.get("storage", "data_provider")

    @property
    def allowed_origins(self) -> List[str]:
        return self.get("server", "allowed_origins")
