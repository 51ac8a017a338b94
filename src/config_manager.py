"""Configuration management with JSON schema validation and environment overrides."""

import copy
import json
import os
from typing import Any, Dict, List
import logging
from dotenv import load_dotenv

from .column_resolver import DEFAULT_COLUMN_CANDIDATES, DEFAULT_HEADER_SCAN_ROWS
from .excel_exporter import DEFAULT_LAYOUT
from .query_matcher import DEFAULT_LABELS, QUERY_COLUMN_CANDIDATES, QUERY_HEADER_CANDIDATES
from .reference_processor import DEFAULT_MIN_TOKEN_LENGTH
from .utils.exceptions import ConfigurationError
from .utils.validation import validate_config_structure

logger = logging.getLogger(__name__)


class ConfigManager:
    """Manages application configuration with validation and environment support."""

    def __init__(self, config_dir: str = "config") -> None:
        """Initialize configuration manager."""
        self.config_dir = config_dir
        self._config_cache: Dict[str, Dict[str, Any]] = {}
        self._load_environment()

    def _load_environment(self) -> None:
        """Load environment variables from .env files."""
        try:
            env_file = os.path.join(os.getcwd(), ".env")
            if os.path.exists(env_file):
                load_dotenv(env_file)
                logger.debug("Loaded environment from .env file")

            env = os.getenv("ENVIRONMENT", "development")
            env_specific_file = os.path.join(self.config_dir, f"{env}.env")

            if os.path.exists(env_specific_file):
                load_dotenv(env_specific_file)
                logger.debug(f"Loaded environment from {env_specific_file}")

        except Exception as e:
            logger.warning(f"Failed to load environment configuration: {e}")

    def get_default_config(self) -> Dict[str, Any]:
        """Get default matching configuration."""
        return {
            "version": "1.0",
            "reference": {
                "header_scan_rows": DEFAULT_HEADER_SCAN_ROWS,
                "column_candidates": copy.deepcopy(DEFAULT_COLUMN_CANDIDATES),
            },
            "query": {
                "header_candidates": list(QUERY_HEADER_CANDIDATES),
                "column_candidates": list(QUERY_COLUMN_CANDIDATES),
            },
            "matching": {"min_token_length": DEFAULT_MIN_TOKEN_LENGTH},
            "labels": dict(DEFAULT_LABELS),
            "export": copy.deepcopy(DEFAULT_LAYOUT),
        }

    def load_config(self, config_name: str = "default_config") -> Dict[str, Any]:
        """Load configuration from file with caching.

        File contents are merged over the defaults, so a config file only
        needs the keys it changes.
        """
        if config_name in self._config_cache:
            return self._config_cache[config_name]

        try:
            config_file = os.path.join(self.config_dir, f"{config_name}.json")

            if not os.path.exists(config_file):
                if config_name == "default_config":
                    config = self._apply_environment_overrides(self.get_default_config())
                    self._config_cache[config_name] = config
                    return config
                raise ConfigurationError(f"Configuration file not found: {config_file}")

            with open(config_file, "r", encoding="utf-8") as file:
                overrides = json.load(file)

            config = self.merge_configs(self.get_default_config(), overrides)
            validate_config_structure(config)
            config = self._apply_environment_overrides(config)

            self._config_cache[config_name] = config
            logger.info(f"Loaded configuration: {config_name}")
            return config

        except ConfigurationError:
            raise
        except (json.JSONDecodeError, FileNotFoundError) as e:
            raise ConfigurationError(f"Failed to load configuration '{config_name}': {e}")
        except Exception as e:
            raise ConfigurationError(f"Configuration error for '{config_name}': {e}")

    def load_config_file(self, config_path: str) -> Dict[str, Any]:
        """Load a configuration from an explicit JSON file path."""
        try:
            with open(config_path, "r", encoding="utf-8") as file:
                overrides = json.load(file)
            config = self.merge_configs(self.get_default_config(), overrides)
            validate_config_structure(config)
            return self._apply_environment_overrides(config)
        except (json.JSONDecodeError, OSError) as e:
            raise ConfigurationError(f"Failed to load configuration file '{config_path}': {e}")
        except Exception as e:
            raise ConfigurationError(f"Configuration error in '{config_path}': {e}")

    def save_config(self, config: Dict[str, Any], config_name: str) -> str:
        """Save configuration to file and return its path."""
        try:
            validate_config_structure(config)

            os.makedirs(self.config_dir, exist_ok=True)
            config_file = os.path.join(self.config_dir, f"{config_name}.json")

            with open(config_file, "w", encoding="utf-8") as file:
                json.dump(config, file, indent=2, ensure_ascii=False)

            self._config_cache[config_name] = config
            logger.info(f"Saved configuration: {config_name}")
            return config_file

        except Exception as e:
            raise ConfigurationError(f"Failed to save configuration '{config_name}': {e}")

    def _apply_environment_overrides(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """Apply environment variable overrides to configuration."""
        reference = config.setdefault("reference", {})
        reference["header_scan_rows"] = self._get_env_int(
            "HEADER_SCAN_ROWS",
            reference.get("header_scan_rows", DEFAULT_HEADER_SCAN_ROWS),
        )

        matching = config.setdefault("matching", {})
        matching["min_token_length"] = self._get_env_int(
            "MIN_TOKEN_LENGTH",
            matching.get("min_token_length", DEFAULT_MIN_TOKEN_LENGTH),
        )
        return config

    def _get_env_bool(self, key: str, default: bool) -> bool:
        """Get boolean value from environment variable."""
        value = os.getenv(key, str(default)).lower()
        return value in ("true", "1", "yes", "on")

    def _get_env_int(self, key: str, default: int) -> int:
        """Get integer value from environment variable."""
        try:
            return int(os.getenv(key, str(default)))
        except (ValueError, TypeError):
            return default

    def _get_env_str(self, key: str, default: str) -> str:
        """Get string value from environment variable."""
        return os.getenv(key, default)

    def _get_env_list(
        self, key: str, default: List[str], separator: str = ","
    ) -> List[str]:
        """Get list value from environment variable."""
        value = os.getenv(key)
        if value:
            return [item.strip() for item in value.split(separator) if item.strip()]
        return default

    def get_app_config(self) -> Dict[str, Any]:
        """Get application-wide configuration settings."""
        return {
            "development_mode": self._get_env_bool("DEVELOPMENT_MODE", False),
            "log_level": self._get_env_str("LOG_LEVEL", "INFO"),
            "api_key": self._get_env_str("API_KEY", ""),
            "max_file_size_mb": self._get_env_int("MAX_FILE_SIZE_MB", 50),
            "allowed_extensions": self._get_env_list(
                "ALLOWED_EXTENSIONS", ["xlsx", "xlsm", "csv"]
            ),
            "flask_config": {
                "host": self._get_env_str("FLASK_HOST", "0.0.0.0"),
                "port": self._get_env_int("FLASK_PORT", 5000),
                "debug": self._get_env_bool("FLASK_DEBUG", False),
            },
        }

    def merge_configs(
        self, base_config: Dict[str, Any], override_config: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Merge two configurations with override taking precedence."""
        merged = base_config.copy()

        for key, value in override_config.items():
            if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
                merged[key] = self.merge_configs(merged[key], value)
            else:
                merged[key] = value

        return merged
