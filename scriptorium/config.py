"""
Configuration management for Scriptorium.

This module handles loading and accessing configuration values from config.yaml.
Every tunable of the editor core (debounce delay, drag thresholds, persistence
endpoints) is read from here so behavior can change without touching code.
"""

import yaml
from pathlib import Path
from typing import Any, Dict
import logging


class ConfigManager:
    """
    Manages configuration loading and access for Scriptorium.
    """

    def __init__(self, config_path: str = "config.yaml"):
        """
        Initialize the configuration manager.

        Args:
            config_path: Path to the configuration file
        """
        self.config_path = Path(config_path)
        self._config: Dict[str, Any] = {}
        self._load_config()

    def _load_config(self) -> None:
        """Load configuration from YAML file."""
        try:
            if not self.config_path.exists():
                raise FileNotFoundError(f"Configuration file not found: {self.config_path}")

            with open(self.config_path, 'r', encoding='utf-8') as f:
                self._config = yaml.safe_load(f) or {}

            logging.info(f"Configuration loaded from {self.config_path}")

        except (OSError, yaml.YAMLError) as e:
            logging.warning(f"Failed to load configuration: {e}")
            # Fall back to default configuration
            self._config = self._get_default_config()

    def _get_default_config(self) -> Dict[str, Any]:
        """Get default configuration values as fallback."""
        return {
            "api": {
                "base_url": "http://localhost:8080",
                "timeout": 15.0
            },
            "database": {
                "filename": "scriptorium.db"
            },
            "sync": {
                "debounce_ms": 400,
                "data_loss_guard": True
            },
            "drag": {
                "indent_threshold": 28.0,
                "outdent_threshold": 28.0
            },
            "paths": {
                "log_file": "scriptorium.log"
            },
            "logging": {
                "level": "INFO",
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            }
        }

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Get a configuration value using dot notation.

        Args:
            key_path: Dot-separated path to the configuration value (e.g., "sync.debounce_ms")
            default: Default value if key is not found

        Returns:
            The configuration value

        Examples:
            config.get("sync.debounce_ms")  # Returns 400
            config.get("drag.indent_threshold")  # Returns 28.0
        """
        keys = key_path.split('.')
        value = self._config

        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default

        return value

    def get_section(self, section: str) -> Dict[str, Any]:
        """
        Get an entire configuration section.

        Args:
            section: Name of the configuration section

        Returns:
            Dictionary containing the section configuration
        """
        return self._config.get(section, {})

    def reload(self) -> None:
        """Reload configuration from file."""
        self._load_config()

    # Convenience properties for commonly used values

    @property
    def api_base_url(self) -> str:
        """Get the persistence server base URL."""
        return self.get("api.base_url", "http://localhost:8080")

    @property
    def api_timeout(self) -> float:
        """Get the persistence request timeout in seconds."""
        return float(self.get("api.timeout", 15.0))

    @property
    def database_filename(self) -> str:
        """Get the local block database filename."""
        return self.get("database.filename", "scriptorium.db")

    @property
    def debounce_seconds(self) -> float:
        """Get the per-block patch debounce delay, converted to seconds."""
        return max(0.0, float(self.get("sync.debounce_ms", 400))) / 1000.0

    @property
    def data_loss_guard_enabled(self) -> bool:
        """Whether flushes are checked for dropped annotations."""
        return bool(self.get("sync.data_loss_guard", True))

    @property
    def indent_threshold(self) -> float:
        """Horizontal drag distance (px) right of a section header that nests into it."""
        return float(self.get("drag.indent_threshold", 28.0))

    @property
    def outdent_threshold(self) -> float:
        """Horizontal drag distance (px) left of a section header that lifts out of its parent."""
        return float(self.get("drag.outdent_threshold", 28.0))

    @property
    def log_filename(self) -> str:
        """Get log file name."""
        return self.get("paths.log_file", "scriptorium.log")


# Global configuration instance
config = ConfigManager()


def get_config() -> ConfigManager:
    """
    Get the global configuration instance.

    Returns:
        The global ConfigManager instance
    """
    return config
