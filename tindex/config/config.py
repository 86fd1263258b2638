"""Configuration management for tindex.

Provides centralized configuration with TOML support and validation,
loaded hierarchically from defaults → config file → environment.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import toml
from pydantic import ValidationError

from tindex.models import Config
from tindex.utils.exceptions import ConfigurationError
from tindex.utils.logging_config import get_logger, setup_logging

logger = get_logger(__name__)

ENV_MAPPINGS: dict[str, str] = {
    # Tracker
    "TINDEX_TRACKER_URL": "tracker.url",
    "TINDEX_TRACKER_MODE": "tracker.mode",
    "TINDEX_TRACKER_API_URL": "tracker.api_url",
    "TINDEX_TRACKER_TOKEN": "tracker.token",
    "TINDEX_TRACKER_TOKEN_VALID_SECONDS": "tracker.token_valid_seconds",
    "TINDEX_TRACKER_REQUEST_TIMEOUT": "tracker.request_timeout",
    # Statistics importer
    "TINDEX_IMPORTER_MAX_CONCURRENT_REQUESTS": "tracker_statistics_importer.max_concurrent_requests",
    "TINDEX_IMPORTER_UPDATE_INTERVAL": "tracker_statistics_importer.torrent_info_update_interval",
    "TINDEX_IMPORTER_PAGE_SIZE": "tracker_statistics_importer.page_size",
    # Database
    "TINDEX_DATABASE_PATH": "database.path",
    # Observability
    "TINDEX_LOG_LEVEL": "observability.log_level",
    "TINDEX_LOG_FILE": "observability.log_file",
    "TINDEX_STRUCTURED_LOGGING": "observability.structured_logging",
}

# Values that must never be coerced to bool/int/float
_STRING_PATHS = frozenset(
    {
        "tracker.url",
        "tracker.api_url",
        "tracker.token",
        "tracker.mode",
        "database.path",
        "observability.log_level",
        "observability.log_file",
    }
)

_config_manager: ConfigManager | None = None


class ConfigManager:
    """Manages configuration loading and validation."""

    def __init__(self, config_file: str | Path | None = None, setup_log: bool = True):
        """Initialize configuration manager.

        Args:
            config_file: Path to TOML config file. If None, searches for tindex.toml
            setup_log: Configure logging from the loaded observability section

        Raises:
            ConfigurationError: If the file cannot be parsed or validation fails

        """
        self.config_file = self._find_config_file(config_file)
        self.config = self._load_config()
        if setup_log:
            self._setup_logging()

    def _find_config_file(self, config_file: str | Path | None) -> Path | None:
        """Find configuration file in standard locations."""
        if config_file:
            return Path(config_file)

        env_path = os.getenv("TINDEX_CONFIG")
        if env_path:
            return Path(env_path)

        search_paths = [
            Path.cwd() / "tindex.toml",
            Path.home() / ".config" / "tindex" / "tindex.toml",
        ]
        for path in search_paths:
            if path.exists():
                return path

        return None

    def _load_config(self) -> Config:
        """Load configuration from file and environment."""
        config_data: dict[str, Any] = {}

        if self.config_file is not None:
            if not self.config_file.exists():
                msg = f"Configuration file not found: {self.config_file}"
                raise ConfigurationError(msg)
            try:
                with open(self.config_file, encoding="utf-8") as f:
                    config_data.update(toml.load(f))
            except (toml.TomlDecodeError, OSError) as e:
                msg = f"Failed to load config file {self.config_file}: {e}"
                raise ConfigurationError(msg) from e

        config_data = self._merge_config(config_data, self._get_env_config())

        try:
            return Config(**config_data)
        except ValidationError as e:
            msg = f"Invalid configuration: {e}"
            raise ConfigurationError(msg, {"errors": e.errors(include_input=False)}) from e

    def _get_env_config(self) -> dict[str, Any]:
        """Get configuration from environment variables."""
        env_config: dict[str, Any] = {}

        def _parse_env_value(raw: str, path: str) -> bool | int | float | str:
            if path in _STRING_PATHS:
                return raw
            low = raw.lower()
            if low in {"true", "yes", "on"}:
                return True
            if low in {"false", "no", "off"}:
                return False
            try:
                if "." in raw:
                    return float(raw)
                return int(raw)
            except ValueError:
                return raw

        def _set_nested(d: dict[str, Any], path: str, value: Any) -> None:
            parts = path.split(".")
            cur = d
            for p in parts[:-1]:
                cur = cur.setdefault(p, {})
            cur[parts[-1]] = value

        for env_name, cfg_path in ENV_MAPPINGS.items():
            raw = os.getenv(env_name)
            if raw is None:
                continue
            _set_nested(env_config, cfg_path, _parse_env_value(raw, cfg_path))

        return env_config

    def _merge_config(
        self,
        base: dict[str, Any],
        override: dict[str, Any],
    ) -> dict[str, Any]:
        """Merge configuration dictionaries recursively."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_config(result[key], value)
            else:
                result[key] = value

        return result

    def export(self) -> str:
        """Export the current configuration as TOML with secrets masked."""
        return toml.dumps(self.config.redacted())

    def _setup_logging(self) -> None:
        """Set up logging configuration."""
        setup_logging(self.config.observability)
        logger.debug(
            "Configuration loaded from %s",
            self.config_file if self.config_file else "defaults/environment",
        )


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager()
    return _config_manager.config


def init_config(config_file: str | Path | None = None) -> ConfigManager:
    """Initialize the global configuration manager."""
    global _config_manager
    _config_manager = ConfigManager(config_file)
    return _config_manager

