"""Settings configuration for claude-quota."""

import contextlib
import os
import tomllib
from pathlib import Path
from typing import Any

import orjson
import structlog
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from claude_quota.config.discovery import find_toml_config_file
from claude_quota.core.logging import setup_logging
from claude_quota.exceptions import ConfigurationError

from .memory import MemorySettings
from .quota import QuotaSettings
from .usage import UsageSettings


__all__ = [
    "Settings",
    "ConfigurationError",
    "ConfigurationManager",
    "config_manager",
    "get_settings",
]


def _coerce_settings(value: Any, settings_class: type) -> Any:
    """Coerce value to settings class instance.

    Handles: None → default, dict → instance, passthrough existing instances.
    """
    if value is None:
        return settings_class()
    if isinstance(value, settings_class):
        return value
    if isinstance(value, dict):
        return settings_class(**value)
    if hasattr(value, "model_dump"):
        return settings_class(**value.model_dump())
    return value


class Settings(BaseSettings):
    """
    Configuration settings for claude-quota.

    Settings are loaded from environment variables, .env files, and TOML
    configuration files.
    Environment variables take precedence over .env file values.
    TOML configuration files are loaded in the following order:
    1. .claude_quota.toml in current directory
    2. claude_quota.toml in git repository root
    3. config.toml in user config directory/claude_quota/ (platform-specific)
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_nested_delimiter="__",
    )

    quota: QuotaSettings = Field(
        default_factory=QuotaSettings,
        description="Rate-limit detection settings",
    )

    memory: MemorySettings = Field(
        default_factory=MemorySettings,
        description="Memory consolidation settings",
    )

    usage: UsageSettings = Field(
        default_factory=UsageSettings,
        description="Usage API client settings",
    )

    accounts_file: Path = Field(
        default=Path("~/.claude-accounts/accounts.json"),
        description="Path to the accounts registry",
    )

    log_level: str = Field(
        default="WARNING",
        description="Minimum log level",
    )

    log_json: bool = Field(
        default=False,
        description="Emit JSON log lines instead of console output",
    )

    @field_validator("quota", mode="before")
    @classmethod
    def validate_quota(cls, v: Any) -> Any:
        return _coerce_settings(v, QuotaSettings)

    @field_validator("memory", mode="before")
    @classmethod
    def validate_memory(cls, v: Any) -> Any:
        return _coerce_settings(v, MemorySettings)

    @field_validator("usage", mode="before")
    @classmethod
    def validate_usage(cls, v: Any) -> Any:
        return _coerce_settings(v, UsageSettings)

    @field_validator("accounts_file", mode="after")
    @classmethod
    def expand_accounts_file(cls, v: Path) -> Path:
        return v.expanduser()

    @field_validator("log_level", mode="after")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        return v.upper()

    @classmethod
    def load_toml_config(cls, toml_path: Path) -> dict[str, Any]:
        """Load configuration from a TOML file.

        Args:
            toml_path: Path to the TOML configuration file

        Returns:
            dict: Configuration data from the TOML file

        Raises:
            ValueError: If the TOML file is invalid or cannot be read
        """
        try:
            with toml_path.open("rb") as f:
                return tomllib.load(f)
        except OSError as e:
            raise ValueError(f"Cannot read TOML config file {toml_path}: {e}") from e
        except tomllib.TOMLDecodeError as e:
            raise ValueError(f"Invalid TOML syntax in {toml_path}: {e}") from e

    @classmethod
    def from_config(
        cls, config_path: Path | str | None = None, **kwargs: Any
    ) -> "Settings":
        """Create Settings instance from configuration file.

        Args:
            config_path: Path to configuration file. Can be:
                - None: Auto-discover config file or use CONFIG_FILE env var
                - Path or str: Use this specific config file
            **kwargs: Additional keyword arguments to override config values

        Returns:
            Settings: Configured Settings instance
        """
        if config_path is None:
            config_path_env = os.environ.get("CONFIG_FILE")
            if config_path_env:
                config_path = Path(config_path_env)

        if isinstance(config_path, str):
            config_path = Path(config_path)

        if config_path is None:
            config_path = find_toml_config_file()

        config_data: dict[str, Any] = {}
        if config_path and config_path.exists():
            if config_path.suffix.lower() != ".toml":
                raise ValueError(
                    f"Unsupported config file format: {config_path.suffix}. "
                    "Only TOML (.toml) files are supported."
                )
            config_data = cls.load_toml_config(config_path)

        # kwargs take precedence, merged one level deep so a CLI override of
        # one key keeps the rest of its TOML section
        merged_config = dict(config_data)
        for key, value in kwargs.items():
            if isinstance(value, dict) and isinstance(merged_config.get(key), dict):
                merged_config[key] = {**merged_config[key], **value}
            else:
                merged_config[key] = value

        return cls(**merged_config)


class ConfigurationManager:
    """Centralized configuration management for the CLI."""

    def __init__(self) -> None:
        self._settings: Settings | None = None
        self._config_path: Path | None = None
        self._logging_configured = False

    def load_settings(
        self,
        config_path: Path | None = None,
        cli_overrides: dict[str, Any] | None = None,
    ) -> Settings:
        """Load settings with CLI overrides and caching."""
        if (
            self._settings is None
            or config_path != self._config_path
            or cli_overrides
        ):
            try:
                self._settings = Settings.from_config(
                    config_path=config_path, **(cli_overrides or {})
                )
                self._config_path = config_path
            except (OSError, ValueError, tomllib.TOMLDecodeError) as e:
                raise ConfigurationError(f"Failed to load configuration: {e}") from e

        return self._settings

    def setup_logging(self, settings: Settings, log_level: str | None = None) -> None:
        """Configure logging once based on settings."""
        if self._logging_configured:
            return
        setup_logging(log_level or settings.log_level, json_logs=settings.log_json)
        self._logging_configured = True

    @staticmethod
    def _extract_config_section(
        cli_args: dict[str, Any], keys: list[str]
    ) -> dict[str, Any]:
        """Extract non-None values for specified keys from CLI args."""
        return {key: cli_args[key] for key in keys if cli_args.get(key) is not None}

    def get_cli_overrides_from_args(self, **cli_args: Any) -> dict[str, Any]:
        """Extract non-None CLI arguments as configuration overrides."""
        overrides: dict[str, Any] = {}

        memory_settings = self._extract_config_section(
            cli_args, ["accounts_root", "shared_root"]
        )
        if memory_settings:
            overrides["memory"] = memory_settings

        quota_settings = self._extract_config_section(
            cli_args, ["usage_threshold", "usage_enabled"]
        )
        if quota_settings:
            overrides["quota"] = quota_settings

        if cli_args.get("accounts_file") is not None:
            overrides["accounts_file"] = cli_args["accounts_file"]

        return overrides

    def reset(self) -> None:
        """Reset configuration state (useful for testing)."""
        self._settings = None
        self._config_path = None
        self._logging_configured = False


config_manager = ConfigurationManager()

logger = structlog.get_logger(__name__)


def get_settings(config_path: Path | str | None = None) -> Settings:
    """Get the settings instance with configuration file support.

    Args:
        config_path: Optional path to configuration file. If None, uses the
                    CONFIG_FILE env var or auto-discovers a config file.

    Returns:
        Settings: Configured Settings instance

    Raises:
        ConfigurationError: If the configuration cannot be loaded
    """
    try:
        cli_overrides = {}
        cli_overrides_json = os.environ.get("CLAUDE_QUOTA_CONFIG_OVERRIDES")
        if cli_overrides_json:
            with contextlib.suppress(ValueError):
                cli_overrides = orjson.loads(cli_overrides_json)

        return Settings.from_config(config_path=config_path, **cli_overrides)
    except (OSError, ValueError, tomllib.TOMLDecodeError) as e:
        logger.error("settings_load_failed", error=str(e))
        raise ConfigurationError(f"Configuration error: {e}") from e
