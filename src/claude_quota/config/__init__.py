"""Configuration module for claude-quota."""

from claude_quota.exceptions import ConfigurationError

from .memory import MemorySettings
from .quota import QuotaSettings
from .settings import ConfigurationManager, Settings, config_manager, get_settings
from .usage import UsageSettings


__all__ = [
    "ConfigurationError",
    "ConfigurationManager",
    "MemorySettings",
    "QuotaSettings",
    "Settings",
    "UsageSettings",
    "config_manager",
    "get_settings",
]
