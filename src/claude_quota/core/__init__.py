"""Core utilities shared across claude-quota."""

from claude_quota.core.logging import setup_logging
from claude_quota.core.system import (
    default_claude_config_dir,
    expand_home,
    get_home_dir,
    get_xdg_config_home,
)


__all__ = [
    "default_claude_config_dir",
    "expand_home",
    "get_home_dir",
    "get_xdg_config_home",
    "setup_logging",
]
