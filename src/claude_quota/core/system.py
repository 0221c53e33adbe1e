import os
from pathlib import Path

import platformdirs


def get_xdg_config_home() -> Path:
    """Get the XDG_CONFIG_HOME directory using platformdirs.

    Returns:
        Path to the user config directory (cross-platform).
    """
    return Path(platformdirs.user_config_dir())


def get_home_dir() -> Path | None:
    """Return the current user's home directory, or None if it can't be determined."""
    try:
        return Path.home()
    except RuntimeError:
        return None


def expand_home(path: str) -> str:
    """Expand a leading ``~`` in path, leaving every other form untouched."""
    if not path.startswith("~"):
        return path
    return os.path.expanduser(path)


def default_claude_config_dir() -> str:
    """Claude Code's default config directory (``~/.claude``).

    Returns an empty string when the home directory is unknown.
    """
    home = get_home_dir()
    if home is None:
        return ""
    return str(home / ".claude")
