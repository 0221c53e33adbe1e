from pathlib import Path

from claude_quota.core.system import get_xdg_config_home


def find_toml_config_file() -> Path | None:
    """Find the TOML configuration file for claude_quota.

    Searches in the following order:
    1. .claude_quota.toml in current directory
    2. claude_quota.toml in git repository root (if in a git repo)
    3. config.toml in user config directory/claude_quota/ (platform-specific)
    """
    candidates = [
        Path(".claude_quota.toml").resolve(),
        Path("claude_quota.toml").resolve(),
    ]

    git_root = find_git_root()
    if git_root:
        candidates.extend(
            [
                git_root / ".claude_quota.toml",
                git_root / "claude_quota.toml",
            ]
        )

    candidates.append(get_claude_quota_config_dir() / "config.toml")

    for candidate in candidates:
        if candidate.exists() and candidate.is_file():
            return candidate

    return None


def find_git_root(path: Path | None = None) -> Path | None:
    """Find the root directory of a git repository."""
    import subprocess  # nosec B404 - safe usage for git commands only

    if path is None:
        path = Path.cwd()

    try:
        # nosec B603, B607 - safe: hardcoded git command, no user input
        result = subprocess.run(
            ["git", "rev-parse", "--show-toplevel"],
            cwd=path,
            capture_output=True,
            text=True,
            check=True,
        )
        return Path(result.stdout.strip())
    except (subprocess.CalledProcessError, FileNotFoundError):
        return None


def get_claude_quota_config_dir() -> Path:
    """Get the claude_quota configuration directory.

    Returns:
        Path to the claude_quota configuration directory within user config directory.
    """
    return get_xdg_config_home() / "claude_quota"
