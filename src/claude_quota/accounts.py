"""Account registry for the managed account pool.

Handles loading and validating accounts from ~/.claude-accounts/accounts.json.
Accounts are read-only input here: nothing in this package writes them back.
"""

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import orjson
from structlog import get_logger

from claude_quota.core.system import expand_home
from claude_quota.exceptions import AccountsFileError


logger = get_logger(__name__)

ACCOUNT_HANDLE_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")

# Default accounts file path
DEFAULT_ACCOUNTS_PATH = Path("~/.claude-accounts/accounts.json").expanduser()


@dataclass
class Account:
    """A logical credential identity in the pool.

    ``config_dir`` may be stored with a leading ``~``; sessions usually report
    the expanded form, so both are compared when resolving.
    """

    handle: str
    config_dir: str
    org_id: str = ""
    session_cookie: str = ""
    email: str = ""
    description: str = ""

    def __post_init__(self) -> None:
        """Validate account after initialization."""
        if not ACCOUNT_HANDLE_PATTERN.match(self.handle):
            raise ValueError(
                f"Invalid account handle '{self.handle}': "
                "must be alphanumeric with dots, underscores or hyphens"
            )
        if not self.config_dir:
            raise ValueError(f"Account '{self.handle}' has no config_dir")

    @property
    def expanded_config_dir(self) -> str:
        """Config dir with ``~`` expanded."""
        return expand_home(self.config_dir)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        data: dict[str, Any] = {"config_dir": self.config_dir}
        for key in ("org_id", "session_cookie", "email", "description"):
            if value := getattr(self, key):
                data[key] = value
        return data

    @classmethod
    def from_dict(cls, handle: str, data: dict[str, Any]) -> "Account":
        """Create from dictionary."""
        return cls(
            handle=handle,
            config_dir=data["config_dir"],
            org_id=data.get("org_id") or "",
            session_cookie=data.get("session_cookie") or "",
            email=data.get("email") or "",
            description=data.get("description") or "",
        )


@dataclass
class AccountsConfig:
    """Represents the accounts.json file structure."""

    version: int = 1
    accounts: dict[str, Account] = field(default_factory=dict)
    default: str = ""

    def get(self, handle: str) -> Account | None:
        return self.accounts.get(handle)

    def __contains__(self, handle: object) -> bool:
        return handle in self.accounts

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "version": self.version,
            "default": self.default,
            "accounts": {
                handle: account.to_dict() for handle, account in self.accounts.items()
            },
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AccountsConfig":
        """Create from dictionary loaded from JSON."""
        version = data.get("version", 1)
        accounts_data = data.get("accounts") or {}

        accounts = {}
        for handle, account_data in accounts_data.items():
            try:
                accounts[handle] = Account.from_dict(handle, account_data)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(
                    "invalid_account_skipped",
                    account=handle,
                    error=str(e),
                )

        return cls(version=version, accounts=accounts, default=data.get("default", ""))


def load_accounts(path: Path | None = None) -> AccountsConfig:
    """Load accounts from JSON file.

    Args:
        path: Path to accounts.json. Defaults to ~/.claude-accounts/accounts.json

    Returns:
        AccountsConfig with loaded accounts

    Raises:
        AccountsFileError: If the file is missing, unreadable or malformed
    """
    if path is None:
        path = DEFAULT_ACCOUNTS_PATH

    path = Path(path).expanduser()

    if not path.exists():
        raise AccountsFileError(f"Accounts file not found: {path}", path=str(path))

    logger.debug("loading_accounts", path=str(path))

    try:
        with path.open("rb") as f:
            data = orjson.loads(f.read())
    except OSError as e:
        raise AccountsFileError(
            f"Cannot read accounts file {path}: {e}", path=str(path)
        ) from e
    except orjson.JSONDecodeError as e:
        raise AccountsFileError(
            f"Invalid JSON in accounts file {path}: {e}", path=str(path)
        ) from e

    if not isinstance(data, dict):
        raise AccountsFileError(
            f"Invalid accounts file format: expected object, got {type(data).__name__}",
            path=str(path),
        )

    if "accounts" not in data:
        raise AccountsFileError(
            "Invalid accounts file: missing 'accounts' field", path=str(path)
        )

    accounts_config = AccountsConfig.from_dict(data)

    logger.info(
        "accounts_loaded",
        path=str(path),
        count=len(accounts_config.accounts),
        accounts=list(accounts_config.accounts.keys()),
    )

    return accounts_config
