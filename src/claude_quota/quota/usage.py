"""Account utilization from the Claude usage API.

Queries ``GET /api/organizations/{org_id}/usage`` with the account's session
cookie and returns utilization for the five-hour and seven-day windows.
Also derives the credentials that call needs: the organization id from the
account's ``.claude.json`` and the session token from the platform keychain.

Example:
    >>> with HTTPUsageClient() as client:
    ...     usage = client.fetch_usage("org-uuid", "sk-ant-sid01-...")
    >>> usage.max_utilization()
    73.2
"""

import getpass
import hashlib
import os
from datetime import datetime
from pathlib import Path
from types import TracebackType
from typing import Any, Protocol, runtime_checkable

import httpx
import keyring
import orjson
from keyring.errors import KeyringError
from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError
from structlog import get_logger

from claude_quota.core.system import default_claude_config_dir, expand_home
from claude_quota.exceptions import UsageAPIError
from claude_quota.quota.constants import (
    CLAUDE_JSON_FILENAME,
    DEFAULT_USAGE_BASE_URL,
    DEFAULT_USAGE_TIMEOUT_SECONDS,
    KEYCHAIN_SERVICE_PREFIX,
    OAUTH_ACCOUNT_KEY,
    ORG_ID_KEYS,
    USAGE_USER_AGENT,
)


logger = get_logger(__name__)


class UsageWindow(BaseModel):
    """A single rolling rate-limit window (five-hour or seven-day)."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    utilization: float = 0.0  # 0-100 percentage
    resets_at: str | None = None  # ISO8601 timestamp

    @property
    def resets_at_datetime(self) -> datetime | None:
        """Parse resets_at, or None if absent or unparseable."""
        if not self.resets_at:
            return None
        try:
            return datetime.fromisoformat(self.resets_at.replace("Z", "+00:00"))
        except ValueError:
            return None


class UsageInfo(BaseModel):
    """Utilization snapshot for one account."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    five_hour: UsageWindow | None = None
    seven_day: UsageWindow | None = None

    def max_utilization(self) -> float:
        """Highest utilization across the windows present, 0.0 if none."""
        windows = [w for w in (self.five_hour, self.seven_day) if w is not None]
        return max((w.utilization for w in windows), default=0.0)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


@runtime_checkable
class UsageChecker(Protocol):
    """Fetches quota utilization for an account."""

    def fetch_usage(self, org_id: str, session_cookie: str) -> UsageInfo: ...


class HTTPUsageClient:
    """UsageChecker backed by the Claude web API.

    Each call is a single request with a fixed timeout; there are no retries.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_USAGE_BASE_URL,
        timeout: float = DEFAULT_USAGE_TIMEOUT_SECONDS,
        client: httpx.Client | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout)

    def __enter__(self) -> "HTTPUsageClient":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def fetch_usage(self, org_id: str, session_cookie: str) -> UsageInfo:
        """Query the usage API for an organization.

        Args:
            org_id: Organization UUID
            session_cookie: Value for the ``sessionKey`` cookie

        Returns:
            UsageInfo parsed from the response body

        Raises:
            UsageAPIError: On transport errors, non-200 status or a malformed body
        """
        url = f"{self.base_url}/api/organizations/{org_id}/usage"
        headers = {
            "Cookie": f"sessionKey={session_cookie}",
            "User-Agent": USAGE_USER_AGENT,
            "Accept": "application/json",
        }

        try:
            response = self._client.get(url, headers=headers)
        except httpx.TimeoutException as e:
            raise UsageAPIError("Usage request timed out", org_id=org_id) from e
        except httpx.HTTPError as e:
            raise UsageAPIError(f"Usage request failed: {e}", org_id=org_id) from e

        if response.status_code != 200:
            logger.debug(
                "usage_api_error",
                org_id=org_id,
                status=response.status_code,
                body=response.text[:200],
            )
            raise UsageAPIError(
                f"Usage API returned {response.status_code}",
                status_code=response.status_code,
                org_id=org_id,
            )

        try:
            usage = UsageInfo.model_validate(orjson.loads(response.content))
        except (orjson.JSONDecodeError, PydanticValidationError) as e:
            raise UsageAPIError(
                f"Invalid usage response: {e}", status_code=200, org_id=org_id
            ) from e

        logger.debug(
            "usage_fetched",
            org_id=org_id,
            max_utilization=usage.max_utilization(),
        )
        return usage


# --- Credential derivation ---


def read_org_id(config_dir: str | Path) -> str:
    """Extract the organization id from ``<config_dir>/.claude.json``.

    The file is not ours, so it is read as an untyped mapping and a few known
    key names are tried under ``oauthAccount``. Returns "" if the file, the
    object or every candidate key is missing.
    """
    path = Path(config_dir) / CLAUDE_JSON_FILENAME
    try:
        data = orjson.loads(path.read_bytes())
    except (OSError, orjson.JSONDecodeError):
        return ""

    if not isinstance(data, dict):
        return ""
    oauth_account = data.get(OAUTH_ACCOUNT_KEY)
    if not isinstance(oauth_account, dict):
        return ""

    for key in ORG_ID_KEYS:
        value = oauth_account.get(key)
        if isinstance(value, str) and value:
            return value
    return ""


def keychain_service_name(config_dir: str | Path) -> str:
    """Keychain service name Claude Code uses for a config dir.

    The default ``~/.claude`` dir uses the bare prefix; any other dir gets an
    eight-character sha256 suffix of its absolute path.
    """
    abs_dir = os.path.abspath(expand_home(str(config_dir)))
    default_dir = default_claude_config_dir()
    if default_dir and abs_dir == os.path.abspath(default_dir):
        return KEYCHAIN_SERVICE_PREFIX
    digest = hashlib.sha256(abs_dir.encode()).hexdigest()[:8]
    return f"{KEYCHAIN_SERVICE_PREFIX}-{digest}"


@runtime_checkable
class CredentialStore(Protocol):
    """Platform credential store lookup by service name."""

    def get_token(self, service_name: str) -> str | None: ...


def _current_user() -> str:
    try:
        return getpass.getuser()
    except (OSError, KeyError):
        return ""


class KeyringCredentialStore:
    """CredentialStore backed by the system keyring."""

    def __init__(self, username: str | None = None) -> None:
        self.username = username or _current_user()

    def get_token(self, service_name: str) -> str | None:
        try:
            token = keyring.get_password(service_name, self.username)
        except KeyringError as e:
            logger.debug("keyring_lookup_failed", service=service_name, error=str(e))
            return None
        if not token:
            return None
        return token.strip() or None
