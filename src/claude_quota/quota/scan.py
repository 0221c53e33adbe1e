"""Fleet-wide rate-limit scanning.

Captures the tail of every fleet session's pane, classifies it against the
hard-limit and near-limit signatures, then optionally enriches the results
with usage API data (one request per account, never per session).

Example:
    >>> scanner = SessionScanner(TmuxDriver(), accounts=load_accounts())
    >>> scanner.with_usage_checker(HTTPUsageClient(), threshold=80.0)
    >>> limited = [r for r in scanner.scan_all() if r.rate_limited]
"""

from dataclasses import dataclass, replace
from typing import Any

from structlog import get_logger

from claude_quota.accounts import AccountsConfig
from claude_quota.core.system import default_claude_config_dir
from claude_quota.exceptions import SessionListError, TmuxError
from claude_quota.quota.constants import (
    CONFIG_DIR_ENV,
    DEFAULT_USAGE_THRESHOLD,
    SCAN_LINES,
)
from claude_quota.quota.patterns import HEALTHY, PatternClassifier
from claude_quota.quota.resolver import AccountResolver
from claude_quota.quota.usage import (
    CredentialStore,
    KeyringCredentialStore,
    UsageChecker,
    UsageInfo,
    keychain_service_name,
    read_org_id,
)
from claude_quota.session.registry import PrefixRegistry
from claude_quota.session.tmux import TmuxClient


logger = get_logger(__name__)


@dataclass(frozen=True)
class ScanResult:
    """Health of one fleet session at scan time.

    ``rate_limited`` and ``near_limit`` are never both set.
    """

    session: str
    account_handle: str = ""  # "" when the account is outside the pool
    config_dir: str = ""  # CLAUDE_CONFIG_DIR, even if the account is unknown
    rate_limited: bool = False
    near_limit: bool = False
    matched_line: str = ""
    resets_at: str = ""
    usage: UsageInfo | None = None

    @property
    def healthy(self) -> bool:
        return not (self.rate_limited or self.near_limit)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization, omitting empty fields."""
        data: dict[str, Any] = {
            "session": self.session,
            "rate_limited": self.rate_limited,
            "near_limit": self.near_limit,
        }
        for key in ("account_handle", "config_dir", "matched_line", "resets_at"):
            if value := getattr(self, key):
                data[key] = value
        if self.usage is not None:
            data["usage"] = self.usage.to_dict()
        return data


@dataclass(frozen=True)
class _UsageCredentials:
    org_id: str
    session_cookie: str


class SessionScanner:
    """Detects rate-limited and near-limit fleet sessions."""

    def __init__(
        self,
        tmux: TmuxClient,
        registry: PrefixRegistry | None = None,
        classifier: PatternClassifier | None = None,
        accounts: AccountsConfig | None = None,
        scan_lines: int = SCAN_LINES,
    ) -> None:
        """Initialize the scanner.

        Args:
            tmux: Terminal driver used to list, capture and inspect sessions
            registry: Fleet session-name prefixes; defaults to the built-in set
            classifier: Pattern classifier; defaults to the built-in patterns
            accounts: Account pool; None disables account resolution and usage
            scan_lines: Pane lines captured per session

        Raises:
            PatternCompileError: If the default classifier fails to compile
        """
        self.tmux = tmux
        self.registry = registry or PrefixRegistry.default()
        self.classifier = classifier or PatternClassifier()
        self.accounts = accounts
        self.resolver = AccountResolver(accounts, tmux)
        self.scan_lines = scan_lines

        self.usage_checker: UsageChecker | None = None
        self.usage_threshold = DEFAULT_USAGE_THRESHOLD
        self.credential_store: CredentialStore | None = None

    def with_usage_checker(
        self,
        checker: UsageChecker,
        threshold: float = 0.0,
        credential_store: CredentialStore | None = None,
    ) -> "SessionScanner":
        """Enable usage API-based near-limit detection.

        Args:
            checker: Usage API client
            threshold: Utilization percentage (0-100) at which a session is
                near its limit; 0 or less keeps the default (80)
            credential_store: Session token lookup; defaults to the system keyring
        """
        self.usage_checker = checker
        if threshold > 0:
            self.usage_threshold = threshold
        self.credential_store = credential_store or KeyringCredentialStore()
        return self

    def scan_all(self) -> list[ScanResult]:
        """Scan every fleet session.

        Returns:
            One ScanResult per fleet session, in listing order

        Raises:
            SessionListError: If sessions cannot be listed at all
        """
        try:
            sessions = self.tmux.list_sessions()
        except (TmuxError, OSError) as e:
            raise SessionListError(f"Listing sessions failed: {e}") from e

        results = [
            self.scan_session(session)
            for session in sessions
            if self.registry.is_known_session(session)
        ]

        if self.usage_checker is not None and self.accounts is not None:
            results = self.enrich_with_usage(results)

        logger.info(
            "scan_completed",
            sessions=len(results),
            rate_limited=sum(r.rate_limited for r in results),
            near_limit=sum(r.near_limit for r in results),
        )
        return results

    def scan_session(self, session: str) -> ScanResult:
        """Classify a single session from its pane content."""
        config_dir = self._session_config_dir(session)
        account_handle = self.resolver.resolve(session)

        try:
            content = self.tmux.capture_pane(session, self.scan_lines)
        except (TmuxError, OSError) as e:
            # A session that died mid-scan carries no active limit signal
            logger.debug("pane_capture_failed", session=session, error=str(e))
            classification = HEALTHY
        else:
            classification = self.classifier.classify(content)

        if classification.rate_limited:
            logger.info(
                "session_rate_limited",
                session=session,
                account=account_handle,
                resets_at=classification.resets_at,
            )

        return ScanResult(
            session=session,
            account_handle=account_handle,
            config_dir=config_dir,
            rate_limited=classification.rate_limited,
            near_limit=classification.near_limit,
            matched_line=classification.matched_line,
            resets_at=classification.resets_at,
        )

    def _session_config_dir(self, session: str) -> str:
        try:
            config_dir = self.tmux.get_environment(session, CONFIG_DIR_ENV).strip()
        except (TmuxError, OSError):
            config_dir = ""
        return config_dir or default_claude_config_dir()

    def enrich_with_usage(self, results: list[ScanResult]) -> list[ScanResult]:
        """Attach usage data per account and promote sessions over the threshold.

        Best-effort: accounts without credentials, and any failure while
        resolving credentials or fetching usage, are skipped silently.
        """
        if self.usage_checker is None:
            return results

        account_usage: dict[str, UsageInfo] = {}
        handles = dict.fromkeys(r.account_handle for r in results if r.account_handle)
        for handle in handles:
            # Checker and credential store are injected; any failure only
            # skips this account
            try:
                creds = self._resolve_credentials(handle)
                if creds is None:
                    continue
                account_usage[handle] = self.usage_checker.fetch_usage(
                    creds.org_id, creds.session_cookie
                )
            except Exception as e:
                logger.debug("usage_fetch_skipped", account=handle, error=str(e))

        enriched = []
        for result in results:
            usage = account_usage.get(result.account_handle)
            if usage is None:
                enriched.append(result)
                continue

            near_limit = result.near_limit
            if not result.rate_limited and not result.near_limit:
                near_limit = usage.max_utilization() >= self.usage_threshold
                if near_limit:
                    logger.info(
                        "session_near_limit_by_usage",
                        session=result.session,
                        account=result.account_handle,
                        utilization=usage.max_utilization(),
                        threshold=self.usage_threshold,
                    )
            enriched.append(replace(result, usage=usage, near_limit=near_limit))
        return enriched

    def _resolve_credentials(self, handle: str) -> _UsageCredentials | None:
        if self.accounts is None:
            return None
        account = self.accounts.get(handle)
        if account is None:
            return None

        config_dir = account.expanded_config_dir

        org_id = account.org_id or read_org_id(config_dir)
        if not org_id:
            logger.debug("usage_org_id_missing", account=handle)
            return None

        cookie = account.session_cookie
        if not cookie and self.credential_store is not None:
            service_name = keychain_service_name(config_dir)
            cookie = self.credential_store.get_token(service_name) or ""
        if not cookie:
            logger.debug("usage_session_token_missing", account=handle)
            return None

        return _UsageCredentials(org_id=org_id, session_cookie=cookie)
