"""Maps a live session to the account whose credentials it is using."""

from structlog import get_logger

from claude_quota.accounts import AccountsConfig
from claude_quota.exceptions import TmuxError
from claude_quota.quota.constants import ACCOUNT_OVERRIDE_ENV, CONFIG_DIR_ENV
from claude_quota.session.tmux import TmuxClient


logger = get_logger(__name__)


class AccountResolver:
    """Resolves session -> account handle.

    A completed rotation swaps credentials without touching the session's
    CLAUDE_CONFIG_DIR, so the override variable is consulted first. An empty
    handle means the session is outside the managed pool.
    """

    def __init__(self, accounts: AccountsConfig | None, tmux: TmuxClient) -> None:
        self.accounts = accounts
        self.tmux = tmux

    def _read_env(self, session: str, key: str) -> str | None:
        try:
            return self.tmux.get_environment(session, key).strip()
        except (TmuxError, OSError):
            return None

    def resolve(self, session: str) -> str:
        if self.accounts is None:
            return ""

        override = self._read_env(session, ACCOUNT_OVERRIDE_ENV)
        if override and override in self.accounts:
            return override

        config_dir = self._read_env(session, CONFIG_DIR_ENV)
        if config_dir is None:
            return ""

        return self.match_config_dir(config_dir)

    def match_config_dir(self, config_dir: str) -> str:
        """Handle of the first account whose config dir matches, raw or expanded."""
        if self.accounts is None:
            return ""
        for handle, account in self.accounts.accounts.items():
            if config_dir in (account.config_dir, account.expanded_config_dir):
                return handle

        logger.debug("account_unresolved", config_dir=config_dir)
        return ""
