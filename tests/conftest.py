"""Shared test fixtures."""

from collections.abc import Iterator
from pathlib import Path

import pytest

from claude_quota.accounts import Account, AccountsConfig
from claude_quota.config.settings import config_manager
from claude_quota.exceptions import TmuxError


class FakeTmux:
    """In-memory TmuxClient.

    Sessions are keyed by name; a missing pane or env var raises TmuxError
    the way the real driver does.
    """

    def __init__(self) -> None:
        self.panes: dict[str, str] = {}
        self.env: dict[str, dict[str, str]] = {}
        self.list_error: Exception | None = None
        self.capture_errors: set[str] = set()
        self.capture_calls: list[tuple[str, int]] = []

    def add_session(self, name: str, pane: str = "", **env: str) -> None:
        self.panes[name] = pane
        self.env[name] = dict(env)

    def list_sessions(self) -> list[str]:
        if self.list_error is not None:
            raise self.list_error
        return list(self.panes)

    def capture_pane(self, session: str, lines: int) -> str:
        self.capture_calls.append((session, lines))
        if session in self.capture_errors or session not in self.panes:
            raise TmuxError(f"can't find session: {session}", session=session)
        return self.panes[session]

    def get_environment(self, session: str, key: str) -> str:
        try:
            return self.env[session][key]
        except KeyError:
            raise TmuxError(f"{key} not set", session=session) from None


@pytest.fixture
def fake_tmux() -> FakeTmux:
    return FakeTmux()


@pytest.fixture
def accounts(tmp_path: Path) -> AccountsConfig:
    """Two pooled accounts with explicit credentials."""
    return AccountsConfig(
        accounts={
            "alice": Account(
                handle="alice",
                config_dir=str(tmp_path / "accounts" / "alice"),
                org_id="org-alice",
                session_cookie="cookie-alice",
            ),
            "bob": Account(
                handle="bob",
                config_dir=str(tmp_path / "accounts" / "bob"),
                org_id="org-bob",
                session_cookie="cookie-bob",
            ),
        },
        default="alice",
    )


@pytest.fixture(autouse=True)
def reset_config_manager() -> Iterator[None]:
    """Keep the CLI's cached settings from leaking between tests."""
    config_manager.reset()
    yield
    config_manager.reset()
