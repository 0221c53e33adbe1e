# tests/unit/cli/test_cli.py
"""Tests for the claude-quota CLI commands."""

import importlib
import json
from pathlib import Path

import pytest
import structlog
from typer.testing import CliRunner

from claude_quota import __version__
from claude_quota.cli.main import app, build_scanner
from claude_quota.config.settings import Settings
from claude_quota.exceptions import TmuxError
from claude_quota.quota.usage import HTTPUsageClient


runner = CliRunner()

HARD_LIMIT = "You've hit your limit · resets 7pm (UTC)"


@pytest.fixture(autouse=True)
def isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("CONFIG_FILE", raising=False)
    monkeypatch.setattr(
        "claude_quota.config.settings.find_toml_config_file", lambda: None
    )
    yield
    # setup_logging binds structlog to the runner's captured stderr
    structlog.reset_defaults()


@pytest.fixture
def pool(tmp_path: Path) -> Path:
    """Accounts root with two accounts sharing one project."""
    root = tmp_path / "pool"
    for account, content in (("a", "from a"), ("b", "from b")):
        memory = root / account / "projects" / "proj" / "memory"
        memory.mkdir(parents=True)
        (memory / f"{account}.md").write_text(content)
    return root


@pytest.fixture
def config_path(tmp_path: Path, pool: Path) -> Path:
    accounts_file = tmp_path / "accounts.json"
    accounts_file.write_text(
        json.dumps(
            {
                "accounts": {
                    "a": {"config_dir": str(pool / "a")},
                    "b": {"config_dir": str(pool / "b")},
                }
            }
        )
    )
    path = tmp_path / "claude_quota.toml"
    path.write_text(
        f'accounts_file = "{accounts_file}"\n'
        "[memory]\n"
        f'accounts_root = "{pool}"\n'
        f'shared_root = "{tmp_path / "shared"}"\n'
    )
    return path


@pytest.fixture
def tmux(fake_tmux, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(
        importlib.import_module("claude_quota.cli.main"),
        "TmuxDriver",
        lambda: fake_tmux,
    )
    return fake_tmux


@pytest.mark.unit
class TestVersion:
    def test_version(self) -> None:
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.stdout


@pytest.mark.unit
class TestScanCommand:
    def test_scan_json(self, tmux, config_path: Path, pool: Path) -> None:
        tmux.add_session("gt-crew", HARD_LIMIT, CLAUDE_CONFIG_DIR=str(pool / "b"))
        tmux.add_session("hq-mayor", "all quiet")
        tmux.add_session("scratch", HARD_LIMIT)

        result = runner.invoke(
            app, ["scan", "--json", "--no-usage", "--config", str(config_path)]
        )

        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert [r["session"] for r in data] == ["gt-crew", "hq-mayor"]
        assert data[0]["rate_limited"] is True
        assert data[0]["account_handle"] == "b"
        assert data[0]["resets_at"] == "7pm (UTC)"
        assert data[1]["rate_limited"] is False
        assert "account_handle" not in data[1]

    def test_scan_table(self, tmux, config_path: Path) -> None:
        tmux.add_session("gt-crew", HARD_LIMIT)

        result = runner.invoke(
            app, ["scan", "--no-usage", "--config", str(config_path)]
        )

        assert result.exit_code == 0, result.output
        assert "Session Quota Status" in result.stdout
        assert "gt-crew" in result.stdout

    def test_scan_without_accounts_file(self, tmux, tmp_path: Path) -> None:
        config = tmp_path / "no_accounts.toml"
        config.write_text(f'accounts_file = "{tmp_path / "missing.json"}"\n')
        tmux.add_session("gt-crew", "ok")

        result = runner.invoke(app, ["scan", "--json", "--config", str(config)])

        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout) == [
            {
                "session": "gt-crew",
                "rate_limited": False,
                "near_limit": False,
                "config_dir": str(Path.home() / ".claude"),
            }
        ]

    def test_scan_no_sessions(self, tmux, config_path: Path) -> None:
        result = runner.invoke(
            app, ["scan", "--no-usage", "--config", str(config_path)]
        )
        assert result.exit_code == 0
        assert "No fleet sessions found" in result.stdout

    def test_scan_list_failure_exits(self, tmux, config_path: Path) -> None:
        tmux.list_error = TmuxError("no server running on /tmp/tmux-0/default")

        result = runner.invoke(
            app, ["scan", "--no-usage", "--config", str(config_path)]
        )

        assert result.exit_code == 1

    def test_invalid_config_exits(self, tmp_path: Path) -> None:
        config = tmp_path / "broken.toml"
        config.write_text("[quota\n")

        result = runner.invoke(app, ["scan", "--config", str(config)])

        assert result.exit_code == 1


@pytest.mark.unit
class TestBuildScanner:
    def test_usage_checker_attached_with_accounts(self, fake_tmux, accounts) -> None:
        settings = Settings(quota={"usage_threshold": 75})

        scanner = build_scanner(settings, accounts, tmux=fake_tmux)

        assert isinstance(scanner.usage_checker, HTTPUsageClient)
        assert scanner.usage_threshold == 75
        scanner.usage_checker.close()

    def test_no_usage_checker_without_accounts(self, fake_tmux) -> None:
        scanner = build_scanner(Settings(), None, tmux=fake_tmux)
        assert scanner.usage_checker is None

    def test_near_limit_disabled(self, fake_tmux) -> None:
        settings = Settings(quota={"near_limit_enabled": False})

        scanner = build_scanner(settings, None, tmux=fake_tmux)

        assert scanner.classifier.near_patterns == []
        assert scanner.classifier.classify("Approaching usage limit").healthy

    def test_session_prefixes_from_settings(self, fake_tmux) -> None:
        settings = Settings(quota={"session_prefixes": {"ap": "apollo"}})

        scanner = build_scanner(settings, None, tmux=fake_tmux)

        assert scanner.registry.is_known_session("ap-crew")
        assert not scanner.registry.is_known_session("gt-crew")


@pytest.mark.unit
class TestUnifyMemoryCommand:
    def test_unify(self, config_path: Path, pool: Path, tmp_path: Path) -> None:
        result = runner.invoke(
            app, ["unify-memory", "--json", "--config", str(config_path)]
        )

        assert result.exit_code == 0, result.output
        [project] = json.loads(result.stdout)
        assert project["project"] == "proj"
        assert project["symlinks_created"] == ["a", "b"]
        shared = tmp_path / "shared" / "proj"
        assert (shared / "a.md").read_text() == "from a"
        assert (pool / "b" / "projects" / "proj" / "memory").is_symlink()

    def test_dry_run(self, config_path: Path, pool: Path, tmp_path: Path) -> None:
        result = runner.invoke(
            app, ["unify-memory", "--dry-run", "--config", str(config_path)]
        )

        assert result.exit_code == 0, result.output
        assert "dry run" in result.stdout
        assert not (tmp_path / "shared").exists()
        assert not (pool / "a" / "projects" / "proj" / "memory").is_symlink()

    def test_config_dir(self, config_path: Path, pool: Path) -> None:
        result = runner.invoke(
            app,
            [
                "unify-memory",
                "--json",
                "--config",
                str(config_path),
                "--config-dir",
                str(pool / "a"),
            ],
        )

        assert result.exit_code == 0, result.output
        [project] = json.loads(result.stdout)
        assert project["symlinks_created"] == ["a", "b"]

    def test_nothing_to_unify(self, tmp_path: Path) -> None:
        empty = tmp_path / "empty"
        empty.mkdir()

        result = runner.invoke(
            app,
            [
                "unify-memory",
                "--accounts-root",
                str(empty),
                "--shared-root",
                str(tmp_path / "shared"),
            ],
        )

        assert result.exit_code == 0
        assert "Nothing to unify" in result.stdout

    def test_missing_accounts_root_exits(self, tmp_path: Path) -> None:
        result = runner.invoke(
            app,
            ["unify-memory", "--accounts-root", str(tmp_path / "missing")],
        )
        assert result.exit_code == 1


@pytest.mark.unit
class TestDoctorCommand:
    def test_reports_unlinked_dirs(self, config_path: Path) -> None:
        result = runner.invoke(app, ["doctor", "--config", str(config_path)])

        assert result.exit_code == 1
        assert "2 memory dir(s) not using shared symlinks" in result.stdout
        assert "a/proj" in result.stdout

    def test_ok_after_unify(self, config_path: Path) -> None:
        runner.invoke(app, ["unify-memory", "--config", str(config_path)])

        result = runner.invoke(app, ["doctor", "--config", str(config_path)])

        assert result.exit_code == 0, result.output
        assert "all memory dirs use shared symlinks" in result.stdout
