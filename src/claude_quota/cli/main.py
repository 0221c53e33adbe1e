"""claude-quota command-line interface."""

from pathlib import Path

import orjson
import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from claude_quota import __version__
from claude_quota.accounts import AccountsConfig, load_accounts
from claude_quota.config.settings import Settings, config_manager
from claude_quota.exceptions import QuotaError
from claude_quota.quota.doctor import check_memory_symlinks
from claude_quota.quota.memory import (
    UnifyResult,
    unify_memory,
    unify_project_memory_for_config_dir,
)
from claude_quota.quota.patterns import PatternClassifier
from claude_quota.quota.scan import ScanResult, SessionScanner
from claude_quota.quota.usage import HTTPUsageClient
from claude_quota.session.registry import PrefixRegistry
from claude_quota.session.tmux import TmuxClient, TmuxDriver


console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    name="claude-quota",
    help="Detect rate-limited sessions and keep agent memory shared across accounts.",
    no_args_is_help=True,
)

ConfigOption = typer.Option(
    None, "--config", "-c", help="Path to a TOML configuration file"
)


def version_callback(value: bool) -> None:
    if value:
        console.print(f"claude-quota {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
) -> None:
    """Quota-aware continuity for pooled Claude accounts."""


def get_settings_for_cli(config: Path | None, **cli_args: object) -> Settings:
    """Load settings with CLI overrides and configure logging once."""
    try:
        settings = config_manager.load_settings(
            config_path=config,
            cli_overrides=config_manager.get_cli_overrides_from_args(**cli_args),
        )
    except QuotaError as e:
        err_console.print(f"[red]{escape(e.message)}[/red]")
        raise typer.Exit(1) from e
    config_manager.setup_logging(settings)
    return settings


def load_accounts_for_cli(settings: Settings) -> AccountsConfig | None:
    """Accounts registry, or None when no accounts file exists."""
    if not settings.accounts_file.exists():
        return None
    try:
        return load_accounts(settings.accounts_file)
    except QuotaError as e:
        err_console.print(f"[red]{escape(e.message)}[/red]")
        raise typer.Exit(1) from e


def build_scanner(
    settings: Settings,
    accounts: AccountsConfig | None,
    tmux: TmuxClient | None = None,
) -> SessionScanner:
    """Build a scanner from settings."""
    quota = settings.quota
    near_patterns: list[str] | None = quota.near_patterns or None
    if not quota.near_limit_enabled:
        near_patterns = []

    classifier = PatternClassifier(
        hard_patterns=quota.hard_patterns or None,
        near_patterns=near_patterns,
        check_lines=quota.check_lines,
    )
    scanner = SessionScanner(
        tmux or TmuxDriver(),
        registry=PrefixRegistry(quota.session_prefixes),
        classifier=classifier,
        accounts=accounts,
        scan_lines=quota.scan_lines,
    )
    if quota.usage_enabled and accounts is not None:
        client = HTTPUsageClient(
            base_url=settings.usage.base_url, timeout=settings.usage.timeout
        )
        scanner.with_usage_checker(client, threshold=quota.usage_threshold)
    return scanner


def echo_json(data: object) -> None:
    typer.echo(orjson.dumps(data, option=orjson.OPT_INDENT_2).decode())


def _status_label(result: ScanResult) -> str:
    if result.rate_limited:
        return "[red]rate-limited[/red]"
    if result.near_limit:
        return "[yellow]near-limit[/yellow]"
    return "[green]ok[/green]"


def create_scan_table(results: list[ScanResult]) -> Table:
    table = Table(title="Session Quota Status")
    table.add_column("Session", style="cyan")
    table.add_column("Account")
    table.add_column("Status")
    table.add_column("Usage", justify="right")
    table.add_column("Resets")
    table.add_column("Matched", style="dim", overflow="fold")

    for result in results:
        usage = f"{result.usage.max_utilization():.0f}%" if result.usage else ""
        table.add_row(
            result.session,
            result.account_handle or "[dim]unknown[/dim]",
            _status_label(result),
            usage,
            result.resets_at,
            escape(result.matched_line),
        )
    return table


def create_unify_table(results: list[UnifyResult], dry_run: bool) -> Table:
    title = "Memory Unification (dry run)" if dry_run else "Memory Unification"
    table = Table(title=title)
    table.add_column("Project", style="cyan", overflow="fold")
    table.add_column("Would link" if dry_run else "Linked", style="green")
    table.add_column("Already linked", style="dim")
    table.add_column("Warnings", style="yellow", overflow="fold")

    for result in results:
        table.add_row(
            result.project,
            ", ".join(result.symlinks_created),
            ", ".join(result.already_linked),
            escape("\n".join(result.warnings)),
        )
    return table


@app.command()
def scan(
    config: Path | None = ConfigOption,
    json_output: bool = typer.Option(False, "--json", help="Print results as JSON"),
    no_usage: bool = typer.Option(
        False, "--no-usage", help="Skip usage API enrichment"
    ),
    threshold: float | None = typer.Option(
        None, "--threshold", "-t", help="Usage percentage that counts as near-limit"
    ),
) -> None:
    """Scan fleet sessions for rate limits."""
    settings = get_settings_for_cli(
        config,
        usage_threshold=threshold,
        usage_enabled=False if no_usage else None,
    )
    accounts = load_accounts_for_cli(settings)

    try:
        scanner = build_scanner(settings, accounts)
    except QuotaError as e:
        err_console.print(f"[red]{escape(e.message)}[/red]")
        raise typer.Exit(1) from e

    try:
        results = scanner.scan_all()
    except QuotaError as e:
        err_console.print(f"[red]{escape(e.message)}[/red]")
        raise typer.Exit(1) from e
    finally:
        if isinstance(scanner.usage_checker, HTTPUsageClient):
            scanner.usage_checker.close()

    if json_output:
        echo_json([r.to_dict() for r in results])
        return

    if not results:
        console.print("[yellow]No fleet sessions found.[/yellow]")
        return

    console.print(create_scan_table(results))


@app.command("unify-memory")
def unify_memory_command(
    config: Path | None = ConfigOption,
    dry_run: bool = typer.Option(
        False, "--dry-run", "-n", help="Report changes without touching the filesystem"
    ),
    config_dir: Path | None = typer.Option(
        None,
        "--config-dir",
        help="Only unify projects touched by the account owning this config dir",
    ),
    accounts_root: Path | None = typer.Option(
        None, "--accounts-root", help="Directory holding per-account config dirs"
    ),
    shared_root: Path | None = typer.Option(
        None, "--shared-root", help="Directory holding shared per-project memory"
    ),
    json_output: bool = typer.Option(False, "--json", help="Print results as JSON"),
) -> None:
    """Share memory dirs across accounts via symlinks."""
    settings = get_settings_for_cli(
        config, accounts_root=accounts_root, shared_root=shared_root
    )
    memory = settings.memory

    if config_dir is not None and dry_run:
        err_console.print("[red]--dry-run cannot be combined with --config-dir.[/red]")
        raise typer.Exit(1)

    try:
        if config_dir is not None:
            results = unify_project_memory_for_config_dir(
                memory.accounts_root, memory.shared_root, config_dir
            )
        else:
            results = unify_memory(memory.accounts_root, memory.shared_root, dry_run)
    except QuotaError as e:
        err_console.print(f"[red]{escape(e.message)}[/red]")
        raise typer.Exit(1) from e

    if json_output:
        echo_json([r.to_dict() for r in results])
        return

    if not results:
        console.print("[green]Nothing to unify.[/green]")
        return

    console.print(create_unify_table(results, dry_run))


@app.command()
def doctor(
    config: Path | None = ConfigOption,
    accounts_root: Path | None = typer.Option(
        None, "--accounts-root", help="Directory holding per-account config dirs"
    ),
) -> None:
    """Check that account memory dirs use shared symlinks."""
    settings = get_settings_for_cli(config, accounts_root=accounts_root)
    result = check_memory_symlinks(settings.memory.accounts_root)

    if result.ok:
        console.print(f"[green]✓[/green] memory-symlinks: {result.message}")
        return

    console.print(f"[yellow]![/yellow] memory-symlinks: {result.message}")
    for detail in result.details:
        console.print(f"  - {detail}")
    if result.fix_hint:
        console.print(f"[dim]{result.fix_hint}[/dim]")
    raise typer.Exit(1)


def app_main() -> None:
    app()
