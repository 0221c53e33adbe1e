"""Shared agent memory across pooled accounts.

Every account keeps per-project memory under
``<accounts_root>/<account>/projects/<project>/memory/``. Consolidation merges
those directories into one canonical ``<shared_root>/<project>/`` and replaces
each of them with a symlink to it, so rotating a session onto another account
never looks like memory loss to the agent.

Re-running any operation here on an already consolidated tree is a no-op.
Nothing here locks: callers must not consolidate the same project from two
processes at once.

Example:
    >>> results = unify_memory(Path("~/.claude-accounts").expanduser(),
    ...                        Path("~/.claude/shared-memory").expanduser())
    >>> [r.project for r in results if r.symlinks_created]
    ['-Users-me-src-app']
"""

import os
import shutil
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from structlog import get_logger

from claude_quota.core.system import expand_home
from claude_quota.exceptions import (
    AccountsRootError,
    MemoryMergeError,
    SymlinkReplaceError,
)
from claude_quota.quota.constants import (
    BACKUP_SUFFIX,
    MEMORY_DIRNAME,
    MEMORY_SUMMARY_FILENAME,
    PROJECTS_DIRNAME,
)


logger = get_logger(__name__)


@dataclass(frozen=True)
class ProjectEntry:
    """One account's memory dir for one project."""

    account: str
    memory_dir: Path


@dataclass
class UnifyResult:
    """What happened to one project during a unification pass."""

    project: str
    shared_dir: Path
    accounts_merged: list[str] = field(default_factory=list)
    symlinks_created: list[str] = field(default_factory=list)
    already_linked: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.symlinks_created)

    def to_dict(self) -> dict[str, Any]:
        return {
            "project": self.project,
            "shared_dir": str(self.shared_dir),
            "accounts_merged": list(self.accounts_merged),
            "symlinks_created": list(self.symlinks_created),
            "already_linked": list(self.already_linked),
            "warnings": list(self.warnings),
        }


# --- Public API ---


def unify_memory(
    accounts_root: Path | str,
    shared_root: Path | str,
    dry_run: bool = False,
) -> list[UnifyResult]:
    """Consolidate every project's memory across all accounts.

    Args:
        accounts_root: Directory holding one config dir per account
        shared_root: Directory holding the canonical per-project memory dirs
        dry_run: Report what would be linked without touching the filesystem

    Returns:
        One UnifyResult per discovered project, sorted by project id

    Raises:
        AccountsRootError: If accounts_root cannot be read
    """
    accounts_root = _absolute(accounts_root)
    shared_root = _absolute(shared_root)

    projects = discover_projects(accounts_root)
    results = [
        unify_project(project, projects[project], shared_root, dry_run=dry_run)
        for project in sorted(projects)
    ]

    logger.info(
        "memory_unified",
        projects=len(results),
        linked=sum(len(r.symlinks_created) for r in results),
        warnings=sum(len(r.warnings) for r in results),
        dry_run=dry_run,
    )
    return results


def unify_project_memory_for_config_dir(
    accounts_root: Path | str,
    shared_root: Path | str,
    config_dir: Path | str,
) -> list[UnifyResult]:
    """Consolidate the projects touched by one account, typically post-rotation.

    The account is the first path segment of config_dir below accounts_root.
    Each of its projects that is not already linked is consolidated across
    all accounts, so the rotated-in account also sees memory contributed by
    the others.

    A config_dir outside accounts_root (e.g. the default ``~/.claude``) is a
    no-op: non-pooled setups never need consolidation.

    Returns:
        UnifyResults for the projects that needed work

    Raises:
        AccountsRootError: If the account's projects dir exists but can't be read
    """
    accounts_root = _absolute(accounts_root)
    shared_root = _absolute(shared_root)

    account = account_for_config_dir(accounts_root, config_dir)
    if account is None:
        logger.debug(
            "memory_unify_skipped_unpooled",
            config_dir=str(config_dir),
            accounts_root=str(accounts_root),
        )
        return []

    projects_dir = accounts_root / account / PROJECTS_DIRNAME
    try:
        project_names = _list_dirs(projects_dir)
    except FileNotFoundError:
        return []
    except OSError as e:
        raise AccountsRootError(
            f"Cannot read projects dir {projects_dir}: {e}", path=str(projects_dir)
        ) from e

    results = []
    all_projects: dict[str, list[ProjectEntry]] | None = None
    for project in project_names:
        memory_dir = projects_dir / project / MEMORY_DIRNAME
        if not os.path.lexists(memory_dir):
            continue

        shared_dir = shared_root / project
        if memory_dir.is_symlink() and symlink_matches_target(memory_dir, shared_dir):
            continue

        if all_projects is None:
            all_projects = discover_projects(accounts_root)
        entries = list(all_projects.get(project, []))
        # A symlinked account dir is not discovered
        if not any(e.account == account for e in entries):
            entries.append(ProjectEntry(account, memory_dir))
        results.append(unify_project(project, entries, shared_root))

    return results


def account_for_config_dir(
    accounts_root: Path | str, config_dir: Path | str
) -> str | None:
    """Account name owning config_dir, or None if it is not under accounts_root."""
    abs_root = os.path.abspath(expand_home(str(accounts_root)))
    abs_config = os.path.abspath(expand_home(str(config_dir)))
    try:
        rel = os.path.relpath(abs_config, abs_root)
    except ValueError:
        # Different drives on Windows
        return None

    if rel == os.curdir or rel == os.pardir or rel.startswith(os.pardir + os.sep):
        return None
    return rel.split(os.sep, 1)[0]


def discover_projects(accounts_root: Path | str) -> dict[str, list[ProjectEntry]]:
    """Map project id -> memory entries across all accounts.

    A memory entry is listed whether it is a real dir or a symlink. Accounts
    whose projects dir is missing or unreadable are skipped.

    Raises:
        AccountsRootError: If accounts_root itself cannot be read
    """
    accounts_root = Path(accounts_root)
    try:
        accounts = _list_dirs(accounts_root)
    except OSError as e:
        raise AccountsRootError(
            f"Cannot read accounts dir {accounts_root}: {e}", path=str(accounts_root)
        ) from e

    projects: dict[str, list[ProjectEntry]] = {}
    for account in accounts:
        projects_dir = accounts_root / account / PROJECTS_DIRNAME
        try:
            project_names = _list_dirs(projects_dir)
        except OSError:
            continue
        for project in project_names:
            memory_dir = projects_dir / project / MEMORY_DIRNAME
            if os.path.lexists(memory_dir):
                projects.setdefault(project, []).append(
                    ProjectEntry(account=account, memory_dir=memory_dir)
                )
    return projects


def unify_project(
    project: str,
    entries: Iterable[ProjectEntry],
    shared_root: Path | str,
    dry_run: bool = False,
) -> UnifyResult:
    """Merge one project's memory dirs into its shared dir and link them all.

    A merge failure aborts before any account dir is touched. A symlink
    failure leaves that one account's dir as it was and moves on.
    """
    shared_dir = _absolute(shared_root) / project
    result = UnifyResult(project=project, shared_dir=shared_dir)

    pending: list[ProjectEntry] = []
    for entry in entries:
        if not os.path.lexists(entry.memory_dir):
            continue
        if entry.memory_dir.is_symlink() and symlink_matches_target(
            entry.memory_dir, shared_dir
        ):
            result.already_linked.append(entry.account)
            continue
        # Real dir, or a symlink to the wrong place
        pending.append(entry)

    if not pending:
        return result

    if dry_run:
        result.symlinks_created.extend(entry.account for entry in pending)
        return result

    try:
        shared_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        result.warnings.append(f"failed to create shared dir: {e}")
        logger.warning("memory_shared_dir_failed", project=project, error=str(e))
        return result

    try:
        merge_memory_content(pending, shared_dir, result)
    except MemoryMergeError as e:
        result.warnings.append(f"merge failed, aborting symlink creation: {e}")
        logger.warning("memory_merge_failed", project=project, error=str(e))
        return result

    for entry in pending:
        try:
            replace_with_symlink(entry.memory_dir, shared_dir)
        except SymlinkReplaceError as e:
            result.warnings.append(f"failed to symlink {entry.account}: {e}")
            logger.warning(
                "memory_symlink_failed",
                project=project,
                account=entry.account,
                error=str(e),
            )
            continue
        result.symlinks_created.append(entry.account)

    logger.info(
        "memory_project_unified",
        project=project,
        shared_dir=str(shared_dir),
        linked=result.symlinks_created,
        already_linked=result.already_linked,
    )
    return result


# --- Merge ---


@dataclass(frozen=True)
class _SummaryCandidate:
    path: Path
    account: str
    mtime_ns: int
    size: int

    def newer_than(self, mtime_ns: int, size: int) -> bool:
        return self.mtime_ns > mtime_ns or (
            self.mtime_ns == mtime_ns and self.size > size
        )


def merge_memory_content(
    entries: Iterable[ProjectEntry],
    shared_dir: Path,
    result: UnifyResult,
) -> None:
    """Copy memory content from entries into shared_dir.

    MEMORY.md: the most recently modified copy wins (larger size breaks
    ties), and it only replaces the shared copy if strictly newer. Every
    other file or subdirectory is copied only if shared_dir lacks it, first
    account seen wins.

    Raises:
        MemoryMergeError: If any copy fails; nothing has been deleted yet
    """
    best: _SummaryCandidate | None = None
    others: dict[str, Path] = {}

    for entry in entries:
        try:
            children = sorted(os.scandir(entry.memory_dir), key=lambda d: d.name)
        except OSError as e:
            logger.debug(
                "memory_dir_unreadable",
                account=entry.account,
                memory_dir=str(entry.memory_dir),
                error=str(e),
            )
            continue

        for child in children:
            path = Path(child.path)
            if child.name == MEMORY_SUMMARY_FILENAME and child.is_file():
                try:
                    st = child.stat()
                except OSError:
                    continue
                candidate = _SummaryCandidate(
                    path=path,
                    account=entry.account,
                    mtime_ns=st.st_mtime_ns,
                    size=st.st_size,
                )
                if best is None or candidate.newer_than(best.mtime_ns, best.size):
                    best = candidate
            elif child.name not in others and path.exists():
                others[child.name] = path
        result.accounts_merged.append(entry.account)

    if best is not None:
        shared_summary = shared_dir / MEMORY_SUMMARY_FILENAME
        should_copy = True
        try:
            st = shared_summary.stat()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise MemoryMergeError(
                f"cannot stat {shared_summary}: {e}", project=shared_dir.name
            ) from e
        else:
            should_copy = best.newer_than(st.st_mtime_ns, st.st_size)

        if should_copy:
            try:
                shutil.copy2(best.path, shared_summary)
            except OSError as e:
                raise MemoryMergeError(
                    f"copying {MEMORY_SUMMARY_FILENAME} from {best.account}: {e}",
                    project=shared_dir.name,
                ) from e

    for name, src in others.items():
        dest = shared_dir / name
        if os.path.lexists(dest):
            continue
        try:
            if src.is_dir():
                shutil.copytree(src, dest, symlinks=True)
            else:
                shutil.copy2(src, dest)
        except OSError as e:
            raise MemoryMergeError(
                f"copying {name}: {e}", project=shared_dir.name
            ) from e


# --- Symlink replacement ---


def replace_with_symlink(memory_dir: Path, shared_dir: Path) -> None:
    """Swap memory_dir for a symlink to shared_dir without ever losing it.

    memory_dir is renamed aside to ``memory.bak`` first; if the symlink
    can't be created the backup is renamed back. At every point the path is
    the original dir, the backup, or the new symlink.

    Raises:
        SymlinkReplaceError: If the swap failed; memory_dir is left as it was
    """
    backup = memory_dir.with_name(memory_dir.name + BACKUP_SUFFIX)
    if os.path.lexists(backup):
        raise SymlinkReplaceError(
            f"backup path {backup} already exists", memory_dir=str(memory_dir)
        )

    try:
        os.rename(memory_dir, backup)
    except OSError as e:
        raise SymlinkReplaceError(
            f"backing up {memory_dir}: {e}", memory_dir=str(memory_dir)
        ) from e

    try:
        memory_dir.parent.mkdir(parents=True, exist_ok=True)
        os.symlink(shared_dir, memory_dir, target_is_directory=True)
    except OSError as e:
        _restore_backup(backup, memory_dir)
        raise SymlinkReplaceError(
            f"creating symlink: {e}", memory_dir=str(memory_dir)
        ) from e

    _remove_backup(backup)


def _restore_backup(backup: Path, memory_dir: Path) -> None:
    try:
        os.rename(backup, memory_dir)
    except OSError as e:
        logger.error(
            "memory_backup_restore_failed",
            memory_dir=str(memory_dir),
            backup=str(backup),
            error=str(e),
        )


def _remove_backup(backup: Path) -> None:
    try:
        if backup.is_symlink():
            backup.unlink()
        else:
            shutil.rmtree(backup)
    except OSError as e:
        # The symlink is already in place; the backup is only leftover data
        logger.warning("memory_backup_cleanup_failed", backup=str(backup), error=str(e))


def symlink_matches_target(
    symlink_path: Path | str, expected_target: Path | str
) -> bool:
    """Whether symlink_path points at expected_target.

    Relative targets are resolved against the symlink's own directory, then
    both sides are made absolute and normalized before comparing.
    """
    try:
        target = os.readlink(symlink_path)
    except OSError:
        return False
    if not os.path.isabs(target):
        target = os.path.join(os.path.dirname(symlink_path), target)
    return os.path.abspath(target) == os.path.abspath(expected_target)


# --- Helpers ---


def _absolute(path: Path | str) -> Path:
    return Path(os.path.abspath(expand_home(str(path))))


def _list_dirs(path: Path) -> list[str]:
    """Sorted names of the real (non-symlink) subdirectories of path."""
    with os.scandir(path) as it:
        return sorted(e.name for e in it if e.is_dir(follow_symlinks=False))
