"""Health check for memory consolidation.

Finds per-account memory dirs that still hold their own ``.md`` files, and
symlinks whose target no longer exists.
"""

import os
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path

from claude_quota.core.system import expand_home
from claude_quota.quota.constants import MEMORY_DIRNAME, PROJECTS_DIRNAME


FIX_HINT = "Run 'claude-quota unify-memory' to share memory across accounts"


class CheckStatus(StrEnum):
    OK = "ok"
    WARNING = "warning"


@dataclass
class MemoryCheckResult:
    status: CheckStatus
    message: str
    details: list[str] = field(default_factory=list)
    fix_hint: str = ""

    @property
    def ok(self) -> bool:
        return self.status == CheckStatus.OK


def check_memory_symlinks(accounts_root: Path | str) -> MemoryCheckResult:
    """Report memory dirs not yet pointing at shared memory.

    Never raises: an unreadable or missing accounts root is reported as OK
    with an explanatory message, since there is nothing to consolidate.
    """
    accounts_root = Path(expand_home(str(accounts_root)))
    if not accounts_root.exists():
        return MemoryCheckResult(CheckStatus.OK, "no accounts directory")

    try:
        accounts = _subdirs(accounts_root)
    except OSError:
        return MemoryCheckResult(CheckStatus.OK, "could not read accounts directory")

    real_dirs: list[str] = []
    broken_links: list[str] = []
    symlinked = 0

    for account in accounts:
        projects_dir = accounts_root / account / PROJECTS_DIRNAME
        try:
            projects = _subdirs(projects_dir)
        except OSError:
            continue

        for project in projects:
            memory_dir = projects_dir / project / MEMORY_DIRNAME
            if memory_dir.is_symlink():
                if memory_dir.exists():
                    symlinked += 1
                else:
                    broken_links.append(f"{account}/{project} (broken symlink)")
            elif memory_dir.is_dir() and _has_md_files(memory_dir):
                real_dirs.append(f"{account}/{project}")

    if not real_dirs and not broken_links:
        message = "all memory dirs use shared symlinks"
        if symlinked == 0:
            message = "no memory directories found"
        return MemoryCheckResult(CheckStatus.OK, message)

    message = f"{len(real_dirs)} memory dir(s) not using shared symlinks"
    if broken_links:
        total = len(real_dirs) + len(broken_links)
        message = (
            f"{total} issue(s): {len(real_dirs)} non-symlinked, "
            f"{len(broken_links)} broken symlinks"
        )

    return MemoryCheckResult(
        CheckStatus.WARNING,
        message,
        details=broken_links + real_dirs,
        fix_hint=FIX_HINT,
    )


def _subdirs(path: Path) -> list[str]:
    with os.scandir(path) as it:
        return sorted(e.name for e in it if e.is_dir(follow_symlinks=False))


def _has_md_files(directory: Path) -> bool:
    try:
        with os.scandir(directory) as it:
            return any(e.is_file() and e.name.endswith(".md") for e in it)
    except OSError:
        return False
