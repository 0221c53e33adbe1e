"""Quota-aware continuity for pooled Claude accounts.

This package detects rate-limited sessions across the fleet and keeps agent
memory shared across accounts so rotation never loses it.
"""

from claude_quota.quota.doctor import MemoryCheckResult, check_memory_symlinks
from claude_quota.quota.memory import (
    ProjectEntry,
    UnifyResult,
    discover_projects,
    unify_memory,
    unify_project_memory_for_config_dir,
)
from claude_quota.quota.patterns import (
    Classification,
    PatternClassifier,
    parse_reset_time,
)
from claude_quota.quota.resolver import AccountResolver
from claude_quota.quota.scan import ScanResult, SessionScanner
from claude_quota.quota.usage import (
    CredentialStore,
    HTTPUsageClient,
    KeyringCredentialStore,
    UsageChecker,
    UsageInfo,
    UsageWindow,
)


__all__ = [
    "AccountResolver",
    "Classification",
    "CredentialStore",
    "HTTPUsageClient",
    "KeyringCredentialStore",
    "MemoryCheckResult",
    "PatternClassifier",
    "ProjectEntry",
    "ScanResult",
    "SessionScanner",
    "UnifyResult",
    "UsageChecker",
    "UsageInfo",
    "UsageWindow",
    "check_memory_symlinks",
    "discover_projects",
    "parse_reset_time",
    "unify_memory",
    "unify_project_memory_for_config_dir",
]
