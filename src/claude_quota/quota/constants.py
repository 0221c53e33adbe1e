"""Constants for the quota module.

This module centralizes configuration values used across the quota package.
"""

# Pane capture window. A generous window is captured but only the bottom
# CHECK_LINES are matched: once a limit is resolved, new output pushes the
# stale message above the checked tail.
SCAN_LINES = 30
CHECK_LINES = 20

# Utilization percentage at which usage data marks a session near-limit
DEFAULT_USAGE_THRESHOLD = 80.0

# Usage API
DEFAULT_USAGE_BASE_URL = "https://claude.ai"
DEFAULT_USAGE_TIMEOUT_SECONDS = 10.0
USAGE_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36"
)

# Session environment variables
CONFIG_DIR_ENV = "CLAUDE_CONFIG_DIR"
ACCOUNT_OVERRIDE_ENV = "GT_QUOTA_ACCOUNT"

# Credential sources
CLAUDE_JSON_FILENAME = ".claude.json"
OAUTH_ACCOUNT_KEY = "oauthAccount"
ORG_ID_KEYS: tuple[str, ...] = (
    "organizationUuid",
    "orgId",
    "organization_id",
    "orgUuid",
)
KEYCHAIN_SERVICE_PREFIX = "Claude Code-credentials"

# Memory layout
PROJECTS_DIRNAME = "projects"
MEMORY_DIRNAME = "memory"
MEMORY_SUMMARY_FILENAME = "MEMORY.md"
BACKUP_SUFFIX = ".bak"

# Hard rate-limit signatures, matched case-insensitively.
DEFAULT_RATE_LIMIT_PATTERNS: tuple[str, ...] = (
    r"you['’]ve hit your limit",
    r"/rate-limit-options",
    r"stop and wait for limit to reset",
    r"API Error: Rate limit reached",
)

# Approaching-quota signatures, matched case-insensitively.
DEFAULT_NEAR_LIMIT_PATTERNS: tuple[str, ...] = (
    r"\b\d{2,3}% of (your )?(daily |weekly |session )?(usage|limit)",
    r"approaching (your )?(rate |usage )?limit",
    r"nearing (your )?(rate |usage )?limit",
    r"close to (your )?(rate |usage )?limit",
    r"almost reached (your )?(rate |usage )?limit",
    r"\b\d+ messages? remaining",
    r"\b\d+ requests? left",
    r"usage is at \d{2,3}%",
)

