"""Session scanning configuration settings."""

from pydantic import BaseModel, Field

from claude_quota.quota.constants import (
    CHECK_LINES,
    DEFAULT_USAGE_THRESHOLD,
    SCAN_LINES,
)
from claude_quota.session.registry import DEFAULT_SESSION_PREFIXES


class QuotaSettings(BaseModel):
    """Rate-limit detection settings.

    Empty pattern lists fall back to the built-in defaults.
    """

    hard_patterns: list[str] = Field(
        default_factory=list,
        description="Hard rate-limit patterns (case-insensitive regex)",
    )

    near_patterns: list[str] = Field(
        default_factory=list,
        description="Near-limit warning patterns (case-insensitive regex)",
    )

    near_limit_enabled: bool = Field(
        default=True,
        description="Match near-limit patterns in pane content",
    )

    usage_enabled: bool = Field(
        default=True,
        description="Enrich scan results with usage API data",
    )

    usage_threshold: float = Field(
        default=DEFAULT_USAGE_THRESHOLD,
        gt=0,
        le=100,
        description="Utilization percentage at which a session is near its limit",
    )

    scan_lines: int = Field(
        default=SCAN_LINES,
        ge=1,
        description="Pane lines captured per session",
    )

    check_lines: int = Field(
        default=CHECK_LINES,
        ge=1,
        description="Bottom lines of the capture matched against patterns",
    )

    session_prefixes: dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_SESSION_PREFIXES),
        description="Fleet session-name prefixes mapped to their rig names",
    )

