"""Usage API configuration settings."""

from pydantic import BaseModel, Field

from claude_quota.quota.constants import (
    DEFAULT_USAGE_BASE_URL,
    DEFAULT_USAGE_TIMEOUT_SECONDS,
)


class UsageSettings(BaseModel):
    """Usage API client settings."""

    base_url: str = Field(
        default=DEFAULT_USAGE_BASE_URL,
        description="Base URL of the usage API",
    )

    timeout: float = Field(
        default=DEFAULT_USAGE_TIMEOUT_SECONDS,
        gt=0,
        description="Per-request timeout in seconds",
    )
