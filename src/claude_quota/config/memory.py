"""Memory consolidation configuration settings."""

from pathlib import Path

from pydantic import BaseModel, Field, field_validator


class MemorySettings(BaseModel):
    """Locations of per-account config dirs and the shared memory root."""

    accounts_root: Path = Field(
        default=Path("~/.claude-accounts"),
        description="Directory holding one config dir per account",
    )

    shared_root: Path = Field(
        default=Path("~/.claude/shared-memory"),
        description="Directory holding one canonical memory dir per project",
    )

    @field_validator("accounts_root", "shared_root", mode="after")
    @classmethod
    def expand_user(cls, v: Path) -> Path:
        return v.expanduser()
