"""Consolidated exception hierarchy for claude-quota.

All exceptions use proper exception chaining with the `from` keyword.
Error types use StrEnum for type safety and autocompletion.

Only a subset of these ever reach callers. Usage API, tmux capture, merge
and symlink failures are caught inside the scanner and the unifier and
turned into degraded results or warnings.
"""

from enum import StrEnum
from typing import Any


class ErrorType(StrEnum):
    """Error type codes carried by every QuotaError."""

    CONFIGURATION = "configuration_error"
    PATTERN = "pattern_error"
    SESSION = "session_error"
    USAGE_API = "usage_api_error"
    FILESYSTEM = "filesystem_error"
    MERGE = "merge_error"
    SYMLINK = "symlink_error"
    INTERNAL = "internal_error"


# ============================================================================
# Base Exception
# ============================================================================


class QuotaError(Exception):
    """Base exception for all claude-quota errors.

    Supports a typed error category and structured error details.
    """

    def __init__(
        self,
        message: str,
        *,
        error_type: ErrorType | str = ErrorType.INTERNAL,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if isinstance(error_type, str) and not isinstance(error_type, ErrorType):
            try:
                self.error_type = ErrorType(error_type)
            except ValueError:
                self.error_type = error_type  # type: ignore[assignment]
        else:
            self.error_type = error_type
        self.details = details or {}


# ============================================================================
# Configuration Errors
# ============================================================================


class ConfigurationError(QuotaError):
    """Raised when configuration loading or validation fails."""

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(
            message, error_type=ErrorType.CONFIGURATION, details=details
        )


class AccountsFileError(ConfigurationError):
    """The accounts file is missing or malformed."""

    def __init__(self, message: str, *, path: str | None = None) -> None:
        super().__init__(message, details={"path": path} if path else None)
        self.path = path


class PatternCompileError(QuotaError):
    """A rate-limit pattern failed to compile."""

    def __init__(self, pattern: str, reason: str) -> None:
        super().__init__(
            f"Invalid pattern {pattern!r}: {reason}",
            error_type=ErrorType.PATTERN,
            details={"pattern": pattern, "reason": reason},
        )
        self.pattern = pattern


# ============================================================================
# Session / Terminal Errors
# ============================================================================


class TmuxError(QuotaError):
    """A tmux command failed."""

    def __init__(self, message: str, *, session: str | None = None) -> None:
        super().__init__(
            message,
            error_type=ErrorType.SESSION,
            details={"session": session} if session else None,
        )
        self.session = session


class SessionListError(QuotaError):
    """Fleet sessions could not be enumerated at all."""

    def __init__(self, message: str = "Failed to list sessions") -> None:
        super().__init__(message, error_type=ErrorType.SESSION)


# ============================================================================
# Usage API Errors
# ============================================================================


class UsageAPIError(QuotaError):
    """The usage API call failed or returned an unusable response."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        org_id: str | None = None,
    ) -> None:
        details: dict[str, Any] = {}
        if status_code is not None:
            details["status_code"] = status_code
        if org_id:
            details["org_id"] = org_id
        super().__init__(message, error_type=ErrorType.USAGE_API, details=details)
        self.status_code = status_code


# ============================================================================
# Memory Consolidation Errors
# ============================================================================


class AccountsRootError(QuotaError):
    """The accounts root (or one account's projects dir) could not be read."""

    def __init__(self, message: str, *, path: str) -> None:
        super().__init__(
            message, error_type=ErrorType.FILESYSTEM, details={"path": path}
        )
        self.path = path


class MemoryMergeError(QuotaError):
    """Copying memory content into the shared directory failed."""

    def __init__(self, message: str, *, project: str | None = None) -> None:
        super().__init__(
            message,
            error_type=ErrorType.MERGE,
            details={"project": project} if project else None,
        )


class SymlinkReplaceError(QuotaError):
    """A memory directory could not be swapped for a symlink."""

    def __init__(self, message: str, *, memory_dir: str) -> None:
        super().__init__(
            message, error_type=ErrorType.SYMLINK, details={"memory_dir": memory_dir}
        )
        self.memory_dir = memory_dir
