"""Rate-limit signature matching over captured terminal output.

Example:
    >>> classifier = PatternClassifier()
    >>> match = classifier.classify("You've hit your limit · resets 7pm (UTC)")
    >>> match.rate_limited, match.resets_at
    (True, '7pm (UTC)')
"""

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from claude_quota.exceptions import PatternCompileError
from claude_quota.quota.constants import (
    CHECK_LINES,
    DEFAULT_NEAR_LIMIT_PATTERNS,
    DEFAULT_RATE_LIMIT_PATTERNS,
)


# "You've hit your limit · resets 7pm (America/Los_Angeles)"
#   -> "7pm (America/Los_Angeles)"
RESET_TIME_PATTERN = re.compile(r"\bresets\s+(.+)", re.IGNORECASE)


def parse_reset_time(line: str) -> str:
    """Extract the reset time following a "resets" marker, or "" if absent."""
    m = RESET_TIME_PATTERN.search(line)
    if not m:
        return ""
    return m.group(1).strip()


def compile_patterns(patterns: Iterable[str]) -> list[re.Pattern[str]]:
    """Compile case-insensitive patterns, failing on the first bad one.

    Raises:
        PatternCompileError: If any pattern is not a valid regex
    """
    compiled = []
    for pattern in patterns:
        try:
            compiled.append(re.compile(pattern, re.IGNORECASE))
        except re.error as e:
            raise PatternCompileError(pattern, str(e)) from e
    return compiled


@dataclass(frozen=True)
class Classification:
    """Outcome of matching one pane capture."""

    rate_limited: bool = False
    near_limit: bool = False
    matched_line: str = ""
    resets_at: str = ""

    @property
    def healthy(self) -> bool:
        return not (self.rate_limited or self.near_limit)


HEALTHY = Classification()


class PatternClassifier:
    """Matches hard-limit and near-limit signatures against a pane tail.

    Hard-limit patterns are always evaluated before near-limit patterns, so
    a hard limit wins even when a warning line sits below it.
    """

    def __init__(
        self,
        hard_patterns: Sequence[str] | None = None,
        near_patterns: Sequence[str] | None = None,
        check_lines: int = CHECK_LINES,
    ) -> None:
        """Compile both pattern sets.

        Args:
            hard_patterns: Hard rate-limit patterns; None or empty uses defaults
            near_patterns: Near-limit patterns; None uses defaults, an empty
                sequence disables near-limit detection
            check_lines: Number of trailing lines examined

        Raises:
            PatternCompileError: If any pattern fails to compile
        """
        if check_lines < 1:
            raise ValueError(f"check_lines must be positive, got {check_lines}")
        if not hard_patterns:
            hard_patterns = DEFAULT_RATE_LIMIT_PATTERNS
        if near_patterns is None:
            near_patterns = DEFAULT_NEAR_LIMIT_PATTERNS

        self.hard_patterns = compile_patterns(hard_patterns)
        self.near_patterns = compile_patterns(near_patterns)
        self.check_lines = check_lines

    def with_near_patterns(self, patterns: Sequence[str] | None) -> None:
        """Replace the near-limit pattern set; None restores the defaults.

        Raises:
            PatternCompileError: If any pattern fails to compile
        """
        if patterns is None:
            patterns = DEFAULT_NEAR_LIMIT_PATTERNS
        self.near_patterns = compile_patterns(patterns)

    def tail(self, content: str) -> list[str]:
        """Non-blank, stripped lines from the checked tail of content."""
        lines = content.split("\n")[-self.check_lines :]
        return [stripped for line in lines if (stripped := line.strip())]

    def classify(self, content: str) -> Classification:
        lines = self.tail(content)

        line = _first_match(lines, self.hard_patterns)
        if line is not None:
            return Classification(
                rate_limited=True,
                matched_line=line,
                resets_at=parse_reset_time(line),
            )

        line = _first_match(lines, self.near_patterns)
        if line is not None:
            return Classification(near_limit=True, matched_line=line)

        return HEALTHY


def _first_match(lines: list[str], patterns: list[re.Pattern[str]]) -> str | None:
    if not patterns:
        return None
    for line in lines:
        if any(p.search(line) for p in patterns):
            return line
    return None
