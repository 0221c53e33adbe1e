"""Fleet session access: prefix registry and tmux driver."""

from claude_quota.session.registry import PrefixRegistry
from claude_quota.session.tmux import TmuxClient, TmuxDriver


__all__ = [
    "PrefixRegistry",
    "TmuxClient",
    "TmuxDriver",
]
