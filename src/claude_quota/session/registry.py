"""Registry of fleet session-name prefixes.

Fleet sessions are named ``<prefix>-<rest>``. The registry is passed to the
scanner explicitly so each scan can run against its own prefix set.
"""

from collections.abc import Mapping


# Fleet session-name prefixes registered by default (prefix -> rig name)
DEFAULT_SESSION_PREFIXES: dict[str, str] = {
    "gt": "gastown",
    "bd": "beads",
}

# Town-level services always belong to the fleet
TOWN_SESSION_PREFIX = "hq"


class PrefixRegistry:
    """Maps session-name prefixes to the rig that owns them."""

    def __init__(self, prefixes: Mapping[str, str] | None = None) -> None:
        self._prefixes: dict[str, str] = {}
        for prefix, rig in (prefixes or {}).items():
            self.register(prefix, rig)

    @classmethod
    def default(cls) -> "PrefixRegistry":
        """Registry pre-populated with the built-in rig prefixes."""
        return cls(DEFAULT_SESSION_PREFIXES)

    def register(self, prefix: str, rig: str) -> None:
        prefix = prefix.strip().rstrip("-")
        if not prefix:
            raise ValueError("Session prefix must not be empty")
        self._prefixes[prefix] = rig

    def rig_for(self, session: str) -> str | None:
        """Return the rig owning session, or None for unknown sessions."""
        prefix, sep, rest = session.partition("-")
        if not sep or not rest:
            return None
        if prefix == TOWN_SESSION_PREFIX:
            return TOWN_SESSION_PREFIX
        return self._prefixes.get(prefix)

    def is_known_session(self, session: str) -> bool:
        return self.rig_for(session) is not None

    def __len__(self) -> int:
        return len(self._prefixes)

    def __contains__(self, prefix: object) -> bool:
        return prefix in self._prefixes
