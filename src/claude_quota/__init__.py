"""Claude Quota - rate-limit detection and shared memory for pooled accounts."""

from ._version import __version__


__all__ = ["__version__"]
