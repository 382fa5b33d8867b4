"""
Protocol definitions for generic infrastructure services.

Available Protocols:
    CacheBackend: Cache operations interface (compatible with Django's cache)

Usage:
    from core.protocols import CacheBackend

    class IdempotencyTracker:
        def __init__(self, cache: CacheBackend | None = None):
            self.cache = cache if cache is not None else django_cache

Any object with matching get/set/delete methods satisfies the protocol,
which lets tests pass a local-memory cache or a MagicMock.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from typing import Any


@runtime_checkable
class CacheBackend(Protocol):
    """Protocol for key/value caches with per-key expiry."""

    def get(self, key: str, default: Any = None) -> Any:
        """Return the cached value or default."""
        ...

    def set(self, key: str, value: Any, timeout: int | None = None) -> None:
        """Store value under key; timeout is the TTL in seconds."""
        ...

    def delete(self, key: str) -> bool:
        """Delete key; True if it existed."""
        ...
