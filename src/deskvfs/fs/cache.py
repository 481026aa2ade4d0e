"""MetadataCache — per-transport listing and payload cache."""

from __future__ import annotations

import itertools
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from .paths import dirname, is_within, normalize_path

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class CacheEntry(Generic[T]):
    """Cached value with its version token and expiry deadline."""

    value: T
    version: int
    expires_at: float | None


class MetadataCache:
    """Directory listing and payload cache keyed by virtual path.

    Entries expire lazily on lookup.  ``ttl=None`` keeps entries until
    invalidated; ``ttl=0`` disables caching.  Each stored entry receives
    a monotonically increasing version token.
    """

    def __init__(self, ttl: float | None = 30.0, clock: Callable[[], float] = time.monotonic) -> None:
        self._ttl = ttl
        self._clock = clock
        self._versions = itertools.count(1)
        self._listings: dict[str, CacheEntry[Any]] = {}
        self._payloads: dict[str, CacheEntry[Any]] = {}

    @property
    def enabled(self) -> bool:
        return self._ttl is None or self._ttl > 0

    def _store(self, table: dict[str, CacheEntry[Any]], path: str, value: Any) -> CacheEntry[Any] | None:
        if not self.enabled:
            return None
        expires_at = None if self._ttl is None else self._clock() + self._ttl
        entry = CacheEntry(value=value, version=next(self._versions), expires_at=expires_at)
        table[normalize_path(path)] = entry
        return entry

    def _lookup(self, table: dict[str, CacheEntry[Any]], path: str) -> CacheEntry[Any] | None:
        path = normalize_path(path)
        entry = table.get(path)
        if entry is None:
            logger.debug("Cache miss for %s", path)
            return None
        if entry.expires_at is not None and self._clock() >= entry.expires_at:
            del table[path]
            logger.debug("Cache entry expired for %s", path)
            return None
        logger.debug("Cache hit for %s (version %d)", path, entry.version)
        return entry

    # ------------------------------------------------------------------
    # Listings
    # ------------------------------------------------------------------

    def get_listing(self, path: str) -> CacheEntry[Any] | None:
        return self._lookup(self._listings, path)

    def put_listing(self, path: str, listing: Any) -> CacheEntry[Any] | None:
        return self._store(self._listings, path, listing)

    # ------------------------------------------------------------------
    # Payloads
    # ------------------------------------------------------------------

    def get_payload(self, path: str) -> CacheEntry[Any] | None:
        return self._lookup(self._payloads, path)

    def put_payload(self, path: str, payload: Any) -> CacheEntry[Any] | None:
        return self._store(self._payloads, path, payload)

    # ------------------------------------------------------------------
    # Invalidation
    # ------------------------------------------------------------------

    def invalidate(self, path: str) -> int:
        """Drop *path*, its parent listing and every descendant.

        Returns the number of entries removed.
        """
        path = normalize_path(path)
        parent = dirname(path)
        removed = 0
        for table in (self._listings, self._payloads):
            for key in list(table):
                if key == parent or is_within(key, path):
                    del table[key]
                    removed += 1
        return removed

    def clear(self) -> None:
        self._listings.clear()
        self._payloads.clear()

    def __len__(self) -> int:
        return len(self._listings) + len(self._payloads)
