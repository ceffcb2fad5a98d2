"""
Time-boxed memoization of catalogue queries.

Repeated searches with the same filters, page and page size skip the
data gateway entirely. Entries expire after a short TTL (catalogue
data is near real time) and the cache holds at most ``max_entries``
keys; past that the entry that was set longest ago is evicted. Expiry
is checked lazily on ``get``, there is no background timer.

Only raw, user-independent snapshots are stored here. Links depend on
the caller and are generated again on every request.
"""

from __future__ import annotations

import hashlib
import json
import logging
import time
from collections import OrderedDict
from typing import Any, Callable, Dict, Optional, Tuple

from .schemas import FilterState


logger = logging.getLogger(__name__)

KEY_PREFIX = "catalog:query:"


def make_key(filters: Optional[FilterState], page: int, page_size: int) -> str:
    """Derive the cache key for one query.

    Every filter field is serialised, absent ones as ``null``, so an
    absent facet and a facet set to ``"any"`` give different keys.
    """
    payload = {
        "filters": (filters or FilterState()).model_dump(mode="json", by_alias=False),
        "page": int(page),
        "page_size": int(page_size),
    }
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return KEY_PREFIX + hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class QueryCache:
    """Bounded in-memory cache with per-entry TTL.

    Parameters
    ----------
    max_entries : int
        Upper bound on the number of stored keys.
    default_ttl : float
        Lifetime in seconds used when ``set`` is called without ``ttl``.
    clock : Callable[[], float]
        Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        max_entries: int = 256,
        default_ttl: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        if default_ttl <= 0:
            raise ValueError("default_ttl must be positive")
        self.max_entries = max_entries
        self.default_ttl = default_ttl
        self._clock = clock
        # key -> (expires_at, value), oldest set first
        self._entries: "OrderedDict[str, Tuple[float, Any]]" = OrderedDict()
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None
        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            self.misses += 1
            logger.debug("Cache entry %s expired", key)
            return None
        self.hits += 1
        return value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        lifetime = self.default_ttl if ttl is None else ttl
        if lifetime <= 0:
            return
        self._entries.pop(key, None)
        self._entries[key] = (self._clock() + lifetime, value)
        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            self.evictions += 1
            logger.debug("Evicted cache entry %s", evicted)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        entry = self._entries.get(key)  # type: ignore[arg-type]
        return entry is not None and self._clock() < entry[0]

    def stats(self) -> Dict[str, int]:
        return {
            "size": len(self._entries),
            "max_entries": self.max_entries,
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
        }
