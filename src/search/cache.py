"""In-process TTL cache for search results."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from src.constants import SEARCH_CACHE_TTL_SECONDS
from src.utils.logging import get_logger

logger = get_logger("search_cache")


@dataclass
class SearchCacheEntry:
    content: str
    sources: list[str] = field(default_factory=list)
    tokens_used: int = 0
    inserted_at: float = 0.0


def cache_key(query: str, focus_sites: list[str] | None = None) -> str:
    """Normalize a query and its site set into a cache key."""
    sites = ",".join(sorted(focus_sites)) if focus_sites else "default"
    return f"{query.lower().strip()}-{sites}"


class SearchCache:
    """
    Search results keyed by normalized query, expired after a fixed TTL.

    An entry inserted at T is served up to and including T + ttl and never
    after. Expired entries are dropped when looked up or on clean(); callers
    sweep once is_clean_due() reports a full TTL since the last clean.
    """

    def __init__(
        self,
        ttl_seconds: float = SEARCH_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, SearchCacheEntry] = {}
        self._last_clean = clock()

    def get(self, query: str, focus_sites: list[str] | None = None) -> SearchCacheEntry | None:
        key = cache_key(query, focus_sites)
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._is_expired(entry):
            del self._entries[key]
            logger.debug("search_cache_expired", key=key)
            return None
        return entry

    def put(
        self,
        query: str,
        content: str,
        sources: list[str],
        tokens_used: int,
        focus_sites: list[str] | None = None,
    ) -> SearchCacheEntry:
        entry = SearchCacheEntry(
            content=content,
            sources=list(sources),
            tokens_used=tokens_used,
            inserted_at=self._clock(),
        )
        self._entries[cache_key(query, focus_sites)] = entry
        return entry

    def clean(self) -> int:
        """Purge every expired entry. Returns how many were removed."""
        expired = [k for k, e in self._entries.items() if self._is_expired(e)]
        for key in expired:
            del self._entries[key]
        self._last_clean = self._clock()
        if expired:
            logger.info("search_cache_cleaned", removed=len(expired), remaining=len(self._entries))
        return len(expired)

    def is_clean_due(self) -> bool:
        """True once a full TTL has passed since the last sweep."""
        return self._clock() - self._last_clean >= self.ttl_seconds

    def stats(self) -> dict[str, Any]:
        return {"size": len(self._entries), "keys": list(self._entries)}

    def __len__(self) -> int:
        return len(self._entries)

    def _is_expired(self, entry: SearchCacheEntry) -> bool:
        return self._clock() - entry.inserted_at > self.ttl_seconds
