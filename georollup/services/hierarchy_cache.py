"""Time-boxed cache of built aggregation trees.

One instance lives for the whole process (created in the app lifespan and
handed out through a dependency). Entries are replaced wholesale, never
patched, so readers always see a complete tree.

Rebuilds are not serialized: two requests that miss at the same time both
build and both `put`, and the later write wins.
"""

import time
from collections.abc import Callable
from typing import Any

from pydantic import BaseModel, ConfigDict

from georollup.core.logging_config import get_logger
from georollup.models.hierarchy import AggregationTree

logger = get_logger(__name__)

DEFAULT_TTL_SECONDS = 30.0


class CacheEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str
    tree: AggregationTree
    built_at: float


class HierarchyCache:
    """In-memory TTL cache keyed by dataset (e.g. "mobilisation", "election:<id>")."""

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    def _is_fresh(self, entry: CacheEntry) -> bool:
        return self._clock() - entry.built_at < self.ttl_seconds

    def get_entry(self, key: str) -> CacheEntry | None:
        """Return the live entry for a key, evicting it if it has expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if not self._is_fresh(entry):
            # Only evict the entry we looked at; a concurrent put may have replaced it
            if self._entries.get(key) is entry:
                self._entries.pop(key, None)
            logger.debug(f"Hierarchy cache entry expired: {key}")
            return None
        return entry

    def get(self, key: str) -> AggregationTree | None:
        entry = self.get_entry(key)
        return entry.tree if entry else None

    def put(self, key: str, tree: AggregationTree) -> CacheEntry:
        entry = CacheEntry(key=key, tree=tree, built_at=self._clock())
        self._entries[key] = entry
        return entry

    def invalidate(self, key: str | None = None) -> int:
        """Drop one entry, or every entry when no key is given. Returns how many went."""
        if key is None:
            removed = len(self._entries)
            self._entries.clear()
        else:
            removed = 1 if self._entries.pop(key, None) is not None else 0
        logger.info(f"Hierarchy cache invalidated: key={key or '*'} removed={removed}")
        return removed

    def stats(self) -> dict[str, Any]:
        now = self._clock()
        entries = [
            {
                "key": entry.key,
                "age_seconds": round(now - entry.built_at, 3),
                "fresh": self._is_fresh(entry),
                "states": len(entry.tree.states),
                "source_rows": entry.tree.source_rows,
                "dropped_rows": entry.tree.dropped_rows,
            }
            for entry in list(self._entries.values())
        ]
        return {"ttl_seconds": self.ttl_seconds, "entry_count": len(entries), "entries": entries}
