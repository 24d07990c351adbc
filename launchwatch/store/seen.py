"""Ordered seen-set with FIFO eviction, plus its load/persist wrapper."""

from __future__ import annotations

from typing import Dict, Iterable, Iterator, List

from launchwatch.store.db import Database
from launchwatch.store.repository import Repository
from launchwatch.utils.logging import get_logger

logger = get_logger(__name__)


class SeenSet:
    """Insertion-ordered set of `network:item_id` keys.

    Tracks which keys were added since load and which were evicted so the
    store only writes the difference.
    """

    def __init__(self, keys: Iterable[str] = ()) -> None:
        self._keys: Dict[str, None] = dict.fromkeys(keys)
        self._added: List[str] = []
        self._evicted: List[str] = []

    def __contains__(self, key: str) -> bool:
        return self.contains(key)

    def __len__(self) -> int:
        return len(self._keys)

    def __iter__(self) -> Iterator[str]:
        return iter(self._keys)

    def contains(self, key: str) -> bool:
        return key.lower() in self._keys

    def add(self, key: str) -> None:
        key = key.lower()
        if key in self._keys:
            return
        self._keys[key] = None
        self._added.append(key)

    def evict_oldest_if_over_capacity(self, max_size: int | None) -> List[str]:
        """Drop oldest keys until size == max_size. Falsy max_size means unbounded."""
        if not max_size or len(self._keys) <= max_size:
            return []
        overflow = len(self._keys) - max_size
        evicted = [key for key, _ in zip(self._keys, range(overflow))]
        for key in evicted:
            del self._keys[key]
        added = set(self._added)
        for key in evicted:
            if key in added:
                # Added and evicted in the same cycle: never persisted.
                self._added.remove(key)
            else:
                self._evicted.append(key)
        return evicted

    @property
    def pending_additions(self) -> List[str]:
        return list(self._added)

    @property
    def pending_evictions(self) -> List[str]:
        return list(self._evicted)

    def mark_persisted(self) -> None:
        self._added.clear()
        self._evicted.clear()


class SeenSetStore:
    """Durable seen-sets partitioned by scope."""

    def __init__(self, db: Database) -> None:
        self.db = db

    async def load(self, scope: str) -> SeenSet:
        """Load a scope's seen-set; read failures degrade to an empty set."""
        try:
            async with self.db.session() as session:
                keys = await Repository(session).load_seen_keys(scope)
        except Exception as exc:
            logger.warning("seen_set_load_failed", scope=scope, error=str(exc))
            return SeenSet()
        return SeenSet(keys)

    async def persist(self, scope: str, seen: SeenSet, max_size: int = 0) -> bool:
        """Write pending additions/evictions. Failures are logged, not raised.

        A positive `max_size` also caps the stored rows, which matters when the
        in-memory set started from a degraded load.
        """
        added = seen.pending_additions
        evicted = seen.pending_evictions
        if not added and not evicted:
            return True
        try:
            async with self.db.session() as session:
                await Repository(session).save_seen(
                    scope, added, evicted, max_size=max_size
                )
        except Exception as exc:
            logger.error(
                "seen_set_persist_failed",
                scope=scope,
                added=len(added),
                evicted=len(evicted),
                error=str(exc),
            )
            return False
        seen.mark_persisted()
        return True
