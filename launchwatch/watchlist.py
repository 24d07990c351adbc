"""Watch registry: X, Farcaster, wallet and keyword criteria per scope."""

from __future__ import annotations

from typing import Optional, Tuple

from launchwatch.models import (
    WatchAxis,
    WatchListView,
    WatchSets,
    normalize_address,
    normalize_fc_handle,
    normalize_x_handle,
)
from launchwatch.store.db import Database
from launchwatch.store.repository import Repository
from launchwatch.utils.logging import get_logger

logger = get_logger(__name__)


def normalize_watch_value(axis: WatchAxis, value: str) -> Optional[Tuple[str, str]]:
    """Return (comparison value, display value), or None when the value is rejected."""
    if not isinstance(value, str):
        return None
    if axis is WatchAxis.X:
        handle = normalize_x_handle(value)
        return (handle, handle) if handle else None
    if axis is WatchAxis.FARCASTER:
        handle = normalize_fc_handle(value)
        return (handle, handle) if handle else None
    if axis is WatchAxis.WALLET:
        address = normalize_address(value)
        return (address, address) if address else None
    keyword = value.strip()
    return (keyword.lower(), keyword) if keyword else None


class WatchRegistry:
    """Scoped watch lists with environment defaults layered on top.

    Scope is ``"global"`` or ``"tenant:<chat id>"``. Defaults are additive: they
    are part of every scope's effective set and cannot be removed per scope.
    """

    def __init__(self, db: Database, defaults: WatchSets | None = None) -> None:
        self.db = db
        self.defaults = defaults or WatchSets()

    async def add(self, scope: str, axis: WatchAxis | str, value: str) -> bool:
        axis = WatchAxis.parse(axis)
        normalized = normalize_watch_value(axis, value)
        if normalized is None:
            logger.info("watch_entry_rejected", scope=scope, axis=axis.value)
            return False
        comparable, display = normalized
        async with self.db.session() as session:
            await Repository(session).add_watch_entry(
                scope, axis.value, comparable, display
            )
        logger.info("watch_entry_added", scope=scope, axis=axis.value)
        return True

    async def remove(self, scope: str, axis: WatchAxis | str, value: str) -> bool:
        axis = WatchAxis.parse(axis)
        normalized = normalize_watch_value(axis, value)
        if normalized is None:
            return False
        async with self.db.session() as session:
            removed = await Repository(session).remove_watch_entry(
                scope, axis.value, normalized[0]
            )
        if removed:
            logger.info("watch_entry_removed", scope=scope, axis=axis.value)
        return removed

    async def list(self, scope: str) -> WatchListView:
        """Stored entries for display; keywords keep their original casing."""
        async with self.db.session() as session:
            entries = await Repository(session).list_watch_entries(scope)
        view = WatchListView()
        for entry in entries:
            getattr(view, WatchAxis(entry.axis).value).append(entry.display)
        view.x.sort()
        view.fc.sort()
        view.wallet.sort()
        view.keyword.sort(key=str.lower)
        return view

    async def snapshot(self, scope: str) -> WatchSets:
        """Effective sets for filtering. Read failures fall back to defaults."""
        try:
            async with self.db.session() as session:
                entries = await Repository(session).list_watch_entries(scope)
        except Exception as exc:
            logger.warning("watch_snapshot_failed", scope=scope, error=str(exc))
            return self.defaults
        buckets = {axis: set() for axis in WatchAxis}
        for entry in entries:
            try:
                buckets[WatchAxis(entry.axis)].add(entry.value)
            except ValueError:
                logger.warning("watch_entry_unknown_axis", scope=scope, axis=entry.axis)
        stored = WatchSets(
            x=frozenset(buckets[WatchAxis.X]),
            fc=frozenset(buckets[WatchAxis.FARCASTER]),
            wallet=frozenset(buckets[WatchAxis.WALLET]),
            keyword=frozenset(buckets[WatchAxis.KEYWORD]),
        )
        return self.defaults.union(stored)
