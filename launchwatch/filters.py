"""Duplicate, general-filter and watch-list classification for one launch."""

from __future__ import annotations

from typing import Optional, Protocol

from launchwatch.models import (
    Actor,
    Decision,
    FilterConfig,
    NormalizedItem,
    Verdict,
    WatchSets,
)


class SeenView(Protocol):
    def contains(self, key: str) -> bool: ...

    def add(self, key: str) -> None: ...


class DeployCountView(Protocol):
    def count_for(self, actor_address: str | None) -> int: ...

    def record_attribution(self, actor_address: str | None, item_id: str) -> None: ...


def _actors(item: NormalizedItem) -> tuple[Actor, ...]:
    if item.secondary is None:
        return (item.primary,)
    return (item.primary, item.secondary)


def shares_identity(primary: Actor, secondary: Optional[Actor]) -> bool:
    """True when deployer and fee recipient carry the same X or Farcaster handle."""
    if secondary is None:
        return False
    if primary.x_handle and secondary.x_handle:
        if primary.x_handle == secondary.x_handle:
            return True
    if primary.fc_handle and secondary.fc_handle:
        if primary.fc_handle == secondary.fc_handle:
            return True
    return False


def matches_watchlist(item: NormalizedItem, watch: WatchSets) -> bool:
    if watch.is_empty:
        return False
    for actor in _actors(item):
        if actor.x_handle and actor.x_handle.lower() in watch.x:
            return True
        if actor.fc_handle and actor.fc_handle.lower() in watch.fc:
            return True
        if actor.address and actor.address.lower() in watch.wallet:
            return True
    if watch.keyword:
        text = item.free_text.lower()
        return any(keyword in text for keyword in watch.keyword)
    return False


def passes_general_filter(
    item: NormalizedItem, counts: DeployCountView, config: FilterConfig
) -> bool:
    if config.require_shared_identity and not shares_identity(
        item.primary, item.secondary
    ):
        return False
    if config.max_items_per_actor is not None and item.primary.address:
        if counts.count_for(item.primary.address) > config.max_items_per_actor:
            return False
    return True


def evaluate(
    item: NormalizedItem,
    seen: SeenView,
    counts: DeployCountView,
    watch: WatchSets,
    config: FilterConfig,
) -> Decision:
    """Classify one item without touching any state."""
    if seen.contains(item.seen_key):
        return Decision(Verdict.DUPLICATE)
    is_watch_match = matches_watchlist(item, watch)
    general = passes_general_filter(item, counts, config)
    if not (is_watch_match or general):
        return Decision(Verdict.SUPPRESSED)
    return Decision(
        Verdict.DELIVERED,
        passes_general_filter=general,
        is_watch_match=is_watch_match,
    )


def process_item(
    item: NormalizedItem,
    seen: SeenView,
    counts: DeployCountView,
    watch: WatchSets,
    config: FilterConfig,
) -> Decision:
    """Attribute and classify an item, then mark it seen unless duplicate.

    Attribution happens before the max-per-actor check so the count includes
    the item itself. Suppressed items are marked seen too, so they are not
    re-evaluated on the next poll.
    """
    if seen.contains(item.seen_key):
        return Decision(Verdict.DUPLICATE)
    counts.record_attribution(item.primary.address, item.item_id)
    decision = evaluate(item, seen, counts, watch, config)
    seen.add(item.seen_key)
    return decision
