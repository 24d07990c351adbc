"""Deploy-count index: actor address -> launches attributed to it."""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Set, Tuple

from launchwatch.store.db import Database
from launchwatch.store.repository import Repository
from launchwatch.utils.logging import get_logger

logger = get_logger(__name__)


class DeployCountIndex:
    """In-memory view of the attributions for a batch's actors."""

    def __init__(self, attributions: Optional[Dict[str, Set[str]]] = None) -> None:
        self._by_actor: Dict[str, Set[str]] = {
            actor.lower(): {item.lower() for item in items}
            for actor, items in (attributions or {}).items()
        }
        self._pending: List[Tuple[str, str]] = []

    def record_attribution(self, actor_address: str | None, item_id: str) -> None:
        if not actor_address or not item_id:
            return
        actor = actor_address.strip().lower()
        item = item_id.strip().lower()
        items = self._by_actor.setdefault(actor, set())
        if item in items:
            return
        items.add(item)
        self._pending.append((actor, item))

    def count_for(self, actor_address: str | None) -> int:
        if not actor_address:
            return 0
        return len(self._by_actor.get(actor_address.strip().lower(), ()))

    @property
    def pending(self) -> List[Tuple[str, str]]:
        return list(self._pending)

    def mark_persisted(self) -> None:
        self._pending.clear()


class DeployCountStore:
    def __init__(self, db: Database) -> None:
        self.db = db

    async def load(self, scope: str, actors: Iterable[str]) -> DeployCountIndex:
        """Load counts for the given actors; read failures degrade to zero counts."""
        try:
            async with self.db.session() as session:
                attributions = await Repository(session).load_attributions(
                    scope, actors
                )
        except Exception as exc:
            logger.warning("deploy_counts_load_failed", scope=scope, error=str(exc))
            return DeployCountIndex()
        return DeployCountIndex(attributions)

    async def persist(self, scope: str, index: DeployCountIndex) -> bool:
        pairs = index.pending
        if not pairs:
            return True
        try:
            async with self.db.session() as session:
                await Repository(session).save_attributions(scope, pairs)
        except Exception as exc:
            logger.error(
                "deploy_counts_persist_failed",
                scope=scope,
                pairs=len(pairs),
                error=str(exc),
            )
            return False
        index.mark_persisted()
        return True
