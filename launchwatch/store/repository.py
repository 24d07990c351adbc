"""High-level database operations."""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from sqlalchemy import delete, func, select

from .db import DeployAttribution, SeenItem, Setting, Tenant, WatchEntry, utcnow

# SQLite caps bound parameters per statement; stay well below it.
_IN_CLAUSE_CHUNK = 500


def _chunks(
    values: Sequence[str], size: int = _IN_CLAUSE_CHUNK
) -> Iterable[Sequence[str]]:
    for start in range(0, len(values), size):
        yield values[start : start + size]


class Repository:
    """CRUD utilities wrapping SQLModel sessions."""

    def __init__(self, session) -> None:
        self.session = session

    # Seen-set

    async def load_seen_keys(self, scope: str) -> List[str]:
        """Return the scope's seen keys, oldest first."""
        result = await self.session.execute(
            select(SeenItem.key).where(SeenItem.scope == scope).order_by(SeenItem.id)
        )
        return list(result.scalars().all())

    async def save_seen(
        self,
        scope: str,
        added: Sequence[str],
        evicted: Sequence[str] = (),
        max_size: int = 0,
    ) -> None:
        """Append newly seen keys in order, then drop evicted ones.

        Keys already stored are skipped, so a cycle that started from a
        degraded (empty) load still writes its genuinely new keys. A positive
        `max_size` then trims the scope's oldest rows down to that size.
        """
        present: Set[str] = set()
        for chunk in _chunks(list(added)):
            result = await self.session.execute(
                select(SeenItem.key).where(
                    SeenItem.scope == scope, SeenItem.key.in_(chunk)
                )
            )
            present.update(result.scalars().all())
        for key in added:
            if key in present:
                continue
            present.add(key)
            self.session.add(SeenItem(scope=scope, key=key))
        for chunk in _chunks(list(evicted)):
            await self.session.execute(
                delete(SeenItem).where(SeenItem.scope == scope, SeenItem.key.in_(chunk))
            )
        if max_size > 0:
            await self.session.flush()
            overflow = await self.count_seen(scope) - max_size
            if overflow > 0:
                oldest = (
                    select(SeenItem.id)
                    .where(SeenItem.scope == scope)
                    .order_by(SeenItem.id)
                    .limit(overflow)
                )
                await self.session.execute(
                    delete(SeenItem).where(SeenItem.id.in_(oldest))
                )
        await self.session.commit()

    async def count_seen(self, scope: str) -> int:
        result = await self.session.execute(
            select(func.count()).select_from(SeenItem).where(SeenItem.scope == scope)
        )
        return int(result.scalar_one())

    # Deploy attribution

    async def load_attributions(
        self, scope: str, actors: Iterable[str]
    ) -> Dict[str, Set[str]]:
        """Return actor -> item ids for the requested actors only."""
        wanted = sorted({actor.lower() for actor in actors if actor})
        out: Dict[str, Set[str]] = {}
        for chunk in _chunks(wanted):
            result = await self.session.execute(
                select(DeployAttribution.actor, DeployAttribution.item_id).where(
                    DeployAttribution.scope == scope,
                    DeployAttribution.actor.in_(chunk),
                )
            )
            for actor, item_id in result.all():
                out.setdefault(actor, set()).add(item_id)
        return out

    async def save_attributions(
        self, scope: str, pairs: Iterable[Tuple[str, str]]
    ) -> None:
        for actor, item_id in pairs:
            await self.session.merge(
                DeployAttribution(scope=scope, actor=actor, item_id=item_id)
            )
        await self.session.commit()

    # Watch entries

    async def get_watch_entry(
        self, scope: str, axis: str, value: str
    ) -> Optional[WatchEntry]:
        return await self.session.get(WatchEntry, (scope, axis, value))

    async def add_watch_entry(
        self, scope: str, axis: str, value: str, display: str
    ) -> WatchEntry:
        existing = await self.get_watch_entry(scope, axis, value)
        if existing:
            return existing
        entry = WatchEntry(scope=scope, axis=axis, value=value, display=display)
        self.session.add(entry)
        await self.session.commit()
        return entry

    async def remove_watch_entry(self, scope: str, axis: str, value: str) -> bool:
        result = await self.session.execute(
            delete(WatchEntry).where(
                WatchEntry.scope == scope,
                WatchEntry.axis == axis,
                WatchEntry.value == value,
            )
        )
        await self.session.commit()
        return bool(result.rowcount)

    async def list_watch_entries(self, scope: str) -> List[WatchEntry]:
        result = await self.session.execute(
            select(WatchEntry).where(WatchEntry.scope == scope)
        )
        return list(result.scalars().all())

    # Tenants

    async def get_tenant(self, tenant_id: int) -> Optional[Tenant]:
        return await self.session.get(Tenant, tenant_id)

    async def upsert_tenant(self, tenant_id: int, **updates) -> Tenant:
        """Create or update a tenant row; unknown fields raise AttributeError."""
        tenant = await self.get_tenant(tenant_id)
        now = utcnow()
        if tenant is None:
            tenant = Tenant(tenant_id=tenant_id, created_at=now)
            self.session.add(tenant)
        for name, value in updates.items():
            if not hasattr(tenant, name) or name in {"tenant_id", "created_at"}:
                raise AttributeError(f"Unknown tenant field: {name}")
            setattr(tenant, name, value)
        tenant.updated_at = now
        await self.session.commit()
        await self.session.refresh(tenant)
        return tenant

    async def list_active_tenants(self) -> List[Tenant]:
        """Tenants with at least one delivery chat configured."""
        result = await self.session.execute(
            select(Tenant).where(
                (Tenant.alert_chat_id.is_not(None)) | (Tenant.watch_chat_id.is_not(None))
            )
        )
        return list(result.scalars().all())

    # Settings

    async def get_setting(self, key: str) -> Optional[str]:
        setting = await self.session.get(Setting, key)
        return setting.value if setting else None

    async def set_setting(self, key: str, value: str) -> None:
        await self.session.merge(Setting(key=key, value=value))
        await self.session.commit()
