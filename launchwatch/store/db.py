"""Database models and helpers."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncGenerator

from sqlalchemy import BigInteger, Column, UniqueConstraint
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SeenItem(SQLModel, table=True):
    """One notified launch per scope; `id` order is insertion order."""

    __table_args__ = (UniqueConstraint("scope", "key", name="uq_seen_scope_key"),)

    id: int | None = Field(default=None, primary_key=True)
    scope: str = Field(index=True)
    key: str
    first_seen_at: datetime = Field(default_factory=utcnow)


class DeployAttribution(SQLModel, table=True):
    scope: str = Field(primary_key=True)
    actor: str = Field(primary_key=True)
    item_id: str = Field(primary_key=True)
    recorded_at: datetime = Field(default_factory=utcnow)


class WatchEntry(SQLModel, table=True):
    scope: str = Field(primary_key=True)
    axis: str = Field(primary_key=True)
    value: str = Field(primary_key=True)
    display: str
    created_at: datetime = Field(default_factory=utcnow)


class Tenant(SQLModel, table=True):
    """Per-chat configuration for the multi-tenant notify loop."""

    tenant_id: int = Field(sa_column=Column(BigInteger, primary_key=True))
    alert_chat_id: int | None = Field(default=None, sa_column=Column(BigInteger))
    watch_chat_id: int | None = Field(default=None, sa_column=Column(BigInteger))
    require_shared_identity: bool = Field(default=False)
    max_items_per_actor: int | None = Field(default=None)
    poll_interval_minutes: int | None = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def is_active(self) -> bool:
        return bool(self.alert_chat_id or self.watch_chat_id)


class Setting(SQLModel, table=True):
    key: str = Field(primary_key=True)
    value: str


class Database:
    """Lightweight async database wrapper."""

    def __init__(self, url: str) -> None:
        self.url = url
        self._engine: AsyncEngine | None = None
        self._session_maker: sessionmaker | None = None

    def connect(self) -> None:
        """Initialise engine and sessionmaker."""
        if self._engine:
            return

        url = make_url(self.url)
        if url.get_backend_name() == "sqlite":
            database = url.database
            if database and database != ":memory:":
                Path(database).expanduser().resolve().parent.mkdir(
                    parents=True, exist_ok=True
                )

        self._engine = create_async_engine(self.url, echo=False, future=True)
        self._session_maker = sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    async def init_models(self) -> None:
        """Create tables if they do not exist."""
        if not self._engine:
            raise RuntimeError("Database engine is not initialised")

        async with self._engine.begin() as conn:  # pragma: no cover - DDL
            await conn.run_sync(SQLModel.metadata.create_all)

    async def dispose(self) -> None:
        if self._engine:
            await self._engine.dispose()
            self._engine = None
            self._session_maker = None

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Return an async session context."""
        if not self._session_maker:
            raise RuntimeError("Database session maker is not initialised")

        async with self._session_maker() as session:
            yield session


__all__ = [
    "Database",
    "DeployAttribution",
    "SeenItem",
    "Setting",
    "Tenant",
    "WatchEntry",
    "utcnow",
]
