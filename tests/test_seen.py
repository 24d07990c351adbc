import pytest

from launchwatch.store.db import Database
from launchwatch.store.repository import Repository
from launchwatch.store.seen import SeenSet, SeenSetStore


def test_eviction_drops_oldest_first() -> None:
    seen = SeenSet()
    for key in ("8453:a", "8453:b", "8453:c"):
        seen.add(key)

    evicted = seen.evict_oldest_if_over_capacity(2)

    assert evicted == ["8453:a"]
    assert list(seen) == ["8453:b", "8453:c"]
    # "a" was never persisted, so it is neither written nor deleted.
    assert seen.pending_additions == ["8453:b", "8453:c"]
    assert seen.pending_evictions == []


def test_zero_capacity_is_unbounded() -> None:
    seen = SeenSet(["1:a", "1:b", "1:c"])

    assert seen.evict_oldest_if_over_capacity(0) == []
    assert len(seen) == 3


def test_add_is_idempotent_and_case_insensitive() -> None:
    seen = SeenSet()
    seen.add("8453:0xABC")
    seen.add("8453:0xabc")

    assert len(seen) == 1
    assert seen.contains("8453:0xAbC")
    assert seen.pending_additions == ["8453:0xabc"]


def test_evicting_loaded_keys_marks_them_for_deletion() -> None:
    seen = SeenSet(["1:old"])
    seen.add("1:new")

    seen.evict_oldest_if_over_capacity(1)

    assert seen.pending_evictions == ["1:old"]
    assert seen.pending_additions == ["1:new"]


@pytest.mark.asyncio
async def test_store_round_trip_preserves_order(tmp_path) -> None:
    db_path = tmp_path / "seen.db"
    db = Database(f"sqlite+aiosqlite:///{db_path}")
    db.connect()
    await db.init_models()

    store = SeenSetStore(db)
    seen = await store.load("global")
    for key in ("8453:a", "8453:b", "8453:c"):
        seen.add(key)
    seen.evict_oldest_if_over_capacity(2)
    assert await store.persist("global", seen) is True
    assert seen.pending_additions == []

    reloaded = await store.load("global")
    assert list(reloaded) == ["8453:b", "8453:c"]

    other = await store.load("tenant:1")
    assert len(other) == 0

    await db.dispose()


@pytest.mark.asyncio
async def test_store_persists_evictions_of_loaded_keys(tmp_path) -> None:
    db_path = tmp_path / "seen_evict.db"
    db = Database(f"sqlite+aiosqlite:///{db_path}")
    db.connect()
    await db.init_models()

    store = SeenSetStore(db)
    seen = await store.load("global")
    seen.add("1:a")
    seen.add("1:b")
    await store.persist("global", seen)

    seen = await store.load("global")
    seen.add("1:c")
    seen.evict_oldest_if_over_capacity(2)
    await store.persist("global", seen)

    async with db.session() as session:
        repo = Repository(session)
        assert await repo.load_seen_keys("global") == ["1:b", "1:c"]
        assert await repo.count_seen("global") == 2

    await db.dispose()


@pytest.mark.asyncio
async def test_load_failure_degrades_to_empty_set(tmp_path) -> None:
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'missing.db'}")
    # Never connected: every session() call raises.
    store = SeenSetStore(db)

    seen = await store.load("global")

    assert len(seen) == 0


@pytest.mark.asyncio
async def test_persist_failure_returns_false_and_keeps_pending(tmp_path) -> None:
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'missing.db'}")
    store = SeenSetStore(db)
    seen = SeenSet()
    seen.add("1:a")

    assert await store.persist("global", seen) is False
    assert seen.pending_additions == ["1:a"]
