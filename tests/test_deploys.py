import pytest

from launchwatch.store.db import Database
from launchwatch.store.deploys import DeployCountIndex, DeployCountStore

ACTOR = "0xabcdefabcdefabcdefabcdefabcdefabcdefabcd"
OTHER = "0x2222222222222222222222222222222222222222"


def test_record_attribution_is_idempotent() -> None:
    index = DeployCountIndex()
    index.record_attribution(ACTOR, "0xToken1")
    index.record_attribution("0x" + ACTOR[2:].upper(), "0xtoken1")
    index.record_attribution(ACTOR, "0xToken2")

    assert index.count_for(ACTOR) == 2
    assert index.pending == [(ACTOR, "0xtoken1"), (ACTOR, "0xtoken2")]


def test_missing_actor_is_ignored() -> None:
    index = DeployCountIndex()
    index.record_attribution(None, "0xtoken")
    index.record_attribution("", "0xtoken")

    assert index.count_for(None) == 0
    assert index.pending == []


@pytest.mark.asyncio
async def test_store_loads_only_requested_actors(tmp_path) -> None:
    db_path = tmp_path / "deploys.db"
    db = Database(f"sqlite+aiosqlite:///{db_path}")
    db.connect()
    await db.init_models()

    store = DeployCountStore(db)
    index = await store.load("global", [ACTOR, OTHER])
    index.record_attribution(ACTOR, "0xa")
    index.record_attribution(ACTOR, "0xb")
    index.record_attribution(OTHER, "0xc")
    assert await store.persist("global", index) is True
    assert index.pending == []

    reloaded = await store.load("global", [ACTOR])
    assert reloaded.count_for(ACTOR) == 2
    assert reloaded.count_for(OTHER) == 0

    tenant = await store.load("tenant:5", [ACTOR])
    assert tenant.count_for(ACTOR) == 0

    shouted = "0x" + ACTOR[2:].upper()
    assert (await store.load("global", [shouted])).count_for(shouted) == 2

    await db.dispose()


@pytest.mark.asyncio
async def test_load_failure_degrades_to_zero_counts(tmp_path) -> None:
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'missing.db'}")
    store = DeployCountStore(db)

    index = await store.load("global", [ACTOR])

    assert index.count_for(ACTOR) == 0
