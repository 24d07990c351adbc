import pytest

from launchwatch.chain_client import ChainScanner, block_ranges, ipfs_to_http
from launchwatch.jobs.notify import NotifyCycle
from launchwatch.models import GLOBAL_SCOPE, FilterConfig
from launchwatch.sources import ItemSource
from launchwatch.store.db import Database
from launchwatch.store.deploys import DeployCountStore
from launchwatch.store.repository import Repository
from launchwatch.store.seen import SeenSetStore
from launchwatch.utils.http import UpstreamError
from launchwatch.watchlist import WatchRegistry

AIRLOCK = "0x660eaaedebc968f8f3694354fa8ec0b4c5ba8d12"
POOL = "0x1111111111111111111111111111111111111111"
TOKEN_A = "0x00000000000000000000000000000000000000aa"
TOKEN_B = "0x00000000000000000000000000000000000000bb"


class DummyEth:
    def __init__(self, head: int, fail: bool = False) -> None:
        self.head = head
        self.fail = fail
        self.log_requests = []

    @property
    async def block_number(self) -> int:
        if self.fail:
            raise ConnectionError("rpc down")
        return self.head

    async def get_logs(self, params):
        self.log_requests.append((params["fromBlock"], params["toBlock"]))
        return []

    def contract(self, address, abi):
        return object()


class DummyWeb3:
    def __init__(self, eth: DummyEth) -> None:
        self.eth = eth


class ScannerWithoutEvents(ChainScanner):
    async def _create_logs(self, start, end):
        self.scanned = (start, end)
        return []


class LoggedScanner(ChainScanner):
    """Serves canned Create logs; tokens listed in `broken` have unreadable metadata."""

    def __init__(self, *args, logs=(), broken=(), **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.logs = list(logs)
        self.broken = set(broken)
        self.scanned = []

    async def _create_logs(self, start, end):
        self.scanned.append((start, end))
        return [log for log in self.logs if start <= log["blockNumber"] <= end]

    async def _token_metadata(self, token):
        if token in self.broken:
            return None
        return {"name": "Launch", "symbol": "LNCH", "token_uri": None}


def create_log(token: str, block: int) -> dict:
    return {
        "args": {"asset": token, "poolOrHook": POOL},
        "blockNumber": block,
        "transactionHash": bytes([block % 256]) * 32,
    }


async def make_db(tmp_path, name: str) -> Database:
    db = Database(f"sqlite+aiosqlite:///{tmp_path / name}")
    db.connect()
    await db.init_models()
    return db


def make_scanner(cls, db, eth, **kwargs):
    return cls(
        rpc_url="http://localhost:8545",
        airlock_address=AIRLOCK,
        db=db,
        chain_id=8453,
        blocks_back=100,
        w3=DummyWeb3(eth),
        **kwargs,
    )


async def stored_cursor(db, scope: str):
    async with db.session() as session:
        return await Repository(session).get_setting(f"chain_cursor:8453:{scope}")


def test_block_ranges_chunks_inclusive() -> None:
    assert block_ranges(1, 25, 10) == [(1, 10), (11, 20), (21, 25)]
    assert block_ranges(5, 5, 10) == [(5, 5)]
    assert block_ranges(6, 5, 10) == []
    assert block_ranges(1, 3, 0) == [(1, 1), (2, 2), (3, 3)]


def test_ipfs_to_http() -> None:
    assert ipfs_to_http("ipfs://Qm1") == "https://ipfs.io/ipfs/Qm1"
    assert ipfs_to_http("https://example.com/a.json") == "https://example.com/a.json"


@pytest.mark.asyncio
async def test_scanner_wraps_rpc_errors(tmp_path) -> None:
    db_path = tmp_path / "chain_fail.db"
    db = Database(f"sqlite+aiosqlite:///{db_path}")
    db.connect()
    await db.init_models()

    scanner = ChainScanner(
        rpc_url="http://localhost:8545",
        airlock_address=AIRLOCK,
        db=db,
        chain_id=8453,
        w3=DummyWeb3(DummyEth(head=0, fail=True)),
    )

    with pytest.raises(UpstreamError):
        await scanner.fetch_new_launches()

    await db.dispose()


@pytest.mark.asyncio
async def test_scanner_resumes_from_committed_cursor(tmp_path) -> None:
    db = await make_db(tmp_path, "chain.db")
    eth = DummyEth(head=1000)
    scanner = make_scanner(ScannerWithoutEvents, db, eth)

    assert await scanner.fetch_new_launches("global") == []
    assert scanner.scanned == (900, 1000)
    assert await scanner.commit_cursor("global") is True

    eth.head = 1010
    await scanner.fetch_new_launches("global")
    assert scanner.scanned == (1001, 1010)
    await scanner.commit_cursor("global")
    assert await stored_cursor(db, "global") == "1010"

    scanner.scanned = None
    assert await scanner.fetch_new_launches("global") == []
    assert scanner.scanned is None

    await db.dispose()


@pytest.mark.asyncio
async def test_uncommitted_scan_is_repeated(tmp_path) -> None:
    db = await make_db(tmp_path, "chain_retry.db")
    scanner = make_scanner(ScannerWithoutEvents, db, DummyEth(head=1000))

    await scanner.fetch_new_launches("global")
    await scanner.fetch_new_launches("global")

    assert scanner.scanned == (900, 1000)
    assert await stored_cursor(db, "global") is None

    await db.dispose()


@pytest.mark.asyncio
async def test_cursors_are_kept_per_scope(tmp_path) -> None:
    db = await make_db(tmp_path, "chain_scopes.db")
    eth = DummyEth(head=1000)
    scanner = make_scanner(ScannerWithoutEvents, db, eth)

    await scanner.fetch_new_launches("global")
    await scanner.commit_cursor("global")

    eth.head = 1050
    await scanner.fetch_new_launches("tenant:1")
    assert scanner.scanned == (950, 1050)
    await scanner.commit_cursor("tenant:1")

    assert await stored_cursor(db, "global") == "1000"
    assert await stored_cursor(db, "tenant:1") == "1050"

    await db.dispose()


@pytest.mark.asyncio
async def test_scan_after_long_outage_stays_within_blocks_back(tmp_path) -> None:
    db = await make_db(tmp_path, "chain_outage.db")
    async with db.session() as session:
        await Repository(session).set_setting("chain_cursor:8453:global", "10")
    scanner = make_scanner(ScannerWithoutEvents, db, DummyEth(head=100_000))

    await scanner.fetch_new_launches("global")

    assert scanner.scanned == (99_900, 100_000)

    await db.dispose()


@pytest.mark.asyncio
async def test_cursor_stops_before_launch_with_unreadable_metadata(tmp_path) -> None:
    db = await make_db(tmp_path, "chain_metadata.db")
    eth = DummyEth(head=1000)
    scanner = make_scanner(
        LoggedScanner,
        db,
        eth,
        logs=[create_log(TOKEN_A, 950), create_log(TOKEN_B, 960)],
        broken={TOKEN_A},
    )

    launches = await scanner.fetch_new_launches("global")
    assert [launch.token_address for launch in launches] == [TOKEN_B]
    await scanner.commit_cursor("global")
    assert await stored_cursor(db, "global") == "949"

    scanner.broken.clear()
    eth.head = 1005
    launches = await scanner.fetch_new_launches("global")

    assert scanner.scanned[-1] == (950, 1005)
    assert [launch.token_address for launch in launches] == [TOKEN_B, TOKEN_A]

    await db.dispose()


@pytest.mark.asyncio
async def test_each_scope_receives_chain_launches(tmp_path) -> None:
    db = await make_db(tmp_path, "chain_cycle.db")
    scanner = make_scanner(
        LoggedScanner, db, DummyEth(head=1000), logs=[create_log(TOKEN_A, 950)]
    )
    cycle = NotifyCycle(
        source=ItemSource(chain=scanner),
        seen_store=SeenSetStore(db),
        deploy_store=DeployCountStore(db),
        registry=WatchRegistry(db),
        network=8453,
    )

    global_results = await cycle.run(GLOBAL_SCOPE, FilterConfig())
    tenant_results = await cycle.run("tenant:1", FilterConfig())

    assert [r.item.item_id for r in global_results] == [TOKEN_A]
    assert [r.item.item_id for r in tenant_results] == [TOKEN_A]
    assert await stored_cursor(db, GLOBAL_SCOPE) == "1000"
    assert await stored_cursor(db, "tenant:1") == "1000"

    await db.dispose()


@pytest.mark.asyncio
async def test_failed_persist_leaves_cursor_in_place(tmp_path) -> None:
    db = await make_db(tmp_path, "chain_persist.db")
    broken = Database(f"sqlite+aiosqlite:///{tmp_path / 'never_connected.db'}")
    scanner = make_scanner(
        LoggedScanner, db, DummyEth(head=1000), logs=[create_log(TOKEN_A, 950)]
    )
    cycle = NotifyCycle(
        source=ItemSource(chain=scanner),
        seen_store=SeenSetStore(broken),
        deploy_store=DeployCountStore(db),
        registry=WatchRegistry(db),
        network=8453,
    )

    first = await cycle.run(GLOBAL_SCOPE, FilterConfig())
    second = await cycle.run(GLOBAL_SCOPE, FilterConfig())

    assert len(first) == len(second) == 1
    assert await stored_cursor(db, GLOBAL_SCOPE) is None

    await db.dispose()
