import pytest

from launchwatch.chain_client import ChainLaunch
from launchwatch.sources import (
    ItemSource,
    map_bankr_launch,
    map_chain_launch,
    map_indexer_token,
)
from launchwatch.utils.http import UpstreamError

TOKEN = "0x1234567890ABCDEF1234567890abcdef12345678"
DEPLOYER = "0xdeaddeaddeaddeaddeaddeaddeaddeaddeadbeef"
FEE_WALLET = "0xfeefeefeefeefeefeefeefeefeefeefeefeefee0"


def bankr_launch(token: str = TOKEN, **overrides) -> dict:
    launch = {
        "tokenAddress": token,
        "tokenName": "Moon Coin",
        "tokenSymbol": "MOON",
        "status": "deployed",
        "deployer": {"walletAddress": DEPLOYER, "xUsername": "@Alice"},
        "feeRecipient": {"walletAddress": FEE_WALLET, "farcaster": "Alice.eth"},
        "poolId": "0xpool",
        "imageUri": "ipfs://image",
        "tweetUrl": "https://x.com/alice/status/1",
    }
    launch.update(overrides)
    return launch


class DummyBankr:
    def __init__(self, launches=None, api_key: bool = True, error=None) -> None:
        self.launches = launches or []
        self.has_api_key = api_key
        self.error = error
        self.calls = 0

    async def list_launches(self, limit: int = 500):
        self.calls += 1
        if self.error:
            raise self.error
        return self.launches


class DummyIndexer:
    def __init__(self, tokens=None, error=None) -> None:
        self.tokens = tokens or []
        self.error = error
        self.calls = 0

    async def recent_tokens(self, chain_id: int, limit: int = 50):
        self.calls += 1
        if self.error:
            raise self.error
        return self.tokens


class DummyChain:
    def __init__(self, launches=None) -> None:
        self.launches = launches or []
        self.calls = 0
        self.scopes = []
        self.committed = []

    def discard_cursor(self, scope: str) -> None:
        return None

    async def fetch_new_launches(self, scope: str):
        self.calls += 1
        self.scopes.append(scope)
        return self.launches

    async def commit_cursor(self, scope: str) -> bool:
        self.committed.append(scope)
        return True


def test_map_bankr_launch_normalizes_actors() -> None:
    item = map_bankr_launch(bankr_launch(), 8453)

    assert item is not None
    assert item.item_id == TOKEN.lower()
    assert item.seen_key == f"8453:{TOKEN.lower()}"
    assert item.primary.address == DEPLOYER
    assert item.primary.x_handle == "alice"
    assert item.secondary.address == FEE_WALLET
    assert item.secondary.fc_handle == "alice.eth"
    assert item.x_link == "alice"
    assert item.source == "bankr"


def test_map_bankr_launch_rejects_missing_token() -> None:
    assert map_bankr_launch(bankr_launch(token="not-an-address"), 8453) is None
    assert map_bankr_launch("garbage", 8453) is None


def test_map_bankr_launch_without_deployer_uses_empty_actor() -> None:
    item = map_bankr_launch(bankr_launch(deployer=None, feeRecipient=None), 8453)

    assert item.primary.is_empty
    assert item.secondary is None


def test_map_indexer_token_reads_beneficiary_and_links() -> None:
    raw = {
        "address": TOKEN,
        "name": "Indexed",
        "symbol": "IDX",
        "creatorAddress": DEPLOYER,
        "pool": {
            "address": "0xpooladdress",
            "beneficiaries": [{"beneficiary": FEE_WALLET, "shares": "1"}],
        },
        "tokenUriData": {"twitter": "https://x.com/indexed", "website": "https://idx.xyz"},
    }

    item = map_indexer_token(raw, 8453)

    assert item.primary.address == DEPLOYER
    assert item.secondary.address == FEE_WALLET
    assert item.pool == "0xpooladdress"
    assert item.x_link == "https://x.com/indexed"
    assert item.website == "https://idx.xyz"
    assert item.source == "indexer"


def test_map_chain_launch_has_no_actor() -> None:
    launch = ChainLaunch(
        token_address=TOKEN,
        pool="0xhook",
        name="Chain",
        symbol="CHN",
        block_number=10,
        tx_hash="0xabc",
    )

    item = map_chain_launch(launch, 84532)

    assert item.network == 84532
    assert item.primary.is_empty
    assert item.source == "chain"


@pytest.mark.asyncio
async def test_bankr_is_preferred_when_it_returns_items() -> None:
    bankr = DummyBankr([bankr_launch()])
    indexer = DummyIndexer([{"address": TOKEN, "name": "x", "symbol": "x"}])
    source = ItemSource(bankr=bankr, indexer=indexer)

    items = await source.fetch_candidates(8453)

    assert [item.source for item in items] == ["bankr"]
    assert indexer.calls == 0


@pytest.mark.asyncio
async def test_falls_through_on_failure_and_empty_results() -> None:
    bankr = DummyBankr(error=UpstreamError("HTTP 500", 500))
    indexer = DummyIndexer([])
    chain = DummyChain(
        [ChainLaunch(TOKEN, "0xhook", "Chain", "CHN", 1, "0xabc")]
    )
    source = ItemSource(bankr=bankr, indexer=indexer, chain=chain)

    items = await source.fetch_candidates(8453, "tenant:7")

    assert [item.source for item in items] == ["chain"]
    assert (bankr.calls, indexer.calls, chain.calls) == (1, 1, 1)
    assert chain.scopes == ["tenant:7"]

    await source.commit("tenant:7")
    assert chain.committed == ["tenant:7"]


@pytest.mark.asyncio
async def test_bankr_skipped_without_key_or_off_mainnet() -> None:
    indexer = DummyIndexer([{"address": TOKEN, "name": "Idx", "symbol": "IDX"}])

    no_key = DummyBankr([bankr_launch()], api_key=False)
    items = await ItemSource(bankr=no_key, indexer=indexer).fetch_candidates(8453)
    assert items[0].source == "indexer"
    assert no_key.calls == 0

    keyed = DummyBankr([bankr_launch()])
    items = await ItemSource(bankr=keyed, indexer=indexer).fetch_candidates(84532)
    assert items[0].source == "indexer"
    assert keyed.calls == 0


@pytest.mark.asyncio
async def test_all_providers_failing_returns_empty_list() -> None:
    source = ItemSource(
        bankr=DummyBankr(error=RuntimeError("boom")),
        indexer=DummyIndexer(error=UpstreamError("GraphQL errors")),
    )

    assert await source.fetch_candidates(8453) == []
    assert await ItemSource().fetch_candidates(8453) == []
