import asyncio

import pytest

from launchwatch.bankr_client import BankrClient, DeployError
from launchwatch.indexer_client import IndexerClient
from launchwatch.utils.http import UpstreamError


class FakeResponse:
    def __init__(self, status: int, payload) -> None:
        self.status = status
        self.payload = payload

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc) -> None:
        return None

    async def text(self) -> str:
        return str(self.payload)

    async def json(self, content_type=None):
        return self.payload


class FakeSession:
    """Replays queued (status, payload) responses and records each request."""

    def __init__(self, responses) -> None:
        self.responses = list(responses)
        self.requests = []
        self.closed = False

    def request(self, method, url, **kwargs):
        self.requests.append((method, url, kwargs))
        status, payload = self.responses.pop(0)
        return FakeResponse(status, payload)


class TimingOutSession(FakeSession):
    def __init__(self) -> None:
        super().__init__([])
        self.posts = []

    def post(self, url, **kwargs):
        self.posts.append(url)
        raise asyncio.TimeoutError()


def launch(n: int, status: str = "deployed") -> dict:
    return {"tokenAddress": "0x" + f"{n:040x}", "status": status}


@pytest.mark.asyncio
async def test_list_launches_paginates_and_drops_undeployed() -> None:
    first_page = [launch(n) for n in range(50)]
    second_page = [launch(50), launch(51, status="pending"), launch(0)]
    session = FakeSession([(200, {"launches": first_page}), (200, {"launches": second_page})])
    client = BankrClient(api_key="key", session=session)

    launches = await client.list_launches(limit=500)

    assert len(launches) == 51
    assert session.requests[0][2]["params"] == {"limit": 50, "offset": 0}
    assert session.requests[1][2]["params"] == {"limit": 50, "offset": 50}
    assert session.requests[0][2]["headers"]["X-API-Key"] == "key"


@pytest.mark.asyncio
async def test_list_launches_without_key_is_empty() -> None:
    session = FakeSession([])
    client = BankrClient(api_key=None, session=session)

    assert await client.list_launches() == []
    assert session.requests == []


@pytest.mark.asyncio
async def test_search_merges_groups_and_reports_total() -> None:
    payload = {
        "groups": {
            "byDeployer": {"results": [launch(1), launch(2)], "totalCount": 3},
            "byFeeRecipient": {"results": [launch(2), launch(3)], "totalCount": 2},
        }
    }
    client = BankrClient(session=FakeSession([(200, payload)]))

    launches, total = await client.search("@alice")

    assert [item["tokenAddress"] for item in launches] == [
        launch(1)["tokenAddress"],
        launch(2)["tokenAddress"],
        launch(3)["tokenAddress"],
    ]
    assert total == 3


@pytest.mark.asyncio
async def test_get_launch_returns_none_on_404() -> None:
    session = FakeSession([(404, {"error": "not found"}), (404, {"error": "not found"})])
    client = BankrClient(session=session)

    assert await client.get_launch("0xabc") is None
    assert [request[1] for request in session.requests] == [
        "https://api.bankr.bot/token-launches/0xabc",
        "https://api.bankr.bot/token-launches/0xABC",
    ]


@pytest.mark.asyncio
async def test_get_launch_retries_upper_case_address() -> None:
    session = FakeSession(
        [(404, {"error": "not found"}), (200, {"launch": launch(171)})]
    )
    client = BankrClient(session=session)

    assert await client.get_launch(launch(171)["tokenAddress"]) == launch(171)
    assert len(session.requests) == 2


@pytest.mark.asyncio
async def test_http_errors_raise_upstream_error() -> None:
    client = BankrClient(api_key="key", session=FakeSession([(500, "oops")]))

    with pytest.raises(UpstreamError) as excinfo:
        await client.list_launches()
    assert excinfo.value.status == 500


@pytest.mark.asyncio
async def test_indexer_graphql_errors_raise() -> None:
    session = FakeSession([(200, {"errors": [{"message": "bad field"}]})])
    client = IndexerClient("https://indexer.example/", session=session)

    with pytest.raises(UpstreamError):
        await client.recent_tokens(8453)
    assert session.requests[0][1] == "https://indexer.example/graphql"


@pytest.mark.asyncio
async def test_indexer_pool_falls_back_to_v4_pools() -> None:
    session = FakeSession(
        [
            (200, {"data": {"pools": {"items": []}}}),
            (200, {"data": {"v4pools": {"items": [{"poolId": "0xpoolid"}]}}}),
        ]
    )
    client = IndexerClient("https://indexer.example", session=session)

    assert await client.pool_for_token("0xtoken", 8453) == "0xpoolid"


@pytest.mark.asyncio
async def test_indexer_cumulated_fees_tries_singular_query() -> None:
    fees = {"token0Fees": "1", "token1Fees": "2", "totalFeesUsd": "3"}
    session = FakeSession(
        [
            (200, {"errors": [{"message": "Cannot query field cumulatedFees"}]}),
            (200, {"data": {"cumulatedFee": fees}}),
        ]
    )
    client = IndexerClient("https://indexer.example", session=session)

    assert await client.cumulated_fees("0xpool", 8453, "0xwallet") == fees


@pytest.mark.asyncio
async def test_deploy_timeout_raises_deploy_error() -> None:
    session = TimingOutSession()
    client = BankrClient(api_key="key", session=session)

    with pytest.raises(DeployError) as excinfo:
        await client.deploy({"tokenName": "Moon"})
    assert "timed out" in str(excinfo.value)
    assert session.posts[0].endswith("/token-launches/deploy")
