from decimal import Decimal

import pytest

from launchwatch.services.token import TokenInfoService
from launchwatch.utils.formatting import format_token_report
from launchwatch.utils.http import UpstreamError

TOKEN = "0x9B40E8d9dda89230ea0e034ae2ef0f435db57ba3"
DEPLOYER = "0xdeaddeaddeaddeaddeaddeaddeaddeaddeadbeef"
FEE_WALLET = "0xfeefeefeefeefeefeefeefeefeefeefeefeefee0"


def bankr_launch() -> dict:
    return {
        "tokenAddress": TOKEN,
        "tokenName": "Moon Coin",
        "tokenSymbol": "MOON",
        "status": "deployed",
        "deployer": {"walletAddress": DEPLOYER, "xUsername": "alice"},
        "feeRecipient": {"walletAddress": FEE_WALLET},
    }


class DummyBankr:
    def __init__(self, launch=None, error=None) -> None:
        self.launch = launch
        self.error = error
        self.calls = []

    async def get_launch(self, token_address: str):
        self.calls.append(token_address)
        if self.error:
            raise self.error
        return self.launch


class DummyIndexer:
    def __init__(self, pool=None, fees=None, error=None) -> None:
        self.pool = pool
        self.fees = fees
        self.error = error
        self.fee_calls = []

    async def pool_for_token(self, token_address: str, chain_id: int):
        if self.error:
            raise self.error
        return self.pool

    async def cumulated_fees(self, pool_id: str, chain_id: int, beneficiary: str):
        self.fee_calls.append((pool_id, beneficiary))
        return self.fees


@pytest.mark.asyncio
async def test_report_combines_launch_and_indexed_fees() -> None:
    bankr = DummyBankr(bankr_launch())
    indexer = DummyIndexer(
        pool="0xpoolid",
        fees={
            "token0Fees": "3000000000000000000",
            "token1Fees": "250000000000000000",
            "totalFeesUsd": "1520",
        },
    )
    service = TokenInfoService(bankr, indexer, 8453)

    report = await service.report(f"  {TOKEN} ")

    assert bankr.calls == [TOKEN.lower()]
    assert report.error is None
    assert report.item.symbol == "MOON"
    assert report.item.secondary.address == FEE_WALLET
    assert report.pool == "0xpoolid"
    assert indexer.fee_calls == [("0xpoolid", FEE_WALLET)]
    assert report.fees.total_fees_usd == pytest.approx(1520)
    assert report.fees.token_amount == Decimal(3)
    assert report.fees.weth_amount == Decimal("0.25")

    text = format_token_report(report, markdown=False)
    assert "Moon Coin ($MOON)" in text
    assert "Accrued fees (USD): $1.52K" in text


@pytest.mark.asyncio
async def test_report_without_indexer_has_launch_only() -> None:
    service = TokenInfoService(DummyBankr(bankr_launch()), None, 8453)

    report = await service.report(TOKEN)

    assert report.item is not None
    assert report.pool is None
    assert report.fees is None
    assert "Fee recipient: " + FEE_WALLET in format_token_report(report, markdown=False)


@pytest.mark.asyncio
async def test_indexer_failure_keeps_launch_details() -> None:
    indexer = DummyIndexer(error=UpstreamError("HTTP 502", 502))
    service = TokenInfoService(DummyBankr(bankr_launch()), indexer, 8453)

    report = await service.report(TOKEN)

    assert report.error is None
    assert report.item.name == "Moon Coin"
    assert report.fees is None


@pytest.mark.asyncio
async def test_invalid_address_skips_bankr() -> None:
    bankr = DummyBankr(bankr_launch())
    service = TokenInfoService(bankr, None, 8453)

    report = await service.report("0x123")

    assert report.error.startswith("Invalid token address")
    assert bankr.calls == []


@pytest.mark.asyncio
async def test_unknown_token_and_bankr_outage_report_errors() -> None:
    missing = await TokenInfoService(DummyBankr(None), None, 8453).report(TOKEN)
    assert missing.error == "No Bankr launch found for this token."
    assert format_token_report(missing, markdown=False) == missing.error

    down = DummyBankr(error=UpstreamError("HTTP 503", 503))
    report = await TokenInfoService(down, None, 8453).report(TOKEN)
    assert report.error.startswith("Bankr API is unavailable")
