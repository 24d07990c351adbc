"""Aggregate indexed fees for tokens where a wallet or handle is fee recipient."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, List, Optional

from launchwatch.indexer_client import IndexerClient
from launchwatch.models import NormalizedItem
from launchwatch.services.lookup import LookupRole, LookupService
from launchwatch.utils.http import UpstreamError
from launchwatch.utils.logging import get_logger

logger = get_logger(__name__)

# Launch tokens and WETH both use 18 decimals.
TOKEN_DECIMALS = 18
FEE_FIELDS = ("token0Fees", "token1Fees", "totalFeesUsd")


def format_usd(value: Any) -> Optional[str]:
    """$1.23, $4.56K, $7.89M; None for missing or non-numeric input."""
    if value is None or value == "":
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if number != number:
        return None
    if number >= 1e6:
        return f"${number / 1e6:.2f}M"
    if number >= 1e3:
        return f"${number / 1e3:.2f}K"
    return f"${number:.2f}"


def _to_units(raw: Any) -> Decimal:
    if raw is None:
        return Decimal(0)
    try:
        return Decimal(str(raw)) / (Decimal(10) ** TOKEN_DECIMALS)
    except InvalidOperation:
        return Decimal(0)


@dataclass
class TokenFees:
    token_address: str
    name: str
    symbol: str
    total_fees_usd: float
    token_amount: Decimal
    weth_amount: Decimal

    @classmethod
    def from_indexer(cls, item: NormalizedItem, fees: Any) -> Optional["TokenFees"]:
        """Build from a cumulatedFees row; None when the row carries no amounts."""
        if not isinstance(fees, dict):
            return None
        if all(fees.get(key) is None for key in FEE_FIELDS):
            return None
        try:
            usd = float(fees.get("totalFeesUsd") or 0)
        except (TypeError, ValueError):
            usd = 0.0
        return cls(
            token_address=item.item_id,
            name=item.name,
            symbol=item.symbol,
            total_fees_usd=usd,
            token_amount=_to_units(fees.get("token0Fees")),
            weth_amount=_to_units(fees.get("token1Fees")),
        )


@dataclass
class FeesSummary:
    query: str
    fee_wallet: Optional[str] = None
    match_count: int = 0
    total_usd: float = 0.0
    tokens: List[TokenFees] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def indexer_used(self) -> bool:
        return bool(self.tokens)


class FeesService:
    def __init__(
        self, lookup: LookupService, indexer: IndexerClient, network: int
    ) -> None:
        self.lookup = lookup
        self.indexer = indexer
        self.network = network

    async def summary(self, query: str) -> FeesSummary:
        result = await self.lookup.lookup(query, LookupRole.FEE)
        out = FeesSummary(query=query, match_count=len(result.matches))
        if not result.matches:
            out.error = "No tokens found where this wallet or handle is fee recipient."
            return out

        first = result.matches[0].secondary
        out.fee_wallet = first.address if first else None

        for item in result.matches:
            beneficiary = out.fee_wallet or (
                item.secondary.address if item.secondary else None
            )
            if not beneficiary:
                continue
            try:
                pool = await self.indexer.pool_for_token(item.item_id, self.network)
                if not pool:
                    continue
                fees = await self.indexer.cumulated_fees(pool, self.network, beneficiary)
            except UpstreamError as exc:
                logger.warning("fees_lookup_failed", token=item.item_id, error=str(exc))
                continue
            token_fees = TokenFees.from_indexer(item, fees)
            if token_fees is None:
                continue
            out.total_usd += token_fees.total_fees_usd
            out.tokens.append(token_fees)
        logger.info(
            "fees_summary_complete",
            matches=out.match_count,
            priced=len(out.tokens),
            total_usd=round(out.total_usd, 2),
        )
        return out
