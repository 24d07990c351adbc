"""Launch details and accrued fees for a single token address."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from launchwatch.bankr_client import BankrClient
from launchwatch.indexer_client import IndexerClient
from launchwatch.models import NormalizedItem, normalize_address
from launchwatch.services.fees import TokenFees
from launchwatch.sources.mapping import map_bankr_launch
from launchwatch.utils.http import UpstreamError
from launchwatch.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class TokenReport:
    query: str
    token_address: Optional[str] = None
    item: Optional[NormalizedItem] = None
    pool: Optional[str] = None
    fees: Optional[TokenFees] = None
    error: Optional[str] = None


class TokenInfoService:
    """Bankr launch record for one token, plus indexer fees for its fee recipient.

    The indexer is optional; without it the report carries launch details only.
    """

    def __init__(
        self,
        bankr: BankrClient,
        indexer: Optional[IndexerClient],
        network: int,
    ) -> None:
        self.bankr = bankr
        self.indexer = indexer
        self.network = network

    async def report(self, query: str) -> TokenReport:
        out = TokenReport(query=query)
        address = normalize_address(query)
        if address is None:
            out.error = "Invalid token address (expected 0x + 40 hex characters)."
            return out
        out.token_address = address

        try:
            launch = await self.bankr.get_launch(address)
        except UpstreamError as exc:
            logger.warning("token_launch_lookup_failed", token=address, error=str(exc))
            out.error = "Bankr API is unavailable right now. Try again later."
            return out
        item = map_bankr_launch(launch, self.network) if launch else None
        if item is None:
            out.error = "No Bankr launch found for this token."
            return out
        out.item = item

        beneficiary = item.secondary.address if item.secondary else None
        if self.indexer is None or not beneficiary:
            return out
        try:
            out.pool = await self.indexer.pool_for_token(address, self.network)
            if out.pool:
                fees = await self.indexer.cumulated_fees(
                    out.pool, self.network, beneficiary
                )
                out.fees = TokenFees.from_indexer(item, fees)
        except UpstreamError as exc:
            logger.warning("token_fees_lookup_failed", token=address, error=str(exc))

        logger.info(
            "token_report_complete",
            token=address,
            pool=out.pool,
            priced=out.fees is not None,
        )
        return out
