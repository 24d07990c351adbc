"""Fallback chain over the launch providers."""

from __future__ import annotations

from typing import Awaitable, Callable, List, Optional, Protocol, Sequence, Tuple

from launchwatch.bankr_client import BankrClient
from launchwatch.chain_client import ChainScanner
from launchwatch.indexer_client import IndexerClient
from launchwatch.models import BASE_CHAIN_ID, GLOBAL_SCOPE, NormalizedItem
from launchwatch.sources.mapping import (
    SOURCE_BANKR,
    SOURCE_CHAIN,
    SOURCE_INDEXER,
    map_bankr_launch,
    map_chain_launch,
    map_indexer_token,
)
from launchwatch.utils.logging import get_logger

logger = get_logger(__name__)


class CandidateSource(Protocol):
    async def fetch_candidates(
        self, network: int, scope: str
    ) -> List[NormalizedItem]: ...

    async def commit(self, scope: str) -> None: ...


Provider = Tuple[str, Callable[[int, str], Awaitable[List[NormalizedItem]]]]


class ItemSource:
    """Fetches candidates from the first provider that returns anything.

    Order: Bankr API (needs a key, Base mainnet only), Doppler indexer, then
    the Airlock log scanner. Provider failures are logged and skipped; when
    every provider fails the result is an empty list.

    Providers that read incrementally (the log scanner) only advance their
    position for a scope when `commit` is called after the results are stored.
    """

    def __init__(
        self,
        bankr: Optional[BankrClient] = None,
        indexer: Optional[IndexerClient] = None,
        chain: Optional[ChainScanner] = None,
        bankr_limit: int = 500,
        indexer_limit: int = 50,
    ) -> None:
        self.bankr = bankr
        self.indexer = indexer
        self.chain = chain
        self.bankr_limit = bankr_limit
        self.indexer_limit = indexer_limit

    def _providers(self, network: int) -> Sequence[Provider]:
        providers: List[Provider] = []
        if self.bankr and self.bankr.has_api_key and network == BASE_CHAIN_ID:
            providers.append((SOURCE_BANKR, self._from_bankr))
        if self.indexer:
            providers.append((SOURCE_INDEXER, self._from_indexer))
        if self.chain:
            providers.append((SOURCE_CHAIN, self._from_chain))
        return providers

    async def _from_bankr(self, network: int, scope: str) -> List[NormalizedItem]:
        launches = await self.bankr.list_launches(self.bankr_limit)
        return [
            item
            for item in (map_bankr_launch(raw, network) for raw in launches)
            if item
        ]

    async def _from_indexer(self, network: int, scope: str) -> List[NormalizedItem]:
        tokens = await self.indexer.recent_tokens(network, self.indexer_limit)
        return [
            item
            for item in (map_indexer_token(raw, network) for raw in tokens)
            if item
        ]

    async def _from_chain(self, network: int, scope: str) -> List[NormalizedItem]:
        launches = await self.chain.fetch_new_launches(scope)
        return [
            item
            for item in (map_chain_launch(raw, network) for raw in launches)
            if item
        ]

    async def fetch_candidates(
        self, network: int, scope: str = GLOBAL_SCOPE
    ) -> List[NormalizedItem]:
        if self.chain:
            self.chain.discard_cursor(scope)
        for name, fetch in self._providers(network):
            try:
                items = await fetch(network, scope)
            except Exception as exc:
                logger.warning(
                    "source_fetch_failed", source=name, network=network, error=str(exc)
                )
                continue
            if items:
                logger.info(
                    "source_fetch_ok", source=name, network=network, items=len(items)
                )
                return items
            logger.info("source_empty", source=name, network=network)
        logger.warning("all_sources_empty", network=network)
        return []

    async def commit(self, scope: str) -> None:
        if self.chain:
            await self.chain.commit_cursor(scope)
