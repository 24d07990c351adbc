"""Construct clients, stores and services from Settings."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from launchwatch.bankr_client import BankrClient
from launchwatch.chain_client import ChainScanner
from launchwatch.config import Settings
from launchwatch.indexer_client import IndexerClient
from launchwatch.jobs.notify import NotifyCycle
from launchwatch.models import is_valid_address
from launchwatch.services.fees import FeesService
from launchwatch.services.lookup import LookupService
from launchwatch.services.token import TokenInfoService
from launchwatch.sources import ItemSource
from launchwatch.store.db import Database
from launchwatch.store.deploys import DeployCountStore
from launchwatch.store.seen import SeenSetStore
from launchwatch.utils.logging import get_logger
from launchwatch.watchlist import WatchRegistry

logger = get_logger(__name__)


@dataclass
class Components:
    db: Database
    bankr: BankrClient
    indexer: Optional[IndexerClient]
    chain: Optional[ChainScanner]
    source: ItemSource
    registry: WatchRegistry
    cycle: NotifyCycle
    lookup: LookupService
    fees: Optional[FeesService]
    token: TokenInfoService

    async def close(self) -> None:
        await self.bankr.close()
        if self.indexer:
            await self.indexer.close()
        await self.db.dispose()


def build_components(settings: Settings, db: Database) -> Components:
    """Wire every collaborator explicitly; nothing is cached at module level."""
    timeout = settings.http_timeout_seconds
    bankr = BankrClient(
        base_url=settings.bankr_api_url,
        api_key=settings.bankr_api_key,
        timeout_seconds=timeout,
    )
    indexer = (
        IndexerClient(settings.doppler_indexer_url, timeout_seconds=timeout)
        if settings.doppler_indexer_url
        else None
    )

    chain = None
    if settings.airlock_address and is_valid_address(settings.airlock_address):
        chain = ChainScanner(
            rpc_url=settings.rpc_url_base,
            airlock_address=settings.airlock_address,
            db=db,
            chain_id=settings.chain_id,
            blocks_back=settings.blocks_back,
            chunk_size=settings.rpc_getlogs_chunk_size,
            timeout_seconds=timeout,
        )
    else:
        logger.info("chain_fallback_disabled", reason="AIRLOCK_ADDRESS not set")

    source = ItemSource(
        bankr=bankr,
        indexer=indexer,
        chain=chain,
        bankr_limit=settings.bankr_launches_limit,
        indexer_limit=settings.indexer_launch_limit,
    )
    registry = WatchRegistry(db, settings.default_watch_sets())
    cycle = NotifyCycle(
        source=source,
        seen_store=SeenSetStore(db),
        deploy_store=DeployCountStore(db),
        registry=registry,
        network=settings.chain_id,
        seen_max_size=settings.seen_max_size,
    )
    lookup = LookupService(bankr, settings.chain_id, settings.bankr_launches_limit)
    fees = FeesService(lookup, indexer, settings.chain_id) if indexer else None
    token = TokenInfoService(bankr, indexer, settings.chain_id)
    return Components(
        db=db,
        bankr=bankr,
        indexer=indexer,
        chain=chain,
        source=source,
        registry=registry,
        cycle=cycle,
        lookup=lookup,
        fees=fees,
        token=token,
    )
