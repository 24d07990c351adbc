"""Poll cycle orchestration and scheduled Telegram delivery."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from telegram import LinkPreviewOptions
from telegram.error import BadRequest, TelegramError

from launchwatch.filters import process_item
from launchwatch.models import (
    GLOBAL_SCOPE,
    CycleResult,
    FilterConfig,
    Verdict,
    tenant_scope,
)
from launchwatch.sources import CandidateSource
from launchwatch.store.db import Database, Tenant
from launchwatch.store.deploys import DeployCountStore
from launchwatch.store.repository import Repository
from launchwatch.store.seen import SeenSetStore
from launchwatch.utils.formatting import format_launch_alert
from launchwatch.utils.logging import bind_context, clear_context, get_logger
from launchwatch.watchlist import WatchRegistry

logger = get_logger(__name__)


class NotifyCycle:
    """Runs one poll for one scope: fetch, attribute, filter, persist.

    Holds no per-scope state between runs; everything durable goes through the
    stores. Callers must not run two cycles for the same scope concurrently.
    """

    def __init__(
        self,
        source: CandidateSource,
        seen_store: SeenSetStore,
        deploy_store: DeployCountStore,
        registry: WatchRegistry,
        network: int,
        seen_max_size: int = 0,
    ) -> None:
        self.source = source
        self.seen_store = seen_store
        self.deploy_store = deploy_store
        self.registry = registry
        self.network = network
        self.seen_max_size = seen_max_size

    async def run(self, scope: str, config: FilterConfig) -> List[CycleResult]:
        """Return every non-duplicate item with its routing flags, in source order.

        Failures are logged and yield an empty result; the scheduler retries on
        the next interval.
        """
        try:
            return await self._run(scope, config)
        except Exception as exc:
            logger.exception("notify_cycle_failed", scope=scope, error=str(exc))
            return []

    async def _run(self, scope: str, config: FilterConfig) -> List[CycleResult]:
        items = await self.source.fetch_candidates(self.network, scope)
        if not items:
            await self.source.commit(scope)
            logger.info("notify_cycle_no_items", scope=scope)
            return []

        seen = await self.seen_store.load(scope)
        actors = {item.primary.address for item in items if item.primary.address}
        counts = await self.deploy_store.load(scope, actors)
        watch = await self.registry.snapshot(scope)

        # Whole batch first, so each item is filtered against the actor's full count.
        for item in items:
            counts.record_attribution(item.primary.address, item.item_id)

        results: List[CycleResult] = []
        suppressed = 0
        for item in items:
            decision = process_item(item, seen, counts, watch, config)
            if decision.verdict is Verdict.DUPLICATE:
                continue
            delivered = decision.verdict is Verdict.DELIVERED
            if not delivered:
                suppressed += 1
            results.append(
                CycleResult(
                    item=item,
                    delivered=delivered,
                    is_watch_match=decision.is_watch_match,
                    passes_general_filter=decision.passes_general_filter,
                    deploy_count=counts.count_for(item.primary.address),
                )
            )

        evicted = seen.evict_oldest_if_over_capacity(self.seen_max_size)
        seen_ok = await self.seen_store.persist(scope, seen, self.seen_max_size)
        counts_ok = await self.deploy_store.persist(scope, counts)
        if seen_ok and counts_ok:
            await self.source.commit(scope)

        logger.info(
            "notify_cycle_complete",
            scope=scope,
            fetched=len(items),
            new=len(results),
            suppressed=suppressed,
            evicted=len(evicted),
            seen_size=len(seen),
        )
        return results


@dataclass
class DeliveryTarget:
    scope: str
    alert_chat_id: Optional[int]
    watch_chat_id: Optional[int]
    config: FilterConfig
    interval_minutes: int

    @classmethod
    def for_tenant(cls, tenant: Tenant, default_interval: int) -> "DeliveryTarget":
        return cls(
            scope=tenant_scope(tenant.tenant_id),
            alert_chat_id=tenant.alert_chat_id,
            watch_chat_id=tenant.watch_chat_id,
            config=FilterConfig(
                require_shared_identity=tenant.require_shared_identity,
                max_items_per_actor=tenant.max_items_per_actor,
            ),
            interval_minutes=tenant.poll_interval_minutes or default_interval,
        )

    def route(self, result: CycleResult) -> List[int]:
        """Chat ids this result goes to, each at most once."""
        if not result.delivered:
            return []
        chats: List[int] = []
        if result.passes_general_filter and self.alert_chat_id is not None:
            chats.append(self.alert_chat_id)
        if result.is_watch_match:
            watch_chat = (
                self.watch_chat_id
                if self.watch_chat_id is not None
                else self.alert_chat_id
            )
            if watch_chat is not None and watch_chat not in chats:
                chats.append(watch_chat)
        return chats


class NotifyService:
    """Schedule one notify job per scope and push alerts to Telegram."""

    GLOBAL_JOB_ID = "notify:global"
    TENANT_SYNC_JOB_ID = "notify:tenant-sync"
    TENANT_SYNC_MINUTES = 1

    def __init__(
        self,
        scheduler: AsyncIOScheduler,
        db: Database,
        cycle: NotifyCycle,
        bot,
        global_config: FilterConfig,
        interval_minutes: int,
        alert_chat_id: int | None = None,
        watch_chat_id: int | None = None,
    ) -> None:
        self.scheduler = scheduler
        self.db = db
        self.cycle = cycle
        self.bot = bot
        self.interval_minutes = interval_minutes
        self.global_target = DeliveryTarget(
            scope=GLOBAL_SCOPE,
            alert_chat_id=alert_chat_id,
            watch_chat_id=watch_chat_id,
            config=global_config,
            interval_minutes=interval_minutes,
        )
        self._tenant_intervals: Dict[int, int] = {}

    def _job_options(self) -> Dict[str, object]:
        return {
            "max_instances": 1,
            "coalesce": True,
            "replace_existing": True,
            "next_run_time": datetime.now(timezone.utc),
        }

    def start(self) -> None:
        if self.global_target.alert_chat_id or self.global_target.watch_chat_id:
            self.scheduler.add_job(
                self.run_global,
                "interval",
                minutes=self.interval_minutes,
                id=self.GLOBAL_JOB_ID,
                **self._job_options(),
            )
        self.scheduler.add_job(
            self.sync_tenant_jobs,
            "interval",
            minutes=self.TENANT_SYNC_MINUTES,
            id=self.TENANT_SYNC_JOB_ID,
            **self._job_options(),
        )
        if not self.scheduler.running:
            self.scheduler.start()
        logger.info("notify_scheduler_started", interval=self.interval_minutes)

    async def shutdown(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("notify_scheduler_stopped")

    @staticmethod
    def tenant_job_id(tenant_id: int) -> str:
        return f"notify:{tenant_scope(tenant_id)}"

    async def sync_tenant_jobs(self) -> None:
        """Add, reschedule, or drop tenant jobs to match the active tenant rows."""
        try:
            async with self.db.session() as session:
                tenants = await Repository(session).list_active_tenants()
        except Exception as exc:
            logger.error("tenant_sync_failed", error=str(exc))
            return

        active: Dict[int, int] = {
            tenant.tenant_id: tenant.poll_interval_minutes or self.interval_minutes
            for tenant in tenants
        }
        for tenant_id, interval in active.items():
            if self._tenant_intervals.get(tenant_id) == interval:
                continue
            self.scheduler.add_job(
                self.run_tenant,
                "interval",
                minutes=interval,
                id=self.tenant_job_id(tenant_id),
                args=[tenant_id],
                **self._job_options(),
            )
            self._tenant_intervals[tenant_id] = interval
            logger.info("tenant_job_scheduled", tenant_id=tenant_id, interval=interval)

        for tenant_id in list(self._tenant_intervals):
            if tenant_id in active:
                continue
            job_id = self.tenant_job_id(tenant_id)
            if self.scheduler.get_job(job_id):
                self.scheduler.remove_job(job_id)
            del self._tenant_intervals[tenant_id]
            logger.info("tenant_job_removed", tenant_id=tenant_id)

    async def run_global(self) -> List[CycleResult]:
        return await self.run_scope(self.global_target)

    async def run_tenant(self, tenant_id: int) -> List[CycleResult]:
        """Re-read the tenant so rule changes apply on the next cycle."""
        try:
            async with self.db.session() as session:
                tenant = await Repository(session).get_tenant(tenant_id)
        except Exception as exc:
            logger.error("tenant_load_failed", tenant_id=tenant_id, error=str(exc))
            return []
        if tenant is None or not tenant.is_active:
            logger.info("tenant_inactive", tenant_id=tenant_id)
            return []
        target = DeliveryTarget.for_tenant(tenant, self.interval_minutes)
        return await self.run_scope(target)

    async def run_scope(self, target: DeliveryTarget) -> List[CycleResult]:
        bind_context(scope=target.scope)
        try:
            results = await self.cycle.run(target.scope, target.config)
            await self.deliver(target, results)
            return results
        except Exception as exc:  # pragma: no cover - background errors are logged
            logger.error("notify_cycle_failed", scope=target.scope, error=str(exc))
            return []
        finally:
            clear_context()

    async def deliver(self, target: DeliveryTarget, results: List[CycleResult]) -> int:
        sent = 0
        for result in results:
            for chat_id in target.route(result):
                if await self._send(chat_id, result):
                    sent += 1
        if sent:
            logger.info("notify_delivered", scope=target.scope, messages=sent)
        return sent

    async def _send(self, chat_id: int, result: CycleResult) -> bool:
        """Send one alert; a failure here never stops the other chats."""
        preview = LinkPreviewOptions(is_disabled=True)
        try:
            try:
                await self.bot.send_message(
                    chat_id=chat_id,
                    text=format_launch_alert(result),
                    parse_mode="MarkdownV2",
                    link_preview_options=preview,
                )
            except BadRequest:
                await self.bot.send_message(
                    chat_id=chat_id,
                    text=format_launch_alert(result, markdown=False),
                    link_preview_options=preview,
                )
        except TelegramError as exc:
            logger.error(
                "notify_send_failed",
                chat_id=chat_id,
                item=result.item.item_id,
                error=str(exc),
            )
            return False
        return True
