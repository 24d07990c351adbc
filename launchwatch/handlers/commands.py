"""Telegram command handlers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, List, Optional, Protocol, Sequence, Set

from telegram import LinkPreviewOptions, Update
from telegram.constants import ChatMemberStatus, ChatType
from telegram.error import BadRequest, TelegramError
from telegram.ext import Application, CallbackContext, CommandHandler

from launchwatch.bankr_client import BankrClient, DeployError
from launchwatch.models import (
    GLOBAL_SCOPE,
    FilterConfig,
    WatchAxis,
    WatchSets,
    tenant_scope,
)
from launchwatch.services.deploy import build_deploy_body, deploy_token
from launchwatch.services.fees import FeesService
from launchwatch.services.lookup import LookupRole, LookupService
from launchwatch.services.token import TokenInfoService
from launchwatch.store.db import Database
from launchwatch.store.repository import Repository
from launchwatch.utils.formatting import (
    format_deploy_result,
    format_fees_summary,
    format_lookup_result,
    format_rules,
    format_token_report,
    format_watch_list,
)
from launchwatch.utils.http import UpstreamError
from launchwatch.utils.logging import get_logger
from launchwatch.utils.rate_limit import RateLimiter
from launchwatch.watchlist import WatchRegistry

logger = get_logger(__name__)

MIN_INTERVAL_MINUTES = 1
MAX_INTERVAL_MINUTES = 60

HELP_TEXT = (
    "I post new token launches on Base and watch the wallets, handles and "
    "keywords you care about.\n\n"
    "Watch list:\n"
    "/watch add <x|fc|wallet|keyword> <value>\n"
    "/watch remove <x|fc|wallet|keyword> <value>\n"
    "/watch list\n\n"
    "Delivery (groups):\n"
    "/alerts here|off: post all new launches in this chat\n"
    "/watchalerts here|off: post watch-list hits in this chat\n\n"
    "Rules:\n"
    "/rules: show current rules\n"
    "/rules sharedid on|off: require deployer and fee recipient to share X/Farcaster\n"
    "/rules maxdeploys <n|off>: hide wallets with more than n launches\n"
    "/rules interval <minutes>\n\n"
    "Lookups:\n"
    "/lookup <wallet|@x|farcaster|profile url> [deployer|fee|both]\n"
    "/fees <wallet|@x|farcaster>\n"
    "/token <address>: launch details and accrued fees\n"
    "/deploy <name> [symbol] [--live] (admins)\n\n"
    "All tokens can rug pull. DYOR, not financial advice."
)


class Notifier(Protocol):
    """Scheduler hook the delivery commands call after a tenant changes.

    Implemented by NotifyService; tests pass a recorder.
    """

    async def sync_tenant_jobs(self) -> None:
        """Bring scheduled tenant jobs in line with the stored tenants."""
        ...


@dataclass
class HandlerContext:
    db: Database
    registry: WatchRegistry
    lookup: LookupService
    fees: Optional[FeesService]
    bankr: BankrClient
    admin_ids: List[int]
    global_chat_ids: Set[int] = field(default_factory=set)
    global_config: FilterConfig = field(default_factory=FilterConfig)
    default_interval: int = 5
    lookup_page_size: int = 5
    rate_limiter: RateLimiter | None = None
    notifier: Optional[Notifier] = None
    watch_defaults: WatchSets = field(default_factory=WatchSets)
    token: Optional[TokenInfoService] = None


def setup(application: Application, handler_context: HandlerContext) -> None:
    """Register handlers on the Telegram application."""
    application.bot_data["ctx"] = handler_context

    application.add_handler(CommandHandler("start", start))
    application.add_handler(CommandHandler("help", help_command))
    application.add_handler(CommandHandler("watch", watch_command))
    application.add_handler(CommandHandler("alerts", alerts_command))
    application.add_handler(CommandHandler("watchalerts", watch_alerts_command))
    application.add_handler(CommandHandler("rules", rules_command))
    application.add_handler(CommandHandler("lookup", lookup_command))
    application.add_handler(CommandHandler("fees", fees_command))
    application.add_handler(CommandHandler("token", token_command))
    application.add_handler(CommandHandler("deploy", deploy_command))


def get_ctx(context: CallbackContext) -> HandlerContext:
    return context.application.bot_data["ctx"]


def resolve_scope(update: Update, ctx: HandlerContext) -> str:
    """Configured global chats manage the global scope; every other chat is a tenant."""
    chat = update.effective_chat
    if chat is None or chat.id in ctx.global_chat_ids:
        return GLOBAL_SCOPE
    return tenant_scope(chat.id)


def _is_group(update: Update) -> bool:
    chat = update.effective_chat
    group_types = (ChatType.GROUP, ChatType.SUPERGROUP, ChatType.CHANNEL)
    return bool(chat and chat.type in group_types)


async def is_admin(update: Update, context: CallbackContext) -> bool:
    """Configured admins always; chat administrators for their own group."""
    ctx = get_ctx(context)
    user = update.effective_user
    chat = update.effective_chat
    if user is None:
        return False
    if user.id in ctx.admin_ids:
        return True
    if chat is None or chat.id in ctx.global_chat_ids:
        return False
    if not _is_group(update):
        return True
    try:
        member = await context.bot.get_chat_member(chat.id, user.id)
    except TelegramError as exc:
        logger.warning("chat_member_lookup_failed", chat_id=chat.id, error=str(exc))
        return False
    return member.status in (ChatMemberStatus.ADMINISTRATOR, ChatMemberStatus.OWNER)


async def require_admin(update: Update, context: CallbackContext) -> bool:
    if await is_admin(update, context):
        return True
    await update.message.reply_text(
        "Only chat admins can change this.", parse_mode=None
    )
    return False


def rate_limit(update: Update, context: CallbackContext) -> bool:
    ctx = get_ctx(context)
    user = update.effective_user
    if not user or not ctx.rate_limiter:
        return True
    return ctx.rate_limiter.allow(user.id)


async def reply_rendered(update: Update, render: Callable[[bool], str]) -> None:
    """Reply in MarkdownV2, falling back to plain text if Telegram rejects it."""
    preview = LinkPreviewOptions(is_disabled=True)
    try:
        await update.message.reply_text(
            render(True), parse_mode="MarkdownV2", link_preview_options=preview
        )
    except BadRequest:
        await update.message.reply_text(
            render(False), parse_mode=None, link_preview_options=preview
        )


async def start(update: Update, context: CallbackContext) -> None:
    text = (
        "👋 I watch Bankr and Doppler token launches on Base.\n\n"
        "In a group, an admin can run /alerts here to get the feed, and "
        "/watch add x <handle> to follow specific launchers.\n\n"
        "Type /help for every command."
    )
    await update.message.reply_text(text, parse_mode=None)


async def help_command(update: Update, context: CallbackContext) -> None:
    await update.message.reply_text(HELP_TEXT, parse_mode=None)


async def watch_command(update: Update, context: CallbackContext) -> None:
    ctx = get_ctx(context)
    args: Sequence[str] = context.args or []
    scope = resolve_scope(update, ctx)
    action = args[0].lower() if args else "list"

    if action == "list":
        view = await ctx.registry.list(scope)
        await reply_rendered(
            update, lambda md: format_watch_list(view, ctx.watch_defaults, markdown=md)
        )
        return

    if action not in {"add", "remove", "rm", "del"} or len(args) < 3:
        await update.message.reply_text(
            "Usage: /watch add|remove <x|fc|wallet|keyword> <value> or /watch list",
            parse_mode=None,
        )
        return
    if not await require_admin(update, context):
        return

    try:
        axis = WatchAxis.parse(args[1])
    except ValueError:
        await update.message.reply_text(
            "Type must be one of: x, fc, wallet, keyword.", parse_mode=None
        )
        return
    value = " ".join(args[2:])

    if action == "add":
        accepted = await ctx.registry.add(scope, axis, value)
        if not accepted:
            message = (
                "Invalid wallet address (expected 0x + 40 hex characters)."
                if axis is WatchAxis.WALLET
                else "Nothing to add."
            )
        else:
            message = f"Watching {axis.value}: {value.strip()}"
    else:
        removed = await ctx.registry.remove(scope, axis, value)
        message = (
            f"Removed {axis.value}: {value.strip()}"
            if removed
            else f"{value.strip()} was not on the {axis.value} watch list."
        )
    await update.message.reply_text(message, parse_mode=None)


async def _set_delivery_chat(
    update: Update, context: CallbackContext, field_name: str, label: str
) -> None:
    ctx = get_ctx(context)
    args = context.args or []
    chat = update.effective_chat
    mode = args[0].lower() if args else ""
    if mode not in {"here", "off"} or chat is None:
        await update.message.reply_text(
            f"Usage: /{label} here|off", parse_mode=None
        )
        return
    if chat.id in ctx.global_chat_ids:
        await update.message.reply_text(
            "This is the global feed chat; its delivery comes from configuration.",
            parse_mode=None,
        )
        return
    if not await require_admin(update, context):
        return

    value = chat.id if mode == "here" else None
    async with ctx.db.session() as session:
        await Repository(session).upsert_tenant(chat.id, **{field_name: value})
    logger.info(
        "tenant_delivery_updated",
        tenant_id=chat.id,
        field=field_name,
        enabled=value is not None,
    )
    if ctx.notifier:
        await ctx.notifier.sync_tenant_jobs()
    await update.message.reply_text(
        f"{label.capitalize()} {'enabled in this chat' if value else 'turned off'}.",
        parse_mode=None,
    )


async def alerts_command(update: Update, context: CallbackContext) -> None:
    await _set_delivery_chat(update, context, "alert_chat_id", "alerts")


async def watch_alerts_command(update: Update, context: CallbackContext) -> None:
    await _set_delivery_chat(update, context, "watch_chat_id", "watchalerts")


def _parse_toggle(value: str) -> Optional[bool]:
    lowered = value.lower()
    if lowered in {"on", "true", "yes", "1"}:
        return True
    if lowered in {"off", "false", "no", "0"}:
        return False
    return None


async def rules_command(update: Update, context: CallbackContext) -> None:
    ctx = get_ctx(context)
    args = context.args or []
    chat = update.effective_chat
    scope = resolve_scope(update, ctx)

    if scope == GLOBAL_SCOPE or chat is None:
        if args:
            await update.message.reply_text(
                "Global rules come from FILTER_X_MATCH / FILTER_MAX_DEPLOYS.",
                parse_mode=None,
            )
            return
        await reply_rendered(
            update,
            lambda md: format_rules(ctx.global_config, ctx.default_interval, markdown=md),
        )
        return

    if not args:
        async with ctx.db.session() as session:
            tenant = await Repository(session).get_tenant(chat.id)
        config = FilterConfig(
            require_shared_identity=bool(tenant and tenant.require_shared_identity),
            max_items_per_actor=tenant.max_items_per_actor if tenant else None,
        )
        interval = (
            tenant.poll_interval_minutes if tenant else None
        ) or ctx.default_interval
        await reply_rendered(
            update, lambda md: format_rules(config, interval, markdown=md)
        )
        return

    if not await require_admin(update, context):
        return

    rule = args[0].lower()
    value = args[1] if len(args) > 1 else ""
    updates = {}
    if rule == "sharedid":
        toggle = _parse_toggle(value)
        if toggle is None:
            await update.message.reply_text(
                "Usage: /rules sharedid on|off", parse_mode=None
            )
            return
        updates["require_shared_identity"] = toggle
    elif rule == "maxdeploys":
        if value.lower() == "off":
            updates["max_items_per_actor"] = None
        elif value.isdigit():
            updates["max_items_per_actor"] = int(value)
        else:
            await update.message.reply_text(
                "Usage: /rules maxdeploys <n|off>", parse_mode=None
            )
            return
    elif rule == "interval":
        if not value.isdigit() or not (
            MIN_INTERVAL_MINUTES <= int(value) <= MAX_INTERVAL_MINUTES
        ):
            await update.message.reply_text(
                f"Usage: /rules interval <{MIN_INTERVAL_MINUTES}-{MAX_INTERVAL_MINUTES}>",
                parse_mode=None,
            )
            return
        updates["poll_interval_minutes"] = int(value)
    else:
        await update.message.reply_text(
            "Usage: /rules [sharedid on|off | maxdeploys <n|off> | interval <minutes>]",
            parse_mode=None,
        )
        return

    async with ctx.db.session() as session:
        await Repository(session).upsert_tenant(chat.id, **updates)
    logger.info("tenant_rules_updated", tenant_id=chat.id, rule=rule)
    if rule == "interval" and ctx.notifier:
        await ctx.notifier.sync_tenant_jobs()
    await update.message.reply_text(f"Updated {rule}.", parse_mode=None)


async def lookup_command(update: Update, context: CallbackContext) -> None:
    ctx = get_ctx(context)
    args = list(context.args or [])
    if not args:
        await update.message.reply_text(
            "Usage: /lookup <wallet|@x|farcaster|profile url> [deployer|fee|both]",
            parse_mode=None,
        )
        return
    if not rate_limit(update, context):
        await update.message.reply_text("Slow down, try again shortly.", parse_mode=None)
        return
    role = LookupRole.BOTH
    if len(args) > 1 and args[-1].lower() in {"deployer", "fee", "both"}:
        role = LookupRole.parse(args.pop())
    query = " ".join(args)
    try:
        result = await ctx.lookup.lookup(query, role)
    except UpstreamError as exc:
        logger.warning("lookup_command_failed", error=str(exc))
        await update.message.reply_text(
            "Lookup is unavailable right now. Try again later.", parse_mode=None
        )
        return
    await reply_rendered(
        update,
        lambda md: format_lookup_result(
            result, page_size=ctx.lookup_page_size, markdown=md
        ),
    )


async def fees_command(update: Update, context: CallbackContext) -> None:
    ctx = get_ctx(context)
    args = context.args or []
    if not args:
        await update.message.reply_text(
            "Usage: /fees <wallet|@x|farcaster>", parse_mode=None
        )
        return
    if ctx.fees is None:
        await update.message.reply_text(
            "Fees need DOPPLER_INDEXER_URL to be configured.", parse_mode=None
        )
        return
    if not rate_limit(update, context):
        await update.message.reply_text("Slow down, try again shortly.", parse_mode=None)
        return
    try:
        summary = await ctx.fees.summary(" ".join(args))
    except UpstreamError as exc:
        logger.warning("fees_command_failed", error=str(exc))
        await update.message.reply_text(
            "Fee data is unavailable right now. Try again later.", parse_mode=None
        )
        return
    await reply_rendered(update, lambda md: format_fees_summary(summary, markdown=md))


async def token_command(update: Update, context: CallbackContext) -> None:
    ctx = get_ctx(context)
    args = context.args or []
    if not args:
        await update.message.reply_text("Usage: /token <address>", parse_mode=None)
        return
    if ctx.token is None:
        await update.message.reply_text(
            "Token lookups are not configured.", parse_mode=None
        )
        return
    if not rate_limit(update, context):
        await update.message.reply_text("Slow down, try again shortly.", parse_mode=None)
        return
    report = await ctx.token.report(args[0])
    await reply_rendered(update, lambda md: format_token_report(report, markdown=md))


async def deploy_command(update: Update, context: CallbackContext) -> None:
    ctx = get_ctx(context)
    user = update.effective_user
    if user is None or user.id not in ctx.admin_ids:
        await update.message.reply_text("Only bot admins can deploy.", parse_mode=None)
        return
    args = [arg for arg in (context.args or []) if arg != "--live"]
    live = "--live" in (context.args or [])
    if not args:
        await update.message.reply_text(
            "Usage: /deploy <name> [symbol] [--live]", parse_mode=None
        )
        return
    if not rate_limit(update, context):
        await update.message.reply_text("Slow down, try again shortly.", parse_mode=None)
        return
    symbol = args[-1] if len(args) > 1 else None
    name = " ".join(args[:-1]) if symbol else args[0]
    try:
        body = build_deploy_body(name, symbol, simulate_only=not live)
        result = await deploy_token(ctx.bankr, body)
    except DeployError as exc:
        await update.message.reply_text(f"Deploy failed: {exc}", parse_mode=None)
        return
    result.setdefault("simulated", not live)
    await reply_rendered(update, lambda md: format_deploy_result(result, markdown=md))
