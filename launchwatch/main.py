"""Application entrypoint."""

from __future__ import annotations

import asyncio
import signal

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from telegram import BotCommand, BotCommandScopeDefault
from telegram.ext import ApplicationBuilder

from launchwatch.config import load_settings
from launchwatch.handlers.commands import HandlerContext, setup as setup_handlers
from launchwatch.jobs.notify import NotifyService
from launchwatch.store.db import Database
from launchwatch.utils.logging import configure_logging, get_logger
from launchwatch.utils.rate_limit import RateLimiter
from launchwatch.wiring import build_components

logger = get_logger(__name__)

COMMANDS = [
    BotCommand("help", "Show commands"),
    BotCommand("watch", "Add, remove or list watched wallets, handles, keywords"),
    BotCommand("alerts", "Post new launches in this chat"),
    BotCommand("watchalerts", "Post watch-list hits in this chat"),
    BotCommand("rules", "Show or change alert rules"),
    BotCommand("lookup", "Find launches by wallet, X or Farcaster"),
    BotCommand("fees", "Indexed fees for a fee recipient"),
    BotCommand("token", "Launch details and fees for one token"),
]


async def main() -> None:
    settings = load_settings()
    configure_logging(settings.log_level)
    if not settings.telegram_bot_token:
        raise RuntimeError("TELEGRAM_BOT_TOKEN is required to run the bot")

    db = Database(settings.database_url)
    db.connect()
    await db.init_models()
    components = build_components(settings, db)

    application = ApplicationBuilder().token(settings.telegram_bot_token).build()
    await application.initialize()
    await application.bot.set_my_commands(COMMANDS, scope=BotCommandScopeDefault())

    scheduler = AsyncIOScheduler()
    notify_service = NotifyService(
        scheduler=scheduler,
        db=db,
        cycle=components.cycle,
        bot=application.bot,
        global_config=settings.global_filter_config(),
        interval_minutes=settings.poll_interval_minutes,
        alert_chat_id=settings.telegram_alert_chat_id,
        watch_chat_id=settings.telegram_watch_chat_id,
    )

    global_chat_ids = {
        chat_id
        for chat_id in (settings.telegram_alert_chat_id, settings.telegram_watch_chat_id)
        if chat_id is not None
    }
    handler_context = HandlerContext(
        db=db,
        registry=components.registry,
        lookup=components.lookup,
        fees=components.fees,
        bankr=components.bankr,
        admin_ids=settings.admin_user_ids,
        global_chat_ids=global_chat_ids,
        global_config=settings.global_filter_config(),
        default_interval=settings.poll_interval_minutes,
        lookup_page_size=settings.lookup_page_size,
        rate_limiter=RateLimiter(settings.rate_limit_per_user_per_min),
        notifier=notify_service,
        watch_defaults=settings.default_watch_sets(),
        token=components.token,
    )
    setup_handlers(application, handler_context)

    notify_service.start()

    try:
        await application.start()
        if application.updater:
            await application.updater.start_polling()

        logger.info(
            "bot_started",
            network=settings.chain_id,
            global_chats=len(global_chat_ids),
            interval=settings.poll_interval_minutes,
        )

        stop_event = asyncio.Event()

        def signal_handler(signum, frame):
            logger.info("shutdown_signal_received", signal=signum)
            stop_event.set()

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

        await stop_event.wait()

    finally:
        logger.info("bot_stopping")
        await notify_service.shutdown()
        if application.updater:
            await application.updater.stop()
        await application.stop()
        await application.shutdown()
        await components.close()


def run() -> None:
    """Synchronous wrapper for the console script."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
