"""CLI interface for launchwatch.

Runs the same cycle, watch registry and lookups as the bot, without Telegram.

Usage:
    launchwatch-cli poll
    launchwatch-cli --output json poll --tenant -1001234567890
    launchwatch-cli watch add x vitalik
    launchwatch-cli watch list
    launchwatch-cli lookup @vitalik --role fee
    launchwatch-cli fees 0x62Bcefd446f97526ECC1375D02e014cFb8b48BA3
    launchwatch-cli token 0x9b40e8d9dda89230ea0e034ae2ef0f435db57ba3
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import List, Optional

from launchwatch.cli_output import CLIOutput, OutputFormat
from launchwatch.config import Settings, load_settings
from launchwatch.models import GLOBAL_SCOPE, CycleResult, FilterConfig, tenant_scope
from launchwatch.store.db import Database
from launchwatch.store.repository import Repository
from launchwatch.utils.formatting import (
    format_fees_summary,
    format_launch_alert,
    format_lookup_result,
    format_token_report,
    format_watch_list,
)
from launchwatch.utils.logging import configure_logging, get_logger
from launchwatch.wiring import Components, build_components

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="launchwatch-cli",
        description="Poll launches, manage watch lists and run lookups without Telegram",
    )
    parser.add_argument(
        "-o",
        "--output",
        choices=["text", "json"],
        default="text",
        help="Output format (default: text)",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Show debug information"
    )
    parser.add_argument(
        "--tenant",
        type=int,
        default=None,
        help="Telegram chat id to act as; defaults to the global scope",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("poll", help="Run one notify cycle and print the results")

    watch = sub.add_parser("watch", help="Manage the watch list")
    watch_sub = watch.add_subparsers(dest="action", required=True)
    for action in ("add", "remove"):
        cmd = watch_sub.add_parser(action)
        cmd.add_argument("axis", help="x | fc | wallet | keyword")
        cmd.add_argument("value", nargs="+")
    watch_sub.add_parser("list")

    lookup = sub.add_parser("lookup", help="Find launches by deployer or fee recipient")
    lookup.add_argument("query")
    lookup.add_argument(
        "--role", choices=["deployer", "fee", "both"], default="both"
    )

    fees = sub.add_parser("fees", help="Indexed fees for a fee recipient")
    fees.add_argument("query")

    token = sub.add_parser("token", help="Launch details and fees for one token")
    token.add_argument("address")
    return parser


async def _filter_config(
    components: Components, settings: Settings, tenant_id: Optional[int]
) -> FilterConfig:
    if tenant_id is None:
        return settings.global_filter_config()
    async with components.db.session() as session:
        tenant = await Repository(session).get_tenant(tenant_id)
    if tenant is None:
        return FilterConfig()
    return FilterConfig(
        require_shared_identity=tenant.require_shared_identity,
        max_items_per_actor=tenant.max_items_per_actor,
    )


def _render_poll(results: List[CycleResult]) -> str:
    if not results:
        return "No new launches."
    blocks = []
    for result in results:
        flags = (
            f"[delivered={result.delivered} general={result.passes_general_filter} "
            f"watch={result.is_watch_match}]"
        )
        blocks.append(f"{flags}\n{format_launch_alert(result, markdown=False)}")
    return "\n\n".join(blocks)


async def run_command(
    args: argparse.Namespace,
    settings: Settings,
    components: Components,
    output: CLIOutput,
) -> int:
    scope = GLOBAL_SCOPE if args.tenant is None else tenant_scope(args.tenant)

    if args.command == "poll":
        output.status(f"Polling network {settings.chain_id} for {scope}")
        config = await _filter_config(components, settings, args.tenant)
        results = await components.cycle.run(scope, config)
        output.emit(_render_poll(results), [result.as_dict() for result in results])
        return 0

    if args.command == "watch":
        registry = components.registry
        if args.action == "list":
            view = await registry.list(scope)
            output.emit(
                format_watch_list(view, settings.default_watch_sets(), markdown=False),
                {"scope": scope, **vars(view)},
            )
            return 0
        value = " ".join(args.value)
        try:
            if args.action == "add":
                ok = await registry.add(scope, args.axis, value)
            else:
                ok = await registry.remove(scope, args.axis, value)
        except ValueError as exc:
            output.error(str(exc))
            return 2
        verb = "added" if args.action == "add" else "removed"
        output.emit(
            f"{verb}: {args.axis} {value}" if ok else f"not {verb}: {args.axis} {value}",
            {"scope": scope, "action": args.action, "axis": args.axis, "ok": ok},
        )
        return 0 if ok else 1

    if args.command == "lookup":
        result = await components.lookup.lookup(args.query, args.role)
        output.emit(
            format_lookup_result(
                result, page_size=max(1, len(result.matches)), markdown=False
            ),
            {
                "query": result.query,
                "normalized": result.normalized,
                "total_count": result.total_count,
                "matches": [item.item_id for item in result.matches],
            },
        )
        return 0

    if args.command == "fees":
        if components.fees is None:
            output.error("Set DOPPLER_INDEXER_URL to aggregate fees")
            return 2
        summary = await components.fees.summary(args.query)
        output.emit(
            format_fees_summary(summary, markdown=False),
            {
                "query": summary.query,
                "fee_wallet": summary.fee_wallet,
                "match_count": summary.match_count,
                "total_usd": summary.total_usd,
                "tokens": [vars(token) for token in summary.tokens],
                "error": summary.error,
            },
        )
        return 0 if summary.error is None else 1

    if args.command == "token":
        report = await components.token.report(args.address)
        item = report.item
        output.emit(
            format_token_report(report, markdown=False),
            {
                "token_address": report.token_address,
                "name": item.name if item else None,
                "symbol": item.symbol if item else None,
                "deployer": item.primary.address if item else None,
                "fee_recipient": (
                    item.secondary.address if item and item.secondary else None
                ),
                "pool": report.pool,
                "fees": vars(report.fees) if report.fees else None,
                "error": report.error,
            },
        )
        return 0 if report.error is None else 1

    output.error(f"Unknown command: {args.command}")
    return 2


async def main(argv: Optional[List[str]] = None) -> int:
    """CLI entrypoint."""
    parser = build_parser()
    args = parser.parse_args(argv)
    output = CLIOutput(format=OutputFormat(args.output), verbose=args.verbose)

    try:
        settings = load_settings()
    except Exception as exc:
        output.error(f"Failed to load settings: {exc}")
        return 1

    level = "DEBUG" if args.verbose else settings.log_level
    configure_logging(level, console=args.verbose)

    db = Database(settings.database_url)
    db.connect()
    await db.init_models()
    components = build_components(settings, db)
    try:
        return await run_command(args, settings, components, output)
    except KeyboardInterrupt:
        output.info("Interrupted")
        return 130
    finally:
        await components.close()


def cli_main() -> None:
    """Synchronous wrapper for CLI entry."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli_main()
