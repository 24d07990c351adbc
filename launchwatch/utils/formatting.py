"""Helpers for Telegram-safe Markdown formatting.

Every renderer takes ``markdown``: True produces MarkdownV2, False produces the
plain-text fallback sent when Telegram rejects the formatted message.
"""

from __future__ import annotations

from typing import Iterable, List, Optional

from launchwatch.models import Actor, CycleResult, FilterConfig, WatchListView, WatchSets
from launchwatch.services.fees import FeesSummary, format_usd
from launchwatch.services.lookup import LookupResult
from launchwatch.services.token import TokenReport

TELEGRAM_MESSAGE_LIMIT = 4096
BASESCAN_URL = "https://basescan.org"
SEPOLIA_BASESCAN_URL = "https://sepolia.basescan.org"
IPFS_GATEWAY = "https://ipfs.io/ipfs/"
BASE_MAINNET = 8453


def escape_markdown(text: str) -> str:
    """Escape Telegram MarkdownV2 control characters."""
    if text is None:
        text = ""
    if not isinstance(text, str):
        text = str(text)
    special_chars = r"_*[]()~`>#+-=|{}.!\\"
    return "".join(f"\\{char}" if char in special_chars else char for char in text)


def escape_markdown_url(url: str) -> str:
    """Escape Telegram MarkdownV2-sensitive characters inside link URLs."""
    if not url:
        return ""
    return url.replace("\\", "\\\\").replace("(", "\\(").replace(")", "\\)")


def _esc(text: object, markdown: bool) -> str:
    return escape_markdown(str(text)) if markdown else str(text)


def _bold(text: str, markdown: bool) -> str:
    return f"*{escape_markdown(text)}*" if markdown else text


def _code(text: str, markdown: bool) -> str:
    if not markdown:
        return text
    return "`" + text.replace("\\", "\\\\").replace("`", "\\`") + "`"


def _link(label: str, url: Optional[str], markdown: bool) -> str:
    if not url:
        return _esc(label, markdown)
    if markdown:
        return f"[{escape_markdown(label)}]({escape_markdown_url(url)})"
    return f"{label}: {url}"


def explorer_url(network: int) -> str:
    return BASESCAN_URL if network == BASE_MAINNET else SEPOLIA_BASESCAN_URL


def bankr_launch_url(token_address: str) -> str:
    return f"https://bankr.bot/launches/{token_address}"


def x_profile_url(handle: Optional[str]) -> Optional[str]:
    if not handle:
        return None
    if handle.startswith(("http://", "https://")):
        return handle
    return f"https://x.com/{handle.lstrip('@')}"


def farcaster_profile_url(handle: Optional[str]) -> Optional[str]:
    if not handle:
        return None
    name = handle.lstrip("@")
    if name.lower().endswith(".eth"):
        name = name[: -len(".eth")]
    return f"https://warpcast.com/{name}"


def image_url(image: Optional[str]) -> Optional[str]:
    if not image:
        return None
    if image.startswith("ipfs://"):
        return IPFS_GATEWAY + image[len("ipfs://") :]
    return image


def _actor_lines(actor: Actor, network: int, markdown: bool) -> List[str]:
    lines: List[str] = []
    if actor.x_handle:
        lines.append(
            "  X: " + _link(f"@{actor.x_handle}", x_profile_url(actor.x_handle), markdown)
        )
    if actor.fc_handle:
        lines.append(
            "  Farcaster: "
            + _link(actor.fc_handle, farcaster_profile_url(actor.fc_handle), markdown)
        )
    if actor.address:
        url = f"{explorer_url(network)}/address/{actor.address}"
        lines.append("  Wallet: " + _link(actor.address, url, markdown))
    return lines


def format_launch_alert(result: CycleResult, markdown: bool = True) -> str:
    """Render one delivered launch as a Telegram alert."""
    item = result.item
    launch_url = bankr_launch_url(item.item_id)
    token_url = f"{explorer_url(item.network)}/token/{item.item_id}"
    title = f"New launch: {item.name} (${item.symbol})"
    if result.is_watch_match:
        title = f"Watched launch: {item.name} (${item.symbol})"

    lines: List[str] = [_link(title, launch_url, markdown), ""]
    lines.append(
        _link("View on Bankr", launch_url, markdown)
        + (" \\| " if markdown else " | ")
        + _link("Basescan", token_url, markdown)
    )
    lines.append(_bold("CA:", markdown) + " " + _code(item.item_id, markdown))

    if not item.primary.is_empty:
        lines.append(_bold("Launcher:", markdown))
        lines.extend(_actor_lines(item.primary, item.network, markdown))
    if item.secondary and not item.secondary.is_empty:
        lines.append(_bold("Fee recipient:", markdown))
        lines.extend(_actor_lines(item.secondary, item.network, markdown))

    if result.deploy_count > 1:
        lines.append(
            _bold("Deploys (in feed):", markdown)
            + " "
            + _esc(result.deploy_count, markdown)
        )
    if item.tweet_url:
        lines.append(_bold("Tweet:", markdown) + " " + _esc(item.tweet_url, markdown))
    if item.website:
        lines.append(_bold("Website:", markdown) + " " + _esc(item.website, markdown))
    known_handles = {item.primary.x_handle}
    if item.secondary:
        known_handles.add(item.secondary.x_handle)
    if item.x_link and item.x_link.lower().lstrip("@") not in known_handles:
        label = item.x_link if item.x_link.startswith("http") else f"@{item.x_link}"
        link = _link(label, x_profile_url(item.x_link), markdown)
        lines.append(_bold("X:", markdown) + " " + link)
    return truncate("\n".join(lines))


def format_watch_list(
    view: WatchListView,
    defaults: WatchSets | None = None,
    markdown: bool = True,
) -> str:
    """Render a scope's stored entries; environment defaults are listed separately."""
    sections = (
        ("X", view.x, lambda v: f"@{v}"),
        ("Farcaster", view.fc, str),
        ("Wallets", view.wallet, str),
        ("Keywords", view.keyword, str),
    )
    lines: List[str] = [_bold("Watch list", markdown)]
    empty = True
    for title, values, render in sections:
        if not values:
            continue
        empty = False
        lines.append(_bold(f"{title}:", markdown))
        lines.extend(f"• {_esc(render(value), markdown)}" for value in values)
    if empty:
        lines.append(
            _esc("No entries yet. Use /watch add <x|fc|wallet|keyword> <value>.", markdown)
        )
    if defaults and not defaults.is_empty:
        count = sum(
            len(values)
            for values in (defaults.x, defaults.fc, defaults.wallet, defaults.keyword)
        )
        noun = "entry" if count == 1 else "entries"
        lines.append(
            _esc(f"Plus {count} global default {noun} from configuration.", markdown)
        )
    return truncate("\n".join(lines))


def format_rules(
    config: FilterConfig, interval_minutes: int, markdown: bool = True
) -> str:
    max_deploys = (
        str(config.max_items_per_actor)
        if config.max_items_per_actor is not None
        else "off"
    )
    lines = [
        _bold("Alert rules", markdown),
        _esc(
            f"Shared X/Farcaster between deployer and fee recipient: "
            f"{'on' if config.require_shared_identity else 'off'}",
            markdown,
        ),
        _esc(f"Max deploys per wallet: {max_deploys}", markdown),
        _esc(f"Poll interval: {interval_minutes} min", markdown),
        _esc("Watch-list matches always bypass these rules.", markdown),
    ]
    return "\n".join(lines)


def format_lookup_result(
    result: LookupResult,
    page: int = 0,
    page_size: int = 5,
    markdown: bool = True,
) -> str:
    if not result.matches:
        return _esc(
            "No Bankr tokens found for this wallet, X handle, or Farcaster handle.\n"
            f"Try {result.search_url}",
            markdown,
        )
    pages = max(1, -(-len(result.matches) // page_size))
    page = min(max(page, 0), pages - 1)
    start = page * page_size
    chunk = result.matches[start : start + page_size]

    lines = [
        _bold(f"Lookup: {result.query}", markdown),
        _esc(
            f"{result.total_count} token(s) · page {page + 1}/{pages}",
            markdown,
        ),
        "",
    ]
    for item in chunk:
        lines.append(
            _link(f"{item.name} (${item.symbol})", bankr_launch_url(item.item_id), markdown)
        )
        lines.append("  CA: " + _code(item.item_id, markdown))
        if not item.primary.is_empty:
            lines.append(_esc("  Deployer: " + _actor_summary(item.primary), markdown))
        if item.secondary and not item.secondary.is_empty:
            lines.append(_esc("  Fee recipient: " + _actor_summary(item.secondary), markdown))
    lines.append("")
    lines.append(_link("Full list on bankr.bot", result.search_url, markdown))
    return truncate("\n".join(lines))


def _actor_summary(actor: Actor) -> str:
    parts = []
    if actor.address:
        parts.append(actor.address)
    if actor.x_handle:
        parts.append(f"X: @{actor.x_handle}")
    if actor.fc_handle:
        parts.append(f"FC: {actor.fc_handle}")
    return " ".join(parts)


def format_fees_summary(summary: FeesSummary, markdown: bool = True) -> str:
    if summary.error:
        return _esc(summary.error, markdown)
    lines = [
        _bold(f"Fees: {summary.query}", markdown),
        _esc(f"Fee recipient: {summary.fee_wallet or 'unknown'}", markdown),
        _esc(f"Tokens as fee recipient: {summary.match_count}", markdown),
    ]
    if not summary.indexer_used:
        lines.append(
            _esc(
                "The indexer returned no cumulated fees for these tokens. "
                "Set DOPPLER_INDEXER_URL to an indexer that supports cumulatedFees.",
                markdown,
            )
        )
        return "\n".join(lines)
    lines.append(
        _esc(f"Total accrued (USD): {format_usd(summary.total_usd)}", markdown)
    )
    for token in summary.tokens:
        lines.append(
            _esc(
                f"• {token.name} (${token.symbol}): {format_usd(token.total_fees_usd)}",
                markdown,
            )
        )
    lines.append(_esc("Claim via the Bankr app: bankr fees claim <token>", markdown))
    return truncate("\n".join(lines))


def format_token_report(report: TokenReport, markdown: bool = True) -> str:
    if report.error or report.item is None:
        return _esc(report.error or "No Bankr launch found for this token.", markdown)
    item = report.item
    title = f"{item.name} (${item.symbol})"
    lines = [
        _link(title, bankr_launch_url(item.item_id), markdown),
        "CA: " + _code(item.item_id, markdown),
    ]
    if not item.primary.is_empty:
        lines.append(_esc("Deployer: " + _actor_summary(item.primary), markdown))
    if item.secondary and not item.secondary.is_empty:
        lines.append(_esc("Fee recipient: " + _actor_summary(item.secondary), markdown))
    if report.pool:
        lines.append("Pool: " + _code(report.pool, markdown))
    if report.fees:
        fees = report.fees
        lines.append(
            _esc(f"Accrued fees (USD): {format_usd(fees.total_fees_usd)}", markdown)
        )
        lines.append(
            _esc(
                f"Token: {fees.token_amount:.4f} ${item.symbol} · "
                f"WETH: {fees.weth_amount:.6f}",
                markdown,
            )
        )
    elif report.pool:
        lines.append(
            _esc("The indexer returned no cumulated fees for this pool.", markdown)
        )
    return truncate("\n".join(lines))


def format_deploy_result(result: dict, markdown: bool = True) -> str:
    simulated = bool(result.get("simulated"))
    token = result.get("tokenAddress")
    lines = [_bold("Simulated deploy" if simulated else "Token deployed", markdown)]
    if token:
        lines.append("CA: " + _code(str(token), markdown))
        lines.append(_link("View on Bankr", bankr_launch_url(str(token)), markdown))
    for key, label in (("poolId", "Pool"), ("txHash", "Tx")):
        if result.get(key):
            lines.append(_esc(f"{label}: {result[key]}", markdown))
    rate_limit = result.get("rateLimit")
    remaining = getattr(rate_limit, "remaining", None)
    if remaining is not None:
        lines.append(_esc(f"Deploys left today: {remaining}", markdown))
    return "\n".join(lines)


def join_messages(parts: Iterable[str]) -> str:
    return "\n\n".join(part for part in parts if part)


def truncate(text: str, limit: int = TELEGRAM_MESSAGE_LIMIT) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 1] + "…"

