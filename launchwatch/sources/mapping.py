"""Per-upstream mapping from raw payloads to `NormalizedItem`.

Each mapper returns ``None`` when the payload cannot produce an item (no valid
token address); callers skip those rather than emitting partial items.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from launchwatch.chain_client import ChainLaunch
from launchwatch.models import Actor, NormalizedItem, normalize_address

SOURCE_BANKR = "bankr"
SOURCE_INDEXER = "indexer"
SOURCE_CHAIN = "chain"


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def farcaster_of(actor: Optional[Dict[str, Any]]) -> Optional[str]:
    """Bankr has shipped the Farcaster handle under three different keys."""
    if not isinstance(actor, dict):
        return None
    return _text(
        actor.get("farcasterUsername") or actor.get("farcaster") or actor.get("fcUsername")
    )


def _bankr_actor(raw: Any) -> Optional[Actor]:
    if not isinstance(raw, dict):
        return None
    actor = Actor.build(
        address=_text(raw.get("walletAddress")),
        x_handle=_text(raw.get("xUsername")),
        fc_handle=farcaster_of(raw),
    )
    return None if actor.is_empty else actor


def _uri_links(token_uri_data: Any) -> Dict[str, Optional[str]]:
    if not isinstance(token_uri_data, dict):
        return {"x": None, "website": None}
    content = token_uri_data.get("content")
    content_uri = content.get("uri") if isinstance(content, dict) else None
    return {
        "x": _text(token_uri_data.get("x") or token_uri_data.get("twitter")),
        "website": _text(
            token_uri_data.get("websiteUrl")
            or token_uri_data.get("website")
            or content_uri
        ),
    }


def map_bankr_launch(raw: Dict[str, Any], network: int) -> Optional[NormalizedItem]:
    """Map one Bankr `/token-launches` entry.

    Args:
        raw: Launch object with `tokenAddress`, `deployer`, `feeRecipient`.
        network: Chain id the launch belongs to.

    Returns:
        The normalized item, or None when `tokenAddress` is missing/invalid.
    """
    if not isinstance(raw, dict):
        return None
    item_id = normalize_address(_text(raw.get("tokenAddress")))
    if item_id is None:
        return None
    primary = _bankr_actor(raw.get("deployer")) or Actor()
    secondary = _bankr_actor(raw.get("feeRecipient"))
    x_link = primary.x_handle or (secondary.x_handle if secondary else None)
    return NormalizedItem(
        item_id=item_id,
        network=network,
        name=_text(raw.get("tokenName")) or "Unknown",
        symbol=_text(raw.get("tokenSymbol")) or "?",
        primary=primary,
        secondary=secondary,
        image=_text(raw.get("imageUri")),
        website=_text(raw.get("websiteUrl")),
        tweet_url=_text(raw.get("tweetUrl")),
        pool=_text(raw.get("poolId")),
        x_link=x_link,
        source=SOURCE_BANKR,
    )


def map_indexer_token(raw: Dict[str, Any], network: int) -> Optional[NormalizedItem]:
    """Map one Doppler indexer `tokens.items` entry."""
    if not isinstance(raw, dict):
        return None
    item_id = normalize_address(_text(raw.get("address")))
    if item_id is None:
        return None

    pool = raw.get("pool")
    pool_address = None
    secondary = None
    if isinstance(pool, dict):
        pool_address = _text(pool.get("address"))
        beneficiaries = pool.get("beneficiaries")
        if isinstance(beneficiaries, list) and beneficiaries:
            first = beneficiaries[0]
            if isinstance(first, dict):
                actor = Actor.build(address=_text(first.get("beneficiary")))
                secondary = None if actor.is_empty else actor
    elif pool is not None:
        pool_address = _text(pool)

    links = _uri_links(raw.get("tokenUriData"))
    return NormalizedItem(
        item_id=item_id,
        network=network,
        name=_text(raw.get("name")) or "Unknown",
        symbol=_text(raw.get("symbol")) or "?",
        primary=Actor.build(address=_text(raw.get("creatorAddress"))),
        secondary=secondary,
        image=_text(raw.get("image")),
        website=links["website"],
        pool=pool_address,
        x_link=links["x"],
        source=SOURCE_INDEXER,
    )


def map_chain_launch(raw: ChainLaunch, network: int) -> Optional[NormalizedItem]:
    """Map an Airlock `Create` log. Logs carry no deployer, so the actor is empty."""
    item_id = normalize_address(raw.token_address)
    if item_id is None:
        return None
    return NormalizedItem(
        item_id=item_id,
        network=network,
        name=_text(raw.name) or "Unknown",
        symbol=_text(raw.symbol) or "?",
        primary=Actor(),
        website=_text(raw.website),
        pool=_text(raw.pool),
        x_link=_text(raw.x),
        source=SOURCE_CHAIN,
    )
