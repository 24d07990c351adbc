"""Token deploy proxy over the Bankr deploy API."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from launchwatch.bankr_client import BankrClient, DeployError
from launchwatch.utils.logging import get_logger

logger = get_logger(__name__)

FEE_RECIPIENT_TYPES = ("wallet", "x", "farcaster", "ens")
MAX_NAME_LENGTH = 100
MAX_SYMBOL_LENGTH = 10
MAX_DESCRIPTION_LENGTH = 500


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass
class FeeRecipient:
    type: str
    value: str


def build_deploy_body(
    token_name: str,
    token_symbol: str | None = None,
    description: str | None = None,
    image: str | None = None,
    website_url: str | None = None,
    tweet_url: str | None = None,
    fee_recipient: FeeRecipient | None = None,
    simulate_only: bool = False,
) -> Dict[str, Any]:
    """Build the JSON body for `POST /token-launches/deploy`.

    Raises:
        DeployError: if ``token_name`` is empty.
    """
    name = _clean(token_name)
    if not name:
        raise DeployError("tokenName is required")
    body: Dict[str, Any] = {
        "tokenName": name[:MAX_NAME_LENGTH],
        "simulateOnly": bool(simulate_only),
    }
    symbol = _clean(token_symbol)
    if symbol:
        body["tokenSymbol"] = symbol[:MAX_SYMBOL_LENGTH]
    text = _clean(description)
    if text:
        body["description"] = text[:MAX_DESCRIPTION_LENGTH]
    links = (("image", image), ("websiteUrl", website_url), ("tweetUrl", tweet_url))
    for key, value in links:
        cleaned = _clean(value)
        if cleaned:
            body[key] = cleaned
    if fee_recipient and _clean(fee_recipient.type) and _clean(fee_recipient.value):
        kind = fee_recipient.type.strip().lower()
        body["feeRecipient"] = {
            "type": kind if kind in FEE_RECIPIENT_TYPES else "wallet",
            "value": fee_recipient.value.strip(),
        }
    return body


async def deploy_token(bankr: BankrClient, body: Dict[str, Any]) -> Dict[str, Any]:
    result = await bankr.deploy(body)
    logger.info(
        "token_deploy_submitted",
        simulated=body.get("simulateOnly", False),
        token=result.get("tokenAddress"),
    )
    return result
