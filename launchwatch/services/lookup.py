"""Find launches by deployer or fee recipient (wallet, X, or Farcaster)."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from launchwatch.bankr_client import BankrClient
from launchwatch.models import Actor, NormalizedItem, is_valid_address
from launchwatch.sources.mapping import map_bankr_launch
from launchwatch.utils.http import UpstreamError
from launchwatch.utils.logging import get_logger

logger = get_logger(__name__)

X_URL_PATTERN = re.compile(
    r"^(?:https?://)?(?:www\.)?(?:x\.com|twitter\.com)/([a-zA-Z0-9_]+)", re.IGNORECASE
)
FC_URL_PATTERN = re.compile(
    r"^(?:https?://)?(?:www\.)?(?:warpcast\.com/~/|warpcast\.com/|farcaster\.xyz/)"
    r"([a-zA-Z0-9_.-]+)",
    re.IGNORECASE,
)
WRAPPED_HANDLE_PATTERN = re.compile(r"^[xXfF]\(([^)]+)\)$")


class LookupRole(str, Enum):
    DEPLOYER = "deployer"
    FEE = "fee"
    BOTH = "both"

    @classmethod
    def parse(cls, value: str | None) -> "LookupRole":
        if not value:
            return cls.BOTH
        lowered = value.strip().lower()
        if lowered in {"deployer", "dev", "creator"}:
            return cls.DEPLOYER
        if lowered in {"fee", "fees", "recipient", "beneficiary"}:
            return cls.FEE
        return cls.BOTH


@dataclass(frozen=True)
class LookupQuery:
    raw: str
    normalized: str
    is_wallet: bool


@dataclass
class LookupResult:
    query: str
    normalized: Optional[str]
    total_count: int = 0
    matches: List[NormalizedItem] = field(default_factory=list)

    @property
    def search_url(self) -> str:
        return f"https://bankr.bot/launches/search?q={self.query.strip()}"


def parse_query(raw: str | None) -> Optional[LookupQuery]:
    """Resolve wallet, @handle, x(handle), F(handle), or profile URL to one term."""
    text = str(raw or "").strip()
    if not text:
        return None
    for pattern in (X_URL_PATTERN, FC_URL_PATTERN):
        match = pattern.match(text)
        if match:
            handle = match.group(1).lower()
            return LookupQuery(raw=text, normalized=handle, is_wallet=False)
    if is_valid_address(text):
        return LookupQuery(raw=text, normalized=text.lower(), is_wallet=True)
    term = text[1:] if text.startswith("@") else text
    wrapped = WRAPPED_HANDLE_PATTERN.match(term)
    if wrapped:
        term = wrapped.group(1)
    term = term.strip().lower()
    if not term:
        return None
    return LookupQuery(raw=text, normalized=term, is_wallet=False)


def _actor_matches(actor: Optional[Actor], query: LookupQuery) -> bool:
    if actor is None:
        return False
    if query.is_wallet:
        return actor.address == query.normalized
    return query.normalized in {actor.x_handle, actor.fc_handle}


def launch_matches(item: NormalizedItem, query: LookupQuery, role: LookupRole) -> bool:
    if role is LookupRole.DEPLOYER:
        return _actor_matches(item.primary, query)
    if role is LookupRole.FEE:
        return _actor_matches(item.secondary, query)
    return _actor_matches(item.primary, query) or _actor_matches(item.secondary, query)


class LookupService:
    def __init__(self, bankr: BankrClient, network: int, list_limit: int = 500) -> None:
        self.bankr = bankr
        self.network = network
        self.list_limit = list_limit

    async def lookup(
        self, raw_query: str, role: LookupRole | str = LookupRole.BOTH
    ) -> LookupResult:
        """Search first; with an API key, merge in matches from the full launch list.

        The search endpoint caps its results, so the full list is the only way
        to see every launch for prolific deployers.
        """
        role = role if isinstance(role, LookupRole) else LookupRole.parse(role)
        query = parse_query(raw_query)
        if query is None:
            return LookupResult(query=str(raw_query or ""), normalized=None)

        result = LookupResult(query=query.raw, normalized=query.normalized)
        seen: set[str] = set()

        def _collect(raw_launches) -> None:
            for raw in raw_launches:
                item = map_bankr_launch(raw, self.network)
                if item is None or item.item_id in seen:
                    continue
                if launch_matches(item, query, role):
                    seen.add(item.item_id)
                    result.matches.append(item)

        try:
            launches, total = await self.bankr.search(query.raw)
            _collect(launches)
            result.total_count = total
        except UpstreamError as exc:
            logger.warning("lookup_search_failed", query=query.normalized, error=str(exc))

        if self.bankr.has_api_key:
            try:
                _collect(await self.bankr.list_launches(self.list_limit))
                result.total_count = len(result.matches)
            except UpstreamError as exc:
                logger.warning(
                    "lookup_list_failed", query=query.normalized, error=str(exc)
                )

        if result.total_count == 0 and result.matches:
            result.total_count = len(result.matches)
        logger.info(
            "lookup_complete",
            query=query.normalized,
            role=role.value,
            matches=len(result.matches),
        )
        return result
