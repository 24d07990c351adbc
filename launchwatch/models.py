"""Core data types shared by sources, the filter engine, and delivery."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, List, Optional

ADDRESS_PATTERN = re.compile(r"^0x[a-fA-F0-9]{40}$")

BASE_CHAIN_ID = 8453
GLOBAL_SCOPE = "global"


def tenant_scope(tenant_id: int | str) -> str:
    """Return the storage scope key for a tenant (a Telegram chat)."""
    return f"tenant:{tenant_id}"


def is_valid_address(value: str | None) -> bool:
    if not value or not isinstance(value, str):
        return False
    return bool(ADDRESS_PATTERN.match(value.strip()))


def normalize_address(value: str | None) -> str | None:
    """Lowercase and strip an address; return None when it is not 0x + 40 hex."""
    if not is_valid_address(value):
        return None
    return value.strip().lower()


def normalize_x_handle(value: str | None) -> str | None:
    """X (Twitter) handles: trimmed, lowercased, leading '@' removed."""
    if not value or not isinstance(value, str):
        return None
    handle = value.strip().lower()
    if handle.startswith("@"):
        handle = handle[1:]
    return handle or None


def normalize_fc_handle(value: str | None) -> str | None:
    """Farcaster handles: trimmed and lowercased."""
    if not value or not isinstance(value, str):
        return None
    handle = value.strip().lower()
    return handle or None


class WatchAxis(str, Enum):
    """The four independent watch-list axes."""

    X = "x"
    FARCASTER = "fc"
    WALLET = "wallet"
    KEYWORD = "keyword"

    @classmethod
    def parse(cls, value: "WatchAxis | str") -> "WatchAxis":
        if isinstance(value, cls):
            return value
        aliases = {
            "x": cls.X,
            "twitter": cls.X,
            "fc": cls.FARCASTER,
            "farcaster": cls.FARCASTER,
            "wallet": cls.WALLET,
            "address": cls.WALLET,
            "keyword": cls.KEYWORD,
            "keywords": cls.KEYWORD,
            "kw": cls.KEYWORD,
        }
        try:
            return aliases[value.strip().lower()]
        except KeyError as exc:
            raise ValueError(f"Unknown watch type: {value!r}") from exc


@dataclass(frozen=True)
class Actor:
    """An address economically tied to a launch, with optional social handles."""

    address: Optional[str] = None
    x_handle: Optional[str] = None
    fc_handle: Optional[str] = None

    @classmethod
    def build(
        cls,
        address: str | None = None,
        x_handle: str | None = None,
        fc_handle: str | None = None,
    ) -> "Actor":
        return cls(
            address=normalize_address(address),
            x_handle=normalize_x_handle(x_handle),
            fc_handle=normalize_fc_handle(fc_handle),
        )

    @property
    def is_empty(self) -> bool:
        return not (self.address or self.x_handle or self.fc_handle)


@dataclass(frozen=True)
class NormalizedItem:
    """One candidate token launch, in the shape every source maps into."""

    item_id: str
    network: int
    name: str
    symbol: str
    primary: Actor
    secondary: Optional[Actor] = None
    image: Optional[str] = None
    website: Optional[str] = None
    tweet_url: Optional[str] = None
    pool: Optional[str] = None
    x_link: Optional[str] = None
    source: str = ""

    @property
    def seen_key(self) -> str:
        return f"{self.network}:{self.item_id}"

    @property
    def free_text(self) -> str:
        return f"{self.name} (${self.symbol})"


@dataclass(frozen=True)
class WatchSets:
    """Effective watch criteria for one scope. All values are normalized."""

    x: FrozenSet[str] = frozenset()
    fc: FrozenSet[str] = frozenset()
    wallet: FrozenSet[str] = frozenset()
    keyword: FrozenSet[str] = frozenset()

    @property
    def is_empty(self) -> bool:
        return not (self.x or self.fc or self.wallet or self.keyword)

    def union(self, other: "WatchSets") -> "WatchSets":
        return WatchSets(
            x=self.x | other.x,
            fc=self.fc | other.fc,
            wallet=self.wallet | other.wallet,
            keyword=self.keyword | other.keyword,
        )


@dataclass(frozen=True)
class FilterConfig:
    """General-feed filter knobs for one scope."""

    require_shared_identity: bool = False
    max_items_per_actor: Optional[int] = None


class Verdict(str, Enum):
    DUPLICATE = "duplicate"
    SUPPRESSED = "suppressed"
    DELIVERED = "delivered"


@dataclass(frozen=True)
class Decision:
    verdict: Verdict
    passes_general_filter: bool = False
    is_watch_match: bool = False


@dataclass
class CycleResult:
    """One non-duplicate item and how the delivery layer should route it."""

    item: NormalizedItem
    delivered: bool
    is_watch_match: bool
    passes_general_filter: bool
    deploy_count: int = 0

    def as_dict(self) -> Dict[str, object]:
        return {
            "item_id": self.item.item_id,
            "network": self.item.network,
            "name": self.item.name,
            "symbol": self.item.symbol,
            "deployer": self.item.primary.address,
            "delivered": self.delivered,
            "is_watch_match": self.is_watch_match,
            "passes_general_filter": self.passes_general_filter,
            "deploy_count": self.deploy_count,
        }


@dataclass
class WatchListView:
    """Display snapshot of one scope's stored watch entries."""

    x: List[str] = field(default_factory=list)
    fc: List[str] = field(default_factory=list)
    wallet: List[str] = field(default_factory=list)
    keyword: List[str] = field(default_factory=list)


__all__ = [
    "ADDRESS_PATTERN",
    "BASE_CHAIN_ID",
    "GLOBAL_SCOPE",
    "Actor",
    "CycleResult",
    "Decision",
    "FilterConfig",
    "NormalizedItem",
    "Verdict",
    "WatchAxis",
    "WatchListView",
    "WatchSets",
    "is_valid_address",
    "normalize_address",
    "normalize_fc_handle",
    "normalize_x_handle",
    "tenant_scope",
]
