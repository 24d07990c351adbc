"""Launch providers and their mapping into normalized items."""

from launchwatch.sources.adapter import CandidateSource, ItemSource
from launchwatch.sources.mapping import (
    map_bankr_launch,
    map_chain_launch,
    map_indexer_token,
)

__all__ = [
    "CandidateSource",
    "ItemSource",
    "map_bankr_launch",
    "map_chain_launch",
    "map_indexer_token",
]
