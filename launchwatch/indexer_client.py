"""Doppler indexer GraphQL client."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import aiohttp

from launchwatch.utils.http import UpstreamError, client_timeout, request_json
from launchwatch.utils.logging import get_logger

logger = get_logger(__name__)

RECENT_TOKENS_QUERY = """
query Tokens($chainId: Int!, $limit: Int!) {
  tokens(
    where: { chainId: $chainId }
    orderBy: "firstSeenAt"
    orderDirection: "desc"
    limit: $limit
  ) {
    items {
      address
      chainId
      name
      symbol
      image
      creatorAddress
      tokenUriData
      pool { address }
      volumeUsd
      holderCount
    }
  }
}
"""

POOLS_BY_BASE_TOKEN_QUERY = """
query Pools($baseToken: String!, $chainId: Int!) {
  pools(where: { baseToken: $baseToken, chainId: $chainId }) { items { address } }
}
"""

V4_POOLS_BY_BASE_TOKEN_QUERY = """
query V4Pools($baseToken: String!, $chainId: Int!) {
  v4pools(where: { baseToken: $baseToken, chainId: $chainId }, limit: 1) {
    items { poolId }
  }
}
"""

_FEES_FIELDS = "{ token0Fees token1Fees totalFeesUsd }"
CUMULATED_FEES_QUERIES = (
    # Custom plural resolver first, then Ponder's find-by-primary-key form.
    "query Fees($poolId: String!, $chainId: Int!, $beneficiary: String!) {"
    " cumulatedFees(poolId: $poolId, chainId: $chainId, beneficiary: $beneficiary) "
    + _FEES_FIELDS
    + " }",
    "query Fee($poolId: String!, $chainId: Int!, $beneficiary: String!) {"
    " cumulatedFee(poolId: $poolId, chainId: $chainId, beneficiary: $beneficiary) "
    + _FEES_FIELDS
    + " }",
)


class IndexerClient:
    """POSTs GraphQL queries to `<indexer>/graphql`."""

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 20.0,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._session = session
        self._owns_session = session is None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=client_timeout(self.timeout_seconds)
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._session and self._owns_session and not self._session.closed:
            await self._session.close()

    async def graphql(self, query: str, variables: Dict[str, Any]) -> Dict[str, Any]:
        payload = await request_json(
            self._get_session(),
            "POST",
            f"{self.base_url}/graphql",
            json={"query": query, "variables": variables},
        )
        if not isinstance(payload, dict):
            raise UpstreamError("Indexer returned a non-object payload")
        if payload.get("errors"):
            raise UpstreamError(f"GraphQL errors: {payload['errors']}")
        return payload.get("data") or {}

    async def recent_tokens(self, chain_id: int, limit: int = 50) -> List[Dict[str, Any]]:
        data = await self.graphql(
            RECENT_TOKENS_QUERY, {"chainId": chain_id, "limit": limit}
        )
        items = (data.get("tokens") or {}).get("items") or []
        return [item for item in items if isinstance(item, dict)]

    async def pool_for_token(self, token_address: str, chain_id: int) -> Optional[str]:
        """Return the pool address or V4 pool id whose base token is `token_address`."""
        variables = {"baseToken": token_address, "chainId": chain_id}
        try:
            data = await self.graphql(POOLS_BY_BASE_TOKEN_QUERY, variables)
            pools = data.get("pools")
            items = pools if isinstance(pools, list) else (pools or {}).get("items") or []
            if items and items[0].get("address"):
                return items[0]["address"]
        except UpstreamError as exc:
            logger.debug("indexer_pools_query_failed", token=token_address, error=str(exc))

        data = await self.graphql(V4_POOLS_BY_BASE_TOKEN_QUERY, variables)
        items = (data.get("v4pools") or {}).get("items") or []
        if items and items[0].get("poolId"):
            return items[0]["poolId"]
        return None

    async def cumulated_fees(
        self, pool_id: str, chain_id: int, beneficiary: str
    ) -> Optional[Dict[str, Any]]:
        variables = {"poolId": pool_id, "chainId": chain_id, "beneficiary": beneficiary}
        last_error: UpstreamError | None = None
        for query in CUMULATED_FEES_QUERIES:
            try:
                data = await self.graphql(query, variables)
            except UpstreamError as exc:
                last_error = exc
                continue
            fees = data.get("cumulatedFees") or data.get("cumulatedFee")
            if isinstance(fees, list):
                fees = fees[0] if fees else None
            if fees:
                return fees
        if last_error:
            logger.debug("indexer_fees_query_failed", pool=pool_id, error=str(last_error))
        return None
