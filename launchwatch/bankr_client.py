"""Bankr token-launch REST API client."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import aiohttp

from launchwatch.utils.http import (
    UpstreamError,
    client_timeout,
    default_headers,
    request_json,
)
from launchwatch.utils.logging import get_logger

logger = get_logger(__name__)

DEPLOYED_STATUS = "deployed"


class DeployError(RuntimeError):
    """Deploy API rejected the request; message is safe to show to users."""


@dataclass
class RateLimit:
    remaining: Optional[int] = None
    limit: Optional[int] = None
    retry_after_sec: Optional[int] = None

    @classmethod
    def from_headers(cls, headers) -> "RateLimit":
        def _int(name: str) -> Optional[int]:
            raw = headers.get(name)
            if raw is None or raw == "":
                return None
            try:
                return int(raw)
            except ValueError:
                return None

        return cls(
            remaining=_int("X-RateLimit-Remaining"),
            limit=_int("X-RateLimit-Limit"),
            retry_after_sec=_int("Retry-After"),
        )


def _dedupe_deployed(
    launches: List[Dict[str, Any]], seen: set[str], out: List[Dict[str, Any]]
) -> int:
    """Append deployed launches not already in `seen`; return how many were added."""
    added = 0
    for launch in launches:
        if not isinstance(launch, dict) or launch.get("status") != DEPLOYED_STATUS:
            continue
        key = str(launch.get("tokenAddress") or "").lower()
        if not key or key in seen:
            continue
        seen.add(key)
        out.append(launch)
        added += 1
    return added


class BankrClient:
    """Thin async wrapper over api.bankr.bot."""

    PAGE_SIZE = 50

    def __init__(
        self,
        base_url: str = "https://api.bankr.bot",
        api_key: str | None = None,
        timeout_seconds: float = 20.0,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key.strip() if api_key else None
        self.timeout_seconds = timeout_seconds
        self._session = session
        self._owns_session = session is None

    @property
    def has_api_key(self) -> bool:
        return bool(self.api_key)

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

    async def list_launches(self, limit: int = 500) -> List[Dict[str, Any]]:
        """Newest-first deployed launches, paginated up to `limit`."""
        if not self.api_key:
            return []
        out: List[Dict[str, Any]] = []
        seen: set[str] = set()
        offset = 0
        while offset < limit:
            payload = await request_json(
                self._get_session(),
                "GET",
                f"{self.base_url}/token-launches",
                headers=default_headers(self.api_key),
                params={"limit": self.PAGE_SIZE, "offset": offset},
            )
            raw = payload.get("launches") if isinstance(payload, dict) else None
            batch = [
                launch
                for launch in (raw or [])
                if isinstance(launch, dict) and launch.get("status") == DEPLOYED_STATUS
            ]
            if not batch:
                break
            _dedupe_deployed(batch, seen, out)
            if len(batch) < self.PAGE_SIZE:
                break
            offset += len(batch)
        return out

    async def search(self, query: str) -> Tuple[List[Dict[str, Any]], int]:
        """Query the launch search endpoint; returns (launches, reported total)."""
        query = str(query or "").strip()
        if not query:
            return [], 0
        out: List[Dict[str, Any]] = []
        seen: set[str] = set()
        total_count = 0
        offset = 0
        while True:
            payload = await request_json(
                self._get_session(),
                "GET",
                f"{self.base_url}/token-launches/search",
                headers=default_headers(self.api_key),
                params={"q": query, "limit": self.PAGE_SIZE, "offset": offset},
            )
            groups = payload.get("groups") if isinstance(payload, dict) else None
            groups = groups or {}
            by_deployer = (groups.get("byDeployer") or {}).get("results") or []
            by_fee = (groups.get("byFeeRecipient") or {}).get("results") or []
            total = (groups.get("byDeployer") or {}).get("totalCount") or (
                groups.get("byFeeRecipient") or {}
            ).get("totalCount") or 0
            total_count = max(total_count, int(total))

            added = _dedupe_deployed([*by_deployer, *by_fee], seen, out)
            if added == 0 or (total_count and len(out) >= total_count):
                break
            if len(by_deployer) < self.PAGE_SIZE and len(by_fee) < self.PAGE_SIZE:
                break
            offset += self.PAGE_SIZE
        return out, total_count or len(out)

    async def get_launch(self, token_address: str) -> Optional[Dict[str, Any]]:
        """Fetch one launch record; None when Bankr has no launch for the token.

        Some records are keyed by the upper-cased hex form, so a 404 on the
        address as given is retried once with that spelling.
        """
        spellings = [token_address]
        upper = token_address[:2] + token_address[2:].upper()
        if upper != token_address:
            spellings.append(upper)
        for address in spellings:
            try:
                payload = await request_json(
                    self._get_session(),
                    "GET",
                    f"{self.base_url}/token-launches/{address}",
                    headers=default_headers(self.api_key),
                )
            except UpstreamError as exc:
                if exc.status == 404:
                    continue
                raise
            launch = payload.get("launch") if isinstance(payload, dict) else None
            if isinstance(launch, dict):
                return launch
        return None

    async def deploy(self, body: Dict[str, Any]) -> Dict[str, Any]:
        """POST a deploy request. Requires a key with write (Agent API) access."""
        if not self.api_key:
            raise DeployError(
                "BANKR_API_KEY is not set. Get a key with Agent API access at bankr.bot/api"
            )
        headers = {**default_headers(self.api_key), "Content-Type": "application/json"}
        session = self._get_session()
        try:
            async with session.post(
                f"{self.base_url}/token-launches/deploy", json=body, headers=headers
            ) as resp:
                rate_limit = RateLimit.from_headers(resp.headers)
                try:
                    data = await resp.json(content_type=None)
                except ValueError:
                    data = {}
                status = resp.status
                reason = resp.reason
        except asyncio.TimeoutError as exc:
            raise DeployError(
                "Deploy request timed out. Bankr may be unavailable."
            ) from exc
        except aiohttp.ClientError as exc:
            raise DeployError(f"Deploy request failed: {exc}") from exc

        data = data if isinstance(data, dict) else {}
        if 200 <= status < 300:
            return {**data, "rateLimit": rate_limit}
        logger.warning("bankr_deploy_rejected", status=status)
        if status == 401:
            raise DeployError("Invalid API key. Check BANKR_API_KEY.")
        if status == 403:
            raise DeployError(
                "API key must have Agent API (write) access. Enable at bankr.bot/api"
            )
        if status == 429:
            retry = (
                f"Retry after {rate_limit.retry_after_sec}s."
                if rate_limit.retry_after_sec is not None
                else "Try again later."
            )
            raise DeployError(
                "Rate limit exceeded (50 deploys/24h for this key; Bankr Club: 100/24h). "
                f"{retry} Or deploy at bankr.bot."
            )
        message = data.get("message") or data.get("error") or reason
        raise DeployError(message or f"Deploy failed ({status})")
