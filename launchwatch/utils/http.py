"""Shared aiohttp helpers for upstream JSON APIs."""

from __future__ import annotations

import asyncio
from typing import Any, Dict, Mapping, Optional

import aiohttp


class UpstreamError(RuntimeError):
    """An upstream API failed: transport error, non-2xx status, or bad payload."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


async def request_json(
    session: aiohttp.ClientSession,
    method: str,
    url: str,
    *,
    headers: Optional[Mapping[str, str]] = None,
    params: Optional[Mapping[str, Any]] = None,
    json: Any = None,
) -> Any:
    """Perform a request and decode its JSON body, raising UpstreamError on failure."""
    try:
        async with session.request(
            method, url, headers=headers, params=params, json=json
        ) as resp:
            if resp.status >= 400:
                body = (await resp.text())[:200]
                raise UpstreamError(
                    f"{method} {url} -> HTTP {resp.status}: {body}", resp.status
                )
            return await resp.json(content_type=None)
    except UpstreamError:
        raise
    except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
        raise UpstreamError(f"{method} {url} failed: {exc}") from exc


def default_headers(api_key: str | None = None) -> Dict[str, str]:
    headers = {"Accept": "application/json"}
    if api_key:
        headers["X-API-Key"] = api_key.strip()
    return headers


def client_timeout(seconds: float) -> aiohttp.ClientTimeout:
    return aiohttp.ClientTimeout(total=seconds)
