"""Doppler Airlock `Create` event scanner over JSON-RPC."""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import aiohttp
from web3 import AsyncWeb3, Web3
from web3.providers import AsyncHTTPProvider

from launchwatch.models import GLOBAL_SCOPE
from launchwatch.store.db import Database
from launchwatch.store.repository import Repository
from launchwatch.utils.http import UpstreamError, client_timeout, request_json
from launchwatch.utils.logging import get_logger

logger = get_logger(__name__)

IPFS_GATEWAY = "https://ipfs.io/ipfs/"
CREATE_TOPIC = Web3.keccak(text="Create(address,address,address,address)")

AIRLOCK_ABI = [
    {
        "anonymous": False,
        "inputs": [
            {"indexed": False, "name": "asset", "type": "address"},
            {"indexed": True, "name": "numeraire", "type": "address"},
            {"indexed": False, "name": "initializer", "type": "address"},
            {"indexed": False, "name": "poolOrHook", "type": "address"},
        ],
        "name": "Create",
        "type": "event",
    }
]

ERC20_METADATA_ABI = [
    {
        "inputs": [],
        "name": "name",
        "outputs": [{"name": "", "type": "string"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "symbol",
        "outputs": [{"name": "", "type": "string"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [{"name": "id", "type": "uint256"}],
        "name": "tokenURI",
        "outputs": [{"name": "", "type": "string"}],
        "stateMutability": "view",
        "type": "function",
    },
]


@dataclass
class ChainLaunch:
    token_address: str
    pool: str
    name: str
    symbol: str
    block_number: int
    tx_hash: str
    x: Optional[str] = None
    website: Optional[str] = None


def ipfs_to_http(uri: str) -> str:
    if uri.startswith("ipfs://"):
        return IPFS_GATEWAY + uri[len("ipfs://") :]
    return uri


def block_ranges(start: int, end: int, chunk_size: int) -> List[tuple[int, int]]:
    """Inclusive [lo, hi] ranges covering start..end, each at most chunk_size blocks."""
    chunk_size = max(1, chunk_size)
    ranges = []
    lo = start
    while lo <= end:
        hi = min(lo + chunk_size - 1, end)
        ranges.append((lo, hi))
        lo = hi + 1
    return ranges


class ChainScanner:
    """Reads new launches from Airlock logs since a scope's last scanned block.

    Each scope keeps its own cursor. A scan only records where the cursor
    should move; `commit_cursor` stores it once the caller has persisted the
    scope's results, so a failed cycle rescans the same blocks.
    """

    def __init__(
        self,
        rpc_url: str,
        airlock_address: str,
        db: Database,
        chain_id: int,
        blocks_back: int = 5000,
        chunk_size: int = 10,
        timeout_seconds: float = 20.0,
        w3: AsyncWeb3 | None = None,
    ) -> None:
        self.w3 = w3 or AsyncWeb3(
            AsyncHTTPProvider(rpc_url, request_kwargs={"timeout": timeout_seconds})
        )
        self.airlock_address = AsyncWeb3.to_checksum_address(airlock_address)
        self.db = db
        self.chain_id = chain_id
        self.blocks_back = blocks_back
        self.chunk_size = chunk_size
        self.timeout_seconds = timeout_seconds
        self._airlock = self.w3.eth.contract(
            address=self.airlock_address, abi=AIRLOCK_ABI
        )
        self._pending_cursors: Dict[str, int] = {}

    def cursor_key(self, scope: str) -> str:
        return f"chain_cursor:{self.chain_id}:{scope}"

    async def _load_cursor(self, scope: str) -> Optional[int]:
        try:
            async with self.db.session() as session:
                raw = await Repository(session).get_setting(self.cursor_key(scope))
        except Exception as exc:
            logger.warning("chain_cursor_load_failed", scope=scope, error=str(exc))
            return None
        try:
            return int(raw) if raw is not None else None
        except ValueError:
            return None

    def discard_cursor(self, scope: str) -> None:
        self._pending_cursors.pop(scope, None)

    async def commit_cursor(self, scope: str) -> bool:
        """Store the block recorded by the last scan for `scope`, if any."""
        block = self._pending_cursors.pop(scope, None)
        if block is None:
            return True
        try:
            async with self.db.session() as session:
                await Repository(session).set_setting(
                    self.cursor_key(scope), str(block)
                )
        except Exception as exc:
            logger.warning(
                "chain_cursor_save_failed", scope=scope, block=block, error=str(exc)
            )
            return False
        return True

    async def _create_logs(self, start: int, end: int) -> List[Any]:
        event = self._airlock.events.Create()
        logs: List[Any] = []
        for lo, hi in block_ranges(start, end, self.chunk_size):
            raw = await self.w3.eth.get_logs(
                {
                    "address": self.airlock_address,
                    "topics": [CREATE_TOPIC],
                    "fromBlock": lo,
                    "toBlock": hi,
                }
            )
            logs.extend(event.process_log(entry) for entry in raw)
        return logs

    async def _token_metadata(self, token: str) -> Optional[Dict[str, Any]]:
        contract = self.w3.eth.contract(
            address=AsyncWeb3.to_checksum_address(token), abi=ERC20_METADATA_ABI
        )
        try:
            name, symbol = await asyncio.gather(
                contract.functions.name().call(),
                contract.functions.symbol().call(),
            )
        except Exception as exc:
            logger.debug("chain_token_metadata_failed", token=token, error=str(exc))
            return None
        try:
            token_uri = await contract.functions.tokenURI(1).call()
        except Exception:
            token_uri = None
        return {"name": name, "symbol": symbol, "token_uri": token_uri}

    async def _token_uri_links(
        self, session: aiohttp.ClientSession, uri: Optional[str]
    ) -> Dict[str, Optional[str]]:
        if not uri:
            return {}
        try:
            data = await request_json(session, "GET", ipfs_to_http(uri))
        except UpstreamError:
            return {}
        if isinstance(data, str):
            try:
                data = json.loads(data)
            except ValueError:
                return {}
        if not isinstance(data, dict):
            return {}
        content = data.get("content") if isinstance(data.get("content"), dict) else {}
        return {
            "x": data.get("x") or data.get("twitter"),
            "website": data.get("websiteUrl") or data.get("website") or content.get("uri"),
        }

    async def fetch_new_launches(self, scope: str = GLOBAL_SCOPE) -> List[ChainLaunch]:
        """Scan from the scope's cursor to head, newest first.

        The scan never reaches back more than `blocks_back` blocks. When token
        metadata cannot be read for a launch, the recorded cursor stops just
        before that launch's block so the next scan retries it.
        """
        self.discard_cursor(scope)
        try:
            head = await self.w3.eth.block_number
            start = max(0, head - self.blocks_back)
            last = await self._load_cursor(scope)
            if last is not None:
                if last >= head:
                    return []
                start = max(last + 1, start)
            logs = await self._create_logs(start, head)
        except Exception as exc:
            raise UpstreamError(f"RPC scan failed: {exc}") from exc

        cursor = head
        launches: List[ChainLaunch] = []
        async with aiohttp.ClientSession(
            timeout=client_timeout(self.timeout_seconds)
        ) as session:
            for log in logs:
                args = log["args"]
                token = str(args["asset"])
                block = int(log["blockNumber"])
                meta = await self._token_metadata(token)
                if meta is None:
                    cursor = min(cursor, block - 1)
                    continue
                links = await self._token_uri_links(session, meta["token_uri"])
                launches.append(
                    ChainLaunch(
                        token_address=token,
                        pool=str(args["poolOrHook"]),
                        name=meta["name"],
                        symbol=meta["symbol"],
                        block_number=block,
                        tx_hash=AsyncWeb3.to_hex(log["transactionHash"]),
                        x=links.get("x"),
                        website=links.get("website"),
                    )
                )
        if last is not None:
            cursor = max(cursor, last)
        self._pending_cursors[scope] = cursor
        launches.sort(key=lambda launch: launch.block_number, reverse=True)
        logger.info(
            "chain_scan_complete",
            scope=scope,
            from_block=start,
            to_block=head,
            cursor=cursor,
            launches=len(launches),
        )
        return launches
