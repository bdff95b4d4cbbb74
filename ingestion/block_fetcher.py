"""Block Fetcher - Retrieves confirmed blocks over JSON-RPC."""

import asyncio
import json
import logging
from typing import Optional

import aiohttp

from .errors import FetchError, FetchErrorKind, TimeFetchError
from .models import Block

logger = logging.getLogger(__name__)

MAX_SUPPORTED_TRANSACTION_VERSION = 0


class BlockFetcher:
    """
    Fetches one block per slot from a Solana RPC endpoint.

    A fixed pacing delay is applied before every call as a crude rate
    limit. Failures are never retried.
    """

    def __init__(
        self,
        rpc_url: str,
        pacing_seconds: float = 1.0,
        timeout_seconds: float = 30.0,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        """
        Initialize the fetcher.

        Args:
            rpc_url: HTTP(S) JSON-RPC endpoint
            pacing_seconds: Delay applied before each request
            timeout_seconds: Total timeout for one request
            session: Existing aiohttp session (owned by the caller)
        """
        self.rpc_url = rpc_url
        self.pacing_seconds = pacing_seconds
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._session = session
        self._owns_session = session is None
        self._request_id = 0

    async def __aenter__(self):
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self) -> None:
        if self._session and self._owns_session:
            await self._session.close()
            self._session = None

    def _payload(self, slot: int) -> dict:
        self._request_id += 1
        return {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": "getBlock",
            "params": [
                slot,
                {
                    "encoding": "json",
                    "maxSupportedTransactionVersion": MAX_SUPPORTED_TRANSACTION_VERSION,
                    "transactionDetails": "full",
                    "rewards": False,
                },
            ],
        }

    async def _post(self, slot: int, payload: dict) -> dict:
        """Send one request and return the decoded JSON body."""
        if self._session is None:
            raise RuntimeError("BlockFetcher used outside of 'async with'")

        try:
            async with self._session.post(self.rpc_url, json=payload) as resp:
                if resp.status != 200:
                    raise FetchError(slot, FetchErrorKind.NETWORK, f"HTTP {resp.status}")
                text = await resp.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise FetchError(slot, FetchErrorKind.NETWORK, str(e) or type(e).__name__) from e

        try:
            body = json.loads(text)
        except ValueError as e:
            raise FetchError(slot, FetchErrorKind.DECODE, "response is not JSON") from e
        if not isinstance(body, dict):
            raise FetchError(slot, FetchErrorKind.DECODE, "response is not a JSON object")
        return body

    async def fetch(self, slot: int) -> Block:
        """
        Fetch the confirmed block at ``slot``.

        Raises:
            FetchError: network, RPC or decode failure (see ``kind``)
            TimeFetchError: the block has no block time
        """
        await asyncio.sleep(self.pacing_seconds)

        body = await self._post(slot, self._payload(slot))

        error = body.get("error")
        if error is not None:
            message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            raise FetchError(slot, FetchErrorKind.RPC, message)

        result = body.get("result")
        if not isinstance(result, dict) or not isinstance(result.get("transactions"), list):
            raise FetchError(slot, FetchErrorKind.DECODE, "result has no transaction list")

        block = Block.from_rpc(slot, result)
        if block.block_time is None:
            raise TimeFetchError(slot)

        logger.debug(f"Fetched slot {slot}: {len(block.transactions)} transactions")
        return block
