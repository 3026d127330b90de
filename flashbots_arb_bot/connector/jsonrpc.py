"""
JSON-RPC over HTTP transport shared by the node and relay clients.
Handles session reuse, retries with backoff, and error decoding.
"""

import asyncio
import itertools
import json
from typing import Any, Optional

import aiohttp


class RpcError(Exception):
    """JSON-RPC error response."""

    def __init__(self, code: int, message: str, data: Any = None):
        super().__init__(f"RPC error {code}: {message}")
        self.code = code
        self.message = message
        self.data = data


class JsonRpcTransport:
    """Minimal async JSON-RPC 2.0 client."""

    def __init__(
        self,
        url: str,
        timeout_seconds: int = 10,
        max_retries: int = 3,
        retry_backoff_base: float = 1.5,
    ):
        self.url = url
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self.max_retries = max_retries
        self.retry_backoff_base = retry_backoff_base
        self._session: Optional[aiohttp.ClientSession] = None
        self._ids = itertools.count(1)

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
        return self._session

    async def close(self) -> None:
        """Close HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()

    def _build_body(self, method: str, params: list[Any]) -> str:
        return json.dumps({
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params,
        })

    def _headers(self, body: str) -> dict[str, str]:
        """Extra headers for a request body. Overridden by authenticated clients."""
        return {}

    async def request(self, method: str, params: Optional[list[Any]] = None) -> Any:
        """
        Call ``method`` and return its ``result``.

        Transport failures are retried with exponential backoff; JSON-RPC
        error responses raise RpcError immediately.
        """
        session = await self._get_session()
        body = self._build_body(method, params or [])

        headers = {"Content-Type": "application/json"}
        headers.update(self._headers(body))

        for attempt in range(self.max_retries):
            try:
                async with session.post(self.url, data=body, headers=headers) as response:
                    if response.status == 429:
                        # Rate limited - exponential backoff
                        await asyncio.sleep(self.retry_backoff_base ** attempt)
                        continue

                    response.raise_for_status()
                    data = await response.json(content_type=None)

            except aiohttp.ClientError:
                if attempt == self.max_retries - 1:
                    raise
                await asyncio.sleep(self.retry_backoff_base ** attempt)
                continue

            if data.get("error"):
                error = data["error"]
                if not isinstance(error, dict):
                    raise RpcError(-1, str(error))
                raise RpcError(
                    error.get("code", -1),
                    error.get("message", "unknown error"),
                    error.get("data"),
                )
            return data.get("result")

        raise RpcError(429, f"{method} rate limited after {self.max_retries} attempts")
