"""
Minimal async HTTP client for Hyperliquid info endpoints using HTTP/2.

Only the read queries the taker venue needs: asset metadata, mids, account
state and order status.
"""

from __future__ import annotations

from typing import Any, Optional

import httpx


class AsyncInfo:
    def __init__(self, base_url: str, timeout: float = 2.0, client: Optional[httpx.AsyncClient] = None) -> None:
        self.base_url = base_url.rstrip("/")
        # close() leaves a caller-supplied client open
        self._owns_client = client is None
        if client is None:
            client = httpx.AsyncClient(base_url=self.base_url, http2=True, timeout=timeout)
        self.client = client

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def query(self, info_type: str, **params: Any) -> Any:
        """POST ``{"type": info_type, **params}`` to /info; HTTP errors raise httpx.HTTPStatusError."""
        resp = await self.client.post("/info", json={"type": info_type, **params})
        resp.raise_for_status()
        return resp.json()

    async def meta(self) -> Any:
        return await self.query("meta")

    async def all_mids(self) -> Any:
        return await self.query("allMids")

    async def user_state(self, account: str) -> Any:
        return await self.query("clearinghouseState", user=account)

    async def query_order_by_oid(self, account: str, oid: int) -> Any:
        return await self.query("orderStatus", user=account, oid=oid)
