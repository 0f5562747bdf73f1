"""
Hyperliquid perps client acting as the taker venue.

Writes go through the SDK ``Exchange`` (wrapped by AsyncExchange so signing
and posting never block the loop); reads go through the HTTP/2 AsyncInfo.
Taker orders are aggressive IOC orders via ``market_open`` with a slippage
cap; sizes are derived from the requested notional and the current mid and
rounded to the coin's ``szDecimals``.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional, Set

from hedgebot.core.errors import VenueError
from hedgebot.core.types import OrderSide, OrderStatus
from hedgebot.infra.async_execution import AsyncExchange
from hedgebot.infra.async_info import AsyncInfo
from hedgebot.state.position_ledger import Position
from hedgebot.venues.base import OrderAck, OrderStatusReport

_CANCELLED_STATES = {
    "canceled",
    "rejected",
    "marginCanceled",
    "reduceOnlyCanceled",
    "selfTradeCanceled",
    "siblingFilledCanceled",
    "delistedCanceled",
    "liquidatedCanceled",
    "scheduledCancel",
    "vaultWithdrawalCanceled",
    "openInterestCapCanceled",
}


class HyperliquidTaker:
    name = "hyperliquid"

    def __init__(
        self,
        exchange: AsyncExchange,
        info: AsyncInfo,
        account: str,
        slippage: float = 0.01,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._exchange = exchange
        self._info = info
        self.account = account
        self.slippage = slippage
        self._log = logger or logging.getLogger("hedgebot")
        self._sz_decimals: Dict[str, int] = {}
        self._leverage_set: Set[tuple] = set()

    async def close(self) -> None:
        await self._exchange.close()
        await self._info.close()

    # ─────────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────────

    async def _decimals(self, coin: str) -> int:
        if not self._sz_decimals:
            try:
                meta = await self._info.meta()
            except Exception as exc:
                raise VenueError(self.name, "meta", str(exc)) from exc
            for asset in meta.get("universe", []):
                self._sz_decimals[asset["name"]] = int(asset.get("szDecimals", 4))
        if coin not in self._sz_decimals:
            raise VenueError(self.name, "meta", f"unknown coin {coin}")
        return self._sz_decimals[coin]

    async def _ensure_leverage(self, coin: str, leverage: int) -> None:
        key = (coin, leverage)
        if key in self._leverage_set:
            return
        try:
            await self._exchange.update_leverage(int(leverage), coin)
        except Exception as exc:
            raise VenueError(self.name, "update_leverage", str(exc)) from exc
        self._leverage_set.add(key)

    @staticmethod
    def _parse_fill(resp: Any, operation: str) -> Dict[str, Any]:
        if not isinstance(resp, dict) or resp.get("status") != "ok":
            raise VenueError(HyperliquidTaker.name, operation, f"order rejected: {resp}")
        statuses = resp.get("response", {}).get("data", {}).get("statuses", [])
        if not statuses:
            raise VenueError(HyperliquidTaker.name, operation, f"empty statuses: {resp}")
        st = statuses[0]
        if "error" in st:
            raise VenueError(HyperliquidTaker.name, operation, st["error"])
        if "filled" in st:
            return st["filled"]
        if "resting" in st:
            return {"oid": st["resting"]["oid"], "avgPx": 0.0, "totalSz": 0.0}
        raise VenueError(HyperliquidTaker.name, operation, f"unexpected status: {st}")

    async def _open(self, operation: str, coin: str, is_buy: bool, size: float) -> Dict[str, Any]:
        try:
            resp = await self._exchange.market_open(coin, is_buy, size, None, self.slippage)
        except VenueError:
            raise
        except Exception as exc:
            raise VenueError(self.name, operation, str(exc)) from exc
        return self._parse_fill(resp, operation)

    # ─────────────────────────────────────────────────────────────────────
    # Contract
    # ─────────────────────────────────────────────────────────────────────

    async def get_current_price(self, symbol: str) -> float:
        try:
            mids = await self._info.all_mids()
        except Exception as exc:
            raise VenueError(self.name, "get_current_price", str(exc)) from exc
        if symbol not in mids:
            raise VenueError(self.name, "get_current_price", f"no mid for {symbol}")
        return float(mids[symbol])

    async def _taker(self, operation: str, symbol: str, side: OrderSide, notional: float, leverage: int) -> OrderAck:
        await self._ensure_leverage(symbol, leverage)
        mid = await self.get_current_price(symbol)
        size = round(notional / mid, await self._decimals(symbol))
        if size <= 0:
            raise VenueError(self.name, operation, f"notional {notional} too small for {symbol}")
        fill = await self._open(operation, symbol, side is OrderSide.BUY, size)
        price = float(fill.get("avgPx") or mid)
        self._log.info(json.dumps({
            "event": "taker_order_filled",
            "venue": self.name,
            "symbol": symbol,
            "side": side.value,
            "size": size,
            "avg_px": price,
            "oid": fill.get("oid"),
        }))
        return OrderAck(order_id=str(fill["oid"]), price=price)

    async def place_taker_long(self, symbol: str, notional: float, leverage: int) -> OrderAck:
        return await self._taker("place_taker_long", symbol, OrderSide.BUY, notional, leverage)

    async def place_taker_short(self, symbol: str, notional: float, leverage: int) -> OrderAck:
        return await self._taker("place_taker_short", symbol, OrderSide.SELL, notional, leverage)

    async def place_market_order(self, symbol: str, side: OrderSide, size: float) -> str:
        size = round(size, await self._decimals(symbol))
        fill = await self._open("place_market_order", symbol, side is OrderSide.BUY, size)
        return str(fill["oid"])

    async def get_order_status(self, order_id: str) -> OrderStatusReport:
        try:
            resp = await self._info.query_order_by_oid(self.account, int(order_id))
        except Exception as exc:
            raise VenueError(self.name, "get_order_status", str(exc)) from exc
        if resp.get("status") != "order":
            raise VenueError(self.name, "get_order_status", f"order {order_id}: {resp.get('status')}")
        wrapper = resp["order"]
        order = wrapper["order"]
        orig = float(order.get("origSz", 0.0))
        remaining = float(order.get("sz", 0.0))
        px = float(order.get("limitPx", 0.0))
        filled_notional = max(0.0, orig - remaining) * px
        state = wrapper.get("status", "")
        if state == "filled":
            status = OrderStatus.FILLED
        elif state in _CANCELLED_STATES:
            status = OrderStatus.CANCELLED
        elif filled_notional > 0:
            status = OrderStatus.PARTIAL
        else:
            status = OrderStatus.PENDING
        return OrderStatusReport(status=status, filled_size=filled_notional)

    async def get_positions(self) -> Dict[str, Position]:
        try:
            state = await self._info.user_state(self.account)
        except Exception as exc:
            raise VenueError(self.name, "get_positions", str(exc)) from exc
        out: Dict[str, Position] = {}
        for item in state.get("assetPositions", []):
            p = item.get("position", {})
            size = float(p.get("szi", 0.0))
            value = abs(float(p.get("positionValue", 0.0)))
            out[p.get("coin", "")] = Position(
                symbol=p.get("coin", ""),
                signed_size=size,
                notional_value=value if size >= 0 else -value,
                entry_price=float(p.get("entryPx") or 0.0),
            )
        return out

    async def get_equity(self) -> float:
        try:
            state = await self._info.user_state(self.account)
        except Exception as exc:
            raise VenueError(self.name, "get_equity", str(exc)) from exc
        return float(state.get("marginSummary", {}).get("accountValue", 0.0))
