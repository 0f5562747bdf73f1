"""
Tests for the Hyperliquid taker client and its async transport wrappers.
"""

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from hedgebot.core.errors import VenueError
from hedgebot.core.types import OrderSide, OrderStatus
from hedgebot.infra.async_execution import AsyncExchange
from hedgebot.infra.async_info import AsyncInfo
from hedgebot.venues.hyperliquid import HyperliquidTaker

ACCOUNT = "0x0000000000000000000000000000000000000001"


def _filled(oid=77, avg_px="60010.0", total_sz="0.0167"):
    fill = {"oid": oid, "avgPx": avg_px, "totalSz": total_sz}
    return {"status": "ok", "response": {"type": "order", "data": {"statuses": [{"filled": fill}]}}}


@pytest.fixture
def exchange():
    ex = AsyncMock()
    ex.market_open.return_value = _filled()
    return ex


@pytest.fixture
def info():
    inf = AsyncMock()
    inf.meta.return_value = {"universe": [{"name": "BTC", "szDecimals": 5}, {"name": "ETH", "szDecimals": 4}]}
    inf.all_mids.return_value = {"BTC": "60000.0", "ETH": "3000.0"}
    return inf


@pytest.fixture
def taker(exchange, info):
    return HyperliquidTaker(exchange, info, ACCOUNT, slippage=0.02)


class TestTakerOrders:
    @pytest.mark.asyncio
    async def test_long_sizes_from_notional(self, taker, exchange):
        ack = await taker.place_taker_long("BTC", 1000.0, 3)
        assert ack.order_id == "77"
        assert ack.price == 60010.0
        exchange.update_leverage.assert_awaited_once_with(3, "BTC")
        exchange.market_open.assert_awaited_once_with("BTC", True, 0.01667, None, 0.02)

    @pytest.mark.asyncio
    async def test_short_is_sell(self, taker, exchange):
        await taker.place_taker_short("ETH", 600.0, 3)
        exchange.market_open.assert_awaited_once_with("ETH", False, 0.2, None, 0.02)

    @pytest.mark.asyncio
    async def test_leverage_set_once_per_coin(self, taker, exchange):
        await taker.place_taker_long("BTC", 1000.0, 3)
        await taker.place_taker_long("BTC", 1000.0, 3)
        await taker.place_taker_long("BTC", 1000.0, 5)
        assert exchange.update_leverage.await_count == 2

    @pytest.mark.asyncio
    async def test_rejected_order(self, taker, exchange):
        exchange.market_open.return_value = {
            "status": "ok",
            "response": {"data": {"statuses": [{"error": "Insufficient margin"}]}},
        }
        with pytest.raises(VenueError, match="Insufficient margin"):
            await taker.place_taker_long("BTC", 1000.0, 3)

    @pytest.mark.asyncio
    async def test_error_status(self, taker, exchange):
        exchange.market_open.return_value = {"status": "err", "response": "User or API Wallet does not exist"}
        with pytest.raises(VenueError, match="order rejected"):
            await taker.place_taker_short("ETH", 600.0, 3)

    @pytest.mark.asyncio
    async def test_sdk_exception_wrapped(self, taker, exchange):
        exchange.market_open.side_effect = TimeoutError("slow")
        with pytest.raises(VenueError) as exc_info:
            await taker.place_taker_long("BTC", 1000.0, 3)
        assert exc_info.value.operation == "place_taker_long"

    @pytest.mark.asyncio
    async def test_too_small(self, taker, exchange):
        with pytest.raises(VenueError, match="too small"):
            await taker.place_taker_long("BTC", 0.01, 3)
        exchange.market_open.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_market_order_rounds_size(self, taker, exchange):
        oid = await taker.place_market_order("ETH", OrderSide.SELL, 0.123456)
        assert oid == "77"
        exchange.market_open.assert_awaited_once_with("ETH", False, 0.1235, None, 0.02)

    @pytest.mark.asyncio
    async def test_unknown_coin(self, taker):
        with pytest.raises(VenueError, match="unknown coin"):
            await taker.place_market_order("DOGE", OrderSide.BUY, 10.0)


class TestQueries:
    @pytest.mark.asyncio
    async def test_price(self, taker):
        assert await taker.get_current_price("ETH") == 3000.0
        with pytest.raises(VenueError):
            await taker.get_current_price("SOL")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("state,orig,remaining,status,filled", [
        ("open", "0.02", "0.02", OrderStatus.PENDING, 0.0),
        ("open", "0.02", "0.01", OrderStatus.PARTIAL, 600.0),
        ("filled", "0.02", "0.0", OrderStatus.FILLED, 1200.0),
        ("canceled", "0.02", "0.015", OrderStatus.CANCELLED, 300.0),
    ])
    async def test_order_status(self, taker, info, state, orig, remaining, status, filled):
        info.query_order_by_oid.return_value = {
            "status": "order",
            "order": {"status": state, "order": {"origSz": orig, "sz": remaining, "limitPx": "60000"}},
        }
        report = await taker.get_order_status("77")
        assert report.status is status
        assert report.filled_size == pytest.approx(filled)
        info.query_order_by_oid.assert_awaited_once_with(ACCOUNT, 77)

    @pytest.mark.asyncio
    async def test_unknown_order(self, taker, info):
        info.query_order_by_oid.return_value = {"status": "unknownOid"}
        with pytest.raises(VenueError, match="unknownOid"):
            await taker.get_order_status("12")

    @pytest.mark.asyncio
    async def test_positions_signed_value(self, taker, info):
        info.user_state.return_value = {
            "assetPositions": [
                {"position": {"coin": "BTC", "szi": "0.02", "positionValue": "1200.0", "entryPx": "60000"}},
                {"position": {"coin": "ETH", "szi": "-0.5", "positionValue": "1500.0", "entryPx": None}},
            ],
            "marginSummary": {"accountValue": "1800.25"},
        }
        positions = await taker.get_positions()
        assert positions["BTC"].notional_value == 1200.0
        assert positions["ETH"].notional_value == -1500.0
        assert positions["ETH"].entry_price == 0.0
        assert await taker.get_equity() == 1800.25

    @pytest.mark.asyncio
    async def test_info_failure_wrapped(self, taker, info):
        info.user_state.side_effect = httpx.ConnectError("down")
        with pytest.raises(VenueError):
            await taker.get_positions()


class TestTransport:
    @pytest.mark.asyncio
    async def test_async_info_posts_payload(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"BTC": "60000.0"})

        client = httpx.AsyncClient(base_url="https://api.test", transport=httpx.MockTransport(handler))
        info = AsyncInfo("https://api.test", client=client)
        assert await info.all_mids() == {"BTC": "60000.0"}
        assert seen[0].url.path == "/info"
        assert b'"allMids"' in seen[0].content
        await info.close()
        assert not client.is_closed
        await client.aclose()

    @pytest.mark.asyncio
    async def test_async_info_raises_on_http_error(self):
        client = httpx.AsyncClient(
            base_url="https://api.test", transport=httpx.MockTransport(lambda r: httpx.Response(500, json={}))
        )
        info = AsyncInfo("https://api.test", client=client)
        with pytest.raises(httpx.HTTPStatusError):
            await info.meta()
        await client.aclose()

    @pytest.mark.asyncio
    async def test_async_exchange_runs_sdk_in_thread(self):
        sdk = MagicMock()
        sdk.market_open.return_value = _filled()
        ex = AsyncExchange(sdk, timeout=1.0)
        try:
            assert await ex.market_open("BTC", True, 0.01, None, 0.01) == _filled()
            sdk.market_open.assert_called_once_with("BTC", True, 0.01, None, 0.01)
        finally:
            await ex.close()

    @pytest.mark.asyncio
    async def test_market_open_not_retried(self):
        sdk = MagicMock()
        sdk.market_open.side_effect = RuntimeError("rejected")
        ex = AsyncExchange(sdk, timeout=1.0, retries=3)
        try:
            with pytest.raises(RuntimeError):
                await ex.market_open("BTC", True, 0.01)
            assert sdk.market_open.call_count == 1
        finally:
            await ex.close()

    @pytest.mark.asyncio
    async def test_update_leverage_retried(self):
        sdk = MagicMock()
        sdk.update_leverage.side_effect = [RuntimeError("busy"), {"status": "ok"}]
        ex = AsyncExchange(sdk, timeout=1.0, retries=1)
        try:
            assert await ex.update_leverage(3, "ETH") == {"status": "ok"}
            assert sdk.update_leverage.call_count == 2
            sdk.update_leverage.assert_called_with(3, "ETH", True)
        finally:
            await ex.close()
