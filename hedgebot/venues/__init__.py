"""
Venues package.

Venue contracts plus the Hyperliquid (taker), Binance futures (maker) and
in-memory paper implementations.
"""

from hedgebot.venues.base import (
    EquityProvider,
    MakerVenue,
    OrderAck,
    OrderStatusReport,
    PositionSource,
    TakerVenue,
    maker_price,
)
from hedgebot.venues.binance import BinanceFuturesMaker
from hedgebot.venues.hyperliquid import HyperliquidTaker
from hedgebot.venues.paper import PaperVenue

__all__ = [
    "EquityProvider",
    "MakerVenue",
    "OrderAck",
    "OrderStatusReport",
    "PositionSource",
    "TakerVenue",
    "maker_price",
    "BinanceFuturesMaker",
    "HyperliquidTaker",
    "PaperVenue",
]
