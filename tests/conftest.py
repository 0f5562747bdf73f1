"""
Shared fixtures: virtual clock, paper venues and the state stores.
"""

import logging

import pytest

from hedgebot.core.hedge_convention import HedgeConvention
from hedgebot.execution.hedge_executor import FastExecutionConfig, HedgeExecutor
from hedgebot.infra.clock import ManualClock
from hedgebot.state.order_registry import OrderRegistry
from hedgebot.state.position_ledger import PositionLedger
from hedgebot.venues.paper import PaperVenue

# 2024-06-01 12:00:00 UTC
NOON = 1_717_243_200.0


@pytest.fixture
def clock():
    return ManualClock(start=NOON)


@pytest.fixture
def log():
    return logging.getLogger("hedgebot.test")


@pytest.fixture
def convention():
    """Maker: short BTC, long ETH. Taker: the inverse."""
    return HedgeConvention.parse("BTC:short,ETH:long")


@pytest.fixture
def taker(log):
    return PaperVenue("taker", logger=log)


@pytest.fixture
def maker(log):
    return PaperVenue("maker", logger=log)


@pytest.fixture
def ledger(convention, clock, log):
    return PositionLedger(convention.symbols, clock=clock, logger=log)


@pytest.fixture
def registry(clock, log):
    return OrderRegistry(clock=clock, logger=log)


@pytest.fixture
def fast_config():
    return FastExecutionConfig(retry_backoff=0.05)


@pytest.fixture
def executor(convention, taker, maker, fast_config, clock, log):
    return HedgeExecutor(convention, taker, maker, fast_config, clock, log)
