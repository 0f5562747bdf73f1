"""
Tests for the entry-point wiring helpers.
"""

import logging
import os

import pytest

from hedgebot.config import Settings
from hedgebot.core.types import Venue
from hedgebot.main import build_equity, build_venues
from hedgebot.risk.equity import StaticEquity, VenueEquity
from hedgebot.venues.paper import PaperVenue


@pytest.fixture
def settings(monkeypatch):
    for key in list(os.environ):
        if key.startswith("HEDGE_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("HEDGE_DRY_RUN", "1")
    monkeypatch.setenv("HEDGE_EQUITY_USD", "2500")
    return monkeypatch


def test_dry_run_uses_paper_venues(settings):
    taker, maker, closers = build_venues(Settings.load(), logging.getLogger("hedgebot.test"))
    assert isinstance(taker, PaperVenue) and isinstance(maker, PaperVenue)
    assert maker.auto_fill and not taker.auto_fill
    assert taker.equity == 2500.0
    assert closers == []


@pytest.mark.asyncio
async def test_static_equity_by_default(settings):
    cfg = Settings.load()
    source = build_equity(cfg, None, None, logging.getLogger("hedgebot.test"))
    assert isinstance(source, StaticEquity)
    assert await source.get_equity(Venue.MAKER) == 2500.0


@pytest.mark.asyncio
async def test_venue_equity_mode(settings):
    settings.setenv("HEDGE_EQUITY_MODE", "venue")
    cfg = Settings.load()
    taker, maker, _ = build_venues(cfg, logging.getLogger("hedgebot.test"))
    taker.equity = 4000.0
    source = build_equity(cfg, taker, maker, logging.getLogger("hedgebot.test"))
    assert isinstance(source, VenueEquity)
    assert await source.get_equity(Venue.TAKER) == 4000.0
    assert await source.get_equity(Venue.MAKER) == 2500.0
