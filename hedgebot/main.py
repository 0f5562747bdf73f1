"""
Entry point wiring all components.

    python -m hedgebot.main

HEDGE_DRY_RUN=1 runs both legs against in-memory paper venues.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from typing import List, Tuple

import httpx
from hyperliquid.exchange import Exchange

from hedgebot.config.config import Settings
from hedgebot.config.config_validator import validate_and_log
from hedgebot.core.errors import ConfigError
from hedgebot.core.types import Venue
from hedgebot.infra.async_execution import AsyncExchange
from hedgebot.infra.async_info import AsyncInfo
from hedgebot.infra.logging_cfg import build_logger, log_event
from hedgebot.monitoring.health import HealthChecker, start_metrics_server
from hedgebot.monitoring.metrics_rich import HedgeMetrics
from hedgebot.orchestrator.hedge_strategy import DynamicHedgeStrategy
from hedgebot.risk.equity import EquitySource, StaticEquity, VenueEquity
from hedgebot.venues.binance import BinanceFuturesMaker
from hedgebot.venues.hyperliquid import HyperliquidTaker
from hedgebot.venues.paper import PaperVenue

log = logging.getLogger("hedgebot")


def build_venues(cfg: Settings, logger: logging.Logger) -> Tuple[object, object, List]:
    """Return (taker, maker, closers); closers are awaited on shutdown."""
    if cfg.dry_run:
        taker = PaperVenue("paper-taker", equity=cfg.equity_usd, logger=logger)
        maker = PaperVenue("paper-maker", equity=cfg.equity_usd, auto_fill=True, logger=logger)
        return taker, maker, []

    wallet = cfg.resolve_signer()
    account = cfg.resolve_account()
    shared_info_client = httpx.AsyncClient(base_url=cfg.hl_base_url.rstrip("/"), http2=True, timeout=cfg.http_timeout)
    async_info = AsyncInfo(cfg.hl_base_url, timeout=cfg.http_timeout, client=shared_info_client)
    base_exchange = Exchange(wallet, cfg.hl_base_url, account_address=account)
    async_exchange = AsyncExchange(base_exchange, timeout=cfg.http_timeout)
    taker = HyperliquidTaker(async_exchange, async_info, account, slippage=cfg.hl_slippage, logger=logger)
    maker = BinanceFuturesMaker(
        cfg.binance_api_key or "",
        cfg.binance_api_secret or "",
        base_url=cfg.binance_base_url,
        quote_asset=cfg.binance_quote_asset,
        timeout=cfg.http_timeout,
        logger=logger,
    )
    return taker, maker, [maker.close, taker.close, shared_info_client.aclose]


def build_equity(cfg: Settings, taker, maker, logger: logging.Logger) -> EquitySource:
    static = StaticEquity(cfg.equity_usd)
    if cfg.equity_mode == "venue":
        return VenueEquity({Venue.TAKER: taker, Venue.MAKER: maker}, fallback=static, logger=logger)
    return static


async def main() -> int:
    try:
        cfg = Settings.load()
    except ConfigError as exc:
        build_logger("hedgebot", file_path=None)
        log_event(log, "config_invalid", logging.ERROR, err=str(exc))
        return 1
    build_logger("hedgebot", getattr(logging, cfg.log_level, logging.INFO), file_path=cfg.log_file)

    if not validate_and_log(cfg, log):
        log.error("Configuration validation failed, exiting")
        return 1

    # six missed controller cycles (at least 30s) mark the process unhealthy
    health = HealthChecker(stale_after=max(30.0, cfg.monitor_interval * 6))
    health.set_component_health("config", True, "Configuration validated")

    try:
        taker, maker, closers = build_venues(cfg, log)
    except ConfigError as exc:
        log_event(log, "credentials_invalid", logging.ERROR, err=str(exc))
        return 1

    metrics = HedgeMetrics()
    strategy = DynamicHedgeStrategy(
        cfg.convention(),
        taker,
        maker,
        config=cfg.strategy_config(),
        equity_source=build_equity(cfg, taker, maker, log),
        logger=log,
        metrics=metrics,
        health=health,
    )
    srv = await start_metrics_server(
        metrics,
        cfg.metrics_port,
        status_provider=strategy.get_state,
        auth_token=cfg.metrics_token,
        health_checker=health,
        logger=log,
    )
    log_event(log, "startup", settings=cfg.dump())

    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            pass

    exit_code = 0
    try:
        await strategy.start()
        waiter = asyncio.create_task(strategy.wait())
        stopper = asyncio.create_task(stop_event.wait())
        done, _ = await asyncio.wait({waiter, stopper}, return_when=asyncio.FIRST_COMPLETED)
        if waiter in done and waiter.exception() is not None:
            log_event(log, "strategy_crashed", logging.CRITICAL, err=str(waiter.exception()))
            exit_code = 1
        if stopper in done:
            log.info("Shutdown signal received, cleaning up...")
        stopper.cancel()
        if not waiter.done():
            waiter.cancel()
    finally:
        await strategy.stop()
        strategy.stats.log_stats()
        strategy.log_execution_performance()
        srv.close()
        await srv.wait_closed()
        for close in closers:
            try:
                await close()
            except Exception:
                log.debug("close failed", exc_info=True)
        log.info("Shutdown complete")
    return exit_code


def run() -> None:
    try:
        code = asyncio.run(main())
    except KeyboardInterrupt:
        code = 0
    sys.exit(code)


if __name__ == "__main__":
    run()
