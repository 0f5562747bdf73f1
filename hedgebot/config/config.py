"""
Environment-driven configuration with validation.

Every setting is read from a ``HEDGE_``-prefixed environment variable (a
``.env`` file in the working directory is loaded first).
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass

from dotenv import load_dotenv

from hedgebot.core.errors import ConfigError
from hedgebot.core.hedge_convention import DEFAULT_SYMBOLS, HedgeConvention
from hedgebot.execution.balance_reconciler import BalanceConfig
from hedgebot.execution.hedge_executor import FastExecutionConfig
from hedgebot.orchestrator.hedge_strategy import HedgeStrategyConfig
from hedgebot.risk.risk_evaluator import RiskConfig

load_dotenv()

_SECRET_FIELDS = {"hl_private_key", "binance_api_key", "binance_api_secret", "metrics_token"}


def env_bool(key: str, default: bool) -> bool:
    val = os.getenv(key)
    if val is None or val == "":
        return default
    return val.lower() in {"1", "true", "yes", "y"}


def _int_env(key: str, default: int) -> int:
    raw = os.getenv(key)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{key} must be an integer, got {raw!r}") from None


def _float_env(key: str, default: float) -> float:
    raw = os.getenv(key)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{key} must be a number, got {raw!r}") from None


@dataclass(frozen=True)
class Settings:
    # venues
    hl_base_url: str
    hl_private_key: str | None
    hl_account_address: str | None
    hl_slippage: float
    binance_base_url: str
    binance_api_key: str | None
    binance_api_secret: str | None
    binance_quote_asset: str
    http_timeout: float
    dry_run: bool

    # hedge
    symbols: str
    order_size: float
    leverage: int
    spread_percent: float

    # intervals (seconds)
    monitor_interval: float
    trading_interval: float
    balance_check_interval: float
    stats_log_interval: float

    # risk
    max_leverage: float
    emergency_leverage: float
    stop_duration: float
    equity_mode: str  # static | venue
    equity_usd: float

    # continuous mode
    continuous_mode: bool
    volume_target: float
    max_daily_trades: int

    # balancing
    enable_hedge_balancing: bool
    balance_tolerance_pct: float
    min_adjust_amount: float

    # fast execution
    enable_fast_execution: bool
    fast_check_interval: float
    max_execution_delay: float
    enable_pre_execution: bool
    partial_fill_threshold: float
    enable_price_protection: bool
    max_slippage_pct: float
    price_validity_window: float
    max_concurrent: int
    max_retry_attempts: int
    retry_backoff: float

    # process
    metrics_port: int
    metrics_token: str | None
    log_level: str
    log_file: str | None

    def dump(self) -> dict:
        """Settings as a dict with secrets redacted."""
        out = self.__dict__.copy()
        for key in _SECRET_FIELDS:
            if out.get(key):
                out[key] = "***"
        return out

    @classmethod
    def load(cls) -> "Settings":
        cfg = cls(
            hl_base_url=os.getenv("HEDGE_HL_BASE_URL", "https://api.hyperliquid.xyz"),
            hl_private_key=os.getenv("HEDGE_HL_PRIVATE_KEY") or None,
            hl_account_address=os.getenv("HEDGE_HL_ACCOUNT_ADDRESS") or None,
            hl_slippage=_float_env("HEDGE_HL_SLIPPAGE", 0.01),
            binance_base_url=os.getenv("HEDGE_BINANCE_BASE_URL", "https://fapi.binance.com"),
            binance_api_key=os.getenv("HEDGE_BINANCE_API_KEY") or None,
            binance_api_secret=os.getenv("HEDGE_BINANCE_API_SECRET") or None,
            binance_quote_asset=os.getenv("HEDGE_BINANCE_QUOTE_ASSET", "USDC"),
            http_timeout=_float_env("HEDGE_HTTP_TIMEOUT", 5.0),
            dry_run=env_bool("HEDGE_DRY_RUN", False),
            symbols=os.getenv("HEDGE_SYMBOLS", DEFAULT_SYMBOLS),
            order_size=_float_env("HEDGE_ORDER_SIZE", 1000.0),
            leverage=_int_env("HEDGE_LEVERAGE", 3),
            spread_percent=_float_env("HEDGE_SPREAD_PCT", 0.1),
            monitor_interval=_float_env("HEDGE_MONITOR_INTERVAL_SEC", 5.0),
            trading_interval=_float_env("HEDGE_TRADING_INTERVAL_SEC", 30.0),
            balance_check_interval=_float_env("HEDGE_BALANCE_CHECK_INTERVAL_SEC", 60.0),
            stats_log_interval=_float_env("HEDGE_STATS_LOG_INTERVAL_SEC", 60.0),
            max_leverage=_float_env("HEDGE_MAX_LEVERAGE", 3.0),
            emergency_leverage=_float_env("HEDGE_EMERGENCY_LEVERAGE", 5.0),
            stop_duration=_float_env("HEDGE_STOP_DURATION_SEC", 600.0),
            equity_mode=os.getenv("HEDGE_EQUITY_MODE", "static").lower(),
            equity_usd=_float_env("HEDGE_EQUITY_USD", 1000.0),
            continuous_mode=env_bool("HEDGE_CONTINUOUS_MODE", True),
            volume_target=_float_env("HEDGE_DAILY_VOLUME_TARGET", 100000.0),
            max_daily_trades=_int_env("HEDGE_MAX_DAILY_TRADES", 1000),
            enable_hedge_balancing=env_bool("HEDGE_ENABLE_BALANCING", True),
            balance_tolerance_pct=_float_env("HEDGE_BALANCE_TOLERANCE_PCT", 5.0),
            min_adjust_amount=_float_env("HEDGE_MIN_ADJUST_AMOUNT", 50.0),
            enable_fast_execution=env_bool("HEDGE_ENABLE_FAST_EXECUTION", True),
            fast_check_interval=_float_env("HEDGE_FAST_CHECK_INTERVAL_SEC", 0.2),
            max_execution_delay=_float_env("HEDGE_MAX_EXECUTION_DELAY_SEC", 0.5),
            enable_pre_execution=env_bool("HEDGE_ENABLE_PRE_EXECUTION", True),
            partial_fill_threshold=_float_env("HEDGE_PARTIAL_FILL_THRESHOLD", 0.5),
            enable_price_protection=env_bool("HEDGE_ENABLE_PRICE_PROTECTION", True),
            max_slippage_pct=_float_env("HEDGE_MAX_SLIPPAGE_PCT", 0.1),
            price_validity_window=_float_env("HEDGE_PRICE_VALIDITY_SEC", 1.0),
            max_concurrent=_int_env("HEDGE_MAX_CONCURRENT_HEDGES", 3),
            max_retry_attempts=_int_env("HEDGE_MAX_RETRY_ATTEMPTS", 3),
            retry_backoff=_float_env("HEDGE_RETRY_BACKOFF_SEC", 0.1),
            metrics_port=_int_env("HEDGE_METRICS_PORT", 9095),
            metrics_token=os.getenv("HEDGE_METRICS_TOKEN") or None,
            log_level=os.getenv("HEDGE_LOG_LEVEL", "INFO").upper(),
            log_file=os.getenv("HEDGE_LOG_FILE", "hedgebot.log") or None,
        )
        _sanity_check(cfg)
        cfg._validate()
        return cfg

    def _validate(self) -> None:
        if self.order_size <= 0:
            raise ConfigError("HEDGE_ORDER_SIZE must be > 0")
        if self.leverage <= 0:
            raise ConfigError("HEDGE_LEVERAGE must be > 0")
        if self.spread_percent < 0:
            raise ConfigError("HEDGE_SPREAD_PCT must be >= 0")
        for key, value in (
            ("HEDGE_MONITOR_INTERVAL_SEC", self.monitor_interval),
            ("HEDGE_TRADING_INTERVAL_SEC", self.trading_interval),
            ("HEDGE_BALANCE_CHECK_INTERVAL_SEC", self.balance_check_interval),
            ("HEDGE_STATS_LOG_INTERVAL_SEC", self.stats_log_interval),
            ("HEDGE_FAST_CHECK_INTERVAL_SEC", self.fast_check_interval),
        ):
            if value <= 0:
                raise ConfigError(f"{key} must be > 0")
        if self.max_leverage <= 0:
            raise ConfigError("HEDGE_MAX_LEVERAGE must be > 0")
        if self.emergency_leverage <= self.max_leverage:
            raise ConfigError("HEDGE_EMERGENCY_LEVERAGE must be > HEDGE_MAX_LEVERAGE")
        if self.stop_duration < 0:
            raise ConfigError("HEDGE_STOP_DURATION_SEC must be >= 0")
        if self.equity_mode not in {"static", "venue"}:
            raise ConfigError("HEDGE_EQUITY_MODE must be 'static' or 'venue'")
        if self.equity_usd <= 0:
            raise ConfigError("HEDGE_EQUITY_USD must be > 0")
        if self.max_daily_trades < 0:
            raise ConfigError("HEDGE_MAX_DAILY_TRADES must be >= 0")
        if not 0.0 <= self.partial_fill_threshold <= 1.0:
            raise ConfigError("HEDGE_PARTIAL_FILL_THRESHOLD must be within [0, 1]")
        if self.max_retry_attempts < 1 or self.max_concurrent < 1:
            raise ConfigError("HEDGE_MAX_RETRY_ATTEMPTS and HEDGE_MAX_CONCURRENT_HEDGES must be >= 1")
        try:
            self.convention()
        except ValueError as exc:
            raise ConfigError(f"HEDGE_SYMBOLS: {exc}") from None

    # ─────────────────────────────────────────────────────────────────────
    # Builders
    # ─────────────────────────────────────────────────────────────────────

    def convention(self) -> HedgeConvention:
        return HedgeConvention.parse(self.symbols)

    def strategy_config(self) -> HedgeStrategyConfig:
        return HedgeStrategyConfig(
            order_size=self.order_size,
            leverage=self.leverage,
            spread_percent=self.spread_percent,
            monitor_interval=self.monitor_interval,
            balance_check_interval=self.balance_check_interval,
            trading_interval=self.trading_interval,
            stats_log_interval=self.stats_log_interval,
            continuous_mode=self.continuous_mode,
            volume_target=self.volume_target,
            max_daily_trades=self.max_daily_trades,
            enable_hedge_balancing=self.enable_hedge_balancing,
            enable_fast_execution=self.enable_fast_execution,
            risk=RiskConfig(
                max_leverage=self.max_leverage,
                emergency_leverage=self.emergency_leverage,
                stop_duration=self.stop_duration,
            ),
            balance=BalanceConfig(
                tolerance_percent=self.balance_tolerance_pct,
                min_adjust_amount=self.min_adjust_amount,
                leverage=self.leverage,
                spread_percent=self.spread_percent,
            ),
            fast_execution=FastExecutionConfig(
                check_interval=self.fast_check_interval,
                max_execution_delay=self.max_execution_delay,
                enable_pre_execution=self.enable_pre_execution,
                partial_fill_threshold=self.partial_fill_threshold,
                enable_price_protection=self.enable_price_protection,
                max_slippage_percent=self.max_slippage_pct,
                price_validity_window=self.price_validity_window,
                max_concurrent=self.max_concurrent,
                max_retry_attempts=self.max_retry_attempts,
                retry_backoff=self.retry_backoff,
                leverage=self.leverage,
            ),
        )

    # ─────────────────────────────────────────────────────────────────────
    # Credentials
    # ─────────────────────────────────────────────────────────────────────

    def resolve_account(self) -> str:
        if self.hl_account_address:
            return self.hl_account_address
        if self.hl_private_key:
            from eth_account import Account

            return Account.from_key(self.hl_private_key).address
        raise ConfigError("Missing HEDGE_HL_ACCOUNT_ADDRESS or HEDGE_HL_PRIVATE_KEY")

    def resolve_signer(self):
        from eth_account import Account

        if self.hl_private_key:
            return Account.from_key(self.hl_private_key)
        raise ConfigError("Missing credentials: set HEDGE_HL_PRIVATE_KEY")


def _sanity_check(cfg: Settings) -> None:
    """Log the settings that matter once at startup so overrides are obvious."""
    logger = logging.getLogger("hedgebot")
    payload = {
        "event": "config_loaded",
        "symbols": cfg.symbols,
        "order_size": cfg.order_size,
        "leverage": cfg.leverage,
        "max_leverage": cfg.max_leverage,
        "emergency_leverage": cfg.emergency_leverage,
        "monitor_interval": cfg.monitor_interval,
        "fast_check_interval": cfg.fast_check_interval,
        "dry_run": cfg.dry_run,
    }
    logger.info(json.dumps(payload))
