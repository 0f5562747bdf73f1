"""
Tests for environment-driven Settings and the config validator.
"""

import logging
import os

import pytest

from hedgebot.config import (
    ConfigValidator,
    Settings,
    ValidationIssue,
    ValidationSeverity,
    env_bool,
    validate_and_log,
    validate_config,
)
from hedgebot.core.errors import ConfigError
from hedgebot.core.types import PositionDirection, Venue

# throwaway key, never funded
TEST_KEY = "0x" + "11" * 32


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in list(os.environ):
        if key.startswith("HEDGE_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("HEDGE_DRY_RUN", "1")
    return monkeypatch


class TestEnvBool:
    @pytest.mark.parametrize("raw,expected", [("1", True), ("true", True), ("YES", True), ("0", False), ("off", False)])
    def test_parsing(self, monkeypatch, raw, expected):
        monkeypatch.setenv("HEDGE_FLAG", raw)
        assert env_bool("HEDGE_FLAG", not expected) is expected

    def test_default_when_unset_or_empty(self, monkeypatch):
        assert env_bool("HEDGE_FLAG", True) is True
        monkeypatch.setenv("HEDGE_FLAG", "")
        assert env_bool("HEDGE_FLAG", False) is False


class TestLoad:
    def test_defaults(self):
        cfg = Settings.load()
        assert cfg.dry_run is True
        assert cfg.symbols == "BTC:short,ETH:long"
        assert (cfg.order_size, cfg.leverage, cfg.spread_percent) == (1000.0, 3, 0.1)
        assert (cfg.max_leverage, cfg.emergency_leverage, cfg.stop_duration) == (3.0, 5.0, 600.0)
        assert cfg.max_daily_trades == 1000
        assert cfg.equity_mode == "static"
        assert cfg.metrics_port == 9095

    def test_overrides(self, monkeypatch):
        monkeypatch.setenv("HEDGE_ORDER_SIZE", "250")
        monkeypatch.setenv("HEDGE_SYMBOLS", "ETH:short, BTC:long")
        monkeypatch.setenv("HEDGE_ENABLE_FAST_EXECUTION", "false")
        monkeypatch.setenv("HEDGE_EQUITY_MODE", "VENUE")
        cfg = Settings.load()
        assert cfg.order_size == 250.0
        assert cfg.enable_fast_execution is False
        assert cfg.equity_mode == "venue"
        conv = cfg.convention()
        assert conv.symbols == ["ETH", "BTC"]
        assert conv.direction(Venue.MAKER, "ETH") is PositionDirection.SHORT

    @pytest.mark.parametrize("key,value", [
        ("HEDGE_ORDER_SIZE", "0"),
        ("HEDGE_ORDER_SIZE", "lots"),
        ("HEDGE_LEVERAGE", "2.5"),
        ("HEDGE_EMERGENCY_LEVERAGE", "3"),
        ("HEDGE_MONITOR_INTERVAL_SEC", "0"),
        ("HEDGE_EQUITY_MODE", "guess"),
        ("HEDGE_PARTIAL_FILL_THRESHOLD", "1.5"),
        ("HEDGE_MAX_DAILY_TRADES", "-1"),
        ("HEDGE_SYMBOLS", "BTC:short,BTC:long"),
        ("HEDGE_SYMBOLS", "BTC"),
    ])
    def test_invalid_values_raise(self, monkeypatch, key, value):
        monkeypatch.setenv(key, value)
        with pytest.raises(ConfigError):
            Settings.load()

    def test_config_error_is_value_error(self, monkeypatch):
        monkeypatch.setenv("HEDGE_STOP_DURATION_SEC", "-5")
        with pytest.raises(ValueError):
            Settings.load()

    def test_dump_redacts_secrets(self, monkeypatch):
        monkeypatch.setenv("HEDGE_BINANCE_API_SECRET", "s3cret")
        monkeypatch.setenv("HEDGE_METRICS_TOKEN", "tok")
        dumped = Settings.load().dump()
        assert dumped["binance_api_secret"] == "***"
        assert dumped["metrics_token"] == "***"
        assert dumped["binance_api_key"] is None
        assert "s3cret" not in repr(dumped)


class TestBuilders:
    def test_strategy_config(self, monkeypatch):
        monkeypatch.setenv("HEDGE_MAX_LEVERAGE", "2")
        monkeypatch.setenv("HEDGE_EMERGENCY_LEVERAGE", "4")
        monkeypatch.setenv("HEDGE_BALANCE_TOLERANCE_PCT", "7.5")
        monkeypatch.setenv("HEDGE_MAX_RETRY_ATTEMPTS", "5")
        cfg = Settings.load().strategy_config()
        assert (cfg.risk.max_leverage, cfg.risk.emergency_leverage) == (2.0, 4.0)
        assert cfg.balance.tolerance_percent == 7.5
        assert cfg.fast_execution.max_retry_attempts == 5
        assert cfg.fast_execution.leverage == cfg.leverage == 3

    def test_resolve_account_prefers_address(self, monkeypatch):
        monkeypatch.setenv("HEDGE_HL_ACCOUNT_ADDRESS", "0xabc")
        monkeypatch.setenv("HEDGE_HL_PRIVATE_KEY", TEST_KEY)
        assert Settings.load().resolve_account() == "0xabc"

    def test_resolve_account_from_key(self, monkeypatch):
        from eth_account import Account

        monkeypatch.setenv("HEDGE_HL_PRIVATE_KEY", TEST_KEY)
        cfg = Settings.load()
        assert cfg.resolve_account() == Account.from_key(TEST_KEY).address
        assert cfg.resolve_signer().address == cfg.resolve_account()

    def test_missing_credentials(self):
        cfg = Settings.load()
        with pytest.raises(ConfigError):
            cfg.resolve_account()
        with pytest.raises(ConfigError):
            cfg.resolve_signer()


class TestValidator:
    def test_dry_run_defaults_are_valid(self):
        result = validate_config(Settings.load())
        assert result.valid
        assert not result.has_errors()

    def test_live_requires_credentials(self, monkeypatch):
        monkeypatch.setenv("HEDGE_DRY_RUN", "0")
        result = validate_config(Settings.load())
        assert not result.valid
        assert {i.field for i in result.get_errors()} == {"hl_private_key", "binance_api_key"}
        assert any(i.severity is ValidationSeverity.INFO and i.field == "equity_mode" for i in result.issues)

    def test_live_with_credentials(self, monkeypatch):
        monkeypatch.setenv("HEDGE_DRY_RUN", "0")
        monkeypatch.setenv("HEDGE_HL_PRIVATE_KEY", TEST_KEY)
        monkeypatch.setenv("HEDGE_BINANCE_API_KEY", "k")
        monkeypatch.setenv("HEDGE_BINANCE_API_SECRET", "s")
        assert validate_config(Settings.load()).valid

    def test_range_error(self, monkeypatch):
        monkeypatch.setenv("HEDGE_ORDER_SIZE", "5")
        result = validate_config(Settings.load())
        (err,) = result.get_errors()
        assert err.field == "order_size"
        assert err.suggestion == "Set to at least 10.0"

    def test_risky_warnings(self, monkeypatch):
        monkeypatch.setenv("HEDGE_MAX_LEVERAGE", "12")
        monkeypatch.setenv("HEDGE_EMERGENCY_LEVERAGE", "12.2")
        monkeypatch.setenv("HEDGE_MAX_DAILY_TRADES", "0")
        monkeypatch.setenv("HEDGE_ENABLE_BALANCING", "0")
        result = validate_config(Settings.load())
        assert result.valid
        assert {w.field for w in result.get_warnings()} == {
            "max_leverage", "emergency_leverage", "max_daily_trades", "enable_hedge_balancing",
        }

    def test_custom_validator(self):
        validator = ConfigValidator()
        validator.register_validator(
            lambda cfg: [ValidationIssue("symbols", "custom", ValidationSeverity.ERROR)]
        )

        def broken(cfg):
            raise RuntimeError("bug")

        validator.register_validator(broken)
        result = validator.validate(Settings.load())
        assert not result.valid
        assert result.get_errors()[0].message == "custom"

    def test_validate_and_log(self, monkeypatch, caplog):
        monkeypatch.setenv("HEDGE_DRY_RUN", "0")
        logger = logging.getLogger("hedgebot.test.config")
        with caplog.at_level(logging.INFO, logger="hedgebot.test.config"):
            assert validate_and_log(Settings.load(), logger) is False
        messages = [r.getMessage() for r in caplog.records if r.name == "hedgebot.test.config"]
        assert any(m.startswith("CONFIG ERROR: No Hyperliquid signing key") for m in messages)
        assert messages[-1] == "Configuration validation failed with 2 error(s)"
