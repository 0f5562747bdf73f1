"""
Configuration validation for production safety.

- Range checks for numeric parameters
- Credential checks for live (non dry-run) trading
- Warnings for risky but valid configurations
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Callable, Dict, List, Optional, Tuple

logger = logging.getLogger("hedgebot")


class ValidationSeverity(Enum):
    ERROR = auto()    # blocks startup
    WARNING = auto()  # logged, startup continues
    INFO = auto()


@dataclass
class ValidationIssue:
    field: str
    message: str
    severity: ValidationSeverity
    value: Any = None
    suggestion: Optional[str] = None


@dataclass
class ValidationResult:
    valid: bool
    issues: List[ValidationIssue] = field(default_factory=list)

    def has_errors(self) -> bool:
        return any(i.severity is ValidationSeverity.ERROR for i in self.issues)

    def has_warnings(self) -> bool:
        return any(i.severity is ValidationSeverity.WARNING for i in self.issues)

    def get_errors(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity is ValidationSeverity.ERROR]

    def get_warnings(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity is ValidationSeverity.WARNING]


class ConfigValidator:
    """
    Validates Settings before the engine starts.

    Settings._validate already rejects values that cannot work at all; this
    layer enforces operating ranges and credentials.
    """

    # (min, max) inclusive
    NUMERIC_RANGES: Dict[str, Tuple[float, float]] = {
        "order_size": (10.0, 1_000_000.0),
        "leverage": (1, 50),
        "spread_percent": (0.0, 5.0),
        "monitor_interval": (0.5, 3600.0),
        "trading_interval": (1.0, 86400.0),
        "balance_check_interval": (5.0, 86400.0),
        "max_leverage": (0.1, 50.0),
        "emergency_leverage": (0.2, 100.0),
        "stop_duration": (0.0, 86400.0),
        "equity_usd": (1.0, 100_000_000.0),
        "balance_tolerance_pct": (0.0, 100.0),
        "min_adjust_amount": (0.0, 1_000_000.0),
        "fast_check_interval": (0.05, 60.0),
        "max_slippage_pct": (0.0, 10.0),
        "price_validity_window": (0.1, 30.0),
        "max_retry_attempts": (1, 10),
        "http_timeout": (0.5, 120.0),
    }

    def __init__(self) -> None:
        self._custom_validators: List[Callable[[Any], Optional[List[ValidationIssue]]]] = []

    def register_validator(self, validator: Callable[[Any], Optional[List[ValidationIssue]]]) -> None:
        self._custom_validators.append(validator)

    def validate(self, cfg) -> ValidationResult:
        issues: List[ValidationIssue] = []
        issues.extend(self._validate_numeric_ranges(cfg))
        issues.extend(self._validate_credentials(cfg))
        issues.extend(self._check_risky_configs(cfg))
        for validator in self._custom_validators:
            try:
                custom = validator(cfg)
            except Exception as exc:
                logger.warning(f"Custom validator error: {exc}")
                continue
            if custom:
                issues.extend(custom)
        has_errors = any(i.severity is ValidationSeverity.ERROR for i in issues)
        return ValidationResult(valid=not has_errors, issues=issues)

    def _validate_numeric_ranges(self, cfg) -> List[ValidationIssue]:
        issues = []
        for name, (lo, hi) in self.NUMERIC_RANGES.items():
            value = getattr(cfg, name, None)
            if value is None:
                continue
            if value < lo:
                issues.append(ValidationIssue(
                    field=name,
                    message=f"'{name}' value {value} is below minimum {lo}",
                    severity=ValidationSeverity.ERROR,
                    value=value,
                    suggestion=f"Set to at least {lo}",
                ))
            elif value > hi:
                issues.append(ValidationIssue(
                    field=name,
                    message=f"'{name}' value {value} is above maximum {hi}",
                    severity=ValidationSeverity.ERROR,
                    value=value,
                    suggestion=f"Set to at most {hi}",
                ))
        return issues

    def _validate_credentials(self, cfg) -> List[ValidationIssue]:
        if getattr(cfg, "dry_run", False):
            return []
        issues = []
        if not getattr(cfg, "hl_private_key", None):
            issues.append(ValidationIssue(
                field="hl_private_key",
                message="No Hyperliquid signing key configured",
                severity=ValidationSeverity.ERROR,
                suggestion="Set HEDGE_HL_PRIVATE_KEY or run with HEDGE_DRY_RUN=1",
            ))
        if not getattr(cfg, "binance_api_key", None) or not getattr(cfg, "binance_api_secret", None):
            issues.append(ValidationIssue(
                field="binance_api_key",
                message="Binance API key/secret missing",
                severity=ValidationSeverity.ERROR,
                suggestion="Set HEDGE_BINANCE_API_KEY and HEDGE_BINANCE_API_SECRET or run with HEDGE_DRY_RUN=1",
            ))
        return issues

    def _check_risky_configs(self, cfg) -> List[ValidationIssue]:
        issues = []
        max_lev = getattr(cfg, "max_leverage", 3.0)
        if max_lev > 10:
            issues.append(ValidationIssue(
                field="max_leverage",
                message=f"High leverage ceiling ({max_lev}x) leaves little room before liquidation",
                severity=ValidationSeverity.WARNING,
                value=max_lev,
            ))
        emergency = getattr(cfg, "emergency_leverage", 5.0)
        if emergency - max_lev < 0.5:
            issues.append(ValidationIssue(
                field="emergency_leverage",
                message=f"Emergency threshold ({emergency}x) is very close to the maximum ({max_lev}x)",
                severity=ValidationSeverity.WARNING,
                value=emergency,
                suggestion="Leave at least 0.5x between max and emergency leverage",
            ))
        if getattr(cfg, "max_daily_trades", 1000) == 0:
            issues.append(ValidationIssue(
                field="max_daily_trades",
                message="Daily trade limit disabled",
                severity=ValidationSeverity.WARNING,
                value=0,
            ))
        if not getattr(cfg, "enable_hedge_balancing", True):
            issues.append(ValidationIssue(
                field="enable_hedge_balancing",
                message="Hedge balancing disabled: unhedged fills will not be corrected",
                severity=ValidationSeverity.WARNING,
            ))
        if getattr(cfg, "equity_mode", "static") == "static" and not getattr(cfg, "dry_run", False):
            issues.append(ValidationIssue(
                field="equity_mode",
                message="Leverage is computed against a static equity figure",
                severity=ValidationSeverity.INFO,
                suggestion="Set HEDGE_EQUITY_MODE=venue to use reported account equity",
            ))
        return issues


def validate_config(cfg) -> ValidationResult:
    return ConfigValidator().validate(cfg)


def validate_and_log(cfg, logger_instance: Optional[logging.Logger] = None) -> bool:
    """
    Validate config and log all issues.

    Returns True if the config has no errors.
    """
    log = logger_instance or logger
    result = validate_config(cfg)

    for issue in result.get_errors():
        msg = f"CONFIG ERROR: {issue.message}"
        if issue.suggestion:
            msg += f" (suggestion: {issue.suggestion})"
        log.error(msg)

    for issue in result.get_warnings():
        msg = f"CONFIG WARNING: {issue.message}"
        if issue.suggestion:
            msg += f" (suggestion: {issue.suggestion})"
        log.warning(msg)

    if result.valid:
        log.info("Configuration validation passed")
    else:
        log.error(f"Configuration validation failed with {len(result.get_errors())} error(s)")
    return result.valid
