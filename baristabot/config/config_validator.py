"""
Startup validation of a Settings snapshot.

- required deployment addresses for the selected run mode
- numeric range checks
- warnings for configurations that are valid but probably unintended
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Dict, List, Optional, Tuple

from web3 import Web3

logger = logging.getLogger("baristabot")

MODES = ("market-maker", "trading-bots", "all")


class ValidationSeverity(Enum):
    ERROR = auto()    # Blocks startup
    WARNING = auto()  # Logged, startup continues


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

    def get_errors(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity == ValidationSeverity.ERROR]

    def get_warnings(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity == ValidationSeverity.WARNING]


class ConfigValidator:
    # (min, max)
    NUMERIC_RANGES: Dict[str, Tuple[float, float]] = {
        "spread_pct": (0.0, 50.0),
        "price_step_pct": (0.0, 50.0),
        "max_orders_per_side": (1, 100),
        "refresh_interval_ms": (1000, 3_600_000),
        "price_deviation_threshold_bps": (0, 10000),
        "tx_max_attempts": (1, 10),
        "nonce_resync_every": (1, 1000),
        "nonce_resync_delay_sec": (0.0, 60.0),
        "http_timeout": (1.0, 120.0),
        "price_stale_sec": (60, 86400),
    }

    ADDRESS_FIELDS = (
        "pool_manager_address",
        "router_address",
        "base_token",
        "quote_token",
    )

    def validate(self, cfg, mode: str = "all") -> ValidationResult:
        issues: List[ValidationIssue] = []
        issues.extend(self._validate_addresses(cfg))
        issues.extend(self._validate_credentials(cfg, mode))
        issues.extend(self._validate_numeric_ranges(cfg))
        issues.extend(self._check_risky_configs(cfg, mode))
        has_errors = any(i.severity == ValidationSeverity.ERROR for i in issues)
        return ValidationResult(valid=not has_errors, issues=issues)

    def _validate_addresses(self, cfg) -> List[ValidationIssue]:
        issues = []
        required = self.ADDRESS_FIELDS + (("balance_manager_address",) if cfg.setup_tokens else ())
        for field_name in required:
            value = getattr(cfg, field_name, None)
            if not value:
                issues.append(ValidationIssue(
                    field=field_name,
                    message=f"Required address '{field_name}' is missing",
                    severity=ValidationSeverity.ERROR,
                ))
            elif not Web3.is_address(value):
                issues.append(ValidationIssue(
                    field=field_name,
                    message=f"'{field_name}' is not a valid address",
                    severity=ValidationSeverity.ERROR,
                    value=value,
                ))
        return issues

    def _validate_credentials(self, cfg, mode: str) -> List[ValidationIssue]:
        issues = []
        if mode not in MODES:
            issues.append(ValidationIssue(
                field="mode",
                message=f"Unknown run mode '{mode}'",
                severity=ValidationSeverity.ERROR,
                suggestion=f"Use one of {', '.join(MODES)}",
            ))
            return issues
        if mode in ("market-maker", "all") and not cfg.private_key:
            issues.append(ValidationIssue(
                field="private_key",
                message="Market maker needs PRIVATE_KEY",
                severity=ValidationSeverity.ERROR,
            ))
        if mode == "trading-bots" and not cfg.trader_private_keys:
            issues.append(ValidationIssue(
                field="trader_private_keys",
                message="No PRIVATE_KEY_TRADER_BOT_<n> keys configured",
                severity=ValidationSeverity.ERROR,
                suggestion="Set PRIVATE_KEY_TRADER_BOT_1 (and _2, _3 ...)",
            ))
        return issues

    def _validate_numeric_ranges(self, cfg) -> List[ValidationIssue]:
        issues = []
        for field_name, (min_val, max_val) in self.NUMERIC_RANGES.items():
            value = float(getattr(cfg, field_name))
            if value < min_val or value > max_val:
                issues.append(ValidationIssue(
                    field=field_name,
                    message=f"'{field_name}' value {value} is outside [{min_val}, {max_val}]",
                    severity=ValidationSeverity.ERROR,
                    value=value,
                ))
        return issues

    def _check_risky_configs(self, cfg, mode: str) -> List[ValidationIssue]:
        issues = []
        if mode in ("market-maker", "all"):
            if not cfg.use_binance_price and not cfg.mainnet_rpc_url and not cfg.default_price:
                issues.append(ValidationIssue(
                    field="default_price",
                    message="No usable price source: spot feed disabled, no MAINNET_RPC_URL, no DEFAULT_PRICE",
                    severity=ValidationSeverity.ERROR,
                    suggestion="Set USE_BINANCE_PRICE=true, MAINNET_RPC_URL or DEFAULT_PRICE",
                ))
            elif not cfg.default_price:
                issues.append(ValidationIssue(
                    field="default_price",
                    message="No DEFAULT_PRICE fallback; a feed outage leaves the ladder on the previous price",
                    severity=ValidationSeverity.WARNING,
                ))
        if cfg.price_deviation_threshold_bps < cfg.spread_bps:
            issues.append(ValidationIssue(
                field="price_deviation_threshold_bps",
                message="Deviation threshold is tighter than the spread; expect a full rebuild most cycles",
                severity=ValidationSeverity.WARNING,
                value=cfg.price_deviation_threshold_bps,
            ))
        if cfg.trading_interval == "high_freq" and mode in ("trading-bots", "all"):
            issues.append(ValidationIssue(
                field="trading_interval",
                message="high_freq agents submit every 100ms and will keep the execution queue saturated",
                severity=ValidationSeverity.WARNING,
            ))
        return issues


def validate_config(cfg, mode: str = "all") -> ValidationResult:
    return ConfigValidator().validate(cfg, mode)


def validate_and_log(cfg, logger_instance=None, mode: str = "all") -> bool:
    """
    Validate config and log every issue.

    Returns:
        True if config is valid (no errors), False otherwise
    """
    log = logger_instance or logger
    result = validate_config(cfg, mode)

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
