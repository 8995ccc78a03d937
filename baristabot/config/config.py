"""
Environment-driven configuration snapshots.

Settings is frozen: workers keep the snapshot they were handed and only
switch when the orchestrator delivers a new one via update_config.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, fields, replace
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Tuple

from dotenv import load_dotenv

load_dotenv()

log = logging.getLogger("baristabot")

RISE_CHAIN_ID = 11155931
ESPRESSO_CHAIN_ID = 1020201
ANVIL_DEV_CHAIN_ID = 31338
ANVIL_CHAIN_ID = 31337

# per-chain env prefix for token address overrides
_CHAIN_TOKEN_PREFIX: Dict[int, str] = {
    RISE_CHAIN_ID: "RISE",
    ESPRESSO_CHAIN_ID: "ESPRESSO",
    ANVIL_DEV_CHAIN_ID: "ANVIL_DEV",
    ANVIL_CHAIN_ID: "ANVIL",
}

_DEFAULT_RPC: Dict[int, str] = {
    RISE_CHAIN_ID: "https://testnet.riselabs.xyz",
    ESPRESSO_CHAIN_ID: "https://157.173.201.26:8547",
    ANVIL_DEV_CHAIN_ID: "https://gtx-anvil.bobbyfiando.com",
    ANVIL_CHAIN_ID: "http://127.0.0.1:8545",
}

# ETH/USD aggregator on Ethereum mainnet
DEFAULT_AGGREGATOR = "0x5f4eC3Df9cbd43714FE2740f5E3616155c5b8419"

INTERVAL_TYPES = ("high_freq", "fast", "normal", "long")
STRATEGY_NAMES = ("random", "momentum", "mean-reversion", "randomize")


def env_bool(key: str, default: bool) -> bool:
    val = os.getenv(key)
    if val is None or val == "":
        return default
    return val.lower() in {"1", "true", "yes", "y"}


def _int_env(key: str, default: int) -> int:
    raw = os.getenv(key)
    if raw is None or raw == "":
        return default
    return int(raw)


def _float_env(key: str, default: float) -> float:
    raw = os.getenv(key)
    if raw is None or raw == "":
        return default
    return float(raw)


def _trader_keys() -> Tuple[str, ...]:
    """PRIVATE_KEY_TRADER_BOT_1, _2, ... up to the first gap."""
    keys: List[str] = []
    index = 1
    while True:
        key = os.getenv(f"PRIVATE_KEY_TRADER_BOT_{index}")
        if not key:
            break
        keys.append(key)
        index += 1
    return tuple(keys)


def _token_address(chain_id: int, which: str) -> Optional[str]:
    prefix = _CHAIN_TOKEN_PREFIX.get(chain_id)
    if prefix:
        scoped = os.getenv(f"{prefix}_{which}_TOKEN_ADDRESS")
        if scoped:
            return scoped
    return os.getenv(f"{which}_TOKEN_ADDRESS") or None


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class Settings:
    chain_id: int
    rpc_url: str
    mainnet_rpc_url: str | None
    private_key: str | None
    trader_private_keys: Tuple[str, ...]
    pool_manager_address: str | None
    router_address: str | None
    balance_manager_address: str | None
    base_token: str | None
    quote_token: str | None
    router_abi_path: str | None
    pool_manager_abi_path: str | None
    # market maker ladder
    spread_pct: float
    price_step_pct: float
    max_orders_per_side: int
    order_size: str  # human units of the base token, scaled by on-chain decimals
    refresh_interval_ms: int
    price_deviation_threshold_bps: int
    price_increment: int  # quote-token native units
    # price sources
    use_binance_price: bool
    spot_price_url: str
    spot_price_symbol: str
    chainlink_feed_address: str
    price_stale_sec: int
    default_price: str | None
    # trading agents
    trading_interval: str
    trading_strategy: str
    # execution queue
    tx_max_attempts: int
    nonce_resync_every: int
    nonce_resync_delay_sec: float
    http_timeout: float
    # ambient
    metrics_port: int
    log_level: str
    log_file: str | None
    cloud_update_url: str | None
    cloud_login_token: str | None
    cloud_poll_interval_sec: float
    summary_interval_sec: int
    average_block_time: float
    reports_dir: str
    setup_tokens: bool
    warmup_sec: float
    agent_stagger_sec: float

    def dump(self) -> dict:
        """Settings for logging, with key material masked."""
        data = dict(self.__dict__)
        if data.get("private_key"):
            data["private_key"] = "***"
        data["trader_private_keys"] = [f"***{i + 1}" for i in range(len(self.trader_private_keys))]
        if data.get("cloud_login_token"):
            data["cloud_login_token"] = "***"
        return data

    @property
    def spread_bps(self) -> int:
        return int(round(self.spread_pct * 100))

    @property
    def price_step_bps(self) -> int:
        return int(round(self.price_step_pct * 100))

    @property
    def refresh_interval_sec(self) -> float:
        return self.refresh_interval_ms / 1000.0

    @classmethod
    def load(cls, chain_id: Optional[int] = None) -> "Settings":
        chain = chain_id if chain_id is not None else _int_env("CHAIN_ID", ANVIL_CHAIN_ID)
        cfg = cls(
            chain_id=chain,
            rpc_url=os.getenv("RPC_URL") or _DEFAULT_RPC.get(chain, _DEFAULT_RPC[ANVIL_CHAIN_ID]),
            mainnet_rpc_url=os.getenv("MAINNET_RPC_URL") or None,
            private_key=os.getenv("PRIVATE_KEY") or None,
            trader_private_keys=_trader_keys(),
            pool_manager_address=os.getenv("POOL_MANAGER_ADDRESS") or None,
            router_address=os.getenv("ROUTER_ADDRESS") or None,
            balance_manager_address=os.getenv("BALANCE_MANAGER_ADDRESS") or None,
            base_token=_token_address(chain, "BASE"),
            quote_token=_token_address(chain, "QUOTE"),
            router_abi_path=os.getenv("ROUTER_ABI_PATH") or None,
            pool_manager_abi_path=os.getenv("POOL_MANAGER_ABI_PATH") or None,
            spread_pct=_float_env("SPREAD_PERCENTAGE", 0.2),
            price_step_pct=_float_env("PRICE_STEP_PERCENTAGE", 0.1),
            max_orders_per_side=_int_env("MAX_ORDERS_PER_SIDE", 5),
            order_size=os.getenv("ORDER_SIZE") or "0.1",
            refresh_interval_ms=_int_env("REFRESH_INTERVAL", 60000),
            price_deviation_threshold_bps=_int_env("PRICE_DEVIATION_THRESHOLD_BPS", 500),
            price_increment=_int_env("PRICE_INCREMENT", 10000),
            use_binance_price=env_bool("USE_BINANCE_PRICE", False),
            spot_price_url=os.getenv("SPOT_PRICE_URL", "https://data-api.binance.vision/api/v3/ticker/price"),
            spot_price_symbol=os.getenv("SPOT_PRICE_SYMBOL", "ETHUSDC"),
            chainlink_feed_address=os.getenv("CHAINLINK_FEED_ADDRESS") or DEFAULT_AGGREGATOR,
            price_stale_sec=_int_env("PRICE_STALE_SEC", 3600),
            default_price=os.getenv("DEFAULT_PRICE") or None,
            trading_interval=(os.getenv("TRADING_BOT_INTERVAL") or "normal").lower(),
            trading_strategy=(os.getenv("TRADING_BOT_STRATEGY") or "random").lower(),
            tx_max_attempts=_int_env("TX_MAX_ATTEMPTS", 5),
            nonce_resync_every=_int_env("NONCE_RESYNC_EVERY", 5),
            nonce_resync_delay_sec=_float_env("NONCE_RESYNC_DELAY_SEC", 2.0),
            http_timeout=_float_env("HTTP_TIMEOUT", 10.0),
            metrics_port=_int_env("METRICS_PORT", 0),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_file=os.getenv("LOG_FILE", "baristabot.log") or None,
            cloud_update_url=os.getenv("CLOUD_UPDATE_URL") or None,
            cloud_login_token=os.getenv("CLOUD_LOGIN_TOKEN") or None,
            cloud_poll_interval_sec=_float_env("CLOUD_POLL_INTERVAL_SEC", 300.0),
            summary_interval_sec=_int_env("SUMMARY_INTERVAL_SEC", 0),
            average_block_time=_float_env("AVERAGE_BLOCK_TIME", 1.0),
            reports_dir=os.getenv("REPORTS_DIR", "reports"),
            setup_tokens=env_bool("SETUP_TOKENS", False),
            warmup_sec=_float_env("WARMUP_SEC", 10.0),
            agent_stagger_sec=_float_env("AGENT_STAGGER_SEC", 2.0),
        )
        cfg._validate()
        _sanity_check(cfg)
        return cfg

    def with_overrides(self, **changes: Any) -> "Settings":
        """Return a new validated snapshot; unknown keys are rejected."""
        known = {f.name for f in fields(self)}
        unknown = set(changes) - known
        if unknown:
            raise ConfigError(f"unknown settings: {sorted(unknown)}")
        updated = replace(self, **changes)
        updated._validate()
        return updated

    def resolve_signer(self, private_key: Optional[str] = None):
        from eth_account import Account

        key = private_key or self.private_key
        if not key:
            raise ConfigError("Missing credentials: set PRIVATE_KEY")
        return Account.from_key(key)

    def _validate(self) -> None:
        if self.max_orders_per_side <= 0:
            raise ConfigError("MAX_ORDERS_PER_SIDE must be > 0")
        if self.spread_pct < 0 or self.price_step_pct < 0:
            raise ConfigError("SPREAD_PERCENTAGE and PRICE_STEP_PERCENTAGE must be >= 0")
        if self.spread_bps + self.price_step_bps * (self.max_orders_per_side - 1) >= 10000:
            raise ConfigError("ladder reaches 100% away from mid; reduce spread, step or depth")
        if self.refresh_interval_ms <= 0:
            raise ConfigError("REFRESH_INTERVAL must be > 0")
        if self.price_deviation_threshold_bps < 0:
            raise ConfigError("PRICE_DEVIATION_THRESHOLD_BPS must be >= 0")
        if self.price_increment <= 0:
            raise ConfigError("PRICE_INCREMENT must be > 0")
        if self.tx_max_attempts <= 0:
            raise ConfigError("TX_MAX_ATTEMPTS must be > 0")
        if self.nonce_resync_every <= 0 or self.nonce_resync_delay_sec < 0:
            raise ConfigError("nonce resync cadence must be positive")
        if self.trading_interval not in INTERVAL_TYPES:
            raise ConfigError(f"TRADING_BOT_INTERVAL must be one of {INTERVAL_TYPES}")
        if self.trading_strategy not in STRATEGY_NAMES:
            raise ConfigError(f"TRADING_BOT_STRATEGY must be one of {STRATEGY_NAMES}")
        for key, raw in (("ORDER_SIZE", self.order_size), ("DEFAULT_PRICE", self.default_price)):
            if raw is None:
                continue
            try:
                value = Decimal(raw)
            except InvalidOperation as exc:
                raise ConfigError(f"{key} is not a number: {raw!r}") from exc
            if value <= 0:
                raise ConfigError(f"{key} must be > 0")


def _sanity_check(cfg: Settings) -> None:
    """Log the ladder-shaping settings once at startup so overrides are obvious."""
    payload = {
        "event": "config_loaded",
        "chain_id": cfg.chain_id,
        "spread_bps": cfg.spread_bps,
        "step_bps": cfg.price_step_bps,
        "depth": cfg.max_orders_per_side,
        "threshold_bps": cfg.price_deviation_threshold_bps,
        "traders": len(cfg.trader_private_keys),
    }
    log.info(json.dumps(payload))
