"""
Pytest configuration and fixtures.
Adds the repo root to the Python path so tests can import baristabot
without an install, and provides in-memory fakes for the chain and exchange.
"""

import asyncio
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

# Add the repo root to sys.path
repo_root = Path(__file__).parent.parent
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from baristabot.config.config import Settings  # noqa: E402
from baristabot.core.types import Order, PoolInfo, PoolKey, PriceVolume, Side  # noqa: E402

BASE = "0x1111111111111111111111111111111111111111"
QUOTE = "0x2222222222222222222222222222222222222222"
ORDER_BOOK = "0x3333333333333333333333333333333333333333"
POOL_MANAGER = "0x4444444444444444444444444444444444444444"
ROUTER = "0x5555555555555555555555555555555555555555"
BALANCE_MANAGER = "0x6666666666666666666666666666666666666666"
ACCOUNT = "0x7777777777777777777777777777777777777777"
# anvil's first dev key
DEV_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"


def make_settings(**overrides: Any) -> Settings:
    values: Dict[str, Any] = dict(
        chain_id=31337,
        rpc_url="http://127.0.0.1:8545",
        mainnet_rpc_url=None,
        private_key=DEV_KEY,
        trader_private_keys=(),
        pool_manager_address=POOL_MANAGER,
        router_address=ROUTER,
        balance_manager_address=BALANCE_MANAGER,
        base_token=BASE,
        quote_token=QUOTE,
        router_abi_path=None,
        pool_manager_abi_path=None,
        spread_pct=0.2,
        price_step_pct=0.1,
        max_orders_per_side=3,
        order_size="0.1",
        refresh_interval_ms=60000,
        price_deviation_threshold_bps=500,
        price_increment=10000,
        use_binance_price=False,
        spot_price_url="https://spot.test/api/v3/ticker/price",
        spot_price_symbol="ETHUSDC",
        chainlink_feed_address="0x5f4eC3Df9cbd43714FE2740f5E3616155c5b8419",
        price_stale_sec=3600,
        default_price="2000",
        trading_interval="normal",
        trading_strategy="random",
        tx_max_attempts=5,
        nonce_resync_every=5,
        nonce_resync_delay_sec=2.0,
        http_timeout=10.0,
        metrics_port=0,
        log_level="INFO",
        log_file=None,
        cloud_update_url=None,
        cloud_login_token=None,
        cloud_poll_interval_sec=300.0,
        summary_interval_sec=0,
        average_block_time=1.0,
        reports_dir="reports",
        setup_tokens=False,
        warmup_sec=10.0,
        agent_stagger_sec=2.0,
    )
    values.update(overrides)
    return Settings(**values)


class FakeNonceSource:
    """Chain stand-in for the execution queue: answers a settable transaction count."""

    def __init__(self, count: int = 0) -> None:
        self.count = count
        self.calls = 0

    async def get_transaction_count(self, address: str, block: Any = "pending") -> int:
        self.calls += 1
        return self.count


class FakeQueue:
    def __init__(self, account: str = ACCOUNT) -> None:
        self.account = account
        self.closed = False
        self.close_calls: List[bool] = []

    async def close(self, drain: bool = True) -> None:
        self.closed = True
        self.close_calls.append(drain)


class FakeExchange:
    """In-memory ExchangeService with the same call surface."""

    def __init__(self, orders: Optional[List[Order]] = None, base_decimals: int = 18, quote_decimals: int = 6) -> None:
        self.account = ACCOUNT
        self.pool = PoolInfo(PoolKey(BASE, QUOTE), ORDER_BOOK, base_decimals, quote_decimals)
        self.queue = FakeQueue()
        self.orders: List[Order] = list(orders or [])
        self.placed: List[tuple] = []
        self.market_orders: List[tuple] = []
        self.cancelled: List[int] = []
        self.fail_cancel_ids: set = set()
        self.fail_place_prices: set = set()
        self.fail_active_orders: Optional[Exception] = None
        self.fail_market: Optional[Exception] = None
        self.best: Dict[Side, PriceVolume] = {Side.BUY: PriceVolume(0, 0), Side.SELL: PriceVolume(0, 0)}
        self.pool_error: Optional[Exception] = None
        self.events: List[str] = []
        self._next_id = 1000

    async def load_pool_info(self) -> PoolInfo:
        if self.pool_error is not None:
            raise self.pool_error
        return self.pool

    async def get_active_orders(self) -> List[Order]:
        if self.fail_active_orders is not None:
            raise self.fail_active_orders
        return list(self.orders)

    async def cancel_order(self, order: Order) -> str:
        await asyncio.sleep(0)
        if order.id in self.fail_cancel_ids:
            raise RuntimeError(f"execution reverted: order {order.id} not found")
        self.cancelled.append(order.id)
        self.orders = [o for o in self.orders if o.id != order.id]
        self.events.append(f"cancel:{order.id}")
        return f"0xcancel{order.id}"

    async def place_limit_order(self, side: Side, price: int, quantity: int) -> str:
        if price in self.fail_place_prices:
            raise RuntimeError("execution reverted: price out of range")
        self._next_id += 1
        self.placed.append((side, price, quantity))
        self.orders.append(Order(side=side, id=self._next_id, price=price, quantity=quantity))
        self.events.append(f"place:{side.label}:{price}")
        return f"0xplace{self._next_id}"

    async def place_market_order(self, side: Side, quantity: int) -> str:
        if self.fail_market is not None:
            raise self.fail_market
        self.market_orders.append((side, quantity))
        return f"0xmarket{len(self.market_orders)}"

    async def get_best_price(self, side: Side) -> PriceVolume:
        return self.best[side]


class StubPriceChain:
    """PriceSourceChain stand-in answering a scripted sequence (None = exhausted)."""

    def __init__(self, *prices: Optional[int]) -> None:
        self.prices = list(prices)
        self.last_source: Optional[str] = "stub"
        self.calls = 0

    async def resolve(self) -> Optional[int]:
        self.calls += 1
        if not self.prices:
            return None
        if len(self.prices) == 1:
            return self.prices[0]
        return self.prices.pop(0)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def fake_exchange() -> FakeExchange:
    return FakeExchange()
