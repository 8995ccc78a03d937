"""
Trading agent: one market order per tick in a direction chosen by a simple
strategy over recent order-book prices.

Tick errors are logged and the agent keeps ticking.
"""

from __future__ import annotations

import json
import logging
import random
from collections import deque
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Deque, Optional

from baristabot.core.errors import WorkerInitError
from baristabot.core.scheduling import PeriodicTask
from baristabot.strategy.ladder import scale_amount
from baristabot.strategy.trading_strategies import StrategyFactory

if TYPE_CHECKING:
    from baristabot.config.config import Settings
    from baristabot.execution.exchange_service import ExchangeService
    from baristabot.market_data.price_sources import PriceSourceChain
    from baristabot.monitoring.metrics import BotMetrics
    from baristabot.token_setup import TokenSetup

log = logging.getLogger("baristabot")

HISTORY_SIZE = 10
MIN_SIZE_MULTIPLIER = 0.01
MAX_SIZE_MULTIPLIER = 0.30


class IntervalType(Enum):
    HIGH_FREQ = "high_freq"
    FAST = "fast"
    NORMAL = "normal"
    LONG = "long"


def draw_interval(kind: IntervalType, rng: random.Random) -> float:
    """Seconds until the next tick."""
    if kind is IntervalType.HIGH_FREQ:
        return 0.1
    if kind is IntervalType.FAST:
        return 2.0
    if kind is IntervalType.LONG:
        return rng.uniform(180.0, 300.0)
    return rng.uniform(30.0, 120.0)


def draw_size_multiplier(rng: random.Random) -> float:
    return round(rng.uniform(MIN_SIZE_MULTIPLIER, MAX_SIZE_MULTIPLIER), 2)


class TradingAgent:
    kind = "trading-agent"

    def __init__(
        self,
        settings: "Settings",
        exchange: "ExchangeService",
        price_chain: "PriceSourceChain",
        metrics: Optional["BotMetrics"] = None,
        rng: Optional[random.Random] = None,
        index: int = 0,
        token_setup: Optional["TokenSetup"] = None,
        stop_grace_sec: float = 30.0,
    ) -> None:
        self.settings = settings
        self.exchange = exchange
        self.price_chain = price_chain
        self._metrics = metrics
        self.rng = rng or random.Random()
        self.index = index
        self.token_setup = token_setup
        self.interval_type = IntervalType(settings.trading_interval)
        self.strategy = StrategyFactory.create(settings.trading_strategy, self.rng)
        self.history: Deque[int] = deque(maxlen=HISTORY_SIZE)
        self.trades = 0
        self._timer = PeriodicTask(f"agent-{index}", self.tick, self.next_interval, stop_grace_sec)
        self.initialized = False

    @property
    def name(self) -> str:
        return f"agent-{self.index}:{self.account}"

    @property
    def account(self) -> str:
        return self.exchange.account

    @property
    def is_running(self) -> bool:
        return self._timer.is_running

    def next_interval(self) -> float:
        return draw_interval(self.interval_type, self.rng)

    async def initialize(self) -> None:
        if not self.settings.base_token or not self.settings.quote_token:
            raise WorkerInitError("base or quote token not configured")
        try:
            await self.exchange.load_pool_info()
        except Exception as exc:
            raise WorkerInitError(f"pool check failed: {exc}") from exc
        if self.token_setup is not None:
            await self.token_setup.run()
        self.initialized = True
        log.info(json.dumps({
            "event": "agent_initialized",
            "account": self.account,
            "agent": self.index,
            "strategy": self.strategy.name,
            "interval": self.interval_type.value,
        }))

    async def start(self) -> None:
        if not self.initialized:
            raise RuntimeError("start() before initialize()")
        self._timer.start()
        log.info(json.dumps({"event": "agent_started", "account": self.account, "agent": self.index}))

    async def stop(self) -> None:
        await self._timer.stop()
        log.info(json.dumps({"event": "agent_stopped", "account": self.account, "agent": self.index, "trades": self.trades}))

    def update_config(self, settings: "Settings") -> None:
        """Order size applies from the next tick; strategy and interval type are fixed at start."""
        self.settings = settings

    async def tick(self) -> Optional[str]:
        try:
            return await self._trade()
        except Exception as exc:
            log.error(json.dumps({"event": "agent_tick_error", "account": self.account, "agent": self.index, "err": str(exc)}))
            return None

    async def _trade(self) -> Optional[str]:
        price = await self.price_chain.resolve()
        if price is None:
            return None
        self.history.append(price)
        side = self.strategy.pick_side(list(self.history), price)

        multiplier = draw_size_multiplier(self.rng)
        base_quantity = scale_amount(self.settings.order_size, self.exchange.pool.base_decimals)
        quantity = int(Decimal(base_quantity) * Decimal(str(multiplier)))
        if quantity <= 0:
            return None

        try:
            tx = await self.exchange.place_market_order(side, quantity)
        except Exception:
            if self._metrics:
                self._metrics.market_orders.labels(side=side.label, result="error").inc()
            raise
        self.trades += 1
        if self._metrics:
            self._metrics.market_orders.labels(side=side.label, result="ok").inc()
        log.info(json.dumps({
            "event": "market_order_sent",
            "account": self.account,
            "agent": self.index,
            "strategy": self.strategy.name,
            "side": side.label,
            "quantity": quantity,
            "size_pct": round(multiplier * 100),
            "price": price,
            "tx": tx,
        }))
        return tx
