"""
ReconciliationEngine: per-cycle decision between rebuilding the ladder and
patching its gaps.

Cycle:
    IDLE -> FETCHING_PRICE -> DECIDING -> REPLACING_ALL | FILLING_GAPS -> IDLE

- the reference price comes from the market maker's PriceSourceChain; when
  every source fails the previous price is kept, and with no previous price
  the cycle places nothing
- a move strictly beyond PRICE_DEVIATION_THRESHOLD_BPS (or no previous price)
  cancels every open order and places the full ladder
- otherwise only the missing outer rungs of each side are placed

Every place and cancel goes through the ExchangeService, i.e. the account's
ExecutionQueue. Overlapping cycles are prevented by a CycleGuard: a cycle
requested while one runs is skipped, not queued.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Optional, Sequence

from baristabot.core.scheduling import CycleGuard
from baristabot.core.types import Order, Side, count_by_side
from baristabot.strategy.ladder import (
    Rung,
    deviation_bps,
    is_deviation_significant,
    plan_gap_rungs,
    plan_ladder,
    scale_amount,
)

if TYPE_CHECKING:
    from baristabot.config.config import Settings
    from baristabot.execution.exchange_service import ExchangeService
    from baristabot.market_data.price_sources import PriceSourceChain
    from baristabot.monitoring.metrics import BotMetrics

log = logging.getLogger("baristabot")


class CycleState(Enum):
    IDLE = "idle"
    FETCHING_PRICE = "fetching_price"
    DECIDING = "deciding"
    REPLACING_ALL = "replacing_all"
    FILLING_GAPS = "filling_gaps"


@dataclass
class CancelSummary:
    total: int = 0
    cancelled: int = 0
    failed: int = 0


@dataclass
class CycleResult:
    """Outcome of one cycle. mode is replace_all, fill_gaps, skipped, no_price or failed."""
    mode: str
    reference_price: Optional[int] = None
    deviation_bps: Optional[int] = None
    placed: int = 0
    place_failed: int = 0
    cancelled: int = 0
    cancel_failed: int = 0
    error: Optional[str] = None


class ReconciliationEngine:
    def __init__(
        self,
        exchange: "ExchangeService",
        price_chain: "PriceSourceChain",
        settings: "Settings",
        metrics: Optional["BotMetrics"] = None,
        guard: Optional[CycleGuard] = None,
    ) -> None:
        self.exchange = exchange
        self.price_chain = price_chain
        self.settings = settings
        self._metrics = metrics
        self._guard = guard or CycleGuard()
        self.state = CycleState.IDLE
        self.last_price: Optional[int] = None
        self.cycles = 0

    @property
    def account(self) -> str:
        return self.exchange.account

    def update_config(self, settings: "Settings") -> None:
        """New snapshot; the running cycle keeps the one it started with."""
        self.settings = settings
        log.info(json.dumps({
            "event": "mm_config_updated",
            "account": self.account,
            "spread_bps": settings.spread_bps,
            "step_bps": settings.price_step_bps,
            "depth": settings.max_orders_per_side,
            "threshold_bps": settings.price_deviation_threshold_bps,
        }))

    async def run_cycle(self) -> CycleResult:
        if not await self._guard.try_acquire():
            if self._metrics:
                self._metrics.cycles_skipped.inc()
            log.info(json.dumps({"event": "cycle_skipped", "account": self.account, "state": self.state.value}))
            return CycleResult(mode="skipped")
        try:
            return await self._run(self.settings)
        finally:
            self.state = CycleState.IDLE
            self._guard.release()

    async def _run(self, settings: "Settings") -> CycleResult:
        self.state = CycleState.FETCHING_PRICE
        price = await self.price_chain.resolve()
        if price is None:
            if self.last_price is None:
                log.warning(json.dumps({"event": "no_reference_price", "account": self.account}))
                return CycleResult(mode="no_price")
            price = self.last_price

        self.state = CycleState.DECIDING
        try:
            orders = await self.exchange.get_active_orders()
        except Exception as exc:
            log.error(json.dumps({"event": "cycle_failed", "account": self.account, "stage": "active_orders", "err": str(exc)}))
            return CycleResult(mode="failed", reference_price=price, error=str(exc))

        previous = self.last_price
        rebuild = is_deviation_significant(previous, price, settings.price_deviation_threshold_bps)
        moved = deviation_bps(previous, price) if previous is not None else None
        self.last_price = price
        if self._metrics:
            self._metrics.reference_price.set(price)

        if rebuild:
            self.state = CycleState.REPLACING_ALL
            result = await self._replace_all(settings, price, orders)
        else:
            self.state = CycleState.FILLING_GAPS
            result = await self._fill_gaps(settings, price, orders)
        result.deviation_bps = moved

        self.cycles += 1
        if self._metrics:
            self._metrics.cycles.labels(mode=result.mode).inc()
        log.info(json.dumps({
            "event": "cycle_complete",
            "account": self.account,
            "mode": result.mode,
            "price": price,
            "previous": previous,
            "source": self.price_chain.last_source,
            "deviation_bps": moved,
            "placed": result.placed,
            "place_failed": result.place_failed,
            "cancelled": result.cancelled,
            "cancel_failed": result.cancel_failed,
        }))
        return result

    async def _replace_all(self, settings: "Settings", price: int, orders: Sequence[Order]) -> CycleResult:
        summary = await self.cancel_all_orders(orders)
        pool = self.exchange.pool
        plan = plan_ladder(
            price,
            settings.max_orders_per_side,
            settings.spread_bps,
            settings.price_step_bps,
            scale_amount(settings.order_size, pool.base_decimals),
            pool.quote_decimals,
            settings.price_increment,
        )
        placed, failed = await self._place(plan)
        return CycleResult(
            mode="replace_all",
            reference_price=price,
            placed=placed,
            place_failed=failed,
            cancelled=summary.cancelled,
            cancel_failed=summary.failed,
        )

    async def _fill_gaps(self, settings: "Settings", price: int, orders: Sequence[Order]) -> CycleResult:
        pool = self.exchange.pool
        counts = count_by_side(orders)
        plan = plan_gap_rungs(
            price,
            settings.max_orders_per_side,
            counts,
            settings.spread_bps,
            settings.price_step_bps,
            scale_amount(settings.order_size, pool.base_decimals),
            pool.quote_decimals,
            settings.price_increment,
        )
        if not plan:
            log.debug(json.dumps({"event": "ladder_complete", "account": self.account, "buys": counts[Side.BUY], "sells": counts[Side.SELL]}))
        placed, failed = await self._place(plan)
        return CycleResult(mode="fill_gaps", reference_price=price, placed=placed, place_failed=failed)

    async def cancel_all_orders(self, orders: Optional[Sequence[Order]] = None) -> CancelSummary:
        """Cancel every open order concurrently; individual failures are logged and counted."""
        if orders is None:
            orders = await self.exchange.get_active_orders()
        orders = list(orders)
        summary = CancelSummary(total=len(orders))
        if not orders:
            return summary
        results = await asyncio.gather(
            *(self.exchange.cancel_order(order) for order in orders),
            return_exceptions=True,
        )
        for order, outcome in zip(orders, results):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, BaseException):
                summary.failed += 1
                log.warning(json.dumps({
                    "event": "cancel_failed",
                    "account": self.account,
                    "order_id": order.id,
                    "side": order.side.label,
                    "price": order.price,
                    "err": str(outcome),
                }))
                if self._metrics:
                    self._metrics.orders_cancelled.labels(result="error").inc()
            else:
                summary.cancelled += 1
                if self._metrics:
                    self._metrics.orders_cancelled.labels(result="ok").inc()
        log.info(json.dumps({
            "event": "orders_cancelled",
            "account": self.account,
            "total": summary.total,
            "cancelled": summary.cancelled,
            "failed": summary.failed,
        }))
        return summary

    async def _place(self, plan: Sequence[Rung]) -> tuple[int, int]:
        """Place rungs one after another; a failed rung is logged and skipped."""
        placed = 0
        failed = 0
        for rung in plan:
            if rung.price <= 0 or rung.quantity <= 0:
                log.warning(json.dumps({"event": "rung_skipped", "account": self.account, "side": rung.side.label,
                                        "index": rung.index, "price": rung.price, "quantity": rung.quantity}))
                continue
            try:
                tx = await self.exchange.place_limit_order(rung.side, rung.price, rung.quantity)
            except Exception as exc:
                failed += 1
                log.warning(json.dumps({
                    "event": "place_failed",
                    "account": self.account,
                    "side": rung.side.label,
                    "index": rung.index,
                    "price": rung.price,
                    "err": str(exc),
                }))
                if self._metrics:
                    self._metrics.orders_placed.labels(side=rung.side.label, result="error").inc()
                continue
            placed += 1
            log.info(json.dumps({
                "event": "order_placed",
                "account": self.account,
                "side": rung.side.label,
                "index": rung.index,
                "price": rung.price,
                "quantity": rung.quantity,
                "tx": tx,
            }))
            if self._metrics:
                self._metrics.orders_placed.labels(side=rung.side.label, result="ok").inc()
        return placed, failed
