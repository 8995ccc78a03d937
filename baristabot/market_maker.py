"""
Market maker worker: keeps a two-sided ladder around the reference price.

Lifecycle:
    initialize()  pool checks, optional token setup; WorkerInitError on failure
    start()       startup cancel-all pass, first cycle, then the refresh timer
    stop()        timer stopped, running cycle given a grace period, one
                  best-effort cancel-all pass
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Optional

from baristabot.core.errors import WorkerInitError
from baristabot.core.scheduling import PeriodicTask
from baristabot.execution.reconciliation_service import CancelSummary, CycleResult, ReconciliationEngine

if TYPE_CHECKING:
    from baristabot.config.config import Settings
    from baristabot.execution.exchange_service import ExchangeService
    from baristabot.market_data.price_sources import PriceSourceChain
    from baristabot.monitoring.metrics import BotMetrics
    from baristabot.token_setup import TokenSetup

log = logging.getLogger("baristabot")


class MarketMakerWorker:
    kind = "market-maker"

    def __init__(
        self,
        settings: "Settings",
        exchange: "ExchangeService",
        price_chain: "PriceSourceChain",
        metrics: Optional["BotMetrics"] = None,
        token_setup: Optional["TokenSetup"] = None,
        stop_grace_sec: float = 30.0,
    ) -> None:
        self.settings = settings
        self.exchange = exchange
        self.engine = ReconciliationEngine(exchange, price_chain, settings, metrics=metrics)
        self.token_setup = token_setup
        self._timer = PeriodicTask("market-maker", self.run_cycle, self._refresh_interval, stop_grace_sec)
        self.initialized = False

    @property
    def name(self) -> str:
        return f"market-maker:{self.account}"

    @property
    def account(self) -> str:
        return self.exchange.account

    @property
    def is_running(self) -> bool:
        return self._timer.is_running

    def _refresh_interval(self) -> float:
        return self.settings.refresh_interval_sec

    async def initialize(self) -> None:
        if not self.settings.base_token or not self.settings.quote_token:
            raise WorkerInitError("base or quote token not configured")
        try:
            pool = await self.exchange.load_pool_info()
        except Exception as exc:
            raise WorkerInitError(f"pool check failed: {exc}") from exc
        if self.token_setup is not None:
            await self.token_setup.run()
        self.initialized = True
        log.info(json.dumps({
            "event": "mm_initialized",
            "account": self.account,
            "chain_id": self.settings.chain_id,
            "order_book": pool.order_book,
            "refresh_sec": self.settings.refresh_interval_sec,
        }))

    async def start(self) -> None:
        if not self.initialized:
            raise RuntimeError("start() before initialize()")
        await self._cancel_all("startup")
        try:
            await self.run_cycle()
        except Exception as exc:
            log.error(json.dumps({"event": "cycle_error", "account": self.account, "err": str(exc)}))
        self._timer.start()
        log.info(json.dumps({"event": "mm_started", "account": self.account}))

    async def run_cycle(self) -> CycleResult:
        return await self.engine.run_cycle()

    def update_config(self, settings: "Settings") -> None:
        """Applies from the next cycle; the refresh interval from the next tick."""
        self.settings = settings
        self.engine.update_config(settings)

    async def stop(self) -> CancelSummary:
        await self._timer.stop()
        summary = await self._cancel_all("shutdown")
        log.info(json.dumps({"event": "mm_stopped", "account": self.account, "cancelled": summary.cancelled}))
        return summary

    async def _cancel_all(self, reason: str) -> CancelSummary:
        try:
            return await self.engine.cancel_all_orders()
        except Exception as exc:
            log.error(json.dumps({"event": "cancel_all_failed", "account": self.account, "reason": reason, "err": str(exc)}))
            return CancelSummary()
