"""
BotOrchestrator: lifecycle of the market maker and the trading agents.

Startup by mode:
    market-maker   the market maker only
    trading-bots   trading agents, staggered by AGENT_STAGGER_SEC
    all            market maker first, WARMUP_SEC for its ladder to land,
                   then the agents

Every worker runs inside a BotRunner. A worker whose initialization fails is
logged (bot_init_error) and never started; the others carry on.

Shutdown stops the agents first, then the market maker (timers stopped,
cancel-all pass), and finally drains every execution queue.
"""

from __future__ import annotations

import asyncio
import json
import logging
import traceback
from typing import Any, Awaitable, Callable, List, Optional, Protocol, TYPE_CHECKING

from baristabot.config.config_validator import MODES
from baristabot.core.errors import WorkerInitError

if TYPE_CHECKING:
    from baristabot.bot_factory import BotDependencies
    from baristabot.config.cloud_update import CloudConfigPoller
    from baristabot.config.config import Settings
    from baristabot.monitoring.summary_report import SummaryReporter

log = logging.getLogger("baristabot")


class Worker(Protocol):
    name: str
    exchange: Any

    async def initialize(self) -> None: ...

    async def start(self) -> None: ...

    async def stop(self) -> Any: ...

    def update_config(self, settings: "Settings") -> None: ...


class BotRunner:
    def __init__(self, worker: Worker) -> None:
        self.worker = worker
        self.started = False
        self.error: Exception | None = None

    @property
    def name(self) -> str:
        return self.worker.name

    async def start(self) -> bool:
        try:
            await self.worker.initialize()
        except Exception as exc:
            self.error = exc
            log.error(json.dumps({
                "event": "bot_init_error",
                "bot": self.name,
                "kind": "init" if isinstance(exc, WorkerInitError) else "unexpected",
                "err": str(exc),
                "traceback": traceback.format_exc(),
            }))
            return False
        try:
            await self.worker.start()
        except Exception as exc:
            self.error = exc
            log.error(json.dumps({"event": "bot_start_error", "bot": self.name, "err": str(exc)}))
            self.started = True
            await self.stop()
            return False
        self.started = True
        log.info(json.dumps({"event": "bot_started", "bot": self.name}))
        return True

    async def stop(self) -> None:
        """Stop the worker if it ran, then drain its queue. Never raises."""
        if self.started:
            try:
                await self.worker.stop()
            except Exception as exc:
                log.error(json.dumps({"event": "bot_stop_error", "bot": self.name, "err": str(exc)}))
            self.started = False
        queue = self.worker.exchange.queue
        if not queue.closed:
            await queue.close(drain=True)


class BotOrchestrator:
    def __init__(
        self,
        settings: "Settings",
        mode: str = "all",
        market_maker: Optional[Worker] = None,
        agents: Optional[List[Worker]] = None,
        cloud_poller: Optional["CloudConfigPoller"] = None,
        reporters: Optional[List["SummaryReporter"]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if mode not in MODES:
            raise ValueError(f"unknown mode: {mode}")
        self.settings = settings
        self.mode = mode
        self.mm_runner = BotRunner(market_maker) if market_maker is not None else None
        self.agent_runners = [BotRunner(a) for a in agents or []]
        self.cloud_poller = cloud_poller
        self.reporters = list(reporters or [])
        self._sleep = sleep
        self._stopped = False

    @property
    def runners(self) -> List[BotRunner]:
        return ([self.mm_runner] if self.mm_runner else []) + self.agent_runners

    @property
    def running(self) -> List[BotRunner]:
        return [r for r in self.runners if r.started]

    async def start(self) -> None:
        log.info(json.dumps({
            "event": "orchestrator_starting",
            "mode": self.mode,
            "agents": len(self.agent_runners),
            "market_maker": self.mm_runner is not None,
        }))
        mm_started = False
        if self.mode in ("market-maker", "all") and self.mm_runner is not None:
            mm_started = await self.mm_runner.start()

        if self.mode in ("trading-bots", "all") and self.agent_runners:
            if self.mode == "all" and mm_started and self.settings.warmup_sec > 0:
                log.info(json.dumps({"event": "warmup_wait", "seconds": self.settings.warmup_sec}))
                await self._sleep(self.settings.warmup_sec)
            await self._start_agents()

        if self.cloud_poller is not None:
            self.cloud_poller.start()
        for reporter in self.reporters:
            await reporter.start()

        log.info(json.dumps({
            "event": "orchestrator_started",
            "mode": self.mode,
            "running": [r.name for r in self.running],
            "failed": [r.name for r in self.runners if r.error is not None],
        }))

    async def _start_agents(self) -> None:
        for i, runner in enumerate(self.agent_runners):
            if i > 0 and self.settings.agent_stagger_sec > 0:
                await self._sleep(self.settings.agent_stagger_sec)
            await runner.start()

    async def update_config(self, settings: "Settings") -> None:
        """Hand every worker the new snapshot."""
        self.settings = settings
        for runner in self.runners:
            runner.worker.update_config(settings)
        log.info(json.dumps({"event": "config_broadcast", "workers": len(self.runners)}))

    async def shutdown(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        log.info(json.dumps({"event": "orchestrator_stopping", "running": [r.name for r in self.running]}))
        if self.cloud_poller is not None:
            await self.cloud_poller.stop()
        for reporter in self.reporters:
            await reporter.stop()
        for runner in self.agent_runners:
            await runner.stop()
        if self.mm_runner is not None:
            await self.mm_runner.stop()
        log.info(json.dumps({"event": "orchestrator_stopped"}))

    async def run_until(self, stop_event: asyncio.Event) -> None:
        """Start, wait for the stop signal, shut down."""
        try:
            await self.start()
            await stop_event.wait()
        finally:
            await self.shutdown()


def create_orchestrator(mode: str, deps: "BotDependencies") -> BotOrchestrator:
    from baristabot.bot_factory import create_market_maker, create_summary_reporter, create_trading_agents
    from baristabot.config.cloud_update import CloudConfigPoller

    cfg = deps.settings
    market_maker = create_market_maker(deps) if mode in ("market-maker", "all") else None
    agents = create_trading_agents(deps) if mode in ("trading-bots", "all") else []

    reporters = []
    if cfg.summary_interval_sec > 0:
        for worker in ([market_maker] if market_maker else []) + agents:
            reporters.append(create_summary_reporter(deps, worker.exchange))

    orchestrator = BotOrchestrator(cfg, mode=mode, market_maker=market_maker, agents=agents, reporters=reporters)
    if cfg.cloud_update_url and cfg.cloud_login_token:
        orchestrator.cloud_poller = CloudConfigPoller(cfg, orchestrator.update_config, client=deps.http)
    return orchestrator
