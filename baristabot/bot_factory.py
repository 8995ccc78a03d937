"""
BotFactory: builds the per-account component graph for each worker.

One account = one ChainClient + one ExecutionQueue + one ExchangeService.
The market maker and the trading agents receive their PriceSourceChain from
here, so both workers share the same "submit transaction" and "fetch
reference price" capabilities.

Usage:
    deps = BotDependencies(settings=cfg, metrics=metrics, http=http_client)
    mm = create_market_maker(deps)
    agents = create_trading_agents(deps)
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, TYPE_CHECKING

import httpx
from eth_account import Account

from baristabot.core.types import PoolKey
from baristabot.execution.exchange_service import ExchangeAddresses, ExchangeService
from baristabot.execution.execution_queue import ExecutionQueue, ExecutionQueueConfig
from baristabot.infra.abis import POOL_MANAGER_ABI, ROUTER_ABI, load_abi
from baristabot.infra.chain_client import ChainClient
from baristabot.market_data.price_sources import (
    AggregatorPriceSource,
    OrderBookPriceSource,
    PriceSource,
    PriceSourceChain,
    SpotPriceSource,
    StaticPriceSource,
)
from baristabot.market_maker import MarketMakerWorker
from baristabot.monitoring.summary_report import SummaryReporter
from baristabot.token_setup import TokenSetup
from baristabot.trading_agent import TradingAgent

if TYPE_CHECKING:
    from baristabot.config.config import Settings
    from baristabot.monitoring.metrics import BotMetrics

log = logging.getLogger("baristabot")

ClientFactory = Callable[["Settings", Any], Any]


def default_client_factory(settings: "Settings", signer) -> ChainClient:
    return ChainClient.from_rpc(settings.rpc_url, account=signer, chain_id=settings.chain_id, timeout=settings.http_timeout)


@dataclass
class BotDependencies:
    """Process-wide resources shared by every worker."""
    settings: "Settings"
    metrics: Optional["BotMetrics"] = None
    http: Optional[httpx.AsyncClient] = None
    mainnet: Optional[Any] = None  # read-only ChainClient for the aggregator feed
    client_factory: ClientFactory = default_client_factory
    rng: Optional[random.Random] = None
    clients: List[Any] = field(default_factory=list)  # every client created, for shutdown


def build_exchange(deps: BotDependencies, signer) -> ExchangeService:
    cfg = deps.settings
    client = deps.client_factory(cfg, signer)
    deps.clients.append(client)
    queue = ExecutionQueue(
        signer.address,
        client,
        config=ExecutionQueueConfig.from_settings(cfg),
        metrics=deps.metrics,
    )
    return ExchangeService(
        client,
        queue,
        ExchangeAddresses(
            pool_manager=cfg.pool_manager_address or "",
            router=cfg.router_address or "",
            balance_manager=cfg.balance_manager_address,
        ),
        PoolKey(base=cfg.base_token or "", quote=cfg.quote_token or ""),
        router_abi=load_abi(cfg.router_abi_path, ROUTER_ABI),
        pool_manager_abi=load_abi(cfg.pool_manager_abi_path, POOL_MANAGER_ABI),
    )


def market_maker_price_chain(deps: BotDependencies, account: str = "") -> PriceSourceChain:
    """Spot feed (when enabled) -> mainnet aggregator (when reachable) -> static default."""
    cfg = deps.settings
    sources: List[PriceSource] = []
    if cfg.use_binance_price and deps.http is not None:
        sources.append(SpotPriceSource(deps.http, cfg.spot_price_url, cfg.spot_price_symbol))
    if deps.mainnet is not None:
        sources.append(AggregatorPriceSource(deps.mainnet, cfg.chainlink_feed_address, cfg.price_stale_sec))
    sources.append(StaticPriceSource(cfg.default_price))
    return PriceSourceChain(sources, account=account)


def agent_price_chain(exchange: ExchangeService) -> PriceSourceChain:
    return PriceSourceChain([OrderBookPriceSource(exchange)], account=exchange.account)


def create_market_maker(deps: BotDependencies) -> MarketMakerWorker:
    cfg = deps.settings
    signer = cfg.resolve_signer()
    exchange = build_exchange(deps, signer)
    token_setup = TokenSetup(exchange, cfg.balance_manager_address) if cfg.setup_tokens else None
    return MarketMakerWorker(
        cfg,
        exchange,
        market_maker_price_chain(deps, account=exchange.account),
        metrics=deps.metrics,
        token_setup=token_setup,
    )


def create_trading_agents(deps: BotDependencies) -> List[TradingAgent]:
    cfg = deps.settings
    agents: List[TradingAgent] = []
    for index, key in enumerate(cfg.trader_private_keys, start=1):
        signer = Account.from_key(key)
        exchange = build_exchange(deps, signer)
        rng = random.Random(deps.rng.random()) if deps.rng is not None else None
        token_setup = TokenSetup(exchange, cfg.balance_manager_address) if cfg.setup_tokens else None
        agents.append(TradingAgent(
            cfg,
            exchange,
            agent_price_chain(exchange),
            metrics=deps.metrics,
            rng=rng,
            index=index,
            token_setup=token_setup,
        ))
    return agents


def create_summary_reporter(deps: BotDependencies, exchange: ExchangeService) -> SummaryReporter:
    cfg = deps.settings
    return SummaryReporter(
        exchange.client,
        exchange.account,
        interval_sec=cfg.summary_interval_sec,
        average_block_time=cfg.average_block_time,
        reports_dir=cfg.reports_dir,
    )
