"""
Entry point wiring all components.

    python -m baristabot.main [market-maker|trading-bots|all] [--chain-id N]
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import signal
import sys
from typing import List, Optional

import httpx

from baristabot.bot_factory import BotDependencies
from baristabot.config.config import ConfigError, Settings
from baristabot.config.config_validator import MODES, validate_and_log
from baristabot.infra.chain_client import ChainClient
from baristabot.infra.logging_cfg import build_logger, log_event
from baristabot.monitoring.metrics import BotMetrics, start_metrics_server
from baristabot.orchestrator.bot_orchestrator import create_orchestrator

# .env is already loaded by the config import above
log = build_logger(
    "baristabot",
    level=os.getenv("LOG_LEVEL", "INFO"),
    file_path=os.getenv("LOG_FILE", "baristabot.log") or None,
)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="baristabot", description="Market maker and trading agents for an on-chain order book")
    parser.add_argument("mode", nargs="?", default="all", type=str.lower, choices=MODES)
    parser.add_argument("--chain-id", type=int, default=None, help="override CHAIN_ID")
    return parser.parse_args(argv)


async def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    try:
        cfg = Settings.load(chain_id=args.chain_id)
    except (ConfigError, ValueError) as exc:
        log.error(json.dumps({"event": "config_error", "err": str(exc)}))
        return 1

    if not validate_and_log(cfg, log, mode=args.mode):
        log.error("Configuration validation failed, exiting")
        return 1

    metrics = BotMetrics()
    start_metrics_server(metrics, cfg.metrics_port)

    http_client = httpx.AsyncClient(http2=True, timeout=cfg.http_timeout)
    mainnet = ChainClient.from_rpc(cfg.mainnet_rpc_url, timeout=cfg.http_timeout) if cfg.mainnet_rpc_url else None
    deps = BotDependencies(settings=cfg, metrics=metrics, http=http_client, mainnet=mainnet)

    log_event(log, "startup", mode=args.mode, chain_id=cfg.chain_id, settings=cfg.dump())
    orchestrator = create_orchestrator(args.mode, deps)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    # Windows doesn't support add_signal_handler, so rely on KeyboardInterrupt handling
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            pass

    try:
        await orchestrator.run_until(stop_event)
    except asyncio.CancelledError:
        log.info("Shutdown signal received, cleaning up...")
    finally:
        log.info("Closing connections...")
        await http_client.aclose()
        for client in deps.clients:
            await client.close()
        if mainnet is not None:
            await mainnet.close()
        log.info("Shutdown complete")
    return 0


def run() -> None:
    try:
        code = asyncio.run(main())
    except KeyboardInterrupt:
        print("\nStopped by user")
        code = 0
    sys.exit(code)


if __name__ == "__main__":
    run()
