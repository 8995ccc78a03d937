"""
Infrastructure package.

This package contains the web3 chain client, contract ABIs and logging
configuration.
"""

from baristabot.infra.chain_client import ChainClient
from baristabot.infra.logging_cfg import build_logger, log_event

__all__ = [
    "ChainClient",
    "build_logger",
    "log_event",
]
