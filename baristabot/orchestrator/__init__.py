"""
Orchestrator package.

This package contains the lifecycle coordinator for market maker and
trading agent workers.
"""

from baristabot.orchestrator.bot_orchestrator import (
    MODES,
    BotOrchestrator,
    BotRunner,
    create_orchestrator,
)

__all__ = [
    "MODES",
    "BotOrchestrator",
    "BotRunner",
    "create_orchestrator",
]
