"""
Core package.

This package contains the exchange value types and the cooperative
scheduling primitives shared by every worker.
"""

from baristabot.core.errors import WorkerInitError
from baristabot.core.scheduling import CycleGuard, PeriodicTask
from baristabot.core.types import (
    REFERENCE_DECIMALS,
    Order,
    PoolInfo,
    PoolKey,
    PriceVolume,
    Side,
    count_by_side,
)

__all__ = [
    "WorkerInitError",
    "CycleGuard",
    "PeriodicTask",
    "REFERENCE_DECIMALS",
    "Order",
    "PoolInfo",
    "PoolKey",
    "PriceVolume",
    "Side",
    "count_by_side",
]
