"""
Execution package.

This package contains the per-account execution queue, the exchange call
surface built on it and the market maker's reconciliation engine.
"""

from baristabot.execution.exchange_service import (
    ExchangeAddresses,
    ExchangeService,
    PoolChangedError,
    PoolNotFoundError,
)
from baristabot.execution.execution_queue import (
    ExecutionQueue,
    ExecutionQueueConfig,
    QueueClosedError,
    is_nonce_error,
)
from baristabot.execution.reconciliation_service import (
    CancelSummary,
    CycleResult,
    CycleState,
    ReconciliationEngine,
)

__all__ = [
    "ExchangeAddresses",
    "ExchangeService",
    "PoolChangedError",
    "PoolNotFoundError",
    "ExecutionQueue",
    "ExecutionQueueConfig",
    "QueueClosedError",
    "is_nonce_error",
    "CancelSummary",
    "CycleResult",
    "CycleState",
    "ReconciliationEngine",
]
