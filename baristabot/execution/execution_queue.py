"""
Per-account transaction queue owning the account nonce.

Every state-changing call for one signing key goes through submit(). A single
drainer task sends one transaction at a time in FIFO order, so the nonce
counter needs no lock: only the drainer reads or writes it.

Nonce policy:
    - first use: adopt the account's pending transaction count from chain
    - accepted send: next_nonce = max(next_nonce, used + 1)
    - every `resync_every` accepted sends: re-read the chain count after
      `resync_delay_sec` and adopt it only when it is ahead of us

Retry policy:
    - nonce-class failures ("nonce", "replacement transaction underpriced",
      "already known"): re-read the chain count, adopt it, sleep 2**attempt
      seconds, retry; after max_attempts the last error goes to the caller
    - anything else: raised to the caller after one attempt
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Awaitable, Callable, Deque, Optional, Protocol

if TYPE_CHECKING:
    from baristabot.monitoring.metrics import BotMetrics

log = logging.getLogger("baristabot")

# async callable receiving the assigned nonce, returning the tx hash
TxFactory = Callable[[int], Awaitable[str]]
Sleep = Callable[[float], Awaitable[None]]

NONCE_ERROR_MARKERS = (
    "nonce",
    "replacement transaction underpriced",
    "already known",
)


class QueueClosedError(RuntimeError):
    """Submission refused or abandoned because the queue was closed."""


def describe_error(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


def is_nonce_error(exc: BaseException) -> bool:
    msg = str(exc).lower()
    return any(marker in msg for marker in NONCE_ERROR_MARKERS)


class NonceSource(Protocol):
    async def get_transaction_count(self, address: str, block: str = "pending") -> int: ...


@dataclass
class ExecutionQueueConfig:
    max_attempts: int = 5
    resync_every: int = 5
    resync_delay_sec: float = 2.0

    @classmethod
    def from_settings(cls, cfg) -> "ExecutionQueueConfig":
        return cls(
            max_attempts=cfg.tx_max_attempts,
            resync_every=cfg.nonce_resync_every,
            resync_delay_sec=cfg.nonce_resync_delay_sec,
        )


@dataclass
class PendingSend:
    factory: TxFactory
    label: str
    future: asyncio.Future
    attempts: int = 0
    nonces: list[int] = field(default_factory=list)


class ExecutionQueue:
    def __init__(
        self,
        account: str,
        client: NonceSource,
        config: Optional[ExecutionQueueConfig] = None,
        metrics: Optional["BotMetrics"] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.account = account
        self._client = client
        self.config = config or ExecutionQueueConfig()
        self._metrics = metrics
        self._sleep = sleep
        self._pending: Deque[PendingSend] = deque()
        self._drainer: Optional[asyncio.Task] = None
        self._resync_task: Optional[asyncio.Task] = None
        self._next_nonce: Optional[int] = None
        self._sends_since_resync = 0
        self._closed = False

    @property
    def next_nonce(self) -> Optional[int]:
        return self._next_nonce

    @property
    def sends_since_resync(self) -> int:
        return self._sends_since_resync

    @property
    def depth(self) -> int:
        return len(self._pending)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def busy(self) -> bool:
        return self._drainer is not None and not self._drainer.done()

    async def submit(self, tx_factory: TxFactory, label: str = "tx") -> str:
        """Queue one send and wait for its terminal outcome (tx hash or the error)."""
        if self._closed:
            raise QueueClosedError(f"execution queue for {self.account} is closed")
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._pending.append(PendingSend(factory=tx_factory, label=label, future=future))
        self._update_depth()
        if not self.busy:
            self._drainer = asyncio.create_task(self._drain(), name=f"queue:{self.account}")
        return await future

    async def close(self, drain: bool = True) -> None:
        """
        Stop accepting submissions. With drain=True every queued send still
        runs; otherwise only the in-flight one completes and the rest are
        rejected with QueueClosedError.
        """
        self._closed = True
        abandoned = 0
        if not drain:
            # index 0 is in flight while the drainer runs
            keep = 1 if self.busy and self._pending else 0
            while len(self._pending) > keep:
                pending = self._pending.pop()
                if not pending.future.done():
                    pending.future.set_exception(
                        QueueClosedError(f"execution queue for {self.account} closed before '{pending.label}' was sent")
                    )
                    abandoned += 1
            self._update_depth()
        if self._drainer is not None:
            await asyncio.gather(self._drainer, return_exceptions=True)
        if self._resync_task is not None and not self._resync_task.done():
            self._resync_task.cancel()
            await asyncio.gather(self._resync_task, return_exceptions=True)
        log.info(json.dumps({"event": "queue_closed", "account": self.account, "drain": drain, "abandoned": abandoned}))

    async def _drain(self) -> None:
        while self._pending:
            pending = self._pending[0]
            try:
                if pending.future.done():
                    # caller went away before its turn
                    continue
                try:
                    tx_hash = await self._send_with_retry(pending)
                except asyncio.CancelledError:
                    if not pending.future.done():
                        pending.future.set_exception(QueueClosedError("execution queue drainer cancelled"))
                    raise
                except Exception as exc:
                    if not pending.future.done():
                        pending.future.set_exception(exc)
                else:
                    if not pending.future.done():
                        pending.future.set_result(tx_hash)
            finally:
                self._pending.popleft()
                self._update_depth()

    async def _send_with_retry(self, pending: PendingSend) -> str:
        last_exc: Exception = QueueClosedError(f"no send attempted for '{pending.label}'")
        for attempt in range(self.config.max_attempts):
            nonce = await self._current_nonce()
            pending.attempts = attempt + 1
            pending.nonces.append(nonce)
            try:
                tx_hash = await pending.factory(nonce)
            except Exception as exc:
                if not is_nonce_error(exc):
                    self._count_failure("other")
                    log.error(json.dumps({
                        "event": "tx_failed",
                        "account": self.account,
                        "label": pending.label,
                        "nonce": nonce,
                        "attempt": pending.attempts,
                        "nonces": pending.nonces,
                        "err": describe_error(exc),
                    }))
                    raise
                last_exc = exc
                delay = 2 ** attempt
                if self._metrics:
                    self._metrics.nonce_retries.labels(account=self.account).inc()
                log.warning(json.dumps({
                    "event": "nonce_retry",
                    "account": self.account,
                    "label": pending.label,
                    "nonce": nonce,
                    "attempt": pending.attempts,
                    "max_attempts": self.config.max_attempts,
                    "delay_sec": delay,
                    "err": describe_error(exc),
                }))
                await self._adopt_chain_nonce()
                await self._sleep(delay)
                continue
            self._accept(nonce)
            log.info(json.dumps({
                "event": "tx_sent",
                "account": self.account,
                "label": pending.label,
                "nonce": nonce,
                "attempt": pending.attempts,
                "tx": tx_hash,
            }))
            if self._metrics:
                self._metrics.tx_submitted.labels(account=self.account).inc()
            return tx_hash

        self._count_failure("nonce")
        log.error(json.dumps({
            "event": "tx_retry_exhausted",
            "account": self.account,
            "label": pending.label,
            "attempts": pending.attempts,
            "nonces": pending.nonces,
            "err": describe_error(last_exc),
        }))
        raise last_exc

    async def _current_nonce(self) -> int:
        if self._next_nonce is None:
            self._next_nonce = await self._client.get_transaction_count(self.account, "pending")
            log.info(json.dumps({"event": "nonce_initialized", "account": self.account, "nonce": self._next_nonce}))
        return self._next_nonce

    def _accept(self, used: int) -> None:
        current = self._next_nonce if self._next_nonce is not None else used
        self._next_nonce = max(current, used + 1)
        self._sends_since_resync += 1
        if self._sends_since_resync >= self.config.resync_every:
            self._schedule_resync()

    async def _adopt_chain_nonce(self) -> None:
        """After a nonce-class failure the chain count wins, even when lower."""
        try:
            chain_nonce = await self._client.get_transaction_count(self.account, "pending")
        except Exception as exc:
            log.warning(json.dumps({"event": "nonce_refresh_failed", "account": self.account, "err": str(exc)}))
            return
        log.info(json.dumps({
            "event": "nonce_resync",
            "account": self.account,
            "reason": "send_failure",
            "local": self._next_nonce,
            "chain": chain_nonce,
        }))
        self._next_nonce = chain_nonce
        if self._metrics:
            self._metrics.nonce_resyncs.labels(account=self.account).inc()

    def _schedule_resync(self) -> None:
        if self._resync_task is not None and not self._resync_task.done():
            return
        self._resync_task = asyncio.create_task(self._resync_later(), name=f"resync:{self.account}")

    async def _resync_later(self) -> None:
        await asyncio.sleep(self.config.resync_delay_sec)
        try:
            chain_nonce = await self._client.get_transaction_count(self.account, "pending")
        except Exception as exc:
            log.warning(json.dumps({"event": "nonce_refresh_failed", "account": self.account, "err": str(exc)}))
            return
        if self._next_nonce is not None and chain_nonce > self._next_nonce:
            log.info(json.dumps({
                "event": "nonce_resync",
                "account": self.account,
                "reason": "periodic",
                "local": self._next_nonce,
                "chain": chain_nonce,
            }))
            self._next_nonce = chain_nonce
            if self._metrics:
                self._metrics.nonce_resyncs.labels(account=self.account).inc()
        self._sends_since_resync = 0

    def _count_failure(self, kind: str) -> None:
        if self._metrics:
            self._metrics.tx_failed.labels(account=self.account, kind=kind).inc()

    def _update_depth(self) -> None:
        if self._metrics:
            self._metrics.queue_depth.labels(account=self.account).set(len(self._pending))
