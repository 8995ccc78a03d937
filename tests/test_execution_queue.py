"""
Tests for ExecutionQueue: nonce ownership, ordering and retry policy.
"""
import asyncio
import json
import logging

import pytest

from baristabot.execution.execution_queue import (
    ExecutionQueue,
    ExecutionQueueConfig,
    QueueClosedError,
    is_nonce_error,
)
from baristabot.monitoring.metrics import BotMetrics
from conftest import ACCOUNT, FakeNonceSource


def make_queue(count=10, sleeps=None, metrics=None, **cfg):
    sleeps = sleeps if sleeps is not None else []

    async def fake_sleep(delay):
        sleeps.append(delay)

    config = ExecutionQueueConfig(**{"resync_every": 1000, "resync_delay_sec": 0.0, **cfg})
    source = FakeNonceSource(count)
    queue = ExecutionQueue(ACCOUNT, source, config=config, metrics=metrics, sleep=fake_sleep)
    return queue, source, sleeps


def recording_factory(used):
    async def factory(nonce):
        used.append(nonce)
        return f"0x{nonce:064x}"
    return factory


class TestNonceErrorDetection:
    @pytest.mark.parametrize("msg", [
        "nonce too low",
        "Nonce too high: expected 7",
        "replacement transaction underpriced",
        "ALREADY KNOWN",
    ])
    def test_nonce_class_messages(self, msg):
        assert is_nonce_error(RuntimeError(msg))

    @pytest.mark.parametrize("msg", ["execution reverted", "insufficient funds for gas", "timeout"])
    def test_other_messages(self, msg):
        assert not is_nonce_error(RuntimeError(msg))


class TestNonceAssignment:
    @pytest.mark.asyncio
    async def test_sequential_sends_use_consecutive_nonces(self):
        queue, source, _ = make_queue(count=10)
        used = []
        for _ in range(7):
            await queue.submit(recording_factory(used))
        assert used == list(range(10, 17))
        assert queue.next_nonce == 17
        # fetched once, lazily
        assert source.calls == 1

    @pytest.mark.asyncio
    async def test_nonce_not_fetched_before_first_submit(self):
        queue, source, _ = make_queue(count=3)
        assert queue.next_nonce is None
        assert source.calls == 0

    @pytest.mark.asyncio
    async def test_concurrent_submits_run_one_at_a_time_in_fifo_order(self):
        queue, _, _ = make_queue(count=0)
        in_flight = 0
        peak = 0
        order = []

        def factory_for(label):
            async def factory(nonce):
                nonlocal in_flight, peak
                in_flight += 1
                peak = max(peak, in_flight)
                await asyncio.sleep(0.01)
                order.append((label, nonce))
                in_flight -= 1
                return f"0x{label}"
            return factory

        results = await asyncio.gather(*(queue.submit(factory_for(i), label=str(i)) for i in range(5)))

        assert peak == 1
        assert order == [(i, i) for i in range(5)]
        assert results == [f"0x{i}" for i in range(5)]
        assert queue.depth == 0

    @pytest.mark.asyncio
    async def test_periodic_resync_adopts_larger_chain_count(self):
        queue, source, _ = make_queue(count=5, resync_every=2)
        used = []
        await queue.submit(recording_factory(used))
        source.count = 50
        await queue.submit(recording_factory(used))
        # resync runs after resync_delay_sec (0 here)
        for _ in range(5):
            await asyncio.sleep(0)
        assert queue.next_nonce == 50
        assert queue.sends_since_resync == 0
        await queue.submit(recording_factory(used))
        assert used == [5, 6, 50]

    @pytest.mark.asyncio
    async def test_periodic_resync_keeps_local_counter_when_chain_is_behind(self):
        queue, source, _ = make_queue(count=5, resync_every=2)
        used = []
        await queue.submit(recording_factory(used))
        await queue.submit(recording_factory(used))
        source.count = 3
        for _ in range(5):
            await asyncio.sleep(0)
        assert queue.next_nonce == 7
        assert queue.sends_since_resync == 0


class TestRetryPolicy:
    @pytest.mark.asyncio
    async def test_nonce_errors_retry_five_times_with_exponential_backoff(self):
        queue, _, sleeps = make_queue(count=4)
        attempts = []
        error = RuntimeError("nonce too low")

        async def always_stale(nonce):
            attempts.append(nonce)
            raise error

        with pytest.raises(RuntimeError) as exc_info:
            await queue.submit(always_stale)

        assert exc_info.value is error
        assert len(attempts) == 5
        assert sleeps == [1, 2, 4, 8, 16]

    @pytest.mark.asyncio
    async def test_non_nonce_error_surfaces_after_one_attempt(self):
        queue, _, sleeps = make_queue(count=4)
        attempts = []

        async def reverts(nonce):
            attempts.append(nonce)
            raise ValueError("execution reverted")

        with pytest.raises(ValueError, match="execution reverted"):
            await queue.submit(reverts)

        assert attempts == [4]
        assert sleeps == []
        # failed send does not consume the nonce
        assert queue.next_nonce == 4

    @pytest.mark.asyncio
    async def test_retry_adopts_chain_count_and_succeeds(self):
        queue, source, sleeps = make_queue(count=10)
        attempts = []

        async def stale_once(nonce):
            attempts.append(nonce)
            if len(attempts) == 1:
                source.count = 12
                raise RuntimeError("replacement transaction underpriced")
            return "0xok"

        assert await queue.submit(stale_once) == "0xok"
        assert attempts == [10, 12]
        assert sleeps == [1]
        assert queue.next_nonce == 13

    @pytest.mark.asyncio
    async def test_exhaustion_log_lists_every_nonce_tried(self, caplog):
        queue, source, _ = make_queue(count=4)

        async def always_stale(nonce):
            source.count = nonce + 1 if nonce < 6 else nonce
            raise RuntimeError("nonce too low")

        with caplog.at_level(logging.ERROR, logger="baristabot"):
            with pytest.raises(RuntimeError):
                await queue.submit(always_stale, label="placeOrder")

        events = [json.loads(r.getMessage()) for r in caplog.records if r.getMessage().startswith("{")]
        exhausted = [e for e in events if e["event"] == "tx_retry_exhausted"]
        assert len(exhausted) == 1
        assert exhausted[0]["attempts"] == 5
        assert exhausted[0]["nonces"] == [4, 5, 6, 6, 6]
        assert exhausted[0]["label"] == "placeOrder"

    @pytest.mark.asyncio
    async def test_failure_log_names_error_type_when_message_is_empty(self, caplog):
        queue, _, _ = make_queue(count=4)

        async def times_out(nonce):
            raise asyncio.TimeoutError()

        with caplog.at_level(logging.ERROR, logger="baristabot"):
            with pytest.raises(asyncio.TimeoutError):
                await queue.submit(times_out)

        failed = [json.loads(r.getMessage()) for r in caplog.records if "tx_failed" in r.getMessage()]
        assert failed[0]["err"] == "TimeoutError"
        assert failed[0]["nonces"] == [4]

    @pytest.mark.asyncio
    async def test_failure_does_not_block_following_submissions(self):
        queue, _, _ = make_queue(count=0)
        used = []

        async def reverts(nonce):
            raise ValueError("execution reverted")

        first = asyncio.ensure_future(queue.submit(reverts))
        second = asyncio.ensure_future(queue.submit(recording_factory(used)))
        with pytest.raises(ValueError):
            await first
        assert await second == f"0x{0:064x}"
        assert used == [0]


class TestClose:
    @pytest.mark.asyncio
    async def test_submit_after_close_is_rejected(self):
        queue, _, _ = make_queue()
        await queue.close()
        with pytest.raises(QueueClosedError):
            await queue.submit(recording_factory([]))

    @pytest.mark.asyncio
    async def test_close_with_drain_completes_queued_sends(self):
        queue, _, _ = make_queue(count=0)
        used = []
        tasks = [asyncio.ensure_future(queue.submit(recording_factory(used))) for _ in range(3)]
        await asyncio.sleep(0)
        await queue.close(drain=True)
        assert [t.result() for t in tasks] == [f"0x{n:064x}" for n in range(3)]
        assert used == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_close_without_drain_rejects_queued_but_finishes_in_flight(self):
        queue, _, _ = make_queue(count=0)
        release = asyncio.Event()
        used = []

        async def slow(nonce):
            await release.wait()
            used.append(nonce)
            return "0xfirst"

        first = asyncio.ensure_future(queue.submit(slow))
        queued = [asyncio.ensure_future(queue.submit(recording_factory(used))) for _ in range(2)]
        await asyncio.sleep(0)
        await asyncio.sleep(0)

        closer = asyncio.ensure_future(queue.close(drain=False))
        await asyncio.sleep(0)
        release.set()
        await closer

        assert await first == "0xfirst"
        for task in queued:
            with pytest.raises(QueueClosedError):
                await task
        assert used == [0]


class TestMetrics:
    @pytest.mark.asyncio
    async def test_counters_track_sends_failures_and_retries(self):
        metrics = BotMetrics()
        queue, _, _ = make_queue(count=0, metrics=metrics, max_attempts=2)

        await queue.submit(recording_factory([]))

        async def stale(nonce):
            raise RuntimeError("nonce too low")

        with pytest.raises(RuntimeError):
            await queue.submit(stale)

        reg = metrics.registry
        assert reg.get_sample_value("tx_submitted_total", {"account": ACCOUNT}) == 1.0
        assert reg.get_sample_value("nonce_retries_total", {"account": ACCOUNT}) == 2.0
        assert reg.get_sample_value("tx_failed_total", {"account": ACCOUNT, "kind": "nonce"}) == 1.0
        assert reg.get_sample_value("queue_depth", {"account": ACCOUNT}) == 0.0
