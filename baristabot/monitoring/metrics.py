"""
Prometheus metrics for the execution queue, reconciliation cycles and agents.

Organized into: execution, market making, trading agents.
"""

from __future__ import annotations

from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, start_http_server


class BotMetrics:
    """Metric families shared by every worker in the process."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        reg = registry or CollectorRegistry()
        self.registry = reg

        # === Execution ===
        self.tx_submitted = Counter(
            'tx_submitted_total',
            'Transactions accepted by the node',
            labelnames=['account'],
            registry=reg
        )
        self.tx_failed = Counter(
            'tx_failed_total',
            'Submissions that resolved with an error',
            labelnames=['account', 'kind'],
            registry=reg
        )
        self.nonce_retries = Counter(
            'nonce_retries_total',
            'Retries after nonce-class send failures',
            labelnames=['account'],
            registry=reg
        )
        self.nonce_resyncs = Counter(
            'nonce_resyncs_total',
            'Local nonce counter corrected from chain',
            labelnames=['account'],
            registry=reg
        )
        self.queue_depth = Gauge(
            'queue_depth',
            'Pending sends in the execution queue',
            labelnames=['account'],
            registry=reg
        )

        # === Market making ===
        self.cycles = Counter(
            'cycles_total',
            'Completed reconciliation cycles',
            labelnames=['mode'],
            registry=reg
        )
        self.cycles_skipped = Counter(
            'cycles_skipped_total',
            'Cycles skipped because the previous one was still running',
            registry=reg
        )
        self.orders_placed = Counter(
            'orders_placed_total',
            'Limit orders submitted',
            labelnames=['side', 'result'],
            registry=reg
        )
        self.orders_cancelled = Counter(
            'orders_cancelled_total',
            'Cancel submissions',
            labelnames=['result'],
            registry=reg
        )
        self.reference_price = Gauge(
            'reference_price',
            'Reference price used by the last cycle (8 decimals)',
            registry=reg
        )

        # === Trading agents ===
        self.market_orders = Counter(
            'market_orders_total',
            'Market orders submitted by trading agents',
            labelnames=['side', 'result'],
            registry=reg
        )


def start_metrics_server(metrics: BotMetrics, port: int) -> None:
    """Expose the registry over HTTP; a port of 0 keeps the exporter off."""
    if port > 0:
        start_http_server(port, registry=metrics.registry)
