"""
Monitoring package.

This package contains the Prometheus metrics and the periodic account
summary report.
"""

from baristabot.monitoring.metrics import BotMetrics, start_metrics_server
from baristabot.monitoring.summary_report import SummaryReporter

__all__ = [
    "BotMetrics",
    "start_metrics_server",
    "SummaryReporter",
]
