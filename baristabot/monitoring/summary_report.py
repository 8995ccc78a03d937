"""
Periodic account activity report.

For the last `interval_sec` seconds: native balance before and after, the
number of transactions (nonce difference) and the balance spent, written
as reports/report_<ms>.json.
"""

from __future__ import annotations

import json
import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from baristabot.core.scheduling import PeriodicTask

log = logging.getLogger("baristabot")


class SummaryReporter:
    def __init__(
        self,
        client,
        account: str,
        interval_sec: int = 86400,
        average_block_time: float = 1.0,
        reports_dir: str = "reports",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.client = client
        self.account = account
        self.interval_sec = interval_sec
        self.average_block_time = average_block_time if average_block_time > 0 else 1.0
        self.reports_dir = Path(reports_dir)
        self._clock = clock
        self._timer = PeriodicTask("summary-report", self.write_report, interval_sec)

    @property
    def enabled(self) -> bool:
        return self.interval_sec > 0

    async def estimate_block_at(self, timestamp: float) -> int:
        latest = await self.client.get_block("latest")
        blocks_back = int((int(latest["timestamp"]) - timestamp) // self.average_block_time)
        return max(0, int(latest["number"]) - blocks_back)

    async def build_report(self) -> Dict[str, Any]:
        now = self._clock()
        current_block = await self.client.get_block_number()
        previous_block = min(await self.estimate_block_at(now - self.interval_sec), current_block)

        balance_after = await self.client.get_balance(self.account, current_block)
        balance_before = await self.client.get_balance(self.account, previous_block)
        nonce_before = await self.client.get_transaction_count(self.account, previous_block)
        nonce_after = await self.client.get_transaction_count(self.account, current_block)

        return {
            "timestamp": datetime.fromtimestamp(now, tz=timezone.utc).isoformat(),
            "account": self.account,
            "blockRange": {"from": previous_block, "to": current_block},
            "balance": {"before": str(balance_before), "after": str(balance_after)},
            "totalTransactions": nonce_after - nonce_before,
            "gasConsumed": str(balance_before - balance_after),
        }

    async def write_report(self) -> Optional[Path]:
        try:
            report = await self.build_report()
        except Exception as exc:
            log.error(json.dumps({"event": "summary_report_failed", "account": self.account, "err": str(exc)}))
            return None
        self.reports_dir.mkdir(parents=True, exist_ok=True)
        path = self.reports_dir / f"report_{int(self._clock() * 1000)}.json"
        path.write_text(json.dumps(report, indent=2), encoding="utf-8")
        log.info(json.dumps({
            "event": "summary_report_written",
            "account": self.account,
            "path": str(path),
            "transactions": report["totalTransactions"],
        }))
        return path

    async def start(self) -> None:
        if not self.enabled:
            return
        await self.write_report()
        self._timer.start()

    async def stop(self) -> None:
        await self._timer.stop()
