"""
Tests for token setup and the periodic summary report.
"""
import json

import pytest

from baristabot.core.errors import WorkerInitError
from baristabot.infra.abis import MAX_UINT256
from baristabot.monitoring.summary_report import SummaryReporter
from baristabot.token_setup import TokenSetup, TokenSetupConfig
from conftest import ACCOUNT, BALANCE_MANAGER, BASE, QUOTE, FakeExchange


class TokenExchange(FakeExchange):
    def __init__(self, balances, allowances, fail_mint=None):
        super().__init__()
        self.balances = dict(balances)
        self.allowances = dict(allowances)
        self.fail_mint = fail_mint
        self.mints = []
        self.approvals = []

    async def token_balance(self, token, owner=None):
        return self.balances[token]

    async def token_allowance(self, token, spender, owner=None):
        return self.allowances[token]

    async def mint(self, token, amount, to=None):
        if self.fail_mint:
            raise self.fail_mint
        self.mints.append((token, amount))
        return "0xmint"

    async def approve(self, token, spender, amount):
        self.approvals.append((token, spender, amount))
        return "0xapprove"


CONFIG = TokenSetupConfig(min_balance="100", mint_amount="1000", min_allowance="10")


class TestTokenSetup:
    @pytest.mark.asyncio
    async def test_mints_low_balances_and_approves_low_allowances(self):
        exchange = TokenExchange(
            balances={BASE: 5 * 10**18, QUOTE: 500 * 10**6},
            allowances={BASE: 0, QUOTE: MAX_UINT256},
        )
        result = await TokenSetup(exchange, BALANCE_MANAGER, CONFIG).run()

        assert result.minted == ["base"]
        assert exchange.mints == [(BASE, 1000 * 10**18)]
        assert result.approved == ["base"]
        assert exchange.approvals == [(BASE, BALANCE_MANAGER, MAX_UINT256)]

    @pytest.mark.asyncio
    async def test_funded_account_needs_nothing(self):
        exchange = TokenExchange(
            balances={BASE: 200 * 10**18, QUOTE: 200 * 10**6},
            allowances={BASE: MAX_UINT256, QUOTE: MAX_UINT256},
        )
        result = await TokenSetup(exchange, BALANCE_MANAGER, CONFIG).run()
        assert result.minted == [] and result.approved == []

    @pytest.mark.asyncio
    async def test_failures_become_init_errors(self):
        exchange = TokenExchange(
            balances={BASE: 0, QUOTE: 0},
            allowances={BASE: 0, QUOTE: 0},
            fail_mint=RuntimeError("execution reverted"),
        )
        with pytest.raises(WorkerInitError, match="execution reverted"):
            await TokenSetup(exchange, BALANCE_MANAGER, CONFIG).run()

    @pytest.mark.asyncio
    async def test_missing_balance_manager(self):
        exchange = TokenExchange(balances={}, allowances={})
        with pytest.raises(WorkerInitError):
            await TokenSetup(exchange, None, CONFIG).run()


class FakeReportClient:
    def __init__(self):
        self.latest = {"number": 10_000, "timestamp": 1_700_000_000}
        self.balances = {10_000: 4 * 10**18, 9_000: 5 * 10**18}
        self.nonces = {10_000: 250, 9_000: 200}
        self.fail = False

    async def get_block(self, block="latest"):
        return self.latest

    async def get_block_number(self):
        if self.fail:
            raise RuntimeError("rpc down")
        return self.latest["number"]

    async def get_balance(self, address, block=None):
        return self.balances[block]

    async def get_transaction_count(self, address, block="pending"):
        return self.nonces[block]


class TestSummaryReporter:
    @pytest.mark.asyncio
    async def test_report_covers_the_interval(self, tmp_path):
        client = FakeReportClient()
        reporter = SummaryReporter(
            client, ACCOUNT, interval_sec=1000, average_block_time=1.0,
            reports_dir=str(tmp_path), clock=lambda: 1_700_000_000,
        )
        path = await reporter.write_report()

        assert path.name == "report_1700000000000.json"
        report = json.loads(path.read_text())
        assert report["account"] == ACCOUNT
        assert report["blockRange"] == {"from": 9_000, "to": 10_000}
        assert report["totalTransactions"] == 50
        assert report["gasConsumed"] == str(10**18)
        assert report["balance"] == {"before": str(5 * 10**18), "after": str(4 * 10**18)}

    @pytest.mark.asyncio
    async def test_block_estimate_never_negative(self):
        client = FakeReportClient()
        reporter = SummaryReporter(client, ACCOUNT, average_block_time=0.5)
        assert await reporter.estimate_block_at(1_700_000_000 - 10**9) == 0
        assert await reporter.estimate_block_at(1_700_000_000 - 100) == 9_800

    @pytest.mark.asyncio
    async def test_failed_report_writes_nothing(self, tmp_path):
        client = FakeReportClient()
        client.fail = True
        reporter = SummaryReporter(client, ACCOUNT, reports_dir=str(tmp_path / "out"))
        assert await reporter.write_report() is None
        assert not (tmp_path / "out").exists()

    @pytest.mark.asyncio
    async def test_disabled_reporter_does_not_start(self, tmp_path):
        reporter = SummaryReporter(FakeReportClient(), ACCOUNT, interval_sec=0, reports_dir=str(tmp_path))
        await reporter.start()
        await reporter.stop()
        assert list(tmp_path.iterdir()) == []
