"""
Tests for ChainClient: transaction building, single-shot writes and read retries.

The web3 object and the signer are stand-ins; only the call shapes ChainClient
relies on are modelled.
"""
import time
from types import SimpleNamespace

import pytest

from baristabot.execution.execution_queue import ExecutionQueue, ExecutionQueueConfig
from baristabot.infra.chain_client import ChainClient
from conftest import ACCOUNT, ROUTER, FakeNonceSource

ABI = [{"type": "function", "name": "placeOrder", "inputs": [], "outputs": []}]


class StubCall:
    def __init__(self, eth, name, args):
        self._eth = eth
        self.name = name
        self.args = args

    def build_transaction(self, params):
        self._eth.built.append(dict(params))
        return {"to": ROUTER, "data": self.name, **params}

    def call(self):
        self._eth.reads += 1
        if self._eth.read_failures:
            self._eth.read_failures -= 1
            raise ConnectionError("rpc unavailable")
        return 42


class StubContract:
    def __init__(self, eth, address):
        self._eth = eth
        self.address = address

    def get_function_by_name(self, name):
        return lambda *args: StubCall(self._eth, name, args)


class StubEth:
    def __init__(self, send_delay=0.0, send_error=None, read_failures=0):
        self.send_delay = send_delay
        self.send_error = send_error
        self.read_failures = read_failures
        self.built = []
        self.broadcast = []
        self.reads = 0
        self.block_number = 1234

    def contract(self, address, abi):
        return StubContract(self, address)

    def send_raw_transaction(self, raw):
        if self.send_delay:
            time.sleep(self.send_delay)
        self.broadcast.append(raw)
        if self.send_error is not None:
            raise self.send_error
        return b"\x12\x34"

    def get_transaction_count(self, address, block):
        return 9


class StubSigner:
    address = ACCOUNT

    def sign_transaction(self, tx):
        return SimpleNamespace(raw_transaction=tx["nonce"])


def make_client(eth, chain_id=31337, sleeps=None, **kw):
    sleeps = sleeps if sleeps is not None else []

    async def fake_sleep(delay):
        sleeps.append(delay)

    w3 = SimpleNamespace(eth=eth)
    return ChainClient(w3, account=StubSigner(), chain_id=chain_id, sleep=fake_sleep, **kw)


class TestWrites:
    @pytest.mark.asyncio
    async def test_transaction_carries_nonce_and_chain_id(self):
        eth = StubEth()
        client = make_client(eth)
        tx_hash = await client.write_contract(ROUTER, ABI, "placeOrder", (), nonce=11)
        await client.close()

        assert tx_hash == "0x1234"
        assert eth.built == [{"from": ACCOUNT, "nonce": 11, "chainId": 31337}]
        assert eth.broadcast == [11]

    @pytest.mark.asyncio
    async def test_chain_id_omitted_when_unset(self):
        eth = StubEth()
        client = make_client(eth, chain_id=None)
        await client.write_contract(ROUTER, ABI, "placeOrder", (), nonce=0)
        await client.close()
        assert "chainId" not in eth.built[0]

    @pytest.mark.asyncio
    async def test_failed_broadcast_is_not_retried(self):
        eth = StubEth(send_error=ValueError("nonce too low"))
        sleeps = []
        client = make_client(eth, sleeps=sleeps)
        with pytest.raises(ValueError, match="nonce too low"):
            await client.write_contract(ROUTER, ABI, "placeOrder", (), nonce=3)
        await client.close()

        assert eth.broadcast == [3]
        assert sleeps == []

    @pytest.mark.asyncio
    async def test_read_only_client_refuses_writes(self):
        client = ChainClient(SimpleNamespace(eth=StubEth()))
        with pytest.raises(RuntimeError):
            await client.write_contract(ROUTER, ABI, "placeOrder", (), nonce=0)
        with pytest.raises(RuntimeError):
            client.address
        await client.close()

    @pytest.mark.asyncio
    async def test_slow_broadcast_runs_to_completion_and_consumes_nonce(self):
        eth = StubEth(send_delay=0.3)
        client = make_client(eth)
        queue = ExecutionQueue(ACCOUNT, FakeNonceSource(7), config=ExecutionQueueConfig(resync_every=1000))

        tx_hash = await queue.submit(
            lambda nonce: client.write_contract(ROUTER, ABI, "placeOrder", (), nonce),
            label="placeOrder",
        )
        await queue.close()
        await client.close()

        assert tx_hash == "0x1234"
        assert eth.broadcast == [7]
        assert queue.next_nonce == 8


class TestReads:
    @pytest.mark.asyncio
    async def test_read_retries_then_succeeds(self):
        eth = StubEth(read_failures=2)
        sleeps = []
        client = make_client(eth, sleeps=sleeps, read_retries=2)
        assert await client.read_contract(ROUTER, ABI, "placeOrder") == 42
        await client.close()

        assert eth.reads == 3
        assert len(sleeps) == 2
        # jittered exponential backoff
        assert 0.2 <= sleeps[0] <= 0.3
        assert 0.4 <= sleeps[1] <= 0.6

    @pytest.mark.asyncio
    async def test_read_gives_up_after_retry_budget(self):
        eth = StubEth(read_failures=10)
        sleeps = []
        client = make_client(eth, sleeps=sleeps, read_retries=2)
        with pytest.raises(ConnectionError):
            await client.read_contract(ROUTER, ABI, "placeOrder")
        await client.close()

        assert eth.reads == 3
        assert len(sleeps) == 2

    @pytest.mark.asyncio
    async def test_account_reads(self):
        client = make_client(StubEth())
        assert await client.get_transaction_count(ACCOUNT) == 9
        assert await client.get_block_number() == 1234
        assert client.address == ACCOUNT
        await client.close()
