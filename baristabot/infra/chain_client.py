"""
Async wrapper around the blocking web3 client using a shared thread pool.

Reads are retried with jittered backoff. Writes are never retried here:
only the ExecutionQueue knows whether re-sending with the same nonce is safe.

No deadline is layered on top of the provider: the HTTPProvider request
timeout is the only one. A write abandoned by an outer timer could still be
broadcast by its worker thread, leaving a used nonce with no recorded outcome.
"""

from __future__ import annotations

import asyncio
import random
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Awaitable, Callable, Optional, Sequence

from eth_account.signers.local import LocalAccount
from web3 import Web3


class ChainClient:
    def __init__(
        self,
        w3: Web3,
        account: Optional[LocalAccount] = None,
        chain_id: Optional[int] = None,
        read_retries: int = 2,
        max_workers: int = 4,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._w3 = w3
        self._account = account
        self._chain_id = chain_id
        self._sleep = sleep
        self._read_retries = read_retries
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="web3-exec")

    @classmethod
    def from_rpc(
        cls,
        rpc_url: str,
        account: Optional[LocalAccount] = None,
        chain_id: Optional[int] = None,
        timeout: float = 15.0,
    ) -> "ChainClient":
        w3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": timeout}))
        return cls(w3, account=account, chain_id=chain_id)

    @property
    def address(self) -> str:
        if self._account is None:
            raise RuntimeError("read-only chain client has no account")
        return self._account.address

    def contract(self, address: str, abi: Sequence[dict]):
        return self._w3.eth.contract(address=Web3.to_checksum_address(address), abi=list(abi))

    async def read_contract(self, address: str, abi: Sequence[dict], fn_name: str, *args: Any) -> Any:
        contract = self.contract(address, abi)
        fn = contract.get_function_by_name(fn_name)(*args)
        return await self._read(fn.call)

    async def write_contract(
        self,
        address: str,
        abi: Sequence[dict],
        fn_name: str,
        args: Sequence[Any],
        nonce: int,
    ) -> str:
        """Sign and broadcast one call with an explicit nonce; returns the tx hash hex."""
        account = self._account
        if account is None:
            raise RuntimeError("read-only chain client cannot send transactions")
        contract = self.contract(address, abi)

        def _send() -> str:
            fn = contract.get_function_by_name(fn_name)(*args)
            params: dict[str, Any] = {"from": account.address, "nonce": nonce}
            if self._chain_id is not None:
                params["chainId"] = self._chain_id
            tx = fn.build_transaction(params)
            signed = account.sign_transaction(tx)
            tx_hash = self._w3.eth.send_raw_transaction(signed.raw_transaction)
            return Web3.to_hex(tx_hash)

        return await self._call(_send)

    async def get_transaction_count(self, address: str, block: Any = "pending") -> int:
        checksum = Web3.to_checksum_address(address)
        return int(await self._read(lambda: self._w3.eth.get_transaction_count(checksum, block)))

    async def get_balance(self, address: str, block: Any = None) -> int:
        checksum = Web3.to_checksum_address(address)
        if block is None:
            return int(await self._read(lambda: self._w3.eth.get_balance(checksum)))
        return int(await self._read(lambda: self._w3.eth.get_balance(checksum, block)))

    async def get_block_number(self) -> int:
        return int(await self._read(lambda: self._w3.eth.block_number))

    async def get_block(self, block: Any = "latest") -> Any:
        return await self._read(lambda: self._w3.eth.get_block(block))

    async def close(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    async def _call(self, fn: Callable[[], Any]) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, fn)

    async def _read(self, fn: Callable[[], Any]) -> Any:
        backoff = 0.2
        for attempt in range(self._read_retries + 1):
            try:
                return await self._call(fn)
            except Exception:
                if attempt >= self._read_retries:
                    raise
                await self._sleep(backoff + random.uniform(0, backoff * 0.5))
                backoff *= 2
