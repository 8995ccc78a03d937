"""
Exchange call surface for one account.

Reads go straight to the chain client. Every write (place, cancel, approve,
mint) is wrapped into a nonce-receiving factory and handed to the account's
ExecutionQueue, which is the only path by which this process sends
transactions for that account.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence

from baristabot.core.types import Order, PoolInfo, PoolKey, PriceVolume, Side, first_address
from baristabot.execution.execution_queue import ExecutionQueue
from baristabot.infra.abis import ERC20_ABI, MOCK_TOKEN_ABI, POOL_MANAGER_ABI, ROUTER_ABI

log = logging.getLogger("baristabot")

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


class PoolChangedError(RuntimeError):
    """The pool manager now reports a different order book for a cached pool."""


class PoolNotFoundError(RuntimeError):
    pass


@dataclass(frozen=True)
class ExchangeAddresses:
    pool_manager: str
    router: str
    balance_manager: Optional[str] = None


class ExchangeService:
    def __init__(
        self,
        client,
        queue: ExecutionQueue,
        addresses: ExchangeAddresses,
        pool_key: PoolKey,
        router_abi: Sequence[dict] = ROUTER_ABI,
        pool_manager_abi: Sequence[dict] = POOL_MANAGER_ABI,
    ) -> None:
        self.client = client
        self.queue = queue
        self.addresses = addresses
        self.pool_key = pool_key
        self.router_abi = list(router_abi)
        self.pool_manager_abi = list(pool_manager_abi)
        self._pool: Optional[PoolInfo] = None

    @property
    def account(self) -> str:
        return self.queue.account

    @property
    def pool(self) -> PoolInfo:
        if self._pool is None:
            raise RuntimeError("pool metadata not loaded; call load_pool_info() first")
        return self._pool

    # ===== reads =====

    async def verify_pool(self) -> str:
        """Return the pool's order book address; raises PoolNotFoundError when unset."""
        raw = await self.client.read_contract(
            self.addresses.pool_manager, self.pool_manager_abi, "getPool", self.pool_key.as_tuple()
        )
        order_book = first_address(raw)
        if not order_book or int(order_book, 16) == 0:
            raise PoolNotFoundError(f"no pool for {self.pool_key.base}/{self.pool_key.quote}")
        return order_book

    async def load_pool_info(self) -> PoolInfo:
        """Load pool metadata once; later loads only confirm the cached identity."""
        order_book = await self.verify_pool()
        if self._pool is not None:
            if order_book.lower() != self._pool.order_book.lower():
                raise PoolChangedError(
                    f"order book moved from {self._pool.order_book} to {order_book}"
                )
            return self._pool
        base_decimals = int(await self.client.read_contract(self.pool_key.base, ERC20_ABI, "decimals"))
        quote_decimals = int(await self.client.read_contract(self.pool_key.quote, ERC20_ABI, "decimals"))
        self._pool = PoolInfo(
            key=self.pool_key,
            order_book=order_book,
            base_decimals=base_decimals,
            quote_decimals=quote_decimals,
        )
        log.info(json.dumps({
            "event": "pool_loaded",
            "account": self.account,
            "order_book": order_book,
            "base_decimals": base_decimals,
            "quote_decimals": quote_decimals,
        }))
        return self._pool

    async def get_best_price(self, side: Side) -> PriceVolume:
        """Best price on one side; an empty book or a failed read yields zeros."""
        try:
            raw = await self.client.read_contract(
                self.addresses.router, self.router_abi, "getBestPrice", self.pool_key.as_tuple(), int(side)
            )
        except Exception as exc:
            log.warning(json.dumps({"event": "best_price_failed", "side": side.label, "err": str(exc)}))
            return PriceVolume(0, 0)
        if isinstance(raw, dict):
            return PriceVolume(int(raw.get("price", 0)), int(raw.get("volume", 0)))
        price, volume = raw[:2]
        return PriceVolume(int(price), int(volume))

    async def get_active_orders(self) -> List[Order]:
        raw = await self.client.read_contract(
            self.addresses.router, self.router_abi, "getUserActiveOrders", self.pool_key.as_tuple(), self.account
        )
        return [Order.from_chain(item) for item in raw or []]

    async def token_balance(self, token: str, owner: Optional[str] = None) -> int:
        return int(await self.client.read_contract(token, ERC20_ABI, "balanceOf", owner or self.account))

    async def token_allowance(self, token: str, spender: str, owner: Optional[str] = None) -> int:
        return int(await self.client.read_contract(token, ERC20_ABI, "allowance", owner or self.account, spender))

    # ===== writes (all through the execution queue) =====

    async def place_limit_order(self, side: Side, price: int, quantity: int) -> str:
        args = [self.pool_key.as_tuple(), int(price), int(quantity), int(side)]
        return await self._write(self.addresses.router, self.router_abi, "placeOrderWithDeposit", args,
                                 label=f"place_{side.label}@{price}")

    async def place_market_order(self, side: Side, quantity: int) -> str:
        args = [self.pool_key.as_tuple(), int(quantity), int(side)]
        return await self._write(self.addresses.router, self.router_abi, "placeMarketOrderWithDeposit", args,
                                 label=f"market_{side.label}")

    async def cancel_order(self, order: Order) -> str:
        args = [self.pool_key.as_tuple(), int(order.side), int(order.price), int(order.id)]
        return await self._write(self.addresses.router, self.router_abi, "cancelOrder", args,
                                 label=f"cancel_{order.id}")

    async def approve(self, token: str, spender: str, amount: int) -> str:
        return await self._write(token, ERC20_ABI, "approve", [spender, int(amount)], label=f"approve_{token[:10]}")

    async def mint(self, token: str, amount: int, to: Optional[str] = None) -> str:
        return await self._write(token, MOCK_TOKEN_ABI, "mint", [to or self.account, int(amount)],
                                 label=f"mint_{token[:10]}")

    async def _write(self, address: str, abi: Sequence[dict], fn_name: str, args: List[Any], label: str) -> str:
        async def factory(nonce: int) -> str:
            return await self.client.write_contract(address, abi, fn_name, args, nonce)

        return await self.queue.submit(factory, label=label)
