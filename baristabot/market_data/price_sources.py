"""
Reference price sources and the fallback chain over them.

Every source answers an int with 8 decimals (REFERENCE_DECIMALS); 0 means
"no answer". PriceSourceChain asks each source in order and returns the
first positive value. A source that raises is logged and skipped.

Market maker chain: spot REST feed -> on-chain aggregator -> static default.
Trading agent chain: order-book mid.
"""

from __future__ import annotations

import json
import logging
import time
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Optional, Protocol, Sequence

import httpx

from baristabot.core.types import REFERENCE_DECIMALS, Side
from baristabot.infra.abis import AGGREGATOR_ABI

log = logging.getLogger("baristabot")


class PriceSource(Protocol):
    name: str

    async def fetch(self) -> int: ...


def to_reference(value: Decimal) -> int:
    return int(value.scaleb(REFERENCE_DECIMALS))


class SpotPriceSource:
    """Exchange ticker REST endpoint answering {"symbol": ..., "price": "3012.45000000"}."""

    name = "spot"

    def __init__(self, client: httpx.AsyncClient, url: str, symbol: str = "ETHUSDC") -> None:
        self._client = client
        self.url = url
        self.symbol = symbol

    async def fetch(self) -> int:
        resp = await self._client.get(self.url, params={"symbol": self.symbol})
        resp.raise_for_status()
        raw = resp.json().get("price")
        if raw in (None, ""):
            return 0
        # quoted to the cent
        cents = Decimal(str(raw)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
        return max(0, to_reference(cents))


class AggregatorPriceSource:
    """latestRoundData() on a mainnet aggregator, rejected once older than stale_after_sec."""

    name = "aggregator"

    def __init__(
        self,
        client,
        feed_address: str,
        stale_after_sec: int = 3600,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._client = client
        self.feed_address = feed_address
        self.stale_after_sec = stale_after_sec
        self._clock = clock
        self._decimals: Optional[int] = None

    async def fetch(self) -> int:
        if self._decimals is None:
            self._decimals = int(await self._client.read_contract(self.feed_address, AGGREGATOR_ABI, "decimals"))
        _, answer, _, updated_at, _ = await self._client.read_contract(
            self.feed_address, AGGREGATOR_ABI, "latestRoundData"
        )
        age = self._clock() - int(updated_at)
        if age > self.stale_after_sec:
            log.warning(json.dumps({"event": "price_stale", "source": self.name, "age_sec": int(age)}))
            return 0
        answer = int(answer)
        if answer <= 0:
            return 0
        shift = REFERENCE_DECIMALS - self._decimals
        if shift >= 0:
            return answer * 10 ** shift
        return answer // 10 ** (-shift)


class OrderBookPriceSource:
    """Mid of best bid and ask; either side alone when the other is empty."""

    name = "order_book"

    def __init__(self, exchange) -> None:
        self._exchange = exchange

    async def fetch(self) -> int:
        bid = await self._exchange.get_best_price(Side.BUY)
        ask = await self._exchange.get_best_price(Side.SELL)
        if bid.price > 0 and ask.price > 0:
            return (bid.price + ask.price) // 2
        if bid.price > 0:
            return bid.price
        if ask.price > 0:
            return ask.price
        return 0


class StaticPriceSource:
    name = "static"

    def __init__(self, price: str | int | None) -> None:
        if price is None or price == "":
            self.price = 0
        elif isinstance(price, int):
            self.price = price
        else:
            self.price = to_reference(Decimal(price))

    async def fetch(self) -> int:
        return self.price


class PriceSourceChain:
    def __init__(self, sources: Sequence[PriceSource], account: str = "") -> None:
        self.sources = list(sources)
        self.account = account
        self.last_source: Optional[str] = None

    @property
    def names(self) -> list[str]:
        return [s.name for s in self.sources]

    async def resolve(self) -> Optional[int]:
        """First positive answer, or None when every source came up empty."""
        for source in self.sources:
            try:
                price = int(await source.fetch())
            except Exception as exc:
                log.warning(json.dumps({
                    "event": "price_source_failed",
                    "account": self.account,
                    "source": source.name,
                    "err": str(exc),
                }))
                continue
            if price > 0:
                self.last_source = source.name
                return price
        log.warning(json.dumps({"event": "price_chain_exhausted", "account": self.account, "sources": self.names}))
        self.last_source = None
        return None
