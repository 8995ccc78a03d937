"""
Exchange-side value types mirrored locally.

Prices returned by the exchange are integers in the quote token's native
scale; reference prices produced by the price sources are integers with
8 decimals (REFERENCE_DECIMALS).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Optional, Sequence

REFERENCE_DECIMALS = 8


class Side(IntEnum):
    BUY = 0
    SELL = 1

    @property
    def label(self) -> str:
        return "buy" if self is Side.BUY else "sell"


@dataclass(frozen=True)
class PoolKey:
    base: str
    quote: str

    def as_tuple(self) -> tuple[str, str]:
        """ABI-encodable struct form (baseCurrency, quoteCurrency)."""
        return (self.base, self.quote)


@dataclass(frozen=True)
class PoolInfo:
    """Instrument metadata loaded once at worker startup."""
    key: PoolKey
    order_book: str
    base_decimals: int
    quote_decimals: int


@dataclass(frozen=True)
class PriceVolume:
    price: int
    volume: int


@dataclass(frozen=True)
class Order:
    side: Side
    id: int
    price: int
    quantity: int

    @classmethod
    def from_chain(cls, raw: Any) -> "Order":
        """Build from a decoded getUserActiveOrders entry (dict or positional tuple)."""
        if isinstance(raw, dict):
            return cls(
                side=Side(int(raw["side"])),
                id=int(raw["id"]),
                price=int(raw["price"]),
                quantity=int(raw["quantity"]),
            )
        side, oid, price, quantity = raw[:4]
        return cls(side=Side(int(side)), id=int(oid), price=int(price), quantity=int(quantity))


def count_by_side(orders: Sequence[Order]) -> dict[Side, int]:
    counts = {Side.BUY: 0, Side.SELL: 0}
    for order in orders:
        counts[order.side] += 1
    return counts


def first_address(raw: Any) -> Optional[str]:
    """getPool may decode as a bare address or a struct whose first field is the order book."""
    if raw is None:
        return None
    if isinstance(raw, str):
        return raw
    if isinstance(raw, dict):
        return raw.get("orderBook")
    if isinstance(raw, (list, tuple)) and raw:
        return first_address(raw[0])
    return None
