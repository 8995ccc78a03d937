"""
Order ladder math.

Pure integer computation with no side effects. Reference prices carry 8
decimals; exchange prices carry the quote token's decimals and must sit on
a PRICE_INCREMENT boundary.

Rung i (0 = closest to mid) sits `spread_bps + step_bps * i` basis points
away from mid:

    buy  = mid - mid * offset // 10000
    sell = mid + mid * offset // 10000
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Dict, Iterable, List, Optional, Tuple

from baristabot.core.types import REFERENCE_DECIMALS, Side

BPS = 10000


@dataclass(frozen=True)
class Rung:
    side: Side
    index: int
    price: int  # quote-token native units, on the increment grid
    quantity: int  # base-token native units


def rung_offset_bps(index: int, spread_bps: int, step_bps: int) -> int:
    return spread_bps + step_bps * index


def rung_price(mid: int, side: Side, index: int, spread_bps: int, step_bps: int) -> int:
    """Unrounded rung price in the reference (8-decimal) scale."""
    delta = mid * rung_offset_bps(index, spread_bps, step_bps) // BPS
    return mid - delta if side is Side.BUY else mid + delta


def to_quote_scale(price: int, quote_decimals: int) -> int:
    return price * 10 ** quote_decimals // 10 ** REFERENCE_DECIMALS


def round_to_increment(price: int, increment: int) -> int:
    """Floor to the nearest multiple of increment."""
    if increment <= 0:
        return price
    return price // increment * increment


def exchange_price(price: int, quote_decimals: int, increment: int) -> int:
    return round_to_increment(to_quote_scale(price, quote_decimals), increment)


def plan_side(
    mid: int,
    side: Side,
    indices: Iterable[int],
    spread_bps: int,
    step_bps: int,
    quantity: int,
    quote_decimals: int,
    increment: int,
) -> List[Rung]:
    rungs: List[Rung] = []
    for i in indices:
        raw = rung_price(mid, side, i, spread_bps, step_bps)
        rungs.append(Rung(side=side, index=i, price=exchange_price(raw, quote_decimals, increment), quantity=quantity))
    return rungs


def plan_ladder(
    mid: int,
    depth: int,
    spread_bps: int,
    step_bps: int,
    quantity: int,
    quote_decimals: int,
    increment: int,
) -> Tuple[Rung, ...]:
    """Full ladder, buys (closest first) then sells (closest first)."""
    buys = plan_side(mid, Side.BUY, range(depth), spread_bps, step_bps, quantity, quote_decimals, increment)
    sells = plan_side(mid, Side.SELL, range(depth), spread_bps, step_bps, quantity, quote_decimals, increment)
    return tuple(buys + sells)


def missing_indices(depth: int, existing: int) -> range:
    """Indices for the rungs a side lacks; existing orders are assumed to hold the inner rungs."""
    missing = max(0, depth - existing)
    return range(depth - missing, depth)


def plan_gap_rungs(
    mid: int,
    depth: int,
    counts: Dict[Side, int],
    spread_bps: int,
    step_bps: int,
    quantity: int,
    quote_decimals: int,
    increment: int,
) -> Tuple[Rung, ...]:
    rungs: List[Rung] = []
    for side in (Side.BUY, Side.SELL):
        indices = missing_indices(depth, counts.get(side, 0))
        rungs.extend(plan_side(mid, side, indices, spread_bps, step_bps, quantity, quote_decimals, increment))
    return tuple(rungs)


def deviation_bps(old: int, new: int) -> Optional[int]:
    """Floor of |new - old| * 10000 / old; None when old is not positive."""
    if old <= 0:
        return None
    return abs(new - old) * BPS // old


def is_deviation_significant(old: Optional[int], new: int, threshold_bps: int) -> bool:
    """
    True when the ladder must be rebuilt: no previous price, a non-positive
    price on either side, or a move strictly larger than threshold_bps.

    Compared exactly as |new - old| * 10000 > threshold * old so a move one
    unit beyond the threshold is never floored back under it.
    """
    if old is None or old <= 0 or new <= 0:
        return True
    return abs(new - old) * BPS > threshold_bps * old


def scale_amount(amount: str, decimals: int) -> int:
    """Decimal string in human units -> integer native units (truncated)."""
    try:
        value = Decimal(str(amount))
    except InvalidOperation as exc:
        raise ValueError(f"not a decimal amount: {amount!r}") from exc
    if value < 0:
        raise ValueError(f"negative amount: {amount!r}")
    return int(value.scaleb(decimals))
