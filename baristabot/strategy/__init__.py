"""
Strategy package.

This package contains the market maker's ladder math and the trading
agents' side-picking strategies.
"""

from baristabot.strategy.ladder import (
    Rung,
    deviation_bps,
    is_deviation_significant,
    plan_gap_rungs,
    plan_ladder,
    plan_side,
    round_to_increment,
    rung_price,
    scale_amount,
    to_quote_scale,
)
from baristabot.strategy.trading_strategies import StrategyFactory

__all__ = [
    "Rung",
    "deviation_bps",
    "is_deviation_significant",
    "plan_gap_rungs",
    "plan_ladder",
    "plan_side",
    "round_to_increment",
    "rung_price",
    "scale_amount",
    "to_quote_scale",
    "StrategyFactory",
]
