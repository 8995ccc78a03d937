"""
Market data package.

This package contains the reference price sources and the fallback chain
that resolves them.
"""

from baristabot.market_data.price_sources import (
    AggregatorPriceSource,
    OrderBookPriceSource,
    PriceSource,
    PriceSourceChain,
    SpotPriceSource,
    StaticPriceSource,
)

__all__ = [
    "AggregatorPriceSource",
    "OrderBookPriceSource",
    "PriceSource",
    "PriceSourceChain",
    "SpotPriceSource",
    "StaticPriceSource",
]
