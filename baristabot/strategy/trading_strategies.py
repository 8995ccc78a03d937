"""Directional side pickers for trading agents, plus a small registry.

Each strategy looks at the agent's recent price history (oldest first, the
current price last) and returns the side of the next market order.
"""

from __future__ import annotations

import random
from typing import Any, Sequence

from baristabot.core.types import Side


class RandomStrategy:
    name = "random"

    def __init__(self, rng: random.Random | None = None) -> None:
        self.rng = rng or random.Random()

    def coin_flip(self) -> Side:
        return Side.BUY if self.rng.random() > 0.5 else Side.SELL

    def pick_side(self, history: Sequence[int], current: int) -> Side:
        return self.coin_flip()


class MomentumStrategy(RandomStrategy):
    """Follow the last move."""
    name = "momentum"

    def pick_side(self, history: Sequence[int], current: int) -> Side:
        if len(history) < 2:
            return self.coin_flip()
        return Side.BUY if history[-1] > history[-2] else Side.SELL


class MeanReversionStrategy(RandomStrategy):
    """Trade against the distance from the window average."""
    name = "mean-reversion"

    def pick_side(self, history: Sequence[int], current: int) -> Side:
        if len(history) < 3:
            return self.coin_flip()
        average = sum(history) // len(history)
        return Side.SELL if current > average else Side.BUY


class StrategyFactory:
    _registry: dict[str, Any] = {
        "random": RandomStrategy,
        "momentum": MomentumStrategy,
        "mean-reversion": MeanReversionStrategy,
    }

    @classmethod
    def names(cls) -> tuple[str, ...]:
        return tuple(cls._registry)

    @classmethod
    def create(cls, name: str, rng: random.Random | None = None):
        """Build a strategy; "randomize" picks one of the registered ones once."""
        rng = rng or random.Random()
        if name == "randomize":
            name = rng.choice(cls.names())
        ctor = cls._registry.get(name)
        if ctor is None:
            raise ValueError(f"unknown strategy: {name}")
        return ctor(rng)
