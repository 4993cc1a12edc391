"""
Detection primitives shared by the scanning strategies.

- Cross-market spread: YES and NO asks of one binary market summing below 1
- Rolling z-score: how far the latest price sits from its recent mean
"""

from collections import deque
from dataclasses import dataclass
from typing import Optional

import numpy as np

from ..models.market import BinaryMarket
from .position_sizing import whole_shares


@dataclass
class SpreadSignal:
    """A binary market whose two asks leave a locked-in spread."""
    market: BinaryMarket
    price_sum: float
    spread: float
    size: int
    expected_profit: float


def detect_spread(
    market: BinaryMarket,
    capital: float,
    min_spread: float = 0.005,
    min_profit: float = 0.01,
) -> Optional[SpreadSignal]:
    """
    Check one market for a YES + NO spread.

    Buying both sides at p_yes + p_no < 1 pays exactly 1 per share pair,
    so size = floor(capital / sum) and profit = size * spread.

    Args:
        market: Market with current best asks
        capital: Capital to commit to both legs
        min_spread: Minimum 1 - (p_yes + p_no)
        min_profit: Minimum expected profit in currency units

    Returns:
        SpreadSignal or None
    """
    if market.yes_price <= 0 or market.no_price <= 0:
        return None

    price_sum = market.yes_price + market.no_price
    if price_sum >= 1:
        return None

    spread = 1 - price_sum
    if spread < min_spread:
        return None

    size = whole_shares(capital / price_sum)
    profit = size * spread
    if size <= 0 or profit < min_profit:
        return None

    return SpreadSignal(
        market=market,
        price_sum=price_sum,
        spread=spread,
        size=size,
        expected_profit=profit,
    )


@dataclass
class DeviationSignal:
    """Z-score snapshot for one token."""
    token_id: str
    current_price: float
    mean: float
    std_dev: float
    z_score: float
    sample_size: int


class PriceWindow:
    """
    Fixed-length rolling window of recent prices for one token.

    Uses the population standard deviation.
    """

    def __init__(self, lookback: int = 100):
        if lookback < 2:
            raise ValueError("lookback must be at least 2")
        self.prices: deque = deque(maxlen=lookback)

    def add(self, price: float):
        self.prices.append(price)

    def __len__(self) -> int:
        return len(self.prices)

    @property
    def latest(self) -> Optional[float]:
        return self.prices[-1] if self.prices else None

    def stats(self) -> tuple[float, float]:
        """Mean and population standard deviation."""
        if not self.prices:
            return 0.0, 0.0
        arr = np.fromiter(self.prices, dtype=float)
        return float(arr.mean()), float(arr.std())

    def z_score(self, price: Optional[float] = None) -> float:
        """Z-score of price (default: latest) against the window; 0 for a flat window."""
        if price is None:
            price = self.latest
        if price is None:
            return 0.0
        mean, std = self.stats()
        if std == 0:
            return 0.0
        return (price - mean) / std

    def snapshot(self, token_id: str) -> Optional[DeviationSignal]:
        if not self.prices:
            return None
        mean, std = self.stats()
        current = self.latest
        z = (current - mean) / std if std > 0 else 0.0
        return DeviationSignal(
            token_id=token_id,
            current_price=current,
            mean=mean,
            std_dev=std,
            z_score=z,
            sample_size=len(self.prices),
        )
