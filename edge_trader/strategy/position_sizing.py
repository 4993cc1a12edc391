"""
Position Sizing with Kelly Criterion

The Kelly Criterion determines optimal bet sizing based on:
- Edge (probability advantage)
- Odds

We use fractional Kelly (half Kelly by default) to reduce variance, and
clamp the result between a minimum and maximum fraction of capital.

Fixed-ratio and fixed-amount sizers implement the same contract with
non-probabilistic formulas, for use as conservative fallbacks.

All sizers return a whole number of shares; 0 means "do not trade".
"""

from dataclasses import dataclass
from typing import Optional, Protocol
import math

from ..config import config


@dataclass
class PositionSizeParams:
    """Inputs for a sizing decision."""
    capital: float
    win_probability: float
    odds: float = 0.0              # Net decimal odds; <= 0 derives them from price
    price: float = 0.5             # Price per share, in (0, 1)
    max_fraction: Optional[float] = None
    min_size: Optional[float] = None


class PositionSizing(Protocol):
    """Turns sizing inputs into a share count."""

    name: str

    def calculate(self, params: PositionSizeParams) -> float: ...


# Absorbs float noise such as 199.99999999999994 shares
SHARE_EPSILON = 1e-9


def whole_shares(value: float) -> int:
    """Floor to whole shares."""
    return math.floor(value + SHARE_EPSILON)


def binary_odds(price: float) -> float:
    """
    Net odds of a binary share bought at price.

    Pay P, win 1 - P if right, lose P if wrong.
    """
    return (1 - price) / price


def kelly_fraction_for(win_prob: float, odds: float) -> float:
    """
    Full Kelly fraction.

    Kelly formula: f* = (p * b - q) / b
    where:
        p = probability of winning
        q = probability of losing (1 - p)
        b = net odds

    Args:
        win_prob: Probability of winning
        odds: Net odds received on a win

    Returns:
        Kelly fraction (can be negative if -EV)
    """
    if odds <= 0:
        return 0.0
    q = 1 - win_prob
    return (win_prob * odds - q) / odds


def edge(win_prob: float, odds: float) -> float:
    """Expected return per unit staked: p * b - q."""
    return win_prob * odds - (1 - win_prob)


def has_positive_edge(win_prob: float, odds: float) -> bool:
    return edge(win_prob, odds) > 0


class KellyPositionSizing:
    """
    Fractional Kelly sizing for binary shares.
    """

    name = "kelly"

    def __init__(
        self,
        kelly_fraction: Optional[float] = None,
        max_bet_fraction: Optional[float] = None,
        min_bet_fraction: Optional[float] = None,
    ):
        """
        Initialize the sizer.

        Args:
            kelly_fraction: Fraction of Kelly to use (default from config)
            max_bet_fraction: Max share of capital per bet (default from config)
            min_bet_fraction: Floor on the share of capital once a bet is taken
        """
        self.kelly_fraction = kelly_fraction if kelly_fraction is not None else config.sizing.kelly_fraction
        self.max_bet_fraction = max_bet_fraction if max_bet_fraction is not None else config.sizing.max_bet_fraction
        self.min_bet_fraction = min_bet_fraction if min_bet_fraction is not None else config.sizing.min_bet_fraction

    def calculate(self, params: PositionSizeParams) -> float:
        if params.capital <= 0:
            return 0
        if not 0 < params.win_probability < 1:
            return 0
        if not 0 < params.price < 1:
            return 0

        b = params.odds if params.odds > 0 else binary_odds(params.price)
        full_kelly = kelly_fraction_for(params.win_probability, b)

        # Never bet against a computed negative edge
        if full_kelly <= 0:
            return 0

        max_fraction = params.max_fraction if params.max_fraction is not None else self.max_bet_fraction
        fraction = full_kelly * self.kelly_fraction
        fraction = max(self.min_bet_fraction, min(fraction, max_fraction))

        shares = whole_shares(params.capital * fraction / params.price)
        min_size = params.min_size if params.min_size is not None else config.sizing.min_position_size
        if shares < min_size:
            return 0
        return shares


class FixedRatioPositionSizing:
    """Always commit the same share of capital."""

    name = "fixed_ratio"

    def __init__(
        self,
        fraction: Optional[float] = None,
        max_position_size: float = 1000,
        min_position_size: Optional[float] = None,
    ):
        self.fraction = fraction if fraction is not None else config.sizing.default_position_fraction
        self.max_position_size = max_position_size
        self.min_position_size = min_position_size if min_position_size is not None else config.sizing.min_position_size

    def calculate(self, params: PositionSizeParams) -> float:
        if params.capital <= 0 or not 0 < params.price < 1:
            return 0

        fraction = self.fraction
        if params.max_fraction is not None:
            fraction = min(fraction, params.max_fraction)

        shares = min(whole_shares(params.capital * fraction / params.price), self.max_position_size)
        min_size = params.min_size if params.min_size is not None else self.min_position_size
        if shares < min_size:
            return 0
        return shares


class FixedAmountPositionSizing:
    """Always commit the same amount of currency, capped by capital."""

    name = "fixed_amount"

    def __init__(self, amount: float = 10, min_position_size: Optional[float] = None):
        self.amount = amount
        self.min_position_size = min_position_size if min_position_size is not None else config.sizing.min_position_size

    def calculate(self, params: PositionSizeParams) -> float:
        if params.capital <= 0 or not 0 < params.price < 1:
            return 0

        shares = whole_shares(min(self.amount, params.capital) / params.price)
        min_size = params.min_size if params.min_size is not None else self.min_position_size
        if shares < min_size:
            return 0
        return shares
