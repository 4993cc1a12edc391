"""
Market data snapshots passed in by the market-data and odds collaborators.
"""

from dataclasses import dataclass, field
from typing import Optional


@dataclass
class OrderBookLevel:
    price: float
    size: float


@dataclass
class OrderBook:
    """Depth for one token. Bids sorted high to low, asks low to high."""
    token_id: str
    bids: list[OrderBookLevel] = field(default_factory=list)
    asks: list[OrderBookLevel] = field(default_factory=list)

    @property
    def best_bid(self) -> Optional[float]:
        return self.bids[0].price if self.bids else None

    @property
    def best_ask(self) -> Optional[float]:
        return self.asks[0].price if self.asks else None

    @property
    def spread(self) -> Optional[float]:
        if self.best_bid is None or self.best_ask is None:
            return None
        return self.best_ask - self.best_bid


@dataclass
class BinaryMarket:
    """A two-outcome market with the current best ask for each token."""
    market_id: str
    question: str
    yes_token_id: str
    no_token_id: str
    yes_price: float
    no_price: float
    active: bool = True

    @property
    def price_sum(self) -> float:
        return self.yes_price + self.no_price


@dataclass
class OddsOutcome:
    """Decimal odds for one outcome of a referenced event."""
    name: str
    decimal_odds: float


@dataclass
class MarketMapping:
    """
    Links a binary market to an event on the odds reference source.

    yes_outcome / no_outcome name the reference outcomes that correspond
    to the market's YES and NO tokens.
    """
    market_id: str
    event_id: str
    yes_outcome: str
    no_outcome: str
    yes_token_id: str
    no_token_id: str
