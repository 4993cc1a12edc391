"""
Position snapshot read by the risk manager.

Positions are owned by a position-tracking collaborator; the risk engine
only reads them and reports alerts and triggers.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from .opportunity import Side


@dataclass
class Position:
    """An open (or closed) holding in one token."""
    id: str
    market_id: str
    token_id: str
    side: Side
    size: float
    avg_entry_price: float
    current_price: float
    realized_pnl: float = 0.0
    opened_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)
    closed_at: Optional[datetime] = None

    @property
    def is_long(self) -> bool:
        return self.side == Side.BUY

    @property
    def is_open(self) -> bool:
        return self.size > 0 and self.closed_at is None

    @property
    def current_value(self) -> float:
        return self.size * self.current_price

    @property
    def entry_value(self) -> float:
        return self.size * self.avg_entry_price

    @property
    def unrealized_pnl(self) -> float:
        """Mark-to-market PnL; shorts gain when the price falls."""
        if self.is_long:
            return (self.current_price - self.avg_entry_price) * self.size
        return (self.avg_entry_price - self.current_price) * self.size

    @property
    def unrealized_pnl_percent(self) -> float:
        if self.entry_value == 0:
            return 0.0
        return self.unrealized_pnl / self.entry_value * 100

    @property
    def total_pnl(self) -> float:
        return self.realized_pnl + self.unrealized_pnl

    def update_price(self, price: float):
        self.current_price = price
        self.updated_at = datetime.now()

    def add_to_position(self, size: float, price: float):
        """Increase the position, keeping a volume-weighted entry price."""
        if size <= 0:
            raise ValueError("size must be positive")
        total_cost = self.entry_value + size * price
        self.size += size
        self.avg_entry_price = total_cost / self.size
        self.updated_at = datetime.now()

    def reduce_position(self, size: float, price: float) -> float:
        """
        Close part of the position at price.

        Returns:
            Realized PnL on the closed shares
        """
        if size <= 0:
            raise ValueError("size must be positive")
        if size > self.size:
            raise ValueError(f"Cannot reduce by {size}, only {self.size} held")

        if self.is_long:
            pnl = (price - self.avg_entry_price) * size
        else:
            pnl = (self.avg_entry_price - price) * size

        self.size -= size
        self.realized_pnl += pnl
        self.current_price = price
        self.updated_at = datetime.now()
        if self.size == 0:
            self.closed_at = self.updated_at
        return pnl

    def target_price_for_profit(self, profit_percent: float) -> float:
        """Price at which the position shows the given unrealized return."""
        move = self.avg_entry_price * profit_percent / 100
        if self.is_long:
            return self.avg_entry_price + move
        return self.avg_entry_price - move

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "market_id": self.market_id,
            "token_id": self.token_id,
            "side": self.side.value,
            "size": self.size,
            "avg_entry_price": self.avg_entry_price,
            "current_price": self.current_price,
            "current_value": self.current_value,
            "unrealized_pnl": self.unrealized_pnl,
            "realized_pnl": self.realized_pnl,
        }
