"""
Opportunity Model

A tradable signal produced by a strategy scan: one or more legs plus the
expected profit, a confidence score and an expiry. Status moves through a
one-way state machine:

    PENDING -> EXECUTING -> EXECUTED | FAILED
    PENDING -> EXPIRED   (aged out)
    PENDING -> SKIPPED   (sizing or risk policy)

The entity never drives side effects itself; stats and notifications are
handled by the strategy orchestration.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Optional
import math
import uuid


class Side(Enum):
    """Order side for a single leg."""
    BUY = "BUY"
    SELL = "SELL"


class OpportunityType(Enum):
    """Kind of edge an opportunity exploits."""
    CROSS_MARKET = "cross_market"         # YES + NO asks below 1
    EVENT_ARBITRAGE = "event_arbitrage"   # Market price vs. reference odds
    DEVIATION = "deviation"               # Price far from its rolling mean


class OpportunityStatus(Enum):
    """Opportunity lifecycle states."""
    PENDING = "pending"
    EXECUTING = "executing"
    EXECUTED = "executed"
    FAILED = "failed"
    EXPIRED = "expired"
    SKIPPED = "skipped"


TERMINAL_STATUSES = frozenset({
    OpportunityStatus.EXECUTED,
    OpportunityStatus.FAILED,
    OpportunityStatus.EXPIRED,
    OpportunityStatus.SKIPPED,
})

# Default time-to-live per opportunity type
CROSS_MARKET_TTL = timedelta(seconds=30)
DEVIATION_TTL = timedelta(seconds=60)
ODDS_VALUE_TTL = timedelta(minutes=5)


@dataclass(frozen=True)
class Leg:
    """An immutable intent to trade one instrument."""
    market_id: str
    token_id: str
    side: Side
    price: float
    size: float

    @property
    def notional(self) -> float:
        return self.price * self.size

    def to_dict(self) -> dict:
        return {
            "market_id": self.market_id,
            "token_id": self.token_id,
            "side": self.side.value,
            "price": self.price,
            "size": self.size,
        }


def _new_id() -> str:
    return f"opp_{uuid.uuid4().hex[:10]}"


@dataclass
class Opportunity:
    """
    A detected trading opportunity.

    Legs are ordered and never empty. Confidence is clamped to [0, 1].
    """
    type: OpportunityType
    legs: list[Leg]
    expected_profit: float
    expected_profit_percent: float
    confidence: float
    expires_at: datetime
    metadata: dict[str, Any] = field(default_factory=dict)
    status: OpportunityStatus = OpportunityStatus.PENDING
    created_at: datetime = field(default_factory=datetime.now)
    id: str = field(default_factory=_new_id)

    def __post_init__(self):
        if not self.legs:
            raise ValueError("Opportunity must have at least one leg")
        self.legs = list(self.legs)
        self.confidence = max(0.0, min(1.0, self.confidence))

    # ------------------------------------------------------------------
    # Factories
    # ------------------------------------------------------------------

    @classmethod
    def create_cross_market(
        cls,
        market_id: str,
        yes_token_id: str,
        no_token_id: str,
        yes_price: float,
        no_price: float,
        size: float,
        ttl: timedelta = CROSS_MARKET_TTL,
    ) -> "Opportunity":
        """
        Buy both outcomes of a binary market whose asks sum below 1.

        Exactly one outcome pays 1 per share at resolution, so the locked-in
        profit is size - size * (yes_price + no_price).
        """
        price_sum = yes_price + no_price
        total_cost = size * price_sum
        profit = size - total_cost
        profit_percent = profit / total_cost * 100 if total_cost > 0 else 0.0

        legs = [
            Leg(market_id, yes_token_id, Side.BUY, yes_price, size),
            Leg(market_id, no_token_id, Side.BUY, no_price, size),
        ]
        return cls(
            type=OpportunityType.CROSS_MARKET,
            legs=legs,
            expected_profit=profit,
            expected_profit_percent=profit_percent,
            confidence=min(1.0, abs(profit_percent) / 10),
            expires_at=datetime.now() + ttl,
            metadata={
                "yes_price": yes_price,
                "no_price": no_price,
                "sum_price": price_sum,
                "spread": 1 - price_sum,
            },
        )

    @classmethod
    def create_deviation(
        cls,
        market_id: str,
        token_id: str,
        current_price: float,
        mean_price: float,
        std_dev: float,
        z_score: float,
        size: float,
        ttl: timedelta = DEVIATION_TTL,
    ) -> "Opportunity":
        """Bet on a price reverting to its rolling mean."""
        side = Side.BUY if z_score < 0 else Side.SELL
        reversion = abs(current_price - mean_price)
        profit = size * reversion
        cost = size * current_price
        profit_percent = profit / cost * 100 if cost > 0 else 0.0

        return cls(
            type=OpportunityType.DEVIATION,
            legs=[Leg(market_id, token_id, side, current_price, size)],
            expected_profit=profit,
            expected_profit_percent=profit_percent,
            confidence=min(1.0, abs(z_score) / 3),
            expires_at=datetime.now() + ttl,
            metadata={
                "mean_price": mean_price,
                "std_dev": std_dev,
                "z_score": z_score,
                "expected_reversion": reversion,
            },
        )

    @classmethod
    def create_odds_value(
        cls,
        market_id: str,
        token_id: str,
        market_price: float,
        fair_probability: float,
        stake: float,
        confidence: float,
        overround: float,
        event_id: Optional[str] = None,
        outcome: Optional[str] = None,
        ttl: timedelta = ODDS_VALUE_TTL,
    ) -> "Opportunity":
        """
        Buy an outcome the market prices below its vig-free fair probability.
        """
        size = math.floor(stake / market_price) if market_price > 0 else 0
        expected_value = fair_probability / market_price - 1 if market_price > 0 else 0.0
        profit = size * market_price * expected_value

        return cls(
            type=OpportunityType.EVENT_ARBITRAGE,
            legs=[Leg(market_id, token_id, Side.BUY, market_price, size)],
            expected_profit=profit,
            expected_profit_percent=expected_value * 100,
            confidence=confidence,
            expires_at=datetime.now() + ttl,
            metadata={
                "fair_probability": fair_probability,
                "market_price": market_price,
                "edge": fair_probability - market_price,
                "expected_value": expected_value,
                "overround": overround,
                "event_id": event_id,
                "outcome": outcome,
            },
        )

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    @property
    def market_ids(self) -> list[str]:
        """Unique market ids in leg order."""
        return list(dict.fromkeys(leg.market_id for leg in self.legs))

    @property
    def token_ids(self) -> list[str]:
        return [leg.token_id for leg in self.legs]

    @property
    def total_cost(self) -> float:
        """Capital spent on the buy legs."""
        return sum(leg.notional for leg in self.legs if leg.side == Side.BUY)

    @property
    def unit_cost(self) -> float:
        """
        Capital at risk for one share of every leg.

        A binary share sold at p risks 1 - p.
        """
        return sum(
            leg.price if leg.side == Side.BUY else 1 - leg.price
            for leg in self.legs
        )

    @property
    def is_expired(self) -> bool:
        """True once expires_at has passed, whatever the status."""
        return self.expires_at <= datetime.now()

    @property
    def is_valid(self) -> bool:
        """Only a pending, unexpired opportunity may be traded."""
        return self.status == OpportunityStatus.PENDING and not self.is_expired

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def is_profitable(self, min_profit: float = 0.0, min_profit_percent: float = 0.0) -> bool:
        return (
            self.expected_profit >= min_profit
            and self.expected_profit_percent >= min_profit_percent
        )

    # ------------------------------------------------------------------
    # Status transitions
    # ------------------------------------------------------------------

    def mark_executing(self):
        self.status = OpportunityStatus.EXECUTING

    def mark_executed(self):
        self.status = OpportunityStatus.EXECUTED

    def mark_failed(self):
        self.status = OpportunityStatus.FAILED

    def mark_expired(self):
        self.status = OpportunityStatus.EXPIRED

    def mark_skipped(self):
        self.status = OpportunityStatus.SKIPPED

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type.value,
            "status": self.status.value,
            "legs": [leg.to_dict() for leg in self.legs],
            "expected_profit": self.expected_profit,
            "expected_profit_percent": self.expected_profit_percent,
            "confidence": self.confidence,
            "created_at": self.created_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
            "metadata": self.metadata,
        }

    def __str__(self) -> str:
        return (
            f"{self.type.value} {self.id}: "
            f"${self.expected_profit:.2f} ({self.expected_profit_percent:.2f}%), "
            f"conf {self.confidence:.0%}"
        )
