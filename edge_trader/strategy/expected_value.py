"""
Expected Value Calculator

Compares vig-free reference probabilities against market prices to
identify positive expected value (+EV) trading opportunities.

Reference odds carry a bookmaker margin: their implied probabilities
(1 / decimal odds) sum to more than 1. Dividing each by the sum removes
the margin and leaves fair probabilities that sum to 1.

Edge = Fair Probability - Market Price

When edge is positive and significant, we have a trading opportunity.
"""

from dataclasses import dataclass
from typing import Optional

from ..models.market import OddsOutcome


@dataclass
class FairProbability:
    """One outcome of a referenced event after margin removal."""
    outcome: str
    decimal_odds: float
    implied_probability: float
    fair_probability: float
    overround: float              # Source margin in percent, shared by all outcomes


@dataclass
class ValueSignal:
    """A market side priced below its fair probability."""
    side: str                     # "YES" or "NO"
    outcome: str
    market_price: float
    fair_probability: float
    edge: float                   # fair_probability - market_price
    expected_value: float         # Expected profit per unit staked
    confidence: float
    overround: float

    @property
    def edge_percent(self) -> str:
        """Get edge as percentage string."""
        return f"{self.edge * 100:.1f}%"


def implied_probability(decimal_odds: float) -> float:
    """Probability implied by decimal odds."""
    if decimal_odds <= 0:
        raise ValueError(f"Decimal odds must be positive, got {decimal_odds}")
    return 1 / decimal_odds


def overround(outcomes: list[OddsOutcome]) -> float:
    """Source margin in percent: (sum of implied probabilities - 1) * 100."""
    return (sum(implied_probability(o.decimal_odds) for o in outcomes) - 1) * 100


def remove_vig(outcomes: list[OddsOutcome]) -> dict[str, FairProbability]:
    """
    Normalize implied probabilities so they sum to 1.

    Args:
        outcomes: Every outcome of one event with its decimal odds

    Returns:
        Mapping of outcome name to FairProbability (empty for no outcomes)
    """
    if not outcomes:
        return {}

    implied = {o.name: implied_probability(o.decimal_odds) for o in outcomes}
    total = sum(implied.values())
    margin = (total - 1) * 100

    return {
        o.name: FairProbability(
            outcome=o.name,
            decimal_odds=o.decimal_odds,
            implied_probability=implied[o.name],
            fair_probability=implied[o.name] / total,
            overround=margin,
        )
        for o in outcomes
    }


def expected_value(fair_probability: float, price: float) -> float:
    """Expected profit per unit staked when buying at price."""
    if price <= 0:
        return 0.0
    return fair_probability / price - 1


def odds_confidence(edge: float, overround_percent: float) -> float:
    """
    Blend edge size with the reference source's sharpness.

    Edge contributes up to 0.5. A margin of 0% contributes another 0.5,
    falling linearly to 0 at a 5% margin.
    """
    edge_score = min(edge * 5, 0.5)
    margin_score = max(0.0, (5 - overround_percent) / 5) * 0.5
    return min(edge_score + margin_score, 1.0)


class ExpectedValueCalculator:
    """
    Calculates expected value for binary markets against reference odds.
    """

    def __init__(self, min_edge: float = 0.02):
        self.min_edge = min_edge

    def evaluate_side(
        self,
        side: str,
        outcome: FairProbability,
        market_price: float,
    ) -> Optional[ValueSignal]:
        """
        Check one market side against its fair probability.

        Returns:
            ValueSignal if the edge clears min_edge, else None
        """
        if not 0 < market_price < 1:
            return None

        edge = outcome.fair_probability - market_price
        if edge < self.min_edge:
            return None

        return ValueSignal(
            side=side,
            outcome=outcome.outcome,
            market_price=market_price,
            fair_probability=outcome.fair_probability,
            edge=edge,
            expected_value=expected_value(outcome.fair_probability, market_price),
            confidence=odds_confidence(edge, outcome.overround),
            overround=outcome.overround,
        )

    def calculate_ev(
        self,
        outcomes: list[OddsOutcome],
        yes_outcome: str,
        no_outcome: str,
        yes_price: float,
        no_price: float,
    ) -> Optional[ValueSignal]:
        """
        Find the first side of a binary market with enough edge.

        YES is checked before NO. At most one signal is returned per market.

        Args:
            outcomes: Reference odds for the linked event
            yes_outcome: Reference outcome matching the YES token
            no_outcome: Reference outcome matching the NO token
            yes_price: Current YES price
            no_price: Current NO price

        Returns:
            ValueSignal or None
        """
        fair = remove_vig(outcomes)

        if yes_outcome in fair:
            signal = self.evaluate_side("YES", fair[yes_outcome], yes_price)
            if signal:
                return signal

        if no_outcome in fair:
            return self.evaluate_side("NO", fair[no_outcome], no_price)

        return None

    def summarize_signals(self, signals: list[ValueSignal]) -> dict:
        """
        Generate summary of value signals.

        Args:
            signals: List of ValueSignal objects

        Returns:
            Summary dictionary
        """
        return {
            "total_signals": len(signals),
            "avg_edge": sum(s.edge for s in signals) / len(signals) if signals else 0,
            "avg_confidence": sum(s.confidence for s in signals) / len(signals) if signals else 0,
            "yes_signals": len([s for s in signals if s.side == "YES"]),
            "no_signals": len([s for s in signals if s.side == "NO"]),
        }
