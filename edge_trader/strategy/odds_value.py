"""
Odds-Referenced Value Strategy

Uses a sharp reference source's odds as fair value for binary markets.

Logic:
1. For each mapped market, fetch the reference odds for its event (cached)
2. Remove the source margin to get fair probabilities
3. Compare with the market's YES and NO prices
4. If a side trades below fair probability by min_edge, buy it
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from ..monitoring.logger import get_logger
from ..interfaces import MarketDataSource, OddsReferenceSource
from ..models.market import MarketMapping, OddsOutcome
from ..models.opportunity import Opportunity, OpportunityType
from .base import Strategy, StrategyType
from .executor import TradeResult
from .expected_value import ExpectedValueCalculator
from .position_sizing import KellyPositionSizing, PositionSizeParams

logger = get_logger("odds_value")


@dataclass
class CachedOdds:
    outcomes: list[OddsOutcome]
    fetched_at: datetime


class OddsValueStrategy(Strategy):
    """Buys market sides priced below vig-free reference probability."""

    name = "odds-value"
    type = StrategyType.ODDS_VALUE
    default_params = {
        "min_edge": 0.02,
        "confidence_threshold": 0.5,
        "max_position_size": 100,
    }

    # Reference odds cache lifetimes
    CACHE_TTL = timedelta(minutes=5)
    EMPTY_CACHE_TTL = timedelta(minutes=30)

    def __init__(
        self,
        market_data: Optional[MarketDataSource] = None,
        odds_source: Optional[OddsReferenceSource] = None,
        mappings: Optional[list[MarketMapping]] = None,
        **kwargs,
    ):
        kwargs.setdefault("position_sizing", KellyPositionSizing())
        super().__init__(**kwargs)
        self.market_data = market_data
        self.odds_source = odds_source
        self._mappings: dict[str, MarketMapping] = {}
        self._odds_cache: dict[str, CachedOdds] = {}

        for mapping in mappings or []:
            self.add_market_mapping(mapping)

    # ------------------------------------------------------------------
    # Market mappings
    # ------------------------------------------------------------------

    def add_market_mapping(self, mapping: MarketMapping):
        self._mappings[mapping.market_id] = mapping
        logger.debug(f"[{self.name}] Mapped {mapping.market_id} -> {mapping.event_id}")

    def remove_market_mapping(self, market_id: str) -> bool:
        return self._mappings.pop(market_id, None) is not None

    def get_market_mappings(self) -> list[MarketMapping]:
        return list(self._mappings.values())

    # ------------------------------------------------------------------
    # Reference odds
    # ------------------------------------------------------------------

    async def get_odds(self, event_id: str) -> list[OddsOutcome]:
        """Reference odds for an event, cached per event."""
        cached = self._odds_cache.get(event_id)
        if cached is not None:
            ttl = self.CACHE_TTL if cached.outcomes else self.EMPTY_CACHE_TTL
            if datetime.now() - cached.fetched_at < ttl:
                return cached.outcomes

        outcomes = await self.odds_source.get_odds(event_id)
        self._odds_cache[event_id] = CachedOdds(outcomes=list(outcomes), fetched_at=datetime.now())
        return self._odds_cache[event_id].outcomes

    def clear_cache(self):
        self._odds_cache.clear()

    # ------------------------------------------------------------------
    # Strategy contract
    # ------------------------------------------------------------------

    async def scan(self) -> list[Opportunity]:
        if self.market_data is None or self.odds_source is None:
            logger.warning(f"[{self.name}] Market data or odds source missing, cannot scan")
            return []

        calculator = ExpectedValueCalculator(min_edge=self.params["min_edge"])
        opportunities = []

        for mapping in list(self._mappings.values()):
            try:
                opportunity = await self._scan_mapping(calculator, mapping)
            except Exception as e:
                logger.warning(f"[{self.name}] Scan failed for {mapping.market_id} ({mapping.event_id}): {e}")
                continue
            if opportunity is not None:
                opportunities.append(opportunity)

        return opportunities

    async def _scan_mapping(
        self,
        calculator: ExpectedValueCalculator,
        mapping: MarketMapping,
    ) -> Optional[Opportunity]:
        outcomes = await self.get_odds(mapping.event_id)
        if not outcomes:
            return None

        yes_price = await self.market_data.get_price(mapping.yes_token_id)
        no_price = await self.market_data.get_price(mapping.no_token_id)
        if yes_price is None or no_price is None:
            logger.debug(f"[{self.name}] No price for {mapping.market_id}")
            return None

        signal = calculator.calculate_ev(
            outcomes,
            yes_outcome=mapping.yes_outcome,
            no_outcome=mapping.no_outcome,
            yes_price=yes_price,
            no_price=no_price,
        )
        if signal is None:
            return None

        token_id = mapping.yes_token_id if signal.side == "YES" else mapping.no_token_id
        max_size = self.params["max_position_size"]
        stake = min(max_size * signal.edge * 10, max_size)

        opportunity = Opportunity.create_odds_value(
            market_id=mapping.market_id,
            token_id=token_id,
            market_price=signal.market_price,
            fair_probability=signal.fair_probability,
            stake=stake,
            confidence=signal.confidence,
            overround=signal.overround,
            event_id=mapping.event_id,
            outcome=signal.outcome,
        )
        if opportunity.legs[0].size <= 0:
            return None

        opportunity.metadata["side"] = signal.side
        logger.info(
            f"[{self.name}] Value on {mapping.market_id} {signal.side}: "
            f"fair={signal.fair_probability:.3f} price={signal.market_price:.3f} "
            f"edge={signal.edge_percent} conf={signal.confidence:.2f}"
        )
        return opportunity

    def position_size_params(self, opportunity: Opportunity) -> PositionSizeParams:
        """Kelly on the fair probability at the market price (binary payout)."""
        return PositionSizeParams(
            capital=self.available_capital,
            win_probability=opportunity.metadata["fair_probability"],
            odds=0,
            price=opportunity.metadata["market_price"],
        )

    async def execute(self, opportunity: Opportunity, size: Optional[float] = None) -> TradeResult:
        if opportunity.type != OpportunityType.EVENT_ARBITRAGE:
            return TradeResult(success=False, error="Invalid opportunity type for this strategy")
        if opportunity.is_expired:
            opportunity.mark_expired()
            return TradeResult(success=False, error="Opportunity expired")
        if opportunity.confidence < self.params["confidence_threshold"]:
            opportunity.mark_skipped()
            return TradeResult(
                success=False,
                error=f"Confidence {opportunity.confidence:.2f} below threshold "
                      f"{self.params['confidence_threshold']:.2f}",
            )

        return await self.execute_legs(opportunity, size)
