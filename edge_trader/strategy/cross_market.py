"""
Cross-Market Arbitrage Strategy

Exploits binary markets whose YES + NO asks sum below 1.0.

Logic:
1. Pull binary markets from the market data source
2. Keep markets where p_yes + p_no < 1 by at least min_spread
3. Buy both YES and NO
4. Exactly one side pays 1 per share at resolution
5. Profit = 1 - (p_yes + p_no) per share pair
"""

from typing import Optional

from ..monitoring.logger import get_logger
from ..interfaces import MarketDataSource
from ..models.market import BinaryMarket
from ..models.opportunity import Opportunity, OpportunityType
from .base import Strategy, StrategyType
from .executor import TradeResult
from .signals import detect_spread

logger = get_logger("cross_market")


class CrossMarketArbitrageStrategy(Strategy):
    """Buys both sides of mispriced binary markets."""

    name = "cross-market-arbitrage"
    type = StrategyType.CROSS_MARKET
    default_params = {
        "min_spread": 0.005,
        "min_profit": 0.01,
        "max_trades_per_run": 5,
        # The spread is locked in, so the fallback sizer may commit all
        # capital the opportunity was sized against.
        "default_position_fraction": 1.0,
    }

    def __init__(self, market_data: Optional[MarketDataSource] = None, **kwargs):
        super().__init__(**kwargs)
        self.market_data = market_data

    def set_market_data(self, market_data: MarketDataSource):
        self.market_data = market_data

    async def scan(self) -> list[Opportunity]:
        if self.market_data is None:
            logger.warning(f"[{self.name}] No market data source, cannot scan")
            return []

        try:
            markets = await self.market_data.get_binary_markets()
        except Exception as e:
            logger.warning(f"[{self.name}] Could not load markets: {e}")
            return []

        opportunities = []
        for market in markets:
            if not market.active:
                continue

            try:
                opportunity = self._scan_market(market)
            except Exception as e:
                logger.warning(f"[{self.name}] Scan failed for {market.market_id}: {e}")
                continue
            if opportunity is None:
                continue

            opportunities.append(opportunity)
            if len(opportunities) >= self.params["max_trades_per_run"]:
                break

        logger.debug(f"[{self.name}] Scanned {len(markets)} markets, {len(opportunities)} opportunities")
        return opportunities

    def _scan_market(self, market: BinaryMarket) -> Optional[Opportunity]:
        signal = detect_spread(
            market,
            capital=self.available_capital,
            min_spread=self.params["min_spread"],
            min_profit=self.params["min_profit"],
        )
        if signal is None:
            return None

        opportunity = Opportunity.create_cross_market(
            market_id=market.market_id,
            yes_token_id=market.yes_token_id,
            no_token_id=market.no_token_id,
            yes_price=market.yes_price,
            no_price=market.no_price,
            size=signal.size,
        )
        logger.info(
            f"[{self.name}] Found opportunity: {market.question[:50]} "
            f"spread={signal.spread * 100:.2f}%, profit=${signal.expected_profit:.2f}"
        )
        return opportunity

    async def validate_opportunity(self, opportunity: Opportunity) -> bool:
        """Re-read both asks; the spread must still clear min_spread."""
        if not opportunity.is_valid:
            return False
        if self.market_data is None:
            return True

        yes_leg, no_leg = opportunity.legs
        yes_book = await self.market_data.get_order_book(yes_leg.token_id)
        no_book = await self.market_data.get_order_book(no_leg.token_id)

        if yes_book.best_ask is None or no_book.best_ask is None:
            logger.debug(f"[{self.name}] {opportunity.id}: empty book on revalidation")
            return False

        spread = 1 - (yes_book.best_ask + no_book.best_ask)
        if spread < self.params["min_spread"]:
            logger.debug(f"[{self.name}] {opportunity.id}: spread closed to {spread:.4f}")
            return False
        return True

    async def execute(self, opportunity: Opportunity, size: Optional[float] = None) -> TradeResult:
        if opportunity.type != OpportunityType.CROSS_MARKET:
            return TradeResult(success=False, error="Invalid opportunity type for this strategy")
        if len(opportunity.legs) != 2:
            return TradeResult(success=False, error="Cross-market arbitrage requires exactly 2 legs")

        result = await self.execute_legs(opportunity, size)
        if result.success:
            logger.info(
                f"[{self.name}] Arbitrage executed, expected profit ${result.total_profit:.2f}"
            )
        return result
