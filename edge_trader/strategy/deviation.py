"""
Price Deviation Strategy (Mean Reversion)

Trades prices that sit unusually far from their recent mean.

Logic:
1. Keep a rolling window of prices per watched token
2. z = (current - mean) / std_dev (population std)
3. Entry: BUY when z <= -entry_z_score, SELL when z >= +entry_z_score
4. Exit once |z| < exit_z_score

exit_z_score must be strictly smaller than entry_z_score. The gap keeps a
price hovering at the threshold from flipping in and out.
"""

from typing import Optional

from ..monitoring.logger import get_logger
from ..interfaces import MarketDataSource
from ..models.opportunity import Opportunity, OpportunityType
from .base import Strategy, StrategyType
from .executor import TradeResult
from .position_sizing import whole_shares
from .signals import DeviationSignal, PriceWindow

logger = get_logger("deviation")


class DeviationStrategy(Strategy):
    """Mean-reversion entries on z-score extremes."""

    name = "price-deviation"
    type = StrategyType.DEVIATION
    default_params = {
        "entry_z_score": 2.0,
        "exit_z_score": 0.5,
        "lookback_period": 100,
        "min_sample_size": 20,
        "max_positions": 5,
    }

    def __init__(self, market_data: Optional[MarketDataSource] = None, **kwargs):
        super().__init__(**kwargs)
        self._check_thresholds(self.params)
        self.market_data = market_data
        self._windows: dict[str, PriceWindow] = {}
        self._markets: dict[str, str] = {}        # token_id -> market_id

    @staticmethod
    def _check_thresholds(params: dict):
        if params["exit_z_score"] >= params["entry_z_score"]:
            raise ValueError(
                f"exit_z_score ({params['exit_z_score']}) must be below "
                f"entry_z_score ({params['entry_z_score']})"
            )

    def update_config(self, enabled: Optional[bool] = None, params: Optional[dict] = None):
        if params:
            self._check_thresholds({**self.params, **params})
        super().update_config(enabled=enabled, params=params)

    # ------------------------------------------------------------------
    # Price tracking
    # ------------------------------------------------------------------

    def watch_token(self, token_id: str, market_id: str):
        self._markets[token_id] = market_id
        if token_id not in self._windows:
            self._windows[token_id] = PriceWindow(self.params["lookback_period"])

    def unwatch_token(self, token_id: str):
        self._markets.pop(token_id, None)
        self._windows.pop(token_id, None)

    @property
    def watched_tokens(self) -> list[str]:
        return list(self._markets)

    def update_price(self, token_id: str, market_id: str, price: float):
        """Push a price into the token's window, watching it if needed."""
        self.watch_token(token_id, market_id)
        self._windows[token_id].add(price)

    def get_signal(self, token_id: str) -> Optional[DeviationSignal]:
        """Current z-score snapshot; None until min_sample_size prices are held."""
        window = self._windows.get(token_id)
        if window is None or len(window) < self.params["min_sample_size"]:
            return None
        return window.snapshot(token_id)

    def get_all_signals(self) -> list[DeviationSignal]:
        signals = [self.get_signal(t) for t in self._windows]
        return [s for s in signals if s is not None]

    def should_exit(self, token_id: str) -> bool:
        """True when the price has come back within exit_z_score of its mean."""
        signal = self.get_signal(token_id)
        if signal is None:
            return False
        return abs(signal.z_score) < self.params["exit_z_score"]

    async def _poll_prices(self):
        for token_id, market_id in list(self._markets.items()):
            try:
                price = await self.market_data.get_price(token_id)
            except Exception as e:
                logger.warning(f"[{self.name}] Price poll failed for {token_id}: {e}")
                continue
            if price is not None:
                self._windows[token_id].add(price)

    # ------------------------------------------------------------------
    # Strategy contract
    # ------------------------------------------------------------------

    async def scan(self) -> list[Opportunity]:
        if self.market_data is not None:
            await self._poll_prices()

        entry = self.params["entry_z_score"]
        opportunities = []

        for signal in self.get_all_signals():
            if abs(signal.z_score) < entry or signal.current_price <= 0:
                continue

            size = whole_shares(self.available_capital / signal.current_price)
            if size <= 0:
                continue

            opportunity = Opportunity.create_deviation(
                market_id=self._markets[signal.token_id],
                token_id=signal.token_id,
                current_price=signal.current_price,
                mean_price=signal.mean,
                std_dev=signal.std_dev,
                z_score=signal.z_score,
                size=size,
            )
            opportunities.append(opportunity)
            logger.info(
                f"[{self.name}] Found deviation: token={signal.token_id[:8]} "
                f"z={signal.z_score:.2f}, price={signal.current_price:.4f}, "
                f"mean={signal.mean:.4f}, side={opportunity.legs[0].side.value}"
            )

        return opportunities[:self.params["max_positions"]]

    async def validate_opportunity(self, opportunity: Opportunity) -> bool:
        """The z-score must still be beyond the entry threshold."""
        if not opportunity.is_valid:
            return False
        signal = self.get_signal(opportunity.legs[0].token_id)
        if signal is None:
            return False
        return abs(signal.z_score) >= self.params["entry_z_score"]

    async def execute(self, opportunity: Opportunity, size: Optional[float] = None) -> TradeResult:
        if opportunity.type != OpportunityType.DEVIATION:
            return TradeResult(success=False, error="Invalid opportunity type for this strategy")
        if len(opportunity.legs) != 1:
            return TradeResult(success=False, error="Deviation strategy requires exactly 1 leg")

        result = await self.execute_legs(opportunity, size)
        if result.success:
            logger.info(f"[{self.name}] Deviation trade executed, expected profit ${result.total_profit:.2f}")
        return result
