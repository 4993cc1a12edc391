"""
Trading Engine

Wires the strategy core to its collaborators:
1. Strategies scan injected market data and reference odds
2. Opportunities are sized, gated by the RiskManager and executed
3. Executed legs are booked as positions
4. Positions are re-priced and checked against risk limits and exits
5. Trades, opportunities and risk alerts are logged and alerted

All network I/O happens in injected collaborators. Without an order
executor the engine trades on paper.
"""

import asyncio
from typing import Optional

from .config import config
from .interfaces import MarketDataSource, OddsReferenceSource, OrderExecutor, PositionProvider
from .models import (
    MarketMapping,
    OpportunityBook,
    Position,
    RiskAlert,
    RiskAlertType,
    Side,
    StrategyEvent,
    StrategyEventType,
)
from .monitoring import AlertManager, get_logger, setup_logging, trade_logger
from .strategy import (
    CrossMarketArbitrageStrategy,
    DeviationStrategy,
    KellyPositionSizing,
    OddsValueStrategy,
    PaperOrderExecutor,
    StrategyContext,
)
from .trading import ExitReason, PositionManager, RiskLimits, RiskManager

logger = get_logger("main")


class TradingEngine:
    """
    Main trading system that coordinates all components.
    """

    def __init__(
        self,
        market_data: Optional[MarketDataSource] = None,
        order_executor: Optional[OrderExecutor] = None,
        odds_source: Optional[OddsReferenceSource] = None,
        mappings: Optional[list[MarketMapping]] = None,
        position_provider: Optional[PositionProvider] = None,
        risk_limits: Optional[RiskLimits] = None,
        available_capital: Optional[float] = None,
        alerts: Optional[AlertManager] = None,
        auto_exit: bool = False,
        configure_logging: bool = True,
    ):
        """
        Initialize the trading system.

        Args:
            market_data: Binary market prices and order books
            order_executor: Venue adapter (paper trading if None)
            odds_source: Reference odds for the odds-value strategy
            mappings: Market-to-event mappings for the odds-value strategy
            position_provider: Source of open positions (internal book if None)
            risk_limits: Risk limits (default from environment)
            available_capital: Capital strategies size against
            alerts: AlertManager for notifications
            auto_exit: Close positions when a stop-loss or take-profit fires
            configure_logging: Install the loguru sinks on initialize()
        """
        self.market_data = market_data
        self.odds_source = odds_source
        self.mappings = mappings or []
        self.available_capital = available_capital or config.engine.available_capital
        self.auto_exit = auto_exit
        self.configure_logging = configure_logging

        self.dry_run = order_executor is None
        self.order_executor = order_executor or PaperOrderExecutor()

        self.risk_manager = RiskManager(risk_limits, initial_capital=self.available_capital)
        self.position_manager = PositionManager()
        self.position_provider = position_provider or self.position_manager
        self.opportunity_book = OpportunityBook()
        self.context = StrategyContext()
        self.kelly_sizing = KellyPositionSizing()

        self.alerts = alerts
        self._owns_alerts = alerts is None
        self._unsubscribers = []
        self._initialized = False

    async def initialize(self):
        """Build the strategies and wire event listeners."""
        if self._initialized:
            return

        if self.configure_logging:
            setup_logging()
        logger.info("Initializing Edge Trader...")

        if self.alerts is None:
            self.alerts = AlertManager()

        shared = {
            "order_executor": self.order_executor,
            "risk_manager": self.risk_manager,
            "params": {"available_capital": self.available_capital},
        }
        self.context.register(CrossMarketArbitrageStrategy(market_data=self.market_data, **shared))
        self.context.register(DeviationStrategy(market_data=self.market_data, **shared))
        if self.odds_source is not None:
            self.context.register(OddsValueStrategy(
                market_data=self.market_data,
                odds_source=self.odds_source,
                mappings=self.mappings,
                position_sizing=self.kelly_sizing,
                **shared,
            ))
        else:
            logger.info("No odds source configured, odds-value strategy disabled")

        self._unsubscribers += [
            self.context.on_strategy_event(self._on_strategy_event),
            self.context.on_strategy_event(trade_logger.handle_event),
            self.context.on_strategy_event(self.alerts.handle_strategy_event),
            self.risk_manager.on_risk_alert(trade_logger.log_risk_alert),
        ]

        if self.market_data is not None:
            await self.watch_markets()

        # Cycles are driven by run_cycle() from the scheduler
        self.context.start_all(auto_scan=False)

        self._initialized = True
        logger.info(f"Initialized with capital: ${self.available_capital:.2f}")
        logger.info(f"Dry run mode: {self.dry_run}")
        if self.dry_run and not config.engine.dry_run:
            logger.warning("DRY_RUN is false but no order executor was injected, trading on paper")
        if config.is_production and self.dry_run:
            logger.warning("Running in production with the paper executor")

    async def close(self):
        """Stop strategies and release resources."""
        if self.context.is_running:
            self.context.stop_all()
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        await self.context.events.drain()
        await self.risk_manager.events.drain()
        if self.alerts is not None and self._owns_alerts:
            await self.alerts.close()

    async def __aenter__(self):
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    @property
    def deviation(self) -> Optional[DeviationStrategy]:
        return self.context.get(DeviationStrategy.name)

    async def watch_markets(self) -> int:
        """Start tracking the YES token of every active market for mean reversion."""
        try:
            markets = await self.market_data.get_binary_markets()
        except Exception as e:
            logger.warning(f"Could not load markets to watch: {e}")
            return 0

        watched = 0
        for market in markets:
            if market.active:
                self.deviation.watch_token(market.yes_token_id, market.market_id)
                watched += 1
        logger.info(f"Watching {watched} markets for price deviations")
        return watched

    def _on_strategy_event(self, event: StrategyEvent):
        data = event.data or {}
        if event.type == StrategyEventType.OPPORTUNITY_FOUND:
            self.opportunity_book.add(data["opportunity"])
        elif event.type == StrategyEventType.TRADE_EXECUTED:
            self.position_manager.apply_trade(data["result"])

    # ------------------------------------------------------------------
    # Cycles
    # ------------------------------------------------------------------

    async def run_cycle(self) -> list[dict]:
        """Run every enabled strategy once."""
        results = await self.context.run_all()
        for result in results:
            if "error" in result:
                logger.error(f"[{result['strategy']}] Cycle failed: {result['error']}")
            elif result["opportunities"]:
                logger.info(
                    f"[{result['strategy']}] {result['opportunities']} opportunities, "
                    f"{result['executed']} executed"
                )
        return results

    async def _open_positions(self) -> list[Position]:
        positions = self.position_provider.get_open_positions()
        if asyncio.iscoroutine(positions):
            positions = await positions
        return list(positions)

    async def monitor_positions(self) -> list[RiskAlert]:
        """
        One risk cycle: re-price, evaluate limits and exits, forward alerts.

        Returns:
            Alerts raised this cycle
        """
        if self.market_data is not None and self.position_provider is self.position_manager:
            await self.position_manager.refresh_prices(self.market_data)

        positions = await self._open_positions()
        alerts = self.risk_manager.evaluate_all_positions(positions)

        for alert in alerts:
            if self.alerts is not None:
                await self.alerts.risk_alert(alert)
            if self.auto_exit and alert.position_id:
                await self._handle_exit(alert)

        if self.risk_manager.last_metrics is not None:
            logger.debug(f"Risk metrics: {self.risk_manager.last_metrics.to_dict()}")
        return alerts

    async def _handle_exit(self, alert: RiskAlert):
        position = self.position_manager.get_position(alert.position_id)
        if position is None or not position.is_open:
            return

        if alert.type == RiskAlertType.STOP_LOSS_TRIGGERED:
            await self.close_position(position.id, position.current_price, reason=ExitReason.STOP_LOSS)
        elif alert.type == RiskAlertType.TAKE_PROFIT_TRIGGERED:
            size = alert.data.get("close_size") or position.size
            await self.close_position(position.id, position.current_price, size=size, reason=ExitReason.TAKE_PROFIT)

    async def close_position(
        self,
        position_id: str,
        exit_price: float,
        size: Optional[float] = None,
        reason: ExitReason = ExitReason.MANUAL,
    ) -> Optional[float]:
        """
        Place the offsetting order and book the exit.

        Returns:
            Realized PnL, or None if the order failed
        """
        position = self.position_manager.get_position(position_id)
        if position is None or not position.is_open:
            raise ValueError(f"No open position {position_id}")

        close_size = size if size is not None else position.size
        offset_side = Side.SELL if position.is_long else Side.BUY
        result = await self.order_executor.place_limit_order(position.token_id, exit_price, close_size, offset_side)
        if not result.success:
            logger.error(f"Exit order for {position_id} failed: {result.error_msg}")
            return None

        pnl = self.position_manager.close_position(position_id, exit_price, size=close_size, reason=reason)
        self.risk_manager.update_daily_pnl(pnl)
        if not position.is_open:
            self.risk_manager.record_closed_position(position)
        trade_logger.log_position_close(position_id, position.market_id, pnl, reason.value)
        return pnl

    def housekeeping(self) -> int:
        """Drop finished and expired opportunities from the book."""
        purged = self.opportunity_book.purge()
        stats = self.context.get_stats()["totals"]
        logger.info(
            f"Housekeeping: purged {purged} opportunities, {len(self.opportunity_book)} tracked, "
            f"{stats['total_opportunities_executed']}/{stats['total_opportunities_found']} executed"
        )
        return purged

    def get_daily_summary(self) -> dict:
        totals = self.context.get_stats()["totals"]
        trades = sum(
            s.executor.get_journal_summary()["total_trades"]
            for s in self.context.get_all()
            if s.executor is not None
        )
        return {
            "pnl": self.risk_manager.daily_pnl + self.position_manager.get_total_unrealized_pnl(),
            "trades": trades,
            "win_rate": totals["avg_win_rate"],
            "risk_score": self.risk_manager.get_risk_summary()["risk_score"],
        }
