"""
Strategy base class and the shared scan/execute cycle.

A concrete strategy supplies two coroutines:

    scan()                      -> list[Opportunity]
    execute(opportunity, size)  -> TradeResult

Everything else has a default: validate_opportunity, filter_opportunities,
position_size_params, on_start and on_stop. The cycle itself lives in
run_strategy_cycle() so every strategy runs the same orchestration.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Optional

from ..config import config
from ..monitoring.logger import get_logger
from ..interfaces import OrderExecutor
from ..models.events import EventBus, StrategyEvent, StrategyEventType
from ..models.opportunity import Opportunity, OpportunityStatus
from .executor import TradeExecutor, TradeResult
from .position_sizing import FixedRatioPositionSizing, PositionSizeParams, PositionSizing

if TYPE_CHECKING:
    from ..trading.risk_manager import RiskManager

logger = get_logger("strategy")


class StrategyType(Enum):
    CROSS_MARKET = "cross_market"
    ODDS_VALUE = "odds_value"
    DEVIATION = "deviation"


@dataclass
class StrategyConfig:
    enabled: bool = True
    params: dict[str, Any] = field(default_factory=dict)


@dataclass
class StrategyStats:
    """Running counters for one strategy."""
    opportunities_found: int = 0
    opportunities_executed: int = 0
    total_pnl: float = 0.0
    win_rate: float = 0.0
    avg_profit: float = 0.0
    run_count: int = 0
    last_run_at: Optional[datetime] = None
    started_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "opportunities_found": self.opportunities_found,
            "opportunities_executed": self.opportunities_executed,
            "total_pnl": self.total_pnl,
            "win_rate": self.win_rate,
            "avg_profit": self.avg_profit,
            "run_count": self.run_count,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "started_at": self.started_at.isoformat() if self.started_at else None,
        }


@dataclass
class CycleReport:
    """What one scan/execute cycle did."""
    strategy: str
    opportunities: int = 0
    executed: int = 0
    errors: int = 0
    skipped: bool = False
    error: Optional[str] = None


class Strategy:
    """
    Base class for scanning strategies.
    """

    name: str = "strategy"
    type: StrategyType = StrategyType.CROSS_MARKET
    default_params: dict[str, Any] = {}

    def __init__(
        self,
        name: Optional[str] = None,
        enabled: bool = True,
        params: Optional[dict[str, Any]] = None,
        order_executor: Optional[OrderExecutor] = None,
        position_sizing: Optional[PositionSizing] = None,
        risk_manager: Optional["RiskManager"] = None,
    ):
        """
        Initialize the strategy.

        Args:
            name: Registry name (defaults to the class name attribute)
            enabled: Whether the strategy takes part in runs
            params: Overrides merged over default_params
            order_executor: Venue adapter used by execute()
            position_sizing: Sizer; falls back to a fixed capital fraction
            risk_manager: Optional pre-trade risk gate
        """
        self.name = name or self.name
        merged = {
            "available_capital": config.engine.available_capital,
            "default_position_fraction": config.sizing.default_position_fraction,
        }
        merged.update(self.default_params)
        merged.update(params or {})
        self.config = StrategyConfig(enabled=enabled, params=merged)

        self.stats = StrategyStats()
        self.events = EventBus(self.name)
        self.executor = TradeExecutor(order_executor, self.name) if order_executor else None
        self.position_sizing = position_sizing
        self.risk_manager = risk_manager

        self._running = False
        self._cycle_active = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    @property
    def params(self) -> dict[str, Any]:
        return self.config.params

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self):
        if self._running:
            return
        self._running = True
        self.stats.started_at = datetime.now()
        self.on_start()
        logger.info(f"[{self.name}] Started")
        self.emit(StrategyEventType.STARTED)

    def stop(self):
        if not self._running:
            return
        self._running = False
        self.on_stop()
        logger.info(f"[{self.name}] Stopped")
        self.emit(StrategyEventType.STOPPED)

    def on_start(self):
        pass

    def on_stop(self):
        pass

    # ------------------------------------------------------------------
    # Contract
    # ------------------------------------------------------------------

    async def scan(self) -> list[Opportunity]:
        raise NotImplementedError

    async def execute(self, opportunity: Opportunity, size: Optional[float] = None) -> TradeResult:
        raise NotImplementedError

    async def run(self) -> CycleReport:
        """Run one scan/execute cycle."""
        return await run_strategy_cycle(self)

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    async def validate_opportunity(self, opportunity: Opportunity) -> bool:
        """Re-check an opportunity right before execution."""
        return opportunity.is_valid

    def filter_opportunities(self, opportunities: list[Opportunity]) -> list[Opportunity]:
        """Keep valid, profitable opportunities, best first (ties keep scan order)."""
        candidates = [o for o in opportunities if o.is_valid and o.expected_profit > 0]
        return sorted(candidates, key=lambda o: o.expected_profit, reverse=True)

    def position_size_params(self, opportunity: Opportunity) -> PositionSizeParams:
        return PositionSizeParams(
            capital=self.available_capital,
            win_probability=opportunity.confidence,
            odds=opportunity.expected_profit_percent / 100,
            price=opportunity.unit_cost,
        )

    def calculate_position_size(self, opportunity: Opportunity) -> float:
        params = self.position_size_params(opportunity)
        sizer = self.position_sizing or FixedRatioPositionSizing(
            fraction=self.params["default_position_fraction"]
        )
        return sizer.calculate(params)

    @property
    def available_capital(self) -> float:
        return float(self.params.get("available_capital", 0))

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def get_config(self) -> StrategyConfig:
        return StrategyConfig(enabled=self.config.enabled, params=dict(self.config.params))

    def update_config(self, enabled: Optional[bool] = None, params: Optional[dict[str, Any]] = None):
        if enabled is not None:
            self.config.enabled = enabled
        if params:
            self.config.params.update(params)
        logger.debug(f"[{self.name}] Config updated: enabled={self.config.enabled}")

    def get_stats(self) -> StrategyStats:
        return replace(self.stats)

    def set_position_sizing(self, sizing: Optional[PositionSizing]):
        self.position_sizing = sizing

    def set_risk_manager(self, risk_manager: Optional["RiskManager"]):
        self.risk_manager = risk_manager

    def set_order_executor(self, order_executor: Optional[OrderExecutor]):
        self.executor = TradeExecutor(order_executor, self.name) if order_executor else None

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def on_event(self, listener: Callable[[StrategyEvent], Any], kind: Optional[StrategyEventType] = None):
        """Subscribe to this strategy's events. Returns an unsubscribe function."""
        return self.events.subscribe(kind, listener)

    def emit(self, event_type: StrategyEventType, data: Optional[dict[str, Any]] = None):
        self.events.emit(StrategyEvent(type=event_type, strategy_name=self.name, data=data or {}))

    # ------------------------------------------------------------------
    # Helpers for subclasses
    # ------------------------------------------------------------------

    async def execute_legs(self, opportunity: Opportunity, size: Optional[float] = None) -> TradeResult:
        """Place the opportunity's legs through the configured executor."""
        if self.executor is None:
            opportunity.mark_failed()
            return TradeResult(success=False, error="No order executor configured")
        return await self.executor.execute_legs(opportunity, size)

    def record_trade(self, result: TradeResult):
        """Fold a successful trade into the running stats."""
        stats = self.stats
        stats.opportunities_executed += 1
        n = stats.opportunities_executed
        stats.total_pnl += result.total_profit

        prior_wins = round(stats.win_rate * (n - 1))
        wins = prior_wins + 1 if result.total_profit > 0 else prior_wins
        stats.win_rate = wins / n
        stats.avg_profit = stats.total_pnl / n

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.name} enabled={self.enabled} running={self.is_running}>"


async def run_strategy_cycle(strategy: Strategy) -> CycleReport:
    """
    Scan, filter, validate, size, gate and execute for one strategy.

    Opportunities are handled one at a time. A failure on one opportunity
    is reported as an ERROR event and the loop moves on.

    Args:
        strategy: Strategy to run

    Returns:
        CycleReport; never raises
    """
    report = CycleReport(strategy=strategy.name)

    if not strategy.enabled or not strategy.is_running:
        report.skipped = True
        return report

    if strategy._cycle_active:
        logger.debug(f"[{strategy.name}] Previous cycle still in flight, skipping")
        report.skipped = True
        return report

    strategy._cycle_active = True
    try:
        strategy.stats.run_count += 1
        strategy.stats.last_run_at = datetime.now()

        try:
            opportunities = await strategy.scan()
        except Exception as e:
            logger.exception(f"[{strategy.name}] Scan failed: {e}")
            strategy.emit(StrategyEventType.ERROR, {"error": str(e)})
            report.error = str(e)
            return report

        if not opportunities:
            return report

        strategy.stats.opportunities_found += len(opportunities)
        report.opportunities = len(opportunities)

        for opportunity in strategy.filter_opportunities(opportunities):
            if not strategy.enabled or not strategy.is_running:
                logger.debug(f"[{strategy.name}] Stopped mid-cycle")
                break

            try:
                if await _process_opportunity(strategy, opportunity):
                    report.executed += 1
            except Exception as e:
                logger.exception(f"[{strategy.name}] Error on {opportunity.id}: {e}")
                if opportunity.status in (OpportunityStatus.PENDING, OpportunityStatus.EXECUTING):
                    opportunity.mark_failed()
                report.errors += 1
                strategy.emit(StrategyEventType.ERROR, {"opportunity": opportunity, "error": str(e)})
    except Exception as e:
        logger.exception(f"[{strategy.name}] Cycle failed: {e}")
        strategy.emit(StrategyEventType.ERROR, {"error": str(e)})
        report.error = str(e)
    finally:
        strategy._cycle_active = False

    return report


async def _process_opportunity(strategy: Strategy, opportunity: Opportunity) -> bool:
    """Returns True when the opportunity was executed successfully."""
    if not await strategy.validate_opportunity(opportunity):
        if opportunity.status == OpportunityStatus.PENDING:
            if opportunity.is_expired:
                opportunity.mark_expired()
            else:
                opportunity.mark_skipped()
        logger.debug(f"[{strategy.name}] {opportunity.id} no longer valid, skipping")
        return False

    size = strategy.calculate_position_size(opportunity)
    if size <= 0:
        opportunity.mark_skipped()
        logger.debug(f"[{strategy.name}] {opportunity.id} sized to zero, skipping")
        return False

    if strategy.risk_manager is not None:
        check = strategy.risk_manager.check_all_limits(
            size, opportunity.unit_cost, opportunity.market_ids[0]
        )
        if not check.passed:
            opportunity.mark_skipped()
            logger.info(f"[{strategy.name}] {opportunity.id} blocked by risk check: {check.reason}")
            return False

    strategy.emit(StrategyEventType.OPPORTUNITY_FOUND, {"opportunity": opportunity, "size": size})

    result = await strategy.execute(opportunity, size)
    if not result.success:
        logger.warning(f"[{strategy.name}] {opportunity.id} execution failed: {result.error}")
        return False

    strategy.record_trade(result)
    logger.info(f"[{strategy.name}] Executed {opportunity} size={size:.0f} pnl=${result.total_profit:.2f}")
    strategy.emit(
        StrategyEventType.TRADE_EXECUTED,
        {"opportunity": opportunity, "result": result, "size": size},
    )
    return True
