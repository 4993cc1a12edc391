"""
Risk Manager

Portfolio-level risk controls and per-position exits.
Enforces trading limits to prevent catastrophic losses.

Portfolio value is account equity: starting capital plus the PnL of closed
positions plus the total PnL of the positions passed to evaluate_risk().

Running state:
- Peak portfolio value (high-water mark, never decreases)
- Current and maximum drawdown from that peak
- Daily PnL, reset when the calendar day changes
- Exposure totals from the last evaluate_risk() call

None of these are locked. Every method is synchronous, so on a single
event loop each call runs to completion; the position-monitor job is the
only writer of the aggregates.
"""

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Any, Callable, Optional

from ..config import config as app_config
from ..models.events import EventBus, RiskAlert, RiskAlertLevel, RiskAlertType
from ..models.position import Position
from ..monitoring.logger import get_logger
from .config import RiskLimits, default_limits
from .exits import (
    PositionRiskSettings,
    StopLossConfig,
    StopLossHandler,
    StopLossKind,
    TakeProfitConfig,
    TakeProfitHandler,
)

logger = get_logger("risk_manager")


@dataclass
class RiskCheckResult:
    """Outcome of a pre-trade gate. Gates reject; they never resize a trade."""
    passed: bool
    reason: Optional[str] = None
    metrics: dict[str, float] = field(default_factory=dict)


@dataclass
class RiskMetrics:
    """Snapshot recomputed on every evaluate_risk() call."""
    total_exposure: float
    max_position_size: float
    current_drawdown: float
    max_drawdown: float
    drawdown_percent: float
    position_count: int
    unrealized_pnl: float
    realized_pnl: float
    total_pnl: float
    risk_score: int
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        return {
            "total_exposure": round(self.total_exposure, 2),
            "max_position_size": round(self.max_position_size, 2),
            "current_drawdown": round(self.current_drawdown, 2),
            "max_drawdown": round(self.max_drawdown, 2),
            "drawdown_percent": round(self.drawdown_percent, 2),
            "position_count": self.position_count,
            "unrealized_pnl": round(self.unrealized_pnl, 2),
            "realized_pnl": round(self.realized_pnl, 2),
            "total_pnl": round(self.total_pnl, 2),
            "risk_score": self.risk_score,
            "timestamp": self.timestamp.isoformat(),
        }


class RiskManager:
    """
    Enforces portfolio-level risk limits.

    Checks performed before any trade:
    - Position value limit
    - Total and per-market exposure limits
    - Position count limit
    - Maximum drawdown
    - Daily loss limit
    """

    def __init__(
        self,
        limits: Optional[RiskLimits] = None,
        initial_capital: Optional[float] = None,
        **overrides,
    ):
        """
        Initialize the risk manager.

        Args:
            limits: Full limits snapshot (default from environment)
            initial_capital: Starting equity (default AVAILABLE_CAPITAL)
            **overrides: Individual RiskLimits fields to override
        """
        base = limits or default_limits
        self.limits = replace(base, **overrides) if overrides else replace(base)
        self.initial_capital = app_config.engine.available_capital if initial_capital is None else initial_capital

        self.stop_loss_handler = StopLossHandler()
        self.take_profit_handler = TakeProfitHandler()
        self.events = EventBus("RiskManager")

        self._settings: dict[str, PositionRiskSettings] = {}

        # Tracking state
        self.peak_portfolio_value = 0.0
        self.current_drawdown = 0.0
        self.max_drawdown = 0.0
        self.daily_pnl = 0.0
        self.closed_pnl = 0.0
        self._last_daily_reset: date = date.today()

        # From the last evaluate_risk()
        self._total_exposure = 0.0
        self._market_exposure: dict[str, float] = {}
        self._position_count = 0
        self._last_metrics: Optional[RiskMetrics] = None

    # ==================== Limit Checks ====================

    def check_position_limit(self, size: float, price: float) -> RiskCheckResult:
        position_value = size * price
        if position_value > self.limits.max_position_size:
            return RiskCheckResult(
                passed=False,
                reason=f"Position value ${position_value:.2f} exceeds limit ${self.limits.max_position_size:.2f}",
                metrics={"position_value": position_value},
            )
        return RiskCheckResult(passed=True, metrics={"position_value": position_value})

    def check_exposure_limit(self, additional_exposure: float) -> RiskCheckResult:
        projected = self._total_exposure + additional_exposure
        if projected > self.limits.max_total_exposure:
            return RiskCheckResult(
                passed=False,
                reason=f"Total exposure ${projected:.2f} exceeds limit ${self.limits.max_total_exposure:.2f}",
                metrics={"current_exposure": self._total_exposure, "projected_exposure": projected},
            )
        return RiskCheckResult(passed=True, metrics={"projected_exposure": projected})

    def check_market_exposure(self, market_id: str, additional_exposure: float) -> RiskCheckResult:
        current = self._market_exposure.get(market_id, 0.0)
        projected = current + additional_exposure
        if projected > self.limits.max_per_market_exposure:
            return RiskCheckResult(
                passed=False,
                reason=f"Market {market_id} exposure ${projected:.2f} exceeds limit "
                       f"${self.limits.max_per_market_exposure:.2f}",
                metrics={"market_exposure": current, "projected_exposure": projected},
            )
        return RiskCheckResult(passed=True, metrics={"projected_exposure": projected})

    def check_position_count(self) -> RiskCheckResult:
        if self._position_count >= self.limits.max_positions:
            return RiskCheckResult(
                passed=False,
                reason=f"Max open positions reached ({self._position_count}/{self.limits.max_positions})",
                metrics={"position_count": self._position_count},
            )
        return RiskCheckResult(passed=True, metrics={"position_count": self._position_count})

    def check_drawdown(self) -> RiskCheckResult:
        drawdown_percent = self.drawdown_percent
        if drawdown_percent > self.limits.max_drawdown_percent:
            return RiskCheckResult(
                passed=False,
                reason=f"Drawdown {drawdown_percent:.2f}% exceeds limit {self.limits.max_drawdown_percent}%",
                metrics={"drawdown_percent": drawdown_percent, "current_drawdown": self.current_drawdown},
            )
        return RiskCheckResult(passed=True, metrics={"drawdown_percent": drawdown_percent})

    def check_daily_loss(self) -> RiskCheckResult:
        self._check_daily_reset()
        if self.daily_pnl < -self.limits.daily_loss_limit:
            return RiskCheckResult(
                passed=False,
                reason=f"Daily loss ${abs(self.daily_pnl):.2f} exceeds limit ${self.limits.daily_loss_limit:.2f}",
                metrics={"daily_pnl": self.daily_pnl},
            )
        return RiskCheckResult(passed=True, metrics={"daily_pnl": self.daily_pnl})

    def check_all_limits(self, size: float, price: float, market_id: Optional[str] = None) -> RiskCheckResult:
        """
        Run every pre-trade gate; the first failure wins.

        Args:
            size: Shares to trade
            price: Capital at risk per share
            market_id: Market for the per-market exposure check

        Returns:
            RiskCheckResult
        """
        value = size * price
        checks = [
            lambda: self.check_position_limit(size, price),
            lambda: self.check_exposure_limit(value),
            lambda: self.check_market_exposure(market_id, value) if market_id else RiskCheckResult(passed=True),
            self.check_position_count,
            self.check_drawdown,
            self.check_daily_loss,
        ]
        for check in checks:
            result = check()
            if not result.passed:
                logger.debug(f"[RiskManager] Trade blocked: {result.reason}")
                return result
        return RiskCheckResult(passed=True, metrics={"position_value": value})

    # ==================== Risk Evaluation ====================

    @property
    def last_metrics(self) -> Optional[RiskMetrics]:
        return self._last_metrics

    @property
    def drawdown_percent(self) -> float:
        if self.peak_portfolio_value <= 0:
            return 0.0
        return self.current_drawdown / self.peak_portfolio_value * 100

    def update_portfolio_value(self, portfolio_value: float) -> float:
        """
        Feed a portfolio value into the high-water mark.

        Returns:
            Current drawdown percent
        """
        if portfolio_value > self.peak_portfolio_value:
            self.peak_portfolio_value = portfolio_value
        self.current_drawdown = self.peak_portfolio_value - portfolio_value
        self.max_drawdown = max(self.max_drawdown, self.current_drawdown)
        return self.drawdown_percent

    def evaluate_risk(self, positions: list[Position]) -> RiskMetrics:
        """
        Recompute aggregate metrics from the current positions.

        Args:
            positions: Open positions
        """
        self._check_daily_reset()

        total_exposure = 0.0
        max_position = 0.0
        unrealized = 0.0
        realized = 0.0
        by_market: dict[str, float] = {}

        for position in positions:
            value = position.current_value
            total_exposure += value
            max_position = max(max_position, value)
            unrealized += position.unrealized_pnl
            realized += position.realized_pnl
            by_market[position.market_id] = by_market.get(position.market_id, 0.0) + value

        realized += self.closed_pnl
        self.update_portfolio_value(self.initial_capital + realized + unrealized)

        self._total_exposure = total_exposure
        self._market_exposure = by_market
        self._position_count = len(positions)

        metrics = RiskMetrics(
            total_exposure=total_exposure,
            max_position_size=max_position,
            current_drawdown=self.current_drawdown,
            max_drawdown=self.max_drawdown,
            drawdown_percent=self.drawdown_percent,
            position_count=len(positions),
            unrealized_pnl=unrealized,
            realized_pnl=realized,
            total_pnl=unrealized + realized,
            risk_score=self._calculate_risk_score(total_exposure, max_position, len(positions)),
        )
        self._last_metrics = metrics
        return metrics

    def _calculate_risk_score(self, total_exposure: float, max_position: float, position_count: int) -> int:
        """Composite 0-100 score; each term is capped before summing."""
        limits = self.limits
        score = 0.0

        # Exposure utilization (0-30 points)
        score += min(30.0, total_exposure / limits.max_total_exposure * 30)

        # Position concentration (0-20 points)
        if total_exposure > 0:
            score += min(20.0, max_position / total_exposure * 20)

        # Drawdown severity (0-30 points)
        score += min(30.0, self.drawdown_percent / limits.max_drawdown_percent * 30)

        # Position count utilization (0-10 points)
        score += min(10.0, position_count / limits.max_positions * 10)

        # Daily loss severity (0-10 points)
        if self.daily_pnl < 0:
            if limits.daily_loss_limit > 0:
                score += min(10.0, abs(self.daily_pnl) / limits.daily_loss_limit * 10)
            else:
                score += 10.0

        return round(min(100.0, score))

    def evaluate_position(self, position: Position) -> RiskCheckResult:
        """Check one position against the size limit and the drawdown limit."""
        value = position.current_value
        if value > self.limits.max_position_size:
            return RiskCheckResult(
                passed=False,
                reason=f"Position value ${value:.2f} exceeds limit ${self.limits.max_position_size:.2f}",
                metrics={"position_value": value},
            )

        loss_percent = position.unrealized_pnl_percent
        if loss_percent < -self.limits.max_drawdown_percent:
            return RiskCheckResult(
                passed=False,
                reason=f"Position loss {abs(loss_percent):.2f}% exceeds limit {self.limits.max_drawdown_percent}%",
                metrics={"loss_percent": loss_percent},
            )
        return RiskCheckResult(passed=True, metrics={"position_value": value})

    # ==================== Stop-Loss / Take-Profit ====================

    def _settings_for(self, position_id: str) -> PositionRiskSettings:
        settings = self._settings.get(position_id)
        if settings is None:
            settings = PositionRiskSettings(position_id=position_id)
            self._settings[position_id] = settings
        return settings

    def set_stop_loss(self, position_id: str, config: StopLossConfig):
        settings = self._settings_for(position_id)
        settings.stop_loss = config
        settings.updated_at = datetime.now()
        logger.info(f"[RiskManager] Stop-loss set for {position_id}: {config.kind.value} @ {config.value}")

    def set_take_profit(self, position_id: str, config: TakeProfitConfig):
        settings = self._settings_for(position_id)
        settings.take_profit = config
        settings.updated_at = datetime.now()
        logger.info(f"[RiskManager] Take-profit set for {position_id}: {config.kind.value} @ {config.value}")

    def get_position_risk_settings(self, position_id: str) -> Optional[PositionRiskSettings]:
        return self._settings.get(position_id)

    def remove_position_risk_settings(self, position_id: str) -> bool:
        return self._settings.pop(position_id, None) is not None

    def check_stop_loss(self, position: Position) -> bool:
        """Ratchet a trailing stop first, then evaluate."""
        settings = self._settings.get(position.id)
        if settings is None or settings.stop_loss is None:
            return False

        if settings.stop_loss.kind == StopLossKind.TRAILING:
            updated = self.stop_loss_handler.update_trailing_stop(position, settings.stop_loss)
            if updated is not settings.stop_loss:
                settings.stop_loss = updated
                settings.updated_at = datetime.now()

        return self.stop_loss_handler.evaluate(position, settings.stop_loss)

    def check_take_profit(self, position: Position) -> bool:
        settings = self._settings.get(position.id)
        if settings is None or settings.take_profit is None:
            return False
        return self.take_profit_handler.evaluate(position, settings.take_profit)

    def evaluate_all_positions(self, positions: list[Position]) -> list[RiskAlert]:
        """
        One risk cycle: refresh metrics, then raise portfolio and per-position alerts.

        Only emits alerts. Closing or reducing positions is left to the
        consumers of the alert stream.
        """
        alerts: list[RiskAlert] = []
        metrics = self.evaluate_risk(positions)
        limits = self.limits

        # Drawdown
        if metrics.drawdown_percent >= limits.max_drawdown_percent:
            alerts.append(RiskAlert(
                type=RiskAlertType.DRAWDOWN_WARNING,
                level=RiskAlertLevel.CRITICAL,
                message=f"Portfolio drawdown {metrics.drawdown_percent:.2f}% exceeds limit "
                        f"{limits.max_drawdown_percent}%",
                current_value=metrics.drawdown_percent,
                threshold=limits.max_drawdown_percent,
            ))
        elif metrics.drawdown_percent >= limits.max_drawdown_percent * limits.drawdown_warning_ratio:
            alerts.append(RiskAlert(
                type=RiskAlertType.DRAWDOWN_WARNING,
                level=RiskAlertLevel.WARNING,
                message=f"Portfolio drawdown {metrics.drawdown_percent:.2f}% approaching limit "
                        f"{limits.max_drawdown_percent}%",
                current_value=metrics.drawdown_percent,
                threshold=limits.max_drawdown_percent * limits.drawdown_warning_ratio,
            ))

        # Position count
        if metrics.position_count >= limits.max_positions:
            alerts.append(RiskAlert(
                type=RiskAlertType.POSITION_LIMIT_WARNING,
                level=RiskAlertLevel.WARNING,
                message=f"Position count {metrics.position_count} at limit {limits.max_positions}",
                current_value=metrics.position_count,
                threshold=limits.max_positions,
            ))

        # Total exposure
        exposure_threshold = limits.max_total_exposure * limits.exposure_warning_ratio
        if metrics.total_exposure >= exposure_threshold:
            alerts.append(RiskAlert(
                type=RiskAlertType.EXPOSURE_LIMIT_WARNING,
                level=RiskAlertLevel.WARNING,
                message=f"Total exposure ${metrics.total_exposure:.2f} approaching limit "
                        f"${limits.max_total_exposure:.2f}",
                current_value=metrics.total_exposure,
                threshold=exposure_threshold,
            ))

        # Individual positions
        for position in positions:
            data = {"current_price": position.current_price, "unrealized_pnl": position.unrealized_pnl}

            if self.check_stop_loss(position):
                alerts.append(RiskAlert(
                    type=RiskAlertType.STOP_LOSS_TRIGGERED,
                    level=RiskAlertLevel.CRITICAL,
                    message=f"Stop-loss triggered for {position.id} at price {position.current_price:.4f}",
                    position_id=position.id,
                    market_id=position.market_id,
                    current_value=position.current_price,
                    data=data,
                ))

            if self.check_take_profit(position):
                settings = self._settings[position.id]
                alerts.append(RiskAlert(
                    type=RiskAlertType.TAKE_PROFIT_TRIGGERED,
                    level=RiskAlertLevel.INFO,
                    message=f"Take-profit triggered for {position.id} at price {position.current_price:.4f}",
                    position_id=position.id,
                    market_id=position.market_id,
                    current_value=position.current_price,
                    data={
                        **data,
                        "close_size": self.take_profit_handler.close_size(position, settings.take_profit),
                    },
                ))

        for alert in alerts:
            self._emit_alert(alert)

        return alerts

    # ==================== Daily PnL ====================

    def _check_daily_reset(self):
        today = date.today()
        last = self._last_daily_reset
        if (today.year, today.month, today.day) != (last.year, last.month, last.day):
            self.daily_pnl = 0.0
            self._last_daily_reset = today
            logger.info("[RiskManager] Daily PnL reset")

    def update_daily_pnl(self, pnl: float):
        self._check_daily_reset()
        self.daily_pnl += pnl

    def record_closed_position(self, position: Position):
        """Fold a fully closed position's realized PnL into equity and drop its exit rules."""
        self.closed_pnl += position.realized_pnl
        self.remove_position_risk_settings(position.id)

    # ==================== Limit Configuration ====================

    def set_limits(self, limits: Optional[RiskLimits] = None, **overrides):
        """
        Replace limits wholesale, merge individual fields, or both.

        Raises:
            TypeError: Unknown limit field
            AssertionError: Invalid limit value
        """
        new_limits = limits if limits is not None else self.limits
        self.limits = replace(new_limits, **overrides)
        logger.info(f"[RiskManager] Risk limits updated: {self.limits.to_dict()}")

    def get_limits(self) -> RiskLimits:
        return replace(self.limits)

    # ==================== Events ====================

    def on_risk_alert(self, callback: Callable[[RiskAlert], Any]) -> Callable[[], None]:
        """Subscribe to risk alerts. Returns an unsubscribe function."""
        return self.events.subscribe(None, callback)

    def _emit_alert(self, alert: RiskAlert):
        logger.warning(f"[RiskManager] {alert.level.value.upper()}: {alert.message}")
        self.events.emit(alert)

    # ==================== Summary ====================

    def get_risk_summary(self) -> dict:
        """Get summary of current risk state."""
        self._check_daily_reset()
        return {
            "peak_portfolio_value": round(self.peak_portfolio_value, 2),
            "current_drawdown": round(self.current_drawdown, 2),
            "max_drawdown": round(self.max_drawdown, 2),
            "drawdown_pct": round(self.drawdown_percent, 2),
            "total_exposure": round(self._total_exposure, 2),
            "open_positions": self._position_count,
            "max_positions": self.limits.max_positions,
            "closed_pnl": round(self.closed_pnl, 2),
            "daily_pnl": round(self.daily_pnl, 2),
            "daily_loss_limit": self.limits.daily_loss_limit,
            "risk_score": self._last_metrics.risk_score if self._last_metrics else 0,
            "positions_with_exits": len(self._settings),
        }
