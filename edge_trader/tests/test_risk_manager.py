"""
Tests for portfolio risk gates, risk evaluation and per-position exits.
"""

import pytest
from datetime import date, timedelta

from edge_trader.models import Position, RiskAlertLevel, RiskAlertType, Side
from edge_trader.trading import (
    RiskLimits,
    RiskManager,
    StopLossConfig,
    StopLossHandler,
    TakeProfitConfig,
    TakeProfitHandler,
)


def _position(pid="p1", market_id="m1", side=Side.BUY, size=100, entry=0.5, current=0.5):
    return Position(
        id=pid, market_id=market_id, token_id=f"tok-{pid}", side=side,
        size=size, avg_entry_price=entry, current_price=current,
    )


@pytest.fixture
def limits():
    return RiskLimits(
        max_position_size=1000,
        max_positions=10,
        max_total_exposure=10000,
        max_per_market_exposure=2000,
        max_drawdown_percent=10.0,
        daily_loss_limit=500,
        drawdown_warning_ratio=0.8,
        exposure_warning_ratio=0.9,
    )


@pytest.fixture
def risk_manager(limits):
    return RiskManager(limits, initial_capital=1000)


class TestRiskGates:
    """Tests for the pre-trade checks."""

    def test_position_limit(self, risk_manager):
        assert risk_manager.check_position_limit(2000, 0.5).passed

        result = risk_manager.check_position_limit(3000, 0.5)

        assert not result.passed
        assert result.reason == "Position value $1500.00 exceeds limit $1000.00"

    def test_exposure_limit_uses_last_evaluation(self, risk_manager):
        risk_manager.evaluate_risk([_position(size=19000, current=0.5)])

        assert risk_manager.check_exposure_limit(400).passed
        result = risk_manager.check_exposure_limit(600)
        assert not result.passed
        assert result.metrics["projected_exposure"] == pytest.approx(10100)

    def test_market_exposure(self, risk_manager):
        risk_manager.evaluate_risk([_position(market_id="m1", size=3800, current=0.5)])

        assert not risk_manager.check_market_exposure("m1", 200).passed
        assert risk_manager.check_market_exposure("m2", 200).passed

    def test_position_count(self, limits):
        manager = RiskManager(limits, initial_capital=1000, max_positions=2)
        manager.evaluate_risk([_position("a"), _position("b")])

        result = manager.check_position_count()

        assert not result.passed
        assert "2/2" in result.reason

    def test_drawdown_gate(self, risk_manager):
        """Peak 1000 falling to 850 is a 15% drawdown against a 10% limit."""
        risk_manager.update_portfolio_value(1000)
        risk_manager.update_portfolio_value(850)

        result = risk_manager.check_drawdown()

        assert not result.passed
        assert result.reason == "Drawdown 15.00% exceeds limit 10.0%"

    def test_drawdown_at_limit_passes(self, risk_manager):
        risk_manager.update_portfolio_value(1000)
        risk_manager.update_portfolio_value(900)

        assert risk_manager.check_drawdown().passed

    def test_daily_loss(self, risk_manager):
        risk_manager.update_daily_pnl(-600)

        result = risk_manager.check_daily_loss()

        assert not result.passed
        assert result.reason == "Daily loss $600.00 exceeds limit $500.00"

    def test_daily_loss_resets_on_new_day(self, risk_manager):
        risk_manager.update_daily_pnl(-600)
        risk_manager._last_daily_reset = date.today() - timedelta(days=1)

        assert risk_manager.check_daily_loss().passed
        assert risk_manager.daily_pnl == 0.0

    def test_check_all_first_failure_wins(self, risk_manager):
        risk_manager.update_daily_pnl(-600)

        result = risk_manager.check_all_limits(3000, 0.5, "m1")

        assert not result.passed
        assert result.reason.startswith("Position value")

    def test_check_all_passes(self, risk_manager):
        result = risk_manager.check_all_limits(100, 0.5, "m1")

        assert result.passed
        assert result.metrics["position_value"] == pytest.approx(50)


class TestRiskEvaluation:
    """Tests for equity tracking, metrics and the risk score."""

    def test_equity_includes_open_pnl(self, risk_manager):
        risk_manager.evaluate_risk([])
        assert risk_manager.peak_portfolio_value == 1000

        metrics = risk_manager.evaluate_risk([_position(size=1000, entry=0.5, current=0.35)])

        assert metrics.unrealized_pnl == pytest.approx(-150)
        assert metrics.drawdown_percent == pytest.approx(15.0)
        assert not risk_manager.check_drawdown().passed

    def test_peak_never_decreases(self, risk_manager):
        risk_manager.evaluate_risk([_position(current=0.7)])
        risk_manager.evaluate_risk([_position(current=0.4)])

        assert risk_manager.peak_portfolio_value == pytest.approx(1020)
        assert risk_manager.current_drawdown == pytest.approx(30)
        assert risk_manager.max_drawdown == pytest.approx(30)

    def test_closed_pnl_counts_toward_equity(self, risk_manager):
        closed = _position()
        closed.reduce_position(100, 1.0)
        risk_manager.set_stop_loss(closed.id, StopLossConfig.percentage(10))

        risk_manager.record_closed_position(closed)
        risk_manager.evaluate_risk([])

        assert risk_manager.closed_pnl == pytest.approx(50)
        assert risk_manager.peak_portfolio_value == pytest.approx(1050)
        assert risk_manager.get_position_risk_settings(closed.id) is None

    def test_metrics(self, risk_manager):
        positions = [
            _position("a", market_id="m1", size=200, current=0.6),
            _position("b", market_id="m2", size=100, current=0.4),
        ]

        metrics = risk_manager.evaluate_risk(positions)

        assert metrics.total_exposure == pytest.approx(160)
        assert metrics.max_position_size == pytest.approx(120)
        assert metrics.position_count == 2
        assert metrics.unrealized_pnl == pytest.approx(10)
        assert risk_manager.last_metrics is metrics
        assert metrics.to_dict()["total_exposure"] == 160

    def test_risk_score(self, risk_manager):
        """One 1000 position: exposure 3 + concentration 20 + count 1."""
        metrics = risk_manager.evaluate_risk([_position(size=2000, current=0.5)])
        assert metrics.risk_score == 24

    def test_risk_score_capped(self, limits):
        manager = RiskManager(limits, initial_capital=1000, max_positions=1, max_total_exposure=100)
        manager.update_daily_pnl(-5000)
        manager.update_portfolio_value(10000)

        metrics = manager.evaluate_risk([_position(size=1000, current=0.5)])

        assert metrics.risk_score == 100

    def test_evaluate_position(self, risk_manager):
        assert risk_manager.evaluate_position(_position()).passed

        result = risk_manager.evaluate_position(_position(entry=0.5, current=0.4))
        assert not result.passed
        assert result.reason == "Position loss 20.00% exceeds limit 10.0%"

        assert not risk_manager.evaluate_position(_position(size=5000, current=0.5)).passed

    def test_summary(self, risk_manager):
        risk_manager.evaluate_risk([_position()])

        summary = risk_manager.get_risk_summary()

        assert summary["open_positions"] == 1
        assert summary["peak_portfolio_value"] == 1000
        assert summary["risk_score"] == 21


class TestRiskAlerts:
    """Tests for evaluate_all_positions and alert subscriptions."""

    def test_drawdown_warning_then_critical(self, risk_manager):
        risk_manager.evaluate_risk([])

        warning = risk_manager.evaluate_all_positions([_position(size=1000, current=0.415)])
        critical = risk_manager.evaluate_all_positions([_position(size=1000, current=0.39)])

        assert [(a.type, a.level) for a in warning] == [
            (RiskAlertType.DRAWDOWN_WARNING, RiskAlertLevel.WARNING)
        ]
        assert [(a.type, a.level) for a in critical] == [
            (RiskAlertType.DRAWDOWN_WARNING, RiskAlertLevel.CRITICAL)
        ]

    def test_position_count_and_exposure(self, limits):
        manager = RiskManager(limits, initial_capital=1000, max_positions=2, max_total_exposure=1000)

        alerts = manager.evaluate_all_positions([
            _position("a", size=1000, current=0.5),
            _position("b", size=900, current=0.5),
        ])

        types = {a.type for a in alerts}
        assert RiskAlertType.POSITION_LIMIT_WARNING in types
        assert RiskAlertType.EXPOSURE_LIMIT_WARNING in types

    def test_stop_loss_alert(self, risk_manager):
        position = _position(entry=0.5, current=0.44)
        risk_manager.set_stop_loss(position.id, StopLossConfig.percentage(10))
        received = []
        risk_manager.on_risk_alert(received.append)

        alerts = risk_manager.evaluate_all_positions([position])

        assert len(alerts) == 1
        alert = alerts[0]
        assert alert.type == RiskAlertType.STOP_LOSS_TRIGGERED
        assert alert.is_critical
        assert alert.position_id == "p1"
        assert received == alerts

    def test_partial_take_profit_alert(self, risk_manager):
        position = _position(entry=0.5, current=0.6)
        risk_manager.set_take_profit(position.id, TakeProfitConfig.partial(10, 50))

        alerts = risk_manager.evaluate_all_positions([position])

        assert alerts[0].type == RiskAlertType.TAKE_PROFIT_TRIGGERED
        assert alerts[0].level == RiskAlertLevel.INFO
        assert alerts[0].data["close_size"] == 50

    def test_quiet_portfolio(self, risk_manager):
        assert risk_manager.evaluate_all_positions([_position()]) == []

    def test_unsubscribe(self, risk_manager):
        position = _position(current=0.4)
        risk_manager.set_stop_loss(position.id, StopLossConfig.fixed(0.45))
        received = []
        unsubscribe = risk_manager.on_risk_alert(received.append)

        unsubscribe()
        risk_manager.evaluate_all_positions([position])

        assert received == []

    def test_failing_subscriber_isolated(self, risk_manager):
        position = _position(current=0.4)
        risk_manager.set_stop_loss(position.id, StopLossConfig.fixed(0.45))
        received = []

        def broken(alert):
            raise RuntimeError("sink down")

        risk_manager.on_risk_alert(broken)
        risk_manager.on_risk_alert(received.append)

        risk_manager.evaluate_all_positions([position])

        assert len(received) == 1


class TestLimitsConfiguration:
    """Tests for runtime limit changes."""

    def test_merge_fields(self, risk_manager):
        risk_manager.set_limits(max_positions=3)

        assert risk_manager.limits.max_positions == 3
        assert risk_manager.limits.max_drawdown_percent == 10

    def test_replace_wholesale(self, risk_manager, limits):
        new_limits = RiskLimits(
            max_position_size=50, max_positions=1, max_total_exposure=100,
            max_per_market_exposure=100, max_drawdown_percent=5, daily_loss_limit=10,
        )

        risk_manager.set_limits(new_limits)

        assert not risk_manager.check_position_limit(200, 0.5).passed

    def test_invalid_limits(self, risk_manager):
        with pytest.raises(AssertionError):
            risk_manager.set_limits(max_positions=0)
        with pytest.raises(TypeError):
            risk_manager.set_limits(unknown_limit=1)

    def test_get_limits_is_a_copy(self, risk_manager):
        copy = risk_manager.get_limits()
        copy.max_positions = 99

        assert risk_manager.limits.max_positions == 10

    def test_overrides_do_not_touch_shared_limits(self, limits):
        RiskManager(limits, max_positions=1)
        assert limits.max_positions == 10


class TestExits:
    """Tests for stop-loss and take-profit handlers."""

    @pytest.fixture
    def stop_loss(self):
        return StopLossHandler()

    @pytest.fixture
    def take_profit(self):
        return TakeProfitHandler()

    def test_percentage_stop_long_and_short(self, stop_loss):
        config = StopLossConfig.percentage(10)
        long_position = _position(current=0.44)
        short_position = _position(side=Side.SELL, current=0.56)

        assert stop_loss.calculate_trigger_price(long_position, config) == pytest.approx(0.45)
        assert stop_loss.evaluate(long_position, config)
        assert stop_loss.calculate_trigger_price(short_position, config) == pytest.approx(0.55)
        assert stop_loss.evaluate(short_position, config)

    def test_inactive_stop(self, stop_loss):
        config = StopLossConfig.fixed(0.45)
        config.activated = False
        assert not stop_loss.evaluate(_position(current=0.1), config)

    def test_trailing_stop_only_tightens(self, stop_loss):
        position = _position(current=0.5)
        config = StopLossConfig.trailing(10)

        config = stop_loss.update_trailing_stop(position, config)
        assert config.trigger_price == pytest.approx(0.45)

        position.update_price(0.6)
        config = stop_loss.update_trailing_stop(position, config)
        assert config.trigger_price == pytest.approx(0.54)

        position.update_price(0.55)
        unchanged = stop_loss.update_trailing_stop(position, config)
        assert unchanged is config
        assert not stop_loss.evaluate(position, config)

        position.update_price(0.53)
        assert stop_loss.evaluate(position, config)

    def test_trailing_stop_short(self, stop_loss):
        position = _position(side=Side.SELL, current=0.5)
        config = stop_loss.update_trailing_stop(position, StopLossConfig.trailing(10))

        position.update_price(0.4)
        config = stop_loss.update_trailing_stop(position, config)
        position.update_price(0.45)
        config = stop_loss.update_trailing_stop(position, config)

        assert config.trigger_price == pytest.approx(0.44)
        assert stop_loss.evaluate(position, config)

    def test_risk_manager_ratchets_trailing_stop(self, risk_manager):
        position = _position(current=0.5)
        risk_manager.set_stop_loss(position.id, StopLossConfig.trailing(10))

        position.update_price(0.6)
        risk_manager.check_stop_loss(position)
        position.update_price(0.55)
        risk_manager.check_stop_loss(position)

        settings = risk_manager.get_position_risk_settings(position.id)
        assert settings.stop_loss.trigger_price == pytest.approx(0.54)

    def test_take_profit(self, take_profit):
        config = TakeProfitConfig.percentage(20)

        assert take_profit.evaluate(_position(current=0.61), config)
        assert not take_profit.evaluate(_position(current=0.59), config)
        assert take_profit.evaluate(_position(side=Side.SELL, current=0.39), config)

    def test_partial_close_size(self, take_profit):
        config = TakeProfitConfig.partial(10, 25)
        assert take_profit.close_size(_position(size=101), config) == 25
        assert take_profit.close_size(_position(size=101), TakeProfitConfig.percentage(10)) == 101

    def test_invalid_configs(self):
        with pytest.raises(ValueError):
            StopLossConfig.percentage(-1)
        with pytest.raises(ValueError):
            TakeProfitConfig.partial(10, 150)
