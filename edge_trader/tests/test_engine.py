"""
Tests for the trading engine wiring and the scheduler jobs.
"""

import pytest
from unittest.mock import MagicMock, AsyncMock

from edge_trader.interfaces import OrderResult
from edge_trader.main import TradingEngine
from edge_trader.models import (
    BinaryMarket,
    OddsOutcome,
    OrderBook,
    OrderBookLevel,
    Position,
    RiskAlertType,
    Side,
    StrategyEventType,
)
from edge_trader.scheduler import TradingScheduler
from edge_trader.trading import ExitReason, RiskLimits, StopLossConfig


@pytest.fixture
def limits():
    return RiskLimits(
        max_position_size=1000,
        max_positions=10,
        max_total_exposure=10000,
        max_per_market_exposure=2000,
        max_drawdown_percent=50.0,
        daily_loss_limit=500,
    )


@pytest.fixture
def alerts():
    manager = MagicMock()
    manager.handle_strategy_event = AsyncMock(return_value=None)
    manager.risk_alert = AsyncMock(return_value=True)
    manager.strategy_error = AsyncMock(return_value=True)
    manager.daily_summary = AsyncMock(return_value=True)
    manager.close = AsyncMock()
    return manager


@pytest.fixture
def market_data():
    market = BinaryMarket("m1", "Will it rain tomorrow?", "yes", "no", yes_price=0.45, no_price=0.50)
    asks = {"yes": 0.45, "no": 0.50}
    prices = {"yes": 0.45, "no": 0.50}

    source = MagicMock()
    source.get_binary_markets = AsyncMock(return_value=[market])
    source.get_order_book = AsyncMock(
        side_effect=lambda token_id: OrderBook(token_id, asks=[OrderBookLevel(asks[token_id], 500)])
    )
    source.get_price = AsyncMock(side_effect=lambda token_id: prices.get(token_id))
    source.prices = prices
    return source


@pytest.fixture
def engine(market_data, alerts, limits):
    return TradingEngine(
        market_data=market_data,
        risk_limits=limits,
        available_capital=100,
        alerts=alerts,
        configure_logging=False,
    )


class TestTradingEngine:
    """Tests for the engine's cycles."""

    @pytest.mark.asyncio
    async def test_initialize_registers_strategies(self, engine):
        await engine.initialize()

        names = {s.name for s in engine.context.get_all()}
        assert names == {"cross-market-arbitrage", "price-deviation"}
        assert engine.dry_run
        assert engine.deviation.watched_tokens == ["yes"]

        await engine.close()

    @pytest.mark.asyncio
    async def test_odds_strategy_needs_source(self, market_data, alerts):
        odds_source = MagicMock()
        odds_source.get_odds = AsyncMock(return_value=[OddsOutcome("Home", 1.91), OddsOutcome("Away", 1.91)])

        async with TradingEngine(
            market_data=market_data,
            odds_source=odds_source,
            alerts=alerts,
            configure_logging=False,
        ) as engine:
            assert engine.context.get("odds-value") is not None
            assert engine.context.get("odds-value").position_sizing is engine.kelly_sizing

    @pytest.mark.asyncio
    async def test_cycle_books_positions(self, engine, alerts):
        await engine.initialize()

        results = await engine.run_cycle()

        by_name = {r["strategy"]: r for r in results}
        assert by_name["cross-market-arbitrage"] == {
            "strategy": "cross-market-arbitrage", "opportunities": 1, "executed": 1,
        }
        positions = engine.position_manager.get_open_positions()
        assert sorted(p.token_id for p in positions) == ["no", "yes"]
        assert all(p.size == 105 for p in positions)
        assert len(engine.opportunity_book) == 1

        await engine.close()
        handled = [c.args[0].type for c in alerts.handle_strategy_event.await_args_list]
        assert handled.count(StrategyEventType.OPPORTUNITY_FOUND) == 1
        assert handled.count(StrategyEventType.TRADE_EXECUTED) == 1
        assert handled.count(StrategyEventType.STOPPED) == 2

    @pytest.mark.asyncio
    async def test_stopped_strategy_skipped_by_cycle(self, engine):
        await engine.initialize()
        engine.context.stop("cross-market-arbitrage")

        results = await engine.run_cycle()

        assert [r["strategy"] for r in results] == ["price-deviation"]
        assert engine.position_manager.get_open_positions() == []
        await engine.close()

    @pytest.mark.asyncio
    async def test_risk_gate_blocks_cycle(self, market_data, alerts, limits):
        limits.max_position_size = 50
        engine = TradingEngine(
            market_data=market_data,
            risk_limits=limits,
            available_capital=100,
            alerts=alerts,
            configure_logging=False,
        )
        await engine.initialize()

        await engine.run_cycle()

        assert engine.position_manager.get_open_positions() == []
        await engine.close()

    @pytest.mark.asyncio
    async def test_monitor_forwards_alerts(self, engine, market_data, alerts):
        position = engine.position_manager.open_position("m1", "yes", Side.BUY, 100, 0.50)
        engine.risk_manager.set_stop_loss(position.id, StopLossConfig.percentage(10))
        market_data.prices["yes"] = 0.40

        raised = await engine.monitor_positions()

        assert [a.type for a in raised] == [RiskAlertType.STOP_LOSS_TRIGGERED]
        alerts.risk_alert.assert_awaited_once_with(raised[0])
        # Without auto_exit the position is left to the operator
        assert position.is_open
        assert position.current_price == pytest.approx(0.40)

    @pytest.mark.asyncio
    async def test_auto_exit_closes_on_stop(self, engine, market_data):
        engine.auto_exit = True
        position = engine.position_manager.open_position("m1", "yes", Side.BUY, 100, 0.50)
        engine.risk_manager.set_stop_loss(position.id, StopLossConfig.percentage(10))
        market_data.prices["yes"] = 0.40

        await engine.monitor_positions()

        assert not position.is_open
        assert engine.position_manager.exit_reasons[position.id] == ExitReason.STOP_LOSS
        assert engine.risk_manager.daily_pnl == pytest.approx(-10)
        assert engine.risk_manager.closed_pnl == pytest.approx(-10)
        order = next(iter(engine.order_executor.orders.values()))
        assert order["side"] == "SELL"
        assert order["size"] == 100

    @pytest.mark.asyncio
    async def test_external_position_provider(self, alerts, limits):
        provider = MagicMock()
        provider.get_open_positions = AsyncMock(return_value=[
            Position(id="ext-1", market_id="m1", token_id="yes", side=Side.BUY,
                     size=100, avg_entry_price=0.5, current_price=0.5),
        ])
        engine = TradingEngine(
            position_provider=provider,
            risk_limits=limits,
            available_capital=100,
            alerts=alerts,
            configure_logging=False,
        )

        await engine.monitor_positions()

        provider.get_open_positions.assert_awaited_once()
        assert engine.risk_manager.last_metrics.position_count == 1

    @pytest.mark.asyncio
    async def test_failed_exit_order_keeps_position(self, market_data, alerts, limits):
        executor = MagicMock()
        executor.place_limit_order = AsyncMock(return_value=OrderResult(success=False, error_msg="rejected"))
        engine = TradingEngine(
            market_data=market_data,
            order_executor=executor,
            risk_limits=limits,
            alerts=alerts,
            configure_logging=False,
        )
        position = engine.position_manager.open_position("m1", "yes", Side.BUY, 100, 0.50)

        pnl = await engine.close_position(position.id, 0.45)

        assert pnl is None
        assert position.is_open
        assert not engine.dry_run

    @pytest.mark.asyncio
    async def test_manual_partial_close(self, engine):
        position = engine.position_manager.open_position("m1", "yes", Side.BUY, 100, 0.50)

        pnl = await engine.close_position(position.id, 0.60, size=40)

        assert pnl == pytest.approx(4.0)
        assert position.size == 60
        assert engine.risk_manager.closed_pnl == 0

    @pytest.mark.asyncio
    async def test_close_unknown_position(self, engine):
        with pytest.raises(ValueError):
            await engine.close_position("POS-999999", 0.5)

    @pytest.mark.asyncio
    async def test_housekeeping_and_summary(self, engine):
        await engine.initialize()
        await engine.run_cycle()

        purged = engine.housekeeping()
        summary = engine.get_daily_summary()

        assert purged == 1
        assert len(engine.opportunity_book) == 0
        assert summary["trades"] == 1
        assert set(summary) == {"pnl", "trades", "win_rate", "risk_score"}

        await engine.close()


class TestTradingScheduler:
    """Tests for scheduled job isolation."""

    @pytest.fixture
    def engine(self, alerts):
        engine = MagicMock()
        engine.alerts = alerts
        engine.run_cycle = AsyncMock(return_value=[{"strategy": "s", "opportunities": 2, "executed": 1}])
        engine.monitor_positions = AsyncMock(return_value=[])
        engine.get_daily_summary = MagicMock(return_value={"pnl": 1.0, "trades": 2, "win_rate": 0.5, "risk_score": 10})
        return engine

    @pytest.fixture
    def scheduler(self, engine):
        scheduler = TradingScheduler(engine)
        scheduler._running = True
        return scheduler

    @pytest.mark.asyncio
    async def test_scan(self, scheduler, engine):
        await scheduler._run_scan()

        engine.run_cycle.assert_awaited_once()
        assert scheduler._scans_today == 1

    @pytest.mark.asyncio
    async def test_scan_failure_alerts(self, scheduler, engine, alerts):
        engine.run_cycle.side_effect = RuntimeError("feed down")

        await scheduler._run_scan()

        alerts.strategy_error.assert_awaited_once_with("scheduler", "feed down")

    @pytest.mark.asyncio
    async def test_monitor_failure_contained(self, scheduler, engine):
        engine.monitor_positions.side_effect = RuntimeError("boom")

        await scheduler._monitor_positions()

    @pytest.mark.asyncio
    async def test_stopped_scheduler_skips_scan(self, scheduler, engine):
        scheduler._running = False

        await scheduler._run_scan()

        engine.run_cycle.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_daily_summary(self, scheduler, alerts):
        scheduler._scans_today = 5

        await scheduler._send_daily_summary()

        alerts.daily_summary.assert_awaited_once_with(pnl=1.0, trades=2, win_rate=0.5, risk_score=10)
        assert scheduler._scans_today == 0

    @pytest.mark.asyncio
    async def test_start_and_stop(self, engine):
        scheduler = TradingScheduler(engine)

        scheduler.start()
        job_ids = {job.id for job in scheduler.scheduler.get_jobs()}
        scheduler.stop()

        assert job_ids == {"opportunity_scan", "position_monitor", "housekeeping", "daily_summary"}
        assert not scheduler.is_running
