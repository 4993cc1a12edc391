"""
Tests for alert delivery and trade logging.
"""

import httpx
import pytest
from loguru import logger
from unittest.mock import MagicMock, AsyncMock

from edge_trader.models import (
    Opportunity,
    RiskAlert,
    RiskAlertLevel,
    RiskAlertType,
    StrategyEvent,
    StrategyEventType,
)
from edge_trader.monitoring import Alert, AlertLevel, AlertManager, TradeLogger
from edge_trader.strategy import TradeResult


def _client(status_code=204):
    client = MagicMock()
    client.post = AsyncMock(return_value=MagicMock(status_code=status_code))
    client.aclose = AsyncMock()
    return client


@pytest.fixture
def discord_manager():
    manager = AlertManager(discord_webhook="https://discord.example/webhook", client=_client())
    manager.telegram_token = None
    manager.telegram_chat_id = None
    return manager


@pytest.fixture
def opportunity():
    return Opportunity.create_cross_market("m1", "yes", "no", 0.45, 0.50, size=105)


class TestAlertFormatting:
    """Tests for channel payloads."""

    def test_discord_embed(self):
        alert = Alert(level=AlertLevel.CRITICAL, title="Stop", message="hit", details={"Position": "p1"})

        embed = alert.to_discord_embed()

        assert embed["title"].endswith("Stop")
        assert embed["color"] == 0x9b59b6
        assert embed["footer"] == {"text": "Edge Trader"}
        assert embed["fields"] == [{"name": "Position", "value": "p1", "inline": True}]

    def test_telegram_message(self):
        alert = Alert(level=AlertLevel.INFO, title="Daily", message="ok", details={"Trades": 3})

        text = alert.to_telegram_message()

        assert "*Daily*" in text
        assert "• Trades: `3`" in text


class TestAlertManager:
    """Tests for delivery, dedupe and convenience alerts."""

    @pytest.mark.asyncio
    async def test_send_discord(self, discord_manager):
        sent = await discord_manager.send(Alert(level=AlertLevel.INFO, title="t", message="m"))

        assert sent
        assert discord_manager.sent_count == 1
        url = discord_manager.client.post.await_args.args[0]
        assert url == "https://discord.example/webhook"
        assert "embeds" in discord_manager.client.post.await_args.kwargs["json"]

    @pytest.mark.asyncio
    async def test_send_telegram(self):
        client = _client(status_code=200)
        manager = AlertManager(telegram_token="tok", telegram_chat_id="42", client=client)
        manager.discord_webhook = None

        assert await manager.send(Alert(level=AlertLevel.INFO, title="t", message="m"))

        url = client.post.await_args.args[0]
        assert url == "https://api.telegram.org/bottok/sendMessage"
        assert client.post.await_args.kwargs["json"]["chat_id"] == "42"

    @pytest.mark.asyncio
    async def test_duplicate_suppressed(self, discord_manager):
        alert = Alert(level=AlertLevel.WARNING, title="same", message="m")

        assert await discord_manager.send(alert)
        assert not await discord_manager.send(alert)
        assert await discord_manager.send(alert, dedupe=False)
        assert discord_manager.client.post.await_count == 2

    @pytest.mark.asyncio
    async def test_unconfigured_only_logs(self):
        client = _client()
        manager = AlertManager(client=client)
        manager.discord_webhook = None
        manager.telegram_token = None

        assert not manager.is_configured
        assert not await manager.send(Alert(level=AlertLevel.INFO, title="t", message="m"))
        client.post.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_channel_failure_is_logged(self, discord_manager):
        discord_manager.client.post = AsyncMock(side_effect=httpx.ConnectError("refused"))

        assert not await discord_manager.send(Alert(level=AlertLevel.INFO, title="t", message="m"))
        assert discord_manager.sent_count == 0

    @pytest.mark.asyncio
    async def test_bad_status(self):
        manager = AlertManager(discord_webhook="https://discord.example/webhook", client=_client(500))
        manager.telegram_token = None

        assert not await manager.send(Alert(level=AlertLevel.INFO, title="t", message="m"))

    @pytest.mark.asyncio
    async def test_risk_alert_per_position(self, discord_manager):
        def stop(position_id):
            return RiskAlert(
                type=RiskAlertType.STOP_LOSS_TRIGGERED,
                level=RiskAlertLevel.CRITICAL,
                message="stop",
                position_id=position_id,
                current_value=0.44,
            )

        assert await discord_manager.risk_alert(stop("p1"))
        assert await discord_manager.risk_alert(stop("p2"))
        assert not await discord_manager.risk_alert(stop("p1"))

        embed = discord_manager.client.post.await_args_list[0].kwargs["json"]["embeds"][0]
        assert "Stop Loss Triggered: p1" in embed["title"]
        assert embed["color"] == 0x9b59b6

    @pytest.mark.asyncio
    async def test_daily_summary(self, discord_manager):
        assert await discord_manager.daily_summary(pnl=-3.5, trades=4, win_rate=0.75, risk_score=12)

        embed = discord_manager.client.post.await_args.kwargs["json"]["embeds"][0]
        fields = {f["name"]: f["value"] for f in embed["fields"]}
        assert fields["Win Rate"] == "75.0%"
        assert embed["description"] == "P&L: $-3.50"

    @pytest.mark.asyncio
    async def test_handles_strategy_events(self, discord_manager, opportunity):
        executed = StrategyEvent(
            type=StrategyEventType.TRADE_EXECUTED,
            strategy_name="cross-market-arbitrage",
            data={"opportunity": opportunity, "result": TradeResult(success=True, total_profit=5.25), "size": 105},
        )
        failed = StrategyEvent(
            type=StrategyEventType.ERROR,
            strategy_name="cross-market-arbitrage",
            data={"opportunity": opportunity, "error": "boom"},
        )
        started = StrategyEvent(type=StrategyEventType.STARTED, strategy_name="cross-market-arbitrage")

        await discord_manager.handle_strategy_event(executed)
        await discord_manager.handle_strategy_event(failed)
        await discord_manager.handle_strategy_event(started)

        titles = [
            call.kwargs["json"]["embeds"][0]["title"]
            for call in discord_manager.client.post.await_args_list
        ]
        assert len(titles) == 2
        assert "Trade Executed: cross-market-arbitrage" in titles[0]
        assert "Strategy Error: cross-market-arbitrage" in titles[1]

    @pytest.mark.asyncio
    async def test_close(self, discord_manager):
        async with discord_manager:
            pass
        discord_manager.client.aclose.assert_awaited_once()


class TestTradeLogger:
    """Tests for JSON trade records."""

    @pytest.fixture
    def records(self):
        captured = []
        sink_id = logger.add(
            lambda message: captured.append(message.record),
            filter=lambda record: record["extra"].get("trade_log", False),
            level="INFO",
        )
        yield captured
        logger.remove(sink_id)

    def test_execution_event(self, records, opportunity):
        trade_logger = TradeLogger()
        event = StrategyEvent(
            type=StrategyEventType.TRADE_EXECUTED,
            strategy_name="cross-market-arbitrage",
            data={"opportunity": opportunity, "result": TradeResult(success=True, total_profit=5.25), "size": 105},
        )

        trade_logger.handle_event(event)

        assert len(records) == 1
        assert "'event': 'execution'" in records[0]["message"]
        assert opportunity.id in records[0]["message"]

    def test_opportunity_and_ignored_events(self, records, opportunity):
        trade_logger = TradeLogger()

        trade_logger.handle_event(StrategyEvent(
            type=StrategyEventType.OPPORTUNITY_FOUND,
            strategy_name="s",
            data={"opportunity": opportunity, "size": 105},
        ))
        trade_logger.handle_event(StrategyEvent(type=StrategyEventType.STOPPED, strategy_name="s"))

        assert len(records) == 1
        assert "'event': 'opportunity'" in records[0]["message"]

    def test_risk_alert_and_close(self, records):
        trade_logger = TradeLogger()

        trade_logger.log_risk_alert(RiskAlert(
            type=RiskAlertType.DRAWDOWN_WARNING,
            level=RiskAlertLevel.WARNING,
            message="drawdown",
        ))
        trade_logger.log_position_close("POS-000001", "m1", 4.0, "take_profit")

        assert "'event': 'risk_alert'" in records[0]["message"]
        assert "'reason': 'take_profit'" in records[1]["message"]
