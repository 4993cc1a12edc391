"""
Alert System

Pushes notifications for engine events via:
- Discord webhooks
- Telegram bots

Alert levels:
- INFO: Trade executions, take-profit triggers, daily summaries
- WARNING: Drawdown/exposure/position-count warnings
- ERROR: Strategy failures
- CRITICAL: Stop-loss triggers, drawdown limit breached
"""

import httpx
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional
from enum import Enum

from ..config import config
from ..models.events import RiskAlert, RiskAlertLevel, StrategyEvent, StrategyEventType
from .logger import get_logger

logger = get_logger("alerts")


class AlertLevel(Enum):
    """Alert severity levels."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


LEVEL_COLORS = {
    AlertLevel.INFO: 0x3498db,
    AlertLevel.WARNING: 0xf39c12,
    AlertLevel.ERROR: 0xe74c3c,
    AlertLevel.CRITICAL: 0x9b59b6,
}

LEVEL_EMOJIS = {
    AlertLevel.INFO: "ℹ️",
    AlertLevel.WARNING: "⚠️",
    AlertLevel.ERROR: "❌",
    AlertLevel.CRITICAL: "🚨",
}

# RiskAlert levels map one-to-one onto notification levels
RISK_LEVELS = {
    RiskAlertLevel.INFO: AlertLevel.INFO,
    RiskAlertLevel.WARNING: AlertLevel.WARNING,
    RiskAlertLevel.CRITICAL: AlertLevel.CRITICAL,
}


@dataclass
class Alert:
    """A notification to be sent."""
    level: AlertLevel
    title: str
    message: str
    details: Optional[dict] = None
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def dedupe_key(self) -> str:
        return f"{self.level.value}:{self.title}"

    def to_discord_embed(self) -> dict:
        """Format as Discord embed."""
        embed = {
            "title": f"{LEVEL_EMOJIS.get(self.level, '📢')} {self.title}",
            "description": self.message,
            "color": LEVEL_COLORS.get(self.level, 0x95a5a6),
            "timestamp": self.timestamp.isoformat(),
            "footer": {"text": "Edge Trader"},
        }
        if self.details:
            embed["fields"] = [
                {"name": k, "value": str(v), "inline": True}
                for k, v in self.details.items()
            ]
        return embed

    def to_telegram_message(self) -> str:
        """Format as Telegram message."""
        lines = [f"{LEVEL_EMOJIS.get(self.level, '📢')} *{self.title}*", "", self.message]
        if self.details:
            lines += ["", "*Details:*"]
            lines += [f"• {k}: `{v}`" for k, v in self.details.items()]
        lines += ["", f"_{self.timestamp.strftime('%Y-%m-%d %H:%M:%S')}_"]
        return "\n".join(lines)


class AlertManager:
    """
    Sends alerts to configured channels.

    Without any channel configured, alerts are only logged.
    """

    def __init__(
        self,
        discord_webhook: Optional[str] = None,
        telegram_token: Optional[str] = None,
        telegram_chat_id: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize alert manager.

        Args:
            discord_webhook: Discord webhook URL
            telegram_token: Telegram bot token
            telegram_chat_id: Telegram chat ID to send to
            client: HTTP client to reuse (one is created otherwise)
        """
        self.discord_webhook = discord_webhook or config.alerts.discord_webhook_url
        self.telegram_token = telegram_token or config.alerts.telegram_bot_token
        self.telegram_chat_id = telegram_chat_id or config.alerts.telegram_chat_id

        self.client = client or httpx.AsyncClient(timeout=10.0)

        # Recently sent alert keys, oldest first
        self._recent_alerts: list[str] = []
        self._max_recent = 100
        self.sent_count = 0

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    @property
    def is_configured(self) -> bool:
        """Check if any alert channel is configured."""
        return bool(self.discord_webhook) or bool(self.telegram_token and self.telegram_chat_id)

    def _is_duplicate(self, key: str) -> bool:
        if key in self._recent_alerts:
            return True
        self._recent_alerts.append(key)
        if len(self._recent_alerts) > self._max_recent:
            self._recent_alerts.pop(0)
        return False

    async def send(self, alert: Alert, dedupe: bool = True) -> bool:
        """
        Send an alert to all configured channels.

        Channel failures are logged, never raised.

        Args:
            alert: Alert to send
            dedupe: Skip if the same alert was sent recently

        Returns:
            True if alert was sent successfully to at least one channel
        """
        if dedupe and self._is_duplicate(alert.dedupe_key):
            return False

        logger.info(f"[Alert] {alert.level.value.upper()} {alert.title}: {alert.message}")
        if not self.is_configured:
            return False

        success = False

        if self.discord_webhook:
            try:
                success = await self._send_discord(alert) or success
            except httpx.HTTPError as e:
                logger.warning(f"Discord alert failed: {e}")

        if self.telegram_token and self.telegram_chat_id:
            try:
                success = await self._send_telegram(alert) or success
            except httpx.HTTPError as e:
                logger.warning(f"Telegram alert failed: {e}")

        if success:
            self.sent_count += 1
        return success

    async def _send_discord(self, alert: Alert) -> bool:
        response = await self.client.post(
            self.discord_webhook,
            json={"embeds": [alert.to_discord_embed()]},
        )
        return response.status_code in [200, 204]

    async def _send_telegram(self, alert: Alert) -> bool:
        url = f"https://api.telegram.org/bot{self.telegram_token}/sendMessage"
        payload = {
            "chat_id": self.telegram_chat_id,
            "text": alert.to_telegram_message(),
            "parse_mode": "Markdown",
        }
        response = await self.client.post(url, json=payload)
        return response.status_code == 200

    # Convenience methods for common alerts

    async def risk_alert(self, risk_alert: RiskAlert) -> bool:
        """Forward a RiskManager alert. Per-position alerts dedupe per position."""
        details = {}
        if risk_alert.position_id:
            details["Position"] = risk_alert.position_id
        if risk_alert.market_id:
            details["Market"] = risk_alert.market_id
        if risk_alert.current_value is not None:
            details["Value"] = f"{risk_alert.current_value:.4g}"
        if risk_alert.threshold is not None:
            details["Threshold"] = f"{risk_alert.threshold:.4g}"

        title = risk_alert.type.value.replace("_", " ").title()
        if risk_alert.position_id:
            title = f"{title}: {risk_alert.position_id}"

        alert = Alert(
            level=RISK_LEVELS[risk_alert.level],
            title=title,
            message=risk_alert.message,
            details=details or None,
            timestamp=risk_alert.timestamp,
        )
        return await self.send(alert)

    async def trade_executed(self, strategy: str, opportunity, result, size: float) -> bool:
        """Send alert for an executed opportunity."""
        alert = Alert(
            level=AlertLevel.INFO,
            title=f"Trade Executed: {strategy}",
            message=f"{opportunity.type.value} on {', '.join(opportunity.market_ids)}",
            details={
                "Size": f"{size:g}",
                "Legs": len(result.fills),
                "Expected Profit": f"${result.total_profit:.2f}",
            },
        )
        return await self.send(alert, dedupe=False)

    async def strategy_error(self, strategy: str, error: str, opportunity_id: Optional[str] = None) -> bool:
        """Send alert for a failed scan or opportunity."""
        alert = Alert(
            level=AlertLevel.ERROR,
            title=f"Strategy Error: {strategy}",
            message=error,
            details={"Opportunity": opportunity_id} if opportunity_id else None,
        )
        return await self.send(alert)

    async def daily_summary(self, pnl: float, trades: int, win_rate: float, risk_score: int = 0) -> bool:
        """Send daily summary alert."""
        alert = Alert(
            level=AlertLevel.INFO if pnl >= 0 else AlertLevel.WARNING,
            title="Daily Summary",
            message=f"P&L: ${pnl:+.2f}",
            details={
                "Trades": trades,
                "Win Rate": f"{win_rate*100:.1f}%",
                "Risk Score": risk_score,
            },
        )
        return await self.send(alert, dedupe=False)

    async def handle_strategy_event(self, event: StrategyEvent):
        """Strategy event listener for executions and errors."""
        data = event.data or {}
        if event.type == StrategyEventType.TRADE_EXECUTED:
            await self.trade_executed(event.strategy_name, data["opportunity"], data["result"], data.get("size", 0))
        elif event.type == StrategyEventType.ERROR:
            opportunity = data.get("opportunity")
            await self.strategy_error(
                event.strategy_name,
                str(data.get("error", "unknown error")),
                opportunity.id if opportunity is not None else None,
            )
