"""
Monitoring module for logging and alerts.

Provides:
- Structured logging with loguru
- JSON trade log of opportunities, executions and risk alerts
- Discord/Telegram alert notifications
"""

from .logger import setup_logging, get_logger, TradeLogger, trade_logger
from .alerts import AlertManager, Alert, AlertLevel

__all__ = [
    "setup_logging",
    "get_logger",
    "TradeLogger",
    "trade_logger",
    "AlertManager",
    "Alert",
    "AlertLevel",
]
