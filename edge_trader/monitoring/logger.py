"""
Logging Configuration

Uses loguru for structured, colorful logging with:
- Console output with colors
- File rotation
- JSON format for structured logging
"""

import sys
from pathlib import Path
from loguru import logger

from ..config import config
from ..models.events import RiskAlert, StrategyEvent, StrategyEventType


def setup_logging(
    log_dir: str = "logs",
    log_level: str = None,
    rotation: str = "10 MB",
    retention: str = "30 days",
) -> None:
    """
    Configure logging for the application.

    Args:
        log_dir: Directory for log files
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        rotation: Log file rotation size
        retention: How long to keep old logs
    """
    log_level = log_level or config.log_level

    # Create log directory
    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)

    # Remove default handler
    logger.remove()

    # Console handler with colors
    logger.add(
        sys.stderr,
        level=log_level,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
        colorize=True,
    )

    # General log file
    logger.add(
        log_path / "edge_trader.log",
        level=log_level,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
        rotation=rotation,
        retention=retention,
        compression="gz",
    )

    # Trade-specific log file (JSON format for analysis)
    logger.add(
        log_path / "trades.json",
        level="INFO",
        format="{message}",
        filter=lambda record: record["extra"].get("trade_log", False),
        rotation="1 day",
        retention="90 days",
        serialize=True,
    )

    # Error log file
    logger.add(
        log_path / "errors.log",
        level="ERROR",
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}\n{exception}",
        rotation=rotation,
        retention=retention,
        compression="gz",
    )

    logger.info(f"Logging initialized at level {log_level}")


def get_logger(name: str = "edge_trader"):
    """
    Get a named logger instance.

    Args:
        name: Logger name for context

    Returns:
        Logger instance bound to the name
    """
    return logger.bind(name=name)



class TradeLogger:
    """
    Specialized logger for trade events.

    Writes one JSON record per opportunity, execution and risk alert to
    trades.json, suitable for later analysis.
    """

    def __init__(self):
        self.logger = logger.bind(trade_log=True)

    def log_opportunity(self, strategy: str, opportunity, size: float):
        """Log an opportunity that passed the risk gate."""
        self.logger.info({
            "event": "opportunity",
            "strategy": strategy,
            "opportunity_id": opportunity.id,
            "type": opportunity.type.value,
            "markets": opportunity.market_ids,
            "size": size,
            "expected_profit": opportunity.expected_profit,
            "expected_profit_percent": opportunity.expected_profit_percent,
            "confidence": opportunity.confidence,
        })

    def log_execution(self, strategy: str, opportunity, result, size: float):
        """Log a trade execution."""
        self.logger.info({
            "event": "execution",
            "strategy": strategy,
            "opportunity_id": opportunity.id,
            "size": size,
            "order_ids": result.order_ids,
            "success": result.success,
            "profit": result.total_profit,
            "error": result.error,
        })

    def log_risk_alert(self, alert: RiskAlert):
        """Log a risk alert."""
        self.logger.info({"event": "risk_alert", **alert.to_dict()})

    def log_position_close(self, position_id: str, market_id: str, pnl: float, reason: str):
        """Log a position exit."""
        self.logger.info({
            "event": "position_close",
            "position_id": position_id,
            "market_id": market_id,
            "pnl": pnl,
            "reason": reason,
        })

    def handle_event(self, event: StrategyEvent):
        """Strategy event listener; records opportunities and executions."""
        data = event.data or {}
        if event.type == StrategyEventType.OPPORTUNITY_FOUND:
            self.log_opportunity(event.strategy_name, data["opportunity"], data.get("size", 0))
        elif event.type == StrategyEventType.TRADE_EXECUTED:
            self.log_execution(event.strategy_name, data["opportunity"], data["result"], data.get("size", 0))


# Global trade logger instance
trade_logger = TradeLogger()
