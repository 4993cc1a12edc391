"""
Configuration module for Edge Trader.

Contains engine cadence, position sizing defaults and alert settings.
Risk limits live in trading/config.py.
"""

from dataclasses import dataclass, field
from typing import Optional
import os
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass
class EngineConfig:
    """Scan cadence and capital settings for the strategy engine."""
    scan_interval_seconds: float = field(
        default_factory=lambda: float(os.getenv("SCAN_INTERVAL_SECONDS", "10"))
    )
    risk_monitor_interval_seconds: float = field(
        default_factory=lambda: float(os.getenv("RISK_MONITOR_INTERVAL_SECONDS", "10"))
    )
    housekeeping_interval_minutes: float = field(
        default_factory=lambda: float(os.getenv("HOUSEKEEPING_INTERVAL_MINUTES", "5"))
    )

    # Capital each strategy sizes against when none is configured explicitly
    available_capital: float = field(
        default_factory=lambda: float(os.getenv("AVAILABLE_CAPITAL", "100"))
    )

    # Paper trading - orders are filled locally, nothing is sent to a venue
    dry_run: bool = field(
        default_factory=lambda: _env_bool("DRY_RUN", "true")
    )


@dataclass
class SizingConfig:
    """Position sizing configuration."""
    kelly_fraction: float = field(
        default_factory=lambda: float(os.getenv("KELLY_FRACTION", "0.5"))
    )
    max_bet_fraction: float = field(
        default_factory=lambda: float(os.getenv("MAX_BET_FRACTION", "0.25"))
    )
    min_bet_fraction: float = field(
        default_factory=lambda: float(os.getenv("MIN_BET_FRACTION", "0.01"))
    )

    # Fallback when a strategy has no sizer injected
    default_position_fraction: float = field(
        default_factory=lambda: float(os.getenv("DEFAULT_POSITION_FRACTION", "0.1"))
    )
    min_position_size: float = field(
        default_factory=lambda: float(os.getenv("MIN_POSITION_SIZE", "1"))
    )


@dataclass
class AlertConfig:
    """Alert configuration for notifications."""
    discord_webhook_url: Optional[str] = field(
        default_factory=lambda: os.getenv("DISCORD_WEBHOOK_URL") or None
    )
    telegram_bot_token: Optional[str] = field(
        default_factory=lambda: os.getenv("TELEGRAM_BOT_TOKEN") or None
    )
    telegram_chat_id: Optional[str] = field(
        default_factory=lambda: os.getenv("TELEGRAM_CHAT_ID") or None
    )


@dataclass
class Config:
    """Main configuration container."""
    engine: EngineConfig = field(default_factory=EngineConfig)
    sizing: SizingConfig = field(default_factory=SizingConfig)
    alerts: AlertConfig = field(default_factory=AlertConfig)

    log_level: str = field(
        default_factory=lambda: os.getenv("LOG_LEVEL", "INFO")
    )
    env: str = field(
        default_factory=lambda: os.getenv("ENV", "development")
    )

    @property
    def is_production(self) -> bool:
        return self.env == "production"


# Global configuration instance
config = Config()
