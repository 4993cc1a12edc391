"""
Risk Limits Configuration

Portfolio-level limits enforced by the RiskManager.
"""

from dataclasses import dataclass, field, asdict
import os


@dataclass
class RiskLimits:
    """
    Portfolio risk limits.

    Monetary values are in account currency. Limits can be replaced
    wholesale or partially merged via RiskManager.set_limits().
    """

    # ========================
    # POSITION LIMITS
    # ========================

    # Maximum value of a single position
    max_position_size: float = field(
        default_factory=lambda: float(os.getenv("MAX_POSITION_SIZE", "1000"))
    )

    # Maximum number of open positions
    max_positions: int = field(
        default_factory=lambda: int(os.getenv("MAX_POSITIONS", "10"))
    )

    # ========================
    # EXPOSURE LIMITS
    # ========================

    # Sum of current value across all positions
    max_total_exposure: float = field(
        default_factory=lambda: float(os.getenv("MAX_TOTAL_EXPOSURE", "10000"))
    )

    # Sum of current value within one market
    max_per_market_exposure: float = field(
        default_factory=lambda: float(os.getenv("MAX_PER_MARKET_EXPOSURE", "2000"))
    )

    # ========================
    # LOSS LIMITS
    # ========================

    # Maximum drawdown from peak portfolio value, in percent
    max_drawdown_percent: float = field(
        default_factory=lambda: float(os.getenv("MAX_DRAWDOWN_PERCENT", "10"))
    )

    # Stop trading once the day's PnL is below -daily_loss_limit
    daily_loss_limit: float = field(
        default_factory=lambda: float(os.getenv("DAILY_LOSS_LIMIT", "500"))
    )

    # ========================
    # ALERT THRESHOLDS
    # ========================

    # Drawdown warning fires at this share of max_drawdown_percent
    drawdown_warning_ratio: float = field(
        default_factory=lambda: float(os.getenv("DRAWDOWN_WARNING_RATIO", "0.8"))
    )

    # Exposure warning fires at this share of max_total_exposure
    exposure_warning_ratio: float = field(
        default_factory=lambda: float(os.getenv("EXPOSURE_WARNING_RATIO", "0.9"))
    )

    def __post_init__(self):
        """Validate configuration values."""
        assert self.max_position_size > 0, "max_position_size must be positive"
        assert self.max_total_exposure > 0, "max_total_exposure must be positive"
        assert self.max_per_market_exposure > 0, "max_per_market_exposure must be positive"
        assert 0 < self.max_drawdown_percent <= 100, "max_drawdown_percent must be between 0 and 100"
        assert self.max_positions > 0, "max_positions must be positive"
        assert self.daily_loss_limit >= 0, "daily_loss_limit must not be negative"

    def to_dict(self) -> dict:
        return asdict(self)


# Global default configuration
default_limits = RiskLimits()
