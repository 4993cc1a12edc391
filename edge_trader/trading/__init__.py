"""
Trading Module

Risk limits, portfolio risk controls, exits, and position tracking.
"""

from .config import RiskLimits, default_limits
from .exits import (
    PositionRiskSettings,
    StopLossConfig,
    StopLossHandler,
    StopLossKind,
    TakeProfitConfig,
    TakeProfitHandler,
    TakeProfitKind,
)
from .position_manager import ExitReason, PositionManager
from .risk_manager import RiskCheckResult, RiskManager, RiskMetrics

__all__ = [
    # Config
    "RiskLimits",
    "default_limits",
    # Exits
    "PositionRiskSettings",
    "StopLossConfig",
    "StopLossHandler",
    "StopLossKind",
    "TakeProfitConfig",
    "TakeProfitHandler",
    "TakeProfitKind",
    # Positions
    "ExitReason",
    "PositionManager",
    # Risk Manager
    "RiskCheckResult",
    "RiskManager",
    "RiskMetrics",
]
