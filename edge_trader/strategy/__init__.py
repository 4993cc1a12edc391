"""
Trading strategy components.

Includes:
- Strategy base class and the shared scan/validate/size/gate/execute cycle
- Cross-market arbitrage, odds-referenced value and mean-reversion strategies
- Position sizing (Kelly criterion, fixed ratio, fixed amount)
- Multi-leg trade execution with rollback
- Strategy context for concurrent orchestration
"""

from .base import CycleReport, Strategy, StrategyConfig, StrategyStats, StrategyType, run_strategy_cycle
from .context import StrategyContext
from .cross_market import CrossMarketArbitrageStrategy
from .deviation import DeviationStrategy
from .executor import LegFill, PaperOrderExecutor, TradeExecutor, TradeJournal, TradeResult
from .expected_value import ExpectedValueCalculator, FairProbability, ValueSignal, remove_vig
from .odds_value import OddsValueStrategy
from .position_sizing import (
    FixedAmountPositionSizing,
    FixedRatioPositionSizing,
    KellyPositionSizing,
    PositionSizeParams,
    PositionSizing,
)
from .signals import DeviationSignal, PriceWindow, SpreadSignal, detect_spread

__all__ = [
    # Base
    "CycleReport",
    "Strategy",
    "StrategyConfig",
    "StrategyStats",
    "StrategyType",
    "run_strategy_cycle",
    "StrategyContext",
    # Strategies
    "CrossMarketArbitrageStrategy",
    "DeviationStrategy",
    "OddsValueStrategy",
    # Execution
    "LegFill",
    "PaperOrderExecutor",
    "TradeExecutor",
    "TradeJournal",
    "TradeResult",
    # Expected value
    "ExpectedValueCalculator",
    "FairProbability",
    "ValueSignal",
    "remove_vig",
    # Position sizing
    "FixedAmountPositionSizing",
    "FixedRatioPositionSizing",
    "KellyPositionSizing",
    "PositionSizeParams",
    "PositionSizing",
    # Signals
    "DeviationSignal",
    "PriceWindow",
    "SpreadSignal",
    "detect_spread",
]
