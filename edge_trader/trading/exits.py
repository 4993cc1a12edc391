"""
Stop-Loss and Take-Profit Handlers

Per-position exit rules evaluated by the RiskManager on every risk cycle.

Stop-loss kinds:
- fixed:      trigger at an absolute price
- percentage: trigger a given % against the entry price
- trailing:   trigger a given % behind the best price seen; never loosens

Take-profit kinds:
- fixed:      trigger at an absolute price
- percentage: trigger a given % in favor of the entry price
- partial:    like percentage, but close only partial_percent of the size

Long positions stop out when price <= trigger and take profit when
price >= trigger. Short positions invert both comparisons.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Optional
import math

from ..models.position import Position
from ..monitoring.logger import get_logger

logger = get_logger("exits")


class StopLossKind(Enum):
    FIXED = "fixed"
    PERCENTAGE = "percentage"
    TRAILING = "trailing"


class TakeProfitKind(Enum):
    FIXED = "fixed"
    PERCENTAGE = "percentage"
    PARTIAL = "partial"


@dataclass
class StopLossConfig:
    kind: StopLossKind
    value: float                              # Price for fixed, percent otherwise
    activated: bool = True
    trigger_price: Optional[float] = None
    trailing_offset: Optional[float] = None   # Percent; defaults to value

    def __post_init__(self):
        if not isinstance(self.kind, StopLossKind):
            self.kind = StopLossKind(self.kind)
        if self.value < 0:
            raise ValueError("Stop-loss value must not be negative")

    @classmethod
    def fixed(cls, trigger_price: float) -> "StopLossConfig":
        return cls(kind=StopLossKind.FIXED, value=trigger_price, trigger_price=trigger_price)

    @classmethod
    def percentage(cls, loss_percent: float) -> "StopLossConfig":
        return cls(kind=StopLossKind.PERCENTAGE, value=loss_percent)

    @classmethod
    def trailing(cls, trailing_percent: float) -> "StopLossConfig":
        return cls(kind=StopLossKind.TRAILING, value=trailing_percent, trailing_offset=trailing_percent)


@dataclass
class TakeProfitConfig:
    kind: TakeProfitKind
    value: float                              # Price for fixed, percent otherwise
    activated: bool = True
    trigger_price: Optional[float] = None
    partial_percent: Optional[float] = None   # Share of the position to close

    def __post_init__(self):
        if not isinstance(self.kind, TakeProfitKind):
            self.kind = TakeProfitKind(self.kind)
        if self.value < 0:
            raise ValueError("Take-profit value must not be negative")
        if self.partial_percent is not None and not 0 < self.partial_percent <= 100:
            raise ValueError("partial_percent must be in (0, 100]")

    @classmethod
    def fixed(cls, trigger_price: float) -> "TakeProfitConfig":
        return cls(kind=TakeProfitKind.FIXED, value=trigger_price, trigger_price=trigger_price)

    @classmethod
    def percentage(cls, profit_percent: float) -> "TakeProfitConfig":
        return cls(kind=TakeProfitKind.PERCENTAGE, value=profit_percent)

    @classmethod
    def partial(cls, profit_percent: float, partial_percent: float) -> "TakeProfitConfig":
        return cls(kind=TakeProfitKind.PARTIAL, value=profit_percent, partial_percent=partial_percent)


@dataclass
class PositionRiskSettings:
    """Exit rules attached to one position."""
    position_id: str
    stop_loss: Optional[StopLossConfig] = None
    take_profit: Optional[TakeProfitConfig] = None
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)


class StopLossHandler:
    """Evaluates stop-loss rules against a position."""

    def evaluate(self, position: Position, config: StopLossConfig) -> bool:
        if not config.activated:
            return False

        trigger = self.calculate_trigger_price(position, config)
        price = position.current_price

        if position.is_long:
            triggered = price <= trigger
        else:
            triggered = price >= trigger

        if triggered:
            logger.info(
                f"[StopLoss] {'LONG' if position.is_long else 'SHORT'} {position.id} triggered: "
                f"current={price:.4f} trigger={trigger:.4f}"
            )
        return triggered

    def calculate_trigger_price(self, position: Position, config: StopLossConfig) -> float:
        if config.trigger_price is not None:
            return config.trigger_price

        if config.kind == StopLossKind.FIXED:
            return config.value

        if config.kind == StopLossKind.PERCENTAGE:
            loss = config.value / 100
            if position.is_long:
                return position.avg_entry_price * (1 - loss)
            return position.avg_entry_price * (1 + loss)

        return self._trailing_candidate(position, config)

    def _trailing_candidate(self, position: Position, config: StopLossConfig) -> float:
        offset = config.trailing_offset if config.trailing_offset is not None else config.value
        if position.is_long:
            return position.current_price * (1 - offset / 100)
        return position.current_price * (1 + offset / 100)

    def update_trailing_stop(self, position: Position, config: StopLossConfig) -> StopLossConfig:
        """
        Ratchet a trailing stop toward the current price.

        The trigger is only replaced when the candidate is tighter: higher for
        a long, lower for a short.

        Returns:
            The same config if unchanged, else a copy with the new trigger
        """
        if config.kind != StopLossKind.TRAILING or not config.activated:
            return config

        candidate = self._trailing_candidate(position, config)
        current = config.trigger_price

        if current is None:
            improved = True
        elif position.is_long:
            improved = candidate > current
        else:
            improved = candidate < current

        if not improved:
            return config

        logger.debug(
            f"[StopLoss] Trailing stop {position.id}: "
            f"{'none' if current is None else f'{current:.4f}'} -> {candidate:.4f}"
        )
        return replace(config, trigger_price=candidate)


class TakeProfitHandler:
    """Evaluates take-profit rules against a position."""

    def evaluate(self, position: Position, config: TakeProfitConfig) -> bool:
        if not config.activated:
            return False

        trigger = self.calculate_trigger_price(position, config)
        price = position.current_price

        if position.is_long:
            triggered = price >= trigger
        else:
            triggered = price <= trigger

        if triggered:
            logger.info(
                f"[TakeProfit] {'LONG' if position.is_long else 'SHORT'} {position.id} triggered: "
                f"current={price:.4f} trigger={trigger:.4f}"
            )
        return triggered

    def calculate_trigger_price(self, position: Position, config: TakeProfitConfig) -> float:
        if config.trigger_price is not None:
            return config.trigger_price

        if config.kind == TakeProfitKind.FIXED:
            return config.value

        gain = config.value / 100
        if position.is_long:
            return position.avg_entry_price * (1 + gain)
        return position.avg_entry_price * (1 - gain)

    def close_size(self, position: Position, config: TakeProfitConfig) -> float:
        """Shares to close when the rule fires."""
        if config.kind == TakeProfitKind.PARTIAL and config.partial_percent is not None:
            return math.floor(position.size * config.partial_percent / 100)
        return position.size
