"""
Lifecycle and risk-alert events, plus a small topic-keyed event bus.

Any number of listeners can subscribe to one kind of event (or to all
events). A listener that raises is logged and does not stop the others.
"""

import asyncio
import inspect
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Optional

from loguru import logger


class StrategyEventType(Enum):
    STARTED = "started"
    STOPPED = "stopped"
    OPPORTUNITY_FOUND = "opportunity_found"
    TRADE_EXECUTED = "trade_executed"
    ERROR = "error"


@dataclass
class StrategyEvent:
    """Something that happened inside a strategy's lifecycle."""
    type: StrategyEventType
    strategy_name: str
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def kind(self) -> StrategyEventType:
        return self.type


class RiskAlertLevel(Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class RiskAlertType(Enum):
    STOP_LOSS_TRIGGERED = "stop_loss_triggered"
    TAKE_PROFIT_TRIGGERED = "take_profit_triggered"
    DRAWDOWN_WARNING = "drawdown_warning"
    POSITION_LIMIT_WARNING = "position_limit_warning"
    EXPOSURE_LIMIT_WARNING = "exposure_limit_warning"
    PRICE_VOLATILITY = "price_volatility"
    LIQUIDATION_RISK = "liquidation_risk"


@dataclass
class RiskAlert:
    """Alert raised by the risk monitor. Consumers decide what to do with it."""
    type: RiskAlertType
    level: RiskAlertLevel
    message: str
    position_id: Optional[str] = None
    market_id: Optional[str] = None
    current_value: Optional[float] = None
    threshold: Optional[float] = None
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def kind(self) -> RiskAlertType:
        return self.type

    @property
    def is_critical(self) -> bool:
        return self.level == RiskAlertLevel.CRITICAL

    @property
    def is_warning(self) -> bool:
        return self.level == RiskAlertLevel.WARNING

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "level": self.level.value,
            "message": self.message,
            "position_id": self.position_id,
            "market_id": self.market_id,
            "current_value": self.current_value,
            "threshold": self.threshold,
            "data": self.data,
            "timestamp": self.timestamp.isoformat(),
        }


Listener = Callable[[Any], Any]


class EventBus:
    """
    Topic-keyed listener registry.

    Listeners subscribed with kind=None receive every event. Events are
    matched on their `kind` attribute.
    """

    def __init__(self, name: str = "events"):
        self.name = name
        self._listeners: dict[Any, list[Listener]] = {}
        self._pending: set[asyncio.Task] = set()

    def subscribe(self, kind: Any, listener: Listener) -> Callable[[], None]:
        """
        Register a listener.

        Args:
            kind: Event kind to listen for, or None for all events
            listener: Callable taking the event; may return a coroutine

        Returns:
            Function that removes the listener again
        """
        self._listeners.setdefault(kind, []).append(listener)

        def unsubscribe():
            listeners = self._listeners.get(kind, [])
            if listener in listeners:
                listeners.remove(listener)

        return unsubscribe

    def listener_count(self, kind: Any = None) -> int:
        return len(self._listeners.get(kind, []))

    def emit(self, event: Any) -> None:
        """Deliver an event to matching listeners, isolating each one."""
        kind = getattr(event, "kind", None)
        targets = list(self._listeners.get(kind, [])) if kind is not None else []
        targets += list(self._listeners.get(None, []))

        for listener in targets:
            try:
                result = listener(event)
            except Exception as e:
                logger.exception(f"[{self.name}] Listener {listener!r} failed: {e}")
                continue

            if inspect.isawaitable(result):
                self._schedule(result)

    def _schedule(self, awaitable) -> None:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(f"[{self.name}] Async listener called outside an event loop, dropped")
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            return

        task = asyncio.ensure_future(awaitable)
        self._pending.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.opt(exception=exc).error(f"[{self.name}] Async listener failed: {exc}")

    async def drain(self) -> None:
        """Wait for scheduled async listeners to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
