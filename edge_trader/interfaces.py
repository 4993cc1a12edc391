"""
Collaborator protocols.

The engine performs no I/O of its own. Market data, order placement,
odds reference data, position tracking and notification delivery are
injected behind these protocols, so live clients, paper executors and
test mocks are interchangeable.
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Protocol, Union, runtime_checkable

from .models.market import BinaryMarket, OddsOutcome, OrderBook
from .models.opportunity import Side
from .models.position import Position


@dataclass
class OrderResult:
    """Outcome of a single order placement. Failures are values, not exceptions."""
    success: bool
    order_id: Optional[str] = None
    error_msg: Optional[str] = None


# ── Market Data ─────────────────────────────────────────────────────────────

@runtime_checkable
class MarketDataSource(Protocol):
    """Current prices and depth for tradable tokens."""

    async def get_binary_markets(self) -> list[BinaryMarket]: ...

    async def get_price(self, token_id: str) -> Optional[float]: ...

    async def get_order_book(self, token_id: str) -> OrderBook: ...


# ── Order Execution ─────────────────────────────────────────────────────────

@runtime_checkable
class OrderExecutor(Protocol):
    """Places and cancels limit orders on a venue."""

    async def place_limit_order(
        self, token_id: str, price: float, size: float, side: Side
    ) -> OrderResult: ...

    async def cancel_order(self, order_id: str) -> bool: ...


# ── Odds Reference ──────────────────────────────────────────────────────────

@runtime_checkable
class OddsReferenceSource(Protocol):
    """Decimal odds per outcome for a referenced event."""

    async def get_odds(self, event_id: str) -> list[OddsOutcome]: ...


# ── Position Tracking ───────────────────────────────────────────────────────

@runtime_checkable
class PositionProvider(Protocol):
    """Supplies position snapshots to the risk monitor."""

    def get_open_positions(self) -> Union[list[Position], Awaitable[list[Position]]]: ...


# ── Event Delivery ──────────────────────────────────────────────────────────

# Any callable taking one event. Coroutine results are scheduled on the
# running loop and their failures are logged.
EventSink = Callable[[Any], Any]
