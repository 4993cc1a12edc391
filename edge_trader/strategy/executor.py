"""
Trade Executor

Places the legs of an opportunity through an OrderExecutor.

Responsibilities:
- Sequential leg placement
- Best-effort rollback when a later leg fails
- Surfacing legs that could not be rolled back
- Trade journaling

Multi-leg execution is not atomic. If a leg fails, already placed legs
are cancelled; a leg whose cancel also fails stays open and is reported
in TradeResult.unhedged_legs.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional
import itertools

from ..monitoring.logger import get_logger
from ..interfaces import OrderExecutor, OrderResult
from ..models.opportunity import Leg, Opportunity, Side

logger = get_logger("executor")


@dataclass
class LegFill:
    """One placed leg."""
    leg: Leg
    order_id: str
    size: float
    price: float
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        return {
            "token_id": self.leg.token_id,
            "side": self.leg.side.value,
            "order_id": self.order_id,
            "size": self.size,
            "price": self.price,
        }


@dataclass
class TradeResult:
    """Result of executing one opportunity."""
    success: bool
    fills: list[LegFill] = field(default_factory=list)
    total_profit: float = 0.0
    error: Optional[str] = None
    unhedged_legs: list[LegFill] = field(default_factory=list)

    @property
    def order_ids(self) -> list[str]:
        return [f.order_id for f in self.fills]

    @property
    def is_win(self) -> bool:
        return self.success and self.total_profit > 0

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "fills": [f.to_dict() for f in self.fills],
            "total_profit": self.total_profit,
            "error": self.error,
            "unhedged_legs": [f.to_dict() for f in self.unhedged_legs],
        }


@dataclass
class TradeJournal:
    """Journal of executed opportunities for analysis."""
    entries: list[dict] = field(default_factory=list)
    max_entries: int = 1000

    def add(self, opportunity: Opportunity, result: TradeResult):
        self.entries.append({
            "timestamp": datetime.now().isoformat(),
            "opportunity_id": opportunity.id,
            "type": opportunity.type.value,
            "success": result.success,
            "expected_profit": opportunity.expected_profit,
            "total_profit": result.total_profit,
            "order_ids": result.order_ids,
            "unhedged": len(result.unhedged_legs),
            "error": result.error,
        })
        if len(self.entries) > self.max_entries:
            self.entries = self.entries[-self.max_entries:]

    def get_summary(self) -> dict:
        """Get summary statistics of all trades."""
        if not self.entries:
            return {
                "total_trades": 0,
                "success_rate": 0,
                "total_profit": 0,
                "unhedged_trades": 0,
            }

        successful = [e for e in self.entries if e["success"]]
        return {
            "total_trades": len(self.entries),
            "successful_trades": len(successful),
            "success_rate": len(successful) / len(self.entries),
            "total_profit": sum(e["total_profit"] for e in successful),
            "unhedged_trades": len([e for e in self.entries if e["unhedged"]]),
        }


class TradeExecutor:
    """
    Executes opportunity legs against an OrderExecutor.
    """

    def __init__(self, order_executor: OrderExecutor, name: str = "executor"):
        """
        Initialize trade executor.

        Args:
            order_executor: Venue adapter (live or paper)
            name: Label used in log lines
        """
        self.order_executor = order_executor
        self.name = name
        self.journal = TradeJournal()

    async def execute_legs(
        self,
        opportunity: Opportunity,
        size: Optional[float] = None,
    ) -> TradeResult:
        """
        Place every leg in order; roll back on the first failure.

        Args:
            opportunity: Opportunity to execute
            size: Shares per leg; capped at each leg's own size

        Returns:
            TradeResult (never raises for order rejections)
        """
        opportunity.mark_executing()
        fills: list[LegFill] = []

        for leg in opportunity.legs:
            leg_size = leg.size if size is None else min(size, leg.size)
            if leg_size <= 0:
                return await self._fail(opportunity, fills, f"Leg {leg.token_id} has no size")

            result: OrderResult = await self.order_executor.place_limit_order(
                leg.token_id, leg.price, leg_size, leg.side
            )
            if not result.success:
                error = result.error_msg or "Order rejected"
                logger.warning(f"[{self.name}] Leg {leg.token_id} {leg.side.value} failed: {error}")
                return await self._fail(opportunity, fills, error)

            fills.append(LegFill(leg=leg, order_id=result.order_id or "", size=leg_size, price=leg.price))

        opportunity.mark_executed()

        filled = min(f.size for f in fills)
        full = min(leg.size for leg in opportunity.legs)
        profit = opportunity.expected_profit * (filled / full) if full > 0 else 0.0

        result = TradeResult(success=True, fills=fills, total_profit=profit)
        self.journal.add(opportunity, result)
        return result

    async def _fail(self, opportunity: Opportunity, fills: list[LegFill], error: str) -> TradeResult:
        unhedged = await self.rollback(fills)
        opportunity.mark_failed()

        if unhedged:
            logger.error(
                f"[{self.name}] {opportunity.id}: {len(unhedged)} leg(s) left open after rollback: "
                f"{[f.order_id for f in unhedged]}"
            )

        result = TradeResult(success=False, fills=fills, error=error, unhedged_legs=unhedged)
        self.journal.add(opportunity, result)
        return result

    async def rollback(self, fills: list[LegFill]) -> list[LegFill]:
        """
        Cancel placed legs, newest first.

        Returns:
            Fills that could not be cancelled
        """
        unhedged = []
        for fill in reversed(fills):
            try:
                cancelled = await self.order_executor.cancel_order(fill.order_id)
            except Exception as e:
                logger.error(f"[{self.name}] Cancel of {fill.order_id} raised: {e}")
                cancelled = False
            if not cancelled:
                unhedged.append(fill)
        return unhedged

    def get_journal_summary(self) -> dict:
        """Get summary of all executed trades."""
        return self.journal.get_summary()


class PaperOrderExecutor:
    """
    Dry-run venue: fills every order at the requested price.

    Orders are recorded locally and nothing leaves the process.
    """

    def __init__(self):
        self._counter = itertools.count(1)
        self.orders: dict[str, dict] = {}

    async def place_limit_order(self, token_id: str, price: float, size: float, side: Side) -> OrderResult:
        if size <= 0:
            return OrderResult(success=False, error_msg="Size must be positive")
        if not 0 < price < 1:
            return OrderResult(success=False, error_msg=f"Price {price} outside (0, 1)")

        order_id = f"dry_run_{next(self._counter)}"
        self.orders[order_id] = {
            "token_id": token_id,
            "price": price,
            "size": size,
            "side": side.value,
            "status": "filled",
            "timestamp": datetime.now().isoformat(),
        }
        logger.info(f"[DRY RUN] {side.value} {size:.0f} {token_id} @ {price:.3f} -> {order_id}")
        return OrderResult(success=True, order_id=order_id)

    async def cancel_order(self, order_id: str) -> bool:
        order = self.orders.get(order_id)
        if order is None:
            return False
        order["status"] = "cancelled"
        return True
