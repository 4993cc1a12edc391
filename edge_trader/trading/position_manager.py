"""
Position Manager

In-memory book of positions built from executed legs.

The risk manager reads open positions from here on every risk cycle
(get_open_positions satisfies the PositionProvider contract). Fills on the
same token and side are merged into one position at a volume-weighted entry
price.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from ..interfaces import MarketDataSource
from ..models.opportunity import Side
from ..models.position import Position
from ..monitoring.logger import get_logger
from ..strategy.executor import TradeResult

logger = get_logger("position_manager")


class ExitReason(Enum):
    """Reasons for closing a position."""
    STOP_LOSS = "stop_loss"
    TAKE_PROFIT = "take_profit"
    RISK_LIMIT = "risk_limit"
    MANUAL = "manual"


class PositionManager:
    """Tracks open and closed positions."""

    def __init__(self):
        self.positions: dict[str, Position] = {}
        self.exit_reasons: dict[str, ExitReason] = {}
        self._position_counter = 0

    def _find_open(self, token_id: str, side: Side) -> Optional[Position]:
        for position in self.positions.values():
            if position.is_open and position.token_id == token_id and position.side == side:
                return position
        return None

    def open_position(self, market_id: str, token_id: str, side: Side, size: float, price: float) -> Position:
        """
        Register a fill, adding to an existing open position when there is one.

        Args:
            market_id: Market the token belongs to
            token_id: Token that was traded
            side: BUY opens a long, SELL a short
            size: Shares filled
            price: Fill price

        Returns:
            The created or enlarged Position
        """
        if size <= 0:
            raise ValueError("size must be positive")

        existing = self._find_open(token_id, side)
        if existing is not None:
            existing.add_to_position(size, price)
            logger.debug(
                f"[PositionManager] Added {size} to {existing.id}, "
                f"avg entry now {existing.avg_entry_price:.4f}"
            )
            return existing

        self._position_counter += 1
        position = Position(
            id=f"POS-{self._position_counter:06d}",
            market_id=market_id,
            token_id=token_id,
            side=side,
            size=size,
            avg_entry_price=price,
            current_price=price,
        )
        self.positions[position.id] = position
        logger.info(
            f"[PositionManager] Opened {position.id}: {side.value.upper()} {size} "
            f"{token_id[:8]} @ {price:.4f}"
        )
        return position

    def apply_trade(self, result: TradeResult) -> list[Position]:
        """Book the fills of a trade. A failed trade books only legs its rollback could not cancel."""
        fills = result.fills if result.success else result.unhedged_legs
        return [
            self.open_position(
                market_id=fill.leg.market_id,
                token_id=fill.leg.token_id,
                side=fill.leg.side,
                size=fill.size,
                price=fill.price,
            )
            for fill in fills
            if fill.size > 0
        ]

    def update_price(self, token_id: str, price: float) -> int:
        """Mark every open position in the token to price. Returns the count updated."""
        updated = 0
        for position in self.get_open_positions():
            if position.token_id == token_id:
                position.update_price(price)
                updated += 1
        return updated

    async def refresh_prices(self, market_data: MarketDataSource) -> int:
        """Pull current prices for every held token."""
        updated = 0
        tokens = {p.token_id for p in self.get_open_positions()}
        for token_id in tokens:
            try:
                price = await market_data.get_price(token_id)
            except Exception as e:
                logger.warning(f"[PositionManager] Price refresh failed for {token_id}: {e}")
                continue
            if price is not None:
                updated += self.update_price(token_id, price)
        return updated

    def close_position(
        self,
        position_id: str,
        exit_price: float,
        size: Optional[float] = None,
        reason: ExitReason = ExitReason.MANUAL,
    ) -> float:
        """
        Close all or part of a position.

        Args:
            position_id: Position to close
            exit_price: Price received on exit
            size: Shares to close (default all)
            reason: Why the position was closed

        Returns:
            Realized PnL on the closed shares
        """
        if position_id not in self.positions:
            raise ValueError(f"Unknown position: {position_id}")

        position = self.positions[position_id]
        if not position.is_open:
            raise ValueError(f"Position {position_id} is already closed")

        pnl = position.reduce_position(size if size is not None else position.size, exit_price)
        if not position.is_open:
            self.exit_reasons[position_id] = reason

        logger.info(
            f"[PositionManager] {'Closed' if not position.is_open else 'Reduced'} {position_id} "
            f"@ {exit_price:.4f} ({reason.value}): PnL ${pnl:+.2f}"
        )
        return pnl

    def get_position(self, position_id: str) -> Optional[Position]:
        return self.positions.get(position_id)

    def get_open_positions(self) -> list[Position]:
        """Get all currently open positions."""
        return [p for p in self.positions.values() if p.is_open]

    def get_closed_positions(self) -> list[Position]:
        return [p for p in self.positions.values() if not p.is_open]

    def get_positions_by_market(self, market_id: str) -> list[Position]:
        return [p for p in self.get_open_positions() if p.market_id == market_id]

    def get_total_exposure(self) -> float:
        """Current value of all open positions."""
        return sum(p.current_value for p in self.get_open_positions())

    def get_market_exposure(self, market_id: str) -> float:
        return sum(p.current_value for p in self.get_positions_by_market(market_id))

    def get_total_unrealized_pnl(self) -> float:
        return sum(p.unrealized_pnl for p in self.get_open_positions())

    def get_total_realized_pnl(self) -> float:
        return sum(p.realized_pnl for p in self.positions.values())

    def get_summary(self) -> dict:
        return {
            "open_positions": len(self.get_open_positions()),
            "closed_positions": len(self.get_closed_positions()),
            "total_exposure": round(self.get_total_exposure(), 2),
            "unrealized_pnl": round(self.get_total_unrealized_pnl(), 2),
            "realized_pnl": round(self.get_total_realized_pnl(), 2),
            "timestamp": datetime.now().isoformat(),
        }
