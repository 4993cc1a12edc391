"""
Domain models.

Includes:
- Opportunities, legs and their lifecycle state machine
- Position snapshots read by the risk manager
- Market and odds snapshots from data collaborators
- Strategy lifecycle events and risk alerts
"""

from .opportunity import (
    Opportunity,
    OpportunityType,
    OpportunityStatus,
    Leg,
    Side,
)
from .position import Position
from .market import BinaryMarket, OddsOutcome, OrderBook, OrderBookLevel, MarketMapping
from .events import (
    EventBus,
    StrategyEvent,
    StrategyEventType,
    RiskAlert,
    RiskAlertLevel,
    RiskAlertType,
)
from .opportunity_book import OpportunityBook

__all__ = [
    "Opportunity",
    "OpportunityType",
    "OpportunityStatus",
    "Leg",
    "Side",
    "Position",
    "BinaryMarket",
    "OddsOutcome",
    "OrderBook",
    "OrderBookLevel",
    "MarketMapping",
    "EventBus",
    "StrategyEvent",
    "StrategyEventType",
    "RiskAlert",
    "RiskAlertLevel",
    "RiskAlertType",
    "OpportunityBook",
]
