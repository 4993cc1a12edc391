"""
Caller-owned collection of opportunities.

Strategies never delete opportunities. The engine keeps the ones it has
seen here and purges terminal or expired entries on its own cadence.
"""

from typing import Callable, Iterable, Optional

from .opportunity import Opportunity, OpportunityStatus, OpportunityType


class OpportunityBook:
    """Opportunities keyed by id, in insertion order."""

    def __init__(self, opportunities: Optional[Iterable[Opportunity]] = None):
        self._items: dict[str, Opportunity] = {}
        for opp in opportunities or []:
            self.add(opp)

    def add(self, opportunity: Opportunity):
        self._items[opportunity.id] = opportunity

    def get(self, opportunity_id: str) -> Optional[Opportunity]:
        return self._items.get(opportunity_id)

    def remove(self, opportunity_id: str) -> bool:
        return self._items.pop(opportunity_id, None) is not None

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self):
        return iter(list(self._items.values()))

    def __contains__(self, opportunity_id: str) -> bool:
        return opportunity_id in self._items

    def filter(self, predicate: Callable[[Opportunity], bool]) -> list[Opportunity]:
        return [opp for opp in self._items.values() if predicate(opp)]

    def by_type(self, opp_type: OpportunityType) -> list[Opportunity]:
        return self.filter(lambda o: o.type == opp_type)

    def by_status(self, status: OpportunityStatus) -> list[Opportunity]:
        return self.filter(lambda o: o.status == status)

    def by_market(self, market_id: str) -> list[Opportunity]:
        return self.filter(lambda o: market_id in o.market_ids)

    def valid(self) -> list[Opportunity]:
        return self.filter(lambda o: o.is_valid)

    def profitable(self, min_profit: float = 0.0, min_profit_percent: float = 0.0) -> list[Opportunity]:
        return self.filter(lambda o: o.is_profitable(min_profit, min_profit_percent))

    def best(self, n: int = 1) -> list[Opportunity]:
        """Top n valid opportunities by expected profit."""
        return sorted(self.valid(), key=lambda o: o.expected_profit, reverse=True)[:n]

    def purge(self) -> int:
        """
        Drop terminal and expired opportunities.

        Pending entries that aged out are marked EXPIRED before removal.

        Returns:
            Number of entries removed
        """
        removed = 0
        for opp in list(self._items.values()):
            if opp.status == OpportunityStatus.PENDING and opp.is_expired:
                opp.mark_expired()
            if opp.is_terminal or opp.is_expired:
                del self._items[opp.id]
                removed += 1
        return removed

    def summary(self) -> dict:
        opps = list(self._items.values())
        valid = [o for o in opps if o.is_valid]
        return {
            "total": len(opps),
            "valid": len(valid),
            "by_type": {t.value: sum(1 for o in opps if o.type == t) for t in OpportunityType},
            "by_status": {s.value: sum(1 for o in opps if o.status == s) for s in OpportunityStatus},
            "total_expected_profit": sum(o.expected_profit for o in valid),
            "avg_confidence": sum(o.confidence for o in valid) / len(valid) if valid else 0.0,
        }
