"""
Strategy Context

Owns a named registry of strategies and fans out their scan/execute
cycles concurrently. One strategy failing never blocks its siblings.

The recurring scan runs on an APScheduler interval job when
start_all(auto_scan=True) is used.
"""

import asyncio
from typing import Any, Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..config import config
from ..models.events import EventBus, StrategyEvent
from ..monitoring.logger import get_logger
from .base import CycleReport, Strategy, run_strategy_cycle

logger = get_logger("strategy_context")

SCAN_JOB_ID = "strategy_scan"


class StrategyContext:
    """
    Registry and coordinator for strategies.
    """

    def __init__(self, scan_interval_seconds: Optional[float] = None):
        """
        Initialize the context.

        Args:
            scan_interval_seconds: Cadence of the automatic run_once() job
        """
        self.scan_interval_seconds = scan_interval_seconds or config.engine.scan_interval_seconds
        self.events = EventBus("strategy_context")

        self._strategies: dict[str, Strategy] = {}
        self._forwarders: dict[str, Callable[[], None]] = {}
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def register(self, strategy: Strategy) -> bool:
        if strategy.name in self._strategies:
            logger.warning(f"Strategy {strategy.name} already registered, ignoring")
            return False

        self._strategies[strategy.name] = strategy
        self._forwarders[strategy.name] = strategy.on_event(self.events.emit)
        logger.info(f"Registered strategy {strategy.name} ({strategy.type.value})")
        return True

    def unregister(self, name: str) -> bool:
        strategy = self._strategies.get(name)
        if strategy is None:
            return False

        if strategy.is_running:
            strategy.stop()

        unsubscribe = self._forwarders.pop(name, None)
        if unsubscribe:
            unsubscribe()
        del self._strategies[name]
        logger.info(f"Unregistered strategy {name}")
        return True

    def get(self, name: str) -> Optional[Strategy]:
        return self._strategies.get(name)

    def get_all(self) -> list[Strategy]:
        return list(self._strategies.values())

    def get_enabled(self) -> list[Strategy]:
        return [s for s in self._strategies.values() if s.enabled]

    def __len__(self) -> int:
        return len(self._strategies)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._running

    def start_all(self, auto_scan: bool = True):
        """
        Start every enabled strategy.

        Args:
            auto_scan: Also schedule run_once() every scan_interval_seconds.
                Requires a running event loop.
        """
        for strategy in self.get_enabled():
            strategy.start()

        if auto_scan and self._scheduler is None:
            self._scheduler = AsyncIOScheduler()
            self._scheduler.add_job(
                self.run_once,
                IntervalTrigger(seconds=self.scan_interval_seconds),
                id=SCAN_JOB_ID,
                name="Strategy Scan",
                max_instances=1,
                coalesce=True,
            )
            self._scheduler.start()
            logger.info(f"Auto scan every {self.scan_interval_seconds}s")

        self._running = True
        logger.info(f"Started {len([s for s in self._strategies.values() if s.is_running])} strategies")

    def stop_all(self):
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None

        for strategy in self._strategies.values():
            strategy.stop()

        self._running = False
        logger.info("All strategies stopped")

    def start(self, name: str) -> bool:
        strategy = self._strategies.get(name)
        if strategy is None:
            return False
        strategy.start()
        return True

    def stop(self, name: str) -> bool:
        strategy = self._strategies.get(name)
        if strategy is None:
            return False
        strategy.stop()
        return True

    def enable(self, name: str) -> bool:
        strategy = self._strategies.get(name)
        if strategy is None:
            return False
        strategy.update_config(enabled=True)
        return True

    def disable(self, name: str) -> bool:
        strategy = self._strategies.get(name)
        if strategy is None:
            return False
        strategy.update_config(enabled=False)
        return True

    def set_scan_interval(self, seconds: float):
        if seconds <= 0:
            raise ValueError("Scan interval must be positive")
        self.scan_interval_seconds = seconds
        if self._scheduler is not None:
            self._scheduler.reschedule_job(SCAN_JOB_ID, trigger=IntervalTrigger(seconds=seconds))
        logger.info(f"Scan interval set to {seconds}s")

    # ------------------------------------------------------------------
    # Running
    # ------------------------------------------------------------------

    async def run_once(self) -> list[CycleReport]:
        """Run every enabled, started strategy concurrently."""
        strategies = [s for s in self._strategies.values() if s.enabled and s.is_running]
        if not strategies:
            return []

        results = await asyncio.gather(
            *(self._run_isolated(s) for s in strategies)
        )
        return [r for r in results if r is not None]

    async def _run_isolated(self, strategy: Strategy) -> Optional[CycleReport]:
        try:
            return await strategy.run()
        except Exception as e:
            logger.exception(f"Strategy {strategy.name} run failed: {e}")
            return None

    async def run_all(self) -> list[dict[str, Any]]:
        """
        Scan and execute every enabled, started strategy.

        Returns:
            One dict per strategy: {strategy, opportunities, executed}
            or {strategy, error}. Never raises.
        """
        strategies = [s for s in self.get_enabled() if s.is_running]

        async def run_one(strategy: Strategy) -> dict[str, Any]:
            try:
                report = await run_strategy_cycle(strategy)
            except Exception as e:
                logger.exception(f"Strategy {strategy.name} failed: {e}")
                return {"strategy": strategy.name, "error": str(e)}

            if report.error:
                return {"strategy": strategy.name, "error": report.error}
            return {
                "strategy": strategy.name,
                "opportunities": report.opportunities,
                "executed": report.executed,
            }

        return list(await asyncio.gather(*(run_one(s) for s in strategies)))

    # ------------------------------------------------------------------
    # Events and stats
    # ------------------------------------------------------------------

    def on_strategy_event(self, listener: Callable[[StrategyEvent], Any], kind=None) -> Callable[[], None]:
        """Listen to events from every registered strategy, including later ones."""
        return self.events.subscribe(kind, listener)

    def get_stats(self) -> dict[str, Any]:
        strategies = {}
        for name, strategy in self._strategies.items():
            stats = strategy.get_stats().to_dict()
            stats["enabled"] = strategy.enabled
            stats["running"] = strategy.is_running
            stats["type"] = strategy.type.value
            strategies[name] = stats

        all_stats = [s.get_stats() for s in self._strategies.values()]
        return {
            "strategies": strategies,
            "totals": {
                "strategies_count": len(self._strategies),
                "enabled_count": len(self.get_enabled()),
                "running_count": len([s for s in self._strategies.values() if s.is_running]),
                "total_opportunities_found": sum(s.opportunities_found for s in all_stats),
                "total_opportunities_executed": sum(s.opportunities_executed for s in all_stats),
                "total_pnl": sum(s.total_pnl for s in all_stats),
                "avg_win_rate": sum(s.win_rate for s in all_stats) / len(all_stats) if all_stats else 0.0,
            },
        }
