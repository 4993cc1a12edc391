"""
Task Scheduler

Runs the engine's recurring work:
- Opportunity scan every SCAN_INTERVAL_SECONDS
- Position/risk monitor every RISK_MONITOR_INTERVAL_SECONDS
- Opportunity book housekeeping
- Daily summary at end of day
"""

import asyncio
from datetime import datetime
from typing import Optional
import signal

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from .config import config
from .main import TradingEngine
from .monitoring import get_logger, AlertManager

logger = get_logger("scheduler")


class TradingScheduler:
    """
    Manages scheduled engine tasks. Each job logs its own failures.
    """

    def __init__(
        self,
        engine: TradingEngine,
        alerts: Optional[AlertManager] = None,
    ):
        """
        Initialize scheduler.

        Args:
            engine: TradingEngine instance
            alerts: AlertManager for notifications (defaults to the engine's)
        """
        self.engine = engine
        self.alerts = alerts or engine.alerts
        self.scheduler = AsyncIOScheduler()

        # Track state
        self._running = False
        self._scans_today = 0
        self._last_scan_time: Optional[datetime] = None

    @property
    def is_running(self) -> bool:
        return self._running

    def setup_jobs(self):
        """Configure scheduled jobs."""
        self.scheduler.add_job(
            self._run_scan,
            IntervalTrigger(seconds=config.engine.scan_interval_seconds),
            id="opportunity_scan",
            name="Opportunity Scan",
            max_instances=1,
            coalesce=True,
        )

        self.scheduler.add_job(
            self._monitor_positions,
            IntervalTrigger(seconds=config.engine.risk_monitor_interval_seconds),
            id="position_monitor",
            name="Position Monitor",
            max_instances=1,
            coalesce=True,
        )

        self.scheduler.add_job(
            self._housekeeping,
            IntervalTrigger(minutes=config.engine.housekeeping_interval_minutes),
            id="housekeeping",
            name="Housekeeping",
        )

        self.scheduler.add_job(
            self._send_daily_summary,
            CronTrigger(hour="23", minute="0"),
            id="daily_summary",
            name="Daily Summary",
        )

        logger.info("Scheduled jobs configured")

    async def _run_scan(self):
        if not self._running:
            return

        try:
            results = await self.engine.run_cycle()
            self._scans_today += 1
            self._last_scan_time = datetime.now()

            opportunities = sum(r.get("opportunities", 0) for r in results)
            executed = sum(r.get("executed", 0) for r in results)
            logger.debug(f"Scan complete: {opportunities} opportunities, {executed} executed")

        except Exception as e:
            logger.error(f"Opportunity scan failed: {e}")
            if self.alerts:
                await self.alerts.strategy_error("scheduler", str(e))

    async def _monitor_positions(self):
        if not self._running:
            return

        try:
            alerts = await self.engine.monitor_positions()
            if alerts:
                logger.info(f"Risk monitor raised {len(alerts)} alerts")
        except Exception as e:
            logger.error(f"Position monitor failed: {e}")

    async def _housekeeping(self):
        try:
            self.engine.housekeeping()
        except Exception as e:
            logger.error(f"Housekeeping failed: {e}")

    async def _send_daily_summary(self):
        try:
            summary = self.engine.get_daily_summary()
            if self.alerts:
                await self.alerts.daily_summary(**summary)
            logger.info(f"Daily summary: {summary}, scans today: {self._scans_today}")
            self._scans_today = 0
        except Exception as e:
            logger.error(f"Failed to send daily summary: {e}")

    def start(self):
        """Start the scheduler."""
        if self._running:
            logger.warning("Scheduler already running")
            return

        self._running = True
        self.setup_jobs()
        self.scheduler.start()
        logger.info("Scheduler started")

    def stop(self):
        """Stop the scheduler."""
        if not self._running:
            return

        self._running = False
        self.scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")

    async def run_forever(self):
        """Run the scheduler until SIGINT/SIGTERM."""
        self.start()

        loop = asyncio.get_running_loop()
        stop_event = asyncio.Event()

        def shutdown():
            logger.info("Shutdown signal received")
            stop_event.set()

        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, shutdown)

        logger.info("Running scheduler... Press Ctrl+C to stop")

        try:
            await stop_event.wait()
        finally:
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.remove_signal_handler(sig)
            self.stop()


async def run_scheduler(engine: Optional[TradingEngine] = None):
    """
    Main entry point for running the scheduler.

    Args:
        engine: Engine with its collaborators injected (a paper engine if None)
    """
    engine = engine or TradingEngine()
    async with engine:
        scheduler = TradingScheduler(engine)

        logger.info("Running initial scan...")
        await engine.run_cycle()

        await scheduler.run_forever()


def main():
    """Command line entry point."""
    import argparse

    parser = argparse.ArgumentParser(description="Edge Trader Scheduler")
    parser.add_argument("--capital", type=float, default=None,
                        help="Capital each strategy sizes against")
    parser.add_argument("--auto-exit", action="store_true",
                        help="Close positions when a stop-loss or take-profit fires")

    args = parser.parse_args()

    asyncio.run(run_scheduler(TradingEngine(available_capital=args.capital, auto_exit=args.auto_exit)))


if __name__ == "__main__":
    main()
