"""Periodic scheduler that runs monitor cycles until stopped."""

import asyncio
import logging
from collections import deque

from solscalp.monitor.cycle import CycleReport, MonitorCycle

logger = logging.getLogger("solscalp.monitor")


class MonitorRunner:
    """Run ``MonitorCycle.run_once`` every *interval_seconds*.

    A cycle that raises is logged and the loop carries on with the next one.
    Only the newest *max_reports* cycle reports are kept.
    """

    def __init__(
        self,
        cycle: MonitorCycle,
        interval_seconds: int = 60,
        max_reports: int = 100,
    ) -> None:
        self._cycle = cycle
        self._interval = interval_seconds
        self._max_reports = max(1, max_reports)
        self._running = False
        self._cycle_count = 0

    @property
    def running(self) -> bool:
        return self._running

    @property
    def cycle_count(self) -> int:
        return self._cycle_count

    def stop(self) -> None:
        """Signal the runner to stop after the current cycle."""
        self._running = False

    async def run(self, max_cycles: int = 0) -> list[CycleReport]:
        """Run cycles until stopped.

        Args:
            max_cycles: Stop after this many cycles (0 = unlimited).

        Returns:
            The reports of the newest cycles that completed, oldest first.
        """
        self._running = True
        reports: deque[CycleReport] = deque(maxlen=self._max_reports)
        cycle = 0

        while self._running:
            cycle += 1
            self._cycle_count += 1
            try:
                report = await self._cycle.run_once()
                reports.append(report)
                logger.info(
                    "Cycle %d: %s",
                    cycle,
                    ", ".join(f"{r.plan_id}={r.action}" for r in report.results) or "no plans",
                )
            except Exception as exc:
                logger.error("Cycle %d error: %s", cycle, exc)

            if max_cycles > 0 and cycle >= max_cycles:
                break

            # Interruptible sleep, checks _running every second
            for _ in range(self._interval):
                if not self._running:
                    break
                await asyncio.sleep(1)

        self._running = False
        return list(reports)
