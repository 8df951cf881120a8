"""Probe scheduler: runs every (target, probe) pair on its own interval.

Each pair gets its own asyncio loop that runs once immediately and then at a
fixed rate. Runs happen in a thread pool so pairs proceed in parallel; a
per-pair lock guarantees a probe never overlaps with itself.
"""

from __future__ import annotations

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from sqlgauge.probes.runner import QueryRunner
    from sqlgauge.targets.registry import DatabaseTarget, ProbeDefinition

logger = logging.getLogger(__name__)


class ProbeScheduler:
    """Schedules and executes probes for all configured targets."""

    def __init__(
        self,
        targets: list[DatabaseTarget],
        runner: QueryRunner,
        seconds_per_minute: float = 60.0,
    ) -> None:
        self.targets = targets
        self.runner = runner
        self.seconds_per_minute = seconds_per_minute
        self._pairs = [(t, p) for t in targets for p in t.probes]
        self._locks: dict[tuple[str, str], asyncio.Lock] = {}
        self._executor = ThreadPoolExecutor(
            max_workers=max(4, len(self._pairs)), thread_name_prefix="probe",
        )
        self._tasks: list[asyncio.Task[None]] = []
        self._running = False

    async def start(self) -> None:
        """Start one loop per (target, probe) pair."""
        if self._running:
            return
        self._running = True

        if not self._pairs:
            logger.info("No queries configured; scheduler idle")
            return

        for target, probe in self._pairs:
            # target/probe are bound as arguments, not closed over
            task = asyncio.create_task(
                self._probe_loop(target, probe),
                name=f"probe-{target.name}-{probe.name}",
            )
            self._tasks.append(task)

        logger.info(
            "Probe scheduler started: %d queries across %d databases",
            len(self._pairs), len(self.targets),
        )

    async def stop(self) -> None:
        """Stop all probe loops."""
        self._running = False
        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        self._executor.shutdown(wait=False)
        logger.info("Probe scheduler stopped")

    @property
    def running(self) -> bool:
        return self._running

    async def run_all_now(self) -> int:
        """Run every probe immediately, in parallel. Returns how many ran."""
        ran = await asyncio.gather(*(self.run_once(t, p) for t, p in self._pairs))
        return sum(ran)

    async def run_target_probes(self, target_name: str) -> int:
        """Run all probes of one target immediately. Returns how many ran."""
        pairs = [(t, p) for t, p in self._pairs if t.name == target_name]
        ran = await asyncio.gather(*(self.run_once(t, p) for t, p in pairs))
        return sum(ran)

    async def run_once(self, target: DatabaseTarget, probe: ProbeDefinition) -> bool:
        """Run one probe unless it is already in flight. Returns False if skipped."""
        lock = self._locks.setdefault((target.name, probe.name), asyncio.Lock())
        if lock.locked():
            logger.warning(
                "Query %s/%s still running; skipping this tick", target.name, probe.name,
            )
            return False

        async with lock:
            loop = asyncio.get_running_loop()
            try:
                await loop.run_in_executor(self._executor, self.runner.run, target, probe)
            except Exception:
                logger.exception("Query error: %s/%s", target.name, probe.name)
        return True

    async def _probe_loop(self, target: DatabaseTarget, probe: ProbeDefinition) -> None:
        """Persistent fixed-rate loop for a single probe; first run is immediate."""
        loop = asyncio.get_running_loop()
        interval = probe.interval_minutes * self.seconds_per_minute
        next_fire = loop.time()

        while self._running:
            try:
                await self.run_once(target, probe)

                next_fire += interval
                now = loop.time()
                if now > next_fire:
                    missed = int((now - next_fire) // interval) + 1
                    logger.warning(
                        "Query %s/%s overran its %gs interval; skipping %d tick(s)",
                        target.name, probe.name, interval, missed,
                    )
                    next_fire += missed * interval
                await asyncio.sleep(next_fire - now)
            except asyncio.CancelledError:
                break
