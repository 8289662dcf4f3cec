"""Scheduler: Fixed-interval cycle runner with overlap protection.

A CycleScheduler fires its cycle immediately on start and then every
``interval`` seconds. Ticks are measured from the start time, not from the
end of the previous cycle, so a slow cycle does not shift the schedule. A
tick that finds the previous cycle still running is dropped and counted in
``RunStatistics.skipped_ticks``; it is never queued.

.. code-block:: python

    scheduler = CycleScheduler("domain", orchestrator.run_domain_cycle, 600)
    task = asyncio.create_task(scheduler.start())
    ...
    scheduler.stop()
    await task  # returns once the in-flight cycle has finished
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Protocol

from .Broadcaster import BroadcastSummary, UpdateStatus

logger = logging.getLogger(__name__)


@dataclass
class CycleError:
    """One error recorded during a cycle."""

    stage: str
    error: str
    token_address: str | None = None

    def __str__(self) -> str:
        return f"[{self.stage}] {self.token_address or 'N/A'}: {self.error}"


@dataclass
class CycleReport:
    """Counters for a single cycle.

    :ivar error: Set when the broadcast was aborted before any item.
    :ivar duration: Wall-clock duration in seconds.
    """

    tokens_found: int = 0
    tokens_processed: int = 0
    valuations_calculated: int = 0
    valuations_failed: int = 0
    updates_attempted: int = 0
    updates_successful: int = 0
    updates_skipped: int = 0
    updates_failed: int = 0
    errors: list[CycleError] = field(default_factory=list)
    error: str | None = None
    duration: float = 0.0

    def record_broadcast(self, summary: BroadcastSummary) -> None:
        """Fold a broadcast summary into this report."""
        self.updates_attempted += summary.total
        self.updates_successful += summary.successful
        self.updates_skipped += summary.skipped
        self.updates_failed += summary.failed
        if summary.error:
            self.error = summary.error
            self.errors.append(CycleError("broadcast", summary.error))
        for outcome in summary.transactions:
            if outcome.status is UpdateStatus.FAILED:
                self.errors.append(
                    CycleError("oracle_update", outcome.error or "", outcome.token_address)
                )

    def log_summary(self, title: str) -> None:
        logger.info("=" * 60)
        logger.info(title)
        logger.info("=" * 60)
        logger.info(f"Duration: {self.duration:.2f}s")
        logger.info(f"Tokens Found: {self.tokens_found}")
        logger.info(f"Tokens Processed: {self.tokens_processed}")
        logger.info(
            f"Valuations Calculated: {self.valuations_calculated} "
            f"(failed={self.valuations_failed})"
        )
        logger.info(
            f"Oracle Updates Attempted: {self.updates_attempted} "
            f"(successful={self.updates_successful}, "
            f"skipped={self.updates_skipped}, failed={self.updates_failed})"
        )
        for i, err in enumerate(self.errors[:5]):
            logger.info(f"  {i + 1}. {err}")
        if len(self.errors) > 5:
            logger.info(f"  ... and {len(self.errors) - 5} more errors")
        logger.info("=" * 60)


@dataclass
class RunStatistics:
    """Process-lifetime counters for one pipeline.

    :ivar errors: Errors of any stage, including failed cycles.
    """

    total_runs: int = 0
    tokens_processed: int = 0
    valuations_failed: int = 0
    updates_successful: int = 0
    updates_skipped: int = 0
    updates_failed: int = 0
    errors: int = 0
    skipped_ticks: int = 0
    last_error: str | None = None
    last_run_time: datetime | None = None

    def record(self, report: CycleReport) -> None:
        self.total_runs += 1
        self.tokens_processed += report.tokens_processed
        self.valuations_failed += report.valuations_failed
        self.updates_successful += report.updates_successful
        self.updates_skipped += report.updates_skipped
        self.updates_failed += report.updates_failed
        self.errors += len(report.errors)
        self.last_run_time = datetime.now(timezone.utc)
        if report.error:
            self.last_error = report.error
        elif report.errors:
            self.last_error = str(report.errors[-1])

    def record_failure(self, error: BaseException) -> None:
        self.total_runs += 1
        self.errors += 1
        self.last_run_time = datetime.now(timezone.utc)
        self.last_error = str(error) or type(error).__name__

    def as_dict(self) -> dict:
        stats = asdict(self)
        if self.last_run_time is not None:
            stats["last_run_time"] = self.last_run_time.isoformat()
        return stats


class CycleObserver(Protocol):
    """Optional callbacks for cycle lifecycle notifications."""

    def on_cycle_started(self, name: str, run_number: int) -> None: ...

    def on_cycle_finished(self, name: str, report: CycleReport) -> None: ...

    def on_cycle_failed(self, name: str, error: Exception) -> None: ...


class CycleScheduler:
    """Runs one pipeline cycle on a fixed interval.

    :ivar name: Pipeline name used in log lines.
    :ivar interval: Seconds between ticks.
    :ivar stats: Accumulated statistics.
    """

    def __init__(
        self,
        name: str,
        cycle: Callable[[], Awaitable[CycleReport]],
        interval: float,
        observer: CycleObserver | None = None,
    ) -> None:
        """Initialize the scheduler.

        :param name: Pipeline name.
        :param cycle: Coroutine function running one cycle.
        :param interval: Seconds between ticks (must be positive).
        :param observer: Optional lifecycle observer.
        :raises ValueError: If the interval is not positive.
        """
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.name = name
        self.cycle = cycle
        self.interval = interval
        self.observer = observer
        self.stats = RunStatistics()

        self._in_cycle = False
        self._task: asyncio.Task | None = None
        self._stop_event = asyncio.Event()
        self._active = False

    @property
    def running(self) -> bool:
        """True while a cycle is in flight."""
        return self._in_cycle or (self._task is not None and not self._task.done())

    @property
    def active(self) -> bool:
        """True while the timer loop is running."""
        return self._active

    async def run_cycle(self) -> CycleReport | None:
        """Run one cycle, recording its outcome.

        Exceptions from the cycle are logged and stored as ``last_error``.

        :returns: The cycle report, or None if the cycle failed.
        """
        self._in_cycle = True
        run_number = self.stats.total_runs + 1
        logger.info(f"[{self.name}] Starting cycle #{run_number}")
        if self.observer:
            self.observer.on_cycle_started(self.name, run_number)

        start = time.monotonic()
        try:
            report = await self.cycle()
        except Exception as e:
            logger.error(f"[{self.name}] Cycle #{run_number} failed: {e}")
            self.stats.record_failure(e)
            if self.observer:
                self.observer.on_cycle_failed(self.name, e)
            return None
        finally:
            self._in_cycle = False

        if not report.duration:
            report.duration = time.monotonic() - start
        self.stats.record(report)
        if self.observer:
            self.observer.on_cycle_finished(self.name, report)
        return report

    def tick(self) -> asyncio.Task | None:
        """Launch a cycle unless one is already running.

        Must be called from within a running event loop.

        :returns: Task running the cycle, or None if the tick was skipped.
        """
        if self.running:
            self.stats.skipped_ticks += 1
            logger.warning(
                f"[{self.name}] Skipping scheduled run (previous cycle still running)"
            )
            return None
        self._task = asyncio.create_task(self.run_cycle())
        return self._task

    async def start(self) -> None:
        """Run the timer loop until stop() is called.

        The first tick fires immediately. On stop, waits for the in-flight
        cycle to finish before returning.
        """
        if self._active:
            logger.warning(f"[{self.name}] Scheduler already running")
            return

        self._active = True
        logger.info(f"[{self.name}] Scheduler started, interval {self.interval}s")

        loop = asyncio.get_running_loop()
        next_tick = loop.time()
        try:
            while not self._stop_event.is_set():
                self.tick()
                next_tick += self.interval
                try:
                    await asyncio.wait_for(
                        self._stop_event.wait(),
                        timeout=max(0.0, next_tick - loop.time()),
                    )
                except asyncio.TimeoutError:
                    pass
        finally:
            self._active = False
            await self.wait_idle()
            self._stop_event.clear()
            logger.info(f"[{self.name}] Scheduler stopped")

    def stop(self) -> None:
        """Stop scheduling new ticks; an in-flight cycle is left to finish."""
        self._stop_event.set()

    async def wait_idle(self) -> None:
        """Wait for the in-flight cycle, if any."""
        if self._task is not None and not self._task.done():
            await self._task
