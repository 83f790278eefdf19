"""
Scheduler for Fixed-Cadence Recurring Tasks

Provides ScheduledLoop class that fires callbacks at exact intervals,
accounting for callback execution time to prevent drift.

Unlike asyncio.sleep()-based loops or fire-and-forget timers, this scheduler:
- Fires at exact wall-clock boundaries
- Runs the callback inline, so at most one tick is ever in flight
- Skips boundaries that pass while a tick is still running (never queues them)
- Tracks cumulative drift and the outcome of the last tick
- Stops cooperatively, letting an in-flight tick finish within a grace period

Usage:
    async def my_callback():
        # Do work...
        pass

    scheduler = ScheduledLoop(60.0, my_callback, name="logging")
    await scheduler.start()

    # Later:
    await scheduler.stop(grace_seconds=10)
    print(f"Skipped ticks: {scheduler.skipped_count}")
"""

import asyncio
import time
from typing import Awaitable, Callable

from opclogger.common.logging_setup import get_service_logger, log_tick_error

logger = get_service_logger("scheduler")

# Drift above this is treated as a system clock correction, not lateness
CLOCK_JUMP_THRESHOLD_S = 30

# Backward steps smaller than this only delay the next tick slightly
BACKWARD_STEP_TOLERANCE_S = 1.0


class ScheduledLoop:
    """
    Precise interval scheduler with an at-most-one-in-flight guarantee.

    If callback execution takes longer than the interval, the boundaries
    that passed in the meantime are skipped and counted; the next tick is
    scheduled relative to the original schedule, not relative to when the
    callback finished.

    Attributes:
        interval: The interval in seconds between executions
        callback: Async function to call each interval
        enabled: When False, start() is a no-op
        drift_seconds: Total accumulated drift (for observability)
        skipped_count: Number of intervals skipped because a tick overran
    """

    def __init__(
        self,
        interval_seconds: float,
        callback: Callable[[], Awaitable[None]],
        name: str = "unnamed",
        enabled: bool = True,
        align: bool = True,
    ):
        """
        Initialize a scheduled loop.

        Args:
            interval_seconds: Time between executions (supports sub-second)
            callback: Async function to call each interval
            name: Name for logging/identification
            enabled: Whether start() actually schedules ticks
            align: Align the first tick to the next interval boundary
                (False: first tick one interval after start)
        """
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got {interval_seconds}")

        self.interval = interval_seconds
        self.callback = callback
        self.name = name
        self.enabled = enabled
        self.align = align

        self._next_run: float = 0
        self._running = False
        self._in_flight = False
        self._task: asyncio.Task | None = None
        self._stop_event: asyncio.Event | None = None

        # Observability metrics
        self._drift_total: float = 0
        self._skipped_count: int = 0
        self._execution_count: int = 0
        self._error_count: int = 0
        self._last_execution_time: float = 0
        self._last_drift_ms: float = 0
        self._last_outcome: str | None = None
        self._last_error: str | None = None

    async def start(self) -> None:
        """Start the scheduled loop in a background task."""
        if self._running:
            return

        if not self.enabled:
            logger.info(f"Scheduler '{self.name}' is disabled, not starting")
            return

        self._running = True
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run(), name=f"scheduler:{self.name}")
        logger.info(f"Scheduler '{self.name}' started (interval: {self.interval}s)")

    async def stop(self, grace_seconds: float = 10.0) -> None:
        """
        Stop the scheduled loop.

        No new ticks are scheduled once this is called. A tick that is
        already running gets up to grace_seconds to finish before it is
        cancelled.
        """
        self._running = False
        if self._stop_event:
            self._stop_event.set()

        task, self._task = self._task, None
        if task is None:
            return

        try:
            await asyncio.wait_for(asyncio.shield(task), timeout=grace_seconds)
        except asyncio.TimeoutError:
            logger.warning(
                f"Scheduler '{self.name}' tick still running after {grace_seconds}s, cancelling",
                extra={"task": self.name},
            )
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        logger.info(f"Scheduler '{self.name}' stopped")

    def _first_boundary(self, now: float) -> float:
        if self.align:
            return ((now // self.interval) + 1) * self.interval
        return now + self.interval

    async def _run(self) -> None:
        """Main loop that fires callback at exact intervals."""
        self._next_run = self._first_boundary(time.time())

        while self._running:
            now = time.time()
            sleep_duration = self._next_run - now

            # The skip loop below keeps _next_run within one interval of now,
            # so anything further out means the clock was stepped backwards
            if sleep_duration > self.interval + BACKWARD_STEP_TOLERANCE_S:
                logger.info(
                    f"Scheduler '{self.name}' clock moved back "
                    f"{sleep_duration - self.interval:.0f}s, realigning"
                )
                self._next_run = self._first_boundary(now)
                sleep_duration = self._next_run - now

            if sleep_duration > 0:
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=sleep_duration)
                except asyncio.TimeoutError:
                    pass

            if not self._running:
                break

            # Track drift (how late we are)
            drift = time.time() - self._next_run

            if abs(drift) > CLOCK_JUMP_THRESHOLD_S:
                # NTP sync, suspend/resume etc. Realign instead of counting as drift
                logger.info(
                    f"Scheduler '{self.name}' clock jump detected ({drift:.0f}s), realigning"
                )
                self._last_drift_ms = 0
                self._next_run = self._first_boundary(time.time()) - self.interval
            else:
                self._drift_total += max(0, drift)
                self._last_drift_ms = drift * 1000

            tick_wall_start = time.time()
            await self._execute()

            now = time.time()
            if abs((now - tick_wall_start) - self._last_execution_time) > CLOCK_JUMP_THRESHOLD_S:
                # Clock was stepped while the tick ran
                logger.info(f"Scheduler '{self.name}' clock jump during tick, realigning")
                self._next_run = self._first_boundary(now)
                continue

            # Skip missed intervals to catch up (don't queue up missed executions)
            skipped = 0
            while self._next_run <= now:
                self._next_run += self.interval
                skipped += 1

            # First skip is expected (the one we just executed)
            if skipped > 1:
                self._skipped_count += skipped - 1
                logger.warning(
                    f"Scheduler '{self.name}' skipped {skipped - 1} intervals "
                    f"(execution took {self._last_execution_time:.3f}s)",
                    extra={"task": self.name},
                )

    async def _execute(self) -> None:
        """Run one tick, recording its outcome. Errors are logged, never raised."""
        self._in_flight = True
        start = time.monotonic()
        try:
            await self.callback()
            self._execution_count += 1
            self._last_outcome = "ok"
            self._last_error = None
        except Exception as e:
            self._error_count += 1
            self._last_outcome = "error"
            self._last_error = str(e)
            log_tick_error(logger, self.name, e)
        finally:
            self._last_execution_time = time.monotonic() - start
            self._in_flight = False

    @property
    def is_running(self) -> bool:
        """True between start() and stop()."""
        return self._running

    @property
    def in_flight(self) -> bool:
        """True while a tick is executing."""
        return self._in_flight

    @property
    def drift_seconds(self) -> float:
        """Total accumulated drift in seconds."""
        return self._drift_total

    @property
    def drift_ms(self) -> float:
        """Most recent drift in milliseconds."""
        return self._last_drift_ms

    @property
    def skipped_count(self) -> int:
        """Number of intervals skipped because a tick overran."""
        return self._skipped_count

    @property
    def execution_count(self) -> int:
        """Total number of successful executions."""
        return self._execution_count

    @property
    def error_count(self) -> int:
        """Total number of ticks whose callback raised."""
        return self._error_count

    @property
    def last_outcome(self) -> str | None:
        """'ok', 'error', or None before the first tick."""
        return self._last_outcome

    @property
    def last_error(self) -> str | None:
        return self._last_error

    @property
    def last_execution_time(self) -> float:
        """Duration of last callback execution in seconds."""
        return self._last_execution_time

    def get_stats(self) -> dict:
        """Get scheduler statistics for observability."""
        return {
            "name": self.name,
            "enabled": self.enabled,
            "running": self._running,
            "in_flight": self._in_flight,
            "interval_s": self.interval,
            "execution_count": self._execution_count,
            "error_count": self._error_count,
            "last_outcome": self._last_outcome,
            "last_error": self._last_error,
            "drift_total_s": round(self._drift_total, 3),
            "drift_last_ms": round(self._last_drift_ms, 1),
            "skipped_count": self._skipped_count,
            "last_execution_s": round(self._last_execution_time, 3),
        }


class SchedulerGroup:
    """
    Manage multiple scheduled loops together.

    Provides a single interface to start/stop multiple schedulers
    and aggregate their statistics. Loops in a group are independent:
    a slow or failing tick in one never delays another.
    """

    def __init__(self):
        self._schedulers: dict[str, ScheduledLoop] = {}

    def add(
        self,
        name: str,
        interval_seconds: float,
        callback: Callable[[], Awaitable[None]],
        enabled: bool = True,
        align: bool = True,
    ) -> ScheduledLoop:
        """Add a scheduler to the group."""
        scheduler = ScheduledLoop(interval_seconds, callback, name, enabled=enabled, align=align)
        self._schedulers[name] = scheduler
        return scheduler

    async def start_all(self) -> None:
        """Start all schedulers."""
        for scheduler in self._schedulers.values():
            await scheduler.start()

    async def stop_all(self, grace_seconds: float = 10.0) -> None:
        """Stop all schedulers, waiting on in-flight ticks concurrently."""
        await asyncio.gather(
            *(scheduler.stop(grace_seconds) for scheduler in self._schedulers.values())
        )

    def get_stats(self) -> dict:
        """Get aggregated statistics for all schedulers."""
        return {
            name: scheduler.get_stats()
            for name, scheduler in self._schedulers.items()
        }

    def get(self, name: str) -> ScheduledLoop | None:
        """Get a specific scheduler by name."""
        return self._schedulers.get(name)
