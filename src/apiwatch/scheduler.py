"""
Periodic job runner for the monitoring cycles, on top of APScheduler.

Each job runs, then books its next run one interval after it finished
("run, then schedule next"), so two runs of the same job never overlap. Every
job holds at most one pending one-shot `date` trigger in the shared
AsyncIOScheduler, keyed by the job name. Jobs are independent and may overlap
each other.

Stopping removes pending triggers and leaves APScheduler itself running, so an
in-flight cycle always finishes; only `shutdown()` cancels running cycles.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Dict, Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from opentelemetry import trace

from apiwatch.clock import SystemClock
from apiwatch.metrics import cycle_duration_seconds, cycle_failures_total, scheduler_running

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

JobFunc = Callable[[], Awaitable[object]]


class PeriodicJob:
    def __init__(
        self,
        name: str,
        interval: float,
        func: JobFunc,
        backend: AsyncIOScheduler,
        clock=None,
        run_immediately: bool = True,
    ):
        self.name = name
        self.interval = interval
        self.func = func
        self.backend = backend
        self.clock = clock or SystemClock()
        self.run_immediately = run_immediately
        self.runs = 0
        self._active = False
        self._in_flight = False

    @property
    def is_running(self) -> bool:
        return self._active

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def next_run_time(self) -> Optional[datetime]:
        """When APScheduler will next fire this job, or None when nothing is booked."""
        job = self.backend.get_job(self.name)
        return getattr(job, "next_run_time", None) if job is not None else None

    async def tick(self) -> bool:
        """
        Run one cycle now. Returns False without running when a cycle of this
        job is already in progress. Exceptions are logged, never raised.
        """
        if self._in_flight:
            logger.warning("Skipping %s tick: previous run still in progress", self.name)
            return False

        self._in_flight = True
        started = self.clock.monotonic()
        try:
            with tracer.start_as_current_span(f"job.{self.name}"):
                await self.func()
        except Exception:
            cycle_failures_total.labels(job=self.name).inc()
            logger.exception("Job %s failed", self.name)
        finally:
            self._in_flight = False
            self.runs += 1
            cycle_duration_seconds.labels(job=self.name).observe(
                max(0.0, self.clock.monotonic() - started)
            )
        return True

    def start(self) -> None:
        if self._active:
            return
        self._active = True
        self._book(0 if self.run_immediately else self.interval)

    def stop(self) -> None:
        """Prevent future firings. A tick already running is allowed to finish."""
        self._active = False
        try:
            self.backend.remove_job(self.name)
        except JobLookupError:
            # Nothing booked: the job is mid-run or was never started
            logger.debug("No pending run to cancel for %s", self.name)

    async def _fire(self) -> None:
        # A trigger that was already handed to the executor may still land after stop()
        if not self._active:
            return
        await self.tick()
        if self._active:
            self._book(self.interval)

    def _book(self, delay: float) -> None:
        self.backend.add_job(
            self._fire,
            trigger="date",
            run_date=datetime.now(timezone.utc) + timedelta(seconds=delay),
            id=self.name,
            name=self.name,
            replace_existing=True,
            misfire_grace_time=None,
        )


class Scheduler:
    """Owns a set of named periodic jobs that start and stop together."""

    def __init__(self, clock=None, backend: Optional[AsyncIOScheduler] = None):
        self.clock = clock or SystemClock()
        self.backend = backend or AsyncIOScheduler(timezone="UTC")
        self._jobs: Dict[str, PeriodicJob] = {}
        self._running = False

    def add_job(self, name: str, interval: float, func: JobFunc, run_immediately: bool = True) -> PeriodicJob:
        job = PeriodicJob(
            name, interval, func, self.backend, clock=self.clock, run_immediately=run_immediately
        )
        self._jobs[name] = job
        if self._running:
            job.start()
        return job

    def get_job(self, name: str) -> PeriodicJob:
        return self._jobs[name]

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> bool:
        """Start every job. Must be called from inside the running event loop."""
        if self._running:
            return False
        if not self.backend.running:
            self.backend.start()
        for job in self._jobs.values():
            job.start()
        self._running = True
        scheduler_running.set(1)
        logger.info("Scheduler started with jobs: %s", ", ".join(self._jobs) or "none")
        return True

    def stop(self) -> bool:
        if not self._running:
            return False
        for job in self._jobs.values():
            job.stop()
        self._running = False
        scheduler_running.set(0)
        logger.info("Scheduler stopped")
        return True

    def shutdown(self) -> None:
        """Stop every job and release APScheduler; cycles still running are cancelled."""
        self.stop()
        if self.backend.running:
            self.backend.shutdown(wait=False)

    async def tick(self, name: str) -> bool:
        """Run one cycle of the named job immediately."""
        return await self._jobs[name].tick()
