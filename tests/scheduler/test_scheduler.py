"""
Tests for PeriodicJob and Scheduler on a real AsyncIOScheduler.

Intervals are kept short; anything slower is asserted through the booked
next_run_time instead of waiting for it.
"""
import asyncio
import pytest
from datetime import datetime, timezone

from apiwatch.scheduler import Scheduler

pytestmark = pytest.mark.anyio


class Recorder:
    def __init__(self, fail_on=()):
        self.calls = 0
        self.fail_on = set(fail_on)

    async def __call__(self):
        self.calls += 1
        if self.calls in self.fail_on:
            raise RuntimeError(f"boom on call {self.calls}")


async def _wait_for(predicate, timeout=2.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


def _seconds_until(when: datetime) -> float:
    return (when - datetime.now(timezone.utc)).total_seconds()


@pytest.fixture
async def scheduler():
    scheduler = Scheduler()
    yield scheduler
    # AsyncIOScheduler shuts down on its own loop, one iteration later
    scheduler.shutdown()
    await asyncio.sleep(0.01)


class TestPeriodicJob:
    async def test_runs_immediately_then_books_the_interval(self, scheduler):
        recorder = Recorder()
        job = scheduler.add_job("perf", 60, recorder)

        scheduler.start()
        await _wait_for(lambda: recorder.calls == 1 and job.next_run_time is not None)

        assert 58 <= _seconds_until(job.next_run_time) <= 60
        assert job.runs == 1

    async def test_deferred_first_run(self, scheduler):
        recorder = Recorder()
        job = scheduler.add_job("retention", 100, recorder, run_immediately=False)

        scheduler.start()
        await asyncio.sleep(0.1)

        assert recorder.calls == 0
        assert 98 <= _seconds_until(job.next_run_time) <= 100

    async def test_failure_does_not_stop_the_timer(self, scheduler):
        recorder = Recorder(fail_on={1, 2})
        job = scheduler.add_job("security", 0.05, recorder)

        scheduler.start()
        await _wait_for(lambda: recorder.calls >= 3)

        assert job.is_running
        assert job.runs >= 3

    async def test_stop_prevents_future_runs(self, scheduler):
        recorder = Recorder()
        job = scheduler.add_job("perf", 0.05, recorder)

        scheduler.start()
        await _wait_for(lambda: recorder.calls >= 1 and not job.in_flight)
        scheduler.stop()
        calls = recorder.calls
        await asyncio.sleep(0.2)

        assert recorder.calls == calls
        assert not job.is_running
        assert job.next_run_time is None

    async def test_tick_is_not_reentrant(self, scheduler):
        gate = asyncio.Event()
        calls = 0

        async def slow():
            nonlocal calls
            calls += 1
            await gate.wait()

        job = scheduler.add_job("slow", 60, slow)
        first = asyncio.create_task(job.tick())
        await _wait_for(lambda: job.in_flight)

        assert await job.tick() is False

        gate.set()
        assert await first is True
        assert calls == 1

    async def test_stop_lets_in_flight_tick_finish(self, scheduler):
        gate = asyncio.Event()
        finished = []

        async def slow():
            await gate.wait()
            finished.append(True)

        job = scheduler.add_job("slow", 0.05, slow)
        scheduler.start()
        await _wait_for(lambda: job.in_flight)

        scheduler.stop()
        gate.set()
        await _wait_for(lambda: finished == [True])
        await asyncio.sleep(0.2)

        assert finished == [True]
        assert job.next_run_time is None

    async def test_restart_while_in_flight_keeps_one_booking(self, scheduler):
        gate = asyncio.Event()

        async def slow():
            await gate.wait()

        job = scheduler.add_job("slow", 60, slow)
        scheduler.start()
        await _wait_for(lambda: job.in_flight)

        scheduler.stop()
        scheduler.start()
        gate.set()
        await _wait_for(lambda: not job.in_flight and job.next_run_time is not None)
        await asyncio.sleep(0.1)

        assert len(scheduler.backend.get_jobs()) == 1
        assert job.runs == 1


class TestScheduler:
    async def test_start_and_stop_are_idempotent(self, scheduler):
        perf, security = Recorder(), Recorder()
        scheduler.add_job("perf", 60, perf)
        scheduler.add_job("security", 120, security)

        assert scheduler.start() is True
        assert scheduler.start() is False
        await _wait_for(lambda: perf.calls == 1 and security.calls == 1)

        assert scheduler.stop() is True
        assert scheduler.stop() is False
        assert not scheduler.is_running
        assert scheduler.backend.get_jobs() == []

    async def test_job_added_while_running_starts_right_away(self, scheduler):
        scheduler.start()
        recorder = Recorder()

        scheduler.add_job("late", 60, recorder)

        await _wait_for(lambda: recorder.calls == 1)

    async def test_manual_tick(self, scheduler):
        recorder = Recorder()
        scheduler.add_job("perf", 60, recorder)

        assert await scheduler.tick("perf") is True
        assert recorder.calls == 1
        assert not scheduler.is_running

    async def test_shutdown_before_start_is_harmless(self):
        scheduler = Scheduler()
        scheduler.add_job("perf", 60, Recorder())

        scheduler.shutdown()

        assert not scheduler.is_running
