"""Tests for src.service.scheduler — periodic jobs without backlog."""

from __future__ import annotations

import pytest

from src.service.scheduler import Job, Scheduler
from tests.conftest import FakeMonotonic


def _job(name: str, period: float, mono: FakeMonotonic | None = None, cost: float = 0.0,
         raises: bool = False) -> Job:
    def func():
        if mono is not None:
            mono.advance(cost)
        if raises:
            raise RuntimeError("boom")
        return {"status": "success"}

    return Job(name, period, func)


class TestScheduler:
    def test_all_jobs_due_at_start(self):
        mono = FakeMonotonic()
        sched = Scheduler([_job("a", 60), _job("b", 300)], monotonic=mono)
        assert sched.tick() == ["a", "b"]
        assert sched.tick() == []

    def test_runs_on_period(self):
        mono = FakeMonotonic()
        sched = Scheduler([_job("a", 60), _job("b", 300)], monotonic=mono)
        sched.tick()
        mono.advance(60)
        assert sched.tick() == ["a"]
        mono.advance(240)
        assert sched.tick() == ["a", "b"]

    def test_missed_ticks_are_skipped_not_replayed(self):
        mono = FakeMonotonic()
        job = _job("slow", 60, mono, cost=150)
        sched = Scheduler([job], monotonic=mono)

        sched.tick()
        assert job.skipped_ticks == 2
        assert job.next_due == 1000 + 180
        mono.value = 1180
        assert sched.tick() == ["slow"]
        assert job.runs == 2

    def test_suspended_host_does_not_build_backlog(self):
        mono = FakeMonotonic()
        job = _job("a", 60)
        sched = Scheduler([job], monotonic=mono)
        sched.tick()
        mono.advance(3600)
        sched.tick()
        assert job.runs == 2
        assert sched.tick() == []

    def test_failing_job_is_isolated(self, caplog):
        mono = FakeMonotonic()
        bad, good = _job("bad", 60, raises=True), _job("good", 60)
        sched = Scheduler([bad, good], monotonic=mono)
        assert sched.tick() == ["bad", "good"]
        assert "Job bad raised" in caplog.text
        mono.advance(60)
        assert sched.tick() == ["bad", "good"]

    def test_run_sleeps_until_next_due(self):
        mono = FakeMonotonic()
        sleeps: list[float] = []

        def sleep(seconds: float) -> None:
            sleeps.append(seconds)
            mono.advance(seconds)

        job = _job("a", 60)
        Scheduler([job], monotonic=mono, sleep=sleep).run(max_ticks=3)
        assert job.runs == 3
        assert sleeps == [60, 60, 60]

    def test_requires_jobs(self):
        with pytest.raises(ValueError):
            Scheduler([])
