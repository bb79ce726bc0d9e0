"""Local trigger loop for running all jobs in one process.

Each job fires on a fixed period.  A job that falls behind (a slow run, a
suspended host) skips the ticks it missed instead of replaying them, so no
backlog accumulates.  Every invocation is isolated: one failing run is
logged and the next tick proceeds.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

log = logging.getLogger(__name__)


@dataclass(slots=True)
class Job:
    name: str
    period_sec: float
    func: Callable[[], dict[str, Any]]
    next_due: float = 0.0
    runs: int = 0
    skipped_ticks: int = 0


class Scheduler:
    def __init__(
        self,
        jobs: list[Job],
        monotonic: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if not jobs:
            raise ValueError("scheduler needs at least one job")
        self.jobs = jobs
        self.monotonic = monotonic
        self.sleep = sleep
        start = monotonic()
        for job in jobs:
            job.next_due = start

    def _invoke(self, job: Job) -> None:
        job.runs += 1
        try:
            report = job.func()
        except Exception:  # isolate invocations: the host keeps scheduling
            log.exception("Job %s raised", job.name)
            return
        level = logging.INFO if report.get("status") == "success" else logging.WARNING
        log.log(level, "Job %s: %s", job.name, report)

    def tick(self) -> list[str]:
        """Run every due job once; return the names that ran."""
        ran: list[str] = []
        for job in self.jobs:
            if self.monotonic() < job.next_due:
                continue
            due = job.next_due
            self._invoke(job)
            ran.append(job.name)

            now = self.monotonic()
            missed = int((now - due) // job.period_sec)
            if missed:
                job.skipped_ticks += missed
                log.warning("Job %s fell behind; skipping %d missed ticks", job.name, missed)
            job.next_due = due + (missed + 1) * job.period_sec
        return ran

    def run(self, max_ticks: int | None = None) -> None:
        """Loop until interrupted (or for *max_ticks* iterations)."""
        ticks = 0
        try:
            while max_ticks is None or ticks < max_ticks:
                self.tick()
                ticks += 1
                wait = min(j.next_due for j in self.jobs) - self.monotonic()
                if wait > 0:
                    self.sleep(wait)
        except KeyboardInterrupt:
            log.info("Scheduler stopped after %d ticks", ticks)
