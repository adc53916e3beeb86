from __future__ import annotations

import logging
import secrets
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError

from slabtrade.core.errors import DomainError

logger = logging.getLogger(__name__)

_SCHEDULED_JOB_EXCEPTIONS = (OSError, RuntimeError, ValueError, SQLAlchemyError, DomainError)


@dataclass
class ScheduledJob:
    name: str
    interval: timedelta
    func: Callable[[], object]
    jitter_seconds: int = 0
    run_in_thread: bool = False
    next_run: Optional[datetime] = None
    last_run: Optional[datetime] = None
    running: bool = False
    failures: int = 0


class Scheduler:
    """Poll loop running interval jobs on a daemon thread.

    A job never overlaps itself: while a run is in flight the next due tick
    is skipped. A failed run is logged and retried on the following interval.
    """

    def __init__(self, *, poll_seconds: int = 1):
        self._jobs: list[ScheduledJob] = []
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._poll_seconds = max(1, int(poll_seconds))

    @property
    def jobs(self) -> list[ScheduledJob]:
        with self._lock:
            return list(self._jobs)

    def add_interval_job(
        self,
        name: str,
        interval_seconds: int,
        func: Callable[[], object],
        *,
        jitter_seconds: int = 0,
        run_in_thread: bool = False,
        run_immediately: bool = False,
    ) -> ScheduledJob:
        if int(interval_seconds) <= 0:
            raise ValueError("interval_seconds must be positive")
        job = ScheduledJob(
            name=name,
            interval=timedelta(seconds=int(interval_seconds)),
            func=func,
            jitter_seconds=max(0, int(jitter_seconds)),
            run_in_thread=run_in_thread,
        )
        now = _now()
        job.next_run = now if run_immediately else self._schedule_next(job, now)
        with self._lock:
            self._jobs.append(job)
        return job

    def _schedule_next(self, job: ScheduledJob, now: datetime) -> datetime:
        run_at = now + job.interval
        if job.jitter_seconds:
            run_at += timedelta(seconds=secrets.randbelow(job.jitter_seconds + 1))
        return run_at

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run,
            name="scheduler",
            daemon=True,
        )
        self._thread.start()
        logger.info("Scheduler started with %d job(s).", len(self._jobs))

    def stop(self) -> None:
        if not self._thread:
            return
        self._stop_event.set()
        self._thread.join(timeout=self._poll_seconds + 1)
        self._thread = None
        logger.info("Scheduler stopped.")

    def run_pending(self) -> None:
        now = _now()
        with self._lock:
            jobs = list(self._jobs)
        for job in jobs:
            if job.running:
                continue
            if job.next_run and now >= job.next_run:
                job.next_run = self._schedule_next(job, now)
                self._run_job(job)

    def _run_job(self, job: ScheduledJob) -> None:
        logger.debug("Running scheduled job: %s", job.name)
        job.running = True
        if job.run_in_thread:
            threading.Thread(
                target=self._safe_run,
                args=(job,),
                name=f"job-{job.name}",
                daemon=True,
            ).start()
        else:
            self._safe_run(job)

    @staticmethod
    def _safe_run(job: ScheduledJob) -> None:
        try:
            job.func()
            job.failures = 0
        except _SCHEDULED_JOB_EXCEPTIONS:
            job.failures += 1
            logger.exception("Scheduled job failed: %s (consecutive failures: %d)", job.name, job.failures)
        finally:
            job.last_run = _now()
            job.running = False

    def _run(self) -> None:
        while not self._stop_event.is_set():
            self.run_pending()
            self._stop_event.wait(self._poll_seconds)


def _now() -> datetime:
    return datetime.now(timezone.utc)


__all__ = ["ScheduledJob", "Scheduler"]
