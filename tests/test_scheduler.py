import unittest
from datetime import datetime, timedelta, timezone

from slabtrade.config import Settings
from slabtrade.core.constants import ReservationStatus, UserRole
from slabtrade.core.scheduler import Scheduler
from slabtrade.scheduler.expiry_sweep import JOB_NAME, build_scheduler, run_sweep
from slabtrade.services.reservation_service import create_reservation, get_reservation
from support import INDUSTRY_A, DatabaseTestCase

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


class SchedulerTest(unittest.TestCase):
    def test_run_pending_executes_due_job(self):
        hits = {"count": 0}

        def job():
            hits["count"] += 1

        scheduler = Scheduler()
        scheduler.add_interval_job("test", 60, job, run_immediately=True)
        scheduler.run_pending()
        scheduler.run_pending()

        self.assertEqual(hits["count"], 1)
        self.assertIsNotNone(scheduler.jobs[0].last_run)
        self.assertGreater(scheduler.jobs[0].next_run, datetime.now(timezone.utc))

    def test_job_waits_for_its_interval(self):
        hits = []
        scheduler = Scheduler()
        scheduler.add_interval_job("later", 3600, lambda: hits.append(1))
        scheduler.run_pending()
        self.assertEqual(hits, [])

    def test_failure_is_counted_and_reset(self):
        calls = {"count": 0}

        def flaky():
            calls["count"] += 1
            if calls["count"] == 1:
                raise RuntimeError("boom")

        scheduler = Scheduler()
        job = scheduler.add_interval_job("flaky", 60, flaky, run_immediately=True)
        with self.assertLogs("slabtrade.core.scheduler", level="ERROR"):
            scheduler.run_pending()
        self.assertEqual(job.failures, 1)
        self.assertFalse(job.running)

        job.next_run = datetime.now(timezone.utc) - timedelta(seconds=1)
        scheduler.run_pending()
        self.assertEqual(job.failures, 0)

    def test_interval_must_be_positive(self):
        with self.assertRaises(ValueError):
            Scheduler().add_interval_job("bad", 0, lambda: None)


class ExpirySweepJobTest(DatabaseTestCase):
    def test_build_scheduler_registers_sweep(self):
        settings = Settings(EXPIRY_SWEEP_INTERVAL_SECONDS=120, EXPIRY_SWEEP_BATCH_SIZE=10)
        scheduler = build_scheduler(settings, session_factory=self.SessionLocal)
        (job,) = scheduler.jobs
        self.assertEqual(job.name, JOB_NAME)
        self.assertEqual(job.interval, timedelta(seconds=120))
        self.assertTrue(job.run_in_thread)

    def test_run_sweep_uses_its_own_session(self):
        admin = self.make_user(UserRole.ADMIN_INDUSTRIA, INDUSTRY_A)
        batch = self.make_batch(admin, total_slabs=5)
        reservation = create_reservation(
            self.db, admin, batch.id, 2, expires_at=NOW + timedelta(hours=1), now=NOW
        )

        result = run_sweep(self.SessionLocal, now=NOW + timedelta(hours=3))

        self.assertEqual((result.examined, result.expired, result.failed), (1, 1, 0))
        self.assertCounters(batch, 5, 0, 0)
        self.assertEqual(
            get_reservation(self.db, admin, reservation.id).status,
            ReservationStatus.EXPIRED.value,
        )


if __name__ == "__main__":
    unittest.main()
