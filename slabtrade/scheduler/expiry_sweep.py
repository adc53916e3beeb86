from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.orm import Session

from slabtrade.config import Settings, get_settings
from slabtrade.core.scheduler import Scheduler
from slabtrade.database.session import SessionLocal
from slabtrade.services.reservation_service import SweepResult, expire_due_reservations

logger = logging.getLogger(__name__)

JOB_NAME = "reservation-expiry"


def run_sweep(
    session_factory: Callable[[], Session] = SessionLocal,
    *,
    now: Optional[datetime] = None,
    limit: Optional[int] = None,
) -> SweepResult:
    """One pass of the expiry sweep on a fresh session."""
    db = session_factory()
    try:
        return expire_due_reservations(db, now=now, limit=limit)
    finally:
        db.close()


def build_scheduler(
    settings: Optional[Settings] = None,
    session_factory: Callable[[], Session] = SessionLocal,
) -> Scheduler:
    settings = settings or get_settings()
    scheduler = Scheduler(poll_seconds=settings.SCHEDULER_POLL_SECONDS)
    scheduler.add_interval_job(
        JOB_NAME,
        settings.EXPIRY_SWEEP_INTERVAL_SECONDS,
        lambda: run_sweep(session_factory, limit=settings.EXPIRY_SWEEP_BATCH_SIZE),
        run_in_thread=True,
        run_immediately=True,
    )
    logger.info(
        "Expiry sweep scheduled every %ds (batch size %d)",
        settings.EXPIRY_SWEEP_INTERVAL_SECONDS,
        settings.EXPIRY_SWEEP_BATCH_SIZE,
    )
    return scheduler


__all__ = ["JOB_NAME", "build_scheduler", "run_sweep"]
