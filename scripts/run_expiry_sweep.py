import argparse
import logging
import time

from slabtrade.config import get_settings
from slabtrade.core.logging import setup_logging
from slabtrade.database import init_db
from slabtrade.scheduler.expiry_sweep import build_scheduler, run_sweep

logger = logging.getLogger(__name__)


def parse_args():
    parser = argparse.ArgumentParser(description="Expire overdue reservations and release their slabs.")
    parser.add_argument(
        "--run-once",
        action="store_true",
        help="Run a single sweep and exit.",
    )
    return parser.parse_args()


def main():
    setup_logging()
    args = parse_args()
    settings = get_settings()
    init_db()

    if args.run_once:
        result = run_sweep(limit=settings.EXPIRY_SWEEP_BATCH_SIZE)
        print(f"examined={result.examined} expired={result.expired} failed={result.failed}")
        return

    if not settings.EXPIRY_SWEEP_ENABLED:
        logger.info("Expiry sweep disabled by EXPIRY_SWEEP_ENABLED.")
        return

    scheduler = build_scheduler(settings)
    try:
        while True:
            scheduler.run_pending()
            time.sleep(settings.SCHEDULER_POLL_SECONDS)
    except KeyboardInterrupt:
        logger.info("Expiry sweep stopped.")


if __name__ == "__main__":
    main()
