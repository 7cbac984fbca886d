from __future__ import annotations

import logging
import sys

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..dependencies.db import session_scope
from ..services.auth import purge_expired_reset_tokens

logger = logging.getLogger(__name__)


def run_purge_job() -> int:
    with session_scope() as session:
        removed = purge_expired_reset_tokens(session)
    if removed:
        logger.info("Purged expired password reset tokens: %s", removed)
    return removed


def configure_scheduler() -> BlockingScheduler:
    scheduler = BlockingScheduler(timezone="UTC")
    scheduler.add_job(run_purge_job, IntervalTrigger(hours=1))
    return scheduler


def main() -> None:
    logging.basicConfig(level=logging.INFO, handlers=[logging.StreamHandler(sys.stdout)])

    if len(sys.argv) > 1 and sys.argv[1] == "run-once":
        logger.info("Running cleanup worker once")
        run_purge_job()
        return

    scheduler = configure_scheduler()
    logger.info("Starting cleanup worker scheduler")
    scheduler.start()


if __name__ == "__main__":
    main()
