# backend/scheduler.py

import asyncio
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from convoflow.config.settings import settings
from convoflow.utils.dependencies import build_session_store
from convoflow.utils.tasks import expire_stale_sessions

# Standalone maintenance process for deployments that run several API
# workers: it sweeps expired sessions so the web processes don't all do it.

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - [%(name)s] - %(message)s')
logger = logging.getLogger("SchedulerService")


async def main():
    if settings.session_backend != "mongo":
        logger.warning("The in-memory session backend is per-process; this scheduler has nothing to sweep.")

    store = build_session_store(settings)
    scheduler = AsyncIOScheduler()

    scheduler.add_job(
        expire_stale_sessions,
        'interval',
        minutes=settings.cleanup_interval_minutes,
        args=[store],
        id="expire_stale_sessions_job",
        replace_existing=True,
    )
    logger.info(f"Scheduled job: expire_stale_sessions (every {settings.cleanup_interval_minutes} minutes).")

    scheduler.start()
    logger.info("Scheduler started successfully. Press Ctrl+C to exit.")

    try:
        while True:
            await asyncio.sleep(3600)
    except (KeyboardInterrupt, SystemExit):
        scheduler.shutdown()


if __name__ == "__main__":
    asyncio.run(main())
