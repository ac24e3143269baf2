# backend/convoflow/utils/lifecycle.py

import logging
from contextlib import asynccontextmanager

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI

from convoflow.config.settings import settings
from convoflow.services.session_store import MongoSessionStore
from convoflow.utils.dependencies import build_container
from convoflow.utils.logging import setup_logging
from convoflow.utils.tasks import expire_stale_sessions

# This file manages the application's lifespan: building the dependency
# container on startup, scheduling the session-expiry sweep, and releasing
# connections on shutdown.

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    setup_logging()
    logger.info("Application starting up...")

    # Tests may install a pre-built container before the app starts.
    container = getattr(app.state, "container", None) or build_container(settings)
    app.state.container = container

    if isinstance(container.sessions, MongoSessionStore):
        await container.sessions.create_indexes()

    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        expire_stale_sessions,
        "interval",
        minutes=settings.cleanup_interval_minutes,
        args=[container.sessions],
        id="expire_stale_sessions_job",
        replace_existing=True,
    )
    scheduler.start()
    logger.info(f"Scheduled job: expire_stale_sessions (every {settings.cleanup_interval_minutes} minutes).")

    logger.info("Application startup complete. Ready to accept requests.")

    yield  # Application is now running

    logger.info("Application shutting down...")
    scheduler.shutdown(wait=False)
    if isinstance(container.sessions, MongoSessionStore):
        container.sessions.client.close()
