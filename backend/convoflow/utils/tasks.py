# backend/convoflow/utils/tasks.py

import logging
from datetime import datetime

from convoflow.services.session_store import SessionStore

# Periodic maintenance jobs, scheduled by the app lifespan and by the
# standalone backend/scheduler.py.

logger = logging.getLogger(__name__)


async def expire_stale_sessions(store: SessionStore) -> int:
    """
    Marks every active session whose expiry horizon has passed as inactive.
    Sessions are never deleted; the next message from the same user opens a
    successor session.
    """
    logger.info("--- Starting stale session sweep ---")
    try:
        expired = await store.expire_stale(datetime.utcnow())
    except Exception:
        logger.error("An error occurred during the stale session sweep.", exc_info=True)
        return 0
    logger.info(f"--- Stale session sweep complete: {expired} session(s) expired ---")
    return expired
