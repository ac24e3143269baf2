# backend/convoflow/services/session_store.py

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ASCENDING, DESCENDING

from convoflow.models.session import BotState, Session
from convoflow.utils.metrics import active_sessions_gauge, database_operations_counter

# Session persistence. The engine only needs four operations; the in-memory
# store backs tests and single-process deployments, the MongoDB store keeps
# sessions durable across restarts.

logger = logging.getLogger(__name__)


def successor_of(previous: Session, now: datetime, expiry_hours: int) -> Session:
    """A fresh session for a returning user, keeping what outlives a session."""
    return Session(
        channel=previous.channel,
        external_user_id=previous.external_user_id,
        user_id=previous.user_id,
        bot_state=BotState.IDLE if previous.is_verified else BotState.UNVERIFIED,
        data_bag=dict(previous.data_bag),
        language=previous.language,
        is_verified=previous.is_verified,
        created_at=now,
        last_activity_at=now,
        expires_at=now + timedelta(hours=expiry_hours),
    )


class SessionStore:
    def __init__(self, default_language: str = "fr", expiry_hours: int = 24):
        self.default_language = default_language
        self.expiry_hours = expiry_hours

    async def get_active(self, channel: str, external_user_id: str) -> Optional[Session]:
        raise NotImplementedError

    async def get_latest(self, channel: str, external_user_id: str) -> Optional[Session]:
        """The most recently created session for (channel, user), active or not."""
        raise NotImplementedError

    async def save(self, session: Session) -> None:
        raise NotImplementedError

    async def expire_stale(self, now: datetime) -> int:
        """Marks every active session past its expiry as inactive; returns how many."""
        raise NotImplementedError

    async def get_or_create(self, channel: str, external_user_id: str, now: Optional[datetime] = None) -> Session:
        """
        Returns the active session for (channel, user), opening a new one when
        there is none or when the current one has expired.
        """
        now = now or datetime.utcnow()
        session = await self.get_active(channel, external_user_id)
        if session is not None and not session.is_expired(now):
            return session

        if session is None:
            # The expiry sweep may already have closed the previous session.
            session = await self.get_latest(channel, external_user_id)

        if session is not None:
            logger.info(f"Session {session.id} expired; opening a successor")
            if session.is_active:
                session.is_active = False
                await self.save(session)
            fresh = successor_of(session, now, self.expiry_hours)
        else:
            fresh = Session(
                channel=channel,
                external_user_id=external_user_id,
                language=self.default_language,
                created_at=now,
                last_activity_at=now,
                expires_at=now + timedelta(hours=self.expiry_hours),
            )
            logger.info(f"Created session {fresh.id} for a new {channel} user")
        await self.save(fresh)
        return fresh


class InMemorySessionStore(SessionStore):
    """Holds deep copies so callers can only change stored state through save()."""

    def __init__(self, default_language: str = "fr", expiry_hours: int = 24):
        super().__init__(default_language, expiry_hours)
        self._sessions: Dict[str, Session] = {}

    async def get(self, session_id: str) -> Optional[Session]:
        session = self._sessions.get(session_id)
        return session.model_copy(deep=True) if session else None

    async def get_active(self, channel, external_user_id):
        for session in self._sessions.values():
            if session.is_active and session.channel == channel and session.external_user_id == external_user_id:
                return session.model_copy(deep=True)
        return None

    async def get_latest(self, channel, external_user_id):
        matches = [
            s for s in self._sessions.values()
            if s.channel == channel and s.external_user_id == external_user_id
        ]
        if not matches:
            return None
        return max(matches, key=lambda s: s.created_at).model_copy(deep=True)

    async def save(self, session):
        self._sessions[session.id] = session.model_copy(deep=True)
        active_sessions_gauge.set(sum(1 for s in self._sessions.values() if s.is_active))

    async def expire_stale(self, now):
        expired = 0
        for session in self._sessions.values():
            if session.is_active and session.is_expired(now):
                session.is_active = False
                expired += 1
        active_sessions_gauge.set(sum(1 for s in self._sessions.values() if s.is_active))
        return expired


class MongoSessionStore(SessionStore):
    def __init__(
        self,
        mongo_uri: str,
        database: str = "convoflow",
        default_language: str = "fr",
        expiry_hours: int = 24,
        max_pool_size: int = 10,
        min_pool_size: int = 1,
    ):
        super().__init__(default_language, expiry_hours)
        try:
            self.client = AsyncIOMotorClient(
                mongo_uri,
                maxPoolSize=max_pool_size,
                minPoolSize=min_pool_size,
                serverSelectionTimeoutMS=5000,
                connectTimeoutMS=10000,
            )
            self.db = self.client[database]
            self.collection = self.db.sessions
            logger.info("MongoDB session store initialized successfully.")
        except Exception as e:
            logger.error(f"Error initializing MongoDB client: {e}")
            raise

    async def create_indexes(self):
        """One active session per (channel, external user id)."""
        await self.collection.create_index(
            [("channel", ASCENDING), ("external_user_id", ASCENDING)],
            unique=True,
            partialFilterExpression={"is_active": True},
            name="unique_active_session",
        )
        await self.collection.create_index([("is_active", ASCENDING), ("expires_at", ASCENDING)], name="expiry_scan")
        await self.collection.create_index(
            [("channel", ASCENDING), ("external_user_id", ASCENDING), ("created_at", DESCENDING)],
            name="latest_session",
        )
        logger.info("Session indexes ensured.")

    @staticmethod
    def _to_document(session: Session) -> Dict[str, Any]:
        document = session.model_dump()
        document["bot_state"] = session.bot_state.value
        document["_id"] = session.id
        return document

    @staticmethod
    def _from_document(document: Dict[str, Any]) -> Session:
        document = dict(document)
        document.pop("_id", None)
        return Session.model_validate(document)

    async def get_active(self, channel, external_user_id):
        try:
            document = await self.collection.find_one(
                {"channel": channel, "external_user_id": external_user_id, "is_active": True}
            )
            database_operations_counter.labels(operation="find_session", status="success").inc()
        except Exception:
            database_operations_counter.labels(operation="find_session", status="error").inc()
            raise
        return self._from_document(document) if document else None

    async def get_latest(self, channel, external_user_id):
        document = await self.collection.find_one(
            {"channel": channel, "external_user_id": external_user_id},
            sort=[("created_at", DESCENDING)],
        )
        database_operations_counter.labels(operation="find_latest_session", status="success").inc()
        return self._from_document(document) if document else None

    async def save(self, session):
        try:
            await self.collection.replace_one({"_id": session.id}, self._to_document(session), upsert=True)
            database_operations_counter.labels(operation="save_session", status="success").inc()
        except Exception:
            database_operations_counter.labels(operation="save_session", status="error").inc()
            raise

    async def expire_stale(self, now):
        result = await self.collection.update_many(
            {"is_active": True, "expires_at": {"$lte": now}},
            {"$set": {"is_active": False}},
        )
        database_operations_counter.labels(operation="expire_sessions", status="success").inc()
        return result.modified_count
