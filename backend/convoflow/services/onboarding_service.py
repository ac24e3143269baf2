# backend/convoflow/services/onboarding_service.py

import logging
import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from convoflow.models.results import ServiceResult
from convoflow.utils.metrics import database_operations_counter

logger = logging.getLogger(__name__)


class OnboardingService:
    """Links a new user to their taxpayer record and registers them."""

    def __init__(self, collection: Optional[Any] = None):
        self.collection = collection
        self.users: Dict[str, Dict[str, Any]] = {}

    async def link_taxpayer(self, params: Dict[str, Any]) -> ServiceResult:
        """Picks the taxpayer the user selected out of the directory matches."""
        niu = str(params.get("niu") or "").strip().upper()
        for candidate in params.get("candidates") or []:
            if str(candidate.get("niu", "")).upper() == niu:
                logger.info(f"Linked onboarding user to taxpayer {niu[:4]}...")
                return ServiceResult(data={
                    "niu": candidate["niu"],
                    "name": candidate.get("name"),
                    "city": candidate.get("city"),
                })
        return ServiceResult(status="error", message="The selected taxpayer is not among the search results")

    async def register(self, params: Dict[str, Any]) -> ServiceResult:
        full_name = " ".join(str(params.get("full_name", "")).split())
        if not full_name:
            return ServiceResult(status="error", message="A full name is required")

        user = {
            "user_id": uuid.uuid4().hex,
            "full_name": full_name,
            "language": params.get("language"),
            "niu": params.get("niu"),
            "created_at": datetime.utcnow(),
        }
        if self.collection is not None:
            try:
                await self.collection.insert_one(dict(user))
                database_operations_counter.labels(operation="insert_user", status="success").inc()
            except Exception as e:
                database_operations_counter.labels(operation="insert_user", status="error").inc()
                logger.error(f"Failed to register user: {e}")
                return ServiceResult(status="error", message="User could not be registered")
        self.users[user["user_id"]] = user

        logger.info(f"Registered user {user['user_id']} (taxpayer linked: {bool(user['niu'])})")
        return ServiceResult(data={"user_id": user["user_id"], "user_name": full_name, "niu": user["niu"]})
