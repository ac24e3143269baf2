# backend/convoflow/services/igs_service.py

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from convoflow.models.results import ServiceResult
from convoflow.utils.metrics import database_operations_counter

# Business collaborator behind the IGS calculator workflow: computes the
# flat-rate IGS (Impôt Général Synthétique) from annual revenue and stores
# the company profile collected during the conversation.

logger = logging.getLogger(__name__)

# (exclusive upper bound in FCFA, annual IGS in FCFA)
IGS_BRACKETS = [
    (500_000, 20_000),
    (1_000_000, 30_000),
    (1_500_000, 40_000),
    (2_000_000, 50_000),
    (2_500_000, 50_000),
    (5_000_000, 60_000),
    (10_000_000, 150_000),
    (20_000_000, 300_000),
    (30_000_000, 500_000),
]
IGS_TOP_RATE = 2_000_000


def calculate_igs(revenue: int) -> int:
    """Returns the annual IGS for a revenue, by bracket."""
    for upper_bound, amount in IGS_BRACKETS:
        if revenue < upper_bound:
            return amount
    return IGS_TOP_RATE


def format_amount(amount: int) -> str:
    """Groups thousands with spaces, the way amounts are written in Cameroon."""
    return f"{amount:,}".replace(",", " ")


class IgsService:
    def __init__(self, collection: Optional[Any] = None):
        # A motor collection when MongoDB is configured; otherwise records stay in memory.
        self.collection = collection
        self.saved: List[Dict[str, Any]] = []

    async def calculate(self, params: Dict[str, Any]) -> ServiceResult:
        try:
            revenue = int(str(params.get("revenue", "")).replace(" ", ""))
        except ValueError:
            return ServiceResult(status="error", message=f"Invalid revenue: {params.get('revenue')!r}")
        if revenue < 0:
            return ServiceResult(status="error", message="Revenue cannot be negative")

        igs = calculate_igs(revenue)
        return ServiceResult(data={
            "revenue": revenue,
            "igs_amount": igs,
            "igs_formatted": format_amount(igs),
        })

    async def save_company(self, params: Dict[str, Any]) -> ServiceResult:
        record = {**params, "created_at": datetime.utcnow()}
        if self.collection is not None:
            try:
                result = await self.collection.insert_one(record)
                database_operations_counter.labels(operation="insert_company", status="success").inc()
                company_id = str(result.inserted_id)
            except Exception as e:
                database_operations_counter.labels(operation="insert_company", status="error").inc()
                logger.error(f"Failed to save company '{params.get('name')}': {e}")
                return ServiceResult(status="error", message="Company could not be saved")
        else:
            self.saved.append(record)
            company_id = str(len(self.saved))

        logger.info(f"Saved company '{params.get('name')}' with IGS {params.get('calculated_igs')}")
        return ServiceResult(data={"company_id": company_id})
