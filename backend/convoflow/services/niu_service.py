# backend/convoflow/services/niu_service.py

import logging
import unicodedata
from typing import Any, Dict, Iterable, List, Optional

from convoflow.models.results import ServiceResult

# Looks up taxpayer identification numbers (NIU) by name in a taxpayer
# directory. The directory is injected: an iterable of
# {"name": ..., "niu": ..., "city": ...} records.

logger = logging.getLogger(__name__)

MAX_RESULTS = 5


def _normalize(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text)
    return " ".join("".join(c for c in decomposed if not unicodedata.combining(c)).lower().split())


class NiuService:
    def __init__(self, directory: Optional[Iterable[Dict[str, Any]]] = None):
        self.directory: List[Dict[str, Any]] = list(directory or [])

    async def search(self, params: Dict[str, Any]) -> ServiceResult:
        query = _normalize(str(params.get("query", "")))
        if len(query) < 2:
            return ServiceResult(status="error", message="Search query is too short")

        terms = query.split()
        matches = [
            record for record in self.directory
            if all(term in _normalize(record.get("name", "")) for term in terms)
        ]
        logger.info(f"NIU search for '{query}' returned {len(matches)} match(es)")

        top = matches[:MAX_RESULTS]
        return ServiceResult(data={
            "query": params.get("query"),
            "count": len(matches),
            "results": top,
            "summary": "; ".join(f"{r['name']} ({r['niu']})" for r in top),
        })
