"""Audit Repository - Data access for signature audit log (append-only)"""
from typing import Any, Dict, List, Optional

from pymongo import DESCENDING
from pymongo.collection import Collection
from pymongo.database import Database

from .mongo_client import AUDIT_COLLECTION, to_document
from ..domain.models import AuditLogEntry
from ..domain.enums import AuditAction
from ..utils.logger import get_logger

logger = get_logger(__name__)


class AuditRepository:
    """Repository for audit log operations (append-only)"""

    def __init__(self, db: Database):
        self._audit_log: Collection = db[AUDIT_COLLECTION]

    def create_entry(self, entry: AuditLogEntry) -> AuditLogEntry:
        """Create an audit entry (append-only)"""
        self._audit_log.insert_one(to_document(entry, "audit_event_id"))
        logger.info(
            f"Created audit entry: {entry.action.value}",
            extra={
                "request_id": entry.request_id,
                "audit_event_id": entry.audit_event_id,
                "actor_id": entry.actor_id
            }
        )
        return entry

    def get_entries_for_request(
        self,
        request_id: str,
        actions: Optional[List[AuditAction]] = None,
        skip: int = 0,
        limit: int = 100
    ) -> List[AuditLogEntry]:
        """Get audit entries for a request, newest first"""
        query: Dict[str, Any] = {"request_id": request_id}
        if actions:
            query["action"] = {"$in": [a.value for a in actions]}

        cursor = self._audit_log.find(query).sort("timestamp", DESCENDING).skip(skip).limit(limit)

        entries = []
        for doc in cursor:
            doc.pop("_id", None)
            entries.append(AuditLogEntry.model_validate(doc))
        return entries
