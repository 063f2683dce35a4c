"""Signature Repository - MongoDB implementation of the signature store"""
import re
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.collection import Collection
from pymongo.database import Database

from .base import SignatureStore
from .mongo_client import REQUESTS_COLLECTION, SIGNERS_COLLECTION, to_document, to_storage
from ..domain.enums import (
    SignatureStatus, SignerStatus, ACTIVE_REQUEST_STATUSES, OPEN_SIGNER_STATUSES
)
from ..domain.models import SignatureRequest, Signer
from ..utils.logger import get_logger

logger = get_logger(__name__)

# Status field stamped alongside each signer status
SIGNER_TIMESTAMP_FIELDS = {
    SignerStatus.SENT: "sent_at",
    SignerStatus.VIEWED: "viewed_at",
    SignerStatus.SIGNED: "signed_at",
    SignerStatus.DECLINED: "declined_at",
}


def _values(statuses: Sequence[Any]) -> List[str]:
    return [getattr(s, "value", s) for s in statuses]


class SignatureRepository(SignatureStore):
    """Repository for signature requests and signers"""

    def __init__(self, db: Database):
        self._requests: Collection = db[REQUESTS_COLLECTION]
        self._signers: Collection = db[SIGNERS_COLLECTION]

    # =========================================================================
    # Requests
    # =========================================================================

    def insert_request(self, request: SignatureRequest) -> SignatureRequest:
        self._requests.insert_one(to_document(request, "request_id"))
        logger.info(
            f"Created signature request: {request.request_id}",
            extra={"request_id": request.request_id}
        )
        return request

    def delete_request(self, request_id: str) -> None:
        self._requests.delete_one({"request_id": request_id})
        self._signers.delete_many({"request_id": request_id})
        logger.warning(f"Removed signature request: {request_id}", extra={"request_id": request_id})

    def get_request(self, request_id: str) -> Optional[SignatureRequest]:
        doc = self._requests.find_one({"request_id": request_id})
        return self._to_request(doc)

    def get_requests(self, request_ids: Sequence[str]) -> List[SignatureRequest]:
        if not request_ids:
            return []
        cursor = self._requests.find({"request_id": {"$in": list(request_ids)}})
        return [self._to_request(doc) for doc in cursor]

    def update_request(
        self,
        request_id: str,
        updates: Dict[str, Any],
        from_statuses: Sequence[SignatureStatus],
        extra_filter: Optional[Dict[str, Any]] = None,
        unset_fields: Sequence[str] = (),
    ) -> Optional[SignatureRequest]:
        """Update a request with optimistic concurrency on its status"""
        filter_query: Dict[str, Any] = {
            "request_id": request_id,
            "status": {"$in": _values(from_statuses)},
        }
        if extra_filter:
            filter_query.update(to_storage(extra_filter))

        update: Dict[str, Any] = {"$set": to_storage(updates)}
        if unset_fields:
            update["$unset"] = {name: "" for name in unset_fields}

        doc = self._requests.find_one_and_update(
            filter_query,
            update,
            return_document=ReturnDocument.AFTER
        )
        if doc is None:
            return None
        logger.info(
            f"Updated signature request: {request_id}",
            extra={"request_id": request_id, "status": doc.get("status")}
        )
        return self._to_request(doc)

    def advance_completion(self, request_id: str, total_signers: int, now: datetime) -> Optional[SignatureRequest]:
        """
        Compare-and-increment on completed_signers.

        Each attempt is a single conditional update keyed on the current count,
        so two concurrent signers can never both observe the same value.
        """
        active = _values(ACTIVE_REQUEST_STATUSES)
        stored_now = to_storage(now)
        # Every failed round means another signer incremented first
        for _ in range(total_signers + 1):
            doc = self._requests.find_one_and_update(
                {
                    "request_id": request_id,
                    "status": {"$in": active},
                    "completed_signers": total_signers - 1,
                },
                {
                    "$inc": {"completed_signers": 1},
                    "$set": {
                        "status": SignatureStatus.COMPLETED.value,
                        "completed_at": stored_now,
                        "updated_at": stored_now,
                    },
                },
                return_document=ReturnDocument.AFTER
            )
            if doc is None:
                doc = self._requests.find_one_and_update(
                    {
                        "request_id": request_id,
                        "status": {"$in": active},
                        "completed_signers": {"$lt": total_signers - 1},
                    },
                    {
                        "$inc": {"completed_signers": 1},
                        "$set": {
                            "status": SignatureStatus.IN_PROGRESS.value,
                            "updated_at": stored_now,
                        },
                    },
                    return_document=ReturnDocument.AFTER
                )
            if doc is not None:
                return self._to_request(doc)

            current = self._requests.find_one({"request_id": request_id})
            if (
                current is None
                or current.get("status") not in active
                or current.get("completed_signers", 0) >= total_signers
            ):
                return None

        logger.error(
            f"Completion counter contention exhausted retries: {request_id}",
            extra={"request_id": request_id}
        )
        return None

    def record_view(self, request_id: str, now: datetime) -> Optional[SignatureRequest]:
        stored_now = to_storage(now)
        self._requests.update_one(
            {"request_id": request_id, "status": SignatureStatus.INITIATED.value},
            {"$set": {"status": SignatureStatus.IN_PROGRESS.value}}
        )
        doc = self._requests.find_one_and_update(
            {"request_id": request_id},
            {"$inc": {"viewed_signers": 1}, "$set": {"updated_at": stored_now}},
            return_document=ReturnDocument.AFTER
        )
        return self._to_request(doc)

    def _build_list_query(
        self,
        initiated_by: Optional[str],
        request_ids: Optional[Sequence[str]],
        statuses: Optional[Sequence[SignatureStatus]],
        search: Optional[str],
    ) -> Dict[str, Any]:
        and_conditions: List[Dict[str, Any]] = [{"deleted_at": None}]

        owner_conditions = []
        if initiated_by:
            owner_conditions.append({"initiated_by": initiated_by})
        if request_ids is not None:
            owner_conditions.append({"request_id": {"$in": list(request_ids)}})
        if len(owner_conditions) == 1:
            and_conditions.append(owner_conditions[0])
        elif owner_conditions:
            and_conditions.append({"$or": owner_conditions})

        if statuses:
            and_conditions.append({"status": {"$in": _values(statuses)}})
        if search:
            # User input is matched literally
            and_conditions.append({"title": {"$regex": re.escape(search), "$options": "i"}})

        if len(and_conditions) == 1:
            return and_conditions[0]
        return {"$and": and_conditions}

    def list_requests(
        self,
        initiated_by: Optional[str] = None,
        request_ids: Optional[Sequence[str]] = None,
        statuses: Optional[Sequence[SignatureStatus]] = None,
        search: Optional[str] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> List[SignatureRequest]:
        query = self._build_list_query(initiated_by, request_ids, statuses, search)
        cursor = (
            self._requests.find(query)
            .sort([("created_at", DESCENDING), ("request_id", ASCENDING)])
            .skip(skip)
            .limit(limit)
        )
        return [self._to_request(doc) for doc in cursor]

    def count_requests(
        self,
        initiated_by: Optional[str] = None,
        request_ids: Optional[Sequence[str]] = None,
        statuses: Optional[Sequence[SignatureStatus]] = None,
        search: Optional[str] = None,
    ) -> int:
        query = self._build_list_query(initiated_by, request_ids, statuses, search)
        return self._requests.count_documents(query)

    def find_overdue_requests(self, now: datetime, limit: int) -> List[SignatureRequest]:
        cursor = self._requests.find({
            "status": {"$in": _values(ACTIVE_REQUEST_STATUSES)},
            "expires_at": {"$lte": to_storage(now)},
        }).sort("expires_at", ASCENDING).limit(limit)
        return [self._to_request(doc) for doc in cursor]

    def find_requests_expiring_between(
        self,
        start: datetime,
        end: datetime,
        initiated_by: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[SignatureRequest]:
        query: Dict[str, Any] = {
            "status": {"$in": _values(ACTIVE_REQUEST_STATUSES)},
            "expires_at": {"$gte": to_storage(start), "$lt": to_storage(end)},
        }
        if initiated_by:
            query["initiated_by"] = initiated_by
        cursor = self._requests.find(query).sort("expires_at", ASCENDING)
        if limit:
            cursor = cursor.limit(limit)
        return [self._to_request(doc) for doc in cursor]

    def claim_expiration_warning(self, request_id: str, days: int, now: datetime) -> bool:
        result = self._requests.update_one(
            {
                "request_id": request_id,
                "status": {"$in": _values(ACTIVE_REQUEST_STATUSES)},
                "expiration_warnings_sent": {"$ne": days},
            },
            {
                "$push": {"expiration_warnings_sent": days},
                "$set": {"updated_at": to_storage(now)},
            }
        )
        return result.modified_count == 1

    def claim_reminder_slot(
        self,
        request_id: str,
        now: datetime,
        not_after: datetime,
        max_reminders: int,
    ) -> Optional[SignatureRequest]:
        stored_now = to_storage(now)
        doc = self._requests.find_one_and_update(
            {
                "request_id": request_id,
                "status": {"$in": _values(ACTIVE_REQUEST_STATUSES)},
                "reminder_count": {"$lt": max_reminders},
                "$or": [
                    {"last_reminder_at": None},
                    {"last_reminder_at": {"$lte": to_storage(not_after)}},
                ],
            },
            {
                "$inc": {"reminder_count": 1},
                "$set": {"last_reminder_at": stored_now, "updated_at": stored_now},
            },
            return_document=ReturnDocument.AFTER
        )
        return self._to_request(doc)

    # =========================================================================
    # Signers
    # =========================================================================

    def insert_signers(self, signers: Sequence[Signer]) -> List[Signer]:
        if not signers:
            return []
        self._signers.insert_many([to_document(s, "signer_id") for s in signers])
        logger.info(
            f"Created {len(signers)} signers for request: {signers[0].request_id}",
            extra={"request_id": signers[0].request_id}
        )
        return list(signers)

    def get_signer(self, signer_id: str) -> Optional[Signer]:
        doc = self._signers.find_one({"signer_id": signer_id})
        return self._to_signer(doc)

    def get_signers(self, request_id: str) -> List[Signer]:
        cursor = self._signers.find({"request_id": request_id}).sort("signing_order", ASCENDING)
        return [self._to_signer(doc) for doc in cursor]

    def find_signer_request_ids(self, user_id: Optional[str], email: Optional[str]) -> List[str]:
        conditions = []
        if user_id:
            conditions.append({"user_id": user_id})
        if email:
            conditions.append({"signer_email": {"$regex": f"^{re.escape(email)}$", "$options": "i"}})
        if not conditions:
            return []
        query = conditions[0] if len(conditions) == 1 else {"$or": conditions}
        return sorted({doc["request_id"] for doc in self._signers.find(query, {"request_id": 1})})

    def transition_signer(
        self,
        signer_id: str,
        to_status: SignerStatus,
        from_statuses: Sequence[SignerStatus],
        updates: Optional[Dict[str, Any]] = None,
    ) -> Optional[Signer]:
        """Conditional signer status change; None when the signer already moved on"""
        changes = dict(updates or {})
        changes["status"] = to_status
        doc = self._signers.find_one_and_update(
            {"signer_id": signer_id, "status": {"$in": _values(from_statuses)}},
            {"$set": to_storage(changes)},
            return_document=ReturnDocument.AFTER
        )
        if doc is None:
            return None
        logger.info(
            f"Signer {signer_id} -> {to_status.value}",
            extra={"signer_id": signer_id, "request_id": doc.get("request_id"), "status": to_status.value}
        )
        return self._to_signer(doc)

    def transition_open_signers(self, request_id: str, to_status: SignerStatus, now: datetime) -> int:
        result = self._signers.update_many(
            {"request_id": request_id, "status": {"$in": _values(OPEN_SIGNER_STATUSES)}},
            {"$set": {"status": to_status.value, "updated_at": to_storage(now)}}
        )
        return result.modified_count

    def mark_signers_reminded(self, signer_ids: Sequence[str], now: datetime) -> int:
        if not signer_ids:
            return 0
        stored_now = to_storage(now)
        result = self._signers.update_many(
            {"signer_id": {"$in": list(signer_ids)}},
            {"$set": {"reminder_sent_at": stored_now, "updated_at": stored_now}}
        )
        return result.modified_count

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _to_request(doc: Optional[Dict[str, Any]]) -> Optional[SignatureRequest]:
        if not doc:
            return None
        doc.pop("_id", None)
        return SignatureRequest.model_validate(doc)

    @staticmethod
    def _to_signer(doc: Optional[Dict[str, Any]]) -> Optional[Signer]:
        if not doc:
            return None
        doc.pop("_id", None)
        return Signer.model_validate(doc)
