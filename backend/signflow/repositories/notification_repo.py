"""Notification Repository - Data access for the notification outbox"""
from typing import List

from pymongo import ASCENDING
from pymongo.collection import Collection
from pymongo.database import Database

from .mongo_client import NOTIFICATION_OUTBOX_COLLECTION, to_document
from ..domain.models import NotificationMessage
from ..domain.enums import NotificationStatus
from ..utils.logger import get_logger

logger = get_logger(__name__)


class NotificationRepository:
    """Repository for notification outbox operations"""

    def __init__(self, db: Database):
        self._outbox: Collection = db[NOTIFICATION_OUTBOX_COLLECTION]

    def create_notification(self, message: NotificationMessage) -> NotificationMessage:
        """Queue a notification for the delivery worker"""
        self._outbox.insert_one(to_document(message, "notification_id"))
        logger.info(
            f"Queued notification: {message.event.value}",
            extra={"request_id": message.request_id}
        )
        return message

    def get_pending_notifications(self, limit: int = 100) -> List[NotificationMessage]:
        cursor = self._outbox.find(
            {"status": NotificationStatus.PENDING.value}
        ).sort("created_at", ASCENDING).limit(limit)

        messages = []
        for doc in cursor:
            doc.pop("_id", None)
            messages.append(NotificationMessage.model_validate(doc))
        return messages
