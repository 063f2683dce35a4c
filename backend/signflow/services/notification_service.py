"""Notification Service - Signature events queued to the notification outbox

Delivery (email, in-app, channel choice and copy) is handled by a separate
worker reading the outbox.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from ..domain.models import NotificationMessage
from ..domain.enums import NotificationEvent
from ..repositories.notification_repo import NotificationRepository
from ..utils.idgen import generate_notification_id
from ..utils.time import Clock
from ..utils.logger import get_logger

logger = get_logger(__name__)


class NotificationPort(ABC):
    """Sink for signature lifecycle events"""

    @abstractmethod
    def emit(
        self,
        event: NotificationEvent,
        request_id: str,
        recipients: List[str],
        payload: Optional[Dict[str, Any]] = None
    ) -> bool:
        """Queue an event; returns False on failure and never raises"""


class OutboxNotifier(NotificationPort):
    """Writes events to the notification_outbox collection"""

    def __init__(self, repo: NotificationRepository, clock: Optional[Clock] = None):
        self.repo = repo
        self.clock = clock or Clock()

    def emit(
        self,
        event: NotificationEvent,
        request_id: str,
        recipients: List[str],
        payload: Optional[Dict[str, Any]] = None
    ) -> bool:
        if not recipients:
            return True
        try:
            self.repo.create_notification(
                NotificationMessage(
                    notification_id=generate_notification_id(),
                    event=event,
                    request_id=request_id,
                    recipients=list(recipients),
                    payload=payload or {},
                    created_at=self.clock.now()
                )
            )
            return True
        except Exception as e:
            logger.error(
                f"Failed to queue {event.value} notification: {e}",
                extra={"request_id": request_id},
                exc_info=True
            )
            return False
