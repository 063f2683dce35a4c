"""Audit Writer - Append-only audit entries for signature requests"""
from typing import Any, Dict, Optional

from ..domain.models import ActorContext, AuditLogEntry
from ..domain.enums import AuditAction
from ..repositories.audit_repo import AuditRepository
from ..utils.idgen import generate_audit_event_id
from ..utils.logger import get_logger, get_correlation_id
from ..utils.time import Clock

logger = get_logger(__name__)


class AuditWriter:
    """
    Write audit entries (append-only)

    Audit is best-effort: a failed write is logged and never fails the
    operation that produced it.
    """

    def __init__(self, repo: AuditRepository, clock: Optional[Clock] = None):
        self.repo = repo
        self.clock = clock or Clock()

    def write_event(
        self,
        request_id: str,
        action: AuditAction,
        actor: Optional[ActorContext] = None,
        details: Optional[Dict[str, Any]] = None,
        actor_id: Optional[str] = None
    ) -> Optional[AuditLogEntry]:
        """Write a single audit entry; returns None when the write failed"""
        entry = AuditLogEntry(
            audit_event_id=generate_audit_event_id(),
            request_id=request_id,
            actor_id=actor.user_id if actor else actor_id,
            action=action,
            details=details or {},
            ip_address=actor.ip_address if actor else None,
            user_agent=actor.user_agent if actor else None,
            timestamp=self.clock.now(),
            correlation_id=get_correlation_id()
        )
        try:
            return self.repo.create_entry(entry)
        except Exception as e:
            logger.error(
                f"Failed to write audit entry {action.value}: {e}",
                extra={"request_id": request_id, "action": action.value},
                exc_info=True
            )
            return None

    def write_system_event(
        self,
        request_id: str,
        action: AuditAction,
        details: Optional[Dict[str, Any]] = None
    ) -> Optional[AuditLogEntry]:
        """Entry written by the scheduler or other non-user triggers"""
        return self.write_event(request_id, action, actor_id="system", details=details)
