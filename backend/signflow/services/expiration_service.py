"""Expiration Service - Expiry sweeps, warnings and extensions"""
from datetime import datetime
from typing import List, Optional

from ..config.settings import Settings
from ..domain.models import (
    ActorContext, ExpirationCheckError, ExpirationCheckResult, SignatureRequest
)
from ..domain.enums import AuditAction, NotificationEvent, SignerStatus, SignatureStatus, ACTIVE_REQUEST_STATUSES
from ..domain.errors import ConflictError, RequestNotFoundError, ValidationError
from ..domain.results import returns_result
from ..engine.audit_writer import AuditWriter
from ..engine.permission_guard import PermissionGuard
from ..repositories.base import SignatureStore
from .notification_service import NotificationPort
from ..utils.time import Clock, add_days, days_between, format_iso, is_expired
from ..utils.logger import get_logger

logger = get_logger(__name__)


class ExpirationService:
    """
    Expiration handling for signature requests.

    The sweep is safe to run from several schedulers at once: expiring a
    request is a conditional update on (non-terminal, overdue), and each
    (request, warning offset) pair is claimed once in the request's
    expiration_warnings_sent ledger before the warning goes out.
    """

    def __init__(
        self,
        store: SignatureStore,
        audit_writer: AuditWriter,
        notifier: NotificationPort,
        config: Settings,
        clock: Optional[Clock] = None,
        permission_guard: Optional[PermissionGuard] = None
    ):
        self.store = store
        self.audit_writer = audit_writer
        self.notifier = notifier
        self.config = config
        self.clock = clock or Clock()
        self.permission_guard = permission_guard or PermissionGuard()

    # =========================================================================
    # Sweep
    # =========================================================================

    @returns_result("Failed to check expirations")
    def check_expirations(self) -> ExpirationCheckResult:
        """Expire overdue requests and send due expiration warnings"""
        now = self.clock.now()
        batch_size = self.config.expiration_batch_size
        result = ExpirationCheckResult()

        overdue = self.store.find_overdue_requests(now, batch_size)
        result.checked = len(overdue)
        for request in overdue:
            try:
                if self._expire(request, now):
                    result.expired += 1
            except Exception as e:
                logger.error(
                    f"Failed to expire request: {e}",
                    extra={"request_id": request.request_id},
                    exc_info=True
                )
                result.errors.append(ExpirationCheckError(id=request.request_id, error=str(e)))

        for days in self.config.expiration_warning_days_list:
            window = self.store.find_requests_expiring_between(
                add_days(now, days), add_days(now, days + 1), limit=batch_size
            )
            for request in window:
                try:
                    if self._send_warning(request, days, now):
                        result.warnings_sent += 1
                except Exception as e:
                    logger.error(
                        f"Failed to send {days}-day expiration warning: {e}",
                        extra={"request_id": request.request_id},
                        exc_info=True
                    )
                    result.errors.append(ExpirationCheckError(id=request.request_id, error=str(e)))

        logger.info(
            f"Expiration check: checked={result.checked} expired={result.expired} "
            f"warnings={result.warnings_sent} errors={len(result.errors)}",
            extra={"operation": "check_expirations"}
        )
        return result

    @returns_result("Failed to expire signature request")
    def expire_request(self, request_id: str) -> bool:
        """
        Expire one overdue request.

        Returns:
            True when this call expired the request, False when it was already
            terminal (e.g. expired by a concurrent sweep)
        """
        request = self.store.get_request(request_id)
        if request is None:
            raise RequestNotFoundError(request_id)
        if request.is_terminal:
            return False
        now = self.clock.now()
        if not is_expired(request.expires_at, now):
            raise ConflictError(
                "Signature request has not reached its expiration date",
                details={"request_id": request_id, "expires_at": format_iso(request.expires_at)}
            )
        return self._expire(request, now)

    def _expire(self, request: SignatureRequest, now: datetime) -> bool:
        updated = self.store.update_request(
            request.request_id,
            {"status": SignatureStatus.EXPIRED, "expired_at": now, "updated_at": now},
            ACTIVE_REQUEST_STATUSES,
            extra_filter={"expires_at": {"$lte": now}}
        )
        if updated is None:
            logger.debug(
                "Request already left the active states; skipping",
                extra={"request_id": request.request_id}
            )
            return False

        open_signers = [s for s in self.store.get_signers(request.request_id) if s.is_open]
        self.store.transition_open_signers(request.request_id, SignerStatus.EXPIRED, now)

        self.audit_writer.write_system_event(
            request.request_id,
            AuditAction.EXPIRED,
            details={"expires_at": format_iso(request.expires_at), "open_signers": len(open_signers)}
        )
        recipients = [s.signer_email for s in open_signers]
        if request.initiator_email:
            recipients.insert(0, request.initiator_email)
        self.notifier.emit(
            NotificationEvent.REQUEST_EXPIRED,
            request.request_id,
            recipients,
            {"title": request.title, "expired_at": format_iso(now)}
        )
        logger.info("Signature request expired", extra={"request_id": request.request_id})
        return True

    def _send_warning(self, request: SignatureRequest, days: int, now: datetime) -> bool:
        if not self.store.claim_expiration_warning(request.request_id, days, now):
            return False

        recipients = [s.signer_email for s in self.store.get_signers(request.request_id) if s.is_open]
        if request.initiator_email:
            recipients.insert(0, request.initiator_email)
        self.notifier.emit(
            NotificationEvent.EXPIRATION_WARNING,
            request.request_id,
            recipients,
            {
                "title": request.title,
                "days_remaining": days,
                "expires_at": format_iso(request.expires_at),
            }
        )
        self.audit_writer.write_system_event(
            request.request_id,
            AuditAction.EXPIRATION_WARNING_SENT,
            details={"days_remaining": days}
        )
        return True

    # =========================================================================
    # Extension & queries
    # =========================================================================

    @returns_result("Failed to extend expiration")
    def extend_expiration(self, request_id: str, actor: ActorContext, days: int) -> SignatureRequest:
        """
        Push expires_at forward by days.

        The total lifetime (created_at to the new expiry) may not exceed
        max_expiration_days. Extending resets the expiration warning ledger.
        """
        self.validate_extension_days(days)

        request = self.store.get_request(request_id)
        if request is None or request.deleted_at is not None:
            raise RequestNotFoundError(request_id)
        self.permission_guard.require_initiator(actor, request, "extend")
        if request.is_terminal:
            raise ConflictError(
                f"Cannot extend a {request.status.value} signature request",
                details={"request_id": request_id, "status": request.status.value}
            )

        new_expires_at = add_days(request.expires_at, days)
        lifetime = days_between(request.created_at, new_expires_at)
        if lifetime > self.config.max_expiration_days:
            raise ValidationError(
                f"Total lifetime cannot exceed {self.config.max_expiration_days} days",
                details={"field": "days", "lifetime_days": lifetime}
            )

        now = self.clock.now()
        updated = self.store.update_request(
            request_id,
            {"expires_at": new_expires_at, "expiration_warnings_sent": [], "updated_at": now},
            ACTIVE_REQUEST_STATUSES,
            extra_filter={"expires_at": request.expires_at}
        )
        if updated is None:
            raise ConflictError(
                "Signature request changed during extension; retry",
                details={"request_id": request_id}
            )

        self.audit_writer.write_event(
            request_id,
            AuditAction.EXTENDED,
            actor=actor,
            details={
                "days": days,
                "previous_expires_at": format_iso(request.expires_at),
                "new_expires_at": format_iso(new_expires_at),
            }
        )
        return updated

    def validate_extension_days(self, days: int) -> None:
        if isinstance(days, bool) or not isinstance(days, int):
            raise ValidationError("Extension days must be an integer", details={"field": "days"})
        if not self.config.min_expiration_days <= days <= self.config.max_expiration_days:
            raise ValidationError(
                f"Extension must be between {self.config.min_expiration_days} and "
                f"{self.config.max_expiration_days} days",
                details={"field": "days"}
            )

    @returns_result("Failed to get expiring requests")
    def get_expiring_requests(self, actor: ActorContext, days_ahead: int = 7) -> List[SignatureRequest]:
        """The actor's open requests expiring within days_ahead, soonest first"""
        if not 1 <= days_ahead <= self.config.max_expiration_days:
            raise ValidationError(
                f"days_ahead must be between 1 and {self.config.max_expiration_days}",
                details={"field": "days_ahead"}
            )
        now = self.clock.now()
        return self.store.find_requests_expiring_between(
            now, add_days(now, days_ahead), initiated_by=actor.user_id
        )
