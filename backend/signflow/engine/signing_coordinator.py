"""
Signing Coordinator - Signer transitions and request completion

Signing is two conditional writes against the store:

1. The signer row is claimed (open status -> signed). A concurrent second
   attempt on the same row finds no open row and fails with a conflict.
2. completed_signers is advanced with a compare-and-increment that also
   flips the request to completed in the same update once the count
   reaches total_signers. Concurrent signers of one request are serialized
   by the store, so each signature is counted exactly once.

The sequential-order check reads the signer set fresh at read-committed
level. Because signed is terminal, a stale read can only report an earlier
signer as unsigned (a false "not your turn"), never the reverse.
"""
from typing import Any, Dict, List, Optional, Union

from ..domain.models import ActorContext, SignatureRequest, Signer, SignResult
from ..domain.enums import (
    AuditAction, NotificationEvent, SignatureMethod, SignatureStatus, SignerStatus, SigningOrder,
    SIGNER_TRANSITIONS, OPEN_SIGNER_STATUSES, TERMINAL_SIGNER_STATUSES
)
from ..domain.errors import (
    AuthorizationError, ConflictError, ExpiredError, RequestNotFoundError, SignerNotFoundError,
    ValidationError
)
from ..domain.results import returns_result
from ..repositories.base import SignatureStore
from ..repositories.signature_repo import SIGNER_TIMESTAMP_FIELDS
from ..services.notification_service import NotificationPort
from ..services.totp_service import TotpVerifier
from ..utils.time import Clock, is_expired
from ..utils.logger import get_logger
from .audit_writer import AuditWriter
from .permission_guard import PermissionGuard

logger = get_logger(__name__)

SIGNER_STATUS_AUDIT_ACTIONS = {
    SignerStatus.SENT: AuditAction.SENT,
    SignerStatus.VIEWED: AuditAction.VIEWED,
    SignerStatus.DECLINED: AuditAction.DECLINED,
    SignerStatus.EXPIRED: AuditAction.EXPIRED,
    SignerStatus.CANCELLED: AuditAction.CANCELLED,
}

# Statuses a signer sets on their own row; the rest belong to the initiator
SIGNER_SELF_STATUSES = (SignerStatus.VIEWED, SignerStatus.DECLINED)


class SigningCoordinator:
    """Coordinates signing and per-signer status changes"""

    def __init__(
        self,
        store: SignatureStore,
        audit_writer: AuditWriter,
        notifier: NotificationPort,
        totp_verifier: TotpVerifier,
        clock: Optional[Clock] = None,
        permission_guard: Optional[PermissionGuard] = None
    ):
        self.store = store
        self.audit_writer = audit_writer
        self.notifier = notifier
        self.totp_verifier = totp_verifier
        self.clock = clock or Clock()
        self.permission_guard = permission_guard or PermissionGuard()

    # =========================================================================
    # Sign
    # =========================================================================

    @returns_result("Failed to sign document")
    def sign(
        self,
        request_id: str,
        signer_id: str,
        actor: ActorContext,
        signature_data: str,
        signature_method: Union[SignatureMethod, str],
        totp_code: Optional[str] = None,
        location: Optional[Dict[str, Any]] = None
    ) -> SignResult:
        """
        Record a signature and advance the request.

        Raises (returned as Result errors):
            NotFoundError: unknown request, or signer not in the request
            ConflictError: request completed/cancelled, signer already signed/closed
            ExpiredError: request expired or past expires_at
            AuthorizationError: actor is not the signer, or not their turn
            ValidationError: missing signature, bad method, TOTP missing/invalid
        """
        if not signature_data:
            raise ValidationError("Signature data is required", details={"field": "signature_data"})
        method = self._parse_method(signature_method)

        request = self._get_request_or_raise(request_id)
        now = self.clock.now()
        # Expired by the sweep, or overdue and not yet swept
        if request.status == SignatureStatus.EXPIRED or (
            not request.is_terminal and is_expired(request.expires_at, now)
        ):
            raise ExpiredError(
                "Signature request has expired",
                details={"request_id": request_id, "expires_at": request.expires_at.isoformat()}
            )
        if request.is_terminal:
            raise ConflictError(
                f"Signature request is {request.status.value}",
                details={"request_id": request_id, "status": request.status.value}
            )

        signer = self._get_signer_or_raise(request_id, signer_id)
        self.permission_guard.require_signer(actor, signer)

        if signer.status == SignerStatus.SIGNED:
            raise ConflictError("Signer has already signed", details={"signer_id": signer_id})
        if signer.status in TERMINAL_SIGNER_STATUSES:
            raise ConflictError(
                f"Signer is {signer.status.value} and can no longer sign",
                details={"signer_id": signer_id, "status": signer.status.value}
            )

        self._check_signing_order(request, signer)

        if request.require_totp:
            if not totp_code:
                raise ValidationError(
                    "A TOTP code is required to sign this request",
                    details={"field": "totp_code"}
                )
            self.totp_verifier.verify(actor.user_id, totp_code, purpose="signing")

        claimed = self.store.transition_signer(
            signer_id,
            SignerStatus.SIGNED,
            OPEN_SIGNER_STATUSES,
            updates={
                "signed_at": now,
                "signature_data": signature_data,
                "signature_method": method,
                "ip_address": actor.ip_address,
                "user_agent": actor.user_agent,
                "location": location,
                "updated_at": now,
            }
        )
        if claimed is None:
            raise ConflictError("Signer was already processed", details={"signer_id": signer_id})

        updated = self.store.advance_completion(request_id, request.total_signers, now)
        if updated is None:
            # The request closed between the read and the increment; release the signer row
            current = self.store.get_request(request_id)
            release_to = signer.status
            if current is not None and current.is_terminal:
                release_to = SignerStatus.CANCELLED if current.deleted_at else SignerStatus.EXPIRED
            self.store.transition_signer(
                signer_id,
                release_to,
                (SignerStatus.SIGNED,),
                updates={
                    "signed_at": None,
                    "signature_data": None,
                    "signature_method": None,
                    "updated_at": now,
                }
            )
            raise ConflictError(
                "Signature request is no longer open for signing",
                details={"request_id": request_id}
            )

        logger.info(
            f"Signer {signer_id} signed ({updated.completed_signers}/{updated.total_signers})",
            extra={"request_id": request_id, "signer_id": signer_id, "status": updated.status.value}
        )

        self.audit_writer.write_event(
            request_id,
            AuditAction.SIGNED,
            actor=actor,
            details={
                "signer_id": signer_id,
                "signature_method": method.value,
                "completed_signers": updated.completed_signers,
                "total_signers": updated.total_signers,
            }
        )

        if updated.completed_signers == updated.total_signers:
            self._on_completed(updated)
        else:
            self._notify_next_signer(updated, claimed)

        return SignResult(request=updated, signer=claimed)

    def validate_signing_permission(self, request_id: str, signer_id: str) -> bool:
        """
        True when the signer may sign now with respect to signing order.

        Unknown requests or signers return False.
        """
        request = self.store.get_request(request_id)
        if request is None:
            return False
        signers = self.store.get_signers(request_id)
        signer = next((s for s in signers if s.signer_id == signer_id), None)
        if signer is None:
            return False
        return not self.permission_guard.blocking_signers(request, signer, signers)

    # =========================================================================
    # Generic signer status transitions
    # =========================================================================

    @returns_result("Failed to update signer status")
    def update_signer_status(
        self,
        signer_id: str,
        status: Union[SignerStatus, str],
        actor: Optional[ActorContext] = None,
        decline_reason: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> Signer:
        """
        Move a signer along the status graph (sent, viewed, declined, expired, cancelled).

        With an actor, viewed and declined require the signer and the other
        statuses require the initiator. Calls without an actor are system
        transitions and skip the identity check.
        """
        try:
            status = SignerStatus(status)
        except ValueError:
            raise ValidationError(f"Unknown signer status: {status}", details={"field": "status"})
        if status == SignerStatus.SIGNED:
            raise ValidationError(
                "Use sign to record a signature",
                details={"field": "status", "status": status.value}
            )
        if status == SignerStatus.PENDING:
            raise ConflictError("Signers cannot return to pending", details={"signer_id": signer_id})

        signer = self.store.get_signer(signer_id)
        if signer is None:
            raise SignerNotFoundError(signer_id)
        request = self._get_request_or_raise(signer.request_id)

        if status in (SignerStatus.SENT, SignerStatus.VIEWED, SignerStatus.DECLINED):
            if request.is_terminal:
                raise ConflictError(
                    f"Signature request is {request.status.value}",
                    details={"request_id": request.request_id, "status": request.status.value}
                )
        if actor is not None:
            self._require_transition_actor(actor, request, signer, status)

        allowed_from = SIGNER_TRANSITIONS[status]
        if signer.status not in allowed_from:
            raise ConflictError(
                f"Cannot move signer from {signer.status.value} to {status.value}",
                details={"signer_id": signer_id, "from": signer.status.value, "to": status.value}
            )

        now = self.clock.now()
        updates: Dict[str, Any] = {"updated_at": now}
        timestamp_field = SIGNER_TIMESTAMP_FIELDS.get(status)
        if timestamp_field:
            updates[timestamp_field] = now
        if status == SignerStatus.DECLINED:
            updates["decline_reason"] = decline_reason
        if metadata:
            updates["signature_metadata"] = {**signer.signature_metadata, **metadata}

        updated = self.store.transition_signer(signer_id, status, allowed_from, updates=updates)
        if updated is None:
            raise ConflictError(
                f"Signer changed concurrently; cannot move to {status.value}",
                details={"signer_id": signer_id}
            )

        if status == SignerStatus.VIEWED:
            self.store.record_view(request.request_id, now)

        details: Dict[str, Any] = {"signer_id": signer_id, "status": status.value}
        if decline_reason:
            details["decline_reason"] = decline_reason
        self.audit_writer.write_event(
            request.request_id,
            SIGNER_STATUS_AUDIT_ACTIONS[status],
            actor=actor,
            details=details,
            actor_id=None if actor else "system"
        )

        if status == SignerStatus.DECLINED and request.initiator_email:
            self.notifier.emit(
                NotificationEvent.SIGNER_DECLINED,
                request.request_id,
                [request.initiator_email],
                {"title": request.title, "signer_email": signer.signer_email, "reason": decline_reason}
            )

        return updated

    # =========================================================================
    # Helpers
    # =========================================================================

    def _get_request_or_raise(self, request_id: str) -> SignatureRequest:
        request = self.store.get_request(request_id)
        if request is None:
            raise RequestNotFoundError(request_id)
        return request

    def _get_signer_or_raise(self, request_id: str, signer_id: str) -> Signer:
        signer = self.store.get_signer(signer_id)
        if signer is None or signer.request_id != request_id:
            raise SignerNotFoundError(signer_id)
        return signer

    def _require_transition_actor(
        self,
        actor: ActorContext,
        request: SignatureRequest,
        signer: Signer,
        status: SignerStatus
    ) -> None:
        """The signer views or declines; the initiator sends, expires or cancels"""
        if status in SIGNER_SELF_STATUSES:
            self.permission_guard.require_signer(actor, signer)
        else:
            self.permission_guard.require_initiator(actor, request, f"mark signers {status.value}")

    def _check_signing_order(self, request: SignatureRequest, signer: Signer) -> None:
        signers = self.store.get_signers(request.request_id)
        blocking = self.permission_guard.blocking_signers(request, signer, signers)
        if blocking:
            raise AuthorizationError(
                "It is not your turn to sign yet",
                details={
                    "signer_id": signer.signer_id,
                    "waiting_for": [s.signing_order for s in blocking],
                }
            )

    @staticmethod
    def _parse_method(method: Union[SignatureMethod, str]) -> SignatureMethod:
        try:
            return SignatureMethod(method)
        except ValueError:
            raise ValidationError(
                f"Unknown signature method: {method}",
                details={"field": "signature_method", "allowed": [m.value for m in SignatureMethod]}
            )

    def _on_completed(self, request: SignatureRequest) -> None:
        logger.info(
            f"Signature request completed: {request.request_id}",
            extra={"request_id": request.request_id, "status": request.status.value}
        )
        self.audit_writer.write_event(
            request.request_id,
            AuditAction.COMPLETED,
            actor_id="system",
            details={"total_signers": request.total_signers}
        )
        recipients: List[str] = [s.signer_email for s in self.store.get_signers(request.request_id)]
        if request.initiator_email:
            recipients.insert(0, request.initiator_email)
        self.notifier.emit(
            NotificationEvent.REQUEST_COMPLETED,
            request.request_id,
            recipients,
            {"title": request.title, "document_id": request.document_id}
        )

    def _notify_next_signer(self, request: SignatureRequest, signed: Signer) -> None:
        """In sequential requests, tell the next signer it is their turn"""
        if request.signing_order != SigningOrder.SEQUENTIAL:
            return
        next_signer = next(
            (
                s for s in self.store.get_signers(request.request_id)
                if s.signing_order > signed.signing_order and s.is_open
            ),
            None
        )
        if next_signer is None:
            return
        delivered = self.notifier.emit(
            NotificationEvent.SIGNATURE_REQUESTED,
            request.request_id,
            [next_signer.signer_email],
            {"title": request.title, "signer_id": next_signer.signer_id}
        )
        if delivered:
            now = self.clock.now()
            self.store.transition_signer(
                next_signer.signer_id,
                SignerStatus.SENT,
                (SignerStatus.PENDING,),
                updates={"sent_at": now, "updated_at": now}
            )
