"""Signature Request Service - Request lifecycle business logic"""
import math
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from ..config.settings import Settings
from ..domain.models import (
    ActorContext, AuditLogEntry, CreateSignatureRequestInput, FieldConfiguration,
    SignatureRequest, SignatureRequestDetail, Signer, UpdateSignatureRequestInput,
    coerce_input
)
from ..domain.enums import (
    AuditAction, NotificationEvent, RequestView, SignatureStatus, SignatureType,
    SignerStatus, SigningOrder, ACTIVE_REQUEST_STATUSES
)
from ..domain.errors import (
    AuthorizationError, ConflictError, InternalError, RateLimitError, RequestNotFoundError,
    ValidationError
)
from ..domain.results import PaginationMetadata, returns_paginated_result, returns_result
from ..engine.audit_writer import AuditWriter
from ..engine.field_validator import validate_field_assignments
from ..engine.permission_guard import PermissionGuard
from ..repositories.base import SignatureStore
from ..repositories.field_repo import FieldConfigurationRepository
from .notification_service import NotificationPort
from .rate_limiter import RateLimiter
from ..utils.idgen import generate_request_id, generate_signer_id
from ..utils.time import Clock, add_days, add_hours
from ..utils.logger import get_logger

logger = get_logger(__name__)


class SignatureRequestService:
    """Service for signature request operations"""

    def __init__(
        self,
        store: SignatureStore,
        audit_writer: AuditWriter,
        notifier: NotificationPort,
        rate_limiter: RateLimiter,
        field_repo: FieldConfigurationRepository,
        config: Settings,
        clock: Optional[Clock] = None,
        permission_guard: Optional[PermissionGuard] = None
    ):
        self.store = store
        self.audit_writer = audit_writer
        self.notifier = notifier
        self.rate_limiter = rate_limiter
        self.field_repo = field_repo
        self.config = config
        self.clock = clock or Clock()
        self.permission_guard = permission_guard or PermissionGuard()

    # =========================================================================
    # Create
    # =========================================================================

    @returns_result("Failed to create signature request")
    def create_request(
        self,
        actor: ActorContext,
        data: Union[CreateSignatureRequestInput, Dict[str, Any]]
    ) -> SignatureRequest:
        """
        Create a signature request and its signers.

        Signers without an explicit signing_order get their 1-based position.
        If the signers cannot be stored the request is removed again and an
        InternalError is returned.
        """
        data = coerce_input(CreateSignatureRequestInput, data)
        signature_type, orders, expires_in_days = self._validate_create(data)

        if data.fields:
            self._check_field_owner(actor, data.document_id)
        self.rate_limiter.check(
            actor.user_id, "create_request", self.config.rate_limit_requests_per_hour
        )

        now = self.clock.now()
        request = SignatureRequest(
            request_id=generate_request_id(),
            document_id=data.document_id,
            initiated_by=actor.user_id,
            initiator_email=actor.email,
            title=data.title.strip(),
            description=data.description,
            signature_type=signature_type,
            signing_order=data.signing_order,
            status=SignatureStatus.INITIATED,
            total_signers=len(data.signers),
            require_totp=data.require_totp,
            expires_at=add_days(now, expires_in_days),
            created_at=now,
            updated_at=now,
            metadata=data.metadata,
        )
        signers = [
            Signer(
                signer_id=generate_signer_id(),
                request_id=request.request_id,
                user_id=signer.user_id,
                signer_email=signer.signer_email,
                signer_name=signer.signer_name,
                signing_order=order,
                status=SignerStatus.PENDING,
                created_at=now,
                updated_at=now,
            )
            for signer, order in zip(data.signers, orders)
        ]
        signers.sort(key=lambda s: s.signing_order)

        self.store.insert_request(request)
        try:
            self.store.insert_signers(signers)
        except Exception as e:
            logger.error(
                f"Failed to create signers, rolling back request: {e}",
                extra={"request_id": request.request_id},
                exc_info=True
            )
            self.store.delete_request(request.request_id)
            raise InternalError.from_exception("Failed to create signers", e)

        if data.fields:
            self.field_repo.upsert(
                FieldConfiguration(
                    document_id=data.document_id,
                    owner_id=actor.user_id,
                    fields=data.fields,
                    created_at=now,
                    updated_at=now,
                )
            )

        self.audit_writer.write_event(
            request.request_id,
            AuditAction.CREATED,
            actor=actor,
            details={
                "document_id": request.document_id,
                "title": request.title,
                "total_signers": request.total_signers,
                "signing_order": request.signing_order.value,
            }
        )
        self._send_to_signers(request, signers, now)

        logger.info(
            f"Signature request created with {len(signers)} signers",
            extra={"request_id": request.request_id, "actor_id": actor.user_id}
        )
        return request

    def _validate_create(
        self,
        data: CreateSignatureRequestInput
    ) -> Tuple[SignatureType, List[int], int]:
        """Returns the resolved signature type, signer orders and lifetime in days"""
        if not data.title.strip():
            raise ValidationError("Title is required", details={"field": "title"})
        if len(data.title) > self.config.max_title_length:
            raise ValidationError(
                f"Title must be at most {self.config.max_title_length} characters",
                details={"field": "title"}
            )
        if data.description and len(data.description) > self.config.max_description_length:
            raise ValidationError(
                f"Description must be at most {self.config.max_description_length} characters",
                details={"field": "description"}
            )

        count = len(data.signers)
        if count < self.config.min_signers_per_request:
            raise ValidationError(
                f"At least {self.config.min_signers_per_request} signer is required",
                details={"field": "signers"}
            )
        if count > self.config.max_signers_per_request:
            raise ValidationError(
                f"Maximum {self.config.max_signers_per_request} signers allowed",
                details={"field": "signers", "count": count}
            )

        emails = [s.signer_email.lower() for s in data.signers]
        duplicates = sorted({e for e in emails if emails.count(e) > 1})
        if duplicates:
            raise ValidationError(
                "Duplicate signer emails are not allowed",
                details={"field": "signers", "duplicates": duplicates}
            )

        explicit = [s.signing_order for s in data.signers if s.signing_order is not None]
        if len(explicit) != len(set(explicit)):
            raise ValidationError(
                "Signing orders must be unique",
                details={"field": "signers.signing_order"}
            )
        orders = [
            s.signing_order if s.signing_order is not None else index + 1
            for index, s in enumerate(data.signers)
        ]
        if len(orders) != len(set(orders)):
            raise ValidationError(
                "Signing orders collide with signer positions; set signing_order on every signer",
                details={"field": "signers.signing_order"}
            )

        signature_type = data.signature_type or (
            SignatureType.SINGLE if count == 1 else SignatureType.MULTI
        )
        if signature_type == SignatureType.SINGLE and count != 1:
            raise ValidationError(
                "Single signature requests must have exactly one signer",
                details={"field": "signature_type"}
            )

        expires_in_days = data.expires_in_days
        if expires_in_days is None:
            expires_in_days = self.config.default_expiration_days
        if not self.config.min_expiration_days <= expires_in_days <= self.config.max_expiration_days:
            raise ValidationError(
                f"Expiration must be between {self.config.min_expiration_days} and "
                f"{self.config.max_expiration_days} days",
                details={"field": "expires_in_days"}
            )

        if data.fields is not None:
            signer_keys = [s.signer_email for s in data.signers]
            signer_keys += [s.user_id for s in data.signers if s.user_id]
            validation = validate_field_assignments(data.fields, signer_keys)
            if not validation.valid:
                raise ValidationError(
                    "Invalid field configuration",
                    details={"field": "fields", "violations": validation.errors}
                )

        return signature_type, orders, expires_in_days

    def _check_field_owner(self, actor: ActorContext, document_id: str) -> None:
        """A document's field layout may only be replaced by its owner"""
        existing = self.field_repo.get(document_id)
        if existing is not None and not actor.matches(existing.owner_id, None):
            raise AuthorizationError(
                "Only the owner can change this document's fields",
                details={"document_id": document_id}
            )

    def _send_to_signers(self, request: SignatureRequest, signers: List[Signer], now) -> None:
        """Notify whoever can sign right away and mark them sent"""
        if request.signing_order == SigningOrder.SEQUENTIAL:
            recipients = signers[:1]
        else:
            recipients = signers
        delivered = self.notifier.emit(
            NotificationEvent.SIGNATURE_REQUESTED,
            request.request_id,
            [s.signer_email for s in recipients],
            {"title": request.title, "document_id": request.document_id,
             "expires_at": request.expires_at.isoformat()}
        )
        if not delivered:
            return
        for signer in recipients:
            self.store.transition_signer(
                signer.signer_id,
                SignerStatus.SENT,
                (SignerStatus.PENDING,),
                updates={"sent_at": now, "updated_at": now}
            )

    # =========================================================================
    # Read
    # =========================================================================

    @returns_result("Failed to get signature request")
    def get_request(
        self,
        request_id: str,
        auth_user_id: Optional[str],
        auth_user_email: Optional[str]
    ) -> SignatureRequestDetail:
        """Get a request with its signers; initiator or assigned signers only"""
        request = self._get_request_or_raise(request_id)
        signers = self.store.get_signers(request_id)
        if not self.permission_guard.can_view_request(auth_user_id, auth_user_email, request, signers):
            raise AuthorizationError(
                "You do not have permission to view this signature request",
                details={"request_id": request_id}
            )
        return SignatureRequestDetail(**request.model_dump(), signers=signers)

    @returns_paginated_result("Failed to list signature requests")
    def list_requests(
        self,
        auth_user_id: Optional[str],
        auth_user_email: Optional[str],
        page: int = 1,
        page_size: Optional[int] = None,
        status: Optional[Sequence[Union[SignatureStatus, str]]] = None,
        view: Optional[Union[RequestView, str]] = None,
        search: Optional[str] = None
    ) -> Tuple[List[SignatureRequest], PaginationMetadata]:
        """
        List requests the caller sent, received, or both (no view).

        Page size is clamped to [1, max_page_size]; search matches titles
        case-insensitively.
        """
        if not auth_user_id and not auth_user_email:
            raise AuthorizationError("Caller identity is required")

        page = max(page or 1, 1)
        if page_size is None:
            page_size = self.config.default_page_size
        page_size = min(max(page_size, 1), self.config.max_page_size)

        if isinstance(status, str):
            status = [status]
        try:
            statuses = [SignatureStatus(s) for s in status] if status else None
            view = RequestView(view) if view else None
        except ValueError as e:
            raise ValidationError(str(e), details={"field": "status" if status else "view"})

        initiated_by: Optional[str] = None
        request_ids: Optional[List[str]] = None
        if view in (None, RequestView.SENT):
            initiated_by = auth_user_id
        if view in (None, RequestView.RECEIVED):
            request_ids = self.store.find_signer_request_ids(auth_user_id, auth_user_email)
            if view == RequestView.RECEIVED and not request_ids:
                return [], self._pagination(0, page, page_size)
        if initiated_by is None and not request_ids:
            return [], self._pagination(0, page, page_size)

        search = search.strip() if search else None
        total = self.store.count_requests(initiated_by, request_ids, statuses, search)
        items = self.store.list_requests(
            initiated_by, request_ids, statuses, search,
            skip=(page - 1) * page_size, limit=page_size
        )
        return items, self._pagination(total, page, page_size)

    @returns_result("Failed to get audit trail")
    def get_audit_trail(
        self,
        request_id: str,
        auth_user_id: Optional[str],
        auth_user_email: Optional[str],
        limit: int = 100
    ) -> List[AuditLogEntry]:
        """Audit entries for a request, newest first; same visibility as get_request"""
        request = self._get_request_or_raise(request_id)
        signers = self.store.get_signers(request_id)
        if not self.permission_guard.can_view_request(auth_user_id, auth_user_email, request, signers):
            raise AuthorizationError(
                "You do not have permission to view this signature request",
                details={"request_id": request_id}
            )
        return self.audit_writer.repo.get_entries_for_request(request_id, limit=limit)

    # =========================================================================
    # Update / Cancel / Delete
    # =========================================================================

    @returns_result("Failed to update signature request")
    def update_request(
        self,
        request_id: str,
        actor: ActorContext,
        data: Union[UpdateSignatureRequestInput, Dict[str, Any]]
    ) -> SignatureRequest:
        """Update title, description, metadata or push expires_at forward"""
        data = coerce_input(UpdateSignatureRequestInput, data)
        request = self._get_request_or_raise(request_id)
        self.permission_guard.require_initiator(actor, request, "update")
        self._require_active(request, "updated")

        updates: Dict[str, Any] = {}
        if data.title is not None:
            title = data.title.strip()
            if not title or len(title) > self.config.max_title_length:
                raise ValidationError(
                    f"Title must be 1-{self.config.max_title_length} characters",
                    details={"field": "title"}
                )
            updates["title"] = title
        if data.description is not None:
            if len(data.description) > self.config.max_description_length:
                raise ValidationError(
                    f"Description must be at most {self.config.max_description_length} characters",
                    details={"field": "description"}
                )
            updates["description"] = data.description
        if data.metadata is not None:
            updates["metadata"] = data.metadata
        if data.expires_at is not None:
            if data.expires_at <= request.expires_at:
                raise ValidationError(
                    "Expiration can only be moved forward",
                    details={"field": "expires_at"}
                )
            latest = add_days(request.created_at, self.config.max_expiration_days)
            if data.expires_at > latest:
                raise ValidationError(
                    f"Expiration cannot be more than {self.config.max_expiration_days} days after creation",
                    details={"field": "expires_at", "latest_allowed": latest.isoformat()}
                )
            updates["expires_at"] = data.expires_at
            updates["expiration_warnings_sent"] = []

        if not updates:
            raise ValidationError("No changes supplied")

        updates["updated_at"] = self.clock.now()
        updated = self.store.update_request(request_id, updates, ACTIVE_REQUEST_STATUSES)
        if updated is None:
            raise ConflictError(
                "Signature request changed state during update",
                details={"request_id": request_id}
            )

        self.audit_writer.write_event(
            request_id,
            AuditAction.UPDATED,
            actor=actor,
            details={"fields": sorted(k for k in updates if k not in ("updated_at", "expiration_warnings_sent"))}
        )
        return updated

    @returns_result("Failed to cancel signature request")
    def cancel_request(
        self,
        request_id: str,
        actor: ActorContext,
        reason: Optional[str] = None
    ) -> SignatureRequest:
        """Cancel an open request; signers still open are marked expired"""
        request = self._get_request_or_raise(request_id)
        self.permission_guard.require_initiator(actor, request, "cancel")
        if request.status == SignatureStatus.COMPLETED:
            raise ConflictError(
                "Cannot cancel a completed signature request",
                details={"request_id": request_id}
            )
        self._require_active(request, "cancelled")

        now = self.clock.now()
        updates: Dict[str, Any] = {
            "status": SignatureStatus.CANCELLED,
            "cancelled_at": now,
            "updated_at": now,
        }
        if reason:
            updates["metadata.cancellation_reason"] = reason
        open_signers = [s for s in self.store.get_signers(request_id) if s.is_open]

        updated = self.store.update_request(request_id, updates, ACTIVE_REQUEST_STATUSES)
        if updated is None:
            raise ConflictError(
                "Signature request is no longer open",
                details={"request_id": request_id}
            )
        self.store.transition_open_signers(request_id, SignerStatus.EXPIRED, now)

        self.audit_writer.write_event(
            request_id, AuditAction.CANCELLED, actor=actor, details={"reason": reason}
        )
        self.notifier.emit(
            NotificationEvent.REQUEST_CANCELLED,
            request_id,
            [s.signer_email for s in open_signers],
            {"title": request.title, "reason": reason}
        )
        return updated

    @returns_result("Failed to delete signature request")
    def delete_request(self, request_id: str, actor: ActorContext) -> SignatureRequest:
        """
        Soft delete: the request becomes cancelled with deleted_at set and its
        open signers are cancelled. Only requests nobody has signed yet can be
        deleted.
        """
        request = self._get_request_or_raise(request_id)
        self.permission_guard.require_initiator(actor, request, "delete")
        self._require_active(request, "deleted")
        if request.completed_signers > 0:
            raise ConflictError(
                "Cannot delete a signature request that has signatures",
                details={"request_id": request_id, "completed_signers": request.completed_signers}
            )

        now = self.clock.now()
        updated = self.store.update_request(
            request_id,
            {
                "status": SignatureStatus.CANCELLED,
                "cancelled_at": now,
                "deleted_at": now,
                "updated_at": now,
            },
            ACTIVE_REQUEST_STATUSES,
            extra_filter={"completed_signers": 0}
        )
        if updated is None:
            raise ConflictError(
                "Signature request changed state during delete",
                details={"request_id": request_id}
            )
        self.store.transition_open_signers(request_id, SignerStatus.CANCELLED, now)

        self.audit_writer.write_event(request_id, AuditAction.DELETED, actor=actor)
        return updated

    @returns_result("Failed to send reminder")
    def send_reminder(self, request_id: str, actor: ActorContext) -> SignatureRequest:
        """
        Remind every signer that has not finished yet.

        A request gets at most max_reminders_per_request reminders, spaced at
        least min_reminder_interval_hours apart.
        """
        request = self._get_request_or_raise(request_id)
        self.permission_guard.require_initiator(actor, request, "remind")
        self._require_active(request, "reminded")

        open_signers = [s for s in self.store.get_signers(request_id) if s.is_open]
        if not open_signers:
            raise ConflictError("No signers are waiting to sign", details={"request_id": request_id})

        self.rate_limiter.check(
            actor.user_id, "send_reminder", self.config.rate_limit_reminders_per_hour
        )

        now = self.clock.now()
        claimed = self.store.claim_reminder_slot(
            request_id,
            now,
            not_after=add_hours(now, -self.config.min_reminder_interval_hours),
            max_reminders=self.config.max_reminders_per_request
        )
        if claimed is None:
            current = self._get_request_or_raise(request_id)
            self._require_active(current, "reminded")
            if current.reminder_count >= self.config.max_reminders_per_request:
                message = f"Maximum of {self.config.max_reminders_per_request} reminders already sent"
            else:
                message = (
                    f"Reminders must be at least {self.config.min_reminder_interval_hours} hours apart"
                )
            raise RateLimitError(
                message,
                details={
                    "request_id": request_id,
                    "reminder_count": current.reminder_count,
                    "last_reminder_at": current.last_reminder_at.isoformat() if current.last_reminder_at else None,
                }
            )

        self.notifier.emit(
            NotificationEvent.SIGNATURE_REMINDER,
            request_id,
            [s.signer_email for s in open_signers],
            {"title": request.title, "expires_at": request.expires_at.isoformat()}
        )
        self.store.mark_signers_reminded([s.signer_id for s in open_signers], now)
        self.audit_writer.write_event(
            request_id,
            AuditAction.REMINDED,
            actor=actor,
            details={"signer_count": len(open_signers), "reminder_count": claimed.reminder_count}
        )
        return claimed

    # =========================================================================
    # Helpers
    # =========================================================================

    def _get_request_or_raise(self, request_id: str) -> SignatureRequest:
        request = self.store.get_request(request_id)
        if request is None or request.deleted_at is not None:
            raise RequestNotFoundError(request_id)
        return request

    @staticmethod
    def _require_active(request: SignatureRequest, verb: str) -> None:
        if request.is_terminal:
            raise ConflictError(
                f"A {request.status.value} signature request cannot be {verb}",
                details={"request_id": request.request_id, "status": request.status.value}
            )

    @staticmethod
    def _pagination(total: int, page: int, page_size: int) -> PaginationMetadata:
        return PaginationMetadata(
            total=total,
            page=page,
            page_size=page_size,
            total_pages=math.ceil(total / page_size) if total else 0,
            has_more=page * page_size < total,
        )
