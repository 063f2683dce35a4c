"""Bulk Operations Service - Fan-out of lifecycle operations over many requests"""
import contextvars
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional, Sequence, Union

from ..config.settings import Settings
from ..domain.models import ActorContext, BulkOperationError, BulkOperationResult
from ..domain.enums import BulkOperationType
from ..domain.errors import AuthorizationError, InternalError, ValidationError
from ..domain.results import Result, returns_result
from ..engine.permission_guard import PermissionGuard
from ..repositories.base import SignatureStore
from .expiration_service import ExpirationService
from .rate_limiter import RateLimiter
from .request_service import SignatureRequestService
from ..utils.time import Clock, format_iso
from ..utils.logger import get_logger

logger = get_logger(__name__)

# Per-item error codes reported in BulkOperationResult.errors
BULK_ERROR_CODES = {
    "NOT_FOUND": "NOT_FOUND",
    "AUTHORIZATION_ERROR": "PERMISSION_DENIED",
    "VALIDATION_ERROR": "VALIDATION_ERROR",
    "CONFLICT": "CONFLICT",
    "EXPIRED": "EXPIRED",
    "RATE_LIMIT_EXCEEDED": "RATE_LIMIT_EXCEEDED",
}
UNKNOWN_ERROR_CODE = "UNKNOWN_ERROR"


class BulkOperationsService:
    """
    Applies one operation to many requests.

    Pre-flight checks (size, rate limit, ownership, parameters) fail the whole
    call. After that every request gets exactly one outcome and a failing
    item never stops the others.
    """

    def __init__(
        self,
        store: SignatureStore,
        request_service: SignatureRequestService,
        expiration_service: ExpirationService,
        rate_limiter: RateLimiter,
        config: Settings,
        clock: Optional[Clock] = None,
        permission_guard: Optional[PermissionGuard] = None
    ):
        self.store = store
        self.request_service = request_service
        self.expiration_service = expiration_service
        self.rate_limiter = rate_limiter
        self.config = config
        self.clock = clock or Clock()
        self.permission_guard = permission_guard or PermissionGuard()

    @returns_result("Bulk operation failed")
    def execute_bulk_operation(
        self,
        actor: ActorContext,
        operation: Union[BulkOperationType, str],
        request_ids: Sequence[str],
        parameters: Optional[Dict[str, Any]] = None
    ) -> BulkOperationResult:
        started = time.monotonic()
        parameters = dict(parameters or {})

        try:
            operation = BulkOperationType(operation)
        except ValueError:
            raise ValidationError(
                f"Unsupported bulk operation: {operation}",
                details={"field": "operation", "allowed": [op.value for op in BulkOperationType]}
            )

        if not request_ids:
            raise ValidationError("No request IDs supplied", details={"field": "request_ids"})
        if len(request_ids) > self.config.max_bulk_operation_size:
            raise ValidationError(
                f"Maximum {self.config.max_bulk_operation_size} requests per bulk operation",
                details={"field": "request_ids", "count": len(request_ids)}
            )
        ids = list(dict.fromkeys(request_ids))

        self.rate_limiter.check(
            actor.user_id, "bulk_operation", self.config.rate_limit_bulk_operations_per_hour
        )
        self._check_ownership(actor, ids)
        self._validate_parameters(operation, parameters)

        outcomes = self._fan_out(operation, ids, actor, parameters)

        result = BulkOperationResult(total=len(ids), successful=0, failed=0)
        records: List[Dict[str, Any]] = []
        for request_id, outcome in zip(ids, outcomes):
            if outcome.success:
                result.successful += 1
                if operation == BulkOperationType.EXPORT:
                    records.append(outcome.data)
                continue
            result.failed += 1
            code = BULK_ERROR_CODES.get(outcome.error.code, UNKNOWN_ERROR_CODE)
            result.errors.append(BulkOperationError(id=request_id, error=outcome.error.message, code=code))

        if operation == BulkOperationType.EXPORT:
            # The format is echoed for the caller; records are always the JSON form of each request
            result.payload = {
                "format": parameters.get("format") or "json",
                "records": records,
                "exported_at": format_iso(self.clock.now()),
            }

        result.duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            f"Bulk {operation.value}: {result.successful}/{result.total} succeeded",
            extra={"actor_id": actor.user_id, "operation": operation.value}
        )
        return result

    def _check_ownership(self, actor: ActorContext, ids: List[str]) -> None:
        """Refuse the whole call if any existing request belongs to someone else"""
        foreign = [
            r.request_id for r in self.store.get_requests(ids)
            if not self.permission_guard.is_initiator(actor, r)
        ]
        if foreign:
            raise AuthorizationError(
                f"You do not own {len(foreign)} of the selected signature requests",
                details={"count": len(foreign)}
            )

    def _validate_parameters(self, operation: BulkOperationType, parameters: Dict[str, Any]) -> None:
        if operation == BulkOperationType.EXTEND_EXPIRATION:
            if "days" not in parameters:
                raise ValidationError("Extension days are required", details={"field": "parameters.days"})
            self.expiration_service.validate_extension_days(parameters["days"])
        elif operation == BulkOperationType.CANCEL:
            reason = parameters.get("reason")
            if reason is not None and not isinstance(reason, str):
                raise ValidationError("Cancellation reason must be text", details={"field": "parameters.reason"})

    def _fan_out(
        self,
        operation: BulkOperationType,
        ids: List[str],
        actor: ActorContext,
        parameters: Dict[str, Any]
    ) -> List[Result]:
        workers = max(1, min(self.config.bulk_max_workers, len(ids)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="bulk") as executor:
            # Each task runs in its own copy of the context so log records keep the correlation ID
            futures = [
                executor.submit(
                    contextvars.copy_context().run, self._run_one, operation, request_id, actor, parameters
                )
                for request_id in ids
            ]
            outcomes = []
            for request_id, future in zip(ids, futures):
                try:
                    outcomes.append(future.result())
                except Exception as e:
                    logger.error(
                        f"Bulk task crashed: {e}",
                        extra={"request_id": request_id, "operation": operation.value},
                        exc_info=True
                    )
                    outcomes.append(_crashed(e))
        return outcomes

    def _run_one(
        self,
        operation: BulkOperationType,
        request_id: str,
        actor: ActorContext,
        parameters: Dict[str, Any]
    ) -> Result:
        if operation == BulkOperationType.CANCEL:
            return self.request_service.cancel_request(request_id, actor, parameters.get("reason"))
        if operation == BulkOperationType.DELETE:
            return self.request_service.delete_request(request_id, actor)
        if operation == BulkOperationType.REMIND:
            return self.request_service.send_reminder(request_id, actor)
        if operation == BulkOperationType.EXTEND_EXPIRATION:
            return self.expiration_service.extend_expiration(request_id, actor, parameters["days"])

        outcome = self.request_service.get_request(request_id, actor.user_id, actor.email)
        if outcome.success:
            outcome.data = outcome.data.model_dump(mode="json")
        return outcome


def _crashed(exc: Exception) -> Result:
    return Result.fail(InternalError.from_exception("Bulk task failed", exc))
