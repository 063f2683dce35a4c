"""Domain Errors - Centralized Exception Hierarchy"""
from typing import Any, Dict, List, Optional

from ..utils.time import utc_now, format_iso


class DomainError(Exception):
    """Base domain error - all errors extend this"""

    error_code: str = "DOMAIN_ERROR"
    http_status: int = 400
    default_suggestions: List[Dict[str, str]] = []

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None,
        recovery_suggestions: Optional[List[Dict[str, str]]] = None
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if error_code:
            self.error_code = error_code
        self.recovery_suggestions = recovery_suggestions or list(self.default_suggestions)
        self.timestamp = format_iso(utc_now())

    def serialize(self) -> Dict[str, Any]:
        """Flat error payload used inside Result envelopes"""
        return {
            "code": self.error_code,
            "message": self.message,
            "status_code": self.http_status,
            "details": self.details,
            "timestamp": self.timestamp,
            "recovery_suggestions": self.recovery_suggestions,
        }

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to API response dict"""
        return {"error": self.serialize()}


class ValidationError(DomainError):
    """Input validation failed"""
    error_code = "VALIDATION_ERROR"
    http_status = 400
    default_suggestions = [
        {
            "action": "Check input data",
            "description": "Verify that all required fields are provided and in the correct format",
        }
    ]


class AuthorizationError(DomainError):
    """User lacks permission for action"""
    error_code = "AUTHORIZATION_ERROR"
    http_status = 403
    default_suggestions = [
        {
            "action": "Verify permissions",
            "description": "Ensure you have the necessary permissions to perform this action",
        }
    ]


class NotFoundError(DomainError):
    """Resource not found"""
    error_code = "NOT_FOUND"
    http_status = 404
    default_suggestions = [
        {
            "action": "Verify resource ID",
            "description": "Check that the requested resource exists and the ID is correct",
        }
    ]


class RequestNotFoundError(NotFoundError):
    """Signature request not found"""

    def __init__(self, request_id: str):
        super().__init__(
            f"Signature request {request_id} not found",
            details={"resource": "signature_request", "id": request_id}
        )


class SignerNotFoundError(NotFoundError):
    """Signer not found"""

    def __init__(self, signer_id: str):
        super().__init__(
            f"Signer {signer_id} not found",
            details={"resource": "signer", "id": signer_id}
        )


class ConflictError(DomainError):
    """Resource conflict (state does not allow the action)"""
    error_code = "CONFLICT"
    http_status = 409
    default_suggestions = [
        {
            "action": "Check resource state",
            "description": "The resource may already be in the requested state or locked by another operation",
        }
    ]


class ExpiredError(DomainError):
    """Resource has expired"""
    error_code = "EXPIRED"
    http_status = 410
    default_suggestions = [
        {
            "action": "Request extension",
            "description": "Contact the request initiator to extend the expiration date",
        }
    ]


class RateLimitError(DomainError):
    """Rate limit exceeded"""
    error_code = "RATE_LIMIT_EXCEEDED"
    http_status = 429
    default_suggestions = [
        {
            "action": "Wait and retry",
            "description": "You have exceeded the rate limit. Please wait before trying again",
        }
    ]


class InternalError(DomainError):
    """Infrastructure failure; the original cause is kept in details"""
    error_code = "INTERNAL_ERROR"
    http_status = 500
    default_suggestions = [
        {
            "action": "Retry operation",
            "description": "An internal error occurred. Please try again later",
        },
        {
            "action": "Contact support",
            "description": "If the problem persists, please contact support with the error details",
        },
    ]

    @classmethod
    def from_exception(cls, message: str, exc: BaseException) -> "InternalError":
        return cls(
            message,
            details={"cause": str(exc), "cause_type": type(exc).__name__}
        )


def validation_error_from_pydantic(exc: Any, message: str = "Invalid input") -> ValidationError:
    """Convert a pydantic ValidationError into a domain ValidationError"""
    violations = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ())),
            "message": err.get("msg", ""),
        }
        for err in exc.errors()
    ]
    return ValidationError(message, details={"violations": violations})
