"""Domain Models - Pydantic schemas for all entities"""
from datetime import datetime
from typing import Annotated, Any, Dict, List, Optional, Type, TypeVar, Union
from pydantic import AfterValidator, BaseModel, ConfigDict, EmailStr, Field
from pydantic import ValidationError as PydanticValidationError

from .enums import (
    SignatureStatus, SignerStatus, SigningOrder, SignatureType, SignatureMethod,
    AuditAction, FieldType, NotificationEvent, NotificationStatus,
    TERMINAL_REQUEST_STATUSES, OPEN_SIGNER_STATUSES
)
from .errors import validation_error_from_pydantic
from ..utils.idgen import generate_field_id
from ..utils.time import ensure_utc


# Stored datetimes come back naive from MongoDB; always hand out aware UTC values
UtcDatetime = Annotated[datetime, AfterValidator(ensure_utc)]


# ============================================================================
# Identity
# ============================================================================

class ActorContext(BaseModel):
    """Authenticated caller, as forwarded by the transport layer"""
    model_config = ConfigDict(extra="forbid")

    user_id: str = Field(..., description="Internal user ID")
    email: EmailStr = Field(..., description="User email")
    display_name: Optional[str] = Field(None, description="User display name")
    ip_address: Optional[str] = Field(None, description="Client IP address")
    user_agent: Optional[str] = Field(None, description="Client user agent")

    def matches(self, user_id: Optional[str], email: Optional[str]) -> bool:
        """Match by internal ID first, then by case-insensitive email"""
        if user_id and self.user_id == user_id:
            return True
        if email and self.email.lower() == email.lower():
            return True
        return False


# ============================================================================
# Signature Request & Signers
# ============================================================================

class SignatureRequest(BaseModel):
    """A request for one or more signers to sign a document"""
    model_config = ConfigDict(extra="ignore")

    request_id: str = Field(..., description="Unique request ID")
    document_id: str = Field(..., description="Reference to the stored document")
    initiated_by: str = Field(..., description="Initiator user ID")
    initiator_email: Optional[str] = Field(None, description="Initiator email")
    title: str
    description: Optional[str] = None
    signature_type: SignatureType = SignatureType.SINGLE
    signing_order: SigningOrder = SigningOrder.SEQUENTIAL
    status: SignatureStatus = SignatureStatus.INITIATED
    total_signers: int = Field(..., ge=1)
    completed_signers: int = Field(default=0, ge=0)
    viewed_signers: int = Field(default=0, ge=0)
    require_totp: bool = False
    expires_at: UtcDatetime
    created_at: UtcDatetime
    updated_at: UtcDatetime
    completed_at: Optional[UtcDatetime] = None
    cancelled_at: Optional[UtcDatetime] = None
    expired_at: Optional[UtcDatetime] = None
    deleted_at: Optional[UtcDatetime] = None
    reminder_count: int = 0
    last_reminder_at: Optional[UtcDatetime] = None
    expiration_warnings_sent: List[int] = Field(
        default_factory=list,
        description="Warning offsets (days) already emitted for the current expires_at"
    )
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_REQUEST_STATUSES


class Signer(BaseModel):
    """A signer row bound to a request"""
    model_config = ConfigDict(extra="ignore")

    signer_id: str = Field(..., description="Unique signer row ID")
    request_id: str = Field(..., description="Owning request ID")
    user_id: Optional[str] = Field(None, description="Bound internal user ID, if known")
    signer_email: str
    signer_name: Optional[str] = None
    signing_order: int = Field(..., ge=1)
    status: SignerStatus = SignerStatus.PENDING
    signature_data: Optional[str] = None
    signature_method: Optional[SignatureMethod] = None
    signature_metadata: Dict[str, Any] = Field(default_factory=dict)
    sent_at: Optional[UtcDatetime] = None
    viewed_at: Optional[UtcDatetime] = None
    signed_at: Optional[UtcDatetime] = None
    declined_at: Optional[UtcDatetime] = None
    decline_reason: Optional[str] = None
    reminder_sent_at: Optional[UtcDatetime] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    location: Optional[Dict[str, Any]] = None
    created_at: UtcDatetime
    updated_at: UtcDatetime

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_SIGNER_STATUSES


class SignatureRequestDetail(SignatureRequest):
    """Request with its signers, ordered by signing order"""
    signers: List[Signer] = Field(default_factory=list)


class SignResult(BaseModel):
    """Outcome of a successful signature"""
    request: SignatureRequest
    signer: Signer


# ============================================================================
# Inputs
# ============================================================================

class SignerInput(BaseModel):
    """Signer definition supplied at request creation"""
    model_config = ConfigDict(extra="forbid")

    user_id: Optional[str] = None
    signer_email: EmailStr
    signer_name: Optional[str] = Field(None, max_length=100)
    signing_order: Optional[int] = Field(None, ge=1)


class SignatureFieldPosition(BaseModel):
    """Field placement as percentages of the page"""
    x: float
    y: float
    width: float
    height: float
    page: int = Field(default=1, ge=1)


class SignatureField(BaseModel):
    """A field a signer fills in"""
    model_config = ConfigDict(extra="ignore")

    field_id: str = Field(default_factory=generate_field_id)
    field_type: FieldType = FieldType.SIGNATURE
    assigned_to: Optional[str] = Field(None, description="Signer email or signer ID")
    position: SignatureFieldPosition
    required: bool = False
    label: Optional[str] = None
    options: Optional[List[str]] = None


class CreateSignatureRequestInput(BaseModel):
    """Input for creating a signature request"""
    model_config = ConfigDict(extra="forbid")

    document_id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    signers: List[SignerInput]
    signature_type: Optional[SignatureType] = Field(
        None, description="Defaults to single for one signer, multi otherwise"
    )
    signing_order: SigningOrder = SigningOrder.SEQUENTIAL
    require_totp: bool = False
    expires_in_days: Optional[int] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    fields: Optional[List[SignatureField]] = None


class UpdateSignatureRequestInput(BaseModel):
    """Mutable request attributes"""
    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    expires_at: Optional[UtcDatetime] = None
    metadata: Optional[Dict[str, Any]] = None


# ============================================================================
# Audit
# ============================================================================

class AuditLogEntry(BaseModel):
    """Immutable audit record"""
    model_config = ConfigDict(extra="ignore")

    audit_event_id: str
    request_id: str
    actor_id: Optional[str] = None
    action: AuditAction
    details: Dict[str, Any] = Field(default_factory=dict)
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    timestamp: UtcDatetime
    correlation_id: Optional[str] = None


# ============================================================================
# Fields
# ============================================================================

class FieldConfiguration(BaseModel):
    """Field layout for a document"""
    model_config = ConfigDict(extra="ignore")

    document_id: str
    owner_id: str
    fields: List[SignatureField] = Field(default_factory=list)
    created_at: UtcDatetime
    updated_at: UtcDatetime


class FieldValidationResult(BaseModel):
    """All violations found in a field layout"""
    valid: bool
    errors: List[str] = Field(default_factory=list)


# ============================================================================
# Bulk & Expiration results
# ============================================================================

class BulkOperationError(BaseModel):
    """One failed bulk item"""
    id: str
    error: str
    code: str


class BulkOperationResult(BaseModel):
    """Aggregate outcome of a bulk operation"""
    total: int
    successful: int
    failed: int
    errors: List[BulkOperationError] = Field(default_factory=list)
    duration_ms: int = 0
    payload: Optional[Dict[str, Any]] = None


class ExpirationCheckError(BaseModel):
    """One request the sweep could not process"""
    id: str
    error: str


class ExpirationCheckResult(BaseModel):
    """Sweep summary"""
    checked: int = 0
    expired: int = 0
    warnings_sent: int = 0
    errors: List[ExpirationCheckError] = Field(default_factory=list)


# ============================================================================
# Notifications
# ============================================================================

class NotificationMessage(BaseModel):
    """Notification outbox entry"""
    model_config = ConfigDict(extra="ignore")

    notification_id: str
    event: NotificationEvent
    request_id: str
    recipients: List[str] = Field(default_factory=list)
    payload: Dict[str, Any] = Field(default_factory=dict)
    status: NotificationStatus = NotificationStatus.PENDING
    created_at: UtcDatetime


ModelT = TypeVar("ModelT", bound=BaseModel)


def coerce_input(model_cls: Type[ModelT], data: Union[ModelT, Dict[str, Any]]) -> ModelT:
    """Accept either a model instance or raw dict input; bad dicts raise a domain ValidationError"""
    if isinstance(data, model_cls):
        return data
    try:
        return model_cls.model_validate(data)
    except PydanticValidationError as exc:
        raise validation_error_from_pydantic(exc)
