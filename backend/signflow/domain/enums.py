"""Domain Enumerations - All status and type definitions"""
from enum import Enum


class SignatureStatus(str, Enum):
    """Signature request lifecycle status"""
    INITIATED = "initiated"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class SignerStatus(str, Enum):
    """Per-signer status"""
    PENDING = "pending"
    SENT = "sent"
    VIEWED = "viewed"
    SIGNED = "signed"
    DECLINED = "declined"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class SigningOrder(str, Enum):
    """Whether signers must sign in their assigned order"""
    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"


class SignatureType(str, Enum):
    """Single or multi-party request"""
    SINGLE = "single"
    MULTI = "multi"


class SignatureMethod(str, Enum):
    """How the signature image was captured"""
    DRAW = "draw"
    TYPE = "type"
    UPLOAD = "upload"


class AuditAction(str, Enum):
    """Audit log actions"""
    CREATED = "created"
    SENT = "sent"
    VIEWED = "viewed"
    SIGNED = "signed"
    DECLINED = "declined"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    REMINDED = "reminded"
    EXTENDED = "expiration_extended"
    EXPIRATION_WARNING_SENT = "expiration_warning_sent"
    UPDATED = "updated"
    DELETED = "deleted"
    FIELDS_SAVED = "fields_saved"


class BulkOperationType(str, Enum):
    """Operations supported by the bulk coordinator"""
    CANCEL = "cancel"
    DELETE = "delete"
    REMIND = "remind"
    EXTEND_EXPIRATION = "extend_expiration"
    EXPORT = "export"


class RequestView(str, Enum):
    """List perspective for the caller"""
    SENT = "sent"
    RECEIVED = "received"


class FieldType(str, Enum):
    """Signature field kinds"""
    SIGNATURE = "signature"
    INITIALS = "initials"
    DATE = "date"
    TEXT = "text"
    CHECKBOX = "checkbox"
    DROPDOWN = "dropdown"


class NotificationEvent(str, Enum):
    """Events emitted to the notification port"""
    SIGNATURE_REQUESTED = "SIGNATURE_REQUESTED"
    SIGNATURE_REMINDER = "SIGNATURE_REMINDER"
    EXPIRATION_WARNING = "EXPIRATION_WARNING"
    REQUEST_EXPIRED = "REQUEST_EXPIRED"
    REQUEST_COMPLETED = "REQUEST_COMPLETED"
    REQUEST_CANCELLED = "REQUEST_CANCELLED"
    SIGNER_DECLINED = "SIGNER_DECLINED"


class NotificationStatus(str, Enum):
    """Notification outbox status"""
    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"


ACTIVE_REQUEST_STATUSES = (SignatureStatus.INITIATED, SignatureStatus.IN_PROGRESS)
TERMINAL_REQUEST_STATUSES = (
    SignatureStatus.COMPLETED, SignatureStatus.EXPIRED, SignatureStatus.CANCELLED
)

OPEN_SIGNER_STATUSES = (SignerStatus.PENDING, SignerStatus.SENT, SignerStatus.VIEWED)
TERMINAL_SIGNER_STATUSES = (
    SignerStatus.SIGNED, SignerStatus.DECLINED, SignerStatus.EXPIRED, SignerStatus.CANCELLED
)

# Allowed predecessor statuses for each signer status
SIGNER_TRANSITIONS = {
    SignerStatus.SENT: (SignerStatus.PENDING,),
    SignerStatus.VIEWED: (SignerStatus.SENT,),
    SignerStatus.SIGNED: OPEN_SIGNER_STATUSES,
    SignerStatus.DECLINED: OPEN_SIGNER_STATUSES,
    SignerStatus.EXPIRED: OPEN_SIGNER_STATUSES,
    SignerStatus.CANCELLED: OPEN_SIGNER_STATUSES,
}
