"""
Signature API Schemas

Request and response models that are not plain domain models.
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from ...domain.enums import BulkOperationType, SignatureMethod, SignerStatus
from ...domain.models import SignatureField, SignatureRequest
from ...domain.results import PaginationMetadata


class SignatureRequestListResponse(BaseModel):
    """Page of signature requests"""
    items: List[SignatureRequest]
    pagination: PaginationMetadata


class SignRequestBody(BaseModel):
    """Signature submission"""
    signature_data: str = Field(..., min_length=1, description="Encoded signature image or typed text")
    signature_method: SignatureMethod
    totp_code: Optional[str] = Field(None, min_length=6, max_length=8)
    location: Optional[Dict[str, Any]] = None


class SignerStatusBody(BaseModel):
    """Generic signer status change"""
    status: SignerStatus
    decline_reason: Optional[str] = Field(None, max_length=2000)
    metadata: Optional[Dict[str, Any]] = None


class SigningPermissionResponse(BaseModel):
    request_id: str
    signer_id: str
    can_sign: bool


class CancelRequestBody(BaseModel):
    reason: Optional[str] = Field(None, max_length=2000)


class ExtendExpirationBody(BaseModel):
    days: int


class BulkOperationBody(BaseModel):
    """Bulk operation over several requests"""
    operation: BulkOperationType
    request_ids: List[str]
    parameters: Dict[str, Any] = Field(default_factory=dict)


class FieldsBody(BaseModel):
    fields: List[SignatureField]
