"""
Signature Request Routes

Create, read, list, update, cancel, delete and remind.
"""

from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status

from ..deps import get_container, get_current_actor_dep, unwrap, unwrap_page
from ...domain.enums import RequestView
from ...domain.models import (
    ActorContext, AuditLogEntry, CreateSignatureRequestInput, SignatureRequest,
    SignatureRequestDetail, UpdateSignatureRequestInput
)
from ...services.container import ServiceContainer
from .schemas import CancelRequestBody, SignatureRequestListResponse

router = APIRouter()


@router.post("", response_model=SignatureRequest, status_code=status.HTTP_201_CREATED)
def create_signature_request(
    body: CreateSignatureRequestInput,
    actor: ActorContext = Depends(get_current_actor_dep),
    container: ServiceContainer = Depends(get_container)
):
    """Create a signature request and notify the first signer(s)"""
    return unwrap(container.requests.create_request(actor, body))


@router.get("", response_model=SignatureRequestListResponse)
def list_signature_requests(
    view: Optional[RequestView] = Query(None, description="sent, received, or both when omitted"),
    status_filter: Optional[str] = Query(None, alias="status", description="Comma-separated statuses"),
    q: Optional[str] = Query(None, description="Search in title"),
    page: int = Query(1, ge=1),
    page_size: Optional[int] = Query(None, ge=1),
    actor: ActorContext = Depends(get_current_actor_dep),
    container: ServiceContainer = Depends(get_container)
):
    """List requests the caller sent and/or must sign"""
    statuses = [s.strip() for s in status_filter.split(",") if s.strip()] if status_filter else None
    return unwrap_page(
        container.requests.list_requests(
            actor.user_id,
            actor.email,
            page=page,
            page_size=page_size,
            status=statuses,
            view=view,
            search=q
        )
    )


@router.get("/{request_id}", response_model=SignatureRequestDetail)
def get_signature_request(
    request_id: str,
    actor: ActorContext = Depends(get_current_actor_dep),
    container: ServiceContainer = Depends(get_container)
):
    return unwrap(container.requests.get_request(request_id, actor.user_id, actor.email))


@router.get("/{request_id}/audit", response_model=List[AuditLogEntry])
def get_signature_request_audit(
    request_id: str,
    limit: int = Query(100, ge=1, le=500),
    actor: ActorContext = Depends(get_current_actor_dep),
    container: ServiceContainer = Depends(get_container)
):
    return unwrap(container.requests.get_audit_trail(request_id, actor.user_id, actor.email, limit=limit))


@router.patch("/{request_id}", response_model=SignatureRequest)
def update_signature_request(
    request_id: str,
    body: UpdateSignatureRequestInput,
    actor: ActorContext = Depends(get_current_actor_dep),
    container: ServiceContainer = Depends(get_container)
):
    return unwrap(container.requests.update_request(request_id, actor, body))


@router.post("/{request_id}/cancel", response_model=SignatureRequest)
def cancel_signature_request(
    request_id: str,
    body: Optional[CancelRequestBody] = None,
    actor: ActorContext = Depends(get_current_actor_dep),
    container: ServiceContainer = Depends(get_container)
):
    reason = body.reason if body else None
    return unwrap(container.requests.cancel_request(request_id, actor, reason))


@router.delete("/{request_id}", response_model=SignatureRequest)
def delete_signature_request(
    request_id: str,
    actor: ActorContext = Depends(get_current_actor_dep),
    container: ServiceContainer = Depends(get_container)
):
    """Soft delete; only requests without signatures"""
    return unwrap(container.requests.delete_request(request_id, actor))


@router.post("/{request_id}/remind", response_model=SignatureRequest)
def remind_signers(
    request_id: str,
    actor: ActorContext = Depends(get_current_actor_dep),
    container: ServiceContainer = Depends(get_container)
):
    return unwrap(container.requests.send_reminder(request_id, actor))
