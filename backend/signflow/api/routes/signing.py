"""
Signing Routes

Signature submission and signer status changes.
"""

from fastapi import APIRouter, Depends, HTTPException, status

from ..deps import get_container, get_current_actor_dep, unwrap
from ...domain.errors import SignerNotFoundError
from ...domain.models import ActorContext, Signer, SignResult
from ...services.container import ServiceContainer
from .schemas import SignRequestBody, SignerStatusBody, SigningPermissionResponse

router = APIRouter()


@router.post("/{request_id}/signers/{signer_id}/sign", response_model=SignResult)
def sign_document(
    request_id: str,
    signer_id: str,
    body: SignRequestBody,
    actor: ActorContext = Depends(get_current_actor_dep),
    container: ServiceContainer = Depends(get_container)
):
    """Sign as the given signer; completes the request when the last signer signs"""
    return unwrap(
        container.signing.sign(
            request_id,
            signer_id,
            actor,
            signature_data=body.signature_data,
            signature_method=body.signature_method,
            totp_code=body.totp_code,
            location=body.location
        )
    )


@router.get("/{request_id}/signers/{signer_id}/can-sign", response_model=SigningPermissionResponse)
def can_sign(
    request_id: str,
    signer_id: str,
    actor: ActorContext = Depends(get_current_actor_dep),
    container: ServiceContainer = Depends(get_container)
):
    """Whether signing order currently allows this signer to sign"""
    return SigningPermissionResponse(
        request_id=request_id,
        signer_id=signer_id,
        can_sign=container.signing.validate_signing_permission(request_id, signer_id)
    )


@router.post("/{request_id}/signers/{signer_id}/status", response_model=Signer)
def update_signer_status(
    request_id: str,
    signer_id: str,
    body: SignerStatusBody,
    actor: ActorContext = Depends(get_current_actor_dep),
    container: ServiceContainer = Depends(get_container)
):
    """Mark a signer sent, viewed or declined"""
    signer = container.store.get_signer(signer_id)
    if signer is None or signer.request_id != request_id:
        error = SignerNotFoundError(signer_id)
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=error.to_dict())
    return unwrap(
        container.signing.update_signer_status(
            signer_id,
            body.status,
            actor=actor,
            decline_reason=body.decline_reason,
            metadata=body.metadata
        )
    )
