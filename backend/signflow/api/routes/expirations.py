"""
Expiration Routes

Sweep trigger, upcoming expirations and extensions.
"""

from typing import List
from fastapi import APIRouter, Depends, Query

from ..deps import get_container, get_current_actor_dep, unwrap
from ...domain.models import ActorContext, ExpirationCheckResult, SignatureRequest
from ...services.container import ServiceContainer
from ...utils.logger import get_logger
from .schemas import ExtendExpirationBody

logger = get_logger(__name__)
router = APIRouter()


@router.post("/check", response_model=ExpirationCheckResult)
def run_expiration_check(
    actor: ActorContext = Depends(get_current_actor_dep),
    container: ServiceContainer = Depends(get_container)
):
    """Run one expiration sweep now (the scheduler runs it periodically)"""
    logger.info("Manual expiration check", extra={"actor_id": actor.user_id})
    return unwrap(container.expirations.check_expirations())


@router.get("/upcoming", response_model=List[SignatureRequest])
def get_upcoming_expirations(
    days_ahead: int = Query(7, ge=1),
    actor: ActorContext = Depends(get_current_actor_dep),
    container: ServiceContainer = Depends(get_container)
):
    return unwrap(container.expirations.get_expiring_requests(actor, days_ahead))


@router.post("/{request_id}/extend", response_model=SignatureRequest)
def extend_expiration(
    request_id: str,
    body: ExtendExpirationBody,
    actor: ActorContext = Depends(get_current_actor_dep),
    container: ServiceContainer = Depends(get_container)
):
    return unwrap(container.expirations.extend_expiration(request_id, actor, body.days))
