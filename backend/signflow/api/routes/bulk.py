"""
Bulk Routes

One operation applied to many signature requests.
"""

from fastapi import APIRouter, Depends

from ..deps import get_container, get_current_actor_dep, unwrap
from ...domain.models import ActorContext, BulkOperationResult
from ...services.container import ServiceContainer
from .schemas import BulkOperationBody

router = APIRouter()


@router.post("/bulk", response_model=BulkOperationResult)
def execute_bulk_operation(
    body: BulkOperationBody,
    actor: ActorContext = Depends(get_current_actor_dep),
    container: ServiceContainer = Depends(get_container)
):
    """
    Run cancel, delete, remind, extend_expiration or export over request_ids.

    Per-request failures are reported in errors; the call itself only fails
    on pre-flight checks (size, rate limit, ownership, parameters).
    """
    return unwrap(
        container.bulk.execute_bulk_operation(actor, body.operation, body.request_ids, body.parameters)
    )
