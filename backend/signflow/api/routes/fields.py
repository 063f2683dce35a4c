"""
Field Configuration Routes
"""

from fastapi import APIRouter, Depends

from ..deps import get_container, get_current_actor_dep, unwrap
from ...domain.models import ActorContext, FieldConfiguration, FieldValidationResult
from ...services.container import ServiceContainer
from .schemas import FieldsBody

router = APIRouter()


@router.post("/validate", response_model=FieldValidationResult)
def validate_fields(
    body: FieldsBody,
    actor: ActorContext = Depends(get_current_actor_dep),
    container: ServiceContainer = Depends(get_container)
):
    return unwrap(container.fields.validate_field_assignments(body.fields))


@router.put("/{document_id}", response_model=FieldConfiguration)
def save_field_configuration(
    document_id: str,
    body: FieldsBody,
    actor: ActorContext = Depends(get_current_actor_dep),
    container: ServiceContainer = Depends(get_container)
):
    return unwrap(container.fields.save_field_configuration(document_id, actor, body.fields))


@router.get("/{document_id}", response_model=FieldConfiguration)
def get_field_configuration(
    document_id: str,
    actor: ActorContext = Depends(get_current_actor_dep),
    container: ServiceContainer = Depends(get_container)
):
    return unwrap(container.fields.get_field_configuration(document_id))
