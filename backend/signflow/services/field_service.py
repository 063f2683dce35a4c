"""Field Service - Signature field layouts per document"""
from typing import Any, Dict, List, Optional, Sequence, Union

from ..domain.models import (
    ActorContext, FieldConfiguration, FieldValidationResult, SignatureField, coerce_input
)
from ..domain.enums import AuditAction
from ..domain.errors import AuthorizationError, NotFoundError, ValidationError
from ..domain.results import returns_result
from ..engine.field_validator import validate_field_assignments
from ..repositories.field_repo import FieldConfigurationRepository
from ..utils.time import Clock
from ..utils.logger import get_logger

logger = get_logger(__name__)

FieldInput = Union[SignatureField, Dict[str, Any]]


class FieldService:
    """Service for signature field configurations"""

    def __init__(self, repo: FieldConfigurationRepository, clock: Optional[Clock] = None):
        self.repo = repo
        self.clock = clock or Clock()

    @returns_result("Failed to validate fields")
    def validate_field_assignments(self, fields: Sequence[FieldInput]) -> FieldValidationResult:
        """Check a layout; any violation is returned as a ValidationError listing all of them"""
        validation = validate_field_assignments(self._parse_fields(fields))
        if not validation.valid:
            raise ValidationError(
                "Invalid field configuration",
                details={"field": "fields", "violations": validation.errors}
            )
        return validation

    @returns_result("Failed to save field configuration")
    def save_field_configuration(
        self,
        document_id: str,
        actor: ActorContext,
        fields: Sequence[FieldInput]
    ) -> FieldConfiguration:
        """Validate and store the field layout of a document (replaces any previous layout)"""
        if not document_id:
            raise ValidationError("Document ID is required", details={"field": "document_id"})
        parsed = self._parse_fields(fields)
        validation = validate_field_assignments(parsed)
        if not validation.valid:
            raise ValidationError(
                "Invalid field configuration",
                details={"field": "fields", "violations": validation.errors}
            )

        existing = self.repo.get(document_id)
        if existing is not None and not actor.matches(existing.owner_id, None):
            raise AuthorizationError(
                "Only the owner can change this document's fields",
                details={"document_id": document_id}
            )

        now = self.clock.now()
        saved = self.repo.upsert(
            FieldConfiguration(
                document_id=document_id,
                owner_id=actor.user_id,
                fields=parsed,
                created_at=now,
                updated_at=now,
            )
        )
        logger.info(
            f"Saved field configuration for document {document_id}",
            extra={"actor_id": actor.user_id, "action": AuditAction.FIELDS_SAVED.value}
        )
        return saved

    @returns_result("Failed to get field configuration")
    def get_field_configuration(self, document_id: str) -> FieldConfiguration:
        config = self.repo.get(document_id)
        if config is None:
            raise NotFoundError(
                f"Field configuration for document {document_id} not found",
                details={"resource": "field_configuration", "id": document_id}
            )
        return config

    @staticmethod
    def _parse_fields(fields: Sequence[FieldInput]) -> List[SignatureField]:
        return [coerce_input(SignatureField, f) for f in fields]
