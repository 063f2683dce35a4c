"""Field Validator - Placement and assignment rules for signature fields"""
from typing import Iterable, List, Optional, Sequence

from ..domain.models import FieldValidationResult, SignatureField


def fields_overlap(first: SignatureField, second: SignatureField) -> bool:
    """Bounding-box test on the same page; touching edges count as overlap"""
    a, b = first.position, second.position
    if a.page != b.page:
        return False
    return not (
        a.x + a.width < b.x
        or a.x > b.x + b.width
        or a.y + a.height < b.y
        or a.y > b.y + b.height
    )


def validate_field_assignments(
    fields: Sequence[SignatureField],
    signer_keys: Optional[Iterable[str]] = None
) -> FieldValidationResult:
    """
    Validate a field layout.

    Checks every rule and reports all violations: positions are page
    percentages, at least one field is required, every required field has an
    assignee, and no two fields on a page overlap.

    Args:
        fields: The layout to check
        signer_keys: Emails and IDs of the request's signers. When given,
            every assignee must be one of them (compared case-insensitively).
    """
    errors: List[str] = []

    required = [f for f in fields if f.required]
    if not required:
        errors.append("At least one required field must be defined")

    unassigned = [f for f in required if not f.assigned_to]
    if unassigned:
        errors.append(f"{len(unassigned)} required fields are not assigned to signers")

    if signer_keys is not None:
        known = {key.lower() for key in signer_keys if key}
        for index, field in enumerate(fields, start=1):
            if field.assigned_to and field.assigned_to.lower() not in known:
                errors.append(f"Field {index}: {field.assigned_to} is not a signer of this request")

    for index, field in enumerate(fields, start=1):
        pos = field.position
        if not 0 <= pos.x <= 100:
            errors.append(f"Field {index}: x position must be between 0 and 100")
        if not 0 <= pos.y <= 100:
            errors.append(f"Field {index}: y position must be between 0 and 100")
        if not 0 < pos.width <= 100:
            errors.append(f"Field {index}: width must be between 0 and 100")
        if not 0 < pos.height <= 100:
            errors.append(f"Field {index}: height must be between 0 and 100")

    for i in range(len(fields)):
        for j in range(i + 1, len(fields)):
            if fields_overlap(fields[i], fields[j]):
                errors.append(f"Fields {i + 1} and {j + 1} overlap on page {fields[i].position.page}")

    return FieldValidationResult(valid=not errors, errors=errors)
