"""Signature Engine - signing rules, permissions and audit"""
from .audit_writer import AuditWriter
from .permission_guard import PermissionGuard
from .signing_coordinator import SigningCoordinator
from .field_validator import validate_field_assignments

__all__ = [
    "AuditWriter",
    "PermissionGuard",
    "SigningCoordinator",
    "validate_field_assignments",
]
