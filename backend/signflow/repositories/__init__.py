"""Repositories - MongoDB data access"""
from .base import SignatureStore
from .signature_repo import SignatureRepository
from .audit_repo import AuditRepository
from .field_repo import FieldConfigurationRepository
from .rate_limit_repo import RateLimitRepository
from .notification_repo import NotificationRepository

__all__ = [
    "SignatureStore",
    "SignatureRepository",
    "AuditRepository",
    "FieldConfigurationRepository",
    "RateLimitRepository",
    "NotificationRepository",
]
