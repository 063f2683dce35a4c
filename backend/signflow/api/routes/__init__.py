"""API Routes module"""
from fastapi import APIRouter

from .bulk import router as bulk_router
from .signature_requests import router as signature_requests_router
from .signing import router as signing_router
from .expirations import router as expirations_router
from .fields import router as fields_router

# Main API router
api_router = APIRouter()

# /bulk must be registered before the /{request_id} routes
api_router.include_router(bulk_router, prefix="/signature-requests", tags=["Bulk"])
api_router.include_router(signature_requests_router, prefix="/signature-requests", tags=["Signature Requests"])
api_router.include_router(signing_router, prefix="/signature-requests", tags=["Signing"])
api_router.include_router(expirations_router, prefix="/expirations", tags=["Expirations"])
api_router.include_router(fields_router, prefix="/fields", tags=["Fields"])

__all__ = ["api_router"]
