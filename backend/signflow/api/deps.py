"""API Dependencies - Common dependencies for routes"""
from typing import Optional

from fastapi import Header, HTTPException, Request, status
from pydantic import ValidationError as PydanticValidationError

from ..domain.models import ActorContext
from ..domain.results import PaginatedResult, Result
from ..services.container import ServiceContainer


def get_container(request: Request) -> ServiceContainer:
    """The per-process service container created by the app factory"""
    return request.app.state.container


async def get_current_actor_dep(
    request: Request,
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    x_user_email: Optional[str] = Header(None, alias="X-User-Email"),
    x_user_name: Optional[str] = Header(None, alias="X-User-Name")
) -> ActorContext:
    """
    Caller identity forwarded by the upstream authentication layer.

    Raises:
        HTTPException: 401 if the identity headers are missing or malformed
    """
    if not x_user_id or not x_user_email:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": {"code": "AUTHENTICATION_ERROR", "message": "Caller identity headers are missing"}}
        )
    try:
        return ActorContext(
            user_id=x_user_id,
            email=x_user_email,
            display_name=x_user_name,
            ip_address=request.client.host if request.client else None,
            user_agent=request.headers.get("user-agent")
        )
    except PydanticValidationError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": {"code": "AUTHENTICATION_ERROR", "message": "Caller identity headers are invalid"}}
        )


def unwrap(result: Result):
    """Return the result's data or raise the HTTP error it carries"""
    if result.success:
        return result.data
    raise HTTPException(
        status_code=result.error.status_code,
        detail={"error": result.error.model_dump()}
    )


def unwrap_page(result: PaginatedResult) -> dict:
    if not result.success:
        raise HTTPException(
            status_code=result.error.status_code,
            detail={"error": result.error.model_dump()}
        )
    return {"items": result.data, "pagination": result.pagination}
