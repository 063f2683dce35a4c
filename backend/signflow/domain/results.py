"""Result envelopes - uniform success/error return values for public operations"""
import functools
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field

from .errors import DomainError, InternalError
from ..utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class ErrorDetails(BaseModel):
    """Serialized domain error"""
    code: str
    message: str
    status_code: int
    details: Dict[str, Any] = Field(default_factory=dict)
    timestamp: str
    recovery_suggestions: List[Dict[str, str]] = Field(default_factory=list)

    @classmethod
    def from_error(cls, error: DomainError) -> "ErrorDetails":
        return cls(**error.serialize())


class Result(BaseModel, Generic[T]):
    """Success flag plus either data or a serialized error"""
    success: bool
    data: Optional[T] = None
    error: Optional[ErrorDetails] = None

    @classmethod
    def ok(cls, data: Any = None) -> "Result":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: DomainError) -> "Result":
        return cls(success=False, error=ErrorDetails.from_error(error))


class PaginationMetadata(BaseModel):
    """Page bookkeeping for list operations"""
    total: int
    page: int
    page_size: int
    total_pages: int
    has_more: bool


class PaginatedResult(BaseModel, Generic[T]):
    """Result envelope for paged lists"""
    success: bool
    data: List[T] = Field(default_factory=list)
    pagination: Optional[PaginationMetadata] = None
    error: Optional[ErrorDetails] = None

    @classmethod
    def fail(cls, error: DomainError) -> "PaginatedResult":
        return cls(success=False, error=ErrorDetails.from_error(error))


def _to_domain_error(failure_message: str, exc: Exception) -> DomainError:
    if isinstance(exc, DomainError):
        logger.info(
            f"{failure_message}: {exc.error_code} - {exc.message}",
            extra={"error_code": exc.error_code}
        )
        return exc
    logger.error(f"{failure_message}: {exc}", exc_info=True)
    return InternalError.from_exception(failure_message, exc)


def returns_result(failure_message: str) -> Callable:
    """
    Wrap a raising operation so it returns a Result.

    Domain errors are expected outcomes and are serialized as-is.
    Anything else (e.g. PyMongoError) becomes an InternalError carrying the
    original cause, and is logged with its stack trace.
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> Result:
            try:
                return Result.ok(func(*args, **kwargs))
            except Exception as exc:
                return Result.fail(_to_domain_error(failure_message, exc))
        return wrapper
    return decorator


def returns_paginated_result(failure_message: str) -> Callable:
    """Like returns_result, for operations returning (items, PaginationMetadata)"""
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> PaginatedResult:
            try:
                items, pagination = func(*args, **kwargs)
            except Exception as exc:
                return PaginatedResult.fail(_to_domain_error(failure_message, exc))
            return PaginatedResult(success=True, data=items, pagination=pagination)
        return wrapper
    return decorator
