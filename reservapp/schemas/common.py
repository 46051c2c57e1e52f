from datetime import datetime, UTC
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


def _timestamp() -> str:
    return datetime.now(UTC).isoformat()


class ApiResponse(BaseModel, Generic[T]):
    """JSON envelope returned by every endpoint"""

    success: bool
    message: str
    data: T | None = None
    error: str | None = None
    timestamp: str = Field(default_factory=_timestamp)


def ok(message: str, data: Any = None) -> dict:
    """Success envelope; response_model serializes ``data``"""
    return {"success": True, "message": message, "data": data, "timestamp": _timestamp()}


def failure(message: str, error: str | None = None) -> dict:
    return ApiResponse[Any](success=False, message=message, error=error).model_dump()


class Page(BaseModel, Generic[T]):
    items: list[T]
    total: int
    limit: int
    offset: int
