"""
Shared schema configuration and the error envelope returned by every
exception handler in booktone.main.
"""
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict


class BaseSchema(BaseModel):
    """Readable straight from ORM rows; accepts field names or aliases."""
    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


class ErrorDetail(BaseModel):
    code: str
    message: str
    details: Optional[Any] = None


class ErrorResponse(BaseModel):
    """{"error": {"code": ..., "message": ..., "details": ...}}"""
    error: ErrorDetail
