"""
Shared schema bases and the error envelope.

RULE: response schemas built from ORM rows inherit BaseResponseSchema;
request bodies inherit BaseCreateSchema.
"""
from typing import Iterable, Optional

from pydantic import BaseModel, ConfigDict


class BaseResponseSchema(BaseModel):
    """
    Read model for ORM rows.

    Usage:
        class DispatchResponse(BaseResponseSchema):
            id: UUID
            dispatch_number: str
    """
    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
    )


class BaseCreateSchema(BaseModel):
    """Request body; unknown keys are dropped."""
    model_config = ConfigDict(extra='ignore')


def ensure_unique_products(items: Optional[Iterable]) -> None:
    """Raise ValueError when two lines name the same product."""
    seen = set()
    for item in items or []:
        if item.product_id in seen:
            raise ValueError(f"Product {item.product_id} appears on more than one line")
        seen.add(item.product_id)


class ErrorDetail(BaseModel):
    code: str
    message: str


class ErrorResponse(BaseModel):
    """Body returned for every handled error."""
    success: bool = False
    error: ErrorDetail
    timestamp: str
