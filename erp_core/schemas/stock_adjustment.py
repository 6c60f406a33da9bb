"""Stock adjustment schemas."""
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import Field, model_validator

from erp_core.models.stock_adjustment import AdjustmentReason
from erp_core.schemas.base import BaseCreateSchema, BaseResponseSchema, ensure_unique_products


class AdjustmentItemCreate(BaseCreateSchema):
    product_id: UUID
    counted_quantity: int = Field(..., ge=0)
    notes: Optional[str] = None


class AdjustmentCreate(BaseCreateSchema):
    warehouse_id: UUID
    reason: AdjustmentReason = AdjustmentReason.CYCLE_COUNT
    items: List[AdjustmentItemCreate] = Field(..., min_length=1)
    notes: Optional[str] = None

    @model_validator(mode="after")
    def check_unique_products(self):
        ensure_unique_products(self.items)
        return self


class AdjustmentRejectRequest(BaseCreateSchema):
    reason: str = Field(..., min_length=1)


class AdjustmentItemResponse(BaseResponseSchema):
    id: UUID
    product_id: UUID
    counted_quantity: int
    quantity_before: Optional[int] = None
    adjustment_quantity: Optional[int] = None


class AdjustmentResponse(BaseResponseSchema):
    id: UUID
    adjustment_number: str
    reason: str
    status: str
    warehouse_id: UUID
    approved_by: Optional[UUID] = None
    approved_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    created_at: datetime
    items: List[AdjustmentItemResponse] = []
