"""Dispatch (pick / pack / ship) schemas."""
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import Field, model_validator

from erp_core.models.dispatch import DispatchStatus
from erp_core.schemas.base import BaseCreateSchema, BaseResponseSchema, ensure_unique_products


class DispatchLineSelect(BaseCreateSchema):
    """Subset of a sales order to dispatch; quantity defaults to the order line."""
    product_id: UUID
    quantity: Optional[int] = Field(None, ge=1)


class DispatchCreate(BaseCreateSchema):
    sales_order_id: UUID
    items: Optional[List[DispatchLineSelect]] = None
    carrier: Optional[str] = None
    package_count: int = Field(1, ge=1)
    notes: Optional[str] = None

    @model_validator(mode="after")
    def check_unique_products(self):
        ensure_unique_products(self.items)
        return self


class DispatchQuantity(BaseCreateSchema):
    product_id: UUID
    quantity: int = Field(..., ge=1)


class DispatchQuantities(BaseCreateSchema):
    items: List[DispatchQuantity] = Field(..., min_length=1)

    @model_validator(mode="after")
    def check_unique_products(self):
        ensure_unique_products(self.items)
        return self


class ShipRequest(BaseCreateSchema):
    carrier: Optional[str] = None
    tracking_number: Optional[str] = None


class TrackingUpdateCreate(BaseCreateSchema):
    status: str = Field(..., min_length=1, description="IN_TRANSIT and OUT_FOR_DELIVERY also advance the dispatch")
    location: Optional[str] = None
    description: Optional[str] = None


class FailRequest(BaseCreateSchema):
    reason: str = Field(..., min_length=1)


class DispatchItemResponse(BaseResponseSchema):
    id: UUID
    sales_order_item_id: UUID
    product_id: UUID
    quantity_ordered: int
    quantity_picked: int
    quantity_packed: int
    quantity_shipped: int


class TrackingUpdateResponse(BaseResponseSchema):
    id: UUID
    sequence: int
    status: str
    location: Optional[str] = None
    description: Optional[str] = None
    created_at: datetime


class DispatchResponse(BaseResponseSchema):
    id: UUID
    dispatch_number: str
    status: DispatchStatus
    sales_order_id: UUID
    warehouse_id: UUID
    carrier: Optional[str] = None
    tracking_number: Optional[str] = None
    package_count: Optional[int] = None
    failure_reason: Optional[str] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    created_at: datetime
    items: List[DispatchItemResponse] = []
