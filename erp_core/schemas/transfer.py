"""Warehouse transfer schemas."""
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import Field, model_validator

from erp_core.models.stock_transfer import TransferStatus
from erp_core.schemas.base import BaseCreateSchema, BaseResponseSchema, ensure_unique_products


class TransferItemCreate(BaseCreateSchema):
    product_id: UUID
    quantity: int = Field(..., ge=1)
    notes: Optional[str] = None


class TransferCreate(BaseCreateSchema):
    from_warehouse_id: UUID
    to_warehouse_id: UUID
    items: List[TransferItemCreate] = Field(..., min_length=1)
    expected_date: Optional[datetime] = None
    notes: Optional[str] = None

    @model_validator(mode="after")
    def check_unique_products(self):
        ensure_unique_products(self.items)
        return self


class TransferLineQuantity(BaseCreateSchema):
    product_id: UUID
    quantity: int = Field(..., ge=0)


class TransferShipRequest(BaseCreateSchema):
    items: Optional[List[TransferLineQuantity]] = None
    vehicle_number: Optional[str] = None
    carrier: Optional[str] = None

    @model_validator(mode="after")
    def check_unique_products(self):
        ensure_unique_products(self.items)
        return self


class TransferReceiveRequest(BaseCreateSchema):
    items: Optional[List[TransferLineQuantity]] = None

    @model_validator(mode="after")
    def check_unique_products(self):
        ensure_unique_products(self.items)
        return self


class TransferReasonRequest(BaseCreateSchema):
    reason: Optional[str] = None


class TransferItemResponse(BaseResponseSchema):
    id: UUID
    product_id: UUID
    quantity: int
    quantity_shipped: int
    quantity_received: int
    notes: Optional[str] = None


class TransferResponse(BaseResponseSchema):
    id: UUID
    transfer_number: str
    status: TransferStatus
    from_warehouse_id: UUID
    to_warehouse_id: UUID
    total_items: int
    total_quantity: int
    rejection_reason: Optional[str] = None
    cancellation_reason: Optional[str] = None
    approved_at: Optional[datetime] = None
    shipped_at: Optional[datetime] = None
    received_at: Optional[datetime] = None
    created_at: datetime
    items: List[TransferItemResponse] = []


class TransferListResponse(BaseResponseSchema):
    items: List[TransferResponse]
    total: int
    page: int
    size: int
    pages: int
