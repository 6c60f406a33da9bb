"""Inventory ledger schemas."""
from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import Field

from erp_core.models.inventory import MovementType
from erp_core.schemas.base import BaseCreateSchema, BaseResponseSchema


class InventoryRecordResponse(BaseResponseSchema):
    id: UUID
    warehouse_id: UUID
    product_id: UUID
    available: int
    reserved: int
    damaged: int
    reorder_point: int
    free_quantity: int
    is_low_stock: bool
    last_movement_at: Optional[datetime] = None


class InventoryTransactionResponse(BaseResponseSchema):
    id: UUID
    sequence: int
    transaction_type: MovementType
    warehouse_id: UUID
    product_id: UUID
    quantity: int
    quantity_before: int
    quantity_after: int
    reference_type: str
    reference_id: UUID
    notes: Optional[str] = None
    created_by: Optional[UUID] = None
    created_at: datetime


class ReorderPointUpdate(BaseCreateSchema):
    reorder_point: int = Field(..., ge=0)
