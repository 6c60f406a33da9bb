"""Purchase order and GRN schemas."""
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import Field, model_validator

from erp_core.schemas.base import BaseCreateSchema, BaseResponseSchema, ensure_unique_products


# ==================== Purchase Order ====================

class PurchaseOrderItemCreate(BaseCreateSchema):
    product_id: UUID
    quantity: int = Field(..., ge=1)
    unit_price: Decimal = Field(..., ge=0)
    tax_percent: Decimal = Field(Decimal("0"), ge=0, le=100)


class PurchaseOrderCreate(BaseCreateSchema):
    supplier_id: UUID
    warehouse_id: UUID
    items: List[PurchaseOrderItemCreate] = Field(..., min_length=1)
    expected_delivery_date: Optional[date] = None
    discount_amount: Decimal = Field(Decimal("0"), ge=0)
    shipping_amount: Decimal = Field(Decimal("0"), ge=0)
    notes: Optional[str] = None

    @model_validator(mode="after")
    def check_unique_products(self):
        ensure_unique_products(self.items)
        return self


class PurchaseOrderItemResponse(BaseResponseSchema):
    id: UUID
    product_id: UUID
    line_number: int
    quantity_ordered: int
    quantity_received: int
    quantity_pending: int
    unit_price: Decimal
    tax_percent: Decimal
    tax_amount: Decimal
    total: Decimal


class PurchaseOrderResponse(BaseResponseSchema):
    id: UUID
    po_number: str
    po_date: date
    supplier_id: UUID
    warehouse_id: UUID
    status: str
    subtotal: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    shipping_amount: Decimal
    total_amount: Decimal
    paid_amount: Decimal = Decimal("0")
    rejection_reason: Optional[str] = None
    approved_by: Optional[UUID] = None
    approved_at: Optional[datetime] = None
    created_at: datetime
    items: List[PurchaseOrderItemResponse] = []


class RejectRequest(BaseCreateSchema):
    reason: str = Field(..., min_length=1)


class ReceiptLine(BaseResponseSchema):
    po_item_id: UUID
    product_id: UUID
    quantity_ordered: int
    quantity_received: int
    quantity_pending: int


# ==================== GRN ====================

class GRNItemCreate(BaseCreateSchema):
    product_id: UUID
    quantity_accepted: int = Field(..., ge=0)
    quantity_rejected: int = Field(0, ge=0)
    quantity_received: Optional[int] = Field(None, ge=0, description="Defaults to accepted + rejected")
    rejection_reason: Optional[str] = None

    @model_validator(mode="after")
    def check_quantities(self):
        if self.quantity_accepted + self.quantity_rejected == 0:
            raise ValueError("Line must accept or reject at least one unit")
        return self


class GRNCreate(BaseCreateSchema):
    purchase_order_id: UUID
    items: List[GRNItemCreate] = Field(..., min_length=1)
    delivery_note_number: Optional[str] = None
    vehicle_number: Optional[str] = None
    notes: Optional[str] = None

    @model_validator(mode="after")
    def check_unique_products(self):
        ensure_unique_products(self.items)
        return self


class GRNItemResponse(BaseResponseSchema):
    id: UUID
    po_item_id: UUID
    product_id: UUID
    quantity_expected: int
    quantity_received: int
    quantity_accepted: int
    quantity_rejected: int
    rejection_reason: Optional[str] = None


class GRNResponse(BaseResponseSchema):
    id: UUID
    grn_number: str
    purchase_order_id: UUID
    warehouse_id: UUID
    status: str
    has_discrepancy: bool
    discrepancy_notes: Optional[str] = None
    verified_at: Optional[datetime] = None
    created_at: datetime
    items: List[GRNItemResponse] = []


class DiscrepancyReport(BaseCreateSchema):
    notes: str = Field(..., min_length=1)
