"""Return (RMA) schemas."""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import Field, model_validator

from erp_core.models.invoice import PaymentMethod
from erp_core.models.return_order import ItemCondition, ReturnReason
from erp_core.schemas.base import BaseCreateSchema, BaseResponseSchema, ensure_unique_products


class ReturnItemCreate(BaseCreateSchema):
    product_id: UUID
    quantity: int = Field(..., ge=1)


class ReturnCreate(BaseCreateSchema):
    sales_order_id: UUID
    items: List[ReturnItemCreate] = Field(..., min_length=1)
    reason: ReturnReason = ReturnReason.OTHER
    description: Optional[str] = None

    @model_validator(mode="after")
    def check_unique_products(self):
        ensure_unique_products(self.items)
        return self


class InspectionLine(BaseCreateSchema):
    product_id: UUID
    quantity_accepted: int = Field(..., ge=0)
    quantity_rejected: int = Field(0, ge=0)
    restockable: bool = True
    condition: ItemCondition = ItemCondition.GOOD


class InspectionRequest(BaseCreateSchema):
    items: List[InspectionLine] = Field(..., min_length=1)
    notes: Optional[str] = None

    @model_validator(mode="after")
    def check_unique_products(self):
        ensure_unique_products(self.items)
        return self


class RefundRequest(BaseCreateSchema):
    deductions: Decimal = Field(Decimal("0"), ge=0)
    refund_method: PaymentMethod = PaymentMethod.BANK_TRANSFER


class ReturnRejectRequest(BaseCreateSchema):
    reason: str = Field(..., min_length=1)


class ReturnItemResponse(BaseResponseSchema):
    id: UUID
    sales_order_item_id: UUID
    product_id: UUID
    quantity: int
    unit_price: Decimal
    quantity_accepted: int
    quantity_rejected: int
    restockable: bool
    condition: Optional[str] = None


class ReturnResponse(BaseResponseSchema):
    id: UUID
    rma_number: str
    sales_order_id: UUID
    customer_id: UUID
    warehouse_id: UUID
    status: str
    reason: str
    total_amount: Decimal
    refund_amount: Decimal
    deductions: Decimal
    refund_method: Optional[str] = None
    rejection_reason: Optional[str] = None
    created_at: datetime
    items: List[ReturnItemResponse] = []
