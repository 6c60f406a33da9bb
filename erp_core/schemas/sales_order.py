"""Sales order, invoice and payment schemas."""
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import Field, model_validator

from erp_core.models.customer import PaymentTerms
from erp_core.models.invoice import PaymentMethod
from erp_core.schemas.base import BaseCreateSchema, BaseResponseSchema, ensure_unique_products


# ==================== Sales Order ====================

class SalesOrderItemCreate(BaseCreateSchema):
    product_id: UUID
    quantity: int = Field(..., ge=1)
    unit_price: Optional[Decimal] = Field(None, ge=0, description="Defaults to product selling price")
    tax_percent: Optional[Decimal] = Field(None, ge=0, le=100)


class SalesOrderCreate(BaseCreateSchema):
    customer_id: UUID
    warehouse_id: UUID
    items: List[SalesOrderItemCreate] = Field(..., min_length=1)
    payment_terms: Optional[PaymentTerms] = Field(None, description="Defaults to customer payment terms")
    draft: bool = Field(False, description="Save without credit check or reservation; submit later")
    discount_amount: Decimal = Field(Decimal("0"), ge=0)
    shipping_amount: Decimal = Field(Decimal("0"), ge=0)
    notes: Optional[str] = None

    @model_validator(mode="after")
    def check_unique_products(self):
        ensure_unique_products(self.items)
        return self


class SalesOrderItemResponse(BaseResponseSchema):
    id: UUID
    product_id: UUID
    line_number: int
    quantity: int
    unit_price: Decimal
    tax_percent: Decimal
    subtotal: Decimal
    tax_amount: Decimal
    total: Decimal


class SalesOrderResponse(BaseResponseSchema):
    id: UUID
    order_number: str
    order_date: date
    customer_id: UUID
    warehouse_id: UUID
    status: str
    payment_status: str
    payment_terms: str
    due_date: Optional[date] = None
    subtotal: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    shipping_amount: Decimal
    total_amount: Decimal
    tax_details: Optional[list] = None
    hold_reason: Optional[str] = None
    cancellation_reason: Optional[str] = None
    created_at: datetime
    items: List[SalesOrderItemResponse] = []


class SalesOrderListResponse(BaseResponseSchema):
    items: List[SalesOrderResponse]
    total: int
    page: int
    size: int
    pages: int


class HoldRequest(BaseCreateSchema):
    reason: str = Field(..., min_length=1)


class CancelRequest(BaseCreateSchema):
    reason: Optional[str] = None


# ==================== Invoice ====================

class InvoiceItemResponse(BaseResponseSchema):
    id: UUID
    product_id: UUID
    quantity: int
    unit_price: Decimal
    tax_percent: Decimal
    tax_amount: Decimal
    total: Decimal


class InvoiceResponse(BaseResponseSchema):
    id: UUID
    invoice_number: str
    sales_order_id: UUID
    customer_id: UUID
    invoice_date: date
    due_date: Optional[date] = None
    subtotal: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    shipping_amount: Decimal
    total_amount: Decimal
    paid_amount: Decimal
    balance_amount: Decimal
    payment_status: str
    status: str
    void_reason: Optional[str] = None
    voided_at: Optional[datetime] = None
    items: List[InvoiceItemResponse] = []


class VoidInvoiceRequest(BaseCreateSchema):
    reason: str = Field(..., min_length=1)


# ==================== Payments ====================

class PaymentCreate(BaseCreateSchema):
    customer_id: UUID
    amount: Decimal = Field(..., gt=0)
    payment_method: PaymentMethod = PaymentMethod.BANK_TRANSFER
    reference_number: Optional[str] = None
    notes: Optional[str] = None


class PaymentResponse(BaseResponseSchema):
    id: UUID
    payment_number: str
    invoice_id: UUID
    customer_id: UUID
    amount: Decimal
    payment_method: str
    reference_number: Optional[str] = None
    payment_date: date
