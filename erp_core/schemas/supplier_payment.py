"""Supplier payment schemas."""
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import Field

from erp_core.models.invoice import PaymentMethod
from erp_core.schemas.base import BaseCreateSchema, BaseResponseSchema


class SupplierPaymentCreate(BaseCreateSchema):
    supplier_id: UUID
    purchase_order_id: UUID
    amount: Decimal = Field(..., gt=0)
    payment_method: PaymentMethod = PaymentMethod.BANK_TRANSFER
    payment_date: Optional[date] = None
    reference_number: Optional[str] = None
    notes: Optional[str] = None


class SupplierPaymentCancelRequest(BaseCreateSchema):
    reason: Optional[str] = None


class SupplierPaymentResponse(BaseResponseSchema):
    id: UUID
    payment_number: str
    supplier_id: UUID
    purchase_order_id: UUID
    amount: Decimal
    payment_method: str
    payment_date: date
    reference_number: Optional[str] = None
    notes: Optional[str] = None
    status: str
    cancellation_reason: Optional[str] = None
    approved_by: Optional[UUID] = None
    approved_at: Optional[datetime] = None
    processed_by: Optional[UUID] = None
    processed_at: Optional[datetime] = None
    created_at: datetime


class SupplierPaymentListResponse(BaseResponseSchema):
    items: List[SupplierPaymentResponse]
    total: int
    page: int
    size: int
    pages: int
