"""Invoice and customer payment API endpoints."""
from typing import List
import uuid

from fastapi import APIRouter, status

from erp_core.api.deps import DB, Actor
from erp_core.schemas.sales_order import InvoiceResponse, PaymentCreate, PaymentResponse, VoidInvoiceRequest
from erp_core.services.payment_service import PaymentService
from erp_core.services.sales_order_service import SalesOrderService


router = APIRouter()


@router.get("/{invoice_id}", response_model=InvoiceResponse)
async def get_invoice(invoice_id: uuid.UUID, db: DB):
    invoice = await SalesOrderService(db).get_invoice(invoice_id)
    return InvoiceResponse.model_validate(invoice)


@router.post("/{invoice_id}/void", response_model=InvoiceResponse)
async def void_invoice(invoice_id: uuid.UUID, data: VoidInvoiceRequest, db: DB, actor: Actor):
    """Void an unpaid invoice so the order can be invoiced again."""
    invoice = await PaymentService(db).void_invoice(invoice_id, data.reason, voided_by=actor)
    return InvoiceResponse.model_validate(invoice)


@router.post("/{invoice_id}/payments", response_model=PaymentResponse, status_code=status.HTTP_201_CREATED)
async def record_payment(invoice_id: uuid.UUID, data: PaymentCreate, db: DB, actor: Actor):
    """Apply a payment; amounts above the outstanding balance are refused."""
    payment = await PaymentService(db).record_payment(
        invoice_id=invoice_id,
        customer_id=data.customer_id,
        amount=data.amount,
        payment_method=data.payment_method,
        reference_number=data.reference_number,
        notes=data.notes,
        created_by=actor,
    )
    return PaymentResponse.model_validate(payment)


@router.get("/{invoice_id}/payments", response_model=List[PaymentResponse])
async def list_payments(invoice_id: uuid.UUID, db: DB):
    payments = await PaymentService(db).list_payments(invoice_id)
    return [PaymentResponse.model_validate(p) for p in payments]
