"""Supplier payment API endpoints."""
from math import ceil
from typing import Optional
import uuid

from fastapi import APIRouter, Query, status

from erp_core.api.deps import DB, Actor
from erp_core.models.supplier_payment import SupplierPaymentStatus
from erp_core.schemas.supplier_payment import (
    SupplierPaymentCreate,
    SupplierPaymentCancelRequest,
    SupplierPaymentResponse,
    SupplierPaymentListResponse,
)
from erp_core.services.supplier_payment_service import SupplierPaymentService


router = APIRouter()


@router.post("", response_model=SupplierPaymentResponse, status_code=status.HTTP_201_CREATED)
async def create_supplier_payment(data: SupplierPaymentCreate, db: DB, actor: Actor):
    """Raise a payment against a purchase order; it waits for approval."""
    payment = await SupplierPaymentService(db).create_payment(data, created_by=actor)
    return SupplierPaymentResponse.model_validate(payment)


@router.get("", response_model=SupplierPaymentListResponse)
async def list_supplier_payments(
    db: DB,
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    supplier_id: Optional[uuid.UUID] = Query(None),
    purchase_order_id: Optional[uuid.UUID] = Query(None),
    status: Optional[SupplierPaymentStatus] = Query(None),
):
    payments, total = await SupplierPaymentService(db).list_payments(
        supplier_id=supplier_id,
        purchase_order_id=purchase_order_id,
        status=status.value if status else None,
        skip=(page - 1) * size,
        limit=size,
    )
    return SupplierPaymentListResponse(
        items=[SupplierPaymentResponse.model_validate(p) for p in payments],
        total=total,
        page=page,
        size=size,
        pages=ceil(total / size) if total > 0 else 1,
    )


@router.get("/{payment_id}", response_model=SupplierPaymentResponse)
async def get_supplier_payment(payment_id: uuid.UUID, db: DB):
    payment = await SupplierPaymentService(db).get_payment(payment_id)
    return SupplierPaymentResponse.model_validate(payment)


@router.post("/{payment_id}/approve", response_model=SupplierPaymentResponse)
async def approve_supplier_payment(payment_id: uuid.UUID, db: DB, actor: Actor):
    payment = await SupplierPaymentService(db).approve_payment(payment_id, approved_by=actor)
    return SupplierPaymentResponse.model_validate(payment)


@router.post("/{payment_id}/process", response_model=SupplierPaymentResponse)
async def process_supplier_payment(payment_id: uuid.UUID, db: DB, actor: Actor):
    payment = await SupplierPaymentService(db).process_payment(payment_id, processed_by=actor)
    return SupplierPaymentResponse.model_validate(payment)


@router.post("/{payment_id}/cancel", response_model=SupplierPaymentResponse)
async def cancel_supplier_payment(
    payment_id: uuid.UUID,
    data: SupplierPaymentCancelRequest,
    db: DB,
    actor: Actor,
):
    payment = await SupplierPaymentService(db).cancel_payment(payment_id, data.reason, user_id=actor)
    return SupplierPaymentResponse.model_validate(payment)
