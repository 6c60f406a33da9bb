"""Purchase Order API endpoints."""
from typing import List, Optional
import uuid

from fastapi import APIRouter, Query, status

from erp_core.api.deps import DB, Actor
from erp_core.models.purchase import POStatus
from erp_core.schemas.purchase import (
    PurchaseOrderCreate,
    PurchaseOrderResponse,
    RejectRequest,
    ReceiptLine,
)
from erp_core.services.purchase_service import PurchaseOrderService


router = APIRouter()


@router.post("", response_model=PurchaseOrderResponse, status_code=status.HTTP_201_CREATED)
async def create_purchase_order(data: PurchaseOrderCreate, db: DB, actor: Actor):
    po = await PurchaseOrderService(db).create_purchase_order(data, created_by=actor)
    return PurchaseOrderResponse.model_validate(po)


@router.get("", response_model=List[PurchaseOrderResponse])
async def list_purchase_orders(
    db: DB,
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    status: Optional[POStatus] = Query(None),
    supplier_id: Optional[uuid.UUID] = Query(None),
):
    orders, _ = await PurchaseOrderService(db).list_purchase_orders(
        status=status.value if status else None,
        supplier_id=supplier_id,
        skip=(page - 1) * size,
        limit=size,
    )
    return [PurchaseOrderResponse.model_validate(po) for po in orders]


@router.get("/{po_id}", response_model=PurchaseOrderResponse)
async def get_purchase_order(po_id: uuid.UUID, db: DB):
    po = await PurchaseOrderService(db).get_purchase_order(po_id)
    return PurchaseOrderResponse.model_validate(po)


@router.post("/{po_id}/submit", response_model=PurchaseOrderResponse)
async def submit_purchase_order(po_id: uuid.UUID, db: DB, actor: Actor):
    po = await PurchaseOrderService(db).submit_purchase_order(po_id, user_id=actor)
    return PurchaseOrderResponse.model_validate(po)


@router.post("/{po_id}/approve", response_model=PurchaseOrderResponse)
async def approve_purchase_order(po_id: uuid.UUID, db: DB, actor: Actor):
    po = await PurchaseOrderService(db).approve_purchase_order(po_id, approved_by=actor)
    return PurchaseOrderResponse.model_validate(po)


@router.post("/{po_id}/reject", response_model=PurchaseOrderResponse)
async def reject_purchase_order(po_id: uuid.UUID, data: RejectRequest, db: DB, actor: Actor):
    po = await PurchaseOrderService(db).reject_purchase_order(po_id, data.reason, user_id=actor)
    return PurchaseOrderResponse.model_validate(po)


@router.post("/{po_id}/send", response_model=PurchaseOrderResponse)
async def send_purchase_order(po_id: uuid.UUID, db: DB, actor: Actor):
    """Mark the PO as sent to the supplier."""
    po = await PurchaseOrderService(db).send_purchase_order(po_id, user_id=actor)
    return PurchaseOrderResponse.model_validate(po)


@router.post("/{po_id}/cancel", response_model=PurchaseOrderResponse)
async def cancel_purchase_order(po_id: uuid.UUID, db: DB, actor: Actor):
    po = await PurchaseOrderService(db).cancel_purchase_order(po_id, user_id=actor)
    return PurchaseOrderResponse.model_validate(po)


@router.get("/{po_id}/receipt-summary", response_model=List[ReceiptLine])
async def get_receipt_summary(po_id: uuid.UUID, db: DB):
    lines = await PurchaseOrderService(db).get_receipt_summary(po_id)
    return [ReceiptLine.model_validate(line) for line in lines]
