"""Sales Order API endpoints."""
from typing import Optional
import uuid
from math import ceil

from fastapi import APIRouter, Query, status

from erp_core.api.deps import DB, Actor
from erp_core.models.sales_order import SalesOrderStatus
from erp_core.schemas.sales_order import (
    SalesOrderCreate,
    SalesOrderResponse,
    SalesOrderListResponse,
    HoldRequest,
    CancelRequest,
    InvoiceResponse,
)
from erp_core.services.sales_order_service import SalesOrderService


router = APIRouter()


@router.post("", response_model=SalesOrderResponse, status_code=status.HTTP_201_CREATED)
async def create_sales_order(data: SalesOrderCreate, db: DB, actor: Actor):
    """
    Create a sales order and reserve its stock.
    Fails as a whole on credit or stock shortfall.
    """
    order = await SalesOrderService(db).create_order(data, created_by=actor)
    return SalesOrderResponse.model_validate(order)


@router.get("", response_model=SalesOrderListResponse)
async def list_sales_orders(
    db: DB,
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    status: Optional[SalesOrderStatus] = Query(None),
    customer_id: Optional[uuid.UUID] = Query(None),
):
    orders, total = await SalesOrderService(db).list_orders(
        status=status.value if status else None,
        customer_id=customer_id,
        skip=(page - 1) * size,
        limit=size,
    )
    return SalesOrderListResponse(
        items=[SalesOrderResponse.model_validate(o) for o in orders],
        total=total,
        page=page,
        size=size,
        pages=ceil(total / size) if total > 0 else 1,
    )


@router.get("/{order_id}", response_model=SalesOrderResponse)
async def get_sales_order(order_id: uuid.UUID, db: DB):
    order = await SalesOrderService(db).get_order(order_id)
    return SalesOrderResponse.model_validate(order)


@router.post("/{order_id}/submit", response_model=SalesOrderResponse)
async def submit_sales_order(order_id: uuid.UUID, db: DB, actor: Actor):
    """Reserve stock for a draft order and move it to PENDING."""
    order = await SalesOrderService(db).submit_order(order_id, user_id=actor)
    return SalesOrderResponse.model_validate(order)


@router.post("/{order_id}/confirm", response_model=SalesOrderResponse)
async def confirm_sales_order(order_id: uuid.UUID, db: DB, actor: Actor):
    order = await SalesOrderService(db).confirm_order(order_id, user_id=actor)
    return SalesOrderResponse.model_validate(order)


@router.post("/{order_id}/hold", response_model=SalesOrderResponse)
async def hold_sales_order(order_id: uuid.UUID, data: HoldRequest, db: DB, actor: Actor):
    order = await SalesOrderService(db).hold_order(order_id, data.reason, user_id=actor)
    return SalesOrderResponse.model_validate(order)


@router.post("/{order_id}/release-hold", response_model=SalesOrderResponse)
async def release_sales_order_hold(order_id: uuid.UUID, db: DB, actor: Actor):
    order = await SalesOrderService(db).release_hold(order_id, user_id=actor)
    return SalesOrderResponse.model_validate(order)


@router.post("/{order_id}/cancel", response_model=SalesOrderResponse)
async def cancel_sales_order(order_id: uuid.UUID, data: CancelRequest, db: DB, actor: Actor):
    """Cancel the order and release its reservations."""
    order = await SalesOrderService(db).cancel_order(order_id, data.reason, user_id=actor)
    return SalesOrderResponse.model_validate(order)


@router.post("/{order_id}/invoice", response_model=InvoiceResponse, status_code=status.HTTP_201_CREATED)
async def generate_invoice(order_id: uuid.UUID, db: DB, actor: Actor):
    invoice = await SalesOrderService(db).generate_invoice(order_id, created_by=actor)
    return InvoiceResponse.model_validate(invoice)
