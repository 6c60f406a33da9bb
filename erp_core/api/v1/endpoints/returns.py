"""Return (RMA) API endpoints."""
from typing import List, Optional
import uuid

from fastapi import APIRouter, Query, status

from erp_core.api.deps import DB, Actor
from erp_core.models.return_order import ReturnStatus
from erp_core.schemas.return_order import (
    ReturnCreate,
    ReturnResponse,
    ReturnRejectRequest,
    InspectionRequest,
    RefundRequest,
)
from erp_core.services.returns_service import ReturnsService


router = APIRouter()


@router.post("", response_model=ReturnResponse, status_code=status.HTTP_201_CREATED)
async def create_return(data: ReturnCreate, db: DB, actor: Actor):
    return_request = await ReturnsService(db).create_return(data, requested_by=actor)
    return ReturnResponse.model_validate(return_request)


@router.get("", response_model=List[ReturnResponse])
async def list_returns(
    db: DB,
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    status: Optional[ReturnStatus] = Query(None),
    sales_order_id: Optional[uuid.UUID] = Query(None),
):
    returns, _ = await ReturnsService(db).list_returns(
        status=status.value if status else None,
        sales_order_id=sales_order_id,
        skip=(page - 1) * size,
        limit=size,
    )
    return [ReturnResponse.model_validate(r) for r in returns]


@router.get("/{return_id}", response_model=ReturnResponse)
async def get_return(return_id: uuid.UUID, db: DB):
    return_request = await ReturnsService(db).get_return(return_id)
    return ReturnResponse.model_validate(return_request)


@router.post("/{return_id}/approve", response_model=ReturnResponse)
async def approve_return(return_id: uuid.UUID, db: DB, actor: Actor):
    return_request = await ReturnsService(db).approve_return(return_id, approved_by=actor)
    return ReturnResponse.model_validate(return_request)


@router.post("/{return_id}/reject", response_model=ReturnResponse)
async def reject_return(return_id: uuid.UUID, data: ReturnRejectRequest, db: DB, actor: Actor):
    return_request = await ReturnsService(db).reject_return(return_id, data.reason, user_id=actor)
    return ReturnResponse.model_validate(return_request)


@router.post("/{return_id}/receive", response_model=ReturnResponse)
async def receive_return(return_id: uuid.UUID, db: DB, actor: Actor):
    return_request = await ReturnsService(db).receive_return(return_id, user_id=actor)
    return ReturnResponse.model_validate(return_request)


@router.post("/{return_id}/inspect", response_model=ReturnResponse)
async def inspect_return(return_id: uuid.UUID, data: InspectionRequest, db: DB, actor: Actor):
    return_request = await ReturnsService(db).inspect_return(
        return_id, data.items, notes=data.notes, inspected_by=actor
    )
    return ReturnResponse.model_validate(return_request)


@router.post("/{return_id}/process", response_model=ReturnResponse)
async def process_return(return_id: uuid.UUID, db: DB, actor: Actor):
    """Restock accepted, restockable quantities."""
    return_request = await ReturnsService(db).process_return(return_id, user_id=actor)
    return ReturnResponse.model_validate(return_request)


@router.post("/{return_id}/refund", response_model=ReturnResponse)
async def refund_return(return_id: uuid.UUID, data: RefundRequest, db: DB, actor: Actor):
    return_request = await ReturnsService(db).refund_return(
        return_id,
        deductions=data.deductions,
        refund_method=data.refund_method,
        user_id=actor,
    )
    return ReturnResponse.model_validate(return_request)


@router.post("/{return_id}/replace", response_model=ReturnResponse)
async def replace_return(return_id: uuid.UUID, db: DB, actor: Actor):
    return_request = await ReturnsService(db).replace_return(return_id, user_id=actor)
    return ReturnResponse.model_validate(return_request)
