"""Stock Adjustment API endpoints."""
from typing import List, Optional
import uuid

from fastapi import APIRouter, Query, status

from erp_core.api.deps import DB, Actor
from erp_core.models.stock_adjustment import AdjustmentStatus
from erp_core.schemas.stock_adjustment import (
    AdjustmentCreate,
    AdjustmentResponse,
    AdjustmentRejectRequest,
)
from erp_core.services.stock_adjustment_service import StockAdjustmentService


router = APIRouter()


@router.post("", response_model=AdjustmentResponse, status_code=status.HTTP_201_CREATED)
async def create_adjustment(data: AdjustmentCreate, db: DB, actor: Actor):
    adjustment = await StockAdjustmentService(db).create_adjustment(data, requested_by=actor)
    return AdjustmentResponse.model_validate(adjustment)


@router.get("", response_model=List[AdjustmentResponse])
async def list_adjustments(
    db: DB,
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    warehouse_id: Optional[uuid.UUID] = Query(None),
    status: Optional[AdjustmentStatus] = Query(None),
):
    adjustments, _ = await StockAdjustmentService(db).list_adjustments(
        warehouse_id=warehouse_id,
        status=status.value if status else None,
        skip=(page - 1) * size,
        limit=size,
    )
    return [AdjustmentResponse.model_validate(a) for a in adjustments]


@router.get("/{adjustment_id}", response_model=AdjustmentResponse)
async def get_adjustment(adjustment_id: uuid.UUID, db: DB):
    adjustment = await StockAdjustmentService(db).get_adjustment(adjustment_id)
    return AdjustmentResponse.model_validate(adjustment)


@router.post("/{adjustment_id}/approve", response_model=AdjustmentResponse)
async def approve_adjustment(adjustment_id: uuid.UUID, db: DB, actor: Actor):
    """Apply the counted quantities to the ledger."""
    adjustment = await StockAdjustmentService(db).approve_adjustment(adjustment_id, approved_by=actor)
    return AdjustmentResponse.model_validate(adjustment)


@router.post("/{adjustment_id}/reject", response_model=AdjustmentResponse)
async def reject_adjustment(adjustment_id: uuid.UUID, data: AdjustmentRejectRequest, db: DB, actor: Actor):
    adjustment = await StockAdjustmentService(db).reject_adjustment(adjustment_id, data.reason, user_id=actor)
    return AdjustmentResponse.model_validate(adjustment)
