"""Dispatch API endpoints: pick, pack, ship and track."""
from typing import List, Optional
import uuid

from fastapi import APIRouter, Query, status

from erp_core.api.deps import DB, Actor
from erp_core.models.dispatch import DispatchStatus
from erp_core.schemas.dispatch import (
    DispatchCreate,
    DispatchResponse,
    DispatchQuantities,
    ShipRequest,
    TrackingUpdateCreate,
    TrackingUpdateResponse,
    FailRequest,
)
from erp_core.services.dispatch_service import DispatchService


router = APIRouter()


@router.post("", response_model=DispatchResponse, status_code=status.HTTP_201_CREATED)
async def create_dispatch(data: DispatchCreate, db: DB, actor: Actor):
    dispatch = await DispatchService(db).create_dispatch(data, created_by=actor)
    return DispatchResponse.model_validate(dispatch)


@router.get("", response_model=List[DispatchResponse])
async def list_dispatches(
    db: DB,
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    status: Optional[DispatchStatus] = Query(None),
    sales_order_id: Optional[uuid.UUID] = Query(None),
):
    dispatches, _ = await DispatchService(db).list_dispatches(
        status=status.value if status else None,
        sales_order_id=sales_order_id,
        skip=(page - 1) * size,
        limit=size,
    )
    return [DispatchResponse.model_validate(d) for d in dispatches]


@router.get("/{dispatch_id}", response_model=DispatchResponse)
async def get_dispatch(dispatch_id: uuid.UUID, db: DB):
    dispatch = await DispatchService(db).get_dispatch(dispatch_id)
    return DispatchResponse.model_validate(dispatch)


# ==================== Picking ====================

@router.post("/{dispatch_id}/start-picking", response_model=DispatchResponse)
async def start_picking(dispatch_id: uuid.UUID, db: DB, actor: Actor):
    dispatch = await DispatchService(db).start_picking(dispatch_id, user_id=actor)
    return DispatchResponse.model_validate(dispatch)


@router.post("/{dispatch_id}/picked", response_model=DispatchResponse)
async def record_picked(dispatch_id: uuid.UUID, data: DispatchQuantities, db: DB, actor: Actor):
    dispatch = await DispatchService(db).record_picked(dispatch_id, data.items, user_id=actor)
    return DispatchResponse.model_validate(dispatch)


@router.post("/{dispatch_id}/complete-picking", response_model=DispatchResponse)
async def complete_picking(dispatch_id: uuid.UUID, db: DB, actor: Actor):
    dispatch = await DispatchService(db).complete_picking(dispatch_id, user_id=actor)
    return DispatchResponse.model_validate(dispatch)


# ==================== Packing ====================

@router.post("/{dispatch_id}/start-packing", response_model=DispatchResponse)
async def start_packing(dispatch_id: uuid.UUID, db: DB, actor: Actor):
    dispatch = await DispatchService(db).start_packing(dispatch_id, user_id=actor)
    return DispatchResponse.model_validate(dispatch)


@router.post("/{dispatch_id}/packed", response_model=DispatchResponse)
async def record_packed(dispatch_id: uuid.UUID, data: DispatchQuantities, db: DB, actor: Actor):
    dispatch = await DispatchService(db).record_packed(dispatch_id, data.items, user_id=actor)
    return DispatchResponse.model_validate(dispatch)


@router.post("/{dispatch_id}/complete-packing", response_model=DispatchResponse)
async def complete_packing(dispatch_id: uuid.UUID, db: DB, actor: Actor):
    dispatch = await DispatchService(db).complete_packing(dispatch_id, user_id=actor)
    return DispatchResponse.model_validate(dispatch)


@router.post("/{dispatch_id}/ready-to-ship", response_model=DispatchResponse)
async def mark_ready_to_ship(dispatch_id: uuid.UUID, db: DB, actor: Actor):
    dispatch = await DispatchService(db).mark_ready_to_ship(dispatch_id, user_id=actor)
    return DispatchResponse.model_validate(dispatch)


# ==================== Shipping ====================

@router.post("/{dispatch_id}/ship", response_model=DispatchResponse)
async def ship_dispatch(dispatch_id: uuid.UUID, data: ShipRequest, db: DB, actor: Actor):
    """
    Ship packed goods.
    Packed quantities leave stock; the unshipped reservation is released.
    """
    dispatch = await DispatchService(db).ship(
        dispatch_id,
        carrier=data.carrier,
        tracking_number=data.tracking_number,
        shipped_by=actor,
    )
    return DispatchResponse.model_validate(dispatch)


@router.post("/{dispatch_id}/tracking", response_model=DispatchResponse)
async def add_tracking_update(dispatch_id: uuid.UUID, data: TrackingUpdateCreate, db: DB, actor: Actor):
    dispatch = await DispatchService(db).add_tracking_update(
        dispatch_id,
        status=data.status,
        location=data.location,
        description=data.description,
        user_id=actor,
    )
    return DispatchResponse.model_validate(dispatch)


@router.get("/{dispatch_id}/tracking", response_model=List[TrackingUpdateResponse])
async def get_tracking_history(dispatch_id: uuid.UUID, db: DB):
    updates = await DispatchService(db).get_tracking_history(dispatch_id)
    return [TrackingUpdateResponse.model_validate(u) for u in updates]


@router.post("/{dispatch_id}/deliver", response_model=DispatchResponse)
async def mark_delivered(dispatch_id: uuid.UUID, db: DB, actor: Actor):
    dispatch = await DispatchService(db).mark_delivered(dispatch_id, user_id=actor)
    return DispatchResponse.model_validate(dispatch)


@router.post("/{dispatch_id}/fail", response_model=DispatchResponse)
async def mark_failed(dispatch_id: uuid.UUID, data: FailRequest, db: DB, actor: Actor):
    dispatch = await DispatchService(db).mark_failed(dispatch_id, data.reason, user_id=actor)
    return DispatchResponse.model_validate(dispatch)
