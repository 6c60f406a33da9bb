"""Warehouse Transfer API endpoints."""
from typing import Optional
import uuid
from math import ceil

from fastapi import APIRouter, Query, status

from erp_core.api.deps import DB, Actor
from erp_core.models.stock_transfer import TransferStatus
from erp_core.schemas.transfer import (
    TransferCreate,
    TransferResponse,
    TransferListResponse,
    TransferShipRequest,
    TransferReceiveRequest,
    TransferReasonRequest,
)
from erp_core.services.transfer_service import TransferService


router = APIRouter()


@router.get("", response_model=TransferListResponse)
async def list_transfers(
    db: DB,
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    from_warehouse_id: Optional[uuid.UUID] = Query(None),
    to_warehouse_id: Optional[uuid.UUID] = Query(None),
    status: Optional[TransferStatus] = Query(None),
):
    """Get paginated list of warehouse transfers."""
    service = TransferService(db)
    skip = (page - 1) * size

    transfers, total = await service.get_transfers(
        from_warehouse_id=from_warehouse_id,
        to_warehouse_id=to_warehouse_id,
        status=status.value if status else None,
        skip=skip,
        limit=size,
    )

    return TransferListResponse(
        items=[TransferResponse.model_validate(t) for t in transfers],
        total=total,
        page=page,
        size=size,
        pages=ceil(total / size) if total > 0 else 1,
    )


@router.get("/{transfer_id}", response_model=TransferResponse)
async def get_transfer(transfer_id: uuid.UUID, db: DB):
    transfer = await TransferService(db).get_transfer_by_id(transfer_id)
    return TransferResponse.model_validate(transfer)


@router.post("", response_model=TransferResponse, status_code=status.HTTP_201_CREATED)
async def create_transfer(data: TransferCreate, db: DB, actor: Actor):
    """
    Create a transfer request.
    Source stock is checked but not reserved until approval.
    """
    transfer = await TransferService(db).create_transfer(data, requested_by=actor)
    return TransferResponse.model_validate(transfer)


@router.post("/{transfer_id}/approve", response_model=TransferResponse)
async def approve_transfer(transfer_id: uuid.UUID, db: DB, actor: Actor):
    transfer = await TransferService(db).approve_transfer(transfer_id, approved_by=actor)
    return TransferResponse.model_validate(transfer)


@router.post("/{transfer_id}/reject", response_model=TransferResponse)
async def reject_transfer(transfer_id: uuid.UUID, data: TransferReasonRequest, db: DB, actor: Actor):
    transfer = await TransferService(db).reject_transfer(transfer_id, data.reason, user_id=actor)
    return TransferResponse.model_validate(transfer)


@router.post("/{transfer_id}/ship", response_model=TransferResponse)
async def ship_transfer(transfer_id: uuid.UUID, data: TransferShipRequest, db: DB, actor: Actor):
    transfer = await TransferService(db).ship_transfer(
        transfer_id,
        items=data.items,
        shipped_by=actor,
        vehicle_number=data.vehicle_number,
        carrier=data.carrier,
    )
    return TransferResponse.model_validate(transfer)


@router.post("/{transfer_id}/receive", response_model=TransferResponse)
async def receive_transfer(transfer_id: uuid.UUID, data: TransferReceiveRequest, db: DB, actor: Actor):
    """Receive at the destination; shortfall against shipped is transit loss."""
    transfer = await TransferService(db).receive_transfer(transfer_id, items=data.items, received_by=actor)
    return TransferResponse.model_validate(transfer)


@router.post("/{transfer_id}/cancel", response_model=TransferResponse)
async def cancel_transfer(transfer_id: uuid.UUID, data: TransferReasonRequest, db: DB, actor: Actor):
    transfer = await TransferService(db).cancel_transfer(transfer_id, data.reason, user_id=actor)
    return TransferResponse.model_validate(transfer)
