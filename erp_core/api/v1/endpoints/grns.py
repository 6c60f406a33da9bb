"""Goods Receipt Note API endpoints."""
from typing import List, Optional
import uuid

from fastapi import APIRouter, Query, status

from erp_core.api.deps import DB, Actor
from erp_core.models.purchase import GRNStatus
from erp_core.schemas.purchase import GRNCreate, GRNResponse, RejectRequest, DiscrepancyReport
from erp_core.services.grn_service import GRNService


router = APIRouter()


@router.post("", response_model=GRNResponse, status_code=status.HTTP_201_CREATED)
async def create_grn(data: GRNCreate, db: DB, actor: Actor):
    """
    Record goods received against a purchase order.
    Stock is not touched until the GRN is verified.
    """
    grn = await GRNService(db).create_grn(data, received_by=actor)
    return GRNResponse.model_validate(grn)


@router.get("", response_model=List[GRNResponse])
async def list_grns(
    db: DB,
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    purchase_order_id: Optional[uuid.UUID] = Query(None),
    status: Optional[GRNStatus] = Query(None),
):
    grns, _ = await GRNService(db).list_grns(
        purchase_order_id=purchase_order_id,
        status=status.value if status else None,
        skip=(page - 1) * size,
        limit=size,
    )
    return [GRNResponse.model_validate(g) for g in grns]


@router.get("/{grn_id}", response_model=GRNResponse)
async def get_grn(grn_id: uuid.UUID, db: DB):
    grn = await GRNService(db).get_grn(grn_id)
    return GRNResponse.model_validate(grn)


@router.post("/{grn_id}/verify", response_model=GRNResponse)
async def verify_grn(grn_id: uuid.UUID, db: DB, actor: Actor):
    grn = await GRNService(db).verify_grn(grn_id, verified_by=actor)
    return GRNResponse.model_validate(grn)


@router.post("/{grn_id}/reject", response_model=GRNResponse)
async def reject_grn(grn_id: uuid.UUID, data: RejectRequest, db: DB, actor: Actor):
    grn = await GRNService(db).reject_grn(grn_id, data.reason, user_id=actor)
    return GRNResponse.model_validate(grn)


@router.post("/{grn_id}/discrepancy", response_model=GRNResponse)
async def report_discrepancy(grn_id: uuid.UUID, data: DiscrepancyReport, db: DB):
    grn = await GRNService(db).report_discrepancy(grn_id, data.notes)
    return GRNResponse.model_validate(grn)
