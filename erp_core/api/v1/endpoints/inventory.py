"""Inventory ledger API endpoints."""
from typing import List, Optional
import uuid

from fastapi import APIRouter, Query

from erp_core.api.deps import DB
from erp_core.core.exceptions import NotFound
from erp_core.schemas.inventory import (
    InventoryRecordResponse,
    InventoryTransactionResponse,
    ReorderPointUpdate,
)
from erp_core.services.inventory_ledger import InventoryLedger


router = APIRouter()


@router.get("/low-stock", response_model=List[InventoryRecordResponse])
async def list_low_stock(
    db: DB,
    warehouse_id: Optional[uuid.UUID] = Query(None),
):
    """Records at or below their reorder point."""
    records = await InventoryLedger(db).get_low_stock(warehouse_id)
    return [InventoryRecordResponse.model_validate(r) for r in records]


@router.get("/{warehouse_id}/{product_id}", response_model=InventoryRecordResponse)
async def get_inventory_record(
    warehouse_id: uuid.UUID,
    product_id: uuid.UUID,
    db: DB,
):
    record = await InventoryLedger(db).get_record(warehouse_id, product_id)
    if not record:
        raise NotFound(
            f"No inventory for product {product_id} in warehouse {warehouse_id}",
            code="NO_INVENTORY",
        )
    return InventoryRecordResponse.model_validate(record)


@router.get("/{warehouse_id}/{product_id}/transactions", response_model=List[InventoryTransactionResponse])
async def get_inventory_transactions(
    warehouse_id: uuid.UUID,
    product_id: uuid.UUID,
    db: DB,
):
    """Ledger history, oldest first."""
    transactions = await InventoryLedger(db).get_transactions(warehouse_id, product_id)
    return [InventoryTransactionResponse.model_validate(t) for t in transactions]


@router.put("/{warehouse_id}/{product_id}/reorder-point", response_model=InventoryRecordResponse)
async def set_reorder_point(
    warehouse_id: uuid.UUID,
    product_id: uuid.UUID,
    data: ReorderPointUpdate,
    db: DB,
):
    record = await InventoryLedger(db).set_reorder_point(warehouse_id, product_id, data.reorder_point)
    return InventoryRecordResponse.model_validate(record)
