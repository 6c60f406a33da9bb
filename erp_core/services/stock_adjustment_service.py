"""
Stock adjustments: physical counts reconciled against the ledger on approval.

A DAMAGE adjustment that lowers stock is booked as a DAMAGE movement so the
record's damaged counter follows; every other change is an ADJUSTMENT.
"""
import logging
import uuid
from typing import List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from erp_core.core.exceptions import NotFound, InsufficientStock
from erp_core.core.references import AdjustmentRef
from erp_core.database import unit_of_work
from erp_core.models.document_sequence import DocumentType
from erp_core.models.inventory import MovementType
from erp_core.models.product import Product
from erp_core.models.stock_adjustment import (
    StockAdjustment,
    StockAdjustmentItem,
    AdjustmentReason,
    AdjustmentStatus,
)
from erp_core.models.warehouse import Warehouse
from erp_core.schemas.stock_adjustment import AdjustmentCreate
from erp_core.services.document_sequence_service import DocumentSequenceService
from erp_core.services.inventory_ledger import InventoryLedger
from erp_core.services.state_machines import transition


logger = logging.getLogger(__name__)

MACHINE = "Adjustment"


class StockAdjustmentService:
    """Service for counted-quantity adjustments."""

    def __init__(self, db: AsyncSession, ledger: Optional[InventoryLedger] = None):
        self.db = db
        self.ledger = ledger or InventoryLedger(db)

    async def get_adjustment(self, adjustment_id: uuid.UUID, for_update: bool = False) -> StockAdjustment:
        query = (
            select(StockAdjustment)
            .options(selectinload(StockAdjustment.items))
            .where(StockAdjustment.id == adjustment_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            query = query.with_for_update()

        result = await self.db.execute(query)
        adjustment = result.scalar_one_or_none()
        if not adjustment:
            raise NotFound(f"Stock adjustment {adjustment_id} not found")
        return adjustment

    async def list_adjustments(
        self,
        warehouse_id: Optional[uuid.UUID] = None,
        status: Optional[str] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> Tuple[List[StockAdjustment], int]:
        query = select(StockAdjustment).options(selectinload(StockAdjustment.items))
        count_query = select(func.count(StockAdjustment.id))

        if warehouse_id:
            query = query.where(StockAdjustment.warehouse_id == warehouse_id)
            count_query = count_query.where(StockAdjustment.warehouse_id == warehouse_id)
        if status:
            query = query.where(StockAdjustment.status == status)
            count_query = count_query.where(StockAdjustment.status == status)

        total = (await self.db.execute(count_query)).scalar() or 0
        query = query.order_by(StockAdjustment.created_at.desc()).offset(skip).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all()), total

    async def create_adjustment(
        self,
        data: AdjustmentCreate,
        requested_by: Optional[uuid.UUID] = None,
    ) -> StockAdjustment:
        async with unit_of_work(self.db):
            if not await self.db.get(Warehouse, data.warehouse_id):
                raise NotFound(f"Warehouse {data.warehouse_id} not found")

            adjustment_number = await DocumentSequenceService(self.db).get_next_number(DocumentType.STOCK_ADJUSTMENT)
            adjustment = StockAdjustment(
                adjustment_number=adjustment_number,
                reason=data.reason.value,
                status=AdjustmentStatus.PENDING.value,
                warehouse_id=data.warehouse_id,
                requested_by=requested_by,
                notes=data.notes,
            )
            for item in data.items:
                if not await self.db.get(Product, item.product_id):
                    raise NotFound(f"Product {item.product_id} not found")
                adjustment.items.append(StockAdjustmentItem(
                    product_id=item.product_id,
                    counted_quantity=item.counted_quantity,
                    notes=item.notes,
                ))

            self.db.add(adjustment)
            await self.db.flush()

        logger.info(f"Created stock adjustment {adjustment_number} ({data.reason.value})")
        return await self.get_adjustment(adjustment.id)

    async def approve_adjustment(
        self,
        adjustment_id: uuid.UUID,
        approved_by: Optional[uuid.UUID] = None,
    ) -> StockAdjustment:
        """
        Bring each line's available quantity to the counted quantity.

        Raises:
            InsufficientStock: a count falls below what is already reserved
        """
        async with unit_of_work(self.db):
            adjustment = await self.get_adjustment(adjustment_id, for_update=True)
            transition(MACHINE, adjustment, AdjustmentStatus.APPROVED, approved_by)

            reference = AdjustmentRef(adjustment.id)
            for item in adjustment.items:
                record = await self.ledger.lock_record(adjustment.warehouse_id, item.product_id)
                before = record.available if record else 0
                reserved = record.reserved if record else 0
                if item.counted_quantity < reserved:
                    raise InsufficientStock(
                        f"Counted quantity {item.counted_quantity} for product {item.product_id} "
                        f"is below reserved {reserved}"
                    )

                delta = item.counted_quantity - before
                item.quantity_before = before
                item.adjustment_quantity = delta
                if delta != 0:
                    movement_type = MovementType.ADJUSTMENT
                    if adjustment.reason == AdjustmentReason.DAMAGE.value and delta < 0:
                        movement_type = MovementType.DAMAGE
                    await self.ledger.apply_movement(
                        warehouse_id=adjustment.warehouse_id,
                        product_id=item.product_id,
                        delta=delta,
                        movement_type=movement_type,
                        reference=reference,
                        actor=approved_by,
                        notes=f"Adjustment {adjustment.adjustment_number} ({adjustment.reason})",
                    )

            adjustment.approved_by = approved_by
            await self.db.flush()

        logger.info(f"Approved stock adjustment {adjustment.adjustment_number}")
        return await self.get_adjustment(adjustment_id)

    async def reject_adjustment(
        self,
        adjustment_id: uuid.UUID,
        reason: str,
        user_id: Optional[uuid.UUID] = None,
    ) -> StockAdjustment:
        async with unit_of_work(self.db):
            adjustment = await self.get_adjustment(adjustment_id, for_update=True)
            transition(MACHINE, adjustment, AdjustmentStatus.REJECTED, user_id)
            adjustment.rejection_reason = reason
            await self.db.flush()
        return await self.get_adjustment(adjustment_id)
