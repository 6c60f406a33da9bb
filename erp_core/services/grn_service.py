"""GRN Service: goods receipt against purchase orders.

A verified GRN is the only procurement path that raises stock.

Flow:
1. GRN Created    -> PENDING_VERIFICATION, quantities checked against PO outstanding
2. GRN Verified   -> INWARD ledger movement per accepted line, PO received
                     quantities and PO status updated
3. GRN Rejected   -> no stock effect
"""
import logging
import uuid
from collections import defaultdict
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from erp_core.core.exceptions import NotFound, ValidationError, ExcessQuantity
from erp_core.core.references import GrnRef
from erp_core.database import unit_of_work
from erp_core.models.document_sequence import DocumentType
from erp_core.models.inventory import MovementType
from erp_core.models.purchase import (
    GoodsReceiptNote,
    GRNItem,
    GRNStatus,
    PurchaseOrder,
    PurchaseOrderItem,
    POStatus,
)
from erp_core.schemas.purchase import GRNCreate
from erp_core.services.document_sequence_service import DocumentSequenceService
from erp_core.services.inventory_ledger import InventoryLedger
from erp_core.services.state_machines import transition, require_status


logger = logging.getLogger(__name__)

MACHINE = "GRN"

RECEIVABLE_PO_STATUSES = {POStatus.APPROVED, POStatus.SENT, POStatus.PARTIALLY_RECEIVED}


class GRNService:
    """Service for GRN operations and PO receipt tracking."""

    def __init__(self, db: AsyncSession, ledger: Optional[InventoryLedger] = None):
        self.db = db
        self.ledger = ledger or InventoryLedger(db)

    # ==================== Queries ====================

    async def get_grn(self, grn_id: uuid.UUID) -> GoodsReceiptNote:
        result = await self.db.execute(
            select(GoodsReceiptNote)
            .options(selectinload(GoodsReceiptNote.items))
            .where(GoodsReceiptNote.id == grn_id)
            .execution_options(populate_existing=True)
        )
        grn = result.scalar_one_or_none()
        if not grn:
            raise NotFound(f"GRN {grn_id} not found")
        return grn

    async def _lock_grn(self, grn_id: uuid.UUID) -> GoodsReceiptNote:
        result = await self.db.execute(
            select(GoodsReceiptNote)
            .options(selectinload(GoodsReceiptNote.items))
            .where(GoodsReceiptNote.id == grn_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        grn = result.scalar_one_or_none()
        if not grn:
            raise NotFound(f"GRN {grn_id} not found")
        return grn

    async def _lock_purchase_order(self, po_id: uuid.UUID) -> PurchaseOrder:
        result = await self.db.execute(
            select(PurchaseOrder)
            .options(selectinload(PurchaseOrder.items))
            .where(PurchaseOrder.id == po_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        po = result.scalar_one_or_none()
        if not po:
            raise NotFound(f"Purchase order {po_id} not found")
        return po

    async def list_grns(
        self,
        purchase_order_id: Optional[uuid.UUID] = None,
        status: Optional[str] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> Tuple[List[GoodsReceiptNote], int]:
        query = select(GoodsReceiptNote).options(selectinload(GoodsReceiptNote.items))
        count_query = select(func.count(GoodsReceiptNote.id))

        if purchase_order_id:
            query = query.where(GoodsReceiptNote.purchase_order_id == purchase_order_id)
            count_query = count_query.where(GoodsReceiptNote.purchase_order_id == purchase_order_id)
        if status:
            query = query.where(GoodsReceiptNote.status == status)
            count_query = count_query.where(GoodsReceiptNote.status == status)

        total = (await self.db.execute(count_query)).scalar() or 0
        query = query.order_by(GoodsReceiptNote.created_at.desc()).offset(skip).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all()), total

    # ==================== Create ====================

    @staticmethod
    def _check_outstanding(po_item: PurchaseOrderItem, quantity: int) -> None:
        outstanding = po_item.quantity_ordered - (po_item.quantity_received or 0)
        if quantity > outstanding:
            raise ExcessQuantity(
                f"Received quantity {quantity} exceeds outstanding {outstanding} "
                f"for product {po_item.product_id}"
            )

    async def create_grn(self, data: GRNCreate, received_by: Optional[uuid.UUID] = None) -> GoodsReceiptNote:
        """
        Record goods arriving against a PO.

        Raises:
            InvalidStatus: PO not APPROVED, SENT or PARTIALLY_RECEIVED
            ValidationError: product not on the PO
            ExcessQuantity: accepted + rejected exceeds the line's outstanding quantity
        """
        async with unit_of_work(self.db):
            po = await self._lock_purchase_order(data.purchase_order_id)
            require_status("Purchase order", po.status, RECEIVABLE_PO_STATUSES, "receive goods")

            po_items: Dict[uuid.UUID, PurchaseOrderItem] = {item.product_id: item for item in po.items}
            totals: Dict[uuid.UUID, int] = defaultdict(int)

            grn_number = await DocumentSequenceService(self.db).get_next_number(DocumentType.GOODS_RECEIPT_NOTE)
            grn = GoodsReceiptNote(
                grn_number=grn_number,
                purchase_order_id=po.id,
                warehouse_id=po.warehouse_id,
                status=GRNStatus.PENDING_VERIFICATION.value,
                delivery_note_number=data.delivery_note_number,
                vehicle_number=data.vehicle_number,
                notes=data.notes,
                received_by=received_by,
            )

            for item in data.items:
                po_item = po_items.get(item.product_id)
                if po_item is None:
                    raise ValidationError(f"Product {item.product_id} is not on purchase order {po.po_number}")

                counted = item.quantity_accepted + item.quantity_rejected
                totals[po_item.id] += counted
                self._check_outstanding(po_item, totals[po_item.id])

                grn.items.append(GRNItem(
                    po_item_id=po_item.id,
                    product_id=item.product_id,
                    quantity_expected=po_item.quantity_pending,
                    quantity_received=item.quantity_received if item.quantity_received is not None else counted,
                    quantity_accepted=item.quantity_accepted,
                    quantity_rejected=item.quantity_rejected,
                    rejection_reason=item.rejection_reason,
                ))

            self.db.add(grn)
            await self.db.flush()

        logger.info(f"Created GRN {grn_number} for PO {po.po_number}")
        return await self.get_grn(grn.id)

    # ==================== Verify ====================

    @staticmethod
    def _receipt_status(po: PurchaseOrder) -> Optional[POStatus]:
        if all((item.quantity_received or 0) >= item.quantity_ordered for item in po.items):
            return POStatus.RECEIVED
        if any((item.quantity_received or 0) > 0 for item in po.items):
            return POStatus.PARTIALLY_RECEIVED
        return None

    async def verify_grn(self, grn_id: uuid.UUID, verified_by: Optional[uuid.UUID] = None) -> GoodsReceiptNote:
        """
        Post accepted quantities to stock and to the PO.

        Outstanding quantities are re-checked under the PO lock because a
        sibling GRN may have been verified since this one was created.
        """
        async with unit_of_work(self.db):
            grn = await self._lock_grn(grn_id)
            transition(MACHINE, grn, GRNStatus.VERIFIED, verified_by)

            po = await self._lock_purchase_order(grn.purchase_order_id)
            po_items = {item.id: item for item in po.items}

            totals: Dict[uuid.UUID, int] = defaultdict(int)
            for grn_item in grn.items:
                po_item = po_items[grn_item.po_item_id]
                totals[po_item.id] += grn_item.quantity_accepted + grn_item.quantity_rejected
                self._check_outstanding(po_item, totals[po_item.id])

            reference = GrnRef(grn.id)
            for grn_item in grn.items:
                if grn_item.quantity_accepted <= 0:
                    continue
                await self.ledger.apply_movement(
                    warehouse_id=grn.warehouse_id,
                    product_id=grn_item.product_id,
                    delta=grn_item.quantity_accepted,
                    movement_type=MovementType.INWARD,
                    reference=reference,
                    actor=verified_by,
                    notes=f"GRN {grn.grn_number}",
                )
                po_item = po_items[grn_item.po_item_id]
                po_item.quantity_received = (po_item.quantity_received or 0) + grn_item.quantity_accepted

            new_po_status = self._receipt_status(po)
            if new_po_status is not None:
                transition("Purchase order", po, new_po_status, verified_by)

            grn.verified_by = verified_by
            await self.db.flush()

        logger.info(f"Verified GRN {grn.grn_number}; PO {po.po_number} now {po.status}")
        return await self.get_grn(grn_id)

    # ==================== Reject / discrepancy ====================

    async def reject_grn(
        self,
        grn_id: uuid.UUID,
        reason: str,
        user_id: Optional[uuid.UUID] = None,
    ) -> GoodsReceiptNote:
        async with unit_of_work(self.db):
            grn = await self._lock_grn(grn_id)
            transition(MACHINE, grn, GRNStatus.REJECTED, user_id)
            grn.rejection_reason = reason
            await self.db.flush()
        return await self.get_grn(grn_id)

    async def report_discrepancy(self, grn_id: uuid.UUID, notes: str) -> GoodsReceiptNote:
        """Flag a discrepancy; status is untouched."""
        async with unit_of_work(self.db):
            grn = await self._lock_grn(grn_id)
            grn.has_discrepancy = True
            grn.discrepancy_notes = notes
            await self.db.flush()
        logger.warning(f"Discrepancy reported on GRN {grn.grn_number}: {notes}")
        return await self.get_grn(grn_id)
