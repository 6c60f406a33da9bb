"""
Purchase Order Service.

Flow:
1. create()  -> DRAFT
2. submit()  -> PENDING (awaiting approval)
3. approve() -> APPROVED, or reject() -> REJECTED
4. send()    -> SENT to supplier
5. GRNs verified against the PO move it to PARTIALLY_RECEIVED / RECEIVED
   (see GRNService)
"""
import logging
import uuid
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from erp_core.core.exceptions import NotFound, HasGRN, HasPayments
from erp_core.database import unit_of_work
from erp_core.models.document_sequence import DocumentType
from erp_core.models.product import Product
from erp_core.models.purchase import PurchaseOrder, PurchaseOrderItem, GoodsReceiptNote, POStatus
from erp_core.models.supplier import Supplier
from erp_core.models.supplier_payment import SupplierPayment, SupplierPaymentStatus
from erp_core.models.warehouse import Warehouse
from erp_core.schemas.purchase import PurchaseOrderCreate
from erp_core.services.document_sequence_service import DocumentSequenceService
from erp_core.services.state_machines import transition
from erp_core.services.tax_calculator import money


logger = logging.getLogger(__name__)

MACHINE = "Purchase order"


class PurchaseOrderService:
    """Service for purchase order lifecycle."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_purchase_order(self, po_id: uuid.UUID) -> PurchaseOrder:
        result = await self.db.execute(
            select(PurchaseOrder)
            .options(selectinload(PurchaseOrder.items))
            .where(PurchaseOrder.id == po_id)
            .execution_options(populate_existing=True)
        )
        po = result.scalar_one_or_none()
        if not po:
            raise NotFound(f"Purchase order {po_id} not found")
        return po

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

    async def list_purchase_orders(
        self,
        status: Optional[str] = None,
        supplier_id: Optional[uuid.UUID] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> Tuple[List[PurchaseOrder], int]:
        query = select(PurchaseOrder).options(selectinload(PurchaseOrder.items))
        count_query = select(func.count(PurchaseOrder.id))

        if status:
            query = query.where(PurchaseOrder.status == status)
            count_query = count_query.where(PurchaseOrder.status == status)
        if supplier_id:
            query = query.where(PurchaseOrder.supplier_id == supplier_id)
            count_query = count_query.where(PurchaseOrder.supplier_id == supplier_id)

        total = (await self.db.execute(count_query)).scalar() or 0
        query = query.order_by(PurchaseOrder.created_at.desc()).offset(skip).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all()), total

    async def create_purchase_order(
        self,
        data: PurchaseOrderCreate,
        created_by: Optional[uuid.UUID] = None,
    ) -> PurchaseOrder:
        async with unit_of_work(self.db):
            if not await self.db.get(Supplier, data.supplier_id):
                raise NotFound(f"Supplier {data.supplier_id} not found")
            if not await self.db.get(Warehouse, data.warehouse_id):
                raise NotFound(f"Warehouse {data.warehouse_id} not found")

            po_number = await DocumentSequenceService(self.db).get_next_number(DocumentType.PURCHASE_ORDER)
            po = PurchaseOrder(
                po_number=po_number,
                supplier_id=data.supplier_id,
                warehouse_id=data.warehouse_id,
                expected_delivery_date=data.expected_delivery_date,
                status=POStatus.DRAFT.value,
                notes=data.notes,
                created_by=created_by,
            )

            subtotal = Decimal("0")
            tax_amount = Decimal("0")
            for index, item in enumerate(data.items):
                if not await self.db.get(Product, item.product_id):
                    raise NotFound(f"Product {item.product_id} not found")

                line_subtotal = money(item.quantity * item.unit_price)
                line_tax = money(line_subtotal * item.tax_percent / 100)
                subtotal += line_subtotal
                tax_amount += line_tax

                po.items.append(PurchaseOrderItem(
                    product_id=item.product_id,
                    line_number=index + 1,
                    quantity_ordered=item.quantity,
                    quantity_received=0,
                    unit_price=item.unit_price,
                    tax_percent=item.tax_percent,
                    tax_amount=line_tax,
                    total=money(line_subtotal + line_tax),
                ))

            po.subtotal = money(subtotal)
            po.tax_amount = money(tax_amount)
            po.discount_amount = money(data.discount_amount)
            po.shipping_amount = money(data.shipping_amount)
            po.total_amount = money(subtotal - po.discount_amount + tax_amount + po.shipping_amount)

            self.db.add(po)
            await self.db.flush()

        logger.info(f"Created purchase order {po_number} total={po.total_amount}")
        return await self.get_purchase_order(po.id)

    async def _change_status(
        self,
        po_id: uuid.UUID,
        new_status: POStatus,
        user_id: Optional[uuid.UUID] = None,
        **fields,
    ) -> PurchaseOrder:
        async with unit_of_work(self.db):
            po = await self._lock_purchase_order(po_id)
            transition(MACHINE, po, new_status, user_id)
            for name, value in fields.items():
                setattr(po, name, value)
            await self.db.flush()
        return await self.get_purchase_order(po_id)

    async def submit_purchase_order(self, po_id: uuid.UUID, user_id: Optional[uuid.UUID] = None) -> PurchaseOrder:
        return await self._change_status(po_id, POStatus.PENDING, user_id)

    async def approve_purchase_order(self, po_id: uuid.UUID, approved_by: Optional[uuid.UUID] = None) -> PurchaseOrder:
        return await self._change_status(po_id, POStatus.APPROVED, approved_by, approved_by=approved_by)

    async def reject_purchase_order(
        self,
        po_id: uuid.UUID,
        reason: str,
        user_id: Optional[uuid.UUID] = None,
    ) -> PurchaseOrder:
        return await self._change_status(po_id, POStatus.REJECTED, user_id, rejection_reason=reason)

    async def send_purchase_order(self, po_id: uuid.UUID, user_id: Optional[uuid.UUID] = None) -> PurchaseOrder:
        return await self._change_status(po_id, POStatus.SENT, user_id)

    async def cancel_purchase_order(self, po_id: uuid.UUID, user_id: Optional[uuid.UUID] = None) -> PurchaseOrder:
        """
        Cancel a PO that has no goods receipts and no live supplier payments.

        Raises:
            HasGRN: any GRN exists against the PO, whatever its status
            HasPayments: a supplier payment against the PO is not cancelled
        """
        async with unit_of_work(self.db):
            po = await self._lock_purchase_order(po_id)
            grn_count = (await self.db.execute(
                select(func.count(GoodsReceiptNote.id)).where(GoodsReceiptNote.purchase_order_id == po_id)
            )).scalar() or 0
            if grn_count:
                raise HasGRN(f"Purchase order {po.po_number} has {grn_count} GRN(s) and cannot be cancelled")

            payment_count = (await self.db.execute(
                select(func.count(SupplierPayment.id)).where(
                    SupplierPayment.purchase_order_id == po_id,
                    SupplierPayment.status != SupplierPaymentStatus.CANCELLED.value,
                )
            )).scalar() or 0
            if payment_count:
                raise HasPayments(f"Purchase order {po.po_number} has {payment_count} supplier payment(s)")

            transition(MACHINE, po, POStatus.CANCELLED, user_id)
            await self.db.flush()
        return await self.get_purchase_order(po_id)

    async def get_receipt_summary(self, po_id: uuid.UUID) -> List[Dict[str, Any]]:
        """Per-line ordered / received / pending quantities."""
        po = await self.get_purchase_order(po_id)
        return [
            {
                "po_item_id": item.id,
                "product_id": item.product_id,
                "quantity_ordered": item.quantity_ordered,
                "quantity_received": item.quantity_received or 0,
                "quantity_pending": item.quantity_pending,
            }
            for item in po.items
        ]
