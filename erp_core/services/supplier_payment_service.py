"""
Supplier Payment Service.

Flow:
PENDING -> APPROVED -> PROCESSED
PENDING | APPROVED -> CANCELLED

A payment is committed against its purchase order from creation: the sum of
non-cancelled payments on a PO never passes the PO total. Only processing
adds the amount to the PO's paid_amount.
"""
import logging
import uuid
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession

from erp_core.core.exceptions import NotFound, ValidationError, ExcessAmount
from erp_core.database import unit_of_work
from erp_core.models.document_sequence import DocumentType
from erp_core.models.purchase import PurchaseOrder, POStatus
from erp_core.models.supplier import Supplier
from erp_core.models.supplier_payment import SupplierPayment, SupplierPaymentStatus
from erp_core.schemas.supplier_payment import SupplierPaymentCreate
from erp_core.services.document_sequence_service import DocumentSequenceService
from erp_core.services.state_machines import transition, require_status
from erp_core.services.tax_calculator import money


logger = logging.getLogger(__name__)

MACHINE = "Supplier payment"

# POs a supplier can be paid against
PAYABLE_PO_STATUSES = {
    POStatus.APPROVED,
    POStatus.SENT,
    POStatus.PARTIALLY_RECEIVED,
    POStatus.RECEIVED,
}


class SupplierPaymentService:
    """Service for outgoing supplier payments."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_payment(self, payment_id: uuid.UUID, for_update: bool = False) -> SupplierPayment:
        query = (
            select(SupplierPayment)
            .where(SupplierPayment.id == payment_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            query = query.with_for_update()
        payment = (await self.db.execute(query)).scalar_one_or_none()
        if not payment:
            raise NotFound(f"Supplier payment {payment_id} not found")
        return payment

    async def list_payments(
        self,
        supplier_id: Optional[uuid.UUID] = None,
        purchase_order_id: Optional[uuid.UUID] = None,
        status: Optional[str] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> Tuple[List[SupplierPayment], int]:
        conditions = []
        if supplier_id:
            conditions.append(SupplierPayment.supplier_id == supplier_id)
        if purchase_order_id:
            conditions.append(SupplierPayment.purchase_order_id == purchase_order_id)
        if status:
            conditions.append(SupplierPayment.status == status)

        query = select(SupplierPayment)
        count_query = select(func.count(SupplierPayment.id))
        if conditions:
            query = query.where(and_(*conditions))
            count_query = count_query.where(and_(*conditions))

        total = (await self.db.execute(count_query)).scalar() or 0
        query = query.order_by(SupplierPayment.created_at.desc()).offset(skip).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all()), total

    async def _committed_amount(self, po_id: uuid.UUID) -> Decimal:
        """Sum of non-cancelled payments against a PO."""
        result = await self.db.execute(
            select(func.coalesce(func.sum(SupplierPayment.amount), 0)).where(
                and_(
                    SupplierPayment.purchase_order_id == po_id,
                    SupplierPayment.status != SupplierPaymentStatus.CANCELLED.value,
                )
            )
        )
        return Decimal(str(result.scalar() or 0))

    async def _lock_purchase_order(self, po_id: uuid.UUID) -> PurchaseOrder:
        result = await self.db.execute(
            select(PurchaseOrder)
            .where(PurchaseOrder.id == po_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        po = result.scalar_one_or_none()
        if not po:
            raise NotFound(f"Purchase order {po_id} not found")
        return po

    async def create_payment(
        self,
        data: SupplierPaymentCreate,
        created_by: Optional[uuid.UUID] = None,
    ) -> SupplierPayment:
        """
        Raise a PENDING payment against a purchase order.

        Raises:
            NotFound: supplier or purchase order missing
            ValidationError: PO belongs to another supplier
            InvalidStatus: PO not approved yet, or closed without delivery
            ExcessAmount: payments on the PO would pass its total
        """
        amount = money(data.amount)
        if amount <= 0:
            raise ValidationError("Payment amount must be greater than zero")

        async with unit_of_work(self.db):
            if not await self.db.get(Supplier, data.supplier_id):
                raise NotFound(f"Supplier {data.supplier_id} not found")

            po = await self._lock_purchase_order(data.purchase_order_id)
            if po.supplier_id != data.supplier_id:
                raise ValidationError(
                    f"Purchase order {po.po_number} does not belong to supplier {data.supplier_id}"
                )
            require_status("Purchase order", po.status, PAYABLE_PO_STATUSES, "pay supplier")

            committed = await self._committed_amount(po.id)
            remaining = Decimal(str(po.total_amount)) - committed
            if amount > remaining:
                raise ExcessAmount(
                    f"Payment {amount} exceeds unpaid balance {remaining} on purchase order {po.po_number}"
                )

            payment_number = await DocumentSequenceService(self.db).get_next_number(DocumentType.SUPPLIER_PAYMENT)
            payment = SupplierPayment(
                payment_number=payment_number,
                supplier_id=data.supplier_id,
                purchase_order_id=po.id,
                amount=amount,
                payment_method=data.payment_method.value,
                reference_number=data.reference_number,
                notes=data.notes,
                status=SupplierPaymentStatus.PENDING.value,
                created_by=created_by,
            )
            if data.payment_date:
                payment.payment_date = data.payment_date
            self.db.add(payment)
            await self.db.flush()

        logger.info(f"Created supplier payment {payment_number} of {amount} for PO {po.po_number}")
        return await self.get_payment(payment.id)

    async def approve_payment(self, payment_id: uuid.UUID, approved_by: Optional[uuid.UUID] = None) -> SupplierPayment:
        async with unit_of_work(self.db):
            payment = await self.get_payment(payment_id, for_update=True)
            transition(MACHINE, payment, SupplierPaymentStatus.APPROVED, approved_by)
            payment.approved_by = approved_by
            await self.db.flush()
        return await self.get_payment(payment_id)

    async def process_payment(self, payment_id: uuid.UUID, processed_by: Optional[uuid.UUID] = None) -> SupplierPayment:
        """Release an approved payment and count it as paid on the PO."""
        async with unit_of_work(self.db):
            payment = await self.get_payment(payment_id, for_update=True)
            transition(MACHINE, payment, SupplierPaymentStatus.PROCESSED, processed_by)
            payment.processed_by = processed_by

            po = await self._lock_purchase_order(payment.purchase_order_id)
            po.paid_amount = money(Decimal(str(po.paid_amount or 0)) + Decimal(str(payment.amount)))
            await self.db.flush()

        logger.info(f"Processed supplier payment {payment.payment_number}; PO {po.po_number} paid {po.paid_amount}")
        return await self.get_payment(payment_id)

    async def cancel_payment(
        self,
        payment_id: uuid.UUID,
        reason: Optional[str] = None,
        user_id: Optional[uuid.UUID] = None,
    ) -> SupplierPayment:
        async with unit_of_work(self.db):
            payment = await self.get_payment(payment_id, for_update=True)
            transition(MACHINE, payment, SupplierPaymentStatus.CANCELLED, user_id)
            payment.cancellation_reason = reason
            await self.db.flush()
        return await self.get_payment(payment_id)
