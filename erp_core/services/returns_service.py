"""
Returns Service (RMA).

REQUESTED -> APPROVED -> RECEIVED -> INSPECTED -> PROCESSED -> REFUNDED | REPLACED
REQUESTED -> REJECTED

Only processing touches stock: accepted, restockable quantities go back to
the order's warehouse as INWARD movements referencing the return. Refunds
are priced from accepted quantities, not from what was requested.
"""
import logging
import uuid
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from erp_core.core.exceptions import NotFound, ValidationError, ExcessQuantity
from erp_core.core.references import ReturnRef
from erp_core.database import unit_of_work
from erp_core.models.customer import Customer
from erp_core.models.dispatch import Dispatch, DispatchItem, DispatchStatus
from erp_core.models.document_sequence import DocumentType
from erp_core.models.inventory import MovementType
from erp_core.models.invoice import PaymentMethod
from erp_core.models.return_order import ReturnRequest, ReturnItem, ReturnStatus
from erp_core.models.sales_order import SalesOrder, SalesOrderStatus
from erp_core.schemas.return_order import ReturnCreate, InspectionLine
from erp_core.services.document_sequence_service import DocumentSequenceService
from erp_core.services.inventory_ledger import InventoryLedger
from erp_core.services.notification_service import NotificationService, NotificationType
from erp_core.services.state_machines import transition, require_status
from erp_core.services.tax_calculator import money


logger = logging.getLogger(__name__)

MACHINE = "Return"

RETURNABLE_ORDER_STATUSES = {SalesOrderStatus.SHIPPED, SalesOrderStatus.DELIVERED}
RETURNABLE_DISPATCH_STATUSES = [
    DispatchStatus.SHIPPED.value,
    DispatchStatus.IN_TRANSIT.value,
    DispatchStatus.OUT_FOR_DELIVERY.value,
    DispatchStatus.DELIVERED.value,
]


class ReturnsService:
    """Service for return requests."""

    def __init__(
        self,
        db: AsyncSession,
        ledger: Optional[InventoryLedger] = None,
        notifier: Optional[NotificationService] = None,
    ):
        self.db = db
        self.ledger = ledger or InventoryLedger(db)
        self.notifier = notifier or NotificationService()

    async def get_return(self, return_id: uuid.UUID, for_update: bool = False) -> ReturnRequest:
        query = (
            select(ReturnRequest)
            .options(selectinload(ReturnRequest.items))
            .where(ReturnRequest.id == return_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            query = query.with_for_update()

        result = await self.db.execute(query)
        return_request = result.scalar_one_or_none()
        if not return_request:
            raise NotFound(f"Return {return_id} not found")
        return return_request

    async def list_returns(
        self,
        status: Optional[str] = None,
        sales_order_id: Optional[uuid.UUID] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> Tuple[List[ReturnRequest], int]:
        query = select(ReturnRequest).options(selectinload(ReturnRequest.items))
        count_query = select(func.count(ReturnRequest.id))

        if status:
            query = query.where(ReturnRequest.status == status)
            count_query = count_query.where(ReturnRequest.status == status)
        if sales_order_id:
            query = query.where(ReturnRequest.sales_order_id == sales_order_id)
            count_query = count_query.where(ReturnRequest.sales_order_id == sales_order_id)

        total = (await self.db.execute(count_query)).scalar() or 0
        query = query.order_by(ReturnRequest.created_at.desc()).offset(skip).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all()), total

    async def _shipped_quantity(self, sales_order_item_id: uuid.UUID) -> int:
        """Quantity of an order line that left the warehouse and was not lost in delivery."""
        result = await self.db.execute(
            select(func.coalesce(func.sum(DispatchItem.quantity_shipped), 0))
            .join(Dispatch, DispatchItem.dispatch_id == Dispatch.id)
            .where(
                and_(
                    DispatchItem.sales_order_item_id == sales_order_item_id,
                    Dispatch.status.in_(RETURNABLE_DISPATCH_STATUSES),
                )
            )
        )
        return int(result.scalar() or 0)

    async def _already_requested(self, sales_order_item_id: uuid.UUID) -> int:
        """Quantity of an order line already on non-rejected returns."""
        result = await self.db.execute(
            select(func.coalesce(func.sum(ReturnItem.quantity), 0))
            .join(ReturnRequest, ReturnItem.return_id == ReturnRequest.id)
            .where(
                and_(
                    ReturnItem.sales_order_item_id == sales_order_item_id,
                    ReturnRequest.status != ReturnStatus.REJECTED.value,
                )
            )
        )
        return int(result.scalar() or 0)

    # ==================== Create ====================

    async def create_return(self, data: ReturnCreate, requested_by: Optional[uuid.UUID] = None) -> ReturnRequest:
        """
        Raise an RMA against a shipped or delivered order.

        Raises:
            InvalidStatus: order not SHIPPED / DELIVERED
            ValidationError: product not on the order
            ExcessQuantity: more than was shipped on the line, less earlier returns
        """
        async with unit_of_work(self.db):
            result = await self.db.execute(
                select(SalesOrder)
                .options(selectinload(SalesOrder.items))
                .where(SalesOrder.id == data.sales_order_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            order = result.scalar_one_or_none()
            if not order:
                raise NotFound(f"Sales order {data.sales_order_id} not found")
            require_status("Sales order", order.status, RETURNABLE_ORDER_STATUSES, "create return")

            order_items = {item.product_id: item for item in order.items}

            rma_number = await DocumentSequenceService(self.db).get_next_number(DocumentType.RETURN_REQUEST)
            return_request = ReturnRequest(
                rma_number=rma_number,
                sales_order_id=order.id,
                customer_id=order.customer_id,
                warehouse_id=order.warehouse_id,
                status=ReturnStatus.REQUESTED.value,
                reason=data.reason.value,
                description=data.description,
                requested_by=requested_by,
            )

            total_amount = Decimal("0")
            requested = {}
            shipped = {}
            for line in data.items:
                order_item = order_items.get(line.product_id)
                if order_item is None:
                    raise ValidationError(f"Product {line.product_id} is not on order {order.order_number}")

                if order_item.id not in requested:
                    requested[order_item.id] = await self._already_requested(order_item.id)
                    shipped[order_item.id] = await self._shipped_quantity(order_item.id)
                returnable = shipped[order_item.id] - requested[order_item.id]
                if line.quantity > returnable:
                    raise ExcessQuantity(
                        f"Return quantity {line.quantity} exceeds returnable {returnable} "
                        f"for product {line.product_id}"
                    )
                requested[order_item.id] += line.quantity

                return_request.items.append(ReturnItem(
                    sales_order_item_id=order_item.id,
                    product_id=line.product_id,
                    quantity=line.quantity,
                    unit_price=order_item.unit_price,
                    quantity_accepted=0,
                    quantity_rejected=0,
                    restockable=False,
                ))
                total_amount += line.quantity * Decimal(str(order_item.unit_price))

            return_request.total_amount = money(total_amount)
            self.db.add(return_request)
            await self.db.flush()

        logger.info(f"Created return {rma_number} for order {order.order_number}")
        return await self.get_return(return_request.id)

    # ==================== Workflow ====================

    async def _change_status(
        self,
        return_id: uuid.UUID,
        new_status: ReturnStatus,
        user_id: Optional[uuid.UUID] = None,
        **fields,
    ) -> ReturnRequest:
        async with unit_of_work(self.db):
            return_request = await self.get_return(return_id, for_update=True)
            transition(MACHINE, return_request, new_status, user_id)
            for name, value in fields.items():
                setattr(return_request, name, value)
            await self.db.flush()
        return await self.get_return(return_id)

    async def approve_return(self, return_id: uuid.UUID, approved_by: Optional[uuid.UUID] = None) -> ReturnRequest:
        return_request = await self._change_status(return_id, ReturnStatus.APPROVED, approved_by, approved_by=approved_by)
        customer = await self.db.get(Customer, return_request.customer_id)
        await self.notifier.notify_customer(
            customer,
            NotificationType.RETURN_APPROVED,
            rma_number=return_request.rma_number,
        )
        return return_request

    async def reject_return(
        self,
        return_id: uuid.UUID,
        reason: str,
        user_id: Optional[uuid.UUID] = None,
    ) -> ReturnRequest:
        return await self._change_status(return_id, ReturnStatus.REJECTED, user_id, rejection_reason=reason)

    async def receive_return(self, return_id: uuid.UUID, user_id: Optional[uuid.UUID] = None) -> ReturnRequest:
        return await self._change_status(return_id, ReturnStatus.RECEIVED, user_id)

    async def inspect_return(
        self,
        return_id: uuid.UUID,
        items: List[InspectionLine],
        notes: Optional[str] = None,
        inspected_by: Optional[uuid.UUID] = None,
    ) -> ReturnRequest:
        """Record the inspection outcome per line."""
        async with unit_of_work(self.db):
            return_request = await self.get_return(return_id, for_update=True)
            transition(MACHINE, return_request, ReturnStatus.INSPECTED, inspected_by)

            by_product = {item.product_id: item for item in return_request.items}
            for line in items:
                item = by_product.get(line.product_id)
                if item is None:
                    raise ValidationError(f"Product {line.product_id} is not on return {return_request.rma_number}")
                if line.quantity_accepted + line.quantity_rejected > item.quantity:
                    raise ExcessQuantity(
                        f"Inspected quantity {line.quantity_accepted + line.quantity_rejected} "
                        f"exceeds returned {item.quantity} for product {line.product_id}"
                    )
                item.quantity_accepted = line.quantity_accepted
                item.quantity_rejected = line.quantity_rejected
                item.restockable = line.restockable
                item.condition = line.condition.value

            return_request.inspection_notes = notes
            return_request.inspected_by = inspected_by
            await self.db.flush()
        return await self.get_return(return_id)

    async def process_return(self, return_id: uuid.UUID, user_id: Optional[uuid.UUID] = None) -> ReturnRequest:
        """Restock accepted, restockable quantities at the return's warehouse."""
        async with unit_of_work(self.db):
            return_request = await self.get_return(return_id, for_update=True)
            transition(MACHINE, return_request, ReturnStatus.PROCESSED, user_id)

            reference = ReturnRef(return_request.id)
            for item in return_request.items:
                if (item.quantity_accepted or 0) > 0 and item.restockable:
                    await self.ledger.apply_movement(
                        warehouse_id=return_request.warehouse_id,
                        product_id=item.product_id,
                        delta=item.quantity_accepted,
                        movement_type=MovementType.INWARD,
                        reference=reference,
                        actor=user_id,
                        notes=f"Return {return_request.rma_number}",
                    )
            await self.db.flush()
        return await self.get_return(return_id)

    @staticmethod
    def calculate_refund(return_request: ReturnRequest, deductions: Decimal = Decimal("0")) -> Decimal:
        """Accepted quantity x original unit price, less deductions, never below zero."""
        gross = sum(
            (Decimal(item.quantity_accepted or 0) * Decimal(str(item.unit_price)) for item in return_request.items),
            Decimal("0"),
        )
        return max(money(gross - Decimal(str(deductions))), Decimal("0.00"))

    async def refund_return(
        self,
        return_id: uuid.UUID,
        deductions: Decimal = Decimal("0"),
        refund_method: PaymentMethod = PaymentMethod.BANK_TRANSFER,
        user_id: Optional[uuid.UUID] = None,
    ) -> ReturnRequest:
        async with unit_of_work(self.db):
            return_request = await self.get_return(return_id, for_update=True)
            transition(MACHINE, return_request, ReturnStatus.REFUNDED, user_id)
            return_request.deductions = money(deductions)
            return_request.refund_amount = self.calculate_refund(return_request, deductions)
            return_request.refund_method = PaymentMethod(refund_method).value
            await self.db.flush()

        logger.info(f"Refunded {return_request.refund_amount} on return {return_request.rma_number}")

        customer = await self.db.get(Customer, return_request.customer_id)
        await self.notifier.notify_customer(
            customer,
            NotificationType.REFUND_PROCESSED,
            rma_number=return_request.rma_number,
            refund_amount=return_request.refund_amount,
        )
        return await self.get_return(return_id)

    async def replace_return(self, return_id: uuid.UUID, user_id: Optional[uuid.UUID] = None) -> ReturnRequest:
        return await self._change_status(return_id, ReturnStatus.REPLACED, user_id)
