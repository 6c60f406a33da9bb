"""
Dispatch Service: pick, pack and ship sales orders.

Flow:
PENDING -> PICKING -> PICKED -> PACKING -> PACKED -> READY_TO_SHIP -> SHIPPED
        -> IN_TRANSIT -> OUT_FOR_DELIVERY -> DELIVERED (or FAILED)

Shipping is the point where reserved stock leaves the warehouse: packed
quantities are consumed from the reservation and whatever was reserved but
not shipped is released.
"""
import logging
import uuid
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from erp_core.config import settings
from erp_core.core.exceptions import (
    NotFound,
    ValidationError,
    InvalidStatus,
    ExcessQuantity,
    IncompleteFulfillment,
)
from erp_core.core.references import DispatchRef
from erp_core.database import unit_of_work
from erp_core.models.dispatch import Dispatch, DispatchItem, DispatchStatus, TrackingUpdate
from erp_core.models.document_sequence import DocumentType
from erp_core.models.inventory import MovementType
from erp_core.models.sales_order import SalesOrder, SalesOrderStatus
from erp_core.schemas.dispatch import DispatchCreate, DispatchQuantity
from erp_core.services.document_sequence_service import DocumentSequenceService
from erp_core.services.notification_service import NotificationService, NotificationType
from erp_core.services.state_machines import transition, require_status
from erp_core.services.stock_reservation_service import StockReservationService


logger = logging.getLogger(__name__)

MACHINE = "Dispatch"

DISPATCHABLE_ORDER_STATUSES = {SalesOrderStatus.CONFIRMED, SalesOrderStatus.PROCESSING}
CLOSED_DISPATCH_STATUSES = [DispatchStatus.DELIVERED.value, DispatchStatus.FAILED.value]
SHIPPED_STATUSES = {DispatchStatus.SHIPPED, DispatchStatus.IN_TRANSIT, DispatchStatus.OUT_FOR_DELIVERY}
ADVANCING_TRACKING_STATUSES = {DispatchStatus.IN_TRANSIT.value, DispatchStatus.OUT_FOR_DELIVERY.value}


class DispatchService:
    """
    Service for dispatch operations.

    ``allow_partial_fulfillment`` decides whether picking or packing may be
    completed with lines short of their target quantity.
    """

    def __init__(
        self,
        db: AsyncSession,
        reservations: Optional[StockReservationService] = None,
        notifier: Optional[NotificationService] = None,
        allow_partial_fulfillment: Optional[bool] = None,
    ):
        self.db = db
        self.reservations = reservations or StockReservationService(db)
        self.notifier = notifier or NotificationService()
        if allow_partial_fulfillment is None:
            allow_partial_fulfillment = settings.ALLOW_PARTIAL_FULFILLMENT
        self.allow_partial_fulfillment = allow_partial_fulfillment

    # ==================== Queries ====================

    async def get_dispatch(self, dispatch_id: uuid.UUID) -> Dispatch:
        result = await self.db.execute(
            select(Dispatch)
            .options(
                selectinload(Dispatch.items),
                selectinload(Dispatch.tracking_updates),
            )
            .where(Dispatch.id == dispatch_id)
            .execution_options(populate_existing=True)
        )
        dispatch = result.scalar_one_or_none()
        if not dispatch:
            raise NotFound(f"Dispatch {dispatch_id} not found")
        return dispatch

    async def _lock_dispatch(self, dispatch_id: uuid.UUID) -> Dispatch:
        result = await self.db.execute(
            select(Dispatch)
            .options(
                selectinload(Dispatch.items),
                selectinload(Dispatch.tracking_updates),
            )
            .where(Dispatch.id == dispatch_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        dispatch = result.scalar_one_or_none()
        if not dispatch:
            raise NotFound(f"Dispatch {dispatch_id} not found")
        return dispatch

    async def _lock_order(self, order_id: uuid.UUID) -> SalesOrder:
        result = await self.db.execute(
            select(SalesOrder)
            .options(selectinload(SalesOrder.items), selectinload(SalesOrder.customer))
            .where(SalesOrder.id == order_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        order = result.scalar_one_or_none()
        if not order:
            raise NotFound(f"Sales order {order_id} not found")
        return order

    async def _shipped_by_order_line(self, order_id: uuid.UUID) -> Dict[uuid.UUID, int]:
        result = await self.db.execute(
            select(DispatchItem.sales_order_item_id, func.coalesce(func.sum(DispatchItem.quantity_shipped), 0))
            .join(Dispatch, Dispatch.id == DispatchItem.dispatch_id)
            .where(Dispatch.sales_order_id == order_id)
            .group_by(DispatchItem.sales_order_item_id)
        )
        return {line_id: int(quantity) for line_id, quantity in result.all()}

    async def list_dispatches(
        self,
        status: Optional[str] = None,
        sales_order_id: Optional[uuid.UUID] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> Tuple[List[Dispatch], int]:
        query = select(Dispatch).options(selectinload(Dispatch.items))
        count_query = select(func.count(Dispatch.id))

        if status:
            query = query.where(Dispatch.status == status)
            count_query = count_query.where(Dispatch.status == status)
        if sales_order_id:
            query = query.where(Dispatch.sales_order_id == sales_order_id)
            count_query = count_query.where(Dispatch.sales_order_id == sales_order_id)

        total = (await self.db.execute(count_query)).scalar() or 0
        query = query.order_by(Dispatch.created_at.desc()).offset(skip).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all()), total

    async def get_tracking_history(self, dispatch_id: uuid.UUID) -> List[TrackingUpdate]:
        dispatch = await self.get_dispatch(dispatch_id)
        return list(dispatch.tracking_updates)

    # ==================== Create ====================

    async def create_dispatch(self, data: DispatchCreate, created_by: Optional[uuid.UUID] = None) -> Dispatch:
        """
        Open a dispatch for a confirmed order.

        Raises:
            InvalidStatus: order not CONFIRMED / PROCESSING, or it already has an open dispatch
            ValidationError: a selected product is not on the order
            ExcessQuantity: a selected quantity exceeds the order line
        """
        async with unit_of_work(self.db):
            order = await self._lock_order(data.sales_order_id)
            require_status("Sales order", order.status, DISPATCHABLE_ORDER_STATUSES, "create dispatch")

            open_count = (await self.db.execute(
                select(func.count(Dispatch.id)).where(
                    and_(
                        Dispatch.sales_order_id == order.id,
                        Dispatch.status.not_in(CLOSED_DISPATCH_STATUSES),
                    )
                )
            )).scalar() or 0
            if open_count:
                raise InvalidStatus(f"Sales order {order.order_number} already has an open dispatch")

            order_items = {item.product_id: item for item in order.items}
            if data.items:
                selected = []
                for line in data.items:
                    order_item = order_items.get(line.product_id)
                    if order_item is None:
                        raise ValidationError(f"Product {line.product_id} is not on order {order.order_number}")
                    quantity = line.quantity or order_item.quantity
                    if quantity > order_item.quantity:
                        raise ExcessQuantity(
                            f"Dispatch quantity {quantity} exceeds ordered {order_item.quantity} "
                            f"for product {line.product_id}"
                        )
                    selected.append((order_item, quantity))
            else:
                selected = [(item, item.quantity) for item in order.items]

            dispatch_number = await DocumentSequenceService(self.db).get_next_number(DocumentType.DISPATCH)
            dispatch = Dispatch(
                dispatch_number=dispatch_number,
                status=DispatchStatus.PENDING.value,
                sales_order_id=order.id,
                warehouse_id=order.warehouse_id,
                carrier=data.carrier,
                package_count=data.package_count,
                notes=data.notes,
                created_by=created_by,
            )
            for order_item, quantity in selected:
                dispatch.items.append(DispatchItem(
                    sales_order_item_id=order_item.id,
                    product_id=order_item.product_id,
                    quantity_ordered=quantity,
                    quantity_picked=0,
                    quantity_packed=0,
                    quantity_shipped=0,
                ))

            self.db.add(dispatch)
            await self.db.flush()

        logger.info(f"Created dispatch {dispatch_number} for order {order.order_number}")
        return await self.get_dispatch(dispatch.id)

    # ==================== Picking / packing ====================

    async def _change_status(
        self,
        dispatch_id: uuid.UUID,
        new_status: DispatchStatus,
        user_id: Optional[uuid.UUID] = None,
    ) -> Dispatch:
        async with unit_of_work(self.db):
            dispatch = await self._lock_dispatch(dispatch_id)
            transition(MACHINE, dispatch, new_status, user_id)
            await self.db.flush()
        return await self.get_dispatch(dispatch_id)

    @staticmethod
    def _items_by_product(dispatch: Dispatch) -> Dict[uuid.UUID, DispatchItem]:
        return {item.product_id: item for item in dispatch.items}

    def _check_shortfall(self, dispatch: Dispatch, stage: str, field: str, target: str) -> None:
        short = [
            item for item in dispatch.items
            if (getattr(item, field) or 0) < (getattr(item, target) or 0)
        ]
        if not short:
            return
        detail = ", ".join(
            f"{item.product_id}: {getattr(item, field) or 0}/{getattr(item, target) or 0}" for item in short
        )
        if not self.allow_partial_fulfillment:
            raise IncompleteFulfillment(f"Dispatch {dispatch.dispatch_number} {stage} incomplete ({detail})")
        logger.warning(f"Dispatch {dispatch.dispatch_number} {stage} completed short ({detail})")

    async def start_picking(self, dispatch_id: uuid.UUID, user_id: Optional[uuid.UUID] = None) -> Dispatch:
        return await self._change_status(dispatch_id, DispatchStatus.PICKING, user_id)

    async def record_picked(
        self,
        dispatch_id: uuid.UUID,
        items: List[DispatchQuantity],
        user_id: Optional[uuid.UUID] = None,
    ) -> Dispatch:
        """Add picked quantities; the running total may not pass the ordered quantity."""
        async with unit_of_work(self.db):
            dispatch = await self._lock_dispatch(dispatch_id)
            require_status(MACHINE, dispatch.status, {DispatchStatus.PICKING}, "record picked items")

            by_product = self._items_by_product(dispatch)
            for line in items:
                item = by_product.get(line.product_id)
                if item is None:
                    raise ValidationError(f"Product {line.product_id} is not on dispatch {dispatch.dispatch_number}")
                picked = (item.quantity_picked or 0) + line.quantity
                if picked > item.quantity_ordered:
                    raise ExcessQuantity(
                        f"Picked quantity {picked} exceeds ordered {item.quantity_ordered} "
                        f"for product {line.product_id}"
                    )
                item.quantity_picked = picked

            dispatch.picked_by = user_id
            await self.db.flush()
        return await self.get_dispatch(dispatch_id)

    async def complete_picking(self, dispatch_id: uuid.UUID, user_id: Optional[uuid.UUID] = None) -> Dispatch:
        async with unit_of_work(self.db):
            dispatch = await self._lock_dispatch(dispatch_id)
            require_status(MACHINE, dispatch.status, {DispatchStatus.PICKING}, "complete picking")
            self._check_shortfall(dispatch, "picking", "quantity_picked", "quantity_ordered")
            transition(MACHINE, dispatch, DispatchStatus.PICKED, user_id)
            await self.db.flush()
        return await self.get_dispatch(dispatch_id)

    async def start_packing(self, dispatch_id: uuid.UUID, user_id: Optional[uuid.UUID] = None) -> Dispatch:
        return await self._change_status(dispatch_id, DispatchStatus.PACKING, user_id)

    async def record_packed(
        self,
        dispatch_id: uuid.UUID,
        items: List[DispatchQuantity],
        user_id: Optional[uuid.UUID] = None,
    ) -> Dispatch:
        """Add packed quantities; the running total may not pass the picked quantity."""
        async with unit_of_work(self.db):
            dispatch = await self._lock_dispatch(dispatch_id)
            require_status(MACHINE, dispatch.status, {DispatchStatus.PACKING}, "record packed items")

            by_product = self._items_by_product(dispatch)
            for line in items:
                item = by_product.get(line.product_id)
                if item is None:
                    raise ValidationError(f"Product {line.product_id} is not on dispatch {dispatch.dispatch_number}")
                packed = (item.quantity_packed or 0) + line.quantity
                if packed > (item.quantity_picked or 0):
                    raise ExcessQuantity(
                        f"Packed quantity {packed} exceeds picked {item.quantity_picked or 0} "
                        f"for product {line.product_id}"
                    )
                item.quantity_packed = packed

            dispatch.packed_by = user_id
            await self.db.flush()
        return await self.get_dispatch(dispatch_id)

    async def complete_packing(self, dispatch_id: uuid.UUID, user_id: Optional[uuid.UUID] = None) -> Dispatch:
        async with unit_of_work(self.db):
            dispatch = await self._lock_dispatch(dispatch_id)
            require_status(MACHINE, dispatch.status, {DispatchStatus.PACKING}, "complete packing")
            self._check_shortfall(dispatch, "packing", "quantity_packed", "quantity_ordered")
            transition(MACHINE, dispatch, DispatchStatus.PACKED, user_id)
            await self.db.flush()
        return await self.get_dispatch(dispatch_id)

    async def mark_ready_to_ship(self, dispatch_id: uuid.UUID, user_id: Optional[uuid.UUID] = None) -> Dispatch:
        return await self._change_status(dispatch_id, DispatchStatus.READY_TO_SHIP, user_id)

    # ==================== Ship / track ====================

    def _add_tracking(
        self,
        dispatch: Dispatch,
        status: str,
        location: Optional[str] = None,
        description: Optional[str] = None,
        user_id: Optional[uuid.UUID] = None,
    ) -> TrackingUpdate:
        update = TrackingUpdate(
            dispatch_id=dispatch.id,
            sequence=len(dispatch.tracking_updates) + 1,
            status=status,
            location=location,
            description=description,
            created_by=user_id,
        )
        dispatch.tracking_updates.append(update)
        return update

    async def ship(
        self,
        dispatch_id: uuid.UUID,
        carrier: Optional[str] = None,
        tracking_number: Optional[str] = None,
        shipped_by: Optional[uuid.UUID] = None,
    ) -> Dispatch:
        """
        Ship packed goods.

        Each packed line is consumed from the order's reservation with one
        OUTWARD ledger row. Whatever the order reserved and did not ship,
        on this dispatch or on lines it left out, is released.

        Raises:
            InvalidStatus: dispatch not READY_TO_SHIP, or the order cannot ship
            IncompleteFulfillment: nothing packed
        """
        async with unit_of_work(self.db):
            dispatch = await self._lock_dispatch(dispatch_id)
            require_status(MACHINE, dispatch.status, {DispatchStatus.READY_TO_SHIP}, "ship")

            if not any((item.quantity_packed or 0) > 0 for item in dispatch.items):
                raise IncompleteFulfillment(f"Dispatch {dispatch.dispatch_number} has no packed items")

            order = await self._lock_order(dispatch.sales_order_id)
            reference = DispatchRef(dispatch.id)

            for item in dispatch.items:
                packed = item.quantity_packed or 0
                if packed > 0:
                    await self.reservations.consume(
                        dispatch.warehouse_id,
                        item.product_id,
                        packed,
                        reference,
                        actor=shipped_by,
                        movement_type=MovementType.OUTWARD,
                        notes=f"Dispatch {dispatch.dispatch_number} for {order.order_number}",
                    )
                item.quantity_shipped = packed
            await self.db.flush()

            # The order closes for dispatch here, so every line gives back what did not ship
            shipped = await self._shipped_by_order_line(order.id)
            for order_item in order.items:
                leftover = order_item.quantity - shipped.get(order_item.id, 0)
                if leftover > 0:
                    await self.reservations.release(order.warehouse_id, order_item.product_id, leftover)

            transition(MACHINE, dispatch, DispatchStatus.SHIPPED, shipped_by)
            dispatch.carrier = carrier or dispatch.carrier
            dispatch.tracking_number = tracking_number or dispatch.tracking_number
            dispatch.shipped_by = shipped_by
            self._add_tracking(dispatch, DispatchStatus.SHIPPED.value, description="Shipment handed to carrier", user_id=shipped_by)

            transition("Sales order", order, SalesOrderStatus.SHIPPED, shipped_by)
            await self.db.flush()

        logger.info(f"Shipped dispatch {dispatch.dispatch_number} for order {order.order_number}")

        await self.notifier.notify_customer(
            order.customer,
            NotificationType.ORDER_SHIPPED,
            order_number=order.order_number,
            carrier=dispatch.carrier or "-",
            tracking_number=dispatch.tracking_number or "-",
        )
        return await self.get_dispatch(dispatch_id)

    async def add_tracking_update(
        self,
        dispatch_id: uuid.UUID,
        status: str,
        location: Optional[str] = None,
        description: Optional[str] = None,
        user_id: Optional[uuid.UUID] = None,
    ) -> Dispatch:
        """Record a carrier event; IN_TRANSIT and OUT_FOR_DELIVERY also move the dispatch."""
        async with unit_of_work(self.db):
            dispatch = await self._lock_dispatch(dispatch_id)
            require_status(MACHINE, dispatch.status, SHIPPED_STATUSES, "add tracking update")

            status = status.upper()
            if status in ADVANCING_TRACKING_STATUSES and status != dispatch.status:
                transition(MACHINE, dispatch, status, user_id)

            self._add_tracking(dispatch, status, location, description, user_id)
            await self.db.flush()
        return await self.get_dispatch(dispatch_id)

    async def mark_delivered(self, dispatch_id: uuid.UUID, user_id: Optional[uuid.UUID] = None) -> Dispatch:
        async with unit_of_work(self.db):
            dispatch = await self._lock_dispatch(dispatch_id)
            transition(MACHINE, dispatch, DispatchStatus.DELIVERED, user_id)
            self._add_tracking(dispatch, DispatchStatus.DELIVERED.value, description="Delivered", user_id=user_id)

            order = await self._lock_order(dispatch.sales_order_id)
            transition("Sales order", order, SalesOrderStatus.DELIVERED, user_id)
            await self.db.flush()

        await self.notifier.notify_customer(
            order.customer,
            NotificationType.ORDER_DELIVERED,
            order_number=order.order_number,
        )
        return await self.get_dispatch(dispatch_id)

    async def mark_failed(
        self,
        dispatch_id: uuid.UUID,
        reason: str,
        user_id: Optional[uuid.UUID] = None,
    ) -> Dispatch:
        async with unit_of_work(self.db):
            dispatch = await self._lock_dispatch(dispatch_id)
            transition(MACHINE, dispatch, DispatchStatus.FAILED, user_id)
            dispatch.failure_reason = reason
            self._add_tracking(dispatch, DispatchStatus.FAILED.value, description=reason, user_id=user_id)
            await self.db.flush()
        logger.warning(f"Dispatch {dispatch.dispatch_number} failed: {reason}")
        return await self.get_dispatch(dispatch_id)
