"""
Warehouse Transfer Service.

Flow:
1. create_transfer()   -> PENDING, free stock pre-checked at the source
2. approve_transfer()  -> APPROVED, stock reserved at the source
3. ship_transfer()     -> IN_TRANSIT, unshipped reservation released
4. receive_transfer()  -> COMPLETED, TRANSFER_OUT at source and TRANSFER_IN
                          at destination; transit loss stays out of both
"""
import logging
import uuid
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from erp_core.core.exceptions import (
    NotFound,
    ValidationError,
    SameWarehouse,
    InsufficientInventory,
    ExcessQuantity,
)
from erp_core.core.references import TransferRef
from erp_core.database import unit_of_work
from erp_core.models.document_sequence import DocumentType
from erp_core.models.inventory import MovementType
from erp_core.models.product import Product
from erp_core.models.stock_transfer import WarehouseTransfer, WarehouseTransferItem, TransferStatus
from erp_core.models.warehouse import Warehouse
from erp_core.schemas.transfer import TransferCreate, TransferLineQuantity
from erp_core.services.document_sequence_service import DocumentSequenceService
from erp_core.services.inventory_ledger import InventoryLedger
from erp_core.services.state_machines import transition, validate_transition
from erp_core.services.stock_reservation_service import StockReservationService, ReservationItem


logger = logging.getLogger(__name__)

MACHINE = "Transfer"


class TransferService:
    """Service for warehouse transfer operations."""

    def __init__(
        self,
        db: AsyncSession,
        ledger: Optional[InventoryLedger] = None,
        reservations: Optional[StockReservationService] = None,
    ):
        self.db = db
        self.ledger = ledger or InventoryLedger(db)
        self.reservations = reservations or StockReservationService(db, self.ledger)

    async def get_transfers(
        self,
        from_warehouse_id: Optional[uuid.UUID] = None,
        to_warehouse_id: Optional[uuid.UUID] = None,
        status: Optional[str] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> Tuple[List[WarehouseTransfer], int]:
        """Get paginated list of transfers."""
        query = select(WarehouseTransfer).options(selectinload(WarehouseTransfer.items))

        conditions = []
        if from_warehouse_id:
            conditions.append(WarehouseTransfer.from_warehouse_id == from_warehouse_id)
        if to_warehouse_id:
            conditions.append(WarehouseTransfer.to_warehouse_id == to_warehouse_id)
        if status:
            conditions.append(WarehouseTransfer.status == status)

        if conditions:
            query = query.where(and_(*conditions))

        # Count
        count_query = select(func.count()).select_from(query.subquery())
        total = await self.db.scalar(count_query)

        # Paginate
        query = query.order_by(WarehouseTransfer.created_at.desc()).offset(skip).limit(limit)
        result = await self.db.execute(query)

        return list(result.scalars().unique().all()), total or 0

    async def get_transfer_by_id(self, transfer_id: uuid.UUID, for_update: bool = False) -> WarehouseTransfer:
        """Get transfer with items; ``for_update`` takes the header row lock."""
        query = (
            select(WarehouseTransfer)
            .options(selectinload(WarehouseTransfer.items))
            .where(WarehouseTransfer.id == transfer_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            query = query.with_for_update()

        result = await self.db.execute(query)
        transfer = result.scalar_one_or_none()
        if not transfer:
            raise NotFound(f"Transfer {transfer_id} not found")
        return transfer

    # ==================== Create ====================

    async def create_transfer(
        self,
        data: TransferCreate,
        requested_by: Optional[uuid.UUID] = None,
    ) -> WarehouseTransfer:
        """
        Create a transfer request.

        Free stock is only checked here; nothing is held until approval.
        """
        if data.from_warehouse_id == data.to_warehouse_id:
            raise SameWarehouse("Source and destination warehouses cannot be the same")

        async with unit_of_work(self.db):
            if not await self.db.get(Warehouse, data.from_warehouse_id):
                raise NotFound(f"Source warehouse {data.from_warehouse_id} not found")
            if not await self.db.get(Warehouse, data.to_warehouse_id):
                raise NotFound(f"Destination warehouse {data.to_warehouse_id} not found")

            transfer_number = await DocumentSequenceService(self.db).get_next_number(DocumentType.WAREHOUSE_TRANSFER)
            transfer = WarehouseTransfer(
                transfer_number=transfer_number,
                status=TransferStatus.PENDING.value,
                from_warehouse_id=data.from_warehouse_id,
                to_warehouse_id=data.to_warehouse_id,
                expected_date=data.expected_date,
                requested_by=requested_by,
                notes=data.notes,
            )

            total_quantity = 0
            for item in data.items:
                if not await self.db.get(Product, item.product_id):
                    raise NotFound(f"Product {item.product_id} not found")

                record = await self.ledger.get_record(data.from_warehouse_id, item.product_id)
                free = record.free_quantity if record else 0
                if free < item.quantity:
                    raise InsufficientInventory(
                        f"Insufficient inventory for product {item.product_id} at source. "
                        f"Available: {free}, Requested: {item.quantity}"
                    )

                transfer.items.append(WarehouseTransferItem(
                    product_id=item.product_id,
                    quantity=item.quantity,
                    quantity_shipped=0,
                    quantity_received=0,
                    notes=item.notes,
                ))
                total_quantity += item.quantity

            transfer.total_items = len(data.items)
            transfer.total_quantity = total_quantity

            self.db.add(transfer)
            await self.db.flush()

        logger.info(f"Created transfer {transfer_number}: {total_quantity} units")
        return await self.get_transfer_by_id(transfer.id)

    # ==================== Approval ====================

    async def approve_transfer(self, transfer_id: uuid.UUID, approved_by: Optional[uuid.UUID] = None) -> WarehouseTransfer:
        """Approve and reserve every line at the source warehouse."""
        async with unit_of_work(self.db):
            transfer = await self.get_transfer_by_id(transfer_id, for_update=True)
            transition(MACHINE, transfer, TransferStatus.APPROVED, approved_by)

            await self.reservations.reserve_all(
                transfer.from_warehouse_id,
                [ReservationItem(product_id=item.product_id, quantity=item.quantity) for item in transfer.items],
            )
            transfer.approved_by = approved_by
            await self.db.flush()
        return await self.get_transfer_by_id(transfer_id)

    async def reject_transfer(
        self,
        transfer_id: uuid.UUID,
        reason: Optional[str] = None,
        user_id: Optional[uuid.UUID] = None,
    ) -> WarehouseTransfer:
        async with unit_of_work(self.db):
            transfer = await self.get_transfer_by_id(transfer_id, for_update=True)
            transition(MACHINE, transfer, TransferStatus.REJECTED, user_id)
            transfer.rejection_reason = reason
            await self.db.flush()
        return await self.get_transfer_by_id(transfer_id)

    # ==================== Movement ====================

    @staticmethod
    def _quantities(
        transfer: WarehouseTransfer,
        lines: Optional[List[TransferLineQuantity]],
    ) -> Dict[uuid.UUID, int]:
        if not lines:
            return {}
        products = {item.product_id for item in transfer.items}
        quantities = {}
        for line in lines:
            if line.product_id not in products:
                raise ValidationError(f"Product {line.product_id} is not on transfer {transfer.transfer_number}")
            quantities[line.product_id] = line.quantity
        return quantities

    async def ship_transfer(
        self,
        transfer_id: uuid.UUID,
        items: Optional[List[TransferLineQuantity]] = None,
        shipped_by: Optional[uuid.UUID] = None,
        vehicle_number: Optional[str] = None,
        carrier: Optional[str] = None,
    ) -> WarehouseTransfer:
        """
        Ship an approved transfer.

        Shipped quantity defaults to the requested quantity. Any requested
        but unshipped quantity is released at the source.
        """
        async with unit_of_work(self.db):
            transfer = await self.get_transfer_by_id(transfer_id, for_update=True)
            transition(MACHINE, transfer, TransferStatus.IN_TRANSIT, shipped_by)

            shipped = self._quantities(transfer, items)
            for item in transfer.items:
                quantity = shipped.get(item.product_id, item.quantity)
                if quantity > item.quantity:
                    raise ExcessQuantity(
                        f"Shipped quantity {quantity} exceeds requested {item.quantity} "
                        f"for product {item.product_id}"
                    )
                item.quantity_shipped = quantity
                if item.quantity > quantity:
                    await self.reservations.release(
                        transfer.from_warehouse_id, item.product_id, item.quantity - quantity
                    )

            transfer.shipped_by = shipped_by
            transfer.vehicle_number = vehicle_number
            transfer.carrier = carrier
            await self.db.flush()

        logger.info(f"Transfer {transfer.transfer_number} shipped")
        return await self.get_transfer_by_id(transfer_id)

    async def receive_transfer(
        self,
        transfer_id: uuid.UUID,
        items: Optional[List[TransferLineQuantity]] = None,
        received_by: Optional[uuid.UUID] = None,
    ) -> WarehouseTransfer:
        """
        Receive an in-transit transfer.

        The shipped quantity leaves the source (TRANSFER_OUT) and the received
        quantity lands at the destination (TRANSFER_IN). The difference is
        transit loss and appears in neither warehouse.
        """
        async with unit_of_work(self.db):
            transfer = await self.get_transfer_by_id(transfer_id, for_update=True)
            transition(MACHINE, transfer, TransferStatus.COMPLETED, received_by)

            received = self._quantities(transfer, items)
            reference = TransferRef(transfer.id)

            for item in transfer.items:
                shipped = item.quantity_shipped or 0
                quantity = received.get(item.product_id, shipped)
                if quantity > shipped:
                    raise ExcessQuantity(
                        f"Received quantity {quantity} exceeds shipped {shipped} "
                        f"for product {item.product_id}"
                    )

                if shipped > 0:
                    await self.reservations.consume(
                        transfer.from_warehouse_id,
                        item.product_id,
                        shipped,
                        reference,
                        actor=received_by,
                        movement_type=MovementType.TRANSFER_OUT,
                        notes=f"Transfer {transfer.transfer_number}",
                    )
                if quantity > 0:
                    await self.ledger.apply_movement(
                        warehouse_id=transfer.to_warehouse_id,
                        product_id=item.product_id,
                        delta=quantity,
                        movement_type=MovementType.TRANSFER_IN,
                        reference=reference,
                        actor=received_by,
                        notes=f"Transfer {transfer.transfer_number}",
                    )
                if quantity < shipped:
                    logger.warning(
                        f"Transfer {transfer.transfer_number}: {shipped - quantity} of product "
                        f"{item.product_id} lost in transit"
                    )
                item.quantity_received = quantity

            transfer.received_by = received_by
            await self.db.flush()

        logger.info(f"Transfer {transfer.transfer_number} completed")
        return await self.get_transfer_by_id(transfer_id)

    async def cancel_transfer(
        self,
        transfer_id: uuid.UUID,
        reason: Optional[str] = None,
        user_id: Optional[uuid.UUID] = None,
    ) -> WarehouseTransfer:
        """Cancel a pending or approved transfer; approved reservations are released."""
        async with unit_of_work(self.db):
            transfer = await self.get_transfer_by_id(transfer_id, for_update=True)
            validate_transition(MACHINE, transfer.status, TransferStatus.CANCELLED)

            if transfer.status == TransferStatus.APPROVED.value:
                for item in transfer.items:
                    await self.reservations.release(transfer.from_warehouse_id, item.product_id, item.quantity)

            transition(MACHINE, transfer, TransferStatus.CANCELLED, user_id)
            transfer.cancellation_reason = reason
            await self.db.flush()
        return await self.get_transfer_by_id(transfer_id)
