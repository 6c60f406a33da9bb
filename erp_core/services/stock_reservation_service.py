"""
Stock Reservation Service.

Holds stock for sales orders and warehouse transfers by moving it into the
``reserved`` counter of the inventory record. Reservations do not change
``available`` and write no ledger rows; ``consume`` turns a reservation into
an outward ledger movement at ship time.

All three primitives take the same row lock as the ledger.
"""
import logging
import uuid
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from erp_core.core.exceptions import InsufficientInventory, ValidationError
from erp_core.core.references import Reference
from erp_core.models.inventory import InventoryTransaction, MovementType
from erp_core.services.inventory_ledger import InventoryLedger


logger = logging.getLogger(__name__)


@dataclass
class ReservationItem:
    """Single line to reserve or release."""
    product_id: uuid.UUID
    quantity: int


class StockReservationService:
    """
    reserve / release / consume on top of the inventory ledger.

    Flow:
    1. reserve() - order placed or transfer approved
    2. release() - order cancelled, transfer cancelled, or short shipment
    3. consume() - goods physically leave the warehouse
    """

    def __init__(self, db: AsyncSession, ledger: Optional[InventoryLedger] = None):
        self.db = db
        self.ledger = ledger or InventoryLedger(db)

    @staticmethod
    def _check_quantity(quantity: int) -> None:
        if quantity <= 0:
            raise ValidationError("Quantity must be greater than zero")

    async def reserve(
        self,
        warehouse_id: uuid.UUID,
        product_id: uuid.UUID,
        quantity: int,
    ) -> int:
        """
        Reserve stock. Returns the new reserved count.

        Raises:
            InsufficientInventory: available - reserved < quantity, or no record
        """
        self._check_quantity(quantity)
        record = await self.ledger.lock_record(warehouse_id, product_id)

        if record is None or record.free_quantity < quantity:
            free = record.free_quantity if record else 0
            raise InsufficientInventory(
                f"Insufficient inventory for product {product_id}. "
                f"Available: {free}, Requested: {quantity}"
            )

        record.reserved += quantity
        await self.db.flush()

        logger.info(
            f"Reserved {quantity} of product={product_id} warehouse={warehouse_id} "
            f"(reserved now {record.reserved})"
        )
        return record.reserved

    async def reserve_all(self, warehouse_id: uuid.UUID, items: List[ReservationItem]) -> None:
        """
        Reserve every line or raise on the first shortfall. Lines already
        reserved are undone by the caller's transaction rollback.
        """
        # Fixed lock order keeps concurrent multi-line reservations from deadlocking
        for item in sorted(items, key=lambda i: str(i.product_id)):
            await self.reserve(warehouse_id, item.product_id, item.quantity)

    async def release(
        self,
        warehouse_id: uuid.UUID,
        product_id: uuid.UUID,
        quantity: int,
    ) -> int:
        """
        Release a reservation. Returns the new reserved count.

        Floors at zero so a double release can never drive reserved negative.
        """
        self._check_quantity(quantity)
        record = await self.ledger.lock_record(warehouse_id, product_id)

        if record is None:
            logger.warning(
                f"Release of {quantity} for product={product_id} warehouse={warehouse_id} "
                f"ignored: no inventory record"
            )
            return 0

        if quantity > record.reserved:
            logger.warning(
                f"Release of {quantity} for product={product_id} warehouse={warehouse_id} "
                f"exceeds reserved {record.reserved}; clamping to zero"
            )
        record.reserved = max(record.reserved - quantity, 0)
        await self.db.flush()

        logger.info(
            f"Released {quantity} of product={product_id} warehouse={warehouse_id} "
            f"(reserved now {record.reserved})"
        )
        return record.reserved

    async def consume(
        self,
        warehouse_id: uuid.UUID,
        product_id: uuid.UUID,
        quantity: int,
        reference: Reference,
        actor: Optional[uuid.UUID] = None,
        movement_type: MovementType = MovementType.OUTWARD,
        notes: Optional[str] = None,
    ) -> InventoryTransaction:
        """
        Ship reserved stock: decrement available and reserved, write the
        outward ledger row.
        """
        self._check_quantity(quantity)
        record = await self.ledger.lock_record(warehouse_id, product_id)
        reserved_delta = -min(quantity, record.reserved) if record else 0

        return await self.ledger.apply_movement(
            warehouse_id=warehouse_id,
            product_id=product_id,
            delta=-quantity,
            movement_type=movement_type,
            reference=reference,
            actor=actor,
            reserved_delta=reserved_delta,
            notes=notes,
        )
