"""
Inventory Ledger.

Every stock mutation goes through ``InventoryLedger.apply_movement``: it
locks the (product, warehouse) record, checks the post-conditions, updates
the counters and appends exactly one ``InventoryTransaction``. It runs inside
the caller's transaction and never commits.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import select, and_
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from erp_core.core.exceptions import NotFound, InsufficientStock, ValidationError
from erp_core.core.references import Reference
from erp_core.models.inventory import InventoryRecord, InventoryTransaction, MovementType


logger = logging.getLogger(__name__)


class InventoryLedger:
    """Locked stock counters plus the append-only movement log."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ==================== Locking ====================

    async def lock_record(
        self,
        warehouse_id: uuid.UUID,
        product_id: uuid.UUID,
        create: bool = False,
    ) -> Optional[InventoryRecord]:
        """
        Acquire the exclusive lease on (product, warehouse) for the rest of
        the current transaction (SELECT ... FOR UPDATE).

        With ``create=True`` a zeroed record is upserted first, so the first
        inward movement for a pair never races on the unique key.
        """
        if create:
            await self._insert_if_missing(warehouse_id, product_id)

        query = (
            select(InventoryRecord)
            .where(
                and_(
                    InventoryRecord.warehouse_id == warehouse_id,
                    InventoryRecord.product_id == product_id,
                )
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def _insert_if_missing(self, warehouse_id: uuid.UUID, product_id: uuid.UUID) -> None:
        now = datetime.now(timezone.utc)
        values = dict(
            id=uuid.uuid4(),
            warehouse_id=warehouse_id,
            product_id=product_id,
            available=0,
            reserved=0,
            damaged=0,
            reorder_point=0,
            movement_count=0,
            created_at=now,
            updated_at=now,
        )

        dialect = self.db.get_bind().dialect.name
        if dialect == "postgresql":
            stmt = pg_insert(InventoryRecord).values(**values)
        elif dialect == "sqlite":
            stmt = sqlite_insert(InventoryRecord).values(**values)
        else:
            existing = await self.get_record(warehouse_id, product_id)
            if existing is None:
                self.db.add(InventoryRecord(**values))
                await self.db.flush()
            return

        stmt = stmt.on_conflict_do_nothing(index_elements=["warehouse_id", "product_id"])
        await self.db.execute(stmt)

    # ==================== Movements ====================

    @staticmethod
    def _validate_direction(movement_type: MovementType, delta: int) -> None:
        if delta == 0:
            raise ValidationError("Movement quantity cannot be zero")
        direction = movement_type.direction
        if direction > 0 and delta < 0:
            raise ValidationError(f"{movement_type.value} movement must increase stock")
        if direction < 0 and delta > 0:
            raise ValidationError(f"{movement_type.value} movement must decrease stock")

    async def apply_movement(
        self,
        warehouse_id: uuid.UUID,
        product_id: uuid.UUID,
        delta: int,
        movement_type: MovementType,
        reference: Reference,
        actor: Optional[uuid.UUID] = None,
        reserved_delta: int = 0,
        notes: Optional[str] = None,
    ) -> InventoryTransaction:
        """
        Apply a signed change to ``available`` and record it.

        Args:
            delta: Signed change to available (+ inward, - outward)
            movement_type: Ledger transaction type; must agree with the sign of delta
            reference: Document that caused the movement
            actor: User performing the operation
            reserved_delta: Simultaneous change to reserved (negative when consuming a reservation)

        Raises:
            ValidationError: delta sign disagrees with movement_type
            NotFound: no record exists and the movement removes stock
            InsufficientStock: the movement would drive stock negative or into reserved units
        """
        movement_type = MovementType(movement_type)
        self._validate_direction(movement_type, delta)

        record = await self.lock_record(warehouse_id, product_id, create=delta > 0)
        if record is None:
            raise NotFound(
                f"No inventory for product {product_id} in warehouse {warehouse_id}",
                code="NO_INVENTORY",
            )

        new_available = record.available + delta
        new_reserved = record.reserved + reserved_delta
        if new_available < 0 or new_reserved < 0:
            raise InsufficientStock(
                f"Insufficient stock for product {product_id}. "
                f"Available: {record.available}, Requested: {-delta}"
            )
        if delta < 0 and new_available < new_reserved:
            raise InsufficientStock(
                f"Insufficient unreserved stock for product {product_id}. "
                f"Available: {record.available}, Reserved: {record.reserved}, Requested: {-delta}"
            )

        quantity_before = record.available
        record.available = new_available
        record.reserved = new_reserved
        if movement_type == MovementType.DAMAGE:
            record.damaged += -delta
        record.movement_count += 1
        record.last_movement_at = datetime.now(timezone.utc)

        txn = InventoryTransaction(
            sequence=record.movement_count,
            transaction_type=movement_type.value,
            warehouse_id=warehouse_id,
            product_id=product_id,
            quantity=delta,
            quantity_before=quantity_before,
            quantity_after=new_available,
            reference_type=reference.reference_type.value,
            reference_id=reference.id,
            notes=notes,
            created_by=actor,
        )
        self.db.add(txn)
        await self.db.flush()

        logger.info(
            f"{movement_type.value} {delta:+d} product={product_id} warehouse={warehouse_id} "
            f"({quantity_before} -> {new_available}) ref={reference.reference_type.value}:{reference.id}"
        )
        return txn

    # ==================== Queries ====================

    async def get_record(
        self,
        warehouse_id: uuid.UUID,
        product_id: uuid.UUID,
    ) -> Optional[InventoryRecord]:
        """Current counters without taking a lock."""
        result = await self.db.execute(
            select(InventoryRecord)
            .where(
                and_(
                    InventoryRecord.warehouse_id == warehouse_id,
                    InventoryRecord.product_id == product_id,
                )
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_transactions(
        self,
        warehouse_id: uuid.UUID,
        product_id: uuid.UUID,
    ) -> List[InventoryTransaction]:
        """Ledger history for one location, oldest first."""
        result = await self.db.execute(
            select(InventoryTransaction)
            .where(
                and_(
                    InventoryTransaction.warehouse_id == warehouse_id,
                    InventoryTransaction.product_id == product_id,
                )
            )
            .order_by(InventoryTransaction.sequence)
        )
        return list(result.scalars().all())

    async def get_transactions_for_reference(self, reference: Reference) -> List[InventoryTransaction]:
        result = await self.db.execute(
            select(InventoryTransaction)
            .where(
                and_(
                    InventoryTransaction.reference_type == reference.reference_type.value,
                    InventoryTransaction.reference_id == reference.id,
                )
            )
            .order_by(InventoryTransaction.created_at, InventoryTransaction.sequence)
        )
        return list(result.scalars().all())

    async def get_low_stock(self, warehouse_id: Optional[uuid.UUID] = None) -> List[InventoryRecord]:
        """Records at or below their reorder point."""
        query = select(InventoryRecord).where(
            InventoryRecord.available <= InventoryRecord.reorder_point
        )
        if warehouse_id:
            query = query.where(InventoryRecord.warehouse_id == warehouse_id)
        result = await self.db.execute(query.order_by(InventoryRecord.available))
        return list(result.scalars().all())

    async def set_reorder_point(
        self,
        warehouse_id: uuid.UUID,
        product_id: uuid.UUID,
        reorder_point: int,
    ) -> InventoryRecord:
        if reorder_point < 0:
            raise ValidationError("Reorder point cannot be negative")
        record = await self.lock_record(warehouse_id, product_id)
        if record is None:
            raise NotFound(
                f"No inventory for product {product_id} in warehouse {warehouse_id}",
                code="NO_INVENTORY",
            )
        record.reorder_point = reorder_point
        await self.db.flush()
        return record
