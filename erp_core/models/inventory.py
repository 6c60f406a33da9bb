"""Inventory models: per-location stock records and the movement ledger."""
from enum import Enum
from datetime import datetime, timezone
from sqlalchemy import Column, String, Text, ForeignKey, Integer, DateTime
from sqlalchemy import UniqueConstraint, CheckConstraint, Index
from sqlalchemy.orm import relationship
import uuid

from erp_core.database import Base
from erp_core.db_types import UUIDType


class MovementType(str, Enum):
    """Inventory transaction types."""
    INWARD = "INWARD"  # Goods receipt
    OUTWARD = "OUTWARD"  # Shipment to customer
    ADJUSTMENT = "ADJUSTMENT"  # Physical count correction, either sign
    TRANSFER_IN = "TRANSFER_IN"  # Received from another warehouse
    TRANSFER_OUT = "TRANSFER_OUT"  # Sent to another warehouse
    RETURN = "RETURN"  # Customer return restocked
    DAMAGE = "DAMAGE"  # Written off as damaged

    @property
    def direction(self) -> int:
        """+1 for movements that add stock, -1 for removals, 0 for either."""
        if self in (MovementType.INWARD, MovementType.TRANSFER_IN, MovementType.RETURN):
            return 1
        if self in (MovementType.OUTWARD, MovementType.TRANSFER_OUT, MovementType.DAMAGE):
            return -1
        return 0


class InventoryRecord(Base):
    """Stock counters for one product at one warehouse."""

    __tablename__ = "inventory_records"
    __table_args__ = (
        UniqueConstraint("warehouse_id", "product_id", name="uq_inventory_warehouse_product"),
        CheckConstraint("available >= 0", name="ck_inventory_available_non_negative"),
        CheckConstraint("reserved >= 0", name="ck_inventory_reserved_non_negative"),
        CheckConstraint("damaged >= 0", name="ck_inventory_damaged_non_negative"),
    )

    id = Column(UUIDType, primary_key=True, default=uuid.uuid4)

    warehouse_id = Column(UUIDType, ForeignKey("warehouses.id"), nullable=False, index=True)
    product_id = Column(UUIDType, ForeignKey("products.id"), nullable=False, index=True)

    # Quantities
    available = Column(Integer, nullable=False, default=0)  # Physically on hand and sellable
    reserved = Column(Integer, nullable=False, default=0)  # Held for orders/transfers, part of available
    damaged = Column(Integer, nullable=False, default=0)

    # Reorder settings
    reorder_point = Column(Integer, nullable=False, default=0)

    movement_count = Column(Integer, nullable=False, default=0)  # Ledger rows written so far

    last_movement_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    warehouse = relationship("Warehouse")
    product = relationship("Product")

    @property
    def free_quantity(self) -> int:
        """Stock that is neither reserved nor damaged."""
        return self.available - self.reserved

    @property
    def is_low_stock(self) -> bool:
        return self.available <= self.reorder_point

    def __repr__(self) -> str:
        return (
            f"<InventoryRecord(warehouse={self.warehouse_id}, product={self.product_id}, "
            f"available={self.available}, reserved={self.reserved})>"
        )


class InventoryTransaction(Base):
    """Append-only ledger row. One per stock mutation."""

    __tablename__ = "inventory_transactions"
    __table_args__ = (
        Index("ix_inventory_txn_location", "warehouse_id", "product_id", "created_at"),
        Index("ix_inventory_txn_reference", "reference_type", "reference_id"),
    )

    id = Column(UUIDType, primary_key=True, default=uuid.uuid4)
    sequence = Column(Integer, nullable=False, default=0)  # Position within the record's history

    transaction_type = Column(String(20), nullable=False, index=True)

    warehouse_id = Column(UUIDType, ForeignKey("warehouses.id"), nullable=False)
    product_id = Column(UUIDType, ForeignKey("products.id"), nullable=False)

    quantity = Column(Integer, nullable=False)  # Positive for in, negative for out
    quantity_before = Column(Integer, nullable=False)  # available before
    quantity_after = Column(Integer, nullable=False)  # available after

    # Polymorphic document link, see erp_core.core.references
    reference_type = Column(String(30), nullable=False)
    reference_id = Column(UUIDType, nullable=False)

    notes = Column(Text)
    created_by = Column(UUIDType)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def __repr__(self) -> str:
        return f"<InventoryTransaction({self.transaction_type} {self.quantity:+d})>"
