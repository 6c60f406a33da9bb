"""Stock Transfer model for warehouse-to-warehouse movements."""
from enum import Enum
from datetime import datetime, timezone
from sqlalchemy import Column, String, Text, ForeignKey, Integer, DateTime
from sqlalchemy.orm import relationship
import uuid

from erp_core.database import Base
from erp_core.db_types import UUIDType


class TransferStatus(str, Enum):
    """Transfer status enum."""
    PENDING = "PENDING"  # Awaiting approval
    APPROVED = "APPROVED"  # Stock reserved at source
    IN_TRANSIT = "IN_TRANSIT"  # Goods shipped
    COMPLETED = "COMPLETED"  # Received at destination
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


class WarehouseTransfer(Base):
    """Stock transfer between warehouses."""

    __tablename__ = "warehouse_transfers"

    id = Column(UUIDType, primary_key=True, default=uuid.uuid4)

    # Transfer identification
    transfer_number = Column(String(50), unique=True, nullable=False, index=True)
    status = Column(String(50), default=TransferStatus.PENDING.value, nullable=False, index=True)

    # Warehouses
    from_warehouse_id = Column(UUIDType, ForeignKey("warehouses.id"), nullable=False, index=True)
    to_warehouse_id = Column(UUIDType, ForeignKey("warehouses.id"), nullable=False, index=True)

    # Dates
    request_date = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    expected_date = Column(DateTime(timezone=True))
    shipped_at = Column(DateTime(timezone=True))
    received_at = Column(DateTime(timezone=True))

    # Users involved
    requested_by = Column(UUIDType)
    approved_by = Column(UUIDType)
    shipped_by = Column(UUIDType)
    received_by = Column(UUIDType)

    approved_at = Column(DateTime(timezone=True))
    rejection_reason = Column(Text)
    cancellation_reason = Column(Text)

    # Summary
    total_items = Column(Integer, default=0)
    total_quantity = Column(Integer, default=0)

    # Transport
    vehicle_number = Column(String(50))
    carrier = Column(String(100))

    notes = Column(Text)

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    # Relationships
    from_warehouse = relationship("Warehouse", foreign_keys=[from_warehouse_id])
    to_warehouse = relationship("Warehouse", foreign_keys=[to_warehouse_id])
    items = relationship("WarehouseTransferItem", back_populates="transfer", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"<WarehouseTransfer(number='{self.transfer_number}', status='{self.status}')>"


class WarehouseTransferItem(Base):
    """Transfer line items."""

    __tablename__ = "warehouse_transfer_items"

    id = Column(UUIDType, primary_key=True, default=uuid.uuid4)

    transfer_id = Column(UUIDType, ForeignKey("warehouse_transfers.id"), nullable=False, index=True)
    product_id = Column(UUIDType, ForeignKey("products.id"), nullable=False)

    # Quantities
    quantity = Column(Integer, nullable=False)  # Requested, reserved at approval
    quantity_shipped = Column(Integer, default=0)
    quantity_received = Column(Integer, default=0)  # May be below shipped (transit damage)

    notes = Column(Text)

    transfer = relationship("WarehouseTransfer", back_populates="items")
    product = relationship("Product")

    @property
    def quantity_lost(self) -> int:
        return max((self.quantity_shipped or 0) - (self.quantity_received or 0), 0)
