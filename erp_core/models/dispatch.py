"""Dispatch models: pick/pack/ship documents and carrier tracking."""
from enum import Enum
from datetime import datetime, timezone
from sqlalchemy import Column, String, Text, ForeignKey, Integer, DateTime
from sqlalchemy.orm import relationship
import uuid

from erp_core.database import Base
from erp_core.db_types import UUIDType


class DispatchStatus(str, Enum):
    """Dispatch status enum."""
    PENDING = "PENDING"
    PICKING = "PICKING"
    PICKED = "PICKED"
    PACKING = "PACKING"
    PACKED = "PACKED"
    READY_TO_SHIP = "READY_TO_SHIP"
    SHIPPED = "SHIPPED"  # Stock consumed
    IN_TRANSIT = "IN_TRANSIT"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    DELIVERED = "DELIVERED"
    FAILED = "FAILED"


class Dispatch(Base):
    """Fulfillment document for a confirmed sales order."""

    __tablename__ = "dispatches"

    id = Column(UUIDType, primary_key=True, default=uuid.uuid4)
    dispatch_number = Column(String(50), unique=True, nullable=False, index=True)
    status = Column(String(50), default=DispatchStatus.PENDING.value, nullable=False, index=True)

    sales_order_id = Column(UUIDType, ForeignKey("sales_orders.id"), nullable=False, index=True)
    warehouse_id = Column(UUIDType, ForeignKey("warehouses.id"), nullable=False)

    # Carrier
    carrier = Column(String(100))
    tracking_number = Column(String(100))

    # Users involved
    created_by = Column(UUIDType)
    picked_by = Column(UUIDType)
    packed_by = Column(UUIDType)
    shipped_by = Column(UUIDType)

    # Milestones
    picking_started_at = Column(DateTime(timezone=True))
    picking_completed_at = Column(DateTime(timezone=True))
    packing_started_at = Column(DateTime(timezone=True))
    packing_completed_at = Column(DateTime(timezone=True))
    shipped_at = Column(DateTime(timezone=True))
    delivered_at = Column(DateTime(timezone=True))

    package_count = Column(Integer, default=1)
    failure_reason = Column(Text)
    notes = Column(Text)

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    sales_order = relationship("SalesOrder")
    items = relationship("DispatchItem", back_populates="dispatch", cascade="all, delete-orphan")
    tracking_updates = relationship(
        "TrackingUpdate",
        back_populates="dispatch",
        cascade="all, delete-orphan",
        order_by="TrackingUpdate.sequence",
    )

    def __repr__(self) -> str:
        return f"<Dispatch(number='{self.dispatch_number}', status='{self.status}')>"


class DispatchItem(Base):
    """Dispatch line. ordered >= picked >= packed >= shipped."""

    __tablename__ = "dispatch_items"

    id = Column(UUIDType, primary_key=True, default=uuid.uuid4)
    dispatch_id = Column(UUIDType, ForeignKey("dispatches.id"), nullable=False, index=True)
    sales_order_item_id = Column(UUIDType, ForeignKey("sales_order_items.id"), nullable=False)
    product_id = Column(UUIDType, ForeignKey("products.id"), nullable=False)

    quantity_ordered = Column(Integer, nullable=False)
    quantity_picked = Column(Integer, default=0)
    quantity_packed = Column(Integer, default=0)
    quantity_shipped = Column(Integer, default=0)

    dispatch = relationship("Dispatch", back_populates="items")


class TrackingUpdate(Base):
    """Carrier tracking event."""

    __tablename__ = "tracking_updates"

    id = Column(UUIDType, primary_key=True, default=uuid.uuid4)
    dispatch_id = Column(UUIDType, ForeignKey("dispatches.id"), nullable=False, index=True)
    sequence = Column(Integer, nullable=False, default=1)

    status = Column(String(50), nullable=False)
    location = Column(String(200))
    description = Column(Text)

    created_by = Column(UUIDType)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    dispatch = relationship("Dispatch", back_populates="tracking_updates")
