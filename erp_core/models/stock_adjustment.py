"""Stock Adjustment model for inventory corrections."""
from enum import Enum
from datetime import datetime, timezone
from sqlalchemy import Column, String, Text, ForeignKey, Integer, DateTime
from sqlalchemy.orm import relationship
import uuid

from erp_core.database import Base
from erp_core.db_types import UUIDType


class AdjustmentReason(str, Enum):
    """Adjustment reason enum."""
    CYCLE_COUNT = "CYCLE_COUNT"  # Physical count variance
    DAMAGE = "DAMAGE"
    THEFT = "THEFT"
    EXPIRY = "EXPIRY"
    CORRECTION = "CORRECTION"  # Data correction
    FOUND = "FOUND"  # Found stock (positive)
    OPENING_STOCK = "OPENING_STOCK"
    OTHER = "OTHER"


class AdjustmentStatus(str, Enum):
    """Adjustment status enum."""
    PENDING = "PENDING"
    APPROVED = "APPROVED"  # Ledger updated
    REJECTED = "REJECTED"


class StockAdjustment(Base):
    """Stock adjustment/correction header."""

    __tablename__ = "stock_adjustments"

    id = Column(UUIDType, primary_key=True, default=uuid.uuid4)

    adjustment_number = Column(String(50), unique=True, nullable=False, index=True)
    reason = Column(
        String(50),
        nullable=False,
        default=AdjustmentReason.CYCLE_COUNT.value,
        comment="CYCLE_COUNT, DAMAGE, THEFT, EXPIRY, CORRECTION, FOUND, OPENING_STOCK, OTHER"
    )
    status = Column(String(50), default=AdjustmentStatus.PENDING.value, nullable=False, index=True)

    warehouse_id = Column(UUIDType, ForeignKey("warehouses.id"), nullable=False, index=True)

    requested_by = Column(UUIDType)
    approved_by = Column(UUIDType)
    approved_at = Column(DateTime(timezone=True))
    rejection_reason = Column(Text)
    notes = Column(Text)

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    items = relationship("StockAdjustmentItem", back_populates="adjustment", cascade="all, delete-orphan")


class StockAdjustmentItem(Base):
    """Counted quantity for one product. Variance is computed at approval."""

    __tablename__ = "stock_adjustment_items"

    id = Column(UUIDType, primary_key=True, default=uuid.uuid4)
    adjustment_id = Column(UUIDType, ForeignKey("stock_adjustments.id"), nullable=False, index=True)
    product_id = Column(UUIDType, ForeignKey("products.id"), nullable=False)

    counted_quantity = Column(Integer, nullable=False)
    quantity_before = Column(Integer)  # System available at approval
    adjustment_quantity = Column(Integer)  # counted - before

    notes = Column(Text)

    adjustment = relationship("StockAdjustment", back_populates="items")
