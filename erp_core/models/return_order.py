"""Customer return (RMA) models."""
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, List
from decimal import Decimal

from sqlalchemy import String, Boolean, DateTime, ForeignKey, Integer, Text, Numeric
from sqlalchemy.orm import Mapped, mapped_column, relationship

from erp_core.database import Base
from erp_core.db_types import UUIDType


class ReturnStatus(str, Enum):
    """Return request status."""
    REQUESTED = "REQUESTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    RECEIVED = "RECEIVED"  # Goods back at warehouse
    INSPECTED = "INSPECTED"
    PROCESSED = "PROCESSED"  # Restocked
    REFUNDED = "REFUNDED"
    REPLACED = "REPLACED"


class ReturnReason(str, Enum):
    """Return reason."""
    DEFECTIVE = "DEFECTIVE"
    DAMAGED_IN_TRANSIT = "DAMAGED_IN_TRANSIT"
    WRONG_ITEM = "WRONG_ITEM"
    NOT_AS_DESCRIBED = "NOT_AS_DESCRIBED"
    CHANGED_MIND = "CHANGED_MIND"
    OTHER = "OTHER"


class ItemCondition(str, Enum):
    """Condition found at inspection."""
    GOOD = "GOOD"
    OPENED = "OPENED"
    DAMAGED = "DAMAGED"
    DEFECTIVE = "DEFECTIVE"


class ReturnRequest(Base):
    """Return merchandise authorization against a shipped sales order."""
    __tablename__ = "return_requests"

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    rma_number: Mapped[str] = mapped_column(String(30), unique=True, nullable=False, index=True)

    sales_order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("sales_orders.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    customer_id: Mapped[uuid.UUID] = mapped_column(UUIDType, ForeignKey("customers.id"), nullable=False)
    warehouse_id: Mapped[uuid.UUID] = mapped_column(UUIDType, ForeignKey("warehouses.id"), nullable=False)

    status: Mapped[str] = mapped_column(
        String(50),
        default=ReturnStatus.REQUESTED.value,
        nullable=False,
        index=True,
        comment="REQUESTED, APPROVED, REJECTED, RECEIVED, INSPECTED, PROCESSED, REFUNDED, REPLACED"
    )
    reason: Mapped[str] = mapped_column(String(50), default=ReturnReason.OTHER.value)
    description: Mapped[Optional[str]] = mapped_column(Text)

    # Amounts
    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        default=0,
        comment="Requested quantity x original unit price"
    )
    refund_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    deductions: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    refund_method: Mapped[Optional[str]] = mapped_column(String(30))

    rejection_reason: Mapped[Optional[str]] = mapped_column(Text)
    inspection_notes: Mapped[Optional[str]] = mapped_column(Text)

    # Workflow audit
    requested_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType)
    approved_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType)
    inspected_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType)
    received_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    inspected_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    refunded_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )

    items: Mapped[List["ReturnItem"]] = relationship(
        "ReturnItem",
        back_populates="return_request",
        cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<ReturnRequest(rma='{self.rma_number}', status='{self.status}')>"


class ReturnItem(Base):
    __tablename__ = "return_items"

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    return_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("return_requests.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    sales_order_item_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("sales_order_items.id"),
        nullable=False
    )
    product_id: Mapped[uuid.UUID] = mapped_column(UUIDType, ForeignKey("products.id"), nullable=False)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        comment="Snapshot of the sales order unit price"
    )

    # Inspection outcome
    quantity_accepted: Mapped[int] = mapped_column(Integer, default=0)
    quantity_rejected: Mapped[int] = mapped_column(Integer, default=0)
    restockable: Mapped[bool] = mapped_column(Boolean, default=False)
    condition: Mapped[Optional[str]] = mapped_column(String(20))

    return_request: Mapped["ReturnRequest"] = relationship("ReturnRequest", back_populates="items")
