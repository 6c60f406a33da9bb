"""Procurement models: purchase orders and goods receipt notes."""
import uuid
from datetime import datetime, date, timezone
from enum import Enum
from typing import TYPE_CHECKING, Optional, List
from decimal import Decimal

from sqlalchemy import String, Boolean, DateTime, Date, ForeignKey, Integer, Text, Numeric
from sqlalchemy.orm import Mapped, mapped_column, relationship

from erp_core.database import Base
from erp_core.db_types import UUIDType

if TYPE_CHECKING:
    from erp_core.models.supplier import Supplier
    from erp_core.models.product import Product


class POStatus(str, Enum):
    """Purchase Order status."""
    DRAFT = "DRAFT"
    PENDING = "PENDING"  # Submitted for approval
    APPROVED = "APPROVED"
    SENT = "SENT"  # Sent to supplier
    PARTIALLY_RECEIVED = "PARTIALLY_RECEIVED"
    RECEIVED = "RECEIVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


class GRNStatus(str, Enum):
    """Goods Receipt Note status."""
    DRAFT = "DRAFT"
    PENDING_VERIFICATION = "PENDING_VERIFICATION"
    VERIFIED = "VERIFIED"  # Stock posted
    REJECTED = "REJECTED"


class PurchaseOrder(Base):
    """Purchase order raised against a supplier for delivery into one warehouse."""
    __tablename__ = "purchase_orders"

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    po_number: Mapped[str] = mapped_column(String(30), unique=True, nullable=False, index=True)
    po_date: Mapped[date] = mapped_column(Date, default=date.today)
    expected_delivery_date: Mapped[Optional[date]] = mapped_column(Date)

    supplier_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("suppliers.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    warehouse_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("warehouses.id", ondelete="RESTRICT"),
        nullable=False
    )

    status: Mapped[str] = mapped_column(
        String(50),
        default=POStatus.DRAFT.value,
        nullable=False,
        index=True,
        comment="DRAFT, PENDING, APPROVED, SENT, PARTIALLY_RECEIVED, RECEIVED, REJECTED, CANCELLED"
    )

    # Amounts
    subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    shipping_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    paid_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)  # Processed supplier payments

    notes: Mapped[Optional[str]] = mapped_column(Text)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text)

    # Workflow audit
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType)
    approved_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc)
    )

    supplier: Mapped["Supplier"] = relationship("Supplier")
    items: Mapped[List["PurchaseOrderItem"]] = relationship(
        "PurchaseOrderItem",
        back_populates="purchase_order",
        cascade="all, delete-orphan",
        order_by="PurchaseOrderItem.line_number"
    )
    grns: Mapped[List["GoodsReceiptNote"]] = relationship(
        "GoodsReceiptNote",
        back_populates="purchase_order"
    )

    @property
    def is_fully_received(self) -> bool:
        """Check if PO is fully received."""
        return all(
            item.quantity_received >= item.quantity_ordered
            for item in self.items
        )

    def __repr__(self) -> str:
        return f"<PurchaseOrder(number='{self.po_number}', status='{self.status}')>"


class PurchaseOrderItem(Base):
    __tablename__ = "purchase_order_items"

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    purchase_order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("purchase_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    product_id: Mapped[uuid.UUID] = mapped_column(UUIDType, ForeignKey("products.id"), nullable=False)
    line_number: Mapped[int] = mapped_column(Integer, default=1)

    quantity_ordered: Mapped[int] = mapped_column(Integer, nullable=False)
    # Accumulates accepted quantities across verified GRNs
    quantity_received: Mapped[int] = mapped_column(Integer, default=0)

    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    tax_percent: Mapped[Decimal] = mapped_column(Numeric(5, 2), default=0)
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    total: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)

    purchase_order: Mapped["PurchaseOrder"] = relationship("PurchaseOrder", back_populates="items")
    product: Mapped["Product"] = relationship("Product")

    @property
    def quantity_pending(self) -> int:
        return max(self.quantity_ordered - self.quantity_received, 0)


class GoodsReceiptNote(Base):
    """
    Goods receipt against a purchase order.
    Verification is the only procurement path that adds stock.
    """
    __tablename__ = "goods_receipt_notes"

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    grn_number: Mapped[str] = mapped_column(String(30), unique=True, nullable=False, index=True)
    grn_date: Mapped[date] = mapped_column(Date, default=date.today)

    purchase_order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("purchase_orders.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    warehouse_id: Mapped[uuid.UUID] = mapped_column(UUIDType, ForeignKey("warehouses.id"), nullable=False)

    status: Mapped[str] = mapped_column(
        String(50),
        default=GRNStatus.PENDING_VERIFICATION.value,
        nullable=False,
        index=True,
        comment="DRAFT, PENDING_VERIFICATION, VERIFIED, REJECTED"
    )

    # Supplier delivery reference
    delivery_note_number: Mapped[Optional[str]] = mapped_column(String(50))
    vehicle_number: Mapped[Optional[str]] = mapped_column(String(30))

    # Discrepancy side-channel, independent of status
    has_discrepancy: Mapped[bool] = mapped_column(Boolean, default=False)
    discrepancy_notes: Mapped[Optional[str]] = mapped_column(Text)

    notes: Mapped[Optional[str]] = mapped_column(Text)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text)

    received_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType)
    verified_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType)
    verified_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )

    purchase_order: Mapped["PurchaseOrder"] = relationship("PurchaseOrder", back_populates="grns")
    items: Mapped[List["GRNItem"]] = relationship(
        "GRNItem",
        back_populates="grn",
        cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<GoodsReceiptNote(number='{self.grn_number}', status='{self.status}')>"


class GRNItem(Base):
    __tablename__ = "grn_items"

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    grn_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("goods_receipt_notes.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    po_item_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("purchase_order_items.id"),
        nullable=False
    )
    product_id: Mapped[uuid.UUID] = mapped_column(UUIDType, ForeignKey("products.id"), nullable=False)

    quantity_expected: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Outstanding PO quantity when the GRN was created"
    )
    quantity_received: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity_accepted: Mapped[int] = mapped_column(Integer, default=0)
    quantity_rejected: Mapped[int] = mapped_column(Integer, default=0)
    rejection_reason: Mapped[Optional[str]] = mapped_column(String(200))

    grn: Mapped["GoodsReceiptNote"] = relationship("GoodsReceiptNote", back_populates="items")
    po_item: Mapped["PurchaseOrderItem"] = relationship("PurchaseOrderItem")
