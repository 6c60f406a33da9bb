import uuid
from datetime import datetime, date, timezone
from enum import Enum
from typing import TYPE_CHECKING, Optional, List
from decimal import Decimal

from sqlalchemy import String, DateTime, Date, ForeignKey, Integer, Text, Numeric, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from erp_core.database import Base
from erp_core.db_types import UUIDType, JSONType

if TYPE_CHECKING:
    from erp_core.models.customer import Customer
    from erp_core.models.product import Product
    from erp_core.models.warehouse import Warehouse
    from erp_core.models.invoice import Invoice


class SalesOrderStatus(str, Enum):
    """Sales order status enumeration."""
    DRAFT = "DRAFT"                   # Saved, nothing reserved yet
    PENDING = "PENDING"               # Created, stock reserved
    CONFIRMED = "CONFIRMED"           # Accepted for fulfillment
    PROCESSING = "PROCESSING"         # Invoiced / being fulfilled
    PACKED = "PACKED"
    SHIPPED = "SHIPPED"               # Stock consumed
    DELIVERED = "DELIVERED"
    ON_HOLD = "ON_HOLD"               # Paused, reversible to CONFIRMED
    CANCELLED = "CANCELLED"           # Terminal, reservations released


class PaymentStatus(str, Enum):
    """Payment status of an order or invoice."""
    UNPAID = "UNPAID"
    PARTIALLY_PAID = "PARTIALLY_PAID"
    PAID = "PAID"
    OVERPAID = "OVERPAID"
    REFUNDED = "REFUNDED"


class SalesOrder(Base):
    """
    Sales order header.
    Tracks an order from reservation to delivery.
    """
    __tablename__ = "sales_orders"
    __table_args__ = (
        Index('ix_sales_order_status_created', 'status', 'created_at'),
        Index('ix_sales_order_customer_created', 'customer_id', 'created_at'),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)

    # Order Identification
    order_number: Mapped[str] = mapped_column(String(30), unique=True, nullable=False, index=True)
    order_date: Mapped[date] = mapped_column(Date, default=date.today)

    customer_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("customers.id", ondelete="RESTRICT"),
        nullable=False
    )
    warehouse_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("warehouses.id", ondelete="RESTRICT"),
        nullable=False
    )

    # Status
    status: Mapped[str] = mapped_column(
        String(50),
        default=SalesOrderStatus.PENDING.value,
        nullable=False,
        index=True,
        comment="DRAFT, PENDING, CONFIRMED, PROCESSING, PACKED, SHIPPED, DELIVERED, ON_HOLD, CANCELLED"
    )
    payment_status: Mapped[str] = mapped_column(
        String(50),
        default=PaymentStatus.UNPAID.value,
        nullable=False
    )
    payment_terms: Mapped[str] = mapped_column(String(20), nullable=False)
    due_date: Mapped[Optional[date]] = mapped_column(Date)

    # Amounts
    subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    shipping_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)

    # Tax calculator output, persisted verbatim
    tax_details: Mapped[Optional[list]] = mapped_column(JSONType)

    # Side-branch details
    hold_reason: Mapped[Optional[str]] = mapped_column(Text)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text)
    notes: Mapped[Optional[str]] = mapped_column(Text)

    # Audit
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType)
    confirmed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    shipped_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    delivered_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc)
    )

    # Relationships
    customer: Mapped["Customer"] = relationship("Customer")
    warehouse: Mapped["Warehouse"] = relationship("Warehouse")
    items: Mapped[List["SalesOrderItem"]] = relationship(
        "SalesOrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="SalesOrderItem.line_number"
    )
    # Current invoice; void ones stay in the table for audit
    invoice: Mapped[Optional["Invoice"]] = relationship(
        "Invoice",
        primaryjoin="and_(SalesOrder.id == foreign(Invoice.sales_order_id), Invoice.status != 'VOID')",
        uselist=False,
        viewonly=True
    )

    def __repr__(self) -> str:
        return f"<SalesOrder(order_number='{self.order_number}', status='{self.status}')>"


class SalesOrderItem(Base):
    """Order line. Quantity here is what was reserved at creation."""
    __tablename__ = "sales_order_items"

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("sales_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    product_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("products.id", ondelete="RESTRICT"),
        nullable=False
    )
    line_number: Mapped[int] = mapped_column(Integer, default=1)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    tax_percent: Mapped[Decimal] = mapped_column(Numeric(5, 2), default=0)

    subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    total: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)

    order: Mapped["SalesOrder"] = relationship("SalesOrder", back_populates="items")
    product: Mapped["Product"] = relationship("Product")
