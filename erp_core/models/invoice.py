import uuid
from datetime import datetime, date, timezone
from enum import Enum
from typing import TYPE_CHECKING, Optional, List
from decimal import Decimal

from sqlalchemy import String, DateTime, Date, ForeignKey, Integer, Text, Numeric
from sqlalchemy.orm import Mapped, mapped_column, relationship

from erp_core.database import Base
from erp_core.db_types import UUIDType

if TYPE_CHECKING:
    from erp_core.models.sales_order import SalesOrder


class PaymentMethod(str, Enum):
    """Payment method enumeration."""
    CASH = "CASH"
    CARD = "CARD"
    UPI = "UPI"
    BANK_TRANSFER = "BANK_TRANSFER"
    CHEQUE = "CHEQUE"
    CREDIT_NOTE = "CREDIT_NOTE"


class InvoiceStatus(str, Enum):
    """Invoice status. A void invoice no longer counts against the order."""
    ISSUED = "ISSUED"
    VOID = "VOID"


class Invoice(Base):
    """Invoice snapshot of a sales order. At most one non-void invoice per order."""
    __tablename__ = "invoices"

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    invoice_number: Mapped[str] = mapped_column(String(30), unique=True, nullable=False, index=True)

    sales_order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("sales_orders.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    customer_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("customers.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )

    invoice_date: Mapped[date] = mapped_column(Date, default=date.today)
    due_date: Mapped[Optional[date]] = mapped_column(Date)

    # Amounts
    subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    shipping_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    paid_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    balance_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)

    status: Mapped[str] = mapped_column(
        String(20),
        default=InvoiceStatus.ISSUED.value,
        nullable=False,
        comment="ISSUED, VOID"
    )
    payment_status: Mapped[str] = mapped_column(
        String(50),
        default="UNPAID",
        nullable=False,
        index=True,
        comment="UNPAID, PARTIALLY_PAID, PAID, OVERPAID, REFUNDED"
    )

    # Void details
    void_reason: Mapped[Optional[str]] = mapped_column(Text)
    voided_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType)
    voided_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )

    sales_order: Mapped["SalesOrder"] = relationship("SalesOrder")
    items: Mapped[List["InvoiceItem"]] = relationship(
        "InvoiceItem",
        back_populates="invoice",
        cascade="all, delete-orphan"
    )
    payments: Mapped[List["CustomerPayment"]] = relationship(
        "CustomerPayment",
        back_populates="invoice",
        order_by="CustomerPayment.created_at"
    )


class InvoiceItem(Base):
    __tablename__ = "invoice_items"

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    invoice_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    product_id: Mapped[uuid.UUID] = mapped_column(UUIDType, ForeignKey("products.id"), nullable=False)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    tax_percent: Mapped[Decimal] = mapped_column(Numeric(5, 2), default=0)
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    total: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)

    invoice: Mapped["Invoice"] = relationship("Invoice", back_populates="items")


class CustomerPayment(Base):
    """Payment received against an invoice."""
    __tablename__ = "customer_payments"

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    payment_number: Mapped[str] = mapped_column(String(30), unique=True, nullable=False, index=True)

    invoice_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("invoices.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    customer_id: Mapped[uuid.UUID] = mapped_column(UUIDType, ForeignKey("customers.id"), nullable=False)

    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    payment_method: Mapped[str] = mapped_column(String(30), nullable=False)
    reference_number: Mapped[Optional[str]] = mapped_column(String(100))
    payment_date: Mapped[date] = mapped_column(Date, default=date.today)
    notes: Mapped[Optional[str]] = mapped_column(Text)

    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )

    invoice: Mapped["Invoice"] = relationship("Invoice", back_populates="payments")
