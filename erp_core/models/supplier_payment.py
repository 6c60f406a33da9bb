"""Payments made to suppliers against purchase orders."""
import uuid
from datetime import datetime, date, timezone
from enum import Enum
from typing import TYPE_CHECKING, Optional
from decimal import Decimal

from sqlalchemy import String, DateTime, Date, ForeignKey, Text, Numeric, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from erp_core.database import Base
from erp_core.db_types import UUIDType

if TYPE_CHECKING:
    from erp_core.models.supplier import Supplier
    from erp_core.models.purchase import PurchaseOrder


class SupplierPaymentStatus(str, Enum):
    """Supplier payment status."""
    PENDING = "PENDING"        # Raised, awaiting approval
    APPROVED = "APPROVED"      # Cleared for release
    PROCESSED = "PROCESSED"    # Money sent; counted as paid on the PO
    CANCELLED = "CANCELLED"


class SupplierPayment(Base):
    """
    Outgoing payment to a supplier.

    Amount is committed against the PO from creation, so the sum of
    non-cancelled payments never passes the PO total.
    """
    __tablename__ = "supplier_payments"
    __table_args__ = (
        Index('ix_supplier_payment_supplier_status', 'supplier_id', 'status'),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    payment_number: Mapped[str] = mapped_column(String(30), unique=True, nullable=False, index=True)

    supplier_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("suppliers.id", ondelete="RESTRICT"),
        nullable=False
    )
    purchase_order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("purchase_orders.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )

    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    payment_method: Mapped[str] = mapped_column(String(30), nullable=False)
    payment_date: Mapped[date] = mapped_column(Date, default=date.today)
    reference_number: Mapped[Optional[str]] = mapped_column(String(100))
    notes: Mapped[Optional[str]] = mapped_column(Text)

    status: Mapped[str] = mapped_column(
        String(20),
        default=SupplierPaymentStatus.PENDING.value,
        nullable=False,
        comment="PENDING, APPROVED, PROCESSED, CANCELLED"
    )
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text)

    # Workflow audit
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType)
    approved_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    processed_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType)
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
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
    purchase_order: Mapped["PurchaseOrder"] = relationship("PurchaseOrder")

    def __repr__(self) -> str:
        return f"<SupplierPayment(number='{self.payment_number}', status='{self.status}')>"
