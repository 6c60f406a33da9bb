"""
Document Sequence Model for Atomic Number Generation

FORMAT: {PREFIX}{YEAR}{SEQUENCE}
  SO2025000123  Sales Order
  INV2025000001 Invoice
  PO2025000007  Purchase Order

One row per (document type, calendar year). The row is read with
SELECT ... FOR UPDATE and incremented inside the caller's transaction, so
two concurrent creations can never draw the same number.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import String, Integer, DateTime, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from erp_core.database import Base
from erp_core.db_types import UUIDType


class DocumentType(str, Enum):
    """Document types that use sequence numbering. Value is the number prefix."""
    SALES_ORDER = "SO"
    INVOICE = "INV"
    CUSTOMER_PAYMENT = "PAY"
    PURCHASE_ORDER = "PO"
    GOODS_RECEIPT_NOTE = "GRN"
    DISPATCH = "DSP"
    WAREHOUSE_TRANSFER = "TRF"
    RETURN_REQUEST = "RMA"
    STOCK_ADJUSTMENT = "ADJ"
    SUPPLIER_PAYMENT = "SPAY"


class DocumentSequence(Base):
    """
    Document sequence management for atomic number generation.

    Each document type has one sequence per year.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        UniqueConstraint('document_type', 'year', name='uq_document_sequence_type_year'),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)

    document_type: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
    year: Mapped[int] = mapped_column(Integer, nullable=False)

    current_number: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
        comment="Last issued number; next number is current_number + 1"
    )
    padding_length: Mapped[int] = mapped_column(Integer, default=6, nullable=False)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc)
    )

    def format_number(self, number: int) -> str:
        """Render a counter value, e.g. SO + 2025 + 000123."""
        return f"{self.document_type}{self.year}{str(number).zfill(self.padding_length)}"

    def get_next_number(self) -> str:
        """Increment the counter and return the formatted number."""
        self.current_number += 1
        return self.format_number(self.current_number)

    def __repr__(self) -> str:
        return f"<DocumentSequence({self.document_type} {self.year}: {self.current_number})>"
