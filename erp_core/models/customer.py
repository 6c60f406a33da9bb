"""Customer model."""
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import String, Boolean, DateTime, Numeric
from sqlalchemy.orm import Mapped, mapped_column

from erp_core.database import Base
from erp_core.db_types import UUIDType


class PaymentTerms(str, Enum):
    """Customer/supplier payment terms."""
    IMMEDIATE = "IMMEDIATE"
    COD = "COD"
    NET_30 = "NET_30"
    NET_60 = "NET_60"
    NET_90 = "NET_90"


# Days until an invoice falls due
PAYMENT_TERM_DAYS = {
    PaymentTerms.IMMEDIATE: 0,
    PaymentTerms.COD: 0,
    PaymentTerms.NET_30: 30,
    PaymentTerms.NET_60: 60,
    PaymentTerms.NET_90: 90,
}


class Customer(Base):
    """Customer with billing jurisdiction and credit terms."""
    __tablename__ = "customers"

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    code: Mapped[str] = mapped_column(String(20), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255))
    phone: Mapped[Optional[str]] = mapped_column(String(20))

    # Billing jurisdiction (drives tax)
    billing_country_code: Mapped[str] = mapped_column(String(2), nullable=False)
    billing_state_code: Mapped[Optional[str]] = mapped_column(String(10))

    # Credit
    credit_limit: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    payment_terms: Mapped[str] = mapped_column(
        String(20),
        default=PaymentTerms.IMMEDIATE.value,
        comment="IMMEDIATE, COD, NET_30, NET_60, NET_90"
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )

    def __repr__(self) -> str:
        return f"<Customer(code='{self.code}')>"
