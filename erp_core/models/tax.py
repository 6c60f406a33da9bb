"""Tax jurisdiction models: countries, states and dated tax rates."""
import uuid
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import String, Boolean, Date, Numeric, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from erp_core.database import Base
from erp_core.db_types import UUIDType


class TaxSystem(str, Enum):
    """Tax regime of a country."""
    GST = "GST"              # India: CGST+SGST intrastate, IGST interstate
    SALES_TAX = "SALES_TAX"  # USA: per-state rate
    VAT = "VAT"              # Country-wide rate
    NONE = "NONE"


class Country(Base):
    __tablename__ = "countries"

    code: Mapped[str] = mapped_column(String(2), primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    tax_system: Mapped[str] = mapped_column(
        String(20),
        default=TaxSystem.NONE.value,
        comment="GST, SALES_TAX, VAT, NONE"
    )


class State(Base):
    __tablename__ = "states"
    __table_args__ = (
        UniqueConstraint("country_code", "code", name="uq_state_country_code"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    country_code: Mapped[str] = mapped_column(String(2), ForeignKey("countries.code"), nullable=False)
    code: Mapped[str] = mapped_column(String(10), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)


class TaxRate(Base):
    """Rate effective for a country (VAT) or a state (sales tax) within a date window."""
    __tablename__ = "tax_rates"

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    country_code: Mapped[str] = mapped_column(String(2), ForeignKey("countries.code"), nullable=False)
    state_code: Mapped[Optional[str]] = mapped_column(String(10))
    tax_type: Mapped[str] = mapped_column(String(20), nullable=False)
    rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)

    effective_from: Mapped[date] = mapped_column(Date, nullable=False)
    effective_to: Mapped[Optional[date]] = mapped_column(Date)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
