"""
Order tax calculation by jurisdiction.

- Customer and warehouse in different countries: no tax (export)
- GST: CGST + SGST at half rate each when intrastate, IGST when interstate
- SALES_TAX: state rate from tax_rates
- VAT: country rate from tax_rates
"""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional

from sqlalchemy import select, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession

from erp_core.config import settings
from erp_core.core.exceptions import NotFound
from erp_core.models.customer import Customer
from erp_core.models.tax import Country, TaxRate, TaxSystem
from erp_core.models.warehouse import Warehouse


logger = logging.getLogger(__name__)

TWO_PLACES = Decimal("0.01")


def money(value) -> Decimal:
    """Round to 2 decimal places, half up."""
    return Decimal(str(value)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


@dataclass
class TaxLine:
    """Order line as seen by the tax calculator."""
    product_id: uuid.UUID
    quantity: int
    unit_price: Decimal
    tax_percent: Optional[Decimal] = None

    @property
    def taxable_amount(self) -> Decimal:
        return Decimal(self.quantity) * Decimal(str(self.unit_price))


@dataclass
class TaxResult:
    tax_amount: Decimal = Decimal("0.00")
    tax_details: List[Dict[str, Any]] = field(default_factory=list)
    # Per input line, same order as the request
    line_taxes: List[Decimal] = field(default_factory=list)
    line_rates: List[Decimal] = field(default_factory=list)


class TaxCalculator:
    """Computes order tax from customer billing and warehouse jurisdiction."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def calculate_order_tax(
        self,
        customer: Customer,
        warehouse: Warehouse,
        items: List[TaxLine],
    ) -> TaxResult:
        customer_country = await self.db.get(Country, customer.billing_country_code)
        warehouse_country = await self.db.get(Country, warehouse.country_code)
        if not customer_country or not warehouse_country:
            raise NotFound("Country information not found")

        # If different countries, no tax (international)
        if customer_country.code != warehouse_country.code:
            return self._zero(items)

        if customer_country.tax_system == TaxSystem.GST:
            return self._calculate_gst(items, customer, warehouse)

        if customer_country.tax_system == TaxSystem.SALES_TAX:
            rate = await self._find_rate(
                TaxSystem.SALES_TAX,
                customer.billing_country_code,
                customer.billing_state_code,
            )
            return self._calculate_flat(items, TaxSystem.SALES_TAX.value, rate)

        if customer_country.tax_system == TaxSystem.VAT:
            rate = await self._find_rate(TaxSystem.VAT, customer_country.code)
            return self._calculate_flat(items, TaxSystem.VAT.value, rate)

        return self._zero(items)

    # ==================== Regimes ====================

    @staticmethod
    def _zero(items: List[TaxLine]) -> TaxResult:
        return TaxResult(
            line_taxes=[Decimal("0.00") for _ in items],
            line_rates=[Decimal("0") for _ in items],
        )

    def _calculate_gst(
        self,
        items: List[TaxLine],
        customer: Customer,
        warehouse: Warehouse,
    ) -> TaxResult:
        result = TaxResult()
        is_intrastate = customer.billing_state_code == warehouse.state_code

        for index, item in enumerate(items):
            rate = Decimal(str(item.tax_percent)) if item.tax_percent is not None else Decimal(str(settings.DEFAULT_GST_RATE))
            taxable = item.taxable_amount

            if is_intrastate:
                half_rate = rate / 2
                cgst = money(taxable * half_rate / 100)
                sgst = money(taxable * half_rate / 100)
                result.tax_details.append(self._detail(index, item, "CGST", half_rate, cgst))
                result.tax_details.append(self._detail(index, item, "SGST", half_rate, sgst))
                line_tax = cgst + sgst
            else:
                igst = money(taxable * rate / 100)
                result.tax_details.append(self._detail(index, item, "IGST", rate, igst))
                line_tax = igst

            result.line_taxes.append(line_tax)
            result.line_rates.append(rate)
            result.tax_amount += line_tax

        return result

    def _calculate_flat(
        self,
        items: List[TaxLine],
        tax_type: str,
        rate: Optional[Decimal],
    ) -> TaxResult:
        if rate is None:
            logger.info(f"No active {tax_type} rate found; order is untaxed")
            return self._zero(items)

        result = TaxResult()
        for index, item in enumerate(items):
            amount = money(item.taxable_amount * rate / 100)
            result.tax_details.append(self._detail(index, item, tax_type, rate, amount))
            result.line_taxes.append(amount)
            result.line_rates.append(rate)
            result.tax_amount += amount
        return result

    @staticmethod
    def _detail(index: int, item: TaxLine, tax_type: str, rate: Decimal, amount: Decimal) -> Dict[str, Any]:
        return {
            "line": index + 1,
            "product_id": str(item.product_id),
            "tax_type": tax_type,
            "rate": str(rate),
            "amount": str(amount),
        }

    async def _find_rate(
        self,
        tax_type: TaxSystem,
        country_code: str,
        state_code: Optional[str] = None,
        on_date: Optional[date] = None,
    ) -> Optional[Decimal]:
        """Active rate whose effective window covers the date."""
        on_date = on_date or date.today()
        conditions = [
            TaxRate.country_code == country_code,
            TaxRate.tax_type == tax_type.value,
            TaxRate.is_active == True,
            TaxRate.effective_from <= on_date,
            or_(TaxRate.effective_to.is_(None), TaxRate.effective_to >= on_date),
        ]
        if state_code is not None:
            conditions.append(TaxRate.state_code == state_code)

        result = await self.db.execute(
            select(TaxRate)
            .where(and_(*conditions))
            .order_by(TaxRate.effective_from.desc())
        )
        tax_rate = result.scalars().first()
        return Decimal(str(tax_rate.rate)) if tax_rate else None
