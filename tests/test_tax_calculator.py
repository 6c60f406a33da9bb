from decimal import Decimal

import pytest

from erp_core.models.customer import Customer
from erp_core.models.warehouse import Warehouse
from erp_core.services.tax_calculator import TaxCalculator, TaxLine, money


@pytest.fixture
async def parties(db, seed):
    async def _parties(customer_id, warehouse_id):
        return await db.get(Customer, customer_id), await db.get(Warehouse, warehouse_id)
    return _parties


def test_money_rounds_half_up():
    assert money("2.345") == Decimal("2.35")
    assert money(Decimal("2.344")) == Decimal("2.34")
    assert money(10) == Decimal("10.00")


async def test_intrastate_gst_splits_into_cgst_and_sgst(db, seed, parties):
    customer, warehouse = await parties(seed.customer_id, seed.warehouse_id)
    result = await TaxCalculator(db).calculate_order_tax(
        customer,
        warehouse,
        [TaxLine(product_id=seed.product_id, quantity=2, unit_price=Decimal("100.00"), tax_percent=Decimal("18"))],
    )

    assert result.tax_amount == Decimal("36.00")
    assert [d["tax_type"] for d in result.tax_details] == ["CGST", "SGST"]
    assert [d["amount"] for d in result.tax_details] == ["18.00", "18.00"]
    assert result.line_taxes == [Decimal("36.00")]


async def test_interstate_gst_is_igst(db, seed, parties):
    customer, warehouse = await parties(seed.credit_customer_id, seed.warehouse_id)
    result = await TaxCalculator(db).calculate_order_tax(
        customer,
        warehouse,
        [
            TaxLine(product_id=seed.product_id, quantity=1, unit_price=Decimal("100.00"), tax_percent=Decimal("18")),
            TaxLine(product_id=seed.second_product_id, quantity=2, unit_price=Decimal("250.00"), tax_percent=Decimal("12")),
        ],
    )

    assert [d["tax_type"] for d in result.tax_details] == ["IGST", "IGST"]
    assert result.line_taxes == [Decimal("18.00"), Decimal("60.00")]
    assert result.tax_amount == Decimal("78.00")


async def test_missing_line_rate_falls_back_to_default_gst(db, seed, parties):
    customer, warehouse = await parties(seed.credit_customer_id, seed.warehouse_id)
    result = await TaxCalculator(db).calculate_order_tax(
        customer,
        warehouse,
        [TaxLine(product_id=seed.product_id, quantity=1, unit_price=Decimal("50.00"))],
    )
    assert result.line_rates == [Decimal("18.0")]
    assert result.tax_amount == Decimal("9.00")


async def test_cross_border_order_is_untaxed(db, seed, parties):
    customer, warehouse = await parties(seed.us_customer_id, seed.warehouse_id)
    result = await TaxCalculator(db).calculate_order_tax(
        customer,
        warehouse,
        [TaxLine(product_id=seed.product_id, quantity=3, unit_price=Decimal("100.00"), tax_percent=Decimal("18"))],
    )
    assert result.tax_amount == Decimal("0.00")
    assert result.tax_details == []
    assert result.line_taxes == [Decimal("0.00")]


async def test_us_sales_tax_uses_state_rate(db, seed, parties):
    customer, warehouse = await parties(seed.us_customer_id, seed.us_warehouse_id)
    result = await TaxCalculator(db).calculate_order_tax(
        customer,
        warehouse,
        [TaxLine(product_id=seed.product_id, quantity=1, unit_price=Decimal("100.00"))],
    )
    assert result.tax_amount == Decimal("7.25")
    assert result.tax_details[0]["tax_type"] == "SALES_TAX"
