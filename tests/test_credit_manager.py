from decimal import Decimal

from erp_core.models.customer import Customer
from erp_core.services.credit_manager import CreditManager
from erp_core.services.sales_order_service import SalesOrderService


async def test_immediate_terms_skip_the_check(db, seed):
    customer = await db.get(Customer, seed.customer_id)
    result = await CreditManager(db).check_credit_limit(customer, Decimal("1000000"))
    assert result.approved is True


async def test_limit_is_inclusive(db, seed):
    customer = await db.get(Customer, seed.credit_customer_id)
    manager = CreditManager(db)

    assert (await manager.check_credit_limit(customer, Decimal("5000.00"))).approved is True
    result = await manager.check_credit_limit(customer, Decimal("5000.01"))
    assert result.approved is False
    assert "Credit limit exceeded" in result.message


async def test_exposure_counts_pending_orders_then_invoices(db, seed, add_stock, confirmed_order, quiet_notifier):
    await add_stock(seed.warehouse_id, seed.product_id, 10)
    order_id = await confirmed_order((seed.product_id, 1), customer_id=seed.credit_customer_id)

    customer = await db.get(Customer, seed.credit_customer_id)
    manager = CreditManager(db)

    result = await manager.check_credit_limit(customer, Decimal("0"))
    assert result.pending_orders == Decimal("118.00")
    assert result.outstanding == Decimal("0")
    assert result.available_credit == Decimal("4882.00")

    await SalesOrderService(db, notifier=quiet_notifier).generate_invoice(order_id)

    result = await manager.check_credit_limit(customer, Decimal("4882.00"))
    assert result.approved is True
    assert result.pending_orders == Decimal("0")
    assert result.outstanding == Decimal("118.00")
    assert (await manager.check_credit_limit(customer, Decimal("4882.01"))).approved is False
