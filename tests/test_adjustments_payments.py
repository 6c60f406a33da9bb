import uuid
from decimal import Decimal

import pytest

from erp_core.core.exceptions import (
    ExcessAmount,
    HasPayments,
    InsufficientStock,
    InvalidStatus,
    NotFound,
    ValidationError,
)
from erp_core.core.references import AdjustmentRef
from erp_core.database import unit_of_work
from erp_core.models.invoice import InvoiceStatus, PaymentMethod
from erp_core.models.sales_order import PaymentStatus
from erp_core.models.stock_adjustment import AdjustmentReason, AdjustmentStatus
from erp_core.schemas.stock_adjustment import AdjustmentCreate, AdjustmentItemCreate
from erp_core.services.inventory_ledger import InventoryLedger
from erp_core.services.payment_service import PaymentService
from erp_core.services.sales_order_service import SalesOrderService
from erp_core.services.stock_adjustment_service import StockAdjustmentService
from erp_core.services.stock_reservation_service import StockReservationService


# ==================== Adjustments ====================

@pytest.fixture
def adjustments(db):
    return StockAdjustmentService(db)


def count_data(seed, counted, reason=AdjustmentReason.CYCLE_COUNT, product_id=None):
    return AdjustmentCreate(
        warehouse_id=seed.warehouse_id,
        reason=reason,
        items=[AdjustmentItemCreate(product_id=product_id or seed.product_id, counted_quantity=counted)],
    )


async def test_count_below_book_writes_negative_adjustment(adjustments, seed, add_stock, stock_of, db):
    await add_stock(seed.warehouse_id, seed.product_id, 10)

    adjustment = await adjustments.create_adjustment(count_data(seed, 7))
    assert adjustment.status == AdjustmentStatus.PENDING.value
    assert adjustment.adjustment_number.startswith("ADJ")
    assert await stock_of(seed.warehouse_id, seed.product_id) == (10, 0)

    approved = await adjustments.approve_adjustment(adjustment.id)
    assert approved.status == AdjustmentStatus.APPROVED.value
    assert approved.items[0].quantity_before == 10
    assert approved.items[0].adjustment_quantity == -3
    assert await stock_of(seed.warehouse_id, seed.product_id) == (7, 0)

    transactions = await InventoryLedger(db).get_transactions_for_reference(AdjustmentRef(adjustment.id))
    assert [(t.transaction_type, t.quantity) for t in transactions] == [("ADJUSTMENT", -3)]


async def test_count_for_new_location_creates_stock(adjustments, seed, stock_of):
    adjustment = await adjustments.create_adjustment(count_data(seed, 5, reason=AdjustmentReason.OPENING_STOCK))
    await adjustments.approve_adjustment(adjustment.id)
    assert await stock_of(seed.warehouse_id, seed.product_id) == (5, 0)


async def test_damage_write_off_uses_damage_movement(adjustments, seed, add_stock, db):
    await add_stock(seed.warehouse_id, seed.product_id, 10)
    adjustment = await adjustments.create_adjustment(count_data(seed, 8, reason=AdjustmentReason.DAMAGE))
    await adjustments.approve_adjustment(adjustment.id)

    ledger = InventoryLedger(db)
    record = await ledger.get_record(seed.warehouse_id, seed.product_id)
    assert record.available == 8
    assert record.damaged == 2
    transactions = await ledger.get_transactions_for_reference(AdjustmentRef(adjustment.id))
    assert [(t.transaction_type, t.quantity) for t in transactions] == [("DAMAGE", -2)]


async def test_count_below_reserved_is_refused(adjustments, seed, add_stock, stock_of, db):
    await add_stock(seed.warehouse_id, seed.product_id, 10)
    async with unit_of_work(db):
        await StockReservationService(db).reserve(seed.warehouse_id, seed.product_id, 4)

    adjustment = await adjustments.create_adjustment(count_data(seed, 3))
    adjustment_id = adjustment.id
    with pytest.raises(InsufficientStock):
        await adjustments.approve_adjustment(adjustment_id)

    assert await stock_of(seed.warehouse_id, seed.product_id) == (10, 4)
    adjustment = await adjustments.get_adjustment(adjustment_id)
    assert adjustment.status == AdjustmentStatus.PENDING.value


async def test_rejected_adjustment_moves_nothing(adjustments, seed, add_stock, stock_of):
    await add_stock(seed.warehouse_id, seed.product_id, 10)
    adjustment = await adjustments.create_adjustment(count_data(seed, 2))

    rejected = await adjustments.reject_adjustment(adjustment.id, "Recount requested")
    assert rejected.status == AdjustmentStatus.REJECTED.value
    assert rejected.rejection_reason == "Recount requested"
    assert await stock_of(seed.warehouse_id, seed.product_id) == (10, 0)

    with pytest.raises(InvalidStatus):
        await adjustments.approve_adjustment(adjustment.id)


async def test_adjustment_for_unknown_product(adjustments, seed):
    with pytest.raises(NotFound):
        await adjustments.create_adjustment(count_data(seed, 1, product_id=uuid.uuid4()))


# ==================== Payments ====================

@pytest.fixture
async def invoice_id(db, seed, add_stock, confirmed_order, quiet_notifier):
    """Invoice of 236.00 for two units ordered by the Mumbai customer."""
    await add_stock(seed.warehouse_id, seed.product_id, 10)
    order_id = await confirmed_order((seed.product_id, 2))
    invoice = await SalesOrderService(db, notifier=quiet_notifier).generate_invoice(order_id)
    return invoice.id


@pytest.fixture
def payments(db, quiet_notifier):
    return PaymentService(db, notifier=quiet_notifier)


async def test_partial_then_full_payment(payments, invoice_id, seed, db, quiet_notifier):
    orders = SalesOrderService(db, notifier=quiet_notifier)

    first = await payments.record_payment(invoice_id, seed.customer_id, Decimal("100"), PaymentMethod.UPI)
    assert first.payment_number.startswith("PAY")
    assert first.payment_method == "UPI"

    invoice = await orders.get_invoice(invoice_id)
    assert invoice.paid_amount == Decimal("100.00")
    assert invoice.balance_amount == Decimal("136.00")
    assert invoice.payment_status == PaymentStatus.PARTIALLY_PAID.value
    order = await orders.get_order(invoice.sales_order_id)
    assert order.payment_status == PaymentStatus.PARTIALLY_PAID.value

    await payments.record_payment(invoice_id, seed.customer_id, Decimal("136.00"))
    invoice = await orders.get_invoice(invoice_id)
    assert invoice.balance_amount == Decimal("0.00")
    assert invoice.payment_status == PaymentStatus.PAID.value
    order = await orders.get_order(invoice.sales_order_id)
    assert order.payment_status == PaymentStatus.PAID.value

    history = await payments.list_payments(invoice_id)
    assert [p.amount for p in history] == [Decimal("100.00"), Decimal("136.00")]


async def test_overpayment_refused(payments, invoice_id, seed, db, quiet_notifier):
    with pytest.raises(ExcessAmount):
        await payments.record_payment(invoice_id, seed.customer_id, Decimal("236.01"))

    invoice = await SalesOrderService(db, notifier=quiet_notifier).get_invoice(invoice_id)
    assert invoice.paid_amount == Decimal("0")
    assert invoice.payment_status == PaymentStatus.UNPAID.value
    assert await payments.list_payments(invoice_id) == []


async def test_payment_from_another_customer_refused(payments, invoice_id, seed):
    with pytest.raises(ValidationError):
        await payments.record_payment(invoice_id, seed.credit_customer_id, Decimal("10"))


async def test_non_positive_payment_refused(payments, invoice_id, seed):
    with pytest.raises(ValidationError):
        await payments.record_payment(invoice_id, seed.customer_id, Decimal("0"))


async def test_payment_on_unknown_invoice(payments, seed):
    with pytest.raises(NotFound):
        await payments.record_payment(uuid.uuid4(), seed.customer_id, Decimal("10"))


async def test_void_unpaid_invoice_allows_reinvoicing(payments, invoice_id, seed, db, quiet_notifier):
    voided = await payments.void_invoice(invoice_id, "Wrong billing address")
    assert voided.status == InvoiceStatus.VOID.value
    assert voided.void_reason == "Wrong billing address"
    assert voided.voided_at is not None
    assert voided.balance_amount == Decimal("0.00")

    with pytest.raises(InvalidStatus):
        await payments.record_payment(invoice_id, seed.customer_id, Decimal("10"))
    with pytest.raises(InvalidStatus):
        await payments.void_invoice(invoice_id, "Again")

    orders = SalesOrderService(db, notifier=quiet_notifier)
    order = await orders.get_order(voided.sales_order_id)
    assert order.invoice is None
    assert order.payment_status == PaymentStatus.UNPAID.value

    replacement = await orders.generate_invoice(order.id)
    assert replacement.id != invoice_id
    assert replacement.status == InvoiceStatus.ISSUED.value
    assert replacement.balance_amount == Decimal("236.00")


async def test_invoice_with_payments_cannot_be_voided(payments, invoice_id, seed, db, quiet_notifier):
    await payments.record_payment(invoice_id, seed.customer_id, Decimal("50"))

    with pytest.raises(HasPayments):
        await payments.void_invoice(invoice_id, "Duplicate")

    invoice = await SalesOrderService(db, notifier=quiet_notifier).get_invoice(invoice_id)
    assert invoice.status == InvoiceStatus.ISSUED.value
    assert invoice.balance_amount == Decimal("186.00")
