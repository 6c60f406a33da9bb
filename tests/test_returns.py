from decimal import Decimal
from types import SimpleNamespace

import pytest

from erp_core.core.exceptions import ExcessQuantity, InvalidStatus, ValidationError
from erp_core.core.references import ReturnRef
from erp_core.models.return_order import ItemCondition, ReturnReason, ReturnStatus
from erp_core.schemas.return_order import InspectionLine, ReturnCreate, ReturnItemCreate
from erp_core.services.inventory_ledger import InventoryLedger
from erp_core.services.returns_service import ReturnsService


@pytest.fixture
def service(db, quiet_notifier):
    return ReturnsService(db, notifier=quiet_notifier)


@pytest.fixture
async def shipped_order_id(seed, add_stock, confirmed_order, ship_dispatch):
    """Four units at 100.00 shipped from Mumbai; six remain on hand."""
    await add_stock(seed.warehouse_id, seed.product_id, 10)
    order_id = await confirmed_order((seed.product_id, 4))
    await ship_dispatch(order_id, {seed.product_id: 4})
    return order_id


def return_data(order_id, product_id, quantity):
    return ReturnCreate(
        sales_order_id=order_id,
        reason=ReturnReason.DEFECTIVE,
        items=[ReturnItemCreate(product_id=product_id, quantity=quantity)],
    )


async def test_return_needs_shipped_order(service, seed, add_stock, confirmed_order):
    await add_stock(seed.warehouse_id, seed.product_id, 10)
    order_id = await confirmed_order((seed.product_id, 2))
    with pytest.raises(InvalidStatus):
        await service.create_return(return_data(order_id, seed.product_id, 1))


async def test_full_return_restocks_and_refunds(service, seed, shipped_order_id, stock_of, db):
    assert await stock_of(seed.warehouse_id, seed.product_id) == (6, 0)

    rma = await service.create_return(return_data(shipped_order_id, seed.product_id, 3))
    rma_id = rma.id
    assert rma.status == ReturnStatus.REQUESTED.value
    assert rma.rma_number.startswith("RMA")
    assert rma.total_amount == Decimal("300.00")
    assert rma.customer_id == seed.customer_id
    assert rma.warehouse_id == seed.warehouse_id

    await service.approve_return(rma_id)
    await service.receive_return(rma_id)
    assert await stock_of(seed.warehouse_id, seed.product_id) == (6, 0)

    inspected = await service.inspect_return(
        rma_id,
        [InspectionLine(product_id=seed.product_id, quantity_accepted=2, quantity_rejected=1, condition=ItemCondition.OPENED)],
        notes="One unit cracked",
    )
    assert inspected.status == ReturnStatus.INSPECTED.value
    assert inspected.items[0].quantity_accepted == 2
    assert inspected.items[0].condition == ItemCondition.OPENED.value

    processed = await service.process_return(rma_id)
    assert processed.status == ReturnStatus.PROCESSED.value
    assert await stock_of(seed.warehouse_id, seed.product_id) == (8, 0)

    transactions = await InventoryLedger(db).get_transactions_for_reference(ReturnRef(rma_id))
    assert [(t.transaction_type, t.quantity) for t in transactions] == [("INWARD", 2)]

    refunded = await service.refund_return(rma_id, deductions=Decimal("20"))
    assert refunded.status == ReturnStatus.REFUNDED.value
    assert refunded.refund_amount == Decimal("180.00")
    assert refunded.deductions == Decimal("20.00")
    assert refunded.refund_method == "BANK_TRANSFER"


async def test_unrestockable_units_stay_out_of_stock(service, seed, shipped_order_id, stock_of):
    rma = await service.create_return(return_data(shipped_order_id, seed.product_id, 2))
    rma_id = rma.id
    await service.approve_return(rma_id)
    await service.receive_return(rma_id)
    await service.inspect_return(
        rma_id,
        [InspectionLine(product_id=seed.product_id, quantity_accepted=2, restockable=False, condition=ItemCondition.DAMAGED)],
    )
    await service.process_return(rma_id)

    assert await stock_of(seed.warehouse_id, seed.product_id) == (6, 0)


async def test_returnable_quantity_counts_earlier_returns(service, seed, shipped_order_id):
    first = await service.create_return(return_data(shipped_order_id, seed.product_id, 3))

    with pytest.raises(ExcessQuantity):
        await service.create_return(return_data(shipped_order_id, seed.product_id, 2))

    await service.reject_return(first.id, "Outside return window")
    again = await service.create_return(return_data(shipped_order_id, seed.product_id, 4))
    assert again.items[0].quantity == 4


async def test_returnable_quantity_is_what_shipped(service, seed, add_stock, confirmed_order, ship_dispatch, stock_of):
    await add_stock(seed.warehouse_id, seed.product_id, 10)
    order_id = await confirmed_order((seed.product_id, 5))
    await ship_dispatch(order_id, {seed.product_id: 3})
    assert await stock_of(seed.warehouse_id, seed.product_id) == (7, 0)

    # Two ordered units never left the warehouse
    with pytest.raises(ExcessQuantity):
        await service.create_return(return_data(order_id, seed.product_id, 4))

    rma = await service.create_return(return_data(order_id, seed.product_id, 3))
    rma_id = rma.id
    await service.approve_return(rma_id)
    await service.receive_return(rma_id)
    await service.inspect_return(
        rma_id,
        [InspectionLine(product_id=seed.product_id, quantity_accepted=3, condition=ItemCondition.GOOD)],
    )
    await service.process_return(rma_id)

    assert await stock_of(seed.warehouse_id, seed.product_id) == (10, 0)


async def test_product_not_on_order(service, seed, shipped_order_id):
    with pytest.raises(ValidationError):
        await service.create_return(return_data(shipped_order_id, seed.second_product_id, 1))


async def test_inspection_cannot_exceed_returned(service, seed, shipped_order_id):
    rma = await service.create_return(return_data(shipped_order_id, seed.product_id, 2))
    rma_id = rma.id
    await service.approve_return(rma_id)
    await service.receive_return(rma_id)

    with pytest.raises(ExcessQuantity):
        await service.inspect_return(
            rma_id,
            [InspectionLine(product_id=seed.product_id, quantity_accepted=2, quantity_rejected=1)],
        )
    rma = await service.get_return(rma_id)
    assert rma.status == ReturnStatus.RECEIVED.value


async def test_rejected_return(service, seed, shipped_order_id):
    rma = await service.create_return(return_data(shipped_order_id, seed.product_id, 1))
    rejected = await service.reject_return(rma.id, "Used item")
    assert rejected.status == ReturnStatus.REJECTED.value
    assert rejected.rejection_reason == "Used item"

    with pytest.raises(InvalidStatus):
        await service.approve_return(rma.id)


async def test_replacement_instead_of_refund(service, seed, shipped_order_id):
    rma = await service.create_return(return_data(shipped_order_id, seed.product_id, 1))
    rma_id = rma.id
    await service.approve_return(rma_id)
    await service.receive_return(rma_id)
    await service.inspect_return(rma_id, [InspectionLine(product_id=seed.product_id, quantity_accepted=1)])
    await service.process_return(rma_id)

    replaced = await service.replace_return(rma_id)
    assert replaced.status == ReturnStatus.REPLACED.value
    assert replaced.refund_amount == Decimal("0")


async def test_refund_cannot_skip_processing(service, seed, shipped_order_id):
    rma = await service.create_return(return_data(shipped_order_id, seed.product_id, 1))
    await service.approve_return(rma.id)
    with pytest.raises(InvalidStatus):
        await service.refund_return(rma.id)


def test_refund_never_negative():
    rma = SimpleNamespace(items=[SimpleNamespace(quantity_accepted=1, unit_price=Decimal("99.99"))])
    assert ReturnsService.calculate_refund(rma, Decimal("500")) == Decimal("0.00")
    assert ReturnsService.calculate_refund(rma) == Decimal("99.99")
