import uuid

import pytest

from erp_core.core.exceptions import InsufficientInventory, ValidationError
from erp_core.core.references import DispatchRef
from erp_core.database import unit_of_work
from erp_core.models.inventory import MovementType
from erp_core.services.inventory_ledger import InventoryLedger
from erp_core.services.stock_reservation_service import StockReservationService, ReservationItem


async def test_reserve_holds_stock_without_ledger_rows(db, seed, add_stock, stock_of):
    await add_stock(seed.warehouse_id, seed.product_id, 10)

    async with unit_of_work(db):
        reserved = await StockReservationService(db).reserve(seed.warehouse_id, seed.product_id, 4)

    assert reserved == 4
    assert await stock_of(seed.warehouse_id, seed.product_id) == (10, 4)
    transactions = await InventoryLedger(db).get_transactions(seed.warehouse_id, seed.product_id)
    assert len(transactions) == 1


async def test_reserve_more_than_free_is_refused(db, seed, add_stock, stock_of):
    await add_stock(seed.warehouse_id, seed.product_id, 10)
    service = StockReservationService(db)
    async with unit_of_work(db):
        await service.reserve(seed.warehouse_id, seed.product_id, 7)

    with pytest.raises(InsufficientInventory):
        async with unit_of_work(db):
            await service.reserve(seed.warehouse_id, seed.product_id, 4)

    assert await stock_of(seed.warehouse_id, seed.product_id) == (10, 7)


async def test_reserve_without_record_is_refused(db, seed):
    with pytest.raises(InsufficientInventory):
        await StockReservationService(db).reserve(seed.warehouse_id, seed.product_id, 1)


async def test_reserve_all_is_all_or_nothing(db, seed, add_stock, stock_of):
    await add_stock(seed.warehouse_id, seed.product_id, 10)
    await add_stock(seed.warehouse_id, seed.second_product_id, 2)

    with pytest.raises(InsufficientInventory):
        async with unit_of_work(db):
            await StockReservationService(db).reserve_all(
                seed.warehouse_id,
                [
                    ReservationItem(product_id=seed.product_id, quantity=5),
                    ReservationItem(product_id=seed.second_product_id, quantity=3),
                ],
            )

    assert await stock_of(seed.warehouse_id, seed.product_id) == (10, 0)
    assert await stock_of(seed.warehouse_id, seed.second_product_id) == (2, 0)


async def test_release_floors_at_zero(db, seed, add_stock, stock_of):
    await add_stock(seed.warehouse_id, seed.product_id, 10)
    service = StockReservationService(db)
    async with unit_of_work(db):
        await service.reserve(seed.warehouse_id, seed.product_id, 3)
        assert await service.release(seed.warehouse_id, seed.product_id, 5) == 0

    assert await stock_of(seed.warehouse_id, seed.product_id) == (10, 0)


async def test_release_without_record_is_a_no_op(db, seed):
    assert await StockReservationService(db).release(seed.warehouse_id, seed.product_id, 2) == 0


async def test_consume_decrements_both_counters(db, seed, add_stock, stock_of):
    await add_stock(seed.warehouse_id, seed.product_id, 10)
    service = StockReservationService(db)
    dispatch_id = uuid.uuid4()

    async with unit_of_work(db):
        await service.reserve(seed.warehouse_id, seed.product_id, 6)
        txn = await service.consume(seed.warehouse_id, seed.product_id, 6, DispatchRef(dispatch_id))

    assert txn.transaction_type == MovementType.OUTWARD.value
    assert txn.quantity == -6
    assert txn.reference_id == dispatch_id
    assert await stock_of(seed.warehouse_id, seed.product_id) == (4, 0)


@pytest.mark.parametrize("quantity", [0, -1])
async def test_quantities_must_be_positive(db, seed, quantity):
    with pytest.raises(ValidationError):
        await StockReservationService(db).reserve(seed.warehouse_id, seed.product_id, quantity)
