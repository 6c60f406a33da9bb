import pytest
from pydantic import ValidationError as PydanticValidationError

from erp_core.core.exceptions import ExcessQuantity, InsufficientInventory, InvalidStatus, SameWarehouse
from erp_core.core.references import TransferRef
from erp_core.models.stock_transfer import TransferStatus
from erp_core.schemas.transfer import TransferCreate, TransferItemCreate, TransferLineQuantity
from erp_core.services.inventory_ledger import InventoryLedger
from erp_core.services.transfer_service import TransferService


@pytest.fixture
def service(db):
    return TransferService(db)


def transfer_data(seed, quantity, to_warehouse_id=None):
    return TransferCreate(
        from_warehouse_id=seed.warehouse_id,
        to_warehouse_id=to_warehouse_id or seed.second_warehouse_id,
        items=[TransferItemCreate(product_id=seed.product_id, quantity=quantity)],
    )


async def test_same_warehouse_refused(service, seed):
    with pytest.raises(SameWarehouse):
        await service.create_transfer(transfer_data(seed, 1, to_warehouse_id=seed.warehouse_id))


async def test_create_checks_free_stock_but_holds_nothing(service, seed, add_stock, stock_of):
    await add_stock(seed.warehouse_id, seed.product_id, 5)

    with pytest.raises(InsufficientInventory):
        await service.create_transfer(transfer_data(seed, 6))

    transfer = await service.create_transfer(transfer_data(seed, 5))
    assert transfer.status == TransferStatus.PENDING.value
    assert transfer.transfer_number.startswith("TRF")
    assert transfer.total_quantity == 5
    assert await stock_of(seed.warehouse_id, seed.product_id) == (5, 0)


async def test_partial_ship_and_transit_loss(service, seed, add_stock, stock_of, db):
    await add_stock(seed.warehouse_id, seed.product_id, 20)
    transfer = await service.create_transfer(transfer_data(seed, 10))
    transfer_id = transfer.id

    approved = await service.approve_transfer(transfer_id)
    assert approved.approved_at is not None
    assert await stock_of(seed.warehouse_id, seed.product_id) == (20, 10)

    shipped = await service.ship_transfer(
        transfer_id,
        items=[TransferLineQuantity(product_id=seed.product_id, quantity=8)],
        vehicle_number="MH12AB1234",
    )
    assert shipped.status == TransferStatus.IN_TRANSIT.value
    assert shipped.items[0].quantity_shipped == 8
    assert await stock_of(seed.warehouse_id, seed.product_id) == (20, 8)

    received = await service.receive_transfer(
        transfer_id,
        items=[TransferLineQuantity(product_id=seed.product_id, quantity=7)],
    )
    assert received.status == TransferStatus.COMPLETED.value
    assert received.items[0].quantity_received == 7

    assert await stock_of(seed.warehouse_id, seed.product_id) == (12, 0)
    assert await stock_of(seed.second_warehouse_id, seed.product_id) == (7, 0)

    transactions = await InventoryLedger(db).get_transactions_for_reference(TransferRef(transfer_id))
    assert sorted((t.transaction_type, t.quantity) for t in transactions) == [
        ("TRANSFER_IN", 7),
        ("TRANSFER_OUT", -8),
    ]


async def test_cannot_ship_more_than_requested(service, seed, add_stock, stock_of):
    await add_stock(seed.warehouse_id, seed.product_id, 20)
    transfer = await service.create_transfer(transfer_data(seed, 5))
    transfer_id = transfer.id
    await service.approve_transfer(transfer_id)

    with pytest.raises(ExcessQuantity):
        await service.ship_transfer(transfer_id, items=[TransferLineQuantity(product_id=seed.product_id, quantity=6)])

    assert await stock_of(seed.warehouse_id, seed.product_id) == (20, 5)
    transfer = await service.get_transfer_by_id(transfer_id)
    assert transfer.status == TransferStatus.APPROVED.value


async def test_cannot_receive_more_than_shipped(service, seed, add_stock):
    await add_stock(seed.warehouse_id, seed.product_id, 20)
    transfer = await service.create_transfer(transfer_data(seed, 5))
    transfer_id = transfer.id
    await service.approve_transfer(transfer_id)
    await service.ship_transfer(transfer_id)

    with pytest.raises(ExcessQuantity):
        await service.receive_transfer(transfer_id, items=[TransferLineQuantity(product_id=seed.product_id, quantity=6)])


async def test_approval_fails_when_stock_was_taken_meanwhile(service, seed, add_stock, stock_of, db):
    await add_stock(seed.warehouse_id, seed.product_id, 5)
    first = await service.create_transfer(transfer_data(seed, 4))
    second = await service.create_transfer(transfer_data(seed, 4))
    second_id = second.id

    await service.approve_transfer(first.id)
    with pytest.raises(InsufficientInventory):
        await service.approve_transfer(second_id)

    transfer = await service.get_transfer_by_id(second_id)
    assert transfer.status == TransferStatus.PENDING.value
    assert await stock_of(seed.warehouse_id, seed.product_id) == (5, 4)


async def test_cancel_approved_releases_reservation(service, seed, add_stock, stock_of):
    await add_stock(seed.warehouse_id, seed.product_id, 10)
    transfer = await service.create_transfer(transfer_data(seed, 6))
    transfer_id = transfer.id
    await service.approve_transfer(transfer_id)

    cancelled = await service.cancel_transfer(transfer_id, reason="Demand moved")
    assert cancelled.status == TransferStatus.CANCELLED.value
    assert cancelled.cancellation_reason == "Demand moved"
    assert await stock_of(seed.warehouse_id, seed.product_id) == (10, 0)

    with pytest.raises(InvalidStatus):
        await service.cancel_transfer(transfer_id)
    assert await stock_of(seed.warehouse_id, seed.product_id) == (10, 0)


async def test_in_transit_transfer_cannot_be_cancelled(service, seed, add_stock):
    await add_stock(seed.warehouse_id, seed.product_id, 10)
    transfer = await service.create_transfer(transfer_data(seed, 2))
    await service.approve_transfer(transfer.id)
    await service.ship_transfer(transfer.id)

    with pytest.raises(InvalidStatus):
        await service.cancel_transfer(transfer.id)


async def test_reject_pending_transfer(service, seed, add_stock, stock_of):
    await add_stock(seed.warehouse_id, seed.product_id, 10)
    transfer = await service.create_transfer(transfer_data(seed, 2))

    rejected = await service.reject_transfer(transfer.id, reason="Not needed")
    assert rejected.status == TransferStatus.REJECTED.value
    assert rejected.rejection_reason == "Not needed"
    assert await stock_of(seed.warehouse_id, seed.product_id) == (10, 0)


async def test_list_filters_by_source(service, seed, add_stock):
    await add_stock(seed.warehouse_id, seed.product_id, 10)
    await service.create_transfer(transfer_data(seed, 1))
    await service.create_transfer(transfer_data(seed, 1, to_warehouse_id=seed.us_warehouse_id))

    transfers, total = await service.get_transfers(from_warehouse_id=seed.warehouse_id)
    assert total == 2
    transfers, total = await service.get_transfers(to_warehouse_id=seed.us_warehouse_id)
    assert total == 1
    assert transfers[0].to_warehouse_id == seed.us_warehouse_id


async def test_product_may_appear_on_one_line_only(seed):
    with pytest.raises(PydanticValidationError, match="more than one line"):
        TransferCreate(
            from_warehouse_id=seed.warehouse_id,
            to_warehouse_id=seed.second_warehouse_id,
            items=[
                TransferItemCreate(product_id=seed.product_id, quantity=2),
                TransferItemCreate(product_id=seed.product_id, quantity=3),
            ],
        )
