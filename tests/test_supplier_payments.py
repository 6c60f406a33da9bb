from decimal import Decimal

import pytest

from erp_core.core.exceptions import ExcessAmount, HasPayments, InvalidStatus, NotFound, ValidationError
from erp_core.models.supplier import Supplier
from erp_core.models.supplier_payment import SupplierPaymentStatus
from erp_core.schemas.purchase import PurchaseOrderCreate, PurchaseOrderItemCreate
from erp_core.schemas.supplier_payment import SupplierPaymentCreate
from erp_core.services.purchase_service import PurchaseOrderService
from erp_core.services.supplier_payment_service import SupplierPaymentService


@pytest.fixture
def service(db):
    return SupplierPaymentService(db)


@pytest.fixture
def purchase_order(db, seed):
    """PO for 10 units at 60.00 plus 18% tax (708.00); approved unless ``approve`` is False."""
    async def _purchase_order(approve: bool = True):
        po_service = PurchaseOrderService(db)
        po = await po_service.create_purchase_order(PurchaseOrderCreate(
            supplier_id=seed.supplier_id,
            warehouse_id=seed.warehouse_id,
            items=[PurchaseOrderItemCreate(
                product_id=seed.product_id,
                quantity=10,
                unit_price=Decimal("60.00"),
                tax_percent=Decimal("18"),
            )],
        ))
        po_id = po.id
        if approve:
            await po_service.submit_purchase_order(po_id)
            await po_service.approve_purchase_order(po_id)
        return po_id
    return _purchase_order


def payment_data(seed, po_id, amount, supplier_id=None):
    return SupplierPaymentCreate(
        supplier_id=supplier_id or seed.supplier_id,
        purchase_order_id=po_id,
        amount=Decimal(amount),
        reference_number="UTR-1",
    )


async def test_payment_flow_updates_po_paid_amount(service, seed, purchase_order, db):
    po_id = await purchase_order()

    payment = await service.create_payment(payment_data(seed, po_id, "500.00"))
    payment_id = payment.id
    assert payment.status == SupplierPaymentStatus.PENDING.value
    assert payment.payment_number.startswith("SPAY")

    with pytest.raises(InvalidStatus):
        await service.process_payment(payment_id)

    approved = await service.approve_payment(payment_id)
    assert approved.status == SupplierPaymentStatus.APPROVED.value
    assert approved.approved_at is not None

    processed = await service.process_payment(payment_id)
    assert processed.status == SupplierPaymentStatus.PROCESSED.value
    assert processed.processed_at is not None

    po = await PurchaseOrderService(db).get_purchase_order(po_id)
    assert po.paid_amount == Decimal("500.00")

    with pytest.raises(InvalidStatus):
        await service.cancel_payment(payment_id)


async def test_payments_cannot_pass_po_total(service, seed, purchase_order):
    po_id = await purchase_order()
    await service.create_payment(payment_data(seed, po_id, "700.00"))

    with pytest.raises(ExcessAmount):
        await service.create_payment(payment_data(seed, po_id, "8.01"))

    last = await service.create_payment(payment_data(seed, po_id, "8.00"))
    assert last.amount == Decimal("8.00")


async def test_cancelled_payment_frees_the_amount(service, seed, purchase_order):
    po_id = await purchase_order()
    payment = await service.create_payment(payment_data(seed, po_id, "708.00"))

    cancelled = await service.cancel_payment(payment.id, "Wrong account")
    assert cancelled.status == SupplierPaymentStatus.CANCELLED.value
    assert cancelled.cancellation_reason == "Wrong account"

    again = await service.create_payment(payment_data(seed, po_id, "708.00"))
    assert again.status == SupplierPaymentStatus.PENDING.value


async def test_unapproved_po_cannot_be_paid(service, seed, purchase_order):
    po_id = await purchase_order(approve=False)
    with pytest.raises(InvalidStatus):
        await service.create_payment(payment_data(seed, po_id, "10.00"))


async def test_po_of_another_supplier(service, seed, purchase_order, db):
    other = Supplier(code="S-002", name="Hydro Parts")
    db.add(other)
    await db.commit()

    po_id = await purchase_order()
    with pytest.raises(ValidationError):
        await service.create_payment(payment_data(seed, po_id, "10.00", supplier_id=other.id))


async def test_unknown_purchase_order(service, seed):
    with pytest.raises(NotFound):
        await service.create_payment(payment_data(seed, seed.warehouse_id, "10.00"))


async def test_po_with_live_payment_cannot_be_cancelled(service, seed, purchase_order, db):
    po_id = await purchase_order()
    payment = await service.create_payment(payment_data(seed, po_id, "100.00"))

    po_service = PurchaseOrderService(db)
    with pytest.raises(HasPayments):
        await po_service.cancel_purchase_order(po_id)

    await service.cancel_payment(payment.id)
    cancelled = await po_service.cancel_purchase_order(po_id)
    assert cancelled.status == "CANCELLED"


async def test_list_filters(service, seed, purchase_order):
    po_id = await purchase_order()
    first = await service.create_payment(payment_data(seed, po_id, "100.00"))
    await service.create_payment(payment_data(seed, po_id, "50.00"))
    await service.approve_payment(first.id)

    payments, total = await service.list_payments(purchase_order_id=po_id)
    assert total == 2
    approved, total = await service.list_payments(status=SupplierPaymentStatus.APPROVED.value)
    assert total == 1
    assert approved[0].id == first.id
