from decimal import Decimal

import pytest

from erp_core.core.exceptions import ExcessQuantity, HasGRN, InvalidStatus, ValidationError
from erp_core.core.references import GrnRef
from erp_core.models.purchase import GRNStatus, POStatus
from erp_core.schemas.purchase import (
    GRNCreate,
    GRNItemCreate,
    PurchaseOrderCreate,
    PurchaseOrderItemCreate,
)
from erp_core.services.grn_service import GRNService
from erp_core.services.inventory_ledger import InventoryLedger
from erp_core.services.purchase_service import PurchaseOrderService


@pytest.fixture
def po_service(db):
    return PurchaseOrderService(db)


@pytest.fixture
def grn_service(db):
    return GRNService(db)


@pytest.fixture
def approved_po(po_service, seed):
    """PO for 10 units of the first product, submitted and approved."""
    async def _approved_po(quantity: int = 10):
        po = await po_service.create_purchase_order(PurchaseOrderCreate(
            supplier_id=seed.supplier_id,
            warehouse_id=seed.warehouse_id,
            items=[PurchaseOrderItemCreate(
                product_id=seed.product_id,
                quantity=quantity,
                unit_price=Decimal("60.00"),
                tax_percent=Decimal("18"),
            )],
        ))
        await po_service.submit_purchase_order(po.id)
        approved = await po_service.approve_purchase_order(po.id)
        return approved.id
    return _approved_po


def grn_data(po_id, product_id, accepted, rejected=0):
    return GRNCreate(
        purchase_order_id=po_id,
        items=[GRNItemCreate(product_id=product_id, quantity_accepted=accepted, quantity_rejected=rejected)],
    )


async def test_purchase_order_totals_and_approval(po_service, seed):
    po = await po_service.create_purchase_order(PurchaseOrderCreate(
        supplier_id=seed.supplier_id,
        warehouse_id=seed.warehouse_id,
        items=[PurchaseOrderItemCreate(product_id=seed.product_id, quantity=10, unit_price=Decimal("60.00"), tax_percent=Decimal("18"))],
        shipping_amount=Decimal("50"),
    ))
    assert po.status == POStatus.DRAFT.value
    assert po.po_number.startswith("PO")
    assert po.subtotal == Decimal("600.00")
    assert po.tax_amount == Decimal("108.00")
    assert po.total_amount == Decimal("758.00")

    po_id = po.id
    with pytest.raises(InvalidStatus):
        await po_service.approve_purchase_order(po_id)

    await po_service.submit_purchase_order(po_id)
    approved = await po_service.approve_purchase_order(po_id)
    assert approved.status == POStatus.APPROVED.value
    assert approved.approved_at is not None

    sent = await po_service.send_purchase_order(po_id)
    assert sent.status == POStatus.SENT.value


async def test_rejected_purchase_order_keeps_reason(po_service, seed):
    po = await po_service.create_purchase_order(PurchaseOrderCreate(
        supplier_id=seed.supplier_id,
        warehouse_id=seed.warehouse_id,
        items=[PurchaseOrderItemCreate(product_id=seed.product_id, quantity=1, unit_price=Decimal("1"))],
    ))
    await po_service.submit_purchase_order(po.id)
    rejected = await po_service.reject_purchase_order(po.id, "Price too high")
    assert rejected.status == POStatus.REJECTED.value
    assert rejected.rejection_reason == "Price too high"


async def test_grn_needs_an_approved_po(po_service, grn_service, seed):
    po = await po_service.create_purchase_order(PurchaseOrderCreate(
        supplier_id=seed.supplier_id,
        warehouse_id=seed.warehouse_id,
        items=[PurchaseOrderItemCreate(product_id=seed.product_id, quantity=5, unit_price=Decimal("60"))],
    ))
    with pytest.raises(InvalidStatus):
        await grn_service.create_grn(grn_data(po.id, seed.product_id, 5))


async def test_partial_receipt_with_rejections(grn_service, po_service, seed, approved_po, stock_of, db):
    po_id = await approved_po(10)

    grn = await grn_service.create_grn(grn_data(po_id, seed.product_id, accepted=8, rejected=2))
    assert grn.status == GRNStatus.PENDING_VERIFICATION.value
    assert grn.items[0].quantity_received == 10
    assert await stock_of(seed.warehouse_id, seed.product_id) == (0, 0)

    verified = await grn_service.verify_grn(grn.id)
    assert verified.status == GRNStatus.VERIFIED.value
    assert verified.verified_at is not None
    assert await stock_of(seed.warehouse_id, seed.product_id) == (8, 0)

    po = await po_service.get_purchase_order(po_id)
    assert po.status == POStatus.PARTIALLY_RECEIVED.value
    assert po.items[0].quantity_received == 8
    assert po.items[0].quantity_pending == 2

    transactions = await InventoryLedger(db).get_transactions_for_reference(GrnRef(grn.id))
    assert [(t.transaction_type, t.quantity) for t in transactions] == [("INWARD", 8)]

    second = await grn_service.create_grn(grn_data(po_id, seed.product_id, accepted=2))
    await grn_service.verify_grn(second.id)
    po = await po_service.get_purchase_order(po_id)
    assert po.status == POStatus.RECEIVED.value
    assert await stock_of(seed.warehouse_id, seed.product_id) == (10, 0)


async def test_receipt_beyond_outstanding_is_refused(grn_service, seed, approved_po):
    po_id = await approved_po(10)
    with pytest.raises(ExcessQuantity):
        await grn_service.create_grn(grn_data(po_id, seed.product_id, accepted=9, rejected=2))


async def test_sibling_grns_rechecked_at_verification(grn_service, seed, approved_po, stock_of):
    po_id = await approved_po(10)
    first = await grn_service.create_grn(grn_data(po_id, seed.product_id, accepted=6))
    second = await grn_service.create_grn(grn_data(po_id, seed.product_id, accepted=6))
    first_id, second_id = first.id, second.id

    await grn_service.verify_grn(first_id)
    with pytest.raises(ExcessQuantity):
        await grn_service.verify_grn(second_id)

    assert await stock_of(seed.warehouse_id, seed.product_id) == (6, 0)
    pending = await grn_service.get_grn(second_id)
    assert pending.status == GRNStatus.PENDING_VERIFICATION.value


async def test_product_not_on_po(grn_service, seed, approved_po):
    po_id = await approved_po(10)
    with pytest.raises(ValidationError):
        await grn_service.create_grn(grn_data(po_id, seed.second_product_id, accepted=1))


async def test_rejected_grn_moves_no_stock(grn_service, seed, approved_po, stock_of):
    po_id = await approved_po(10)
    grn = await grn_service.create_grn(grn_data(po_id, seed.product_id, accepted=4))
    rejected = await grn_service.reject_grn(grn.id, "Wrong delivery")
    assert rejected.status == GRNStatus.REJECTED.value
    assert rejected.rejection_reason == "Wrong delivery"
    assert await stock_of(seed.warehouse_id, seed.product_id) == (0, 0)

    with pytest.raises(InvalidStatus):
        await grn_service.verify_grn(grn.id)


async def test_discrepancy_keeps_status(grn_service, seed, approved_po):
    po_id = await approved_po(10)
    grn = await grn_service.create_grn(grn_data(po_id, seed.product_id, accepted=3))
    flagged = await grn_service.report_discrepancy(grn.id, "Two cartons dented")
    assert flagged.has_discrepancy is True
    assert flagged.discrepancy_notes == "Two cartons dented"
    assert flagged.status == GRNStatus.PENDING_VERIFICATION.value


async def test_po_with_grn_cannot_be_cancelled(po_service, grn_service, seed, approved_po):
    po_id = await approved_po(10)
    await grn_service.create_grn(grn_data(po_id, seed.product_id, accepted=1))

    with pytest.raises(HasGRN):
        await po_service.cancel_purchase_order(po_id)

    po = await po_service.get_purchase_order(po_id)
    assert po.status == POStatus.APPROVED.value


async def test_po_without_grn_can_be_cancelled(po_service, approved_po):
    po_id = await approved_po(10)
    cancelled = await po_service.cancel_purchase_order(po_id)
    assert cancelled.status == POStatus.CANCELLED.value


async def test_receipt_summary(po_service, grn_service, seed, approved_po):
    po_id = await approved_po(10)
    grn = await grn_service.create_grn(grn_data(po_id, seed.product_id, accepted=7))
    await grn_service.verify_grn(grn.id)

    summary = await po_service.get_receipt_summary(po_id)
    assert summary[0]["quantity_ordered"] == 10
    assert summary[0]["quantity_received"] == 7
    assert summary[0]["quantity_pending"] == 3
