from types import SimpleNamespace

import pytest

from erp_core.core.exceptions import InvalidStatus
from erp_core.models.dispatch import DispatchStatus
from erp_core.models.purchase import POStatus
from erp_core.models.return_order import ReturnStatus
from erp_core.models.sales_order import SalesOrderStatus
from erp_core.models.stock_transfer import TransferStatus
from erp_core.models.supplier_payment import SupplierPaymentStatus
from erp_core.services.state_machines import (
    SALES_ORDER_TRANSITIONS,
    STATE_MACHINES,
    can_transition,
    get_allowed_transitions,
    require_status,
    transition,
    validate_transition,
)


def test_every_status_of_each_machine_has_an_entry():
    enums = {
        "Sales order": SalesOrderStatus,
        "Purchase order": POStatus,
        "Dispatch": DispatchStatus,
        "Transfer": TransferStatus,
        "Return": ReturnStatus,
        "Supplier payment": SupplierPaymentStatus,
    }
    for machine, enum in enums.items():
        table = STATE_MACHINES[machine]
        assert {s.value for s in enum} == {getattr(s, "value", s) for s in table}


@pytest.mark.parametrize(
    "current, target, allowed",
    [
        ("PENDING", "CONFIRMED", True),
        ("CONFIRMED", "PROCESSING", True),
        ("ON_HOLD", "CONFIRMED", True),
        ("SHIPPED", "CANCELLED", False),
        ("DELIVERED", "SHIPPED", False),
        ("CANCELLED", "PENDING", False),
        ("PENDING", "PENDING", False),
        ("DRAFT", "PENDING", True),
        ("DRAFT", "ON_HOLD", False),
    ],
)
def test_sales_order_transitions(current, target, allowed):
    assert can_transition(SALES_ORDER_TRANSITIONS, current, target) is allowed


def test_terminal_state_message():
    with pytest.raises(InvalidStatus, match="terminal state"):
        validate_transition("Sales order", "DELIVERED", "CANCELLED")


def test_invalid_transition_lists_allowed_targets():
    with pytest.raises(InvalidStatus) as exc_info:
        validate_transition("Return", "REQUESTED", "PROCESSED")
    assert "APPROVED" in exc_info.value.message
    assert "REJECTED" in exc_info.value.message


def test_self_transition_only_where_listed():
    validate_transition("Purchase order", "PARTIALLY_RECEIVED", "PARTIALLY_RECEIVED")
    with pytest.raises(InvalidStatus):
        validate_transition("Purchase order", "APPROVED", "APPROVED")


def test_allowed_transitions_are_sorted():
    assert get_allowed_transitions(STATE_MACHINES["Transfer"], "APPROVED") == ["CANCELLED", "IN_TRANSIT"]


def test_transition_sets_status_and_its_timestamp():
    dispatch = SimpleNamespace(id="d-1", status="PACKING", packing_completed_at=None, shipped_at=None)
    transition("Dispatch", dispatch, DispatchStatus.PACKED)
    assert dispatch.status == "PACKED"
    assert dispatch.packing_completed_at is not None
    assert dispatch.shipped_at is None


def test_timestamps_do_not_leak_between_machines():
    # IN_TRANSIT stamps shipped_at on a transfer but nothing on a dispatch
    dispatch = SimpleNamespace(id="d-1", status="SHIPPED", shipped_at=None)
    transition("Dispatch", dispatch, DispatchStatus.IN_TRANSIT)
    assert dispatch.shipped_at is None

    transfer = SimpleNamespace(id="t-1", status="APPROVED", shipped_at=None)
    transition("Transfer", transfer, TransferStatus.IN_TRANSIT)
    assert transfer.shipped_at is not None


def test_failed_transition_leaves_document_untouched():
    order = SimpleNamespace(id="o-1", status="SHIPPED", cancelled_at=None)
    with pytest.raises(InvalidStatus):
        transition("Sales order", order, SalesOrderStatus.CANCELLED)
    assert order.status == "SHIPPED"
    assert order.cancelled_at is None


def test_require_status():
    require_status("Dispatch", "PICKING", {DispatchStatus.PICKING}, "record picked items")
    with pytest.raises(InvalidStatus, match="record picked items"):
        require_status("Dispatch", "PENDING", {DispatchStatus.PICKING}, "record picked items")
