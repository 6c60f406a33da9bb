"""
Document State Machines

This module is the SINGLE SOURCE OF TRUTH for every workflow status
transition: sales orders, purchase orders, GRNs, dispatches, transfers,
returns and stock adjustments. Services never assign ``status`` directly;
they call ``transition()``.

A self-transition is only legal where the table lists it.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional, Set

from erp_core.core.exceptions import InvalidStatus
from erp_core.models.sales_order import SalesOrderStatus
from erp_core.models.purchase import POStatus, GRNStatus
from erp_core.models.dispatch import DispatchStatus
from erp_core.models.stock_transfer import TransferStatus
from erp_core.models.return_order import ReturnStatus
from erp_core.models.stock_adjustment import AdjustmentStatus
from erp_core.models.supplier_payment import SupplierPaymentStatus


logger = logging.getLogger(__name__)


# =============================================================================
# TRANSITION RULES
# =============================================================================

# Format: current_status -> {allowed next statuses}
SALES_ORDER_TRANSITIONS: Dict[str, Set[str]] = {
    SalesOrderStatus.DRAFT: {
        SalesOrderStatus.PENDING,       # Submitted, stock reserved
        SalesOrderStatus.CANCELLED,
    },
    SalesOrderStatus.PENDING: {
        SalesOrderStatus.CONFIRMED,
        SalesOrderStatus.ON_HOLD,
        SalesOrderStatus.CANCELLED,
    },
    SalesOrderStatus.CONFIRMED: {
        SalesOrderStatus.PROCESSING,    # Invoice generated
        SalesOrderStatus.PACKED,
        SalesOrderStatus.SHIPPED,       # Dispatch shipped
        SalesOrderStatus.ON_HOLD,
        SalesOrderStatus.CANCELLED,
    },
    SalesOrderStatus.PROCESSING: {
        SalesOrderStatus.PROCESSING,    # Invoice on an order already processing
        SalesOrderStatus.PACKED,
        SalesOrderStatus.SHIPPED,
        SalesOrderStatus.ON_HOLD,
        SalesOrderStatus.CANCELLED,
    },
    SalesOrderStatus.PACKED: {
        SalesOrderStatus.SHIPPED,
        SalesOrderStatus.ON_HOLD,
        SalesOrderStatus.CANCELLED,
    },
    SalesOrderStatus.ON_HOLD: {
        SalesOrderStatus.CONFIRMED,     # Release hold
        SalesOrderStatus.CANCELLED,
    },
    SalesOrderStatus.SHIPPED: {
        SalesOrderStatus.DELIVERED,
    },
    SalesOrderStatus.DELIVERED: set(),  # Terminal
    SalesOrderStatus.CANCELLED: set(),  # Terminal
}

PO_TRANSITIONS: Dict[str, Set[str]] = {
    POStatus.DRAFT: {
        POStatus.PENDING,               # Submit for approval
        POStatus.CANCELLED,
    },
    POStatus.PENDING: {
        POStatus.APPROVED,
        POStatus.REJECTED,
        POStatus.CANCELLED,
    },
    POStatus.APPROVED: {
        POStatus.SENT,                  # Send PO to supplier
        POStatus.PARTIALLY_RECEIVED,    # Goods arrived before sending was recorded
        POStatus.RECEIVED,
        POStatus.CANCELLED,
    },
    POStatus.SENT: {
        POStatus.PARTIALLY_RECEIVED,
        POStatus.RECEIVED,
        POStatus.CANCELLED,
    },
    POStatus.PARTIALLY_RECEIVED: {
        POStatus.PARTIALLY_RECEIVED,    # Receive more goods
        POStatus.RECEIVED,
    },
    POStatus.RECEIVED: set(),
    POStatus.REJECTED: set(),
    POStatus.CANCELLED: set(),
}

GRN_TRANSITIONS: Dict[str, Set[str]] = {
    GRNStatus.DRAFT: {
        GRNStatus.PENDING_VERIFICATION,
        GRNStatus.REJECTED,
    },
    GRNStatus.PENDING_VERIFICATION: {
        GRNStatus.VERIFIED,
        GRNStatus.REJECTED,
    },
    GRNStatus.VERIFIED: set(),
    GRNStatus.REJECTED: set(),
}

DISPATCH_TRANSITIONS: Dict[str, Set[str]] = {
    DispatchStatus.PENDING: {DispatchStatus.PICKING},
    DispatchStatus.PICKING: {DispatchStatus.PICKED},
    DispatchStatus.PICKED: {DispatchStatus.PACKING},
    DispatchStatus.PACKING: {DispatchStatus.PACKED},
    DispatchStatus.PACKED: {DispatchStatus.READY_TO_SHIP},
    DispatchStatus.READY_TO_SHIP: {DispatchStatus.SHIPPED},
    DispatchStatus.SHIPPED: {
        DispatchStatus.IN_TRANSIT,
        DispatchStatus.OUT_FOR_DELIVERY,
        DispatchStatus.DELIVERED,
        DispatchStatus.FAILED,
    },
    DispatchStatus.IN_TRANSIT: {
        DispatchStatus.OUT_FOR_DELIVERY,
        DispatchStatus.DELIVERED,
        DispatchStatus.FAILED,
    },
    DispatchStatus.OUT_FOR_DELIVERY: {
        DispatchStatus.DELIVERED,
        DispatchStatus.FAILED,
    },
    DispatchStatus.DELIVERED: set(),
    DispatchStatus.FAILED: set(),
}

TRANSFER_TRANSITIONS: Dict[str, Set[str]] = {
    TransferStatus.PENDING: {
        TransferStatus.APPROVED,
        TransferStatus.REJECTED,
        TransferStatus.CANCELLED,
    },
    TransferStatus.APPROVED: {
        TransferStatus.IN_TRANSIT,
        TransferStatus.CANCELLED,
    },
    TransferStatus.IN_TRANSIT: {TransferStatus.COMPLETED},
    TransferStatus.COMPLETED: set(),
    TransferStatus.REJECTED: set(),
    TransferStatus.CANCELLED: set(),
}

# Each return transition has a single legal predecessor
RETURN_TRANSITIONS: Dict[str, Set[str]] = {
    ReturnStatus.REQUESTED: {ReturnStatus.APPROVED, ReturnStatus.REJECTED},
    ReturnStatus.APPROVED: {ReturnStatus.RECEIVED},
    ReturnStatus.RECEIVED: {ReturnStatus.INSPECTED},
    ReturnStatus.INSPECTED: {ReturnStatus.PROCESSED},
    ReturnStatus.PROCESSED: {ReturnStatus.REFUNDED, ReturnStatus.REPLACED},
    ReturnStatus.REJECTED: set(),
    ReturnStatus.REFUNDED: set(),
    ReturnStatus.REPLACED: set(),
}

ADJUSTMENT_TRANSITIONS: Dict[str, Set[str]] = {
    AdjustmentStatus.PENDING: {AdjustmentStatus.APPROVED, AdjustmentStatus.REJECTED},
    AdjustmentStatus.APPROVED: set(),
    AdjustmentStatus.REJECTED: set(),
}


SUPPLIER_PAYMENT_TRANSITIONS: Dict[str, Set[str]] = {
    SupplierPaymentStatus.PENDING: {
        SupplierPaymentStatus.APPROVED,
        SupplierPaymentStatus.CANCELLED,
    },
    SupplierPaymentStatus.APPROVED: {
        SupplierPaymentStatus.PROCESSED,
        SupplierPaymentStatus.CANCELLED,
    },
    SupplierPaymentStatus.PROCESSED: set(),
    SupplierPaymentStatus.CANCELLED: set(),
}


# Machine name -> table; the name appears in error messages and logs
STATE_MACHINES: Dict[str, Dict[str, Set[str]]] = {
    "Sales order": SALES_ORDER_TRANSITIONS,
    "Purchase order": PO_TRANSITIONS,
    "GRN": GRN_TRANSITIONS,
    "Dispatch": DISPATCH_TRANSITIONS,
    "Transfer": TRANSFER_TRANSITIONS,
    "Return": RETURN_TRANSITIONS,
    "Adjustment": ADJUSTMENT_TRANSITIONS,
    "Supplier payment": SUPPLIER_PAYMENT_TRANSITIONS,
}

# Timestamp attribute stamped when a document enters a status
TRANSITION_TIMESTAMPS: Dict[str, Dict[str, str]] = {
    "Sales order": {
        SalesOrderStatus.CONFIRMED: "confirmed_at",
        SalesOrderStatus.CANCELLED: "cancelled_at",
        SalesOrderStatus.SHIPPED: "shipped_at",
        SalesOrderStatus.DELIVERED: "delivered_at",
    },
    "Purchase order": {
        POStatus.APPROVED: "approved_at",
        POStatus.SENT: "sent_at",
        POStatus.CANCELLED: "cancelled_at",
    },
    "GRN": {
        GRNStatus.VERIFIED: "verified_at",
    },
    "Dispatch": {
        DispatchStatus.PICKING: "picking_started_at",
        DispatchStatus.PICKED: "picking_completed_at",
        DispatchStatus.PACKING: "packing_started_at",
        DispatchStatus.PACKED: "packing_completed_at",
        DispatchStatus.SHIPPED: "shipped_at",
        DispatchStatus.DELIVERED: "delivered_at",
    },
    "Transfer": {
        TransferStatus.APPROVED: "approved_at",
        TransferStatus.IN_TRANSIT: "shipped_at",
        TransferStatus.COMPLETED: "received_at",
    },
    "Return": {
        ReturnStatus.RECEIVED: "received_at",
        ReturnStatus.INSPECTED: "inspected_at",
        ReturnStatus.PROCESSED: "processed_at",
        ReturnStatus.REFUNDED: "refunded_at",
    },
    "Adjustment": {
        AdjustmentStatus.APPROVED: "approved_at",
    },
    "Supplier payment": {
        SupplierPaymentStatus.APPROVED: "approved_at",
        SupplierPaymentStatus.PROCESSED: "processed_at",
        SupplierPaymentStatus.CANCELLED: "cancelled_at",
    },
}


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def _value(status) -> str:
    return status.value if hasattr(status, "value") else str(status)


def _targets(transitions: Dict[str, Set[str]], current_status: str) -> Set[str]:
    current = _value(current_status)
    for status, targets in transitions.items():
        if _value(status) == current:
            return {_value(s) for s in targets}
    return set()


def can_transition(transitions: Dict[str, Set[str]], current_status: str, new_status: str) -> bool:
    """Check if a transition is allowed."""
    return _value(new_status) in _targets(transitions, current_status)


def get_allowed_transitions(transitions: Dict[str, Set[str]], current_status: str) -> List[str]:
    """Get list of statuses that can be transitioned to from current status."""
    return sorted(_targets(transitions, current_status))


def validate_transition(machine: str, current_status: str, new_status: str) -> None:
    """
    Validate a status transition. Raises InvalidStatus if invalid.
    """
    transitions = STATE_MACHINES[machine]
    if can_transition(transitions, current_status, new_status):
        return

    current = _value(current_status)
    allowed = get_allowed_transitions(transitions, current)
    if not allowed:
        raise InvalidStatus(
            f"{machine} in '{current}' status cannot be modified. This is a terminal state."
        )
    raise InvalidStatus(
        f"Cannot change {machine.lower()} from '{current}' to '{_value(new_status)}'. "
        f"Allowed transitions: {', '.join(allowed)}"
    )


def require_status(machine: str, current_status: str, allowed: Set[str], action: str) -> None:
    """Guard an action that does not change status (quantity updates, tracking)."""
    if _value(current_status) not in {_value(s) for s in allowed}:
        raise InvalidStatus(
            f"Cannot {action}: {machine.lower()} is in '{_value(current_status)}' status"
        )


def transition(machine: str, document, new_status, user_id: Optional[str] = None) -> None:
    """
    Move a document to a new status after validating against its table.

    Also stamps the matching audit timestamp when the document has one.
    """
    old_status = _value(document.status)
    validate_transition(machine, old_status, new_status)

    document.status = _value(new_status)

    timestamps = {_value(s): f for s, f in TRANSITION_TIMESTAMPS.get(machine, {}).items()}
    timestamp_field = timestamps.get(_value(new_status))
    if timestamp_field and hasattr(document, timestamp_field):
        setattr(document, timestamp_field, datetime.now(timezone.utc))

    logger.info(
        f"{machine} {getattr(document, 'id', '?')}: {old_status} -> {document.status}"
        + (f" by {user_id}" if user_id else "")
    )
