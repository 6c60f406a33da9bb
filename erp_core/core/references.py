"""
Typed references from ledger rows to the documents that caused them.

Each variant is a frozen dataclass tagged with its ``ReferenceType``. The
ledger stores ``reference_type`` / ``reference_id`` columns and rebuilds the
variant with ``reference_from_row``.
"""
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Dict, Type, Union


class ReferenceType(str, Enum):
    """Document kinds that can appear on an inventory transaction."""
    SALES_ORDER = "SALES_ORDER"
    PURCHASE_ORDER = "PURCHASE_ORDER"
    GRN = "GRN"
    TRANSFER = "TRANSFER"
    ADJUSTMENT = "ADJUSTMENT"
    RETURN = "RETURN"
    DISPATCH = "DISPATCH"


@dataclass(frozen=True)
class SalesOrderRef:
    id: uuid.UUID
    reference_type: ClassVar[ReferenceType] = ReferenceType.SALES_ORDER


@dataclass(frozen=True)
class PurchaseOrderRef:
    id: uuid.UUID
    reference_type: ClassVar[ReferenceType] = ReferenceType.PURCHASE_ORDER


@dataclass(frozen=True)
class GrnRef:
    id: uuid.UUID
    reference_type: ClassVar[ReferenceType] = ReferenceType.GRN


@dataclass(frozen=True)
class TransferRef:
    id: uuid.UUID
    reference_type: ClassVar[ReferenceType] = ReferenceType.TRANSFER


@dataclass(frozen=True)
class AdjustmentRef:
    id: uuid.UUID
    reference_type: ClassVar[ReferenceType] = ReferenceType.ADJUSTMENT


@dataclass(frozen=True)
class ReturnRef:
    id: uuid.UUID
    reference_type: ClassVar[ReferenceType] = ReferenceType.RETURN


@dataclass(frozen=True)
class DispatchRef:
    id: uuid.UUID
    reference_type: ClassVar[ReferenceType] = ReferenceType.DISPATCH


Reference = Union[
    SalesOrderRef,
    PurchaseOrderRef,
    GrnRef,
    TransferRef,
    AdjustmentRef,
    ReturnRef,
    DispatchRef,
]

REFERENCE_TYPES: Dict[ReferenceType, Type] = {
    ref.reference_type: ref
    for ref in (
        SalesOrderRef,
        PurchaseOrderRef,
        GrnRef,
        TransferRef,
        AdjustmentRef,
        ReturnRef,
        DispatchRef,
    )
}


def reference_from_row(reference_type: str, reference_id: uuid.UUID) -> Reference:
    """Rebuild a typed reference from its stored columns."""
    return REFERENCE_TYPES[ReferenceType(reference_type)](reference_id)
