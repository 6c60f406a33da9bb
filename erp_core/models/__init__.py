# Import all models so they register with Base.metadata
from erp_core.models.warehouse import Warehouse
from erp_core.models.product import Product
from erp_core.models.customer import Customer, PaymentTerms
from erp_core.models.supplier import Supplier
from erp_core.models.tax import Country, State, TaxRate, TaxSystem
from erp_core.models.inventory import InventoryRecord, InventoryTransaction, MovementType
from erp_core.models.document_sequence import DocumentSequence, DocumentType
from erp_core.models.sales_order import SalesOrder, SalesOrderItem, SalesOrderStatus, PaymentStatus
from erp_core.models.invoice import Invoice, InvoiceItem, InvoiceStatus, CustomerPayment, PaymentMethod
from erp_core.models.purchase import (
    PurchaseOrder, PurchaseOrderItem, GoodsReceiptNote, GRNItem, POStatus, GRNStatus,
)
from erp_core.models.supplier_payment import SupplierPayment, SupplierPaymentStatus
from erp_core.models.dispatch import Dispatch, DispatchItem, TrackingUpdate, DispatchStatus
from erp_core.models.stock_transfer import WarehouseTransfer, WarehouseTransferItem, TransferStatus
from erp_core.models.return_order import ReturnRequest, ReturnItem, ReturnStatus, ReturnReason, ItemCondition
from erp_core.models.stock_adjustment import (
    StockAdjustment, StockAdjustmentItem, AdjustmentStatus, AdjustmentReason,
)

__all__ = [
    "Warehouse",
    "Product",
    "Customer",
    "PaymentTerms",
    "Supplier",
    "Country",
    "State",
    "TaxRate",
    "TaxSystem",
    "InventoryRecord",
    "InventoryTransaction",
    "MovementType",
    "DocumentSequence",
    "DocumentType",
    "SalesOrder",
    "SalesOrderItem",
    "SalesOrderStatus",
    "PaymentStatus",
    "Invoice",
    "InvoiceItem",
    "InvoiceStatus",
    "CustomerPayment",
    "PaymentMethod",
    "PurchaseOrder",
    "PurchaseOrderItem",
    "GoodsReceiptNote",
    "GRNItem",
    "POStatus",
    "GRNStatus",
    "SupplierPayment",
    "SupplierPaymentStatus",
    "Dispatch",
    "DispatchItem",
    "TrackingUpdate",
    "DispatchStatus",
    "WarehouseTransfer",
    "WarehouseTransferItem",
    "TransferStatus",
    "ReturnRequest",
    "ReturnItem",
    "ReturnStatus",
    "ReturnReason",
    "ItemCondition",
    "StockAdjustment",
    "StockAdjustmentItem",
    "AdjustmentStatus",
    "AdjustmentReason",
]
