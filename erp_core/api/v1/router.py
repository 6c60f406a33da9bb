from fastapi import APIRouter

from erp_core.api.v1.endpoints import (
    inventory,
    sales_orders,
    invoices,
    purchase_orders,
    grns,
    dispatches,
    transfers,
    returns,
    adjustments,
    supplier_payments,
)


# Create main API router
api_router = APIRouter(prefix="/api/v1")

# ==================== Inventory ====================
api_router.include_router(
    inventory.router,
    prefix="/inventory",
    tags=["Inventory"]
)
api_router.include_router(
    adjustments.router,
    prefix="/adjustments",
    tags=["Stock Adjustments"]
)
api_router.include_router(
    transfers.router,
    prefix="/transfers",
    tags=["Warehouse Transfers"]
)

# ==================== Order to Cash ====================
api_router.include_router(
    sales_orders.router,
    prefix="/sales-orders",
    tags=["Sales Orders"]
)
api_router.include_router(
    invoices.router,
    prefix="/invoices",
    tags=["Invoices & Payments"]
)
api_router.include_router(
    dispatches.router,
    prefix="/dispatches",
    tags=["Dispatch"]
)
api_router.include_router(
    returns.router,
    prefix="/returns",
    tags=["Returns"]
)

# ==================== Procure to Pay ====================
api_router.include_router(
    purchase_orders.router,
    prefix="/purchase-orders",
    tags=["Purchase Orders"]
)
api_router.include_router(
    grns.router,
    prefix="/grns",
    tags=["Goods Receipt Notes"]
)
api_router.include_router(
    supplier_payments.router,
    prefix="/supplier-payments",
    tags=["Supplier Payments"]
)
