import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from erp_core.config import settings
from erp_core.api.v1.router import api_router
from erp_core.core.exceptions import ERPError
from erp_core.schemas.base import ErrorDetail, ErrorResponse
from erp_core.database import init_db, async_session_factory


logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables on startup."""
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    await init_db()
    yield
    logger.info("Shutting down...")


OPENAPI_TAGS = [
    {"name": "Inventory", "description": "Per-warehouse stock counters and the movement ledger"},
    {"name": "Stock Adjustments", "description": "Physical counts reconciled against the ledger"},
    {"name": "Warehouse Transfers", "description": "Inter-warehouse stock movement"},
    {"name": "Sales Orders", "description": "Order entry, reservation, hold and cancellation"},
    {"name": "Invoices & Payments", "description": "Invoices and customer payments"},
    {"name": "Dispatch", "description": "Pick, pack, ship and carrier tracking"},
    {"name": "Returns", "description": "Return authorisation, inspection, restock and refund"},
    {"name": "Purchase Orders", "description": "Procurement approval workflow"},
    {"name": "Goods Receipt Notes", "description": "Receipt and verification of supplier goods"},
    {"name": "Supplier Payments", "description": "Approval and release of payments against purchase orders"},
]

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Inventory, order-to-cash and procure-to-pay workflows.",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=OPENAPI_TAGS,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API router
app.include_router(api_router)


def _error_body(code: str, message: str) -> dict:
    return ErrorResponse(
        error=ErrorDetail(code=code, message=message),
        timestamp=datetime.now(timezone.utc).isoformat(),
    ).model_dump()


@app.exception_handler(ERPError)
async def erp_error_handler(request: Request, exc: ERPError):
    """Domain errors carry their own HTTP status and code."""
    logger.info(f"{request.method} {request.url.path} -> {exc.status_code} {exc.code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=_error_body(exc.code, exc.message))


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content=_error_body("INTERNAL_ERROR", "Internal server error"))


# Health check endpoint
@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint with database validation."""
    health_status = {
        "status": "healthy",
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": {
            "database": "unknown"
        }
    }

    # Check database connectivity
    try:
        async with async_session_factory() as session:
            result = await session.execute(text("SELECT 1"))
            result.scalar()
            health_status["checks"]["database"] = "connected"
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        health_status["status"] = "unhealthy"
        health_status["checks"]["database"] = f"error: {str(e)}"

    # Return 503 if unhealthy
    if health_status["status"] == "unhealthy":
        return JSONResponse(status_code=503, content=health_status)

    return health_status
