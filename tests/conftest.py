"""
Shared fixtures: a fresh SQLite database per test, seeded master data and
a stock helper that goes through the inventory ledger.
"""
import os
import uuid
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./erp_core_test.db")
os.environ.setdefault("NOTIFICATIONS_ENABLED", "false")

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from erp_core.core.references import AdjustmentRef
from erp_core.database import build_engine, init_db, unit_of_work
from erp_core.models.customer import Customer, PaymentTerms
from erp_core.models.inventory import MovementType
from erp_core.models.product import Product
from erp_core.models.supplier import Supplier
from erp_core.models.tax import Country, State, TaxRate, TaxSystem
from erp_core.models.warehouse import Warehouse
from erp_core.schemas.dispatch import DispatchCreate, DispatchQuantity
from erp_core.schemas.sales_order import SalesOrderCreate, SalesOrderItemCreate
from erp_core.services.dispatch_service import DispatchService
from erp_core.services.inventory_ledger import InventoryLedger
from erp_core.services.notification_service import NotificationService
from erp_core.services.sales_order_service import SalesOrderService


@dataclass
class SeedData:
    """Plain ids, safe to use after any rollback."""
    warehouse_id: uuid.UUID          # Mumbai, IN/MH
    second_warehouse_id: uuid.UUID   # Pune, IN/MH
    us_warehouse_id: uuid.UUID       # Los Angeles, US/CA
    product_id: uuid.UUID            # 100.00, 18% GST
    second_product_id: uuid.UUID     # 250.00, 12% GST
    customer_id: uuid.UUID           # IMMEDIATE terms, IN/MH
    credit_customer_id: uuid.UUID    # NET_30, limit 5000, IN/KA
    us_customer_id: uuid.UUID        # IMMEDIATE terms, US/CA
    supplier_id: uuid.UUID


@pytest.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
async def session_factory(engine):
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def seed(db) -> SeedData:
    countries = [
        Country(code="IN", name="India", tax_system=TaxSystem.GST.value),
        Country(code="US", name="United States", tax_system=TaxSystem.SALES_TAX.value),
    ]
    states = [
        State(country_code="IN", code="MH", name="Maharashtra"),
        State(country_code="IN", code="KA", name="Karnataka"),
        State(country_code="US", code="CA", name="California"),
    ]
    rates = [
        TaxRate(
            country_code="US",
            state_code="CA",
            tax_type=TaxSystem.SALES_TAX.value,
            rate=Decimal("7.25"),
            effective_from=date(2020, 1, 1),
        ),
    ]
    warehouse = Warehouse(code="WH-MUM", name="Mumbai", country_code="IN", state_code="MH")
    second_warehouse = Warehouse(code="WH-PUN", name="Pune", country_code="IN", state_code="MH")
    us_warehouse = Warehouse(code="WH-LAX", name="Los Angeles", country_code="US", state_code="CA")
    product = Product(
        sku="PUR-001",
        name="Water Purifier",
        selling_price=Decimal("100.00"),
        cost_price=Decimal("60.00"),
        tax_percent=Decimal("18"),
    )
    second_product = Product(
        sku="FLT-002",
        name="Filter Cartridge",
        selling_price=Decimal("250.00"),
        cost_price=Decimal("150.00"),
        tax_percent=Decimal("12"),
    )
    customer = Customer(
        code="C-MUM",
        name="Asha Traders",
        phone="+91 98200 00000",
        billing_country_code="IN",
        billing_state_code="MH",
        payment_terms=PaymentTerms.IMMEDIATE.value,
    )
    credit_customer = Customer(
        code="C-BLR",
        name="Kaveri Distributors",
        billing_country_code="IN",
        billing_state_code="KA",
        credit_limit=Decimal("5000.00"),
        payment_terms=PaymentTerms.NET_30.value,
    )
    us_customer = Customer(
        code="C-LAX",
        name="Pacific Supply",
        billing_country_code="US",
        billing_state_code="CA",
        payment_terms=PaymentTerms.IMMEDIATE.value,
    )
    supplier = Supplier(code="S-001", name="Aqua Components")

    db.add_all(countries)
    await db.flush()
    db.add_all(states + rates + [
        warehouse, second_warehouse, us_warehouse,
        product, second_product,
        customer, credit_customer, us_customer,
        supplier,
    ])
    await db.commit()

    return SeedData(
        warehouse_id=warehouse.id,
        second_warehouse_id=second_warehouse.id,
        us_warehouse_id=us_warehouse.id,
        product_id=product.id,
        second_product_id=second_product.id,
        customer_id=customer.id,
        credit_customer_id=credit_customer.id,
        us_customer_id=us_customer.id,
        supplier_id=supplier.id,
    )


@pytest.fixture
def quiet_notifier():
    return NotificationService(enabled=False)


@pytest.fixture
def add_stock(db):
    """Put stock on hand with an INWARD ledger movement."""
    async def _add_stock(warehouse_id: uuid.UUID, product_id: uuid.UUID, quantity: int):
        async with unit_of_work(db):
            await InventoryLedger(db).apply_movement(
                warehouse_id=warehouse_id,
                product_id=product_id,
                delta=quantity,
                movement_type=MovementType.INWARD,
                reference=AdjustmentRef(uuid.uuid4()),
                notes="Opening stock",
            )
    return _add_stock


@pytest.fixture
def stock_of(db):
    """(available, reserved) for a location, (0, 0) when no record exists."""
    async def _stock_of(warehouse_id: uuid.UUID, product_id: uuid.UUID):
        record = await InventoryLedger(db).get_record(warehouse_id, product_id)
        if record is None:
            return 0, 0
        return record.available, record.reserved
    return _stock_of


@pytest.fixture
def confirmed_order(db, seed, quiet_notifier):
    """Create and confirm an order at the Mumbai warehouse; returns its id."""
    async def _confirmed_order(*lines, customer_id: uuid.UUID = None) -> uuid.UUID:
        service = SalesOrderService(db, notifier=quiet_notifier)
        order = await service.create_order(SalesOrderCreate(
            customer_id=customer_id or seed.customer_id,
            warehouse_id=seed.warehouse_id,
            items=[SalesOrderItemCreate(product_id=p, quantity=q) for p, q in lines],
        ))
        order_id = order.id
        await service.confirm_order(order_id)
        return order_id
    return _confirmed_order


@pytest.fixture
def ship_dispatch(db, quiet_notifier):
    """Run a dispatch through pick and pack to SHIPPED; ``quantities`` maps product to packed units."""
    async def _ship_dispatch(order_id: uuid.UUID, quantities: dict) -> uuid.UUID:
        service = DispatchService(db, notifier=quiet_notifier, allow_partial_fulfillment=True)
        dispatch = await service.create_dispatch(DispatchCreate(sales_order_id=order_id))
        dispatch_id = dispatch.id
        lines = [DispatchQuantity(product_id=p, quantity=q) for p, q in quantities.items()]

        await service.start_picking(dispatch_id)
        await service.record_picked(dispatch_id, lines)
        await service.complete_picking(dispatch_id)
        await service.start_packing(dispatch_id)
        await service.record_packed(dispatch_id, lines)
        await service.complete_packing(dispatch_id)
        await service.mark_ready_to_ship(dispatch_id)
        await service.ship(dispatch_id, carrier="BlueDart", tracking_number="BD123")
        return dispatch_id
    return _ship_dispatch
