"""
Sales Order Service.

Order lifecycle from reservation to invoice:
create (reserve stock) -> confirm -> generate_invoice -> [dispatch] -> delivered
with hold / release_hold / cancel side branches. Every mutating method is one
unit of work; notifications go out after it has finished.
"""
import logging
import uuid
from datetime import date, timedelta
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from erp_core.core.exceptions import NotFound, CreditLimitExceeded, InvoiceExists
from erp_core.database import unit_of_work
from erp_core.models.customer import Customer, PaymentTerms, PAYMENT_TERM_DAYS
from erp_core.models.document_sequence import DocumentType
from erp_core.models.invoice import Invoice, InvoiceItem, InvoiceStatus
from erp_core.models.product import Product
from erp_core.models.sales_order import SalesOrder, SalesOrderItem, SalesOrderStatus, PaymentStatus
from erp_core.models.warehouse import Warehouse
from erp_core.schemas.sales_order import SalesOrderCreate
from erp_core.services.credit_manager import CreditManager
from erp_core.services.document_sequence_service import DocumentSequenceService
from erp_core.services.notification_service import NotificationService, NotificationType
from erp_core.services.state_machines import transition, validate_transition
from erp_core.services.stock_reservation_service import StockReservationService, ReservationItem
from erp_core.services.tax_calculator import TaxCalculator, TaxLine, money


logger = logging.getLogger(__name__)

MACHINE = "Sales order"


def calculate_due_date(payment_terms: str, from_date: Optional[date] = None) -> date:
    """Invoice due date for the given terms; IMMEDIATE and COD fall due the same day."""
    from_date = from_date or date.today()
    return from_date + timedelta(days=PAYMENT_TERM_DAYS[PaymentTerms(payment_terms)])


class SalesOrderService:
    """Service for sales order operations."""

    def __init__(
        self,
        db: AsyncSession,
        reservations: Optional[StockReservationService] = None,
        tax_calculator: Optional[TaxCalculator] = None,
        credit_manager: Optional[CreditManager] = None,
        notifier: Optional[NotificationService] = None,
    ):
        self.db = db
        self.reservations = reservations or StockReservationService(db)
        self.tax_calculator = tax_calculator or TaxCalculator(db)
        self.credit_manager = credit_manager or CreditManager(db)
        self.notifier = notifier or NotificationService()

    # ==================== Queries ====================

    async def get_order(self, order_id: uuid.UUID) -> SalesOrder:
        """Get order with items and invoice loaded."""
        result = await self.db.execute(
            select(SalesOrder)
            .options(
                selectinload(SalesOrder.items),
                selectinload(SalesOrder.customer),
                selectinload(SalesOrder.invoice),
            )
            .where(SalesOrder.id == order_id)
            .execution_options(populate_existing=True)
        )
        order = result.scalar_one_or_none()
        if not order:
            raise NotFound(f"Sales order {order_id} not found")
        return order

    async def _lock_order(self, order_id: uuid.UUID) -> SalesOrder:
        """Order header under row lock, items and invoice loaded."""
        result = await self.db.execute(
            select(SalesOrder)
            .options(
                selectinload(SalesOrder.items),
                selectinload(SalesOrder.customer),
                selectinload(SalesOrder.invoice),
            )
            .where(SalesOrder.id == order_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        order = result.scalar_one_or_none()
        if not order:
            raise NotFound(f"Sales order {order_id} not found")
        return order

    async def list_orders(
        self,
        status: Optional[str] = None,
        customer_id: Optional[uuid.UUID] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> Tuple[List[SalesOrder], int]:
        """Get paginated list of orders."""
        query = select(SalesOrder).options(selectinload(SalesOrder.items))
        count_query = select(func.count(SalesOrder.id))

        if status:
            query = query.where(SalesOrder.status == status)
            count_query = count_query.where(SalesOrder.status == status)
        if customer_id:
            query = query.where(SalesOrder.customer_id == customer_id)
            count_query = count_query.where(SalesOrder.customer_id == customer_id)

        total = (await self.db.execute(count_query)).scalar() or 0

        query = query.order_by(SalesOrder.created_at.desc()).offset(skip).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all()), total

    # ==================== Create ====================

    async def create_order(
        self,
        data: SalesOrderCreate,
        created_by: Optional[uuid.UUID] = None,
    ) -> SalesOrder:
        """
        Create an order and reserve its stock.

        The whole call is atomic: a credit or stock failure on any line leaves
        no order and no reservation behind. A draft skips both checks and holds
        no stock until it is submitted.

        Raises:
            NotFound: customer, warehouse or product missing
            CreditLimitExceeded: exposure would pass the customer's limit
            InsufficientInventory: a line cannot be reserved
        """
        async with unit_of_work(self.db):
            customer = await self.db.get(Customer, data.customer_id)
            if not customer:
                raise NotFound(f"Customer {data.customer_id} not found")

            warehouse = await self.db.get(Warehouse, data.warehouse_id)
            if not warehouse:
                raise NotFound(f"Warehouse {data.warehouse_id} not found")

            tax_lines = []
            for item in data.items:
                product = await self.db.get(Product, item.product_id)
                if not product:
                    raise NotFound(f"Product {item.product_id} not found")
                unit_price = item.unit_price if item.unit_price is not None else product.selling_price
                tax_percent = item.tax_percent if item.tax_percent is not None else product.tax_percent
                tax_lines.append(TaxLine(
                    product_id=product.id,
                    quantity=item.quantity,
                    unit_price=Decimal(str(unit_price)),
                    tax_percent=tax_percent,
                ))

            tax = await self.tax_calculator.calculate_order_tax(customer, warehouse, tax_lines)

            subtotal = money(sum((line.taxable_amount for line in tax_lines), Decimal("0")))
            discount = money(data.discount_amount)
            shipping = money(data.shipping_amount)
            total_amount = money(subtotal - discount + tax.tax_amount + shipping)

            payment_terms = data.payment_terms.value if data.payment_terms else customer.payment_terms
            if not data.draft:
                await self._check_credit(customer, total_amount, payment_terms)
                await self.reservations.reserve_all(
                    warehouse.id,
                    [ReservationItem(product_id=line.product_id, quantity=line.quantity) for line in tax_lines],
                )

            order_number = await DocumentSequenceService(self.db).get_next_number(DocumentType.SALES_ORDER)
            order = SalesOrder(
                order_number=order_number,
                order_date=date.today(),
                customer_id=customer.id,
                warehouse_id=warehouse.id,
                status=(SalesOrderStatus.DRAFT if data.draft else SalesOrderStatus.PENDING).value,
                payment_status=PaymentStatus.UNPAID.value,
                payment_terms=payment_terms,
                due_date=calculate_due_date(payment_terms),
                subtotal=subtotal,
                discount_amount=discount,
                tax_amount=money(tax.tax_amount),
                shipping_amount=shipping,
                total_amount=total_amount,
                tax_details=tax.tax_details,
                notes=data.notes,
                created_by=created_by,
            )
            for index, line in enumerate(tax_lines):
                line_subtotal = money(line.taxable_amount)
                line_tax = tax.line_taxes[index]
                order.items.append(SalesOrderItem(
                    product_id=line.product_id,
                    line_number=index + 1,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                    tax_percent=tax.line_rates[index],
                    subtotal=line_subtotal,
                    tax_amount=line_tax,
                    total=money(line_subtotal + line_tax),
                ))

            self.db.add(order)
            await self.db.flush()

        logger.info(f"Created sales order {order_number} total={total_amount} customer={customer.code}")
        if data.draft:
            return await self.get_order(order.id)

        await self.notifier.notify_customer(
            customer,
            NotificationType.ORDER_CREATED,
            order_number=order_number,
            total_amount=total_amount,
        )
        return await self.get_order(order.id)

    async def _check_credit(self, customer: Customer, amount: Decimal, payment_terms: str) -> None:
        credit = await self.credit_manager.check_credit_limit(customer, amount, payment_terms)
        if not credit.approved:
            raise CreditLimitExceeded(credit.message)

    # ==================== Status changes ====================

    async def submit_order(self, order_id: uuid.UUID, user_id: Optional[uuid.UUID] = None) -> SalesOrder:
        """
        Move a draft to PENDING: credit is checked and its stock reserved.

        Raises:
            InvalidStatus: order is not a DRAFT
            CreditLimitExceeded: exposure would pass the customer's limit
            InsufficientInventory: a line cannot be reserved
        """
        async with unit_of_work(self.db):
            order = await self._lock_order(order_id)
            validate_transition(MACHINE, order.status, SalesOrderStatus.PENDING)

            await self._check_credit(order.customer, Decimal(str(order.total_amount)), order.payment_terms)
            await self.reservations.reserve_all(
                order.warehouse_id,
                [ReservationItem(product_id=item.product_id, quantity=item.quantity) for item in order.items],
            )

            transition(MACHINE, order, SalesOrderStatus.PENDING, user_id)
            order.due_date = calculate_due_date(order.payment_terms)
            await self.db.flush()

        logger.info(f"Submitted draft sales order {order.order_number}")

        await self.notifier.notify_customer(
            order.customer,
            NotificationType.ORDER_CREATED,
            order_number=order.order_number,
            total_amount=order.total_amount,
        )
        return await self.get_order(order_id)

    async def confirm_order(self, order_id: uuid.UUID, user_id: Optional[uuid.UUID] = None) -> SalesOrder:
        async with unit_of_work(self.db):
            order = await self._lock_order(order_id)
            transition(MACHINE, order, SalesOrderStatus.CONFIRMED, user_id)
            await self.db.flush()

        await self.notifier.notify_customer(
            order.customer,
            NotificationType.ORDER_CONFIRMED,
            order_number=order.order_number,
        )
        return await self.get_order(order_id)

    async def hold_order(
        self,
        order_id: uuid.UUID,
        reason: str,
        user_id: Optional[uuid.UUID] = None,
    ) -> SalesOrder:
        """Pause an unshipped order. Reservations stay in place."""
        async with unit_of_work(self.db):
            order = await self._lock_order(order_id)
            transition(MACHINE, order, SalesOrderStatus.ON_HOLD, user_id)
            order.hold_reason = reason
            await self.db.flush()
        return await self.get_order(order_id)

    async def release_hold(self, order_id: uuid.UUID, user_id: Optional[uuid.UUID] = None) -> SalesOrder:
        async with unit_of_work(self.db):
            order = await self._lock_order(order_id)
            transition(MACHINE, order, SalesOrderStatus.CONFIRMED, user_id)
            order.hold_reason = None
            await self.db.flush()
        return await self.get_order(order_id)

    async def cancel_order(
        self,
        order_id: uuid.UUID,
        reason: Optional[str] = None,
        user_id: Optional[uuid.UUID] = None,
    ) -> SalesOrder:
        """
        Cancel an order and release its reservations.

        Validated before any release, so cancelling twice fails without
        touching stock.
        """
        async with unit_of_work(self.db):
            order = await self._lock_order(order_id)
            validate_transition(MACHINE, order.status, SalesOrderStatus.CANCELLED)

            if order.status != SalesOrderStatus.DRAFT:
                for item in order.items:
                    await self.reservations.release(order.warehouse_id, item.product_id, item.quantity)

            transition(MACHINE, order, SalesOrderStatus.CANCELLED, user_id)
            order.cancellation_reason = reason
            await self.db.flush()

        await self.notifier.notify_customer(
            order.customer,
            NotificationType.ORDER_CANCELLED,
            order_number=order.order_number,
        )
        return await self.get_order(order_id)

    # ==================== Invoice ====================

    async def generate_invoice(
        self,
        order_id: uuid.UUID,
        created_by: Optional[uuid.UUID] = None,
    ) -> Invoice:
        """
        Snapshot the order into its single invoice and move it to PROCESSING.

        Raises:
            InvoiceExists: the order already has an invoice that is not void
            InvalidStatus: order not CONFIRMED or PROCESSING
        """
        async with unit_of_work(self.db):
            order = await self._lock_order(order_id)
            if order.invoice is not None:
                raise InvoiceExists(
                    f"Invoice {order.invoice.invoice_number} already exists for order {order.order_number}"
                )

            transition(MACHINE, order, SalesOrderStatus.PROCESSING, created_by)

            invoice_number = await DocumentSequenceService(self.db).get_next_number(DocumentType.INVOICE)
            invoice = Invoice(
                invoice_number=invoice_number,
                sales_order_id=order.id,
                customer_id=order.customer_id,
                invoice_date=date.today(),
                due_date=order.due_date,
                subtotal=order.subtotal,
                discount_amount=order.discount_amount,
                tax_amount=order.tax_amount,
                shipping_amount=order.shipping_amount,
                total_amount=order.total_amount,
                paid_amount=Decimal("0"),
                balance_amount=order.total_amount,
                payment_status=PaymentStatus.UNPAID.value,
                status=InvoiceStatus.ISSUED.value,
                created_by=created_by,
            )
            for item in order.items:
                invoice.items.append(InvoiceItem(
                    product_id=item.product_id,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    tax_percent=item.tax_percent,
                    tax_amount=item.tax_amount,
                    total=item.total,
                ))
            self.db.add(invoice)
            await self.db.flush()

        logger.info(f"Generated invoice {invoice_number} for order {order.order_number}")

        await self.notifier.notify_customer(
            order.customer,
            NotificationType.INVOICE_GENERATED,
            invoice_number=invoice_number,
            total_amount=order.total_amount,
            due_date=order.due_date,
        )
        return await self.get_invoice(invoice.id)

    async def get_invoice(self, invoice_id: uuid.UUID) -> Invoice:
        result = await self.db.execute(
            select(Invoice)
            .options(selectinload(Invoice.items), selectinload(Invoice.payments))
            .where(Invoice.id == invoice_id)
            .execution_options(populate_existing=True)
        )
        invoice = result.scalar_one_or_none()
        if not invoice:
            raise NotFound(f"Invoice {invoice_id} not found")
        return invoice
