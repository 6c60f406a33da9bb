"""Customer credit exposure check used at order creation."""
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession

from erp_core.models.customer import Customer, PaymentTerms
from erp_core.models.invoice import Invoice, InvoiceStatus
from erp_core.models.sales_order import SalesOrder, SalesOrderStatus, PaymentStatus


logger = logging.getLogger(__name__)

OPEN_PAYMENT_STATUSES = [PaymentStatus.UNPAID.value, PaymentStatus.PARTIALLY_PAID.value]

# Orders that still commit credit but are not invoiced yet
PENDING_ORDER_STATUSES = [
    SalesOrderStatus.PENDING.value,
    SalesOrderStatus.CONFIRMED.value,
    SalesOrderStatus.PROCESSING.value,
    SalesOrderStatus.PACKED.value,
    SalesOrderStatus.ON_HOLD.value,
]


@dataclass
class CreditCheckResult:
    approved: bool
    available_credit: Decimal
    message: str
    outstanding: Decimal = Decimal("0")
    pending_orders: Decimal = Decimal("0")


class CreditManager:
    """Exposure = open invoice balances + uninvoiced open orders + new order."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_outstanding_balance(self, customer: Customer) -> Decimal:
        result = await self.db.execute(
            select(func.coalesce(func.sum(Invoice.balance_amount), 0)).where(
                and_(
                    Invoice.customer_id == customer.id,
                    Invoice.status != InvoiceStatus.VOID.value,
                    Invoice.payment_status.in_(OPEN_PAYMENT_STATUSES),
                )
            )
        )
        return Decimal(str(result.scalar() or 0))

    async def get_pending_order_amount(self, customer: Customer) -> Decimal:
        invoiced = select(Invoice.sales_order_id).where(Invoice.status != InvoiceStatus.VOID.value)
        result = await self.db.execute(
            select(func.coalesce(func.sum(SalesOrder.total_amount), 0)).where(
                and_(
                    SalesOrder.customer_id == customer.id,
                    SalesOrder.status.in_(PENDING_ORDER_STATUSES),
                    SalesOrder.payment_status.in_(OPEN_PAYMENT_STATUSES),
                    SalesOrder.id.not_in(invoiced),
                )
            )
        )
        return Decimal(str(result.scalar() or 0))

    async def check_credit_limit(
        self,
        customer: Customer,
        new_order_amount: Decimal,
        payment_terms: Optional[str] = None,
    ) -> CreditCheckResult:
        """
        Check whether the customer can take on a new order.

        ``payment_terms`` are the terms the order is placed on and default to
        the customer's own. IMMEDIATE terms are always approved: nothing is
        extended on credit.
        """
        credit_limit = Decimal(str(customer.credit_limit or 0))
        terms = payment_terms or customer.payment_terms

        if terms == PaymentTerms.IMMEDIATE:
            return CreditCheckResult(
                approved=True,
                available_credit=credit_limit,
                message="Immediate payment terms - no credit check required",
            )

        outstanding = await self.get_outstanding_balance(customer)
        pending = await self.get_pending_order_amount(customer)
        total_exposure = outstanding + pending + Decimal(str(new_order_amount))
        available_credit = credit_limit - outstanding - pending
        approved = total_exposure <= credit_limit

        if approved:
            message = "Credit check passed"
        else:
            message = (
                f"Credit limit exceeded. Limit: {credit_limit}, "
                f"Outstanding: {outstanding}, Pending orders: {pending}, "
                f"New order: {new_order_amount}"
            )
            logger.warning(f"Customer {customer.code}: {message}")

        return CreditCheckResult(
            approved=approved,
            available_credit=available_credit,
            message=message,
            outstanding=outstanding,
            pending_orders=pending,
        )
