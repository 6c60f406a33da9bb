"""Customer payments against invoices, and invoice voiding."""
import logging
import uuid
from decimal import Decimal
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from erp_core.core.exceptions import NotFound, ValidationError, ExcessAmount, HasPayments, InvalidStatus
from erp_core.database import unit_of_work
from erp_core.models.customer import Customer
from erp_core.models.document_sequence import DocumentType
from erp_core.models.invoice import Invoice, InvoiceStatus, CustomerPayment, PaymentMethod
from erp_core.models.sales_order import SalesOrder, PaymentStatus
from erp_core.services.document_sequence_service import DocumentSequenceService
from erp_core.services.notification_service import NotificationService, NotificationType
from erp_core.services.tax_calculator import money


logger = logging.getLogger(__name__)


class PaymentService:
    """Records customer payments and keeps invoice and order balances in step."""

    def __init__(self, db: AsyncSession, notifier: Optional[NotificationService] = None):
        self.db = db
        self.notifier = notifier or NotificationService()

    async def _lock_invoice(self, invoice_id: uuid.UUID) -> Invoice:
        result = await self.db.execute(
            select(Invoice)
            .where(Invoice.id == invoice_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        invoice = result.scalar_one_or_none()
        if not invoice:
            raise NotFound(f"Invoice {invoice_id} not found")
        return invoice

    async def record_payment(
        self,
        invoice_id: uuid.UUID,
        customer_id: uuid.UUID,
        amount: Decimal,
        payment_method: PaymentMethod = PaymentMethod.BANK_TRANSFER,
        reference_number: Optional[str] = None,
        notes: Optional[str] = None,
        created_by: Optional[uuid.UUID] = None,
    ) -> CustomerPayment:
        """
        Apply a payment to an invoice.

        Raises:
            ValidationError: non-positive amount or invoice of another customer
            InvalidStatus: invoice is void
            ExcessAmount: amount exceeds the outstanding balance
        """
        amount = money(amount)
        if amount <= 0:
            raise ValidationError("Payment amount must be greater than zero")

        async with unit_of_work(self.db):
            invoice = await self._lock_invoice(invoice_id)
            if invoice.status == InvoiceStatus.VOID:
                raise InvalidStatus(f"Invoice {invoice.invoice_number} is void")
            if invoice.customer_id != customer_id:
                raise ValidationError(
                    f"Invoice {invoice.invoice_number} does not belong to customer {customer_id}"
                )

            balance = Decimal(str(invoice.balance_amount))
            if amount > balance:
                raise ExcessAmount(
                    f"Payment {amount} exceeds outstanding balance {balance} "
                    f"on invoice {invoice.invoice_number}"
                )

            invoice.paid_amount = money(Decimal(str(invoice.paid_amount)) + amount)
            invoice.balance_amount = money(balance - amount)
            if invoice.balance_amount == 0:
                invoice.payment_status = PaymentStatus.PAID.value
            else:
                invoice.payment_status = PaymentStatus.PARTIALLY_PAID.value

            order = await self.db.get(SalesOrder, invoice.sales_order_id)
            if order is not None:
                order.payment_status = invoice.payment_status

            payment_number = await DocumentSequenceService(self.db).get_next_number(DocumentType.CUSTOMER_PAYMENT)
            payment = CustomerPayment(
                payment_number=payment_number,
                invoice_id=invoice.id,
                customer_id=customer_id,
                amount=amount,
                payment_method=PaymentMethod(payment_method).value,
                reference_number=reference_number,
                notes=notes,
                created_by=created_by,
            )
            self.db.add(payment)
            await self.db.flush()

            customer = await self.db.get(Customer, customer_id)

        logger.info(
            f"Payment {payment_number} of {amount} on invoice {invoice.invoice_number} "
            f"({invoice.payment_status}, balance {invoice.balance_amount})"
        )

        await self.notifier.notify_customer(
            customer,
            NotificationType.PAYMENT_RECEIVED,
            amount=amount,
            invoice_number=invoice.invoice_number,
            balance=invoice.balance_amount,
        )
        return payment

    async def list_payments(self, invoice_id: uuid.UUID) -> List[CustomerPayment]:
        result = await self.db.execute(
            select(CustomerPayment)
            .where(CustomerPayment.invoice_id == invoice_id)
            .order_by(CustomerPayment.created_at)
        )
        return list(result.scalars().all())

    async def void_invoice(
        self,
        invoice_id: uuid.UUID,
        reason: str,
        voided_by: Optional[uuid.UUID] = None,
    ) -> Invoice:
        """
        Void an unpaid invoice.

        The order drops back to UNPAID and can be invoiced again.

        Raises:
            InvalidStatus: invoice already void
            HasPayments: payments have been applied to the invoice
        """
        async with unit_of_work(self.db):
            invoice = await self._lock_invoice(invoice_id)
            if invoice.status == InvoiceStatus.VOID:
                raise InvalidStatus(f"Invoice {invoice.invoice_number} is already void")
            if Decimal(str(invoice.paid_amount or 0)) > 0:
                raise HasPayments(f"Cannot void invoice {invoice.invoice_number}: payments have been applied")

            invoice.status = InvoiceStatus.VOID.value
            invoice.balance_amount = Decimal("0")
            invoice.void_reason = reason
            invoice.voided_by = voided_by
            invoice.voided_at = datetime.now(timezone.utc)

            order = await self.db.get(SalesOrder, invoice.sales_order_id)
            if order is not None:
                order.payment_status = PaymentStatus.UNPAID.value
            await self.db.flush()

        logger.info(f"Voided invoice {invoice.invoice_number}: {reason}")

        result = await self.db.execute(
            select(Invoice)
            .options(selectinload(Invoice.items), selectinload(Invoice.payments))
            .where(Invoice.id == invoice_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()
