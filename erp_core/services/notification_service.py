"""
Notification Service for workflow events.

Fire-and-forget: workflow services call it after their unit of work has
finished. Every failure is logged and swallowed here so a notification can
never undo or fail a completed stock or status change.
"""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional
from uuid import uuid4

import httpx

from erp_core.config import settings


logger = logging.getLogger(__name__)


class NotificationChannel(str, Enum):
    """Notification delivery channels."""
    SMS = "sms"
    EMAIL = "email"
    LOG = "log"


class NotificationType(str, Enum):
    """Types of notifications."""
    ORDER_CREATED = "order_created"
    ORDER_CONFIRMED = "order_confirmed"
    ORDER_CANCELLED = "order_cancelled"
    ORDER_SHIPPED = "order_shipped"
    ORDER_DELIVERED = "order_delivered"
    INVOICE_GENERATED = "invoice_generated"
    PAYMENT_RECEIVED = "payment_received"
    RETURN_APPROVED = "return_approved"
    REFUND_PROCESSED = "refund_processed"


# SMS Templates (keep under 160 chars for single SMS)
SMS_TEMPLATES = {
    NotificationType.ORDER_CREATED: (
        "Hi {customer_name}, your order {order_number} for {total_amount} has been placed."
    ),
    NotificationType.ORDER_CONFIRMED: (
        "Your order {order_number} is confirmed and will be dispatched soon."
    ),
    NotificationType.ORDER_CANCELLED: (
        "Your order {order_number} has been cancelled."
    ),
    NotificationType.ORDER_SHIPPED: (
        "Your order {order_number} has shipped via {carrier}. Tracking: {tracking_number}"
    ),
    NotificationType.ORDER_DELIVERED: (
        "Your order {order_number} has been delivered. Thank you for your purchase!"
    ),
    NotificationType.INVOICE_GENERATED: (
        "Invoice {invoice_number} for {total_amount} is due on {due_date}."
    ),
    NotificationType.PAYMENT_RECEIVED: (
        "Payment of {amount} received against invoice {invoice_number}. Balance: {balance}"
    ),
    NotificationType.RETURN_APPROVED: (
        "Your return {rma_number} is approved. Please hand over the items to our courier."
    ),
    NotificationType.REFUND_PROCESSED: (
        "Refund of {refund_amount} for return {rma_number} has been processed."
    ),
}


class NotificationService:
    """
    Sends workflow notifications to customers.

    Messages are always logged. SMS goes out through MSG91 when an auth key
    is configured; email delivery is an external collaborator.
    """

    MSG91_URL = "https://control.msg91.com/api/v5/flow/"

    def __init__(
        self,
        enabled: Optional[bool] = None,
        auth_key: Optional[str] = None,
        sender_id: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.enabled = settings.NOTIFICATIONS_ENABLED if enabled is None else enabled
        self.auth_key = settings.MSG91_AUTH_KEY if auth_key is None else auth_key
        self.sender_id = sender_id or settings.MSG91_SENDER_ID
        self.http_client = http_client

    async def notify(
        self,
        notification_type: NotificationType,
        template_data: Dict[str, Any],
        recipient_phone: Optional[str] = None,
        recipient_email: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Send a notification. Never raises.

        Returns:
            Dict with send status, or None when disabled or on failure
        """
        if not self.enabled:
            return None

        try:
            return await self._send(notification_type, template_data, recipient_phone, recipient_email)
        except Exception as e:
            logger.error(f"Notification {notification_type.value} failed: {e}")
            return None

    async def notify_customer(self, customer, notification_type: NotificationType, **template_data) -> Optional[Dict[str, Any]]:
        if customer is None:
            return None
        template_data.setdefault("customer_name", customer.name)
        return await self.notify(
            notification_type,
            template_data,
            recipient_phone=customer.phone,
            recipient_email=customer.email,
        )

    async def _send(
        self,
        notification_type: NotificationType,
        template_data: Dict[str, Any],
        recipient_phone: Optional[str],
        recipient_email: Optional[str],
    ) -> Dict[str, Any]:
        notification_id = str(uuid4())

        template = SMS_TEMPLATES.get(notification_type, "")
        try:
            message = template.format(**template_data)
        except KeyError as e:
            logger.warning(f"Missing template variable: {e}")
            message = template

        channel = NotificationChannel.LOG
        sent = True
        if recipient_phone and self.auth_key:
            channel = NotificationChannel.SMS
            sent = await self._send_sms(recipient_phone, message)

        logger.info(
            f"[NOTIFICATION] {channel.value.upper()} {notification_type.value} "
            f"to {recipient_phone or recipient_email or '-'}: {message[:100]}"
        )

        return {
            "success": sent,
            "notification_id": notification_id,
            "channel": channel.value,
            "type": notification_type.value,
            "message": message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    async def _send_sms(self, phone: str, message: str) -> bool:
        """Send SMS via MSG91."""
        phone = phone.replace(" ", "").replace("-", "").lstrip("+")
        payload = {
            "sender": self.sender_id,
            "mobiles": phone,
            "message": message,
        }
        headers = {
            "authkey": self.auth_key,
            "Content-Type": "application/json",
        }

        if self.http_client is not None:
            response = await self.http_client.post(self.MSG91_URL, json=payload, headers=headers, timeout=10.0)
        else:
            async with httpx.AsyncClient() as client:
                response = await client.post(self.MSG91_URL, json=payload, headers=headers, timeout=10.0)

        if response.status_code == 200:
            logger.info(f"SMS sent to {phone}")
            return True
        logger.error(f"SMS failed: {response.text}")
        return False
