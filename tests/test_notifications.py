import httpx

from erp_core.services.notification_service import NotificationService, NotificationType


async def test_disabled_service_sends_nothing():
    assert await NotificationService(enabled=False).notify(NotificationType.ORDER_CREATED, {}) is None


async def test_message_without_phone_is_logged_only():
    result = await NotificationService(enabled=True, auth_key="").notify(
        NotificationType.ORDER_CONFIRMED,
        {"order_number": "SO2025000001"},
        recipient_email="ops@example.com",
    )
    assert result["channel"] == "log"
    assert result["message"] == "Your order SO2025000001 is confirmed and will be dispatched soon."


async def test_sms_goes_through_msg91():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"type": "success"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        service = NotificationService(enabled=True, auth_key="test-key", http_client=client)
        result = await service.notify(
            NotificationType.PAYMENT_RECEIVED,
            {"amount": "500.00", "invoice_number": "INV2025000001", "balance": "0.00"},
            recipient_phone="+91 98200-00000",
        )

    assert result["success"] is True
    assert result["channel"] == "sms"
    assert requests[0].headers["authkey"] == "test-key"
    assert b"919820000000" in requests[0].content


async def test_transport_failure_is_swallowed():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("unreachable")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        service = NotificationService(enabled=True, auth_key="test-key", http_client=client)
        result = await service.notify(
            NotificationType.ORDER_SHIPPED,
            {"order_number": "SO1", "carrier": "BlueDart", "tracking_number": "BD1"},
            recipient_phone="9820000000",
        )

    assert result is None


async def test_missing_template_variable_sends_raw_template():
    result = await NotificationService(enabled=True, auth_key="").notify(
        NotificationType.ORDER_SHIPPED, {"order_number": "SO1"}
    )
    assert "{carrier}" in result["message"]
