"""
Payment adapters: order creation, callback and webhook signatures, event
parsing.
"""
import json
from unittest.mock import MagicMock

import httpx
import pytest
from razorpay.errors import BadRequestError, ServerError

from classdesk.errors import GatewayError
from classdesk.gateways import (
    MockPay, new_adapter, KIND_CAPTURED, KIND_FAILED, KIND_IGNORED,
)
from classdesk.gateways._cashfree import CashfreeAdapter
from classdesk.gateways._razorpay import RazorpayAdapter
from classdesk.model.records import Registration
from classdesk.signing import BASE64, compute_signature, sign_payment

WEBHOOK_SECRET = "whsec_test"


def _reg():
    return Registration(
        reference_id="ab" * 16,
        full_name="Test User",
        email="test@example.com",
        phone="+910000000000",
        created_at=1000.0,
    )


# ----------------------------
# MockPay
# ----------------------------
class TestMockPay:

    async def test_create_order(self):
        result = await MockPay(secret="s").create_order(_reg(), 9900, "INR")
        assert result["order_id"].startswith("mock_order_")
        assert result["extra"]["redirect_url"] == \
            f"/mockpay/{result['order_id']}"

    def test_payment_signature(self):
        pay = MockPay(secret="s")
        sig = pay.sign_payment("o1", "p1")
        assert sig == sign_payment("s", "o1", "p1")
        assert pay.verify_payment("o1", "p1", sig)
        assert not pay.verify_payment("o1", "p2", sig)

    def test_signed_webhook_verifies(self):
        pay = MockPay(secret="s")
        payload, sig = pay.sign_webhook(
            pay.build_event("succeeded", "o1", "p1")
        )
        assert pay.verify_webhook(payload, {"x-mockpay-signature": sig})
        assert not pay.verify_webhook(payload, {})
        assert not pay.verify_webhook(
            payload + b" ", {"x-mockpay-signature": sig}
        )

    @pytest.mark.parametrize("tail,kind", [
        ("succeeded", KIND_CAPTURED),
        ("failed", KIND_FAILED),
        ("canceled", KIND_FAILED),
        ("refunded", KIND_IGNORED),
    ])
    def test_parse(self, tail, kind):
        pay = MockPay(secret="s")
        payload, _ = pay.sign_webhook(pay.build_event(tail, "o1", "p1"))
        event = pay.parse_webhook(payload)
        assert event.kind == kind
        assert event.order_id == "o1"
        assert event.payment_id == "p1"
        assert event.event_type == f"payment.{tail}"
        assert event.event_id.startswith("evt_")
        if kind == KIND_FAILED:
            assert event.reason == f"payment {tail}"

    def test_parse_rejects_non_object(self):
        with pytest.raises(ValueError):
            MockPay(secret="s").parse_webhook(b"[1, 2]")
        with pytest.raises(ValueError):
            MockPay(secret="s").parse_webhook(b"{not json")


# ----------------------------
# Razorpay
# ----------------------------
def _razorpay(**kw):
    kw.setdefault("key_id", "rzp_test_key")
    kw.setdefault("key_secret", "rzp_secret")
    kw.setdefault("webhook_secret", WEBHOOK_SECRET)
    kw.setdefault("timeout", 2)
    return RazorpayAdapter(**kw)


def _razorpay_event(event, **payment):
    entity = {"id": "pay_1", "order_id": "order_1", **payment}
    return json.dumps({
        "entity": "event",
        "id": "evt_1",
        "event": event,
        "payload": {"payment": {"entity": entity}},
    }).encode()


class TestRazorpay:

    def test_public_key(self):
        assert _razorpay().public_key == "rzp_test_key"

    async def test_create_order(self):
        adapter = _razorpay()
        adapter.client = MagicMock()
        adapter.client.order.create.return_value = {
            "id": "order_1", "amount": 9900, "currency": "INR",
        }
        result = await adapter.create_order(_reg(), 9900, "INR")
        assert result["order_id"] == "order_1"
        assert result["extra"] == {"amount": 9900}

        data = adapter.client.order.create.call_args.kwargs["data"]
        assert data["amount"] == 9900
        assert data["currency"] == "INR"
        assert data["notes"] == {"reference_id": _reg().reference_id}

    async def test_unconfigured(self):
        adapter = _razorpay(key_id="", key_secret="")
        assert not adapter.configured
        with pytest.raises(GatewayError) as exc:
            await adapter.create_order(_reg(), 9900, "INR")
        assert exc.value.provider_code == "gateway_not_configured"

    @pytest.mark.parametrize("error,code", [
        (BadRequestError("The amount must be atleast INR 1.00"),
         "BAD_REQUEST_ERROR"),
        (ServerError("internal error"), "SERVER_ERROR"),
        (ConnectionError("connection reset"), "network_error"),
    ])
    async def test_sdk_errors_become_gateway_errors(self, error, code):
        adapter = _razorpay()
        adapter.client = MagicMock()
        adapter.client.order.create.side_effect = error
        with pytest.raises(GatewayError) as exc:
            await adapter.create_order(_reg(), 9900, "INR")
        assert exc.value.provider_code == code
        assert exc.value.status_code == 502

    def test_payment_signature_uses_key_secret(self):
        adapter = _razorpay()
        sig = sign_payment("rzp_secret", "order_1", "pay_1")
        assert adapter.verify_payment("order_1", "pay_1", sig)
        assert not adapter.verify_payment(
            "order_1", "pay_1", sign_payment(WEBHOOK_SECRET, "order_1", "pay_1")
        )

    def test_webhook_signature_over_raw_body(self):
        adapter = _razorpay()
        body = _razorpay_event("payment.captured")
        sig = compute_signature(WEBHOOK_SECRET, body)
        assert adapter.verify_webhook(body, {"x-razorpay-signature": sig})

        # same JSON, different bytes
        reserialized = json.dumps(json.loads(body), indent=2).encode()
        assert not adapter.verify_webhook(
            reserialized, {"x-razorpay-signature": sig}
        )

    def test_webhook_without_secret_never_verifies(self):
        adapter = _razorpay(webhook_secret="")
        body = _razorpay_event("payment.captured")
        assert not adapter.verify_webhook(
            body, {"x-razorpay-signature": compute_signature("", body)}
        )

    @pytest.mark.parametrize("event", [
        "payment.captured", "payment.authorized", "order.paid",
    ])
    def test_parse_captured(self, event):
        parsed = _razorpay().parse_webhook(_razorpay_event(event))
        assert parsed.kind == KIND_CAPTURED
        assert parsed.order_id == "order_1"
        assert parsed.payment_id == "pay_1"
        assert parsed.event_id == "evt_1"

    def test_parse_failed_reason(self):
        parsed = _razorpay().parse_webhook(_razorpay_event(
            "payment.failed",
            error_code="BAD_REQUEST_ERROR",
            error_description="Payment was declined by the bank",
        ))
        assert parsed.kind == KIND_FAILED
        assert parsed.reason == "Payment was declined by the bank"

    def test_parse_other_events_ignored(self):
        parsed = _razorpay().parse_webhook(_razorpay_event("refund.created"))
        assert parsed.kind == KIND_IGNORED


# ----------------------------
# Cashfree
# ----------------------------
def _cashfree(handler):
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return CashfreeAdapter(
        http,
        app_id="cf_app",
        secret_key="cf_secret",
        webhook_secret=WEBHOOK_SECRET,
        base_url="https://sandbox.cashfree.test/pg",
        api_version="2023-08-01",
    )


class TestCashfree:

    async def test_create_order(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["headers"] = request.headers
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={
                "order_id": seen["body"]["order_id"],
                "payment_session_id": "session_1",
                "order_token": "token_1",
            })

        adapter = _cashfree(handler)
        result = await adapter.create_order(_reg(), 9900, "INR")

        assert seen["url"] == "https://sandbox.cashfree.test/pg/orders"
        assert seen["headers"]["x-client-id"] == "cf_app"
        assert seen["headers"]["x-api-version"] == "2023-08-01"
        assert seen["body"]["order_amount"] == 99.0
        assert seen["body"]["customer_details"]["customer_email"] == \
            "test@example.com"
        assert result["order_id"].startswith(f"ORDER_{_reg().reference_id}_")
        assert result["extra"] == {
            "paymentSessionId": "session_1", "orderToken": "token_1",
        }
        await adapter.http.aclose()

    async def test_error_response(self):
        def handler(request):
            return httpx.Response(400, json={
                "code": "order_amount_invalid",
                "message": "order_amount : invalid value provided",
            })

        adapter = _cashfree(handler)
        with pytest.raises(GatewayError) as exc:
            await adapter.create_order(_reg(), 9900, "INR")
        assert exc.value.provider_code == "order_amount_invalid"
        assert "invalid value" in exc.value.description
        await adapter.http.aclose()

    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        adapter = _cashfree(handler)
        with pytest.raises(GatewayError) as exc:
            await adapter.create_order(_reg(), 9900, "INR")
        assert exc.value.provider_code == "timeout"
        await adapter.http.aclose()

    async def test_webhook_signature_includes_timestamp(self):
        adapter = _cashfree(lambda request: httpx.Response(500))
        body = b'{"type": "PAYMENT_SUCCESS_WEBHOOK"}'
        sig = compute_signature(WEBHOOK_SECRET, b"1700000000" + body, BASE64)
        headers = {
            "x-webhook-signature": sig,
            "x-webhook-timestamp": "1700000000",
        }
        assert adapter.verify_webhook(body, headers)
        assert not adapter.verify_webhook(
            body, dict(headers, **{"x-webhook-timestamp": "1700000001"})
        )
        await adapter.http.aclose()

    def test_parse(self):
        adapter = _cashfree(lambda request: httpx.Response(500))
        success = adapter.parse_webhook(json.dumps({
            "type": "PAYMENT_SUCCESS_WEBHOOK",
            "data": {
                "order": {"order_id": "ORDER_1", "order_amount": 99},
                "payment": {"cf_payment_id": 5114910, "payment_status": "SUCCESS"},
            },
        }).encode())
        assert success.kind == KIND_CAPTURED
        assert success.order_id == "ORDER_1"
        assert success.payment_id == "5114910"

        dropped = adapter.parse_webhook(json.dumps({
            "type": "PAYMENT_USER_DROPPED_WEBHOOK",
            "data": {
                "order": {"order_id": "ORDER_1"},
                "payment": {"payment_message": "user dropped"},
            },
        }).encode())
        assert dropped.kind == KIND_FAILED
        assert dropped.reason == "user dropped"


def test_factory():
    assert isinstance(new_adapter("mock"), MockPay)
    assert isinstance(new_adapter("razorpay"), RazorpayAdapter)
    with pytest.raises(RuntimeError):
        new_adapter("cashfree")
    with pytest.raises(RuntimeError):
        new_adapter("paypal")
