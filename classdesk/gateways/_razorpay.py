"""
Razorpay adapter.

Flow:
  1. create_order() -> Razorpay order; the frontend opens checkout with
     {order_id, key_id}
  2. Razorpay hands the frontend {payment_id, order_id, signature}
  3. verify_payment() checks HMAC-SHA256(key_secret, "order_id|payment_id")
  4. Razorpay also POSTs payment.* events, signed over the raw body with the
     webhook secret in X-Razorpay-Signature
"""
from __future__ import annotations
import asyncio
import logging
from typing import Any, Dict, Mapping, Optional

import razorpay
from razorpay.errors import BadRequestError, ServerError
from razorpay.errors import GatewayError as RazorpayGatewayError

from .. import config
from ..errors import GatewayError
from ..model.records import Registration
from ..signing import verify_payment_signature, verify_signature
from ._base import (
    PaymentAdapter, CreateOrderResult, WebhookEvent, load_json,
    KIND_CAPTURED, KIND_FAILED, KIND_IGNORED,
)

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-razorpay-signature"

CAPTURED_EVENTS = {"payment.captured", "payment.authorized", "order.paid"}
FAILED_EVENTS = {"payment.failed"}


class RazorpayAdapter(PaymentAdapter):
    name = "razorpay"

    def __init__(
        self,
        key_id: Optional[str] = None,
        key_secret: Optional[str] = None,
        webhook_secret: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.key_id = key_id if key_id is not None else config.RAZORPAY_KEY_ID
        self.key_secret = (
            key_secret if key_secret is not None
            else config.RAZORPAY_KEY_SECRET
        )
        self.webhook_secret = (
            webhook_secret if webhook_secret is not None
            else config.RAZORPAY_WEBHOOK_SECRET
        )
        self.timeout = timeout or config.GATEWAY_TIMEOUT_SECONDS
        self.client = None
        if self.configured:
            self.client = razorpay.Client(auth=(self.key_id, self.key_secret))

    @property
    def public_key(self) -> str:
        return self.key_id

    @property
    def configured(self) -> bool:
        return bool(self.key_id and self.key_secret)

    async def create_order(
            self, reg: Registration, amount: int, currency: str
    ) -> CreateOrderResult:
        if self.client is None:
            raise GatewayError(
                "gateway_not_configured",
                "Razorpay credentials are not configured",
            )
        data = {
            "amount": amount,  # paise
            "currency": currency,
            "receipt": reg.reference_id[:40],
            "notes": {"reference_id": reg.reference_id},
            "payment_capture": 1,
        }
        try:
            # the SDK is blocking (requests); keep it off the event loop
            order: Dict[str, Any] = await asyncio.wait_for(
                asyncio.to_thread(
                    self.client.order.create, data=data, timeout=self.timeout
                ),
                timeout=self.timeout + 1,
            )
        except asyncio.TimeoutError:
            raise GatewayError("timeout", "Razorpay did not answer in time")
        except BadRequestError as e:
            raise GatewayError("BAD_REQUEST_ERROR", str(e))
        except (ServerError, RazorpayGatewayError) as e:
            raise GatewayError("SERVER_ERROR", str(e))
        except OSError as e:
            # requests' connection errors are OSErrors
            raise GatewayError("network_error", str(e))
        return {
            "order_id": order["id"],
            "extra": {"amount": order.get("amount", amount)},
        }

    def verify_payment(
            self, order_id: str, payment_id: str, signature: str
    ) -> bool:
        return verify_payment_signature(
            self.key_secret, order_id, payment_id, signature
        )

    def verify_webhook(
            self, payload: bytes, headers: Mapping[str, str]
    ) -> bool:
        return verify_signature(
            self.webhook_secret, payload, headers.get(SIGNATURE_HEADER)
        )

    def parse_webhook(self, payload: bytes) -> WebhookEvent:
        body = load_json(payload)
        event_type = body.get("event", "")
        entities = body.get("payload") or {}
        payment = (entities.get("payment") or {}).get("entity") or {}
        order = (entities.get("order") or {}).get("entity") or {}

        if event_type in CAPTURED_EVENTS:
            kind = KIND_CAPTURED
        elif event_type in FAILED_EVENTS:
            kind = KIND_FAILED
        else:
            kind = KIND_IGNORED

        reason = None
        if kind == KIND_FAILED:
            reason = (
                payment.get("error_description")
                or payment.get("error_code")
                or "payment failed"
            )
        return WebhookEvent(
            kind=kind,
            order_id=payment.get("order_id") or order.get("id"),
            payment_id=payment.get("id"),
            reason=reason,
            event_type=event_type,
            event_id=body.get("id"),
        )
