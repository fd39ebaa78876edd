from __future__ import annotations
import logging
import time
from typing import Any, Dict, Mapping, Optional

import httpx

from .. import config
from ..errors import GatewayError
from ..model.records import Registration
from ..signing import BASE64, verify_payment_signature, verify_signature
from ._base import (
    PaymentAdapter, CreateOrderResult, WebhookEvent, load_json,
    KIND_CAPTURED, KIND_FAILED, KIND_IGNORED,
)

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-webhook-signature"
TIMESTAMP_HEADER = "x-webhook-timestamp"

CAPTURED_EVENTS = {"PAYMENT_SUCCESS_WEBHOOK"}
FAILED_EVENTS = {"PAYMENT_FAILED_WEBHOOK", "PAYMENT_USER_DROPPED_WEBHOOK"}


class CashfreeAdapter(PaymentAdapter):
    name = "cashfree"

    def __init__(
        self,
        http: httpx.AsyncClient,
        app_id: Optional[str] = None,
        secret_key: Optional[str] = None,
        webhook_secret: Optional[str] = None,
        base_url: Optional[str] = None,
        api_version: Optional[str] = None,
    ) -> None:
        self.http = http
        self.app_id = app_id if app_id is not None else config.CASHFREE_APP_ID
        self.secret_key = (
            secret_key if secret_key is not None
            else config.CASHFREE_SECRET_KEY
        )
        self.webhook_secret = (
            webhook_secret if webhook_secret is not None
            else config.CASHFREE_WEBHOOK_SECRET
        )
        self.base_url = base_url or config.CASHFREE_BASE_URL
        self.api_version = api_version or config.CASHFREE_API_VERSION

    @property
    def public_key(self) -> str:
        return self.app_id

    @property
    def configured(self) -> bool:
        return bool(self.app_id and self.secret_key)

    def _headers(self) -> Dict[str, str]:
        return {
            "x-api-version": self.api_version,
            "x-client-id": self.app_id,
            "x-client-secret": self.secret_key,
            "content-type": "application/json",
        }

    async def create_order(
            self, reg: Registration, amount: int, currency: str
    ) -> CreateOrderResult:
        if not self.configured:
            raise GatewayError(
                "gateway_not_configured",
                "Cashfree credentials are not configured",
            )
        order_id = f"ORDER_{reg.reference_id}_{int(time.time() * 1000)}"
        body = {
            "order_id": order_id,
            # Cashfree takes major units
            "order_amount": round(amount / 100, 2),
            "order_currency": currency,
            "customer_details": {
                "customer_id": reg.reference_id,
                "customer_name": reg.full_name,
                "customer_email": reg.email,
                "customer_phone": reg.phone,
            },
            "order_meta": {
                "return_url": (
                    f"{config.FRONTEND_URL}/success"
                    f"?reference_id={reg.reference_id}"
                ),
            },
        }
        try:
            resp = await self.http.post(
                f"{self.base_url}/orders",
                json=body,
                headers=self._headers(),
                timeout=config.GATEWAY_TIMEOUT_SECONDS,
            )
        except httpx.TimeoutException:
            raise GatewayError("timeout", "Cashfree did not answer in time")
        except httpx.HTTPError as e:
            raise GatewayError("network_error", str(e))

        if resp.status_code >= 400:
            try:
                err = resp.json()
            except ValueError:
                err = {}
            raise GatewayError(
                str(err.get("code") or resp.status_code),
                err.get("message") or resp.text[:200],
            )

        data: Dict[str, Any] = resp.json()
        return {
            "order_id": data.get("order_id", order_id),
            "extra": {
                "paymentSessionId": data.get("payment_session_id"),
                "orderToken": data.get("order_token"),
            },
        }

    def verify_payment(
            self, order_id: str, payment_id: str, signature: str
    ) -> bool:
        return verify_payment_signature(
            self.secret_key, order_id, payment_id, signature
        )

    def verify_webhook(
            self, payload: bytes, headers: Mapping[str, str]
    ) -> bool:
        # signed message is timestamp || raw body
        ts = headers.get(TIMESTAMP_HEADER, "")
        return verify_signature(
            self.webhook_secret,
            ts.encode() + payload,
            headers.get(SIGNATURE_HEADER),
            BASE64,
        )

    def parse_webhook(self, payload: bytes) -> WebhookEvent:
        body = load_json(payload)
        event_type = body.get("type", "")
        data = body.get("data") or {}
        order = data.get("order") or {}
        payment = data.get("payment") or {}

        if event_type in CAPTURED_EVENTS or order.get("order_status") == "PAID":
            kind = KIND_CAPTURED
        elif event_type in FAILED_EVENTS:
            kind = KIND_FAILED
        else:
            kind = KIND_IGNORED

        payment_id = payment.get("cf_payment_id") or order.get("cf_order_id")
        reason = None
        if kind == KIND_FAILED:
            reason = (
                payment.get("payment_message")
                or (data.get("error_details") or {}).get("error_description")
                or "payment failed"
            )
        return WebhookEvent(
            kind=kind,
            order_id=order.get("order_id"),
            payment_id=str(payment_id) if payment_id is not None else None,
            reason=reason,
            event_type=event_type,
        )
