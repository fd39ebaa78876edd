from __future__ import annotations
import json
import time
import uuid
from typing import Any, Dict, Mapping, Optional

from .. import config
from ..model.records import Registration
from ..signing import BASE64, compute_signature, sign_payment, \
    verify_payment_signature, verify_signature
from ._base import (
    PaymentAdapter, CreateOrderResult, WebhookEvent, load_json,
    KIND_CAPTURED, KIND_FAILED, KIND_IGNORED,
)

SIGNATURE_HEADER = "x-mockpay-signature"


# ----------------------------
# MockPay implementation
# ----------------------------
class MockPay(PaymentAdapter):
    """Local gateway for development and tests: no network, one secret."""

    name = "mock"

    def __init__(self, secret: Optional[str] = None) -> None:
        self.secret = secret if secret is not None else config.MOCK_SECRET

    @property
    def public_key(self) -> str:
        return "mock_key"

    async def create_order(
            self, reg: Registration, amount: int, currency: str
    ) -> CreateOrderResult:
        order_id = f"mock_order_{uuid.uuid4().hex}"
        return {
            "order_id": order_id,
            "extra": {"redirect_url": f"/mockpay/{order_id}"},
        }

    def sign_payment(self, order_id: str, payment_id: str) -> str:
        return sign_payment(self.secret, order_id, payment_id)

    def verify_payment(
            self, order_id: str, payment_id: str, signature: str
    ) -> bool:
        return verify_payment_signature(
            self.secret, order_id, payment_id, signature
        )

    def build_event(self, kind: str, order_id: str,
                    payment_id: str) -> Dict[str, Any]:
        return {
            "type": f"payment.{kind}",
            "order_id": order_id,
            "payment_id": payment_id,
            "created_at": int(time.time()),
            "idempotency_key": f"evt_{uuid.uuid4().hex}",
        }

    def sign_webhook(self, event: Dict[str, Any]) -> tuple[bytes, str]:
        payload = json.dumps(event).encode()
        return payload, compute_signature(self.secret, payload, BASE64)

    def verify_webhook(
            self, payload: bytes, headers: Mapping[str, str]
    ) -> bool:
        return verify_signature(
            self.secret, payload, headers.get(SIGNATURE_HEADER), BASE64
        )

    def parse_webhook(self, payload: bytes) -> WebhookEvent:
        event = load_json(payload)
        event_type = event.get("type", "")
        tail = event_type.split(".")[-1]  # succeeded | failed | canceled
        if tail == "succeeded":
            kind = KIND_CAPTURED
        elif tail in ("failed", "canceled"):
            kind = KIND_FAILED
        else:
            kind = KIND_IGNORED
        return WebhookEvent(
            kind=kind,
            order_id=event.get("order_id"),
            payment_id=event.get("payment_id"),
            reason=f"payment {tail}" if kind == KIND_FAILED else None,
            event_type=event_type,
            event_id=event.get("idempotency_key"),
        )
