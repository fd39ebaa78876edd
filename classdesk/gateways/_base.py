from __future__ import annotations
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, TypedDict

from ..model.records import Registration

KIND_CAPTURED = "captured"
KIND_FAILED = "failed"
KIND_IGNORED = "ignored"


class CreateOrderResult(TypedDict):
    order_id: str
    # extra, gateway-specific fields the checkout widget needs
    extra: Dict[str, Any]


@dataclass
class WebhookEvent:
    kind: str  # captured | failed | ignored
    order_id: Optional[str] = None
    payment_id: Optional[str] = None
    reason: Optional[str] = None
    event_type: str = ""
    event_id: Optional[str] = None


def load_json(payload: bytes) -> Dict[str, Any]:
    """Parse a webhook body that has already been authenticated."""
    try:
        data = json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ValueError(f"invalid webhook JSON: {e}") from e
    if not isinstance(data, dict):
        raise ValueError("webhook body is not a JSON object")
    return data


# ----------------------------
# Payment Adapter Interface
# ----------------------------
class PaymentAdapter(ABC):
    name: str = ""

    @property
    @abstractmethod
    def public_key(self) -> str: ...

    @property
    def configured(self) -> bool:
        return True

    @abstractmethod
    async def create_order(
            self, reg: Registration, amount: int, currency: str
    ) -> CreateOrderResult: ...

    # client callback: signature over "order_id|payment_id"
    @abstractmethod
    def verify_payment(
            self, order_id: str, payment_id: str, signature: str
    ) -> bool: ...

    # must only look at the raw bytes, never at parsed JSON
    @abstractmethod
    def verify_webhook(
            self, payload: bytes, headers: Mapping[str, str]
    ) -> bool: ...

    @abstractmethod
    def parse_webhook(self, payload: bytes) -> WebhookEvent: ...

    async def aclose(self) -> None:
        return None
