from typing import Optional

import httpx

from .. import config
from ._base import (
    PaymentAdapter, CreateOrderResult, WebhookEvent,
    KIND_CAPTURED, KIND_FAILED, KIND_IGNORED,
)
from ._mockpay import MockPay

GATEWAYS = ("razorpay", "cashfree", "mock")


def new_adapter(name: Optional[str] = None, *,
                http: Optional[httpx.AsyncClient] = None) -> PaymentAdapter:
    name = (name or config.GATEWAY).lower()
    if name == "mock":
        return MockPay()
    if name == "razorpay":
        from ._razorpay import RazorpayAdapter
        return RazorpayAdapter()
    if name == "cashfree":
        from ._cashfree import CashfreeAdapter
        if http is None:
            raise RuntimeError("CashfreeAdapter requires http=AsyncClient")
        return CashfreeAdapter(http)
    raise RuntimeError(
        f"unknown GATEWAY {name!r}; expected one of {GATEWAYS}"
    )


__all__ = [
    "PaymentAdapter", "CreateOrderResult", "WebhookEvent", "MockPay",
    "new_adapter", "GATEWAYS",
    "KIND_CAPTURED", "KIND_FAILED", "KIND_IGNORED",
]
