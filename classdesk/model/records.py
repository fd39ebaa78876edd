from __future__ import annotations
import secrets
import time
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Any, Dict, Optional

STATUS_CREATED = "CREATED"
STATUS_ORDER_CREATED = "ORDER_CREATED"
STATUS_PAID = "PAID"
STATUS_FAILED = "FAILED"

STATUSES = (STATUS_CREATED, STATUS_ORDER_CREATED, STATUS_PAID, STATUS_FAILED)

# 128 bits, hex encoded
REFERENCE_ID_BYTES = 16


def new_reference_id() -> str:
    return secrets.token_hex(REFERENCE_ID_BYTES)


def now_ts() -> float:
    return time.time()


def to_iso(ts: Optional[float]) -> Optional[str]:
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


def major_units(amount: int) -> str:
    """Minor units as a display string: 9900 -> "99", 9950 -> "99.50"."""
    whole, frac = divmod(amount, 100)
    return str(whole) if not frac else f"{whole}.{frac:02d}"


@dataclass
class Registration:
    reference_id: str
    full_name: str
    email: str
    phone: str
    created_at: float
    status: str = STATUS_CREATED
    order_id: Optional[str] = None
    transaction_id: Optional[str] = None
    failure_reason: Optional[str] = None
    order_created_at: Optional[float] = None
    paid_at: Optional[float] = None
    failed_at: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_public(self) -> Dict[str, Any]:
        return {
            "referenceId": self.reference_id,
            "fullName": self.full_name,
            "email": self.email,
            "phone": self.phone,
            "status": self.status,
            "orderId": self.order_id,
            "transactionId": self.transaction_id,
            "failureReason": self.failure_reason,
            "createdAt": to_iso(self.created_at),
            "orderCreatedAt": to_iso(self.order_created_at),
            "paidAt": to_iso(self.paid_at),
            "failedAt": to_iso(self.failed_at),
        }
