from __future__ import annotations
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional

from . import config
from .errors import (
    GatewayError, InvalidSignatureError, InvalidStateError, NotFoundError,
    ValidationError,
)
from .gateways import (
    PaymentAdapter, WebhookEvent, KIND_CAPTURED, KIND_FAILED,
)
from .model.records import (
    Registration, STATUS_CREATED, STATUS_ORDER_CREATED, STATUS_PAID,
    STATUS_FAILED, new_reference_id, now_ts,
)
from .model.registration import RegistrationStore

logger = logging.getLogger(__name__)

# what polling clients see
PAYMENT_PAID = "PAID"
PAYMENT_PENDING = "PENDING"
PAYMENT_FAILED = "FAILED"
PAYMENT_UNKNOWN = "UNKNOWN"

# one @, no whitespace, a dot in the domain
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


@dataclass
class Confirmation:
    registration: Registration
    # True only for the caller whose compare-and-set moved the record to PAID
    newly_paid: bool


@dataclass
class WebhookOutcome:
    action: str  # paid | duplicate | failed | unknown_order | ignored
    registration: Optional[Registration] = None

    @property
    def newly_paid(self) -> bool:
        return self.action == "paid"


def _required_str(payload: Dict[str, Any], key: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{key} is required")
    return value.strip()


class RegistrationService:
    """Registration intake, order creation and payment confirmation.

    Owns no state of its own: the store holds the records and the adapter
    talks to the payment gateway. Notification is left to the caller, which
    sends it only when :attr:`Confirmation.newly_paid` is set.
    """

    def __init__(
        self,
        store: RegistrationStore,
        adapter: PaymentAdapter,
        *,
        amount: Optional[int] = None,
        currency: Optional[str] = None,
    ) -> None:
        self.store = store
        self.adapter = adapter
        self.amount = amount if amount is not None else config.PROGRAM_FEE
        self.currency = currency or config.PROGRAM_CURRENCY

    # ----------------------------
    # Intake
    # ----------------------------
    async def register(self, payload: Dict[str, Any]) -> Registration:
        if not isinstance(payload, dict):
            raise ValidationError("All fields are required")
        full_name = _required_str(payload, "fullName")
        email = _required_str(payload, "email")
        phone = _required_str(payload, "phone")
        if not EMAIL_RE.match(email):
            raise ValidationError("email must be a valid email address")

        reg = Registration(
            reference_id=new_reference_id(),
            full_name=full_name,
            email=email,
            phone=phone,
            created_at=now_ts(),
        )
        await self.store.create(reg)
        logger.info("registered %s", reg.reference_id)
        return reg

    async def _require(self, reference_id: str) -> Registration:
        reg = await self.store.get(reference_id)
        if reg is None:
            raise NotFoundError("Invalid reference ID")
        return reg

    # ----------------------------
    # Order creation
    # ----------------------------
    async def create_order(self, reference_id: str) -> Dict[str, Any]:
        if not isinstance(reference_id, str) or not reference_id.strip():
            raise ValidationError("Reference ID is required")
        reg = await self._require(reference_id)

        if reg.status == STATUS_ORDER_CREATED:
            return self._order_response(reg.order_id, {})
        if reg.status != STATUS_CREATED:
            raise InvalidStateError(
                f"registration is already {reg.status.lower()}"
            )

        try:
            result = await self.adapter.create_order(
                reg, self.amount, self.currency
            )
        except GatewayError as e:
            logger.warning(
                "order creation failed for %s: %s %s",
                reference_id, e.provider_code, e.description,
            )
            raise

        order_id = result["order_id"]
        attached = await self.store.attach_order(
            reference_id, order_id, now_ts()
        )
        if not attached:
            # a concurrent request attached its order first
            current = await self._require(reference_id)
            if current.status != STATUS_ORDER_CREATED:
                raise InvalidStateError(
                    f"registration is already {current.status.lower()}"
                )
            logger.info(
                "discarding order %s, %s already has %s",
                order_id, reference_id, current.order_id,
            )
            return self._order_response(current.order_id, {})

        logger.info("order %s created for %s", order_id, reference_id)
        return self._order_response(order_id, result.get("extra") or {})

    def _order_response(self, order_id: Optional[str],
                        extra: Dict[str, Any]) -> Dict[str, Any]:
        resp = {
            "orderId": order_id,
            "gatewayPublicKey": self.adapter.public_key,
            "gateway": self.adapter.name,
            "amount": self.amount,
            "currency": self.currency,
        }
        resp.update(extra)
        return resp

    # ----------------------------
    # Confirmation
    # ----------------------------
    async def _mark_paid(self, reg: Registration,
                         payment_id: str) -> Confirmation:
        ok = await self.store.compare_and_set_status(
            reg.reference_id,
            (STATUS_ORDER_CREATED,),
            STATUS_PAID,
            now=now_ts(),
            transaction_id=payment_id,
        )
        current = await self._require(reg.reference_id)
        if ok:
            logger.info(
                "payment %s confirmed for %s", payment_id, reg.reference_id
            )
            return Confirmation(current, newly_paid=True)
        if current.status == STATUS_PAID:
            return Confirmation(current, newly_paid=False)
        raise InvalidStateError(
            f"registration is {current.status.lower()}, cannot mark paid"
        )

    async def confirm_payment(self, payload: Dict[str, Any]) -> Confirmation:
        if not isinstance(payload, dict):
            raise ValidationError("request body must be a JSON object")
        reference_id = _required_str(payload, "referenceId")
        order_id = _required_str(payload, "orderId")
        payment_id = _required_str(payload, "paymentId")
        signature = _required_str(payload, "signature")

        if not self.adapter.verify_payment(order_id, payment_id, signature):
            logger.warning("invalid payment signature for %s", reference_id)
            raise InvalidSignatureError("Invalid payment signature")

        reg = await self._require(reference_id)
        if reg.status == STATUS_PAID:
            return Confirmation(reg, newly_paid=False)
        if reg.order_id != order_id:
            raise ValidationError(
                "orderId does not belong to this registration"
            )
        return await self._mark_paid(reg, payment_id)

    async def apply_webhook(self, event: WebhookEvent) -> WebhookOutcome:
        if event.kind not in (KIND_CAPTURED, KIND_FAILED):
            logger.info("ignoring webhook event %r", event.event_type)
            return WebhookOutcome("ignored")
        if not event.order_id:
            logger.warning("webhook %r without order id", event.event_type)
            return WebhookOutcome("ignored")

        reg = await self.store.get_by_order_id(event.order_id)
        if reg is None:
            logger.error(
                "could not find registration for order %s", event.order_id
            )
            return WebhookOutcome("unknown_order")

        if event.kind == KIND_CAPTURED:
            if reg.status == STATUS_PAID:
                return WebhookOutcome("duplicate", reg)
            if not event.payment_id:
                logger.warning(
                    "captured webhook for %s without payment id",
                    event.order_id,
                )
                return WebhookOutcome("ignored", reg)
            confirmation = await self._mark_paid(reg, event.payment_id)
            action = "paid" if confirmation.newly_paid else "duplicate"
            return WebhookOutcome(action, confirmation.registration)

        # failed: only an open order may fail; PAID always wins
        ok = await self.store.compare_and_set_status(
            reg.reference_id,
            (STATUS_ORDER_CREATED,),
            STATUS_FAILED,
            now=now_ts(),
            failure_reason=event.reason or "payment failed",
        )
        if not ok:
            logger.info(
                "ignoring failure for %s in status %s",
                reg.reference_id, reg.status,
            )
            return WebhookOutcome("ignored", reg)
        logger.info("payment failed for %s: %s", reg.reference_id, event.reason)
        return WebhookOutcome("failed", await self._require(reg.reference_id))

    # ----------------------------
    # Status
    # ----------------------------
    async def payment_status(self, reference_id: str) -> str:
        reg = await self.store.get(reference_id)
        if reg is None:
            return PAYMENT_UNKNOWN
        if reg.status == STATUS_PAID:
            return PAYMENT_PAID
        if reg.status == STATUS_FAILED:
            return PAYMENT_FAILED
        return PAYMENT_PENDING
