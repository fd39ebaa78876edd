from __future__ import annotations
import logging
import uuid
from typing import Optional

import httpx

from fastapi import BackgroundTasks, Depends, FastAPI, Form, HTTPException, \
    Request
from fastapi.responses import ORJSONResponse, PlainTextResponse
from starlette.middleware.sessions import SessionMiddleware

from . import config
from .auth import Principal, SESSION_KEY, check_credentials, require_admin
from .emails import ContactInquiry, Notifier, new_mailer
from .errors import AuthError, NotFoundError, RegistrationError, \
    ValidationError
from .gateways import MockPay, new_adapter
from .model.records import STATUSES, major_units
from .model.registration import new_store
from .service import RegistrationService, PAYMENT_PAID

logger = logging.getLogger(__name__)


app = FastAPI(
    title="classdesk",
    default_response_class=ORJSONResponse,
)
app.add_middleware(SessionMiddleware, secret_key=config.SESSION_SECRET)


@app.exception_handler(RegistrationError)
async def _registration_error(request: Request, exc: RegistrationError):
    return ORJSONResponse(status_code=exc.status_code, content=exc.to_dict())


# ---
# dependencies
# ---
def get_service(request: Request) -> RegistrationService:
    return request.app.state.service


def get_notifier(request: Request) -> Notifier:
    return request.app.state.notifier


# ---
# startup / shutdown
# ---
@app.on_event("startup")
async def _say_hello():
    config.configure_logging()
    print('\n' * 2)
    print('=' * 50)
    print('classdesk is starting up...')
    print(f'   - Registration Backend: {config.REG_BACKEND}')
    print(f'   - Payment Gateway:      {config.GATEWAY}')
    print(f'   - Mail Backend:         {config.MAIL_BACKEND}')
    print('=' * 50)
    print('\n' * 2)


@app.on_event("startup")
async def _http_client_start():
    app.state.http = httpx.AsyncClient(
        timeout=config.GATEWAY_TIMEOUT_SECONDS,
        limits=httpx.Limits(
            max_connections=64, max_keepalive_connections=64
        ),
    )


@app.on_event("startup")
async def _service_start():
    store = await new_store()
    adapter = new_adapter(http=app.state.http)
    if not adapter.configured:
        logger.warning(
            "%s gateway credentials missing; order creation will fail",
            adapter.name,
        )
    app.state.service = RegistrationService(store, adapter)
    app.state.notifier = Notifier(new_mailer())
    if not app.state.notifier.operator_email:
        logger.warning(
            "OPERATOR_EMAIL and EMAIL_USER unset; operator copies of "
            "confirmations and contact inquiries will be skipped"
        )


@app.on_event("shutdown")
async def _service_stop():
    service = getattr(app.state, "service", None)
    if service is not None:
        await service.adapter.aclose()
        await service.store.close()
        app.state.service = None


@app.on_event("shutdown")
async def _http_client_stop():
    http = getattr(app.state, "http", None)
    if http is not None:
        await http.aclose()
        app.state.http = None


# ----------------------------
# Liveness
# ----------------------------
@app.get("/", response_class=PlainTextResponse)
async def root():
    return "Server is running. API available at /api endpoints."


@app.get("/api")
async def api_root():
    return {"message": "API is running"}


@app.get("/status")
async def server_status():
    return {"status": "Server is running"}


# ----------------------------
# API: registration & orders
# ----------------------------
@app.post("/api/register")
async def register(
    payload: dict,
    service: RegistrationService = Depends(get_service),
):
    reg = await service.register(payload)
    return {
        "success": True,
        "referenceId": reg.reference_id,
        "paymentDetails": {
            "upiId": config.UPI_ID,
            "name": config.ORGANIZER_NAME,
            "amount": major_units(service.amount),
            "currency": service.currency,
        },
    }


@app.post("/api/create-payment-order")
async def create_payment_order(
    payload: dict,
    service: RegistrationService = Depends(get_service),
):
    order = await service.create_order(payload.get("referenceId"))
    return {"success": True, **order}


# ----------------------------
# API: payment status (polled by success page)
# ----------------------------
@app.get("/api/check-payment")
async def check_payment(
    reference_id: Optional[str] = None,
    service: RegistrationService = Depends(get_service),
):
    if not reference_id:
        raise ValidationError("Reference ID is required")
    status = await service.payment_status(reference_id)
    return {"success": status == PAYMENT_PAID, "status": status}


# ----------------------------
# API: client callback confirmation
# ----------------------------
@app.post("/api/confirm-payment")
async def confirm_payment(
    payload: dict,
    background: BackgroundTasks,
    service: RegistrationService = Depends(get_service),
    notifier: Notifier = Depends(get_notifier),
):
    confirmation = await service.confirm_payment(payload)
    reg = confirmation.registration
    if confirmation.newly_paid:
        background.add_task(notifier.send_confirmation, reg)
    return {
        "success": True,
        "referenceId": reg.reference_id,
        "transactionId": reg.transaction_id,
    }


# ----------------------------
# Contact form
# ----------------------------
@app.post("/contact")
@app.post("/api/contact")
async def contact(
    payload: dict,
    notifier: Notifier = Depends(get_notifier),
):
    inquiry = ContactInquiry.from_payload(payload)
    await notifier.send_contact(inquiry)
    return {
        "success": True,
        "message": "Your message has been sent successfully",
    }


# ----------------------------
# Webhook endpoints
# ----------------------------
async def _handle_webhook(
    request: Request,
    background: BackgroundTasks,
    service: RegistrationService,
    notifier: Notifier,
):
    # signature is checked over the exact bytes received, before parsing
    payload = await request.body()
    headers = dict(request.headers)
    adapter = service.adapter

    if not adapter.verify_webhook(payload, headers):
        logger.warning("rejected %s webhook: invalid signature", adapter.name)
        return ORJSONResponse(
            status_code=401,
            content={"success": False, "error": "invalid_signature"},
        )

    # from here on we always acknowledge, so the sender doesn't redeliver
    try:
        event = adapter.parse_webhook(payload)
        logger.info(
            "received %s webhook %r (%s) for order %s",
            adapter.name, event.event_type, event.event_id, event.order_id,
        )
        outcome = await service.apply_webhook(event)
    except Exception:
        logger.exception("webhook processing error")
        return {"success": True}

    if outcome.newly_paid:
        background.add_task(notifier.send_confirmation, outcome.registration)
    return {"success": True}


@app.post("/payments/webhook")
async def payments_webhook(
    request: Request,
    background: BackgroundTasks,
    service: RegistrationService = Depends(get_service),
    notifier: Notifier = Depends(get_notifier),
):
    return await _handle_webhook(request, background, service, notifier)


@app.post("/api/{gateway}-webhook")
async def gateway_webhook(
    gateway: str,
    request: Request,
    background: BackgroundTasks,
    service: RegistrationService = Depends(get_service),
    notifier: Notifier = Depends(get_notifier),
):
    if gateway != service.adapter.name:
        raise HTTPException(404, detail=f"{gateway} webhooks not enabled")
    return await _handle_webhook(request, background, service, notifier)


# ----------------------------
# Admin
# ----------------------------
@app.post("/admin/login")
async def admin_login(
    request: Request,
    username: str = Form(...),
    password: str = Form(...),
):
    if not check_credentials(username, password):
        raise AuthError("Invalid credentials.")
    request.session[SESSION_KEY] = username.strip()
    return {"success": True, "username": username.strip()}


@app.get("/admin/logout")
async def admin_logout(request: Request):
    request.session.clear()
    return {"success": True}


@app.get("/api/admin/registrations")
async def api_admin_registrations(
    limit: int = 200,
    status: Optional[str] = None,
    principal: Principal = Depends(require_admin),
    service: RegistrationService = Depends(get_service),
):
    if status is not None and status not in STATUSES:
        raise ValidationError(f"status must be one of {', '.join(STATUSES)}")
    limit = max(1, min(limit, 500))
    total, regs = await service.store.list_recent(limit=limit, status=status)
    return {
        "items": [r.to_public() for r in regs],
        "total": total,
        "limit": limit,
    }


@app.get("/api/admin/registrations/{reference_id}")
async def api_admin_registration(
    reference_id: str,
    principal: Principal = Depends(require_admin),
    service: RegistrationService = Depends(get_service),
):
    reg = await service.store.get(reference_id)
    if reg is None:
        raise NotFoundError("Invalid reference ID")
    return reg.to_public()


# ----------------------------
# MockPay: simulate the gateway side of a payment
# ----------------------------
@app.post("/mockpay/{order_id}/emit")
async def mockpay_emit(
    order_id: str,
    request: Request,
    t: str = Form(...),
    service: RegistrationService = Depends(get_service),
):
    adapter = service.adapter
    if not isinstance(adapter, MockPay):
        raise HTTPException(404, detail="mock gateway not enabled")
    if t not in {"succeeded", "failed", "canceled"}:
        raise HTTPException(400, detail="invalid kind")

    reg = await service.store.get_by_order_id(order_id)
    if reg is None:
        raise NotFoundError("order not found")

    payment_id = f"mock_pay_{uuid.uuid4().hex[:14]}"
    payload, sig = adapter.sign_webhook(
        adapter.build_event(t, order_id, payment_id)
    )

    client_http: httpx.AsyncClient = request.app.state.http
    delivered = False
    try:
        resp = await client_http.post(
            config.MOCK_WEBHOOK_URL,
            content=payload,
            headers={
                "x-mockpay-signature": sig,
                "content-type": "application/json",
            },
        )
        delivered = resp.status_code < 300
    except httpx.HTTPError as e:
        # the client can still confirm through /api/confirm-payment
        logger.warning("mock webhook delivery failed: %s", e)

    out = {
        "referenceId": reg.reference_id,
        "orderId": order_id,
        "paymentId": payment_id,
        "kind": t,
        "delivered": delivered,
    }
    if t == "succeeded":
        out["signature"] = adapter.sign_payment(order_id, payment_id)
    return out
