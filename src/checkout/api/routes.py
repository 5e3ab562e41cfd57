"""FastAPI routes for the Checkout domain.

Every route rebuilds the state machine from the stored session, so a reload
or another worker sees the same checkout. The widget's close/success
callbacks arrive here from the browser.
"""

from fastapi import APIRouter, Header

from checkout.api.schemas import (
    AbandonRequest,
    BankTransferResponse,
    GatewayCallbackRequest,
    PaymentMethodRequest,
    PaymentResponse,
    PayRequest,
    SessionResponse,
    ShippingRequest,
    StartCheckoutRequest,
)
from checkout.backend import get_backend
from checkout.payment.callbacks import GatewayCallbackBridge
from checkout.payment.card import CardDetails
from checkout.session.machine import CheckoutStateMachine
from checkout.session.session import CheckoutSession
from checkout.utils.logging import bind_checkout_context, clear_context

router = APIRouter(prefix="/checkout", tags=["checkout"])


def _bearer_token(authorization: str | None) -> str | None:
    if authorization and authorization.lower().startswith("bearer "):
        return authorization[7:].strip() or None
    return authorization or None


def _machine(session_key: str, authorization: str | None) -> CheckoutStateMachine:
    clear_context()
    bind_checkout_context(session_key)
    backend = get_backend().authorized(_bearer_token(authorization))
    return CheckoutStateMachine.resume(session_key, backend=backend)


def _session_response(session: CheckoutSession) -> SessionResponse:
    pricing = session.pricing
    return SessionResponse(
        session_key=str(session.session_key),
        status=session.status,
        order_id=session.order_id,
        confirmed_order_id=session.confirmed_order_id,
        payment_method=session.payment_method,
        shipping_method=session.shipping_method,
        payment_reference=session.payment_reference,
        payment_amount=session.payment_amount,
        pricing=pricing.summary() if pricing else None,
        message=session.message,
        busy=session.is_busy,
        requires_leave_confirmation=session.requires_leave_confirmation,
    )


# ---------------------------------------------------------------------------
# Session lifecycle
# ---------------------------------------------------------------------------
@router.post("/sessions", status_code=201, response_model=SessionResponse)
async def start_checkout(body: StartCheckoutRequest, authorization: str | None = Header(default=None)) -> SessionResponse:
    clear_context()
    bind_checkout_context(body.session_key)
    machine = CheckoutStateMachine.start(
        body.session_key,
        cart_items=[item.model_dump() for item in body.items] if body.items is not None else None,
        customer_id=body.customer_id,
        customer_email=body.email,
        customer_name=body.name,
        customer_phone=body.phone,
        backend=get_backend().authorized(_bearer_token(authorization)),
    )
    return _session_response(machine.session)


@router.get("/sessions/{session_key}", response_model=SessionResponse)
async def get_checkout(session_key: str, authorization: str | None = Header(default=None)) -> SessionResponse:
    machine = _machine(session_key, authorization)
    return _session_response(machine.session)


@router.post("/sessions/{session_key}/abandon", response_model=SessionResponse)
async def abandon_checkout(
    session_key: str, body: AbandonRequest, authorization: str | None = Header(default=None)
) -> SessionResponse:
    machine = _machine(session_key, authorization)
    machine.abandon(confirmed=body.confirmed)
    return _session_response(machine.session)


# ---------------------------------------------------------------------------
# Shipping and payment steps
# ---------------------------------------------------------------------------
@router.put("/sessions/{session_key}/shipping", response_model=SessionResponse)
async def confirm_shipping(
    session_key: str, body: ShippingRequest, authorization: str | None = Header(default=None)
) -> SessionResponse:
    machine = _machine(session_key, authorization)
    machine.advance_to_payment(
        address_line=body.address_line,
        city=body.city,
        shipping_method=body.shipping_method,
        payment_method=body.payment_method,
        recipient_name=body.recipient_name,
        recipient_phone=body.recipient_phone,
        gift_message=body.gift_message,
    )
    return _session_response(machine.session)


@router.post("/sessions/{session_key}/back", response_model=SessionResponse)
async def back_to_shipping(session_key: str, authorization: str | None = Header(default=None)) -> SessionResponse:
    machine = _machine(session_key, authorization)
    machine.return_to_shipping()
    return _session_response(machine.session)


@router.put("/sessions/{session_key}/payment-method", response_model=SessionResponse)
async def change_payment_method(
    session_key: str, body: PaymentMethodRequest, authorization: str | None = Header(default=None)
) -> SessionResponse:
    machine = _machine(session_key, authorization)
    machine.change_payment_method(body.payment_method)
    return _session_response(machine.session)


@router.post("/sessions/{session_key}/pay", response_model=PaymentResponse)
async def submit_payment(
    session_key: str, body: PayRequest, authorization: str | None = Header(default=None)
) -> PaymentResponse:
    machine = _machine(session_key, authorization)
    card = CardDetails(number=body.card.number, expiry=body.card.expiry, cvv=body.card.cvv) if body.card else None
    handoff = machine.submit_payment(card=card)
    return PaymentResponse(
        session=_session_response(machine.session),
        widget=handoff.config() if handoff else None,
    )


# ---------------------------------------------------------------------------
# Widget callbacks
# ---------------------------------------------------------------------------
# Each callback names the attempt it belongs to; a bridge for that reference
# drops callbacks from closed or superseded attempts.
@router.post("/sessions/{session_key}/gateway/close", response_model=SessionResponse)
async def gateway_closed(
    session_key: str, body: GatewayCallbackRequest, authorization: str | None = Header(default=None)
) -> SessionResponse:
    machine = _machine(session_key, authorization)
    GatewayCallbackBridge(machine, body.reference).on_close()
    return _session_response(machine.session)


@router.post("/sessions/{session_key}/gateway/success", response_model=SessionResponse)
async def gateway_succeeded(
    session_key: str, body: GatewayCallbackRequest, authorization: str | None = Header(default=None)
) -> SessionResponse:
    machine = _machine(session_key, authorization)
    GatewayCallbackBridge(machine, body.reference).on_success(body.reference)
    return _session_response(machine.session)


@router.post("/sessions/{session_key}/gateway/reopen", response_model=PaymentResponse)
async def reopen_gateway(session_key: str, authorization: str | None = Header(default=None)) -> PaymentResponse:
    machine = _machine(session_key, authorization)
    handoff = machine.reopen_gateway()
    return PaymentResponse(session=_session_response(machine.session), widget=handoff.config())


# ---------------------------------------------------------------------------
# Bank transfer
# ---------------------------------------------------------------------------
@router.get("/sessions/{session_key}/bank-transfer", response_model=BankTransferResponse)
async def bank_transfer_details(
    session_key: str, authorization: str | None = Header(default=None)
) -> BankTransferResponse:
    machine = _machine(session_key, authorization)
    details = machine.bank_transfer_details()
    return BankTransferResponse(
        reference=details.reference,
        amount=details.amount,
        bank_details=details.bank_details,
        expires_at=details.expires_at,
        order_id=details.order_id,
        status=details.status,
    )


@router.post("/sessions/{session_key}/bank-transfer/confirm", response_model=SessionResponse)
async def confirm_bank_transfer(session_key: str, authorization: str | None = Header(default=None)) -> SessionResponse:
    machine = _machine(session_key, authorization)
    machine.confirm_bank_transfer()
    return _session_response(machine.session)
