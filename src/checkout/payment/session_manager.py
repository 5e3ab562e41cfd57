"""Payment session manager — gateway key, payment initialization and widget hand-off.

A payment session is one attempt to collect money for an order: the backend
issues a reference for (order, amount), and the widget is opened with that
reference and two callbacks.
"""

import re

import structlog

from checkout.backend import get_backend
from checkout.backend.port import BackendError, StorefrontBackend
from checkout.cart.pricing import clamp_amount, to_minor_units
from checkout.config import get_settings
from checkout.errors import MissingOrderIdError, PaymentInitializationError
from checkout.gateway import get_widget
from checkout.gateway.port import GatewayWidget, WidgetHandoff

logger = structlog.get_logger(__name__)

# Gateway public key, fetched once per process
_gateway_key: str | None = None


def reset_gateway_key() -> None:
    global _gateway_key
    _gateway_key = None


class PaymentSessionManager:
    def __init__(self, backend: StorefrontBackend | None = None, widget: GatewayWidget | None = None) -> None:
        self.backend = backend or get_backend()
        self.widget = widget or get_widget()

    # -------------------------------------------------------------------
    # Gateway key
    # -------------------------------------------------------------------
    @property
    def gateway_key(self) -> str | None:
        return _gateway_key

    @property
    def gateway_ready(self) -> bool:
        return bool(_gateway_key)

    def fetch_gateway_key(self) -> str | None:
        """Load the gateway public key. Failures leave the gateway not ready."""
        global _gateway_key
        if _gateway_key:
            return _gateway_key

        try:
            key = self.backend.fetch_public_key()
        except BackendError as exc:
            logger.warning("Gateway public key unavailable", error=exc.message)
            return None

        _gateway_key = key
        logger.info("Gateway public key loaded")
        return key

    # -------------------------------------------------------------------
    # Payment initialization
    # -------------------------------------------------------------------
    def initialize_payment(self, order_id, amount: float, metadata: dict, email: str) -> str:
        """Open a payment attempt for ``order_id`` and return its reference."""
        if not order_id:
            raise MissingOrderIdError()

        amount = clamp_amount(amount)
        try:
            reference = self.backend.initialize_payment(
                email=email,
                amount=amount,
                order_id=str(order_id),
                metadata=metadata,
            )
        except BackendError as exc:
            logger.warning("Payment initialization failed", order_id=order_id, error=exc.message)
            raise PaymentInitializationError(exc, order_id=str(order_id)) from exc

        logger.info("Payment initialized", order_id=order_id, reference=reference, amount=amount)
        return reference

    def initialize_bank_transfer(self, order_id, amount: float) -> str:
        if not order_id:
            raise MissingOrderIdError()

        amount = clamp_amount(amount)
        try:
            reference = self.backend.initialize_bank_transfer(order_id=str(order_id), amount=amount)
        except BackendError as exc:
            logger.warning("Bank transfer initialization failed", order_id=order_id, error=exc.message)
            raise PaymentInitializationError(exc, order_id=str(order_id)) from exc

        logger.info("Bank transfer initialized", order_id=order_id, reference=reference, amount=amount)
        return reference

    # -------------------------------------------------------------------
    # Widget hand-off
    # -------------------------------------------------------------------
    def customer_email(self, session) -> str:
        """Payer email: the customer's, else one derived from phone or customer id."""
        if session.customer_email:
            return session.customer_email

        domain = get_settings().fallback_email_domain
        digits = re.sub(r"\D", "", session.customer_phone or "")
        if digits:
            return f"{digits}@{domain}"
        return f"customer_{session.customer_id or session.session_key}@{domain}"

    def metadata(self, session) -> dict:
        """Customer, items and address sent with the payment initialization."""
        return {
            "user_id": str(session.customer_id) if session.customer_id else None,
            "user_name": session.customer_name or session.recipient_name,
            "phone": session.customer_phone or session.recipient_phone,
            "items": [
                {"name": item.name, "quantity": item.quantity, "price": item.final_price}
                for item in session.snapshot.items
            ],
            "item_count": session.snapshot.line_count,
            "shipping_address": session.delivery_address,
        }

    def build_handoff(self, session, reference: str, on_close, on_success) -> WidgetHandoff:
        return WidgetHandoff(
            key=self.gateway_key or "",
            email=self.customer_email(session),
            amount_minor_units=to_minor_units(session.payment_amount or 0.0),
            reference=reference,
            on_close=on_close,
            on_success=on_success,
            currency=get_settings().currency,
            metadata={
                "custom_fields": [
                    {
                        "display_name": "Customer Name",
                        "variable_name": "customer_name",
                        "value": session.customer_name or session.recipient_name or "",
                    },
                    {
                        "display_name": "Phone Number",
                        "variable_name": "phone_number",
                        "value": session.customer_phone or session.recipient_phone or "",
                    },
                ]
            },
        )

    def open_gateway_widget(self, handoff: WidgetHandoff) -> None:
        """Hand control to the widget. Both callbacks are already on the hand-off."""
        logger.info(
            "Opening payment widget",
            reference=handoff.reference,
            amount_minor_units=handoff.amount_minor_units,
        )
        self.widget.open(handoff)
