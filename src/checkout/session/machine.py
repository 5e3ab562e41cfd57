"""Checkout state machine — drives one CheckoutSession through order and payment.

The machine holds the live CheckoutSession by reference and persists it after
every step, outside any unit of work, so that a step that already happened
(an order created on the backend, a payment initialized) is never rolled
back by a later failure. Widget callbacks are bound to a per-attempt
GatewayCallbackBridge that reads ``machine.session`` when they fire.

A reload builds a new machine from the repository with ``resume``.
"""

import json

import structlog
from protean.exceptions import ValidationError
from protean.utils.globals import current_domain

from checkout.backend import get_backend
from checkout.backend.port import BankTransferDetails, StorefrontBackend
from checkout.cart.pricing import PricingPolicy, get_pricing_policy
from checkout.config import get_settings
from checkout.errors import (
    CardValidationError,
    GatewayNotReadyError,
    OrderCreationError,
    PaymentInitializationError,
)
from checkout.gateway import get_widget
from checkout.gateway.port import GatewayWidget, WidgetHandoff
from checkout.order.creation import OrderCreationService
from checkout.order.draft import OrderDraft
from checkout.payment.bank_transfer import BankTransferService
from checkout.payment.callbacks import GatewayCallbackBridge
from checkout.payment.card import CardDetails
from checkout.payment.session_manager import PaymentSessionManager
from checkout.payment.verification import VerificationService
from checkout.session.management import AbandonCheckout, StartCheckout
from checkout.session.session import CheckoutSession, CheckoutStatus, PaymentMethod, ShippingMethod

logger = structlog.get_logger(__name__)


class CheckoutStateMachine:
    def __init__(
        self,
        session: CheckoutSession,
        backend: StorefrontBackend | None = None,
        widget: GatewayWidget | None = None,
        pricing_policy: PricingPolicy | None = None,
        verification: VerificationService | None = None,
    ) -> None:
        backend = backend or get_backend()
        self.session = session
        self.backend = backend
        self.pricing_policy = pricing_policy or get_pricing_policy()
        self.orders = OrderCreationService(backend)
        self.payments = PaymentSessionManager(backend, widget or get_widget())
        self.verification = verification or VerificationService(backend)
        self.bank_transfers = BankTransferService(backend)
        self.bridge: GatewayCallbackBridge | None = None

    # -------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------
    @classmethod
    def start(
        cls,
        session_key,
        cart_items: list[dict] | None = None,
        customer_id=None,
        customer_email=None,
        customer_name=None,
        customer_phone=None,
        backend: StorefrontBackend | None = None,
        widget: GatewayWidget | None = None,
    ) -> "CheckoutStateMachine":
        """Start checkout from ``cart_items``, or from the backend cart when omitted.

        An unfinished checkout under the same key is resumed as it is.
        """
        backend = backend or get_backend()
        if cart_items is None:
            cart_items = backend.fetch_cart().get("items") or []

        current_domain.process(
            StartCheckout(
                session_key=session_key,
                cart_items=json.dumps(cart_items),
                customer_id=customer_id,
                customer_email=customer_email,
                customer_name=customer_name,
                customer_phone=customer_phone,
            ),
            asynchronous=False,
        )
        return cls.resume(session_key, backend=backend, widget=widget)

    @classmethod
    def resume(
        cls,
        session_key,
        backend: StorefrontBackend | None = None,
        widget: GatewayWidget | None = None,
    ) -> "CheckoutStateMachine":
        """Rebuild the machine for a stored session (after a reload or restart)."""
        session = current_domain.repository_for(CheckoutSession).get(session_key)
        machine = cls(session, backend=backend, widget=widget)
        machine.payments.fetch_gateway_key()

        if session.recover_stale_in_flight(get_settings().stale_in_flight_seconds):
            machine._save()
            logger.warning("Recovered stale in-flight checkout", session_key=str(session_key), status=session.status)

        if session.awaiting_user:
            machine.bridge = GatewayCallbackBridge(machine, session.payment_reference)
        return machine

    @property
    def status(self) -> CheckoutStatus:
        return CheckoutStatus(self.session.status)

    def _save(self) -> None:
        current_domain.repository_for(CheckoutSession).add(self.session)

    def refresh(self) -> CheckoutSession:
        """Replace the live session with the stored one (another request may have moved it)."""
        self.session = current_domain.repository_for(CheckoutSession).get(self.session.session_key)
        return self.session

    def _log(self):
        return logger.bind(
            session_key=str(self.session.session_key),
            order_id=self.session.order_id,
            reference=self.session.payment_reference,
        )

    # -------------------------------------------------------------------
    # Shipping step
    # -------------------------------------------------------------------
    def advance_to_payment(
        self,
        address_line,
        city,
        shipping_method=ShippingMethod.STANDARD.value,
        payment_method=PaymentMethod.PAYSTACK.value,
        recipient_name=None,
        recipient_phone=None,
        gift_message=None,
    ) -> None:
        """Confirm delivery details. No order is created and nothing leaves the process."""
        try:
            shipping_method = ShippingMethod(shipping_method).value
            payment_method = PaymentMethod(payment_method).value
        except ValueError as exc:
            raise ValidationError({"method": [str(exc)]}) from exc

        pricing = self.pricing_policy.price(self.session.snapshot, shipping_method)
        self.session.confirm_shipping(
            address_line=address_line,
            city=city,
            pricing=pricing,
            recipient_name=recipient_name,
            recipient_phone=recipient_phone,
            shipping_method=shipping_method,
            payment_method=payment_method,
            gift_message=gift_message,
        )
        self._save()
        self._log().info("Shipping confirmed", order_total=pricing.order_total)

    def return_to_shipping(self) -> None:
        self.session.return_to_shipping()
        self._save()

    def change_payment_method(self, payment_method) -> None:
        try:
            payment_method = PaymentMethod(payment_method).value
        except ValueError as exc:
            raise ValidationError({"payment_method": [str(exc)]}) from exc

        self.session.change_payment_method(payment_method)
        self._save()
        self._log().info("Payment method changed", payment_method=payment_method)

    # -------------------------------------------------------------------
    # Payment submission
    # -------------------------------------------------------------------
    def submit_payment(self, card: CardDetails | None = None) -> WidgetHandoff | None:
        """Create the order (once) and start paying for it.

        Returns the widget hand-off for gateway payments, None for bank transfer.
        """
        session = self.session
        method = PaymentMethod(session.payment_method)

        # Local checks first; none of them touch the network
        if method != PaymentMethod.BANK_TRANSFER and not self.payments.gateway_ready:
            if not self.payments.fetch_gateway_key():
                raise GatewayNotReadyError()
        if method == PaymentMethod.CARD:
            if card is None:
                raise CardValidationError({"card": ["Card details are required"]})
            card.validate()
        draft = OrderDraft.from_session(session)
        draft.validate()

        session.begin_submission()
        self._save()

        if not session.order_id:
            try:
                self.orders.create_order(session, draft)
            except OrderCreationError as exc:
                session.record_order_creation_failed(exc.cause, exc.message)
                self._save()
                raise
        else:
            self._log().info("Reusing existing order")

        if method == PaymentMethod.BANK_TRANSFER:
            self._submit_bank_transfer()
            return None
        return self._submit_gateway_payment()

    def _submit_gateway_payment(self) -> WidgetHandoff:
        session = self.session
        amount = session.payable_amount
        try:
            reference = self.payments.initialize_payment(
                order_id=session.order_id,
                amount=amount,
                metadata=self.payments.metadata(session),
                email=self.payments.customer_email(session),
            )
        except PaymentInitializationError as exc:
            session.record_payment_initialization_failed(exc.cause, exc.message)
            self._save()
            raise

        session.record_payment_initialized(reference, amount)
        self._save()
        return self._open_widget()

    def _submit_bank_transfer(self) -> None:
        session = self.session
        amount = session.payable_amount
        try:
            reference = self.payments.initialize_bank_transfer(order_id=session.order_id, amount=amount)
        except PaymentInitializationError as exc:
            session.record_payment_initialization_failed(exc.cause, exc.message)
            self._save()
            raise

        session.record_bank_transfer_initialized(reference, amount)
        self._save()

    def _open_widget(self) -> WidgetHandoff:
        # Callbacks are registered on the hand-off before the widget opens
        self.bridge = GatewayCallbackBridge(self, self.session.payment_reference)
        handoff = self.payments.build_handoff(
            self.session,
            self.session.payment_reference,
            on_close=self.bridge.on_close,
            on_success=self.bridge.on_success,
        )
        self.payments.open_gateway_widget(handoff)
        return handoff

    def reopen_gateway(self) -> WidgetHandoff:
        """Open the widget again for the current attempt, e.g. after a reload."""
        if not self.session.awaiting_user:
            raise ValidationError({"status": ["No payment attempt is waiting for the widget"]})
        if not self.payments.gateway_ready and not self.payments.fetch_gateway_key():
            raise GatewayNotReadyError()

        self._log().info("Reopening payment widget")
        return self._open_widget()

    # -------------------------------------------------------------------
    # Gateway callbacks
    # -------------------------------------------------------------------
    def _accepts_callback(self, callback: str, reference: str | None) -> bool:
        session = self.session
        if not session.awaiting_user:
            self._log().info("Gateway callback ignored", callback=callback, status=session.status)
            return False
        if reference is not None and reference != session.payment_reference:
            self._log().info("Gateway callback for a superseded attempt ignored", callback=callback, received=reference)
            return False
        return True

    def handle_gateway_close(self, reference: str | None = None) -> bool:
        if not self._accepts_callback("close", reference):
            return False

        self.session.record_gateway_closed()
        self._save()
        self._log().info("Payment widget closed by shopper")
        return True

    def handle_gateway_success(self, reference: str | None = None) -> bool:
        """Verify a reported payment and finish the checkout either way."""
        if not self._accepts_callback("success", reference):
            return False

        self.session.record_gateway_success(reference)
        self._save()
        self._log().info("Gateway reported success, verifying")

        self.verification.finalize(self.session, self.session.payment_reference)
        return True

    # -------------------------------------------------------------------
    # Bank transfer
    # -------------------------------------------------------------------
    def bank_transfer_details(self) -> BankTransferDetails:
        return self.bank_transfers.details(self.session)

    def confirm_bank_transfer(self) -> str:
        return self.bank_transfers.confirm(self.session)

    # -------------------------------------------------------------------
    # Leaving checkout
    # -------------------------------------------------------------------
    def requires_leave_confirmation(self) -> bool:
        return self.session.requires_leave_confirmation

    def abandon(self, confirmed: bool = False) -> None:
        """Leave checkout. With an unpaid order this needs ``confirmed=True``."""
        session_key = self.session.session_key
        current_domain.process(
            AbandonCheckout(session_key=session_key, confirmed=confirmed),
            asynchronous=False,
        )
        self.session = current_domain.repository_for(CheckoutSession).get(session_key)
        self.bridge = None
