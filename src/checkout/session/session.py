"""CheckoutSession aggregate (CQRS) — durable state of one shopper's checkout.

The session is keyed by a fixed per-client ``session_key`` so that a reload
(a new request, a restarted process) finds the same checkout, including the
order id created for it. The aggregate owns the transition rules; the
network choreography lives in ``checkout.session.machine``.

State Machine:
    SHIPPING → PAYMENT → SUBMITTING_ORDER → AWAITING_GATEWAY → VERIFYING → COMPLETED
    SUBMITTING_ORDER → PAYMENT (order creation / payment init failed)
    SUBMITTING_ORDER → BANK_TRANSFER_PENDING → COMPLETED (transfer sent)
    BANK_TRANSFER_PENDING → PAYMENT (change payment method)
    AWAITING_GATEWAY → PAYMENT (shopper closed the widget)
    VERIFYING → VERIFICATION_FAILED
    any non-busy, non-terminal state → CANCELLED (abandon)
"""

from datetime import UTC, datetime, timedelta
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, Identifier, Integer, String, Text

from checkout.cart.pricing import PricingBreakdown, clamp_amount
from checkout.cart.snapshot import CartSnapshot
from checkout.domain import checkout
from checkout.errors import CheckoutBusyError
from checkout.session.events import (
    BankTransferInitiated,
    BankTransferSubmitted,
    CheckoutAbandoned,
    CheckoutCompleted,
    CheckoutOrderCreated,
    CheckoutStarted,
    GatewayClosed,
    GatewayReportedSuccess,
    OrderCreationFailed,
    PaymentInitializationFailed,
    PaymentInitialized,
    PaymentVerificationFailed,
    ShippingConfirmed,
)

GIFT_MESSAGE_MAX_LENGTH = 200

CANCELLED_MESSAGE = "Payment cancelled. You can retry when ready."
COMPLETED_MESSAGE = "Payment successful! Your order has been placed."
VERIFICATION_FAILED_MESSAGE = (
    "Payment verification failed. Please contact support with your transaction reference: {reference}"
)


class CheckoutStatus(Enum):
    SHIPPING = "shipping"
    PAYMENT = "payment"
    SUBMITTING_ORDER = "submitting_order"
    AWAITING_GATEWAY = "awaiting_gateway"
    VERIFYING = "verifying"
    COMPLETED = "completed"
    VERIFICATION_FAILED = "verification_failed"
    BANK_TRANSFER_PENDING = "bank_transfer_pending"
    CANCELLED = "cancelled"


class ShippingMethod(Enum):
    STANDARD = "standard"
    PICKUP = "pickup"


class PaymentMethod(Enum):
    PAYSTACK = "paystack"
    CARD = "card"
    BANK_TRANSFER = "bank-transfer"


class AttemptStatus(Enum):
    AWAITING_USER = "awaiting_user"
    USER_CANCELLED = "user_cancelled"
    GATEWAY_REPORTED_SUCCESS = "gateway_reported_success"


_VALID_TRANSITIONS = {
    CheckoutStatus.SHIPPING: {CheckoutStatus.PAYMENT, CheckoutStatus.CANCELLED},
    CheckoutStatus.PAYMENT: {CheckoutStatus.SHIPPING, CheckoutStatus.SUBMITTING_ORDER, CheckoutStatus.CANCELLED},
    CheckoutStatus.SUBMITTING_ORDER: {
        CheckoutStatus.PAYMENT,
        CheckoutStatus.AWAITING_GATEWAY,
        CheckoutStatus.BANK_TRANSFER_PENDING,
    },
    CheckoutStatus.AWAITING_GATEWAY: {CheckoutStatus.PAYMENT, CheckoutStatus.VERIFYING, CheckoutStatus.CANCELLED},
    CheckoutStatus.VERIFYING: {CheckoutStatus.COMPLETED, CheckoutStatus.VERIFICATION_FAILED},
    CheckoutStatus.VERIFICATION_FAILED: {CheckoutStatus.CANCELLED},
    CheckoutStatus.BANK_TRANSFER_PENDING: {
        CheckoutStatus.PAYMENT,
        CheckoutStatus.COMPLETED,
        CheckoutStatus.CANCELLED,
    },
    CheckoutStatus.COMPLETED: set(),  # Terminal
    CheckoutStatus.CANCELLED: set(),  # Terminal
}

TERMINAL_STATUSES = {CheckoutStatus.COMPLETED, CheckoutStatus.CANCELLED}

# Order and reference must both be known while the widget is open or being verified
_PAYMENT_IN_PROGRESS = {CheckoutStatus.AWAITING_GATEWAY, CheckoutStatus.VERIFYING}


@checkout.aggregate
class CheckoutSession:
    session_key = Identifier(identifier=True)

    # Customer identity, as known to the storefront
    customer_id = Identifier()
    customer_email = String(max_length=255)
    customer_name = String(max_length=255)
    customer_phone = String(max_length=50)

    cart_items = Text()  # JSON: CartSnapshot lines, fixed for the session
    pricing_details = Text()  # JSON: PricingBreakdown for the chosen shipping method

    # Delivery details
    recipient_name = String(max_length=255)
    recipient_phone = String(max_length=50)
    address_line = String(max_length=500)
    city = String(max_length=100)
    shipping_method = String(choices=ShippingMethod, default=ShippingMethod.STANDARD.value)
    payment_method = String(choices=PaymentMethod, default=PaymentMethod.PAYSTACK.value)
    gift_message = String(max_length=GIFT_MESSAGE_MAX_LENGTH)

    status = String(choices=CheckoutStatus, default=CheckoutStatus.SHIPPING.value)

    # Order and payment attempt
    order_id = Identifier()  # Active, unpaid order
    confirmed_order_id = Identifier()  # Set once payment is verified
    order_total = Float(default=0.0)
    discount_amount = Float(default=0.0)
    payment_reference = String(max_length=255)
    payment_amount = Float()
    attempt_status = String(choices=AttemptStatus)
    attempt_count = Integer(default=0)

    # In-flight guards
    creating_order = Boolean(default=False)
    loading = Boolean(default=False)
    in_flight_since = DateTime()

    message = String(max_length=500)
    last_error = String(max_length=1000)

    created_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Invariants
    # -------------------------------------------------------------------
    @invariant.post
    def payment_needs_order_and_reference(self):
        if self.status and CheckoutStatus(self.status) in _PAYMENT_IN_PROGRESS:
            if not self.order_id or not self.payment_reference:
                raise ValidationError({"order_id": ["A payment in progress needs an order id and a reference"]})

    @invariant.post
    def payment_amount_cannot_be_negative(self):
        if self.payment_amount is not None and self.payment_amount < 0:
            raise ValidationError({"payment_amount": ["Payment amount cannot be negative"]})

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        session_key,
        snapshot: CartSnapshot,
        customer_id=None,
        customer_email=None,
        customer_name=None,
        customer_phone=None,
    ):
        """Start a checkout from the selected cart lines."""
        if snapshot.is_empty:
            raise ValidationError({"cart": ["Select at least one item to check out"]})

        now = datetime.now(UTC)
        session = cls(
            session_key=session_key,
            customer_id=customer_id,
            customer_email=customer_email,
            customer_name=customer_name,
            customer_phone=customer_phone,
            cart_items=snapshot.to_json(),
            status=CheckoutStatus.SHIPPING.value,
            order_total=snapshot.items_total - snapshot.items_discount,
            created_at=now,
            updated_at=now,
        )
        session._raise_started(snapshot, now)
        return session

    def restart(
        self,
        snapshot: CartSnapshot,
        customer_id=None,
        customer_email=None,
        customer_name=None,
        customer_phone=None,
    ):
        """Begin a fresh checkout under the key of a completed or cancelled one."""
        if not self.is_terminal:
            raise ValidationError({"status": ["Only a finished checkout can be restarted"]})
        if snapshot.is_empty:
            raise ValidationError({"cart": ["Select at least one item to check out"]})

        now = datetime.now(UTC)
        self.status = CheckoutStatus.SHIPPING.value
        self.customer_id = customer_id
        self.customer_email = customer_email
        self.customer_name = customer_name
        self.customer_phone = customer_phone
        self.cart_items = snapshot.to_json()
        self.pricing_details = None
        self.order_total = snapshot.items_total - snapshot.items_discount
        self.discount_amount = 0.0
        self.order_id = None
        self.confirmed_order_id = None
        self.payment_reference = None
        self.payment_amount = None
        self.attempt_status = None
        self.attempt_count = 0
        self._clear_in_flight()
        self.message = None
        self.last_error = None
        self.created_at = now
        self.updated_at = now
        self._raise_started(snapshot, now)

    def _raise_started(self, snapshot, now):
        self.raise_(
            CheckoutStarted(
                session_key=str(self.session_key),
                customer_id=str(self.customer_id) if self.customer_id else None,
                item_count=snapshot.item_count,
                items_total=snapshot.items_total,
                started_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Derived views
    # -------------------------------------------------------------------
    @property
    def snapshot(self) -> CartSnapshot:
        return CartSnapshot.from_json(self.cart_items)

    @property
    def pricing(self) -> PricingBreakdown | None:
        return PricingBreakdown.from_json(self.pricing_details)

    @property
    def payable_amount(self) -> float:
        return clamp_amount(self.order_total or 0.0)

    @property
    def delivery_address(self) -> str:
        return f"{self.address_line}, {self.city}"

    @property
    def is_terminal(self) -> bool:
        return CheckoutStatus(self.status) in TERMINAL_STATUSES

    @property
    def is_busy(self) -> bool:
        return bool(self.creating_order or self.loading)

    @property
    def requires_leave_confirmation(self) -> bool:
        """An unpaid order exists and leaving would abandon it."""
        return bool(self.order_id) and not self.is_terminal

    # -------------------------------------------------------------------
    # State transition helpers
    # -------------------------------------------------------------------
    def _assert_can_transition(self, target_status: CheckoutStatus) -> None:
        current = CheckoutStatus(self.status)
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise ValidationError({"status": [f"Cannot transition from {current.value} to {target_status.value}"]})

    def _transition(self, target_status: CheckoutStatus) -> None:
        self._assert_can_transition(target_status)
        self.status = target_status.value
        self.updated_at = datetime.now(UTC)

    def _clear_in_flight(self):
        self.creating_order = False
        self.loading = False
        self.in_flight_since = None

    # -------------------------------------------------------------------
    # Shipping step
    # -------------------------------------------------------------------
    def confirm_shipping(
        self,
        address_line,
        city,
        pricing: PricingBreakdown,
        recipient_name=None,
        recipient_phone=None,
        shipping_method=ShippingMethod.STANDARD.value,
        payment_method=PaymentMethod.PAYSTACK.value,
        gift_message=None,
    ):
        """Capture delivery details and move to the payment step. No order is created."""
        self._assert_can_transition(CheckoutStatus.PAYMENT)

        errors = {}
        if not address_line or not address_line.strip():
            errors["address_line"] = ["Delivery address is required"]
        if not city or not city.strip():
            errors["city"] = ["City is required"]
        if gift_message and len(gift_message) > GIFT_MESSAGE_MAX_LENGTH:
            errors["gift_message"] = [f"Gift message cannot exceed {GIFT_MESSAGE_MAX_LENGTH} characters"]
        if errors:
            raise ValidationError(errors)

        self.address_line = address_line.strip()
        self.city = city.strip()
        self.recipient_name = recipient_name or self.customer_name
        self.recipient_phone = recipient_phone or self.customer_phone
        self.shipping_method = shipping_method
        self.payment_method = payment_method
        self.gift_message = gift_message or None
        self.pricing_details = pricing.to_json()
        self.order_total = pricing.order_total
        self.discount_amount = pricing.discount_amount
        self.message = None
        self._transition(CheckoutStatus.PAYMENT)

        self.raise_(
            ShippingConfirmed(
                session_key=str(self.session_key),
                shipping_method=self.shipping_method,
                payment_method=self.payment_method,
                order_total=self.order_total,
            )
        )

    def return_to_shipping(self):
        """Go back to edit delivery details. Not allowed once an order exists."""
        if self.order_id:
            raise ValidationError(
                {"order_id": ["Delivery details cannot change after the order is created; abandon checkout instead"]}
            )
        self._transition(CheckoutStatus.SHIPPING)

    def change_payment_method(self, payment_method):
        """Pick another payment method; an existing order is reused."""
        current = CheckoutStatus(self.status)
        if current not in (CheckoutStatus.PAYMENT, CheckoutStatus.BANK_TRANSFER_PENDING):
            raise ValidationError({"status": [f"Cannot change payment method while {current.value}"]})

        self.payment_method = PaymentMethod(payment_method).value
        if current == CheckoutStatus.BANK_TRANSFER_PENDING:
            self.payment_reference = None
            self.payment_amount = None
            self._transition(CheckoutStatus.PAYMENT)
        self.message = None
        self.updated_at = datetime.now(UTC)

    # -------------------------------------------------------------------
    # Submission: order creation and payment initialization
    # -------------------------------------------------------------------
    def begin_submission(self):
        """Mark a submission in flight. Rejects re-entrant submissions."""
        if self.is_busy:
            raise CheckoutBusyError()
        self._assert_can_transition(CheckoutStatus.SUBMITTING_ORDER)

        self.creating_order = not self.order_id
        self.loading = True
        self.in_flight_since = datetime.now(UTC)
        self.message = None
        self.last_error = None
        self._transition(CheckoutStatus.SUBMITTING_ORDER)

    def _assert_submitting(self):
        if CheckoutStatus(self.status) != CheckoutStatus.SUBMITTING_ORDER:
            raise ValidationError({"status": [f"No submission in progress (status is {self.status})"]})

    def record_order_created(self, order_id):
        self._assert_submitting()
        if self.order_id:
            raise ValidationError({"order_id": ["An order already exists for this checkout"]})
        if not order_id:
            raise ValidationError({"order_id": ["Order id is required"]})

        self.order_id = order_id
        self.creating_order = False
        self.updated_at = datetime.now(UTC)

        self.raise_(
            CheckoutOrderCreated(
                session_key=str(self.session_key),
                order_id=str(order_id),
                order_total=self.order_total,
            )
        )

    def record_order_creation_failed(self, reason, message):
        self._assert_submitting()
        self._clear_in_flight()
        self.message = message
        self.last_error = str(reason)[:1000]
        self._transition(CheckoutStatus.PAYMENT)

        self.raise_(
            OrderCreationFailed(
                session_key=str(self.session_key),
                reason=self.last_error,
            )
        )

    def record_payment_initialized(self, reference, amount):
        """The gateway issued a reference; the widget is about to open."""
        self._assert_submitting()

        self.payment_reference = reference
        self.payment_amount = clamp_amount(amount)
        self.attempt_status = AttemptStatus.AWAITING_USER.value
        self.attempt_count = (self.attempt_count or 0) + 1
        self.creating_order = False
        self._transition(CheckoutStatus.AWAITING_GATEWAY)

        self.raise_(
            PaymentInitialized(
                session_key=str(self.session_key),
                order_id=str(self.order_id),
                reference=reference,
                amount=self.payment_amount,
                attempt_number=self.attempt_count,
            )
        )

    def record_payment_initialization_failed(self, reason, message):
        """Payment could not be initialized; the order stays for the next try."""
        self._assert_submitting()
        self._clear_in_flight()
        self.message = message
        self.last_error = str(reason)[:1000]
        self._transition(CheckoutStatus.PAYMENT)

        self.raise_(
            PaymentInitializationFailed(
                session_key=str(self.session_key),
                order_id=str(self.order_id),
                reason=self.last_error,
            )
        )

    def record_bank_transfer_initialized(self, reference, amount):
        self._assert_submitting()

        self.payment_reference = reference
        self.payment_amount = clamp_amount(amount)
        self.attempt_status = None
        self._clear_in_flight()
        self._transition(CheckoutStatus.BANK_TRANSFER_PENDING)

        self.raise_(
            BankTransferInitiated(
                session_key=str(self.session_key),
                order_id=str(self.order_id),
                reference=reference,
                amount=self.payment_amount,
            )
        )

    def record_bank_transfer_sent(self, message=None):
        """The shopper says the transfer was sent; the backend settles it from here."""
        if CheckoutStatus(self.status) != CheckoutStatus.BANK_TRANSFER_PENDING:
            raise ValidationError({"status": ["No bank transfer is pending"]})

        order_id = self.order_id
        reference = self.payment_reference

        self._transition(CheckoutStatus.COMPLETED)
        self.confirmed_order_id = order_id
        self.order_id = None
        self.message = message or "Transfer received. Your order will be confirmed once the payment clears."

        self.raise_(
            BankTransferSubmitted(
                session_key=str(self.session_key),
                order_id=str(order_id),
                reference=reference,
                submitted_at=datetime.now(UTC),
            )
        )

    # -------------------------------------------------------------------
    # Gateway callbacks
    # -------------------------------------------------------------------
    @property
    def awaiting_user(self) -> bool:
        return (
            CheckoutStatus(self.status) == CheckoutStatus.AWAITING_GATEWAY
            and self.attempt_status == AttemptStatus.AWAITING_USER.value
        )

    def record_gateway_closed(self):
        """The shopper closed the widget. Order id is kept for the retry."""
        if not self.awaiting_user:
            raise ValidationError({"attempt_status": ["No payment attempt is awaiting the shopper"]})

        self.attempt_status = AttemptStatus.USER_CANCELLED.value
        self._clear_in_flight()
        self.message = CANCELLED_MESSAGE
        self._transition(CheckoutStatus.PAYMENT)

        self.raise_(
            GatewayClosed(
                session_key=str(self.session_key),
                order_id=str(self.order_id),
                reference=self.payment_reference,
            )
        )

    def record_gateway_success(self, reference=None):
        """The widget reported success. Only a hint until verified."""
        if not self.awaiting_user:
            raise ValidationError({"attempt_status": ["No payment attempt is awaiting the shopper"]})
        if reference and reference != self.payment_reference:
            raise ValidationError({"reference": ["Reference does not match the current payment attempt"]})

        self.attempt_status = AttemptStatus.GATEWAY_REPORTED_SUCCESS.value
        self.in_flight_since = datetime.now(UTC)
        self._transition(CheckoutStatus.VERIFYING)

        self.raise_(
            GatewayReportedSuccess(
                session_key=str(self.session_key),
                order_id=str(self.order_id),
                reference=self.payment_reference,
            )
        )

    # -------------------------------------------------------------------
    # Verification outcome
    # -------------------------------------------------------------------
    def complete(self, confirmed_order_id=None):
        """Payment verified: the active order id is cleared, the confirmed one kept."""
        self._assert_can_transition(CheckoutStatus.COMPLETED)

        now = datetime.now(UTC)
        order_id = confirmed_order_id or self.order_id
        reference = self.payment_reference

        # Leave VERIFYING before dropping the active order id
        self._transition(CheckoutStatus.COMPLETED)
        self.confirmed_order_id = order_id
        self.order_id = None
        self._clear_in_flight()
        self.message = COMPLETED_MESSAGE
        self.last_error = None

        self.raise_(
            CheckoutCompleted(
                session_key=str(self.session_key),
                order_id=str(order_id),
                reference=reference,
                amount=self.payment_amount,
                completed_at=now,
            )
        )

    def fail_verification(self, reason):
        """Settlement not confirmed. The order id is kept so support can reconcile it."""
        self._assert_can_transition(CheckoutStatus.VERIFICATION_FAILED)

        self._clear_in_flight()
        self.message = VERIFICATION_FAILED_MESSAGE.format(reference=self.payment_reference)
        self.last_error = str(reason)[:1000]
        self._transition(CheckoutStatus.VERIFICATION_FAILED)

        self.raise_(
            PaymentVerificationFailed(
                session_key=str(self.session_key),
                order_id=str(self.order_id),
                reference=self.payment_reference,
                reason=self.last_error,
            )
        )

    # -------------------------------------------------------------------
    # Leaving checkout
    # -------------------------------------------------------------------
    def abandon(self):
        """Leave checkout. The unpaid order stays on the server; we forget it."""
        if self.is_busy and CheckoutStatus(self.status) != CheckoutStatus.AWAITING_GATEWAY:
            raise CheckoutBusyError()
        self._assert_can_transition(CheckoutStatus.CANCELLED)

        now = datetime.now(UTC)
        order_id = self.order_id

        self._transition(CheckoutStatus.CANCELLED)
        self.order_id = None
        self.attempt_status = None
        self._clear_in_flight()
        self.message = None

        self.raise_(
            CheckoutAbandoned(
                session_key=str(self.session_key),
                order_id=str(order_id) if order_id else None,
                abandoned_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Recovery
    # -------------------------------------------------------------------
    def recover_stale_in_flight(self, max_age_seconds, now=None) -> bool:
        """Reset flags left behind by a request that died mid-flight.

        Returns True when something was recovered.
        """
        if not self.in_flight_since:
            return False

        now = now or datetime.now(UTC)
        started = self.in_flight_since
        if started.tzinfo is None:
            started = started.replace(tzinfo=UTC)
        if now - started < timedelta(seconds=max_age_seconds):
            return False

        status = CheckoutStatus(self.status)
        if status == CheckoutStatus.SUBMITTING_ORDER:
            self._clear_in_flight()
            self.message = "Your last attempt did not finish. Please try again."
            self._transition(CheckoutStatus.PAYMENT)
            return True
        if status == CheckoutStatus.VERIFYING:
            self.fail_verification("Verification did not finish")
            return True
        if status == CheckoutStatus.AWAITING_GATEWAY:
            # The widget may still be open in the browser; only the timer is stale
            self.in_flight_since = None
            return False

        self._clear_in_flight()
        return True
