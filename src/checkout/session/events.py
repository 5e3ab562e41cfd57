"""Domain events for the CheckoutSession aggregate."""

from protean.fields import DateTime, Float, Identifier, Integer, String

from checkout.domain import checkout


@checkout.event(part_of="CheckoutSession")
class CheckoutStarted:
    """A shopper started checking out a set of selected cart lines."""

    __version__ = 1

    session_key = Identifier(required=True)
    customer_id = Identifier()
    item_count = Integer(required=True)
    items_total = Float(required=True)
    started_at = DateTime(required=True)


@checkout.event(part_of="CheckoutSession")
class ShippingConfirmed:
    """Delivery details were captured and the shopper moved to payment."""

    __version__ = 1

    session_key = Identifier(required=True)
    shipping_method = String(required=True)
    payment_method = String(required=True)
    order_total = Float(required=True)


@checkout.event(part_of="CheckoutSession")
class CheckoutOrderCreated:
    """The backend persisted the order for this checkout."""

    __version__ = 1

    session_key = Identifier(required=True)
    order_id = Identifier(required=True)
    order_total = Float(required=True)


@checkout.event(part_of="CheckoutSession")
class OrderCreationFailed:
    """Order creation failed; the shopper stays on the payment step."""

    __version__ = 1

    session_key = Identifier(required=True)
    reason = String(max_length=1000)


@checkout.event(part_of="CheckoutSession")
class PaymentInitialized:
    """A payment attempt was opened with the gateway for the checkout's order."""

    __version__ = 1

    session_key = Identifier(required=True)
    order_id = Identifier(required=True)
    reference = String(required=True, max_length=255)
    amount = Float(required=True)
    attempt_number = Integer(required=True)


@checkout.event(part_of="CheckoutSession")
class PaymentInitializationFailed:
    """Payment initialization failed; the order is kept for a retry."""

    __version__ = 1

    session_key = Identifier(required=True)
    order_id = Identifier(required=True)
    reason = String(max_length=1000)


@checkout.event(part_of="CheckoutSession")
class BankTransferInitiated:
    """The shopper chose bank transfer and received a transfer reference."""

    __version__ = 1

    session_key = Identifier(required=True)
    order_id = Identifier(required=True)
    reference = String(required=True, max_length=255)
    amount = Float(required=True)


@checkout.event(part_of="CheckoutSession")
class GatewayClosed:
    """The shopper closed the payment widget before paying."""

    __version__ = 1

    session_key = Identifier(required=True)
    order_id = Identifier(required=True)
    reference = String(required=True, max_length=255)


@checkout.event(part_of="CheckoutSession")
class GatewayReportedSuccess:
    """The widget reported success; settlement still has to be verified."""

    __version__ = 1

    session_key = Identifier(required=True)
    order_id = Identifier(required=True)
    reference = String(required=True, max_length=255)


@checkout.event(part_of="CheckoutSession")
class CheckoutCompleted:
    """The backend confirmed the payment; the checkout is done."""

    __version__ = 1

    session_key = Identifier(required=True)
    order_id = Identifier(required=True)
    reference = String(required=True, max_length=255)
    amount = Float()
    completed_at = DateTime(required=True)


@checkout.event(part_of="CheckoutSession")
class PaymentVerificationFailed:
    """Verification did not confirm settlement; the order is kept for support."""

    __version__ = 1

    session_key = Identifier(required=True)
    order_id = Identifier(required=True)
    reference = String(required=True, max_length=255)
    reason = String(max_length=1000)


@checkout.event(part_of="CheckoutSession")
class CheckoutAbandoned:
    """The shopper left checkout; any unpaid order is left to the backend."""

    __version__ = 1

    session_key = Identifier(required=True)
    order_id = Identifier()
    abandoned_at = DateTime(required=True)


@checkout.event(part_of="CheckoutSession")
class BankTransferSubmitted:
    """The shopper reported the bank transfer as sent."""

    __version__ = 1

    session_key = Identifier(required=True)
    order_id = Identifier(required=True)
    reference = String(required=True, max_length=255)
    submitted_at = DateTime(required=True)
