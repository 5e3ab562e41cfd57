"""Checkout bounded context — checkout-and-payment orchestration.

Owns the CheckoutSession aggregate (the durable state of one shopper's
checkout), the state machine that drives it, and the ports to the
storefront backend and the hosted payment widget.
"""

from protean.domain import Domain

from checkout.utils.logging import configure_logging, get_logger

configure_logging()

logger = get_logger(__name__)

checkout = Domain(name="checkout")
