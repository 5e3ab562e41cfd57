"""Checkout session management — commands and handler.

Starting and abandoning a checkout are single-aggregate changes and go through
protean commands. The multi-step payment flow does not: it is driven by
``CheckoutStateMachine`` so that each step is persisted as soon as it happens.
"""

import json

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import Boolean, Identifier, String, Text
from protean.utils.globals import current_domain

from checkout.cart.snapshot import CartSnapshot
from checkout.domain import checkout
from checkout.errors import ConfirmationRequiredError
from checkout.session.session import CheckoutSession

logger = structlog.get_logger(__name__)


@checkout.command(part_of="CheckoutSession")
class StartCheckout:
    """Start (or resume) the checkout for a client's session key."""

    session_key = Identifier(required=True)
    cart_items = Text(required=True)  # JSON: list of cart-service items
    customer_id = Identifier()
    customer_email = String(max_length=255)
    customer_name = String(max_length=255)
    customer_phone = String(max_length=50)


@checkout.command(part_of="CheckoutSession")
class AbandonCheckout:
    """Leave checkout, forgetting any unpaid order."""

    session_key = Identifier(required=True)
    confirmed = Boolean(default=False)


@checkout.command_handler(part_of=CheckoutSession)
class ManageCheckoutHandler:
    @handle(StartCheckout)
    def start_checkout(self, command):
        items = json.loads(command.cart_items) if isinstance(command.cart_items, str) else command.cart_items
        snapshot = CartSnapshot.from_cart_payload({"items": items})
        customer = {
            "customer_id": command.customer_id,
            "customer_email": command.customer_email,
            "customer_name": command.customer_name,
            "customer_phone": command.customer_phone,
        }

        repo = current_domain.repository_for(CheckoutSession)
        try:
            session = repo.get(command.session_key)
        except ObjectNotFoundError:
            session = CheckoutSession.create(session_key=command.session_key, snapshot=snapshot, **customer)
            repo.add(session)
            logger.info("Checkout started", session_key=str(command.session_key), lines=snapshot.line_count)
            return str(session.session_key)

        if session.is_terminal:
            session.restart(snapshot=snapshot, **customer)
            repo.add(session)
            logger.info("Checkout restarted", session_key=str(command.session_key), lines=snapshot.line_count)
        else:
            # An unfinished checkout keeps its snapshot and order
            logger.info(
                "Checkout resumed on start",
                session_key=str(command.session_key),
                status=session.status,
                order_id=session.order_id,
            )
        return str(session.session_key)

    @handle(AbandonCheckout)
    def abandon_checkout(self, command):
        repo = current_domain.repository_for(CheckoutSession)
        session = repo.get(command.session_key)

        if session.requires_leave_confirmation and not command.confirmed:
            raise ConfirmationRequiredError(order_id=str(session.order_id))

        order_id = session.order_id
        session.abandon()
        repo.add(session)
        logger.info("Checkout abandoned", session_key=str(command.session_key), order_id=order_id)
