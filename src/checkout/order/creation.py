"""Order creation — turns a confirmed checkout into a backend order, exactly once.

The order id is written to the live session and persisted before
``create_order`` returns, so anything that runs afterwards (the payment
widget's callbacks included) can read it from the session.
"""

import structlog
from protean.utils.globals import current_domain

from checkout.backend import get_backend
from checkout.backend.port import BackendError, StorefrontBackend
from checkout.errors import OrderCreationError
from checkout.order.draft import OrderDraft
from checkout.session.session import CheckoutSession

logger = structlog.get_logger(__name__)


class OrderCreationService:
    def __init__(self, backend: StorefrontBackend | None = None) -> None:
        self.backend = backend or get_backend()

    def create_order(self, session: CheckoutSession, draft: OrderDraft) -> str:
        """Create the order for ``session`` and return its id.

        Raises:
            OrderCreationError: the backend call failed or returned no order
                id. Nothing is recorded on the session.
        """
        draft.validate()
        log = logger.bind(session_key=str(session.session_key))

        try:
            order_id = self.backend.create_order(draft.to_payload())
        except BackendError as exc:
            log.warning("Order creation failed", error=exc.message, status_code=exc.status_code)
            raise OrderCreationError(exc) from exc

        if not order_id:
            log.warning("Order creation returned no order id")
            raise OrderCreationError(ValueError("missing order id"))

        session.record_order_created(order_id)
        current_domain.repository_for(CheckoutSession).add(session)

        log.info("Order created", order_id=order_id, total_amount=draft.total_amount)
        return order_id
