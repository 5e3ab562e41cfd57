"""Bank transfer — transfer instructions and shopper confirmation.

After a bank-transfer order is submitted the checkout waits in
``bank_transfer_pending``. The shopper reads the account details, sends the
money, and confirms; the backend reconciles the transfer afterwards.
"""

import structlog
from protean.exceptions import ValidationError
from protean.utils.globals import current_domain

from checkout.backend import get_backend
from checkout.backend.port import BackendError, BankTransferDetails, StorefrontBackend
from checkout.errors import BankTransferError
from checkout.session.session import CheckoutSession, CheckoutStatus

logger = structlog.get_logger(__name__)


class BankTransferService:
    def __init__(self, backend: StorefrontBackend | None = None) -> None:
        self.backend = backend or get_backend()

    @staticmethod
    def _pending_reference(session: CheckoutSession) -> str:
        if CheckoutStatus(session.status) != CheckoutStatus.BANK_TRANSFER_PENDING or not session.payment_reference:
            raise ValidationError({"status": ["No bank transfer is pending for this checkout"]})
        return session.payment_reference

    def details(self, session: CheckoutSession) -> BankTransferDetails:
        reference = self._pending_reference(session)
        try:
            return self.backend.get_bank_transfer(reference)
        except BackendError as exc:
            logger.warning("Bank transfer lookup failed", reference=reference, error=exc.message)
            raise BankTransferError(exc) from exc

    def confirm(self, session: CheckoutSession) -> str:
        """Report the transfer as sent and finish the checkout."""
        reference = self._pending_reference(session)
        try:
            message = self.backend.confirm_bank_transfer(reference)
        except BackendError as exc:
            logger.warning("Bank transfer confirmation failed", reference=reference, error=exc.message)
            raise BankTransferError(exc) from exc

        session.record_bank_transfer_sent(message)
        current_domain.repository_for(CheckoutSession).add(session)
        logger.info(
            "Bank transfer confirmed",
            session_key=str(session.session_key),
            order_id=session.confirmed_order_id,
            reference=reference,
        )
        return session.message
