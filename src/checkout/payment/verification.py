"""Payment verification — asks the backend whether a reported payment settled.

The widget's success callback is only a hint. The checkout completes when
the backend reports ``status == "success"`` for the reference, and fails
verification otherwise. Transport failures (timeouts, connection errors,
5xx) are retried a bounded number of times; a definitive answer never is.
"""

import time
from dataclasses import dataclass

import structlog
from protean.utils.globals import current_domain

from checkout.backend import get_backend
from checkout.backend.port import BackendError, BackendUnavailableError, StorefrontBackend, VerificationResult
from checkout.config import get_settings
from checkout.session.session import CheckoutSession

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class VerificationRetryPolicy:
    attempts: int = 3
    timeout: float = 5.0  # Seconds per verification request
    backoff: float = 0.5  # Seconds between attempts

    @classmethod
    def from_settings(cls) -> "VerificationRetryPolicy":
        settings = get_settings()
        return cls(
            attempts=max(settings.verify_attempts, 1),
            timeout=settings.verify_timeout,
            backoff=max(settings.verify_backoff, 0.0),
        )


class VerificationService:
    def __init__(
        self,
        backend: StorefrontBackend | None = None,
        policy: VerificationRetryPolicy | None = None,
        sleep=time.sleep,
    ) -> None:
        self.backend = backend or get_backend()
        self.policy = policy or VerificationRetryPolicy.from_settings()
        self._sleep = sleep

    def verify(self, reference: str) -> VerificationResult:
        """Return the backend's verdict for ``reference``.

        Raises:
            BackendError: the backend rejected the request, or stayed
                unreachable for every attempt.
        """
        last_error: BackendError | None = None
        for attempt in range(1, self.policy.attempts + 1):
            try:
                result = self.backend.verify_payment(reference, timeout=self.policy.timeout)
            except BackendUnavailableError as exc:
                last_error = exc
                logger.warning(
                    "Verification attempt failed",
                    reference=reference,
                    attempt=attempt,
                    max_attempts=self.policy.attempts,
                    error=exc.message,
                )
                if attempt < self.policy.attempts:
                    self._sleep(self.policy.backoff)
                continue

            logger.info("Payment verified", reference=reference, status=result.status, attempt=attempt)
            return result

        raise last_error

    def finalize(self, session: CheckoutSession, reference: str) -> VerificationResult | None:
        """Verify ``reference`` and complete or fail the session accordingly.

        The session is persisted either way. On failure the order id is kept.
        """
        log = logger.bind(session_key=str(session.session_key), order_id=session.order_id, reference=reference)
        repo = current_domain.repository_for(CheckoutSession)

        try:
            result = self.verify(reference)
        except BackendError as exc:
            log.error("Payment verification errored", error=exc.message)
            session.fail_verification(exc.message)
            repo.add(session)
            return None

        if result.succeeded:
            session.complete(confirmed_order_id=result.order_id)
            repo.add(session)
            log.info("Checkout completed", confirmed_order_id=session.confirmed_order_id)
        else:
            session.fail_verification(f"Payment status: {result.status}")
            repo.add(session)
            log.warning("Payment not confirmed", status=result.status)
        return result
