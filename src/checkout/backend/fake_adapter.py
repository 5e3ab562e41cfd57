"""Configurable fake storefront backend for development and testing.

Simulates the order and payment endpoints in memory. Each operation can be
told to fail, and verification can be told which status to report, which
makes every branch of the checkout state machine reachable without a
network.
"""

from datetime import UTC, datetime, timedelta
from uuid import uuid4

from checkout.backend.port import (
    BackendError,
    BackendRejectedError,
    BankTransferDetails,
    StorefrontBackend,
    VerificationResult,
)


class FakeBackend(StorefrontBackend):
    """In-memory storefront backend."""

    def __init__(self) -> None:
        self.public_key: str = "pk_test_fake"
        self.verification_status: str = "success"
        self.verified_order_id: str | None = None
        self.cart: dict = {"items": []}
        self.failures: dict[str, BackendError] = {}
        self.calls: list[dict] = []
        self.orders: dict[str, dict] = {}
        self.payments: dict[str, dict] = {}
        self.transfers: dict[str, dict] = {}

    def configure(
        self,
        verification_status: str = "success",
        verified_order_id: str | None = None,
        public_key: str = "pk_test_fake",
    ) -> None:
        """Configure backend behavior at runtime."""
        self.verification_status = verification_status
        self.verified_order_id = verified_order_id
        self.public_key = public_key

    def fail(self, operation: str, error: BackendError | None = None) -> None:
        """Make every call to ``operation`` raise ``error`` until cleared."""
        self.failures[operation] = error or BackendRejectedError(f"{operation} failed")

    def clear_failures(self) -> None:
        self.failures.clear()

    def calls_to(self, operation: str) -> list[dict]:
        return [c for c in self.calls if c["method"] == operation]

    def _record(self, operation: str, **fields) -> None:
        self.calls.append({"method": operation, **fields})
        if operation in self.failures:
            raise self.failures[operation]

    # -------------------------------------------------------------------
    # StorefrontBackend
    # -------------------------------------------------------------------
    def fetch_cart(self) -> dict:
        self._record("fetch_cart")
        return self.cart

    def create_order(self, payload: dict) -> str:
        self._record("create_order", payload=payload)
        order_id = f"ord_{uuid4().hex[:12]}"
        self.orders[order_id] = payload
        return order_id

    def fetch_public_key(self) -> str:
        self._record("fetch_public_key")
        return self.public_key

    def initialize_payment(self, email: str, amount: float, order_id: str, metadata: dict) -> str:
        self._record("initialize_payment", email=email, amount=amount, order_id=order_id, metadata=metadata)
        reference = f"ref_{uuid4().hex[:12]}"
        self.payments[reference] = {"order_id": order_id, "amount": amount}
        return reference

    def verify_payment(self, reference: str, timeout: float | None = None) -> VerificationResult:
        self._record("verify_payment", reference=reference, timeout=timeout)
        payment = self.payments.get(reference, {})
        return VerificationResult(
            status=self.verification_status,
            reference=reference,
            order_id=self.verified_order_id or payment.get("order_id"),
        )

    def initialize_bank_transfer(self, order_id: str, amount: float) -> str:
        self._record("initialize_bank_transfer", order_id=order_id, amount=amount)
        reference = f"bt_{uuid4().hex[:12]}"
        self.transfers[reference] = {"order_id": order_id, "amount": amount, "status": "pending"}
        return reference

    def get_bank_transfer(self, reference: str) -> BankTransferDetails:
        self._record("get_bank_transfer", reference=reference)
        transfer = self.transfers.get(reference)
        if transfer is None:
            raise BackendRejectedError("Bank transfer not found", status_code=404)
        return BankTransferDetails(
            reference=reference,
            amount=transfer["amount"],
            bank_details={
                "bank_name": "Fake Bank",
                "account_name": "Storefront Ltd",
                "account_number": "0123456789",
            },
            expires_at=(datetime.now(UTC) + timedelta(hours=12)).isoformat(),
            order_id=transfer["order_id"],
            status=transfer["status"],
        )

    def confirm_bank_transfer(self, reference: str) -> str:
        self._record("confirm_bank_transfer", reference=reference)
        if reference not in self.transfers:
            raise BackendRejectedError("Bank transfer not found", status_code=404)
        self.transfers[reference]["status"] = "awaiting_confirmation"
        return "Payment confirmation received! We'll verify your transfer shortly."
