"""Storefront backend port (abstract interface).

Defines the contract for the storefront's order and payment REST endpoints.
The checkout orchestrator only consumes these endpoints; swapping between
FakeBackend (dev/test) and HttpStorefrontBackend (production) changes no
service or state-machine code.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


class BackendError(Exception):
    """A backend call did not produce a usable response."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class BackendUnavailableError(BackendError):
    """Transport-level failure (timeout, connection error, 5xx). Safe to retry reads."""


class BackendRejectedError(BackendError):
    """The backend answered but refused the request or sent a malformed body."""


@dataclass(frozen=True)
class VerificationResult:
    """Backend view of a payment reference's settlement."""

    status: str
    reference: str
    order_id: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == "success"


@dataclass(frozen=True)
class BankTransferDetails:
    """Instructions the shopper needs to complete a bank transfer."""

    reference: str
    amount: float
    bank_details: dict = field(default_factory=dict)
    expires_at: str | None = None
    order_id: str | None = None
    status: str | None = None


class StorefrontBackend(ABC):
    """Abstract storefront backend interface."""

    def authorized(self, access_token: str | None) -> "StorefrontBackend":
        """Return a backend that sends ``access_token`` with every call."""
        return self

    @abstractmethod
    def fetch_cart(self) -> dict:
        """Return the shopper's cart payload (``items`` plus totals)."""
        ...

    @abstractmethod
    def create_order(self, payload: dict) -> str:
        """Persist an order from a checkout payload and return its id."""
        ...

    @abstractmethod
    def fetch_public_key(self) -> str:
        """Return the payment gateway's public key."""
        ...

    @abstractmethod
    def initialize_payment(self, email: str, amount: float, order_id: str, metadata: dict) -> str:
        """Open a payment attempt for an order and return its reference."""
        ...

    @abstractmethod
    def verify_payment(self, reference: str, timeout: float | None = None) -> VerificationResult:
        """Ask the backend whether the payment behind ``reference`` settled."""
        ...

    @abstractmethod
    def initialize_bank_transfer(self, order_id: str, amount: float) -> str:
        """Open a bank-transfer payment for an order and return its reference."""
        ...

    @abstractmethod
    def get_bank_transfer(self, reference: str) -> BankTransferDetails:
        """Return the transfer instructions for a bank-transfer reference."""
        ...

    @abstractmethod
    def confirm_bank_transfer(self, reference: str) -> str:
        """Tell the backend the shopper has sent the transfer. Returns the backend message."""
        ...
