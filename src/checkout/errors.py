"""Checkout error taxonomy.

Every error carries the HTTP status the API layer should answer with and a
user-facing message. Invalid state transitions are not listed here; they
raise protean's ValidationError like every other aggregate rule.
"""


class CheckoutError(Exception):
    """Base exception for checkout orchestration failures."""

    status_code = 500

    def __init__(self, message="Checkout failed", status_code=None, payload=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv["message"] = self.message
        rv["status"] = "error"
        rv["error"] = type(self).__name__
        return rv


class OrderCreationError(CheckoutError):
    """The backend did not return a usable order id. Retryable; nothing was recorded."""

    status_code = 502

    def __init__(self, cause, message="Failed to create order. Please try again."):
        super().__init__(message, payload={"retryable": True})
        self.cause = cause


class PaymentInitializationError(CheckoutError):
    """Payment initialization failed after the order was created. Retry reuses the order."""

    status_code = 502

    def __init__(self, cause, order_id, message="Failed to initialize payment. Please try again."):
        super().__init__(message, payload={"retryable": True, "order_id": order_id})
        self.cause = cause
        self.order_id = order_id


class MissingOrderIdError(CheckoutError):
    """Payment was requested before an order id existed."""

    def __init__(self, message="Payment cannot be initialized without an order id"):
        super().__init__(message, status_code=500)


class GatewayNotReadyError(CheckoutError):
    """The gateway public key has not been loaded yet."""

    status_code = 409

    def __init__(self, message="Payment gateway not ready. Please refresh the page."):
        super().__init__(message)


class CheckoutBusyError(CheckoutError):
    """Another submission for this checkout is still in flight."""

    status_code = 409

    def __init__(self, message="A payment for this checkout is already being processed"):
        super().__init__(message)


class ConfirmationRequiredError(CheckoutError):
    """Leaving checkout would abandon an unpaid order and needs explicit confirmation."""

    status_code = 409

    def __init__(self, order_id):
        super().__init__(
            "You have an unpaid order. Confirm to leave checkout anyway.",
            payload={"order_id": order_id},
        )
        self.order_id = order_id


class CardValidationError(CheckoutError):
    """Locally entered card fields failed format checks. No network call was made."""

    status_code = 400

    def __init__(self, errors):
        super().__init__("Please check your card details", payload={"fields": errors})
        self.errors = errors


class BankTransferError(CheckoutError):
    """The backend could not look up or confirm a bank transfer."""

    status_code = 502

    def __init__(self, cause, message="Could not reach the bank transfer service. Please try again."):
        super().__init__(message, payload={"retryable": True})
        self.cause = cause
