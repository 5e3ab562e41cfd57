"""HTTP adapter for the storefront backend REST API.

Every endpoint answers with an envelope of the form
``{"success": bool, "message": str, ...}``; payloads sit either under
``data`` or at the top level depending on the endpoint.
"""

import requests
import structlog

from checkout.backend.port import (
    BackendRejectedError,
    BackendUnavailableError,
    BankTransferDetails,
    StorefrontBackend,
    VerificationResult,
)

logger = structlog.get_logger(__name__)


def _data(body: dict) -> dict:
    data = body.get("data")
    return data if isinstance(data, dict) else body


class HttpStorefrontBackend(StorefrontBackend):
    """requests-based client for the storefront backend."""

    def __init__(
        self,
        base_url: str,
        access_token: str | None = None,
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ) -> None:
        if not base_url:
            raise ValueError("base_url is required")
        self.base_url = base_url.rstrip("/")
        self.access_token = access_token
        self.timeout = timeout
        self.session = session or requests.Session()

    def authorized(self, access_token: str | None) -> "HttpStorefrontBackend":
        if not access_token or access_token == self.access_token:
            return self
        return HttpStorefrontBackend(
            self.base_url,
            access_token=access_token,
            timeout=self.timeout,
            session=self.session,
        )

    @property
    def headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        return headers

    def _request(self, method: str, path: str, payload: dict | None = None, timeout: float | None = None) -> dict:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(
                method,
                url,
                json=payload,
                headers=self.headers,
                timeout=timeout or self.timeout,
            )
        except requests.RequestException as exc:
            logger.warning("Backend unreachable", method=method, path=path, error=str(exc))
            raise BackendUnavailableError(f"{method} {path} failed: {exc}") from exc

        if response.status_code >= 500:
            logger.warning("Backend server error", method=method, path=path, status_code=response.status_code)
            raise BackendUnavailableError(
                f"{method} {path} returned {response.status_code}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as exc:
            logger.error("Backend returned a non-JSON body", method=method, path=path)
            raise BackendRejectedError(
                f"{method} {path} returned a malformed body",
                status_code=response.status_code,
            ) from exc

        if not isinstance(body, dict):
            raise BackendRejectedError(f"{method} {path} returned a malformed body", status_code=response.status_code)

        if response.status_code >= 400 or body.get("success") is False:
            message = body.get("message") or body.get("error") or f"{method} {path} was rejected"
            logger.error(
                "Backend rejected request",
                method=method,
                path=path,
                status_code=response.status_code,
                message=message,
            )
            raise BackendRejectedError(message, status_code=response.status_code)

        return body

    # -------------------------------------------------------------------
    # Cart and orders
    # -------------------------------------------------------------------
    def fetch_cart(self) -> dict:
        return self._request("GET", "/cart")

    def create_order(self, payload: dict) -> str:
        body = self._request("POST", "/orders/checkout", payload)
        order = body.get("order") or _data(body).get("order")
        if not isinstance(order, dict):
            raise BackendRejectedError("Order missing from checkout response")
        order_id = order.get("id") or order.get("_id")
        if not order_id:
            raise BackendRejectedError("Order ID not found in checkout response")
        logger.info("Order created", order_id=str(order_id))
        return str(order_id)

    # -------------------------------------------------------------------
    # Payments
    # -------------------------------------------------------------------
    def fetch_public_key(self) -> str:
        body = self._request("GET", "/payments/public-key")
        key = body.get("public_key") or body.get("publicKey") or _data(body).get("public_key")
        if not key:
            raise BackendRejectedError("Public key missing from response")
        return key

    def initialize_payment(self, email: str, amount: float, order_id: str, metadata: dict) -> str:
        body = self._request(
            "POST",
            "/payments/initialize",
            {"email": email, "amount": amount, "order_id": order_id, "metadata": metadata},
        )
        reference = _data(body).get("reference")
        if not reference:
            raise BackendRejectedError("Payment reference missing from response")
        logger.info("Payment initialized", order_id=order_id, reference=reference)
        return reference

    def verify_payment(self, reference: str, timeout: float | None = None) -> VerificationResult:
        body = self._request("GET", f"/payments/verify/{reference}", timeout=timeout)
        data = _data(body)
        order_id = data.get("order_id") or data.get("orderId")
        return VerificationResult(
            status=str(data.get("status") or "unknown"),
            reference=reference,
            order_id=str(order_id) if order_id else None,
        )

    def initialize_bank_transfer(self, order_id: str, amount: float) -> str:
        body = self._request(
            "POST",
            "/payments/bank-transfer/initialize",
            {"order_id": order_id, "amount": amount},
        )
        reference = _data(body).get("reference")
        if not reference:
            raise BackendRejectedError("Bank transfer reference missing from response")
        logger.info("Bank transfer initialized", order_id=order_id, reference=reference)
        return reference

    def get_bank_transfer(self, reference: str) -> BankTransferDetails:
        data = _data(self._request("GET", f"/payments/bank-transfer/{reference}"))
        order = data.get("order") or {}
        order_id = (order.get("id") or order.get("_id")) if isinstance(order, dict) else order
        return BankTransferDetails(
            reference=reference,
            amount=float(data.get("amount") or 0),
            bank_details=data.get("bank_details") or {},
            expires_at=data.get("expires_at"),
            order_id=str(order_id) if order_id else None,
            status=data.get("status"),
        )

    def confirm_bank_transfer(self, reference: str) -> str:
        body = self._request("POST", "/payments/bank-transfer/confirm", {"reference": reference})
        return body.get("message") or "Payment confirmation received"
