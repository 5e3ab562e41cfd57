"""Integration tests for Checkout API endpoints via TestClient."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from protean import current_domain
from protean.integrations.fastapi import register_exception_handlers

from checkout.api.errors import register_checkout_error_handlers
from checkout.api.routes import router
from checkout.backend.port import BackendUnavailableError
from checkout.session.session import CheckoutSession, CheckoutStatus


@pytest.fixture()
def client():
    app = FastAPI()
    app.include_router(router)
    register_exception_handlers(app)
    register_checkout_error_handlers(app)
    return TestClient(app)


def _start(client, cart_items, key="chk-api"):
    response = client.post(
        "/checkout/sessions",
        json={
            "session_key": key,
            "items": cart_items,
            "customer_id": "cust-001",
            "email": "ada@example.com",
            "name": "Ada Obi",
            "phone": "+234 803 000 0000",
        },
    )
    assert response.status_code == 201
    return response.json()


def _ship(client, key="chk-api", **overrides):
    body = {"address_line": "12 Marina Rd", "city": "Lagos"}
    body.update(overrides)
    response = client.put(f"/checkout/sessions/{key}/shipping", json=body)
    assert response.status_code == 200
    return response.json()


def _pay(client, key="chk-api", **body):
    return client.post(f"/checkout/sessions/{key}/pay", json=body)


class TestSessionEndpoints:
    def test_start(self, client, cart_items):
        body = _start(client, cart_items)
        assert body["status"] == "shipping"
        assert body["requires_leave_confirmation"] is False

    def test_start_from_backend_cart(self, client, backend, cart_items):
        backend.cart = {"items": cart_items}
        response = client.post("/checkout/sessions", json={"session_key": "chk-cart"})
        assert response.status_code == 201

    def test_start_with_unreachable_cart(self, client, backend):
        backend.fail("fetch_cart", BackendUnavailableError("down"))
        response = client.post("/checkout/sessions", json={"session_key": "chk-cart"})
        assert response.status_code == 502

    def test_start_with_empty_selection(self, client):
        response = client.post("/checkout/sessions", json={"session_key": "chk-empty", "items": []})
        assert response.status_code == 400

    def test_get(self, client, cart_items):
        _start(client, cart_items)
        response = client.get("/checkout/sessions/chk-api")
        assert response.status_code == 200
        assert response.json()["session_key"] == "chk-api"

    def test_get_unknown(self, client):
        assert client.get("/checkout/sessions/missing").status_code == 404


class TestShippingEndpoints:
    def test_shipping(self, client, cart_items):
        _start(client, cart_items)
        body = _ship(client, shipping_method="pickup")
        assert body["status"] == "payment"
        assert body["shipping_method"] == "pickup"
        assert body["pricing"]["order_total"] == 11500.0
        assert body["order_id"] is None

    def test_shipping_without_city(self, client, cart_items):
        _start(client, cart_items)
        response = client.put("/checkout/sessions/chk-api/shipping", json={"address_line": "x", "city": ""})
        assert response.status_code == 400

    def test_back(self, client, cart_items):
        _start(client, cart_items)
        _ship(client)
        response = client.post("/checkout/sessions/chk-api/back")
        assert response.json()["status"] == "shipping"


class TestPaymentEndpoints:
    def test_pay_returns_widget_config(self, client, cart_items):
        _start(client, cart_items)
        _ship(client)

        response = _pay(client)
        assert response.status_code == 200
        body = response.json()
        assert body["session"]["status"] == "awaiting_gateway"
        assert body["session"]["order_id"]
        assert body["widget"]["amount"] == 1150000
        assert body["widget"]["ref"] == body["session"]["payment_reference"]
        assert body["widget"]["key"] == "pk_test_fake"

    def test_success_callback_completes(self, client, cart_items):
        _start(client, cart_items)
        _ship(client)
        reference = _pay(client).json()["widget"]["ref"]

        response = client.post("/checkout/sessions/chk-api/gateway/success", json={"reference": reference})
        body = response.json()
        assert body["status"] == "completed"
        assert body["order_id"] is None
        assert body["confirmed_order_id"]

    def test_failed_verification(self, client, backend, cart_items):
        backend.configure(verification_status="failed")
        _start(client, cart_items)
        _ship(client)
        reference = _pay(client).json()["widget"]["ref"]

        body = client.post("/checkout/sessions/chk-api/gateway/success", json={"reference": reference}).json()
        assert body["status"] == "verification_failed"
        assert reference in body["message"]
        assert body["order_id"]

    def test_close_then_late_success_is_ignored(self, client, backend, cart_items):
        _start(client, cart_items)
        _ship(client)
        reference = _pay(client).json()["widget"]["ref"]

        closed = client.post("/checkout/sessions/chk-api/gateway/close", json={"reference": reference}).json()
        assert closed["status"] == "payment"
        assert closed["message"] == "Payment cancelled. You can retry when ready."

        late = client.post("/checkout/sessions/chk-api/gateway/success", json={"reference": reference}).json()
        assert late["status"] == "payment"
        assert backend.calls_to("verify_payment") == []

    def test_success_for_superseded_attempt_is_ignored(self, client, backend, cart_items):
        _start(client, cart_items)
        _ship(client)
        first = _pay(client).json()["widget"]["ref"]
        client.post("/checkout/sessions/chk-api/gateway/close", json={"reference": first})
        second = _pay(client).json()["widget"]["ref"]
        assert second != first

        body = client.post("/checkout/sessions/chk-api/gateway/success", json={"reference": first}).json()
        assert body["status"] == "awaiting_gateway"
        assert body["payment_reference"] == second
        assert backend.calls_to("verify_payment") == []

        body = client.post("/checkout/sessions/chk-api/gateway/success", json={"reference": second}).json()
        assert body["status"] == "completed"
        assert [c["reference"] for c in backend.calls_to("verify_payment")] == [second]

    def test_close_for_superseded_attempt_is_ignored(self, client, cart_items):
        _start(client, cart_items)
        _ship(client)
        first = _pay(client).json()["widget"]["ref"]
        client.post("/checkout/sessions/chk-api/gateway/close", json={"reference": first})
        second = _pay(client).json()["widget"]["ref"]

        body = client.post("/checkout/sessions/chk-api/gateway/close", json={"reference": first}).json()
        assert body["status"] == "awaiting_gateway"
        assert body["payment_reference"] == second

    def test_callbacks_need_a_reference(self, client, cart_items):
        _start(client, cart_items)
        _ship(client)
        _pay(client)

        assert client.post("/checkout/sessions/chk-api/gateway/close", json={}).status_code == 422
        assert client.post("/checkout/sessions/chk-api/gateway/success", json={}).status_code == 422
        stored = current_domain.repository_for(CheckoutSession).get("chk-api")
        assert stored.status == CheckoutStatus.AWAITING_GATEWAY.value

    def test_reopen(self, client, cart_items):
        _start(client, cart_items)
        _ship(client)
        reference = _pay(client).json()["widget"]["ref"]

        response = client.post("/checkout/sessions/chk-api/gateway/reopen")
        assert response.status_code == 200
        assert response.json()["widget"]["ref"] == reference

    def test_order_creation_failure(self, client, backend, cart_items):
        backend.fail("create_order", BackendUnavailableError("timeout"))
        _start(client, cart_items)
        _ship(client)

        response = _pay(client)
        assert response.status_code == 502
        assert response.json()["error"] == "OrderCreationError"
        assert response.json()["retryable"] is True

        session = current_domain.repository_for(CheckoutSession).get("chk-api")
        assert session.status == CheckoutStatus.PAYMENT.value
        assert session.order_id is None

    def test_invalid_card(self, client, cart_items):
        _start(client, cart_items)
        _ship(client, payment_method="card")

        response = _pay(client, card={"number": "1234", "expiry": "01/20", "cvv": "1"})
        assert response.status_code == 400
        assert set(response.json()["fields"]) == {"number", "expiry", "cvv"}

    def test_busy_session(self, client, cart_items):
        _start(client, cart_items)
        _ship(client)
        repo = current_domain.repository_for(CheckoutSession)
        session = repo.get("chk-api")
        session.begin_submission()
        repo.add(session)

        response = _pay(client)
        assert response.status_code == 409
        assert response.json()["error"] == "CheckoutBusyError"


class TestBankTransferEndpoints:
    def test_bank_transfer(self, client, cart_items):
        _start(client, cart_items)
        _ship(client, payment_method="bank-transfer")

        paid = _pay(client).json()
        assert paid["widget"] is None
        assert paid["session"]["status"] == "bank_transfer_pending"

        details = client.get("/checkout/sessions/chk-api/bank-transfer").json()
        assert details["amount"] == 11500.0
        assert details["bank_details"]["account_number"]

        confirmed = client.post("/checkout/sessions/chk-api/bank-transfer/confirm").json()
        assert confirmed["status"] == "completed"

    def test_change_payment_method(self, client, cart_items):
        _start(client, cart_items)
        _ship(client, payment_method="bank-transfer")
        order_id = _pay(client).json()["session"]["order_id"]

        changed = client.put("/checkout/sessions/chk-api/payment-method", json={"payment_method": "paystack"}).json()
        assert changed["status"] == "payment"
        assert changed["order_id"] == order_id

    def test_details_without_transfer(self, client, cart_items):
        _start(client, cart_items)
        assert client.get("/checkout/sessions/chk-api/bank-transfer").status_code == 400


class TestAbandonEndpoint:
    def test_abandon_needs_confirmation_with_order(self, client, cart_items):
        _start(client, cart_items)
        _ship(client)
        reference = _pay(client).json()["widget"]["ref"]
        client.post("/checkout/sessions/chk-api/gateway/close", json={"reference": reference})

        response = client.post("/checkout/sessions/chk-api/abandon", json={})
        assert response.status_code == 409
        assert response.json()["order_id"]

        response = client.post("/checkout/sessions/chk-api/abandon", json={"confirmed": True})
        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"
        assert response.json()["order_id"] is None
