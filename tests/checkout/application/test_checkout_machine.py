"""Tests for the checkout state machine end to end, against the fake adapters."""

import pytest
from protean import current_domain
from protean.exceptions import ValidationError

from checkout.backend.port import BackendRejectedError, BackendUnavailableError
from checkout.cart.pricing import FixedAdjustmentsPolicy, set_pricing_policy
from checkout.errors import (
    CardValidationError,
    CheckoutBusyError,
    ConfirmationRequiredError,
    GatewayNotReadyError,
    OrderCreationError,
    PaymentInitializationError,
)
from checkout.payment.card import CardDetails
from checkout.payment.session_manager import reset_gateway_key
from checkout.session.machine import CheckoutStateMachine
from checkout.session.session import AttemptStatus, CheckoutSession, CheckoutStatus


@pytest.fixture()
def machine(cart_items):
    return CheckoutStateMachine.start(
        "chk-001",
        cart_items=cart_items,
        customer_id="cust-001",
        customer_email="ada@example.com",
        customer_name="Ada Obi",
        customer_phone="+234 803 000 0000",
    )


@pytest.fixture()
def paying(machine):
    machine.advance_to_payment(address_line="12 Marina Rd", city="Lagos")
    return machine


def _stored(key="chk-001"):
    return current_domain.repository_for(CheckoutSession).get(key)


class TestStart:
    def test_start_creates_session_in_shipping(self, machine):
        assert machine.status == CheckoutStatus.SHIPPING
        assert _stored().status == CheckoutStatus.SHIPPING.value

    def test_start_fetches_gateway_key(self, machine, backend):
        assert machine.payments.gateway_ready
        assert len(backend.calls_to("fetch_public_key")) == 1

    def test_gateway_key_is_cached(self, machine, backend):
        CheckoutStateMachine.resume("chk-001")
        assert len(backend.calls_to("fetch_public_key")) == 1

    def test_key_failure_does_not_block_mount(self, backend, cart_items):
        backend.fail("fetch_public_key", BackendUnavailableError("down"))
        machine = CheckoutStateMachine.start("chk-002", cart_items=cart_items)
        assert machine.payments.gateway_ready is False

    def test_start_reads_backend_cart_when_items_omitted(self, backend, cart_items):
        backend.cart = {"items": cart_items}
        machine = CheckoutStateMachine.start("chk-003")
        assert machine.session.snapshot.line_count == 2
        assert len(backend.calls_to("fetch_cart")) == 1

    def test_start_with_nothing_selected(self, cart_items):
        for item in cart_items:
            item["selected"] = False
        with pytest.raises(ValidationError):
            CheckoutStateMachine.start("chk-004", cart_items=cart_items)


class TestShipping:
    def test_advance_is_a_pure_transition(self, paying, backend):
        assert paying.status == CheckoutStatus.PAYMENT
        assert backend.calls_to("create_order") == []
        assert _stored().order_total == 11500.0

    def test_pricing_policy_applies(self, machine):
        set_pricing_policy(FixedAdjustmentsPolicy(credit=1600, shipping_costs={"standard": 500}))
        machine = CheckoutStateMachine.resume("chk-001")
        machine.advance_to_payment(address_line="12 Marina Rd", city="Lagos")
        assert machine.session.order_total == 11500.0 + 500 - 1600

    def test_unknown_shipping_method(self, machine):
        with pytest.raises(ValidationError):
            machine.advance_to_payment(address_line="a", city="b", shipping_method="drone")

    def test_return_to_shipping(self, paying):
        paying.return_to_shipping()
        assert _stored().status == CheckoutStatus.SHIPPING.value


class TestGatewayPayment:
    def test_submit_creates_order_and_opens_widget(self, paying, backend, widget):
        handoff = paying.submit_payment()

        assert paying.status == CheckoutStatus.AWAITING_GATEWAY
        assert len(backend.calls_to("create_order")) == 1
        assert handoff is widget.last
        assert handoff.amount_minor_units == 1150000
        assert handoff.email == "ada@example.com"
        assert handoff.key == "pk_test_fake"

        init = backend.calls_to("initialize_payment")[0]
        assert init["order_id"] == paying.session.order_id
        assert init["amount"] == 11500.0
        assert _stored().order_id == paying.session.order_id

    def test_success_completes_and_clears_order(self, paying, backend, widget):
        paying.submit_payment()
        order_id = paying.session.order_id

        widget.succeed()

        assert paying.status == CheckoutStatus.COMPLETED
        assert paying.session.order_id is None
        assert paying.session.confirmed_order_id == order_id
        stored = _stored()
        assert stored.status == CheckoutStatus.COMPLETED.value
        assert stored.order_id is None
        assert backend.calls_to("verify_payment")[0]["reference"] == widget.last.reference

    def test_failed_status_keeps_order(self, paying, backend, widget):
        backend.configure(verification_status="failed")
        paying.submit_payment()
        order_id = paying.session.order_id
        reference = paying.session.payment_reference

        widget.succeed()

        assert paying.status == CheckoutStatus.VERIFICATION_FAILED
        assert paying.session.order_id == order_id
        assert reference in paying.session.message
        assert _stored().order_id == order_id

    def test_close_then_retry_reuses_order(self, paying, backend, widget):
        paying.submit_payment()
        order_id = paying.session.order_id

        widget.close()
        assert paying.status == CheckoutStatus.PAYMENT
        assert paying.session.message == "Payment cancelled. You can retry when ready."

        paying.submit_payment()
        assert len(backend.calls_to("create_order")) == 1
        inits = backend.calls_to("initialize_payment")
        assert [call["order_id"] for call in inits] == [order_id, order_id]
        assert paying.session.attempt_count == 2

    def test_close_before_success_ignores_success(self, paying, backend, widget):
        paying.submit_payment()
        handoff = widget.last

        handoff.on_close()
        handoff.on_success(handoff.reference)

        assert paying.status == CheckoutStatus.PAYMENT
        assert paying.session.attempt_status == AttemptStatus.USER_CANCELLED.value
        assert backend.calls_to("verify_payment") == []

    def test_success_reads_live_order_id(self, paying, backend, widget):
        paying.submit_payment()
        handoff = widget.last
        # The callback resolves the order through the machine, not a captured value
        assert handoff.on_success.__self__.machine is paying

        widget.succeed()
        assert backend.calls_to("verify_payment")

    def test_negative_total_charges_zero(self, machine, widget, backend):
        set_pricing_policy(FixedAdjustmentsPolicy(credit=12000))
        machine = CheckoutStateMachine.resume("chk-001")
        machine.advance_to_payment(address_line="a", city="b")
        assert machine.session.order_total == -500.0

        handoff = machine.submit_payment()
        assert handoff.amount_minor_units == 0
        assert backend.calls_to("initialize_payment")[0]["amount"] == 0.0
        assert backend.calls_to("create_order")[0]["payload"]["total_amount"] == 0.0

    def test_promotion_and_credit_reach_the_order(self, backend, widget):
        set_pricing_policy(FixedAdjustmentsPolicy(promotional_discount=1000, credit=1600, promo_code="WELCOME10"))
        items = [{"product_id": "prod-010", "name": "Rug", "quantity": 1, "base_price": 10000.0}]
        machine = CheckoutStateMachine.start("chk-promo", cart_items=items)
        machine.advance_to_payment(address_line="a", city="b")

        handoff = machine.submit_payment()

        payload = backend.calls_to("create_order")[0]["payload"]
        assert payload["total_amount"] == 7400.0
        assert payload["discount_amount"] == 2600.0
        assert payload["promo_code"] == "WELCOME10"
        assert backend.calls_to("initialize_payment")[0]["amount"] == 7400.0
        assert handoff.amount_minor_units == 740000


class TestSubmissionFailures:
    def test_order_creation_failure_records_nothing(self, paying, backend):
        backend.fail("create_order", BackendUnavailableError("timeout"))

        with pytest.raises(OrderCreationError):
            paying.submit_payment()

        assert paying.status == CheckoutStatus.PAYMENT
        assert paying.session.order_id is None
        assert paying.session.is_busy is False
        assert backend.calls_to("initialize_payment") == []
        assert _stored().order_id is None

    def test_order_creation_retry(self, paying, backend):
        backend.fail("create_order")
        with pytest.raises(OrderCreationError):
            paying.submit_payment()

        backend.clear_failures()
        paying.submit_payment()
        assert paying.status == CheckoutStatus.AWAITING_GATEWAY
        assert len(backend.orders) == 1

    def test_payment_init_failure_keeps_order(self, paying, backend, widget):
        backend.fail("initialize_payment", BackendRejectedError("declined"))

        with pytest.raises(PaymentInitializationError) as exc:
            paying.submit_payment()

        order_id = paying.session.order_id
        assert order_id is not None
        assert exc.value.order_id == order_id
        assert paying.status == CheckoutStatus.PAYMENT
        assert widget.handoffs == []

        backend.clear_failures()
        paying.submit_payment()
        assert len(backend.calls_to("create_order")) == 1
        assert paying.session.order_id == order_id

    def test_double_submit_is_rejected(self, paying, backend):
        paying.session.begin_submission()
        paying._save()

        other = CheckoutStateMachine.resume("chk-001")
        with pytest.raises(CheckoutBusyError):
            other.submit_payment()
        assert backend.calls_to("create_order") == []

    def test_gateway_not_ready(self, paying, backend):
        reset_gateway_key()
        backend.fail("fetch_public_key")

        with pytest.raises(GatewayNotReadyError):
            paying.submit_payment()
        assert backend.calls_to("create_order") == []

    def test_card_fields_checked_before_order(self, machine, backend):
        machine.advance_to_payment(address_line="a", city="b", payment_method="card")

        with pytest.raises(CardValidationError):
            machine.submit_payment(card=CardDetails(number="1234", expiry="01/20", cvv="1"))
        assert backend.calls_to("create_order") == []
        assert machine.status == CheckoutStatus.PAYMENT

    def test_card_payment(self, machine, widget):
        machine.advance_to_payment(address_line="a", city="b", payment_method="card")
        machine.submit_payment(card=CardDetails(number="4242424242424242", expiry="12/99", cvv="123"))
        assert machine.status == CheckoutStatus.AWAITING_GATEWAY
        assert len(widget.handoffs) == 1


class TestReload:
    def test_reload_restores_order_id(self, paying, widget):
        paying.submit_payment()
        widget.close()
        order_id = paying.session.order_id

        reloaded = CheckoutStateMachine.resume("chk-001")
        assert reloaded.session.order_id == order_id
        assert reloaded.requires_leave_confirmation() is True

    def test_reload_while_widget_open(self, paying, backend, widget):
        paying.submit_payment()
        reference = paying.session.payment_reference

        reloaded = CheckoutStateMachine.resume("chk-001")
        handoff = reloaded.reopen_gateway()
        assert handoff.reference == reference
        assert len(backend.calls_to("create_order")) == 1
        assert len(backend.calls_to("initialize_payment")) == 1

        widget.succeed(handoff=handoff)
        assert reloaded.status == CheckoutStatus.COMPLETED

    def test_stale_callback_from_old_machine_is_ignored(self, paying, backend, widget):
        paying.submit_payment()
        old_handoff = widget.last

        reloaded = CheckoutStateMachine.resume("chk-001")
        reloaded.handle_gateway_close()
        reloaded.submit_payment()

        # The first attempt's widget fires late; its reference is superseded
        old_handoff.on_close()
        assert reloaded.status == CheckoutStatus.AWAITING_GATEWAY

    def test_callbacks_for_old_reference_are_ignored(self, paying, backend):
        paying.submit_payment()
        old_reference = paying.session.payment_reference
        paying.handle_gateway_close(old_reference)
        paying.submit_payment()
        current = paying.session.payment_reference

        assert paying.handle_gateway_success(old_reference) is False
        assert paying.handle_gateway_close(old_reference) is False
        assert _stored().status == CheckoutStatus.AWAITING_GATEWAY.value
        assert _stored().payment_reference == current
        assert backend.calls_to("verify_payment") == []

    def test_reopen_requires_open_attempt(self, paying):
        with pytest.raises(ValidationError):
            paying.reopen_gateway()


class TestBankTransfer:
    def test_bank_transfer_flow(self, machine, backend, widget):
        machine.advance_to_payment(address_line="a", city="b", payment_method="bank-transfer")
        assert machine.submit_payment() is None
        assert machine.status == CheckoutStatus.BANK_TRANSFER_PENDING
        assert widget.handoffs == []

        details = machine.bank_transfer_details()
        assert details.order_id == machine.session.order_id
        assert details.bank_details["account_number"]

        message = machine.confirm_bank_transfer()
        assert "verify" in message
        assert machine.status == CheckoutStatus.COMPLETED
        assert _stored().order_id is None

    def test_change_payment_method_reuses_order(self, machine, backend, widget):
        machine.advance_to_payment(address_line="a", city="b", payment_method="bank-transfer")
        machine.submit_payment()
        order_id = machine.session.order_id

        machine.change_payment_method("paystack")
        machine.submit_payment()
        assert machine.status == CheckoutStatus.AWAITING_GATEWAY
        assert backend.calls_to("initialize_payment")[0]["order_id"] == order_id
        assert len(backend.calls_to("create_order")) == 1


class TestAbandon:
    def test_abandon_without_order(self, paying):
        paying.abandon()
        assert paying.status == CheckoutStatus.CANCELLED

    def test_abandon_with_unpaid_order_needs_confirmation(self, paying, widget):
        paying.submit_payment()
        widget.close()

        with pytest.raises(ConfirmationRequiredError):
            paying.abandon()
        assert _stored().order_id is not None

        paying.abandon(confirmed=True)
        assert paying.status == CheckoutStatus.CANCELLED
        assert _stored().order_id is None

    def test_callbacks_after_abandon_are_ignored(self, paying, backend, widget):
        paying.submit_payment()
        paying.abandon(confirmed=True)

        widget.succeed()
        assert paying.status == CheckoutStatus.CANCELLED
        assert backend.calls_to("verify_payment") == []

    def test_start_after_abandon_restarts(self, paying, cart_items):
        paying.abandon()
        machine = CheckoutStateMachine.start("chk-001", cart_items=cart_items)
        assert machine.status == CheckoutStatus.SHIPPING
