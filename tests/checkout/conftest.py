import pytest
from protean.integrations.pytest import DomainFixture

from checkout.backend import reset_backend, set_backend
from checkout.backend.fake_adapter import FakeBackend
from checkout.cart.pricing import reset_pricing_policy
from checkout.config import reset_settings
from checkout.gateway import reset_widget, set_widget
from checkout.gateway.fake_adapter import FakeGatewayWidget
from checkout.payment.session_manager import reset_gateway_key


@pytest.fixture(scope="session")
def checkout_bed():
    from checkout.domain import checkout

    bed = DomainFixture(checkout)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(checkout_bed):
    with checkout_bed.domain_context():
        yield

        from protean import current_domain

        for _, provider in current_domain.providers.items():
            provider._data_reset()
        current_domain.event_store.store._data_reset()


@pytest.fixture(autouse=True)
def _adapters():
    """Fresh fakes and settings for every test."""
    reset_settings()
    reset_pricing_policy()
    reset_gateway_key()
    set_backend(FakeBackend())
    set_widget(FakeGatewayWidget())
    yield
    reset_backend()
    reset_widget()
    reset_pricing_policy()
    reset_gateway_key()
    reset_settings()


@pytest.fixture()
def backend():
    from checkout.backend import get_backend

    return get_backend()


@pytest.fixture()
def widget():
    from checkout.gateway import get_widget

    return get_widget()


@pytest.fixture()
def cart_items():
    """Two selected lines: 2 x 5,000 at 10% off, and 1 x 2,500."""
    return [
        {
            "product_id": "prod-001",
            "variant_id": "var-001",
            "name": "Linen shirt",
            "quantity": 2,
            "base_price": 5000.0,
            "discount_percentage": 10,
            "selected": True,
        },
        {
            "product_id": "prod-002",
            "variant_id": "var-002",
            "name": "Canvas tote",
            "quantity": 1,
            "base_price": 2500.0,
            "discount_percentage": 0,
            "selected": True,
        },
    ]
