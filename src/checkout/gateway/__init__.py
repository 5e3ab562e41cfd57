"""Payment widget factory.

Provides get_widget() / set_widget() to swap implementations:
- HostedGatewayWidget for browser-driven checkouts (default)
- FakeGatewayWidget for tests
"""

from checkout.gateway.hosted_adapter import HostedGatewayWidget
from checkout.gateway.port import GatewayWidget

_current_widget: GatewayWidget | None = None


def get_widget() -> GatewayWidget:
    """Return the current payment widget. Defaults to HostedGatewayWidget."""
    global _current_widget
    if _current_widget is None:
        _current_widget = HostedGatewayWidget()
    return _current_widget


def set_widget(widget: GatewayWidget) -> None:
    """Override the active widget (useful for tests)."""
    global _current_widget
    _current_widget = widget


def reset_widget() -> None:
    """Reset to default widget."""
    global _current_widget
    _current_widget = None
