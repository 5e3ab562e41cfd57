"""Fake payment widget for development and testing.

Records every hand-off and lets the caller play the shopper: ``close()``
fires the close callback, ``succeed()`` fires the success callback, on the
most recent hand-off or on a specific one.
"""

from checkout.gateway.port import GatewayWidget, WidgetHandoff


class FakeGatewayWidget(GatewayWidget):
    """Widget that never renders anything."""

    def __init__(self) -> None:
        self.handoffs: list[WidgetHandoff] = []

    def open(self, handoff: WidgetHandoff) -> None:
        self.handoffs.append(handoff)

    @property
    def last(self) -> WidgetHandoff:
        if not self.handoffs:
            raise LookupError("The widget has not been opened")
        return self.handoffs[-1]

    def close(self, handoff: WidgetHandoff | None = None) -> None:
        (handoff or self.last).on_close()

    def succeed(self, reference: str | None = None, handoff: WidgetHandoff | None = None) -> None:
        handoff = handoff or self.last
        handoff.on_success(reference or handoff.reference)
