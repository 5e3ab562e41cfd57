"""Browser-hosted payment widget adapter.

In production the widget runs in the shopper's browser. ``open`` only
records the hand-off; the API returns the hand-off's configuration to the
browser, which opens the widget itself and reports close/success to the
checkout callback endpoints. Those endpoints resume the state machine and
drive the same transitions the in-process callbacks do.
"""

import structlog

from checkout.gateway.port import GatewayWidget, WidgetHandoff

logger = structlog.get_logger(__name__)


class HostedGatewayWidget(GatewayWidget):
    """Widget rendered by the browser from the hand-off configuration."""

    def open(self, handoff: WidgetHandoff) -> None:
        logger.info(
            "Widget handed off to browser",
            reference=handoff.reference,
            amount_minor_units=handoff.amount_minor_units,
            currency=handoff.currency,
        )
