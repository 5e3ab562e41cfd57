"""Payment widget port (abstract interface).

The gateway's hosted widget is an opaque collaborator: it is constructed
with the public key, payer email, amount in minor units, payment reference,
metadata and two callbacks, and then opened. Everything after ``open`` is
reported back through the callbacks.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field


@dataclass(frozen=True)
class WidgetHandoff:
    """Everything the widget needs for one payment attempt."""

    key: str
    email: str
    amount_minor_units: int
    reference: str
    on_close: Callable[[], None]
    on_success: Callable[[str], None]
    currency: str = "NGN"
    metadata: dict = field(default_factory=dict)

    def config(self) -> dict:
        """Browser-facing widget configuration (callbacks excluded)."""
        return {
            "key": self.key,
            "email": self.email,
            "amount": self.amount_minor_units,
            "currency": self.currency,
            "ref": self.reference,
            "metadata": self.metadata,
        }


class GatewayWidget(ABC):
    """Abstract payment widget interface."""

    @abstractmethod
    def open(self, handoff: WidgetHandoff) -> None:
        """Hand control to the widget. Fire-and-forget."""
        ...
