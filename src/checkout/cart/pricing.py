"""Order pricing — turns a cart snapshot into the totals a checkout charges.

Promotional discount, store credit and shipping cost are supplied by a
PricingPolicy so that business rules can change without touching the state
machine. The breakdown stores discount and credit as negative amounts, the
way they are shown on the order summary.
"""

import json
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass

from checkout.cart.snapshot import CartSnapshot
from checkout.config import get_settings


def clamp_amount(amount: float) -> float:
    """Amounts sent to the payment gateway are never negative."""
    return max(round(amount, 2), 0.0)


def to_minor_units(amount: float) -> int:
    """Convert a major-unit amount to the gateway's minor units (kobo, cents)."""
    return int(round(clamp_amount(amount) * 100))


@dataclass(frozen=True)
class PricingBreakdown:
    items_total: float
    items_discount: float
    promotional_discount: float
    shipping: float
    credit: float
    item_count: int
    promo_code: str | None = None

    @property
    def subtotal_after_discount(self) -> float:
        return round(self.items_total - self.items_discount, 2)

    @property
    def subtotal(self) -> float:
        return round(self.subtotal_after_discount + self.promotional_discount, 2)

    @property
    def order_total(self) -> float:
        return round(self.subtotal + self.shipping + self.credit, 2)

    @property
    def payable_amount(self) -> float:
        return clamp_amount(self.order_total)

    @property
    def discount_amount(self) -> float:
        """Order-level reductions reported to the backend (promotion plus credit)."""
        return round(abs(self.promotional_discount) + abs(self.credit), 2)

    @property
    def savings(self) -> float:
        return round(self.items_discount + self.discount_amount, 2)

    def summary(self) -> dict:
        return {
            **asdict(self),
            "subtotal_after_discount": self.subtotal_after_discount,
            "subtotal": self.subtotal,
            "order_total": self.order_total,
            "payable_amount": self.payable_amount,
            "discount_amount": self.discount_amount,
            "savings": self.savings,
        }

    def to_json(self) -> str:
        return json.dumps(asdict(self))

    @classmethod
    def from_json(cls, raw: str | None) -> "PricingBreakdown | None":
        if not raw:
            return None
        return cls(**json.loads(raw))


class PricingPolicy(ABC):
    """Supplies the order-level adjustments for a snapshot."""

    @abstractmethod
    def promotional_discount(self, snapshot: CartSnapshot) -> float:
        """Order-level promotional discount, as a non-negative amount."""
        ...

    @abstractmethod
    def credit(self, snapshot: CartSnapshot) -> float:
        """Store credit applied to the order, as a non-negative amount."""
        ...

    @abstractmethod
    def shipping(self, snapshot: CartSnapshot, shipping_method: str) -> float:
        """Shipping cost for the chosen method."""
        ...

    def promo_code(self, snapshot: CartSnapshot) -> str | None:
        """Code reported with the order for the promotional discount, if any."""
        return None

    def price(self, snapshot: CartSnapshot, shipping_method: str) -> PricingBreakdown:
        return PricingBreakdown(
            items_total=snapshot.items_total,
            items_discount=snapshot.items_discount,
            promotional_discount=-abs(self.promotional_discount(snapshot)),
            shipping=self.shipping(snapshot, shipping_method),
            credit=-abs(self.credit(snapshot)),
            item_count=snapshot.item_count,
            promo_code=self.promo_code(snapshot),
        )


class NoAdjustmentsPolicy(PricingPolicy):
    """Charge the discounted item total; free shipping."""

    def promotional_discount(self, snapshot: CartSnapshot) -> float:
        return 0.0

    def credit(self, snapshot: CartSnapshot) -> float:
        return 0.0

    def shipping(self, snapshot: CartSnapshot, shipping_method: str) -> float:
        return 0.0


class FixedAdjustmentsPolicy(PricingPolicy):
    """Flat promotional discount and credit, with per-method shipping costs."""

    def __init__(
        self,
        promotional_discount: float = 0.0,
        credit: float = 0.0,
        shipping_costs: dict[str, float] | None = None,
        promo_code: str | None = None,
    ) -> None:
        self._promotional_discount = abs(promotional_discount)
        self._credit = abs(credit)
        self._shipping_costs = shipping_costs or {}
        self._promo_code = promo_code or None

    def promotional_discount(self, snapshot: CartSnapshot) -> float:
        return self._promotional_discount

    def credit(self, snapshot: CartSnapshot) -> float:
        return self._credit

    def shipping(self, snapshot: CartSnapshot, shipping_method: str) -> float:
        return float(self._shipping_costs.get(shipping_method, 0.0))

    def promo_code(self, snapshot: CartSnapshot) -> str | None:
        return self._promo_code if self._promotional_discount else None


_current_policy: PricingPolicy | None = None


def get_pricing_policy() -> PricingPolicy:
    """Return the active pricing policy, built from settings on first use."""
    global _current_policy
    if _current_policy is None:
        settings = get_settings()
        if settings.promo_discount or settings.credit:
            _current_policy = FixedAdjustmentsPolicy(
                promotional_discount=settings.promo_discount,
                credit=settings.credit,
                promo_code=settings.promo_code,
            )
        else:
            _current_policy = NoAdjustmentsPolicy()
    return _current_policy


def set_pricing_policy(policy: PricingPolicy) -> None:
    global _current_policy
    _current_policy = policy


def reset_pricing_policy() -> None:
    global _current_policy
    _current_policy = None
