"""Order draft — the order-checkout payload built from a checkout session.

Never persisted on its own; the backend owns the order once it is created.
"""

from dataclasses import dataclass

from protean.exceptions import ValidationError

from checkout.cart.pricing import clamp_amount


@dataclass(frozen=True)
class OrderDraft:
    delivery_address: str
    shipping_method: str
    payment_method: str
    total_amount: float
    discount_amount: float
    line_count: int
    gift_message: str | None = None
    promo_code: str | None = None

    @classmethod
    def from_session(cls, session) -> "OrderDraft":
        pricing = session.pricing
        if pricing is None:
            raise ValidationError({"pricing": ["Delivery details must be confirmed before ordering"]})

        return cls(
            delivery_address=session.delivery_address,
            shipping_method=session.shipping_method,
            payment_method=session.payment_method,
            gift_message=session.gift_message,
            total_amount=clamp_amount(pricing.order_total),
            discount_amount=pricing.discount_amount,
            line_count=session.snapshot.line_count,
            promo_code=pricing.promo_code,
        )

    def validate(self) -> None:
        if self.line_count < 1:
            raise ValidationError({"cart": ["An order needs at least one selected item"]})
        if self.total_amount < 0:
            raise ValidationError({"total_amount": ["Order total cannot be negative"]})

    def to_payload(self) -> dict:
        """Body of ``POST /orders/checkout``."""
        return {
            "delivery_address": self.delivery_address,
            "payment_method": self.payment_method,
            "promo_code": self.promo_code,
            "shipping_method": self.shipping_method,
            "gift_message": self.gift_message or "",
            "total_amount": clamp_amount(self.total_amount),
            "discount_amount": self.discount_amount,
        }
