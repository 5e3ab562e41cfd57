"""Cart snapshot — the read-only view of the selected cart lines a checkout works from.

The cart itself belongs to the storefront's cart service. A checkout takes a
snapshot of the *selected* lines when it starts and never changes it; the
snapshot is stored on the CheckoutSession as JSON.
"""

import json
from dataclasses import asdict, dataclass


@dataclass(frozen=True)
class CartLineItem:
    """A single cart line: product, variant, quantity and price."""

    product_id: str
    quantity: int
    unit_price: float
    variant_id: str | None = None
    name: str = ""
    discount: float = 0.0  # Absolute discount for the whole line
    selected: bool = True

    @property
    def line_total(self) -> float:
        return self.unit_price * self.quantity

    @property
    def final_price(self) -> float:
        """Per-unit price after the line discount."""
        if not self.quantity:
            return 0.0
        return round((self.line_total - self.discount) / self.quantity, 2)

    @classmethod
    def from_cart_item(cls, item: dict) -> "CartLineItem":
        """Build a line from a cart-service item.

        Cart items carry ``base_price`` and ``discount_percentage``; older
        payloads use ``unit_price``/``price`` and an absolute ``discount``.
        """
        product = item.get("product") if isinstance(item.get("product"), dict) else {}
        unit_price = float(item.get("base_price") or item.get("unit_price") or item.get("price") or 0)
        quantity = int(item.get("quantity") or 0)

        if item.get("discount_percentage") is not None:
            discount = unit_price * float(item["discount_percentage"]) / 100 * quantity
        else:
            discount = float(item.get("discount") or 0)

        product_id = item.get("product_id") or product.get("id") or item.get("id")
        variant_id = item.get("variant_id")
        return cls(
            product_id=str(product_id),
            variant_id=str(variant_id) if variant_id else None,
            name=item.get("name") or item.get("product_name") or product.get("name") or "",
            quantity=quantity,
            unit_price=unit_price,
            discount=round(discount, 2),
            selected=bool(item.get("selected", True)),
        )


@dataclass(frozen=True)
class CartSnapshot:
    """Immutable set of selected cart lines with computed totals."""

    items: tuple[CartLineItem, ...] = ()

    @classmethod
    def from_line_items(cls, items) -> "CartSnapshot":
        """Keep only the selected lines with a positive quantity."""
        return cls(items=tuple(item for item in items if item.selected and item.quantity > 0))

    @classmethod
    def from_cart_payload(cls, payload: dict) -> "CartSnapshot":
        """Build a snapshot from the cart service's ``GET /cart`` payload."""
        return cls.from_line_items(CartLineItem.from_cart_item(item) for item in payload.get("items") or [])

    @property
    def is_empty(self) -> bool:
        return not self.items

    @property
    def items_total(self) -> float:
        return round(sum(item.line_total for item in self.items), 2)

    @property
    def items_discount(self) -> float:
        return round(sum(item.discount for item in self.items), 2)

    @property
    def item_count(self) -> int:
        """Number of units across all selected lines."""
        return sum(item.quantity for item in self.items)

    @property
    def line_count(self) -> int:
        return len(self.items)

    def to_json(self) -> str:
        return json.dumps([asdict(item) for item in self.items])

    @classmethod
    def from_json(cls, raw: str | None) -> "CartSnapshot":
        if not raw:
            return cls()
        return cls(items=tuple(CartLineItem(**item) for item in json.loads(raw)))
