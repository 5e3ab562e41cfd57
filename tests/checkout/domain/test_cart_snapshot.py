"""Tests for CartLineItem and CartSnapshot."""

from checkout.cart.snapshot import CartLineItem, CartSnapshot


class TestCartLineItem:
    def test_from_cart_item_uses_base_price_and_percentage(self):
        item = CartLineItem.from_cart_item(
            {"product_id": "prod-001", "quantity": 2, "base_price": 5000, "discount_percentage": 10}
        )
        assert item.unit_price == 5000.0
        assert item.line_total == 10000.0
        assert item.discount == 1000.0
        assert item.final_price == 4500.0

    def test_from_cart_item_reads_nested_product(self):
        item = CartLineItem.from_cart_item({"product": {"id": "prod-9", "name": "Lamp"}, "quantity": 1, "price": 300})
        assert item.product_id == "prod-9"
        assert item.name == "Lamp"
        assert item.unit_price == 300.0

    def test_absolute_discount_for_older_payloads(self):
        item = CartLineItem.from_cart_item({"product_id": "p", "quantity": 3, "unit_price": 100, "discount": 30})
        assert item.discount == 30.0
        assert item.final_price == 90.0

    def test_final_price_of_zero_quantity(self):
        assert CartLineItem(product_id="p", quantity=0, unit_price=100).final_price == 0.0


class TestCartSnapshot:
    def test_only_selected_lines_with_quantity_are_kept(self):
        snapshot = CartSnapshot.from_line_items(
            [
                CartLineItem(product_id="a", quantity=1, unit_price=100),
                CartLineItem(product_id="b", quantity=2, unit_price=50, selected=False),
                CartLineItem(product_id="c", quantity=0, unit_price=70),
            ]
        )
        assert [item.product_id for item in snapshot.items] == ["a"]

    def test_totals(self, cart_items):
        snapshot = CartSnapshot.from_cart_payload({"items": cart_items})
        assert snapshot.items_total == 12500.0
        assert snapshot.items_discount == 1000.0
        assert snapshot.item_count == 3
        assert snapshot.line_count == 2

    def test_empty_payload(self):
        snapshot = CartSnapshot.from_cart_payload({})
        assert snapshot.is_empty
        assert snapshot.items_total == 0

    def test_json_keeps_lines(self, cart_items):
        snapshot = CartSnapshot.from_cart_payload({"items": cart_items})
        restored = CartSnapshot.from_json(snapshot.to_json())
        assert restored == snapshot

    def test_from_empty_json(self):
        assert CartSnapshot.from_json(None).is_empty
