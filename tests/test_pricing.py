"""Tests for the checkout pricing calculator."""

from decimal import Decimal

import pytest

from errors import ProductNotFoundError
from pricing import PricedLine, compute_totals, price_lines, to_decimal, to_money


def line(price, qty=1):
    return PricedLine(
        product_id="p", name="P", image=None,
        price=to_decimal(price), qty=qty, count_in_stock=100,
    )


class TestComputeTotals:
    def test_small_order_pays_shipping(self, settings):
        totals = compute_totals([line(100, 2)], settings)
        assert totals.subtotal == Decimal("200.00")
        assert totals.tax == Decimal("30.00")
        assert totals.shipping == Decimal("50.00")
        assert totals.total == Decimal("280.00")

    def test_large_order_ships_free(self, settings):
        totals = compute_totals([line(400, 3)], settings)
        assert totals.subtotal == Decimal("1200.00")
        assert totals.shipping == Decimal("0.00")
        assert totals.tax == Decimal("180.00")
        assert totals.total == Decimal("1380.00")

    @pytest.mark.parametrize("subtotal,shipping", [
        ("999.99", "50.00"),
        ("1000", "50.00"),
        ("1000.01", "0.00"),
    ])
    def test_shipping_threshold(self, settings, subtotal, shipping):
        totals = compute_totals([line(Decimal(subtotal))], settings)
        assert totals.shipping == Decimal(shipping)

    def test_total_is_sum_of_parts(self, settings):
        lines = [line("19.99", 3), line("7.45", 2), line("0.33", 7)]
        totals = compute_totals(lines, settings)
        assert totals.subtotal == Decimal("77.18")
        assert totals.tax == to_money(totals.subtotal * Decimal("0.15"))
        assert totals.total == totals.subtotal + totals.tax + totals.shipping

    def test_tax_rounds_half_up(self, settings):
        # 0.10 * 0.15 = 0.015
        totals = compute_totals([line("0.10")], settings)
        assert totals.tax == Decimal("0.02")

    def test_to_dict_uses_floats(self, settings):
        data = compute_totals([line(100, 2)], settings).to_dict()
        assert data == {"subtotal": 200.0, "tax": 30.0, "shipping": 50.0, "total": 280.0}
        assert data["total"] == round(data["subtotal"] + data["tax"] + data["shipping"], 2)

    def test_empty_lines(self, settings):
        totals = compute_totals([], settings)
        assert totals.subtotal == Decimal("0.00")
        assert totals.shipping == Decimal("50.00")

    def test_uses_settings(self, settings):
        custom = settings.model_copy(update={"tax_rate": Decimal("0.05"), "shipping_fee": Decimal("10")})
        totals = compute_totals([line(100)], custom)
        assert totals.tax == Decimal("5.00")
        assert totals.shipping == Decimal("10.00")
        assert totals.total == Decimal("115.00")


class TestPriceLines:
    def test_uses_catalog_price(self, db, make_product):
        pid = make_product(name="Mug", price=12.5, stock=3)
        lines = price_lines(db, [{"product": pid, "qty": 2, "price": 0.01}])
        assert len(lines) == 1
        assert lines[0].price == Decimal("12.50")
        assert lines[0].name == "Mug"
        assert lines[0].image == "/images/mug.jpg"
        assert lines[0].count_in_stock == 3
        assert lines[0].line_total == Decimal("25.00")

    def test_sub_cent_price_rounded_once(self, db, make_product, settings):
        pid = make_product(price=0.335, stock=5)
        lines = price_lines(db, [{"product": pid, "qty": 3}])
        assert lines[0].price == Decimal("0.335")
        totals = compute_totals(lines, settings)
        # 0.335 * 3 = 1.005
        assert totals.subtotal == Decimal("1.01")
        assert totals.total == totals.subtotal + totals.tax + totals.shipping

    def test_missing_product_rejects_whole_quote(self, db, make_product):
        pid = make_product()
        with pytest.raises(ProductNotFoundError) as exc_info:
            price_lines(db, [{"product": pid, "qty": 1}, {"product": "64b7f0c2a1e4d3b2c1a0f9e8", "qty": 1}])
        assert exc_info.value.product_id == "64b7f0c2a1e4d3b2c1a0f9e8"

    def test_malformed_id_is_not_found(self, db):
        with pytest.raises(ProductNotFoundError):
            price_lines(db, [{"product": "nope", "qty": 1}])

    def test_keeps_selection(self, db, make_product):
        pid = make_product(sizes=["M"], colors=["red"])
        lines = price_lines(db, [{"product": pid, "qty": 1, "selectedSize": "M", "selectedColor": "red"}])
        item = lines[0].to_item()
        assert item["selectedSize"] == "M"
        assert item["selectedColor"] == "red"
        assert item["price"] == 100.0
