import pytest

import pricing
from errors import ValidationError
from schemas import CartLineItem


def line(price, quantity=1, product_id="p1"):
    return CartLineItem(product_id=product_id, name="Drill", price=price, quantity=quantity)


def test_standard_delivery_with_tax():
    result = pricing.calculate([line(500, 2)], delivery_method="standard", tax_rate=0.05)

    assert result.subtotal == 1000
    assert result.discount == 0
    assert result.delivery_charge == 0
    assert result.tax == pytest.approx(50)
    assert result.total == pytest.approx(1050)


def test_default_tax_rate_is_five_percent():
    result = pricing.calculate([line(200)])
    assert result.tax == pytest.approx(10)
    assert result.total == pytest.approx(210)


def test_percentage_discount_and_express_delivery():
    items = [line(100, 3, "a"), line(50, 2, "b")]
    result = pricing.calculate(items, "welcome10", "express", tax_rate=0.05)

    assert result.subtotal == 400
    assert result.discount == pytest.approx(40)
    assert result.delivery_charge == 50
    assert result.tax == pytest.approx(20)
    assert result.total == pytest.approx(400 - 40 + 50 + 20)


def test_flat_discount_is_capped_at_subtotal():
    result = pricing.calculate([line(60)], " FLAT100 ", tax_rate=0)

    assert result.discount == 60
    assert result.total == 0


def test_unknown_discount_code_is_ignored():
    result = pricing.calculate([line(100)], "NOPE", tax_rate=0)
    assert result.discount == 0
    assert result.total == 100


def test_unknown_delivery_method_is_rejected():
    with pytest.raises(ValidationError) as exc:
        pricing.calculate([line(100)], delivery_method="teleport")
    assert exc.value.field == "delivery_method"


def test_empty_cart_prices_to_zero():
    result = pricing.calculate([], "SAVE20", "same-day", tax_rate=0.05)
    assert result.subtotal == 0
    assert result.discount == 0
    assert result.total == 100


def test_repeated_calculation_is_identical():
    items = [line(333.33, 3), line(19.99, 7, "b")]
    first = pricing.calculate(items, "SAVE20", "same-day")
    second = pricing.calculate(items, "SAVE20", "same-day")

    assert first.model_dump_json() == second.model_dump_json()


def test_total_matches_its_components():
    r = pricing.calculate([line(123.45, 4)], "WELCOME10", "express")
    assert r.total == r.subtotal - r.discount + r.delivery_charge + r.tax
