import pytest
from fastapi import HTTPException

import inventory
import pricing

SHOE = {
    "_id": "p1",
    "name": "Court Classic",
    "price": 120,
    "stock": 7,
    "sizes": [{"size": "9", "stock": 5}, {"size": "10", "stock": 0}],
    "colors": [{"color": "white", "images": [], "stock": 3}],
}


def test_effective_price_prefers_lower_sale_price():
    assert pricing.effective_price(100, 80) == 80
    assert pricing.effective_price(100, None) == 100
    assert pricing.effective_price(100, 120) == 100


def test_active_sale_price_requires_on_sale_flag():
    assert pricing.active_sale_price({"price": 100, "sale_price": 80, "on_sale": True}) == 80
    assert pricing.active_sale_price({"price": 100, "sale_price": 80, "on_sale": False}) is None


def test_items_total_uses_effective_price():
    items = [
        {"price": 100, "sale_price": 80, "quantity": 2},
        {"price": 19.99, "sale_price": None, "quantity": 3},
    ]
    assert pricing.items_total(items) == 219.97


def test_percentage_off():
    assert pricing.percentage_off({"price": 200, "sale_price": 150, "on_sale": True}) == 25
    assert pricing.percentage_off({"price": 200, "sale_price": 150, "on_sale": False}) == 0


def test_size_takes_precedence_over_color():
    slot = inventory.find_stock_slot(SHOE, size="9", color="white")
    assert slot.path == "sizes.0.stock"
    assert slot.available == 5
    assert slot.guard == {"sizes.0.size": "9"}


def test_color_slot_when_no_size_selected():
    slot = inventory.find_stock_slot(SHOE, color="white")
    assert slot.path == "colors.0.stock"
    assert slot.available == 3


def test_top_level_stock_without_selection():
    slot = inventory.find_stock_slot(SHOE)
    assert slot.path == "stock"
    assert slot.available == 7


def test_selection_ignored_when_product_has_no_variants():
    slot = inventory.find_stock_slot({"name": "Laces", "stock": 40}, size="9", color="black")
    assert slot.path == "stock"
    assert slot.available == 40


def test_unknown_size_is_rejected():
    assert inventory.find_stock_slot(SHOE, size="12") is None
    with pytest.raises(HTTPException) as exc:
        inventory.require_stock_slot(SHOE, size="12")
    assert exc.value.status_code == 400
    assert exc.value.detail == "Size 12 not found for product Court Classic."


def test_unknown_color_is_rejected():
    with pytest.raises(HTTPException) as exc:
        inventory.require_stock_slot(SHOE, color="red")
    assert exc.value.detail == "Color red not found for product Court Classic."


def test_check_available_names_product_and_quantities():
    slot = inventory.find_stock_slot(SHOE, size="10")
    with pytest.raises(HTTPException) as exc:
        inventory.check_available(SHOE, slot, 1, size="10")
    assert exc.value.status_code == 400
    assert exc.value.detail == (
        "Insufficient stock for product: Court Classic (Size: 10, Color: N/A). Requested: 1, Available: 0."
    )


def test_apply_stock_delta_rejects_bad_sign():
    with pytest.raises(ValueError):
        inventory.apply_stock_delta(SHOE, {"quantity": 1}, 0)
