import pytest
from bson import ObjectId
from fastapi import HTTPException

import orders
from schemas import ShippingAddress

from conftest import SHIPPING


def _stock(db, product_id, path="stock"):
    product = db["product"].find_one({"_id": ObjectId(product_id)})
    value = product
    for part in path.split("."):
        value = value[int(part)] if isinstance(value, list) else value[part]
    return value


def _direct(client, user, product_id, quantity, **selection):
    body = {
        "product_id": product_id,
        "quantity": quantity,
        "shipping_address": SHIPPING,
        "payment_method": "credit_card",
        **selection,
    }
    return client.post("/api/orders/direct", json=body, headers=user["headers"])


def _set_status(client, admin, order_id, status):
    return client.patch(f"/api/orders/{order_id}/status", json={"new_status": status}, headers=admin["headers"])


def test_direct_order_decrements_size_stock_and_cancel_restores(client, db, admin, shopper, make_product):
    product = make_product(sizes=[{"size": "9", "stock": 5}])

    res = _direct(client, shopper, product["id"], 3, selected_size="9")
    assert res.status_code == 201, res.text
    order = res.json()
    assert _stock(db, product["id"], "sizes.0.stock") == 2
    assert _stock(db, product["id"]) == 10

    res = _set_status(client, admin, order["id"], "cancelled")
    assert res.status_code == 200
    assert res.json()["order_status"] == "cancelled"
    assert _stock(db, product["id"], "sizes.0.stock") == 5

    # cancelling again does not restore twice
    _set_status(client, admin, order["id"], "cancelled")
    assert _stock(db, product["id"], "sizes.0.stock") == 5


def test_color_stock_used_when_no_size_selected(client, db, shopper, make_product):
    product = make_product(colors=[{"color": "black", "stock": 4}], sizes=[{"size": "9", "stock": 5}])
    assert _direct(client, shopper, product["id"], 1, selected_color="black").status_code == 201
    assert _stock(db, product["id"], "colors.0.stock") == 3
    assert _stock(db, product["id"], "sizes.0.stock") == 5


def test_order_snapshots_product(client, db, admin, shopper, make_product):
    product = make_product(price=100, sale_price=80, on_sale=True)
    order = _direct(client, shopper, product["id"], 2).json()
    item = order["items"][0]
    assert item["name"] == "Road Runner"
    assert item["price"] == 100
    assert item["sale_price"] == 80
    assert item["image_url"] == "https://cdn.example.com/road-runner.jpg"
    assert order["total_amount"] == 160
    assert order["order_status"] == "pending"
    assert order["payment_status"] == "pending"
    assert order["user"]["username"] == "shopper"

    # later catalog edits leave the order alone
    client.put(f"/api/products/{product['id']}", json={"name": "Renamed", "price": 10}, headers=admin["headers"])
    again = client.get(f"/api/orders/{order['id']}", headers=shopper["headers"]).json()
    assert again["items"][0]["name"] == "Road Runner"
    assert again["total_amount"] == 160


def test_insufficient_stock_creates_nothing(client, db, shopper, make_product):
    product = make_product(sizes=[{"size": "9", "stock": 2}])
    res = _direct(client, shopper, product["id"], 3, selected_size="9")
    assert res.status_code == 400
    assert res.json()["detail"] == (
        "Insufficient stock for product: Road Runner (Size: 9, Color: N/A). Requested: 3, Available: 2."
    )
    assert db["order"].count_documents({}) == 0
    assert _stock(db, product["id"], "sizes.0.stock") == 2


def test_unknown_size_is_rejected(client, db, shopper, make_product):
    product = make_product(sizes=[{"size": "9", "stock": 2}])
    res = _direct(client, shopper, product["id"], 1, selected_size="11")
    assert res.status_code == 400
    assert res.json()["detail"] == "Size 11 not found for product Road Runner."
    assert db["order"].count_documents({}) == 0


def test_order_from_cart(client, db, shopper, make_product):
    sneaker = make_product(name="Sneaker", price=100, sale_price=80, on_sale=True, stock=5)
    boot = make_product(name="Boot", price=150, sizes=[{"size": "10", "stock": 3}])
    client.post("/api/carts/items", json={"product_id": sneaker["id"], "quantity": 2}, headers=shopper["headers"])
    client.post(
        "/api/carts/items", json={"product_id": boot["id"], "quantity": 1, "selected_size": "10"},
        headers=shopper["headers"],
    )

    res = client.post(
        "/api/orders/from-cart",
        json={"shipping_address": SHIPPING, "payment_method": "paypal"},
        headers=shopper["headers"],
    )
    assert res.status_code == 201, res.text
    order = res.json()
    assert order["total_amount"] == 310
    assert len(order["items"]) == 2
    assert _stock(db, sneaker["id"]) == 3
    assert _stock(db, boot["id"], "sizes.0.stock") == 2

    cart = client.get("/api/carts", headers=shopper["headers"]).json()
    assert cart["items"] == []


def test_cart_lines_sharing_a_slot_are_checked_together(client, db, shopper, make_product):
    product = make_product(stock=3)
    client.post("/api/carts/items", json={"product_id": product["id"], "quantity": 2}, headers=shopper["headers"])
    # a second line on the same top-level stock via a selector the product does not use
    client.post(
        "/api/carts/items", json={"product_id": product["id"], "quantity": 2, "selected_size": "9"},
        headers=shopper["headers"],
    )
    res = client.post(
        "/api/orders/from-cart",
        json={"shipping_address": SHIPPING, "payment_method": "paypal"},
        headers=shopper["headers"],
    )
    assert res.status_code == 400
    assert db["order"].count_documents({}) == 0
    assert _stock(db, product["id"]) == 3


def test_order_from_empty_cart(client, shopper):
    res = client.post(
        "/api/orders/from-cart",
        json={"shipping_address": SHIPPING, "payment_method": "paypal"},
        headers=shopper["headers"],
    )
    assert res.status_code == 400
    assert res.json()["detail"] == "Cannot create an order from an empty cart."


def test_invalid_payment_method(client, shopper, make_product):
    product = make_product()
    body = {"product_id": product["id"], "quantity": 1, "shipping_address": SHIPPING, "payment_method": "barter"}
    assert client.post("/api/orders/direct", json=body, headers=shopper["headers"]).status_code == 422


def test_delete_order_restores_stock(client, db, admin, shopper, make_product):
    product = make_product(stock=4)
    order = _direct(client, shopper, product["id"], 3).json()
    assert _stock(db, product["id"]) == 1

    res = client.delete(f"/api/orders/{order['id']}", headers=admin["headers"])
    assert res.status_code == 200
    assert _stock(db, product["id"]) == 4
    assert db["order"].count_documents({}) == 0


def test_delete_order_skips_missing_product(client, db, admin, shopper, make_product):
    gone = make_product(name="Gone", stock=4)
    kept = make_product(name="Kept", stock=4)
    client.post("/api/carts/items", json={"product_id": gone["id"], "quantity": 1}, headers=shopper["headers"])
    client.post("/api/carts/items", json={"product_id": kept["id"], "quantity": 2}, headers=shopper["headers"])
    order = client.post(
        "/api/orders/from-cart",
        json={"shipping_address": SHIPPING, "payment_method": "paypal"},
        headers=shopper["headers"],
    ).json()
    db["product"].delete_one({"_id": ObjectId(gone["id"])})

    res = client.delete(f"/api/orders/{order['id']}", headers=admin["headers"])
    assert res.status_code == 200
    assert _stock(db, kept["id"]) == 4


def test_status_transitions_without_cancel_keep_stock(client, db, admin, shopper, make_product):
    product = make_product(stock=4)
    order = _direct(client, shopper, product["id"], 1).json()
    for status in ("processing", "shipped", "delivered", "returned", "pending"):
        assert _set_status(client, admin, order["id"], status).status_code == 200
    assert _stock(db, product["id"]) == 3


def test_invalid_status_values(client, admin, shopper, make_product):
    product = make_product()
    order = _direct(client, shopper, product["id"], 1).json()
    res = _set_status(client, admin, order["id"], "lost")
    assert res.status_code == 400
    assert res.json()["detail"] == "Invalid order status: lost."

    res = client.patch(
        f"/api/orders/{order['id']}/payment-status", json={"new_payment_status": "maybe"}, headers=admin["headers"],
    )
    assert res.status_code == 400


def test_payment_status_is_independent(client, admin, shopper, make_product):
    product = make_product()
    order = _direct(client, shopper, product["id"], 1).json()
    res = client.patch(
        f"/api/orders/{order['id']}/payment-status", json={"new_payment_status": "paid"}, headers=admin["headers"],
    )
    assert res.status_code == 200
    assert res.json()["payment_status"] == "paid"
    assert res.json()["order_status"] == "pending"


def test_status_update_unknown_order(client, admin):
    assert _set_status(client, admin, str(ObjectId()), "shipped").status_code == 404


def test_status_update_requires_admin(client, shopper, make_product):
    product = make_product()
    order = _direct(client, shopper, product["id"], 1).json()
    assert _set_status(client, shopper, order["id"], "cancelled").status_code == 403


def test_order_visibility(client, admin, shopper, other_shopper, make_product):
    product = make_product()
    order = _direct(client, shopper, product["id"], 1).json()

    assert client.get(f"/api/orders/{order['id']}", headers=other_shopper["headers"]).status_code == 403
    assert client.get(f"/api/orders/{order['id']}", headers=admin["headers"]).status_code == 200
    assert client.get(f"/api/orders/user/{shopper['id']}", headers=other_shopper["headers"]).status_code == 403

    mine = client.get("/api/orders/my-orders", headers=shopper["headers"]).json()
    assert [o["id"] for o in mine] == [order["id"]]
    assert client.get("/api/orders/my-orders", headers=other_shopper["headers"]).json() == []
    assert len(client.get("/api/orders", headers=admin["headers"]).json()) == 1
    assert client.get("/api/orders", headers=shopper["headers"]).status_code == 403


def test_failed_decrement_midway_leaves_all_stock_unchanged(client, db, shopper, make_product):
    first = make_product(name="First", stock=5)
    second = make_product(name="Second", stock=1)
    lines, total = orders.build_order_lines([(first["id"], 2, None, None), (second["id"], 1, None, None)])

    # another order takes the last unit between the check and the write
    db["product"].update_one({"_id": ObjectId(second["id"])}, {"$set": {"stock": 0}})

    with pytest.raises(HTTPException) as exc:
        orders._place_order(shopper["id"], lines, total, ShippingAddress(**SHIPPING), "paypal")
    assert exc.value.status_code == 400
    assert "Requested: 1, Available: 0" in exc.value.detail
    assert db["order"].count_documents({}) == 0
    assert _stock(db, first["id"]) == 5
    assert _stock(db, second["id"]) == 0


def test_failed_order_insert_puts_stock_back(client, db, shopper, make_product, monkeypatch):
    product = make_product(stock=5)
    lines, total = orders.build_order_lines([(product["id"], 3, None, None)])

    def broken_insert(*args, **kwargs):
        raise RuntimeError("insert failed")

    monkeypatch.setattr(orders, "create_document", broken_insert)
    with pytest.raises(RuntimeError):
        orders._place_order(shopper["id"], lines, total, ShippingAddress(**SHIPPING), "paypal")
    assert _stock(db, product["id"]) == 5
