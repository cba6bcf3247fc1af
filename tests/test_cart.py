"""Embedded cart: merge on add, absolute update, idempotent remove, clear."""

import pytest
from bson.objectid import ObjectId

from cart import MAX_QUANTITY
from conftest import bearer


@pytest.fixture
def headers(user_token):
    return bearer(user_token)


@pytest.fixture
def product(make_product):
    return make_product()


def add(client, headers, product_id, quantity=1):
    return client.post("/api/cart", json={"productId": product_id, "quantity": quantity}, headers=headers)


def test_empty_cart(client, headers):
    resp = client.get("/api/cart", headers=headers)
    assert resp.status_code == 200
    assert resp.json() == []


def test_add_then_get_populated(client, headers, product):
    resp = add(client, headers, product["id"], 2)
    assert resp.status_code == 200
    assert resp.json() == {"message": "Item added to cart", "cartCount": 1}

    items = client.get("/api/cart", headers=headers).json()
    assert len(items) == 1
    assert items[0]["productId"] == product["id"]
    assert items[0]["quantity"] == 2
    assert items[0]["addedAt"]
    assert items[0]["product"]["name"] == "Desk Lamp"
    assert items[0]["product"]["price"] == 2999


def test_add_same_product_merges(client, headers, product, db):
    add(client, headers, product["id"], 2)
    resp = add(client, headers, product["id"], 3)
    assert resp.json()["cartCount"] == 1

    items = client.get("/api/cart", headers=headers).json()
    assert [(i["productId"], i["quantity"]) for i in items] == [(product["id"], 5)]
    stored = db["user"].find_one({"email": "jane@example.com"})
    assert len(stored["cart"]) == 1


def test_add_distinct_products(client, headers, make_product):
    first = make_product(name="Lamp")
    second = make_product(name="Mug")
    add(client, headers, first["id"])
    resp = add(client, headers, second["id"], 4)
    assert resp.json()["cartCount"] == 2


def test_add_defaults_to_one(client, headers, product):
    client.post("/api/cart", json={"productId": product["id"]}, headers=headers)
    assert client.get("/api/cart", headers=headers).json()[0]["quantity"] == 1


@pytest.mark.parametrize("quantity", [0, -2])
def test_add_rejects_non_positive_quantity(client, headers, product, quantity):
    resp = add(client, headers, product["id"], quantity)
    assert resp.status_code == 400
    assert resp.json()["error"] == "Quantity must be at least 1"


def test_add_rejects_non_integer_quantity(client, headers, product):
    resp = add(client, headers, product["id"], "lots")
    assert resp.status_code == 400


def test_add_validates_product(client, headers):
    assert add(client, headers, "bogus").status_code == 400
    assert client.post("/api/cart", json={"quantity": 1}, headers=headers).status_code == 400
    resp = add(client, headers, str(ObjectId()))
    assert resp.status_code == 404
    assert resp.json()["error"] == "Product not found"


def test_update_sets_absolute_quantity(client, headers, product):
    add(client, headers, product["id"], 5)
    resp = client.patch(f"/api/cart/{product['id']}", json={"quantity": 2}, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["cartCount"] == 1
    assert client.get("/api/cart", headers=headers).json()[0]["quantity"] == 2


def test_update_missing_item(client, headers, product):
    resp = client.patch(f"/api/cart/{product['id']}", json={"quantity": 2}, headers=headers)
    assert resp.status_code == 404
    assert resp.json()["error"] == "Item not found in cart"


def test_update_requires_positive_quantity(client, headers, product):
    add(client, headers, product["id"])
    assert client.patch(f"/api/cart/{product['id']}", json={"quantity": 0}, headers=headers).status_code == 400
    assert client.patch(f"/api/cart/{product['id']}", json={}, headers=headers).status_code == 400


def test_remove_item(client, headers, make_product):
    first = make_product(name="Lamp")
    second = make_product(name="Mug")
    add(client, headers, first["id"])
    add(client, headers, second["id"])
    resp = client.delete(f"/api/cart/{first['id']}", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["cartCount"] == 1
    assert [i["productId"] for i in client.get("/api/cart", headers=headers).json()] == [second["id"]]


def test_remove_absent_item_is_idempotent(client, headers, product):
    resp = client.delete(f"/api/cart/{ObjectId()}", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["cartCount"] == 0

    add(client, headers, product["id"])
    client.delete(f"/api/cart/{product['id']}", headers=headers)
    again = client.delete(f"/api/cart/{product['id']}", headers=headers)
    assert again.status_code == 200
    assert again.json()["cartCount"] == 0


def test_clear_cart(client, headers, make_product):
    add(client, headers, make_product(name="Lamp")["id"])
    add(client, headers, make_product(name="Mug")["id"])
    resp = client.delete("/api/cart", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["cartCount"] == 0
    assert client.get("/api/cart", headers=headers).json() == []


def test_deleted_product_dropped_from_cart(client, headers, admin_token, make_product):
    kept = make_product(name="Lamp")
    gone = make_product(name="Mug")
    add(client, headers, kept["id"])
    add(client, headers, gone["id"])
    client.delete(f"/api/products/{gone['id']}", headers=bearer(admin_token))

    resp = client.get("/api/cart", headers=headers)
    assert resp.status_code == 200
    assert [i["productId"] for i in resp.json()] == [kept["id"]]


def test_carts_are_per_user(client, headers, signup, product):
    add(client, headers, product["id"], 3)
    other = bearer(signup(email="other@example.com")["token"])
    assert client.get("/api/cart", headers=other).json() == []


def test_cart_for_vanished_user(client, headers, product, db):
    db["user"].delete_many({"email": "jane@example.com"})
    assert client.get("/api/cart", headers=headers).status_code == 404
    assert add(client, headers, product["id"]).status_code == 404
    assert client.delete("/api/cart", headers=headers).status_code == 404


def test_add_rejects_quantity_above_limit(client, headers, product, db):
    resp = add(client, headers, product["id"], MAX_QUANTITY + 1)
    assert resp.status_code == 400
    assert "quantity" in resp.json()["error"]
    assert db["user"].find_one({"email": "jane@example.com"})["cart"] == []


def test_add_rejects_int64_overflow(client, headers, product):
    assert add(client, headers, product["id"], 2 ** 63).status_code == 400


def test_update_rejects_quantity_above_limit(client, headers, product):
    add(client, headers, product["id"])
    resp = client.patch(f"/api/cart/{product['id']}", json={"quantity": MAX_QUANTITY + 1}, headers=headers)
    assert resp.status_code == 400
    assert client.get("/api/cart", headers=headers).json()[0]["quantity"] == 1


def test_add_accepts_quantity_at_limit(client, headers, product):
    assert add(client, headers, product["id"], MAX_QUANTITY).status_code == 200
