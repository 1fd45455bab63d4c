import pytest

from nek.db.models import CartItem
from nek.models.schemas import CartItemIn
from nek.services.cart_service import merge_items


@pytest.fixture
def two_variants(make_product):
    product = make_product("Gold Ring", variants=(("R-7", "100.00", 5), ("R-8", "100.00", 5)))
    by_sku = {v.sku: v for v in product.variants}
    return product, by_sku["R-7"], by_sku["R-8"]


def line(product, variant, quantity):
    return {"product_id": product.id, "variant_id": variant.id, "quantity": quantity}


def test_anonymous_cart_is_empty(client):
    resp = client.get("/api/cart")
    assert resp.status_code == 200
    assert resp.json() == []


def test_bad_token_is_rejected_even_for_cart(client):
    assert client.get("/api/cart", headers={"Authorization": "Bearer garbage"}).status_code == 401


def test_add_sets_quantity(client, auth, user, two_variants):
    product, a, _ = two_variants
    headers = auth(user)

    first = client.post("/api/cart", json=line(product, a, 1), headers=headers)
    assert first.status_code == 201
    second = client.post("/api/cart", json=line(product, a, 3), headers=headers)
    assert second.json()["id"] == first.json()["id"]

    cart = client.get("/api/cart", headers=headers).json()
    assert len(cart) == 1
    assert cart[0]["quantity"] == 3
    assert cart[0]["variant"]["sku"] == "R-7"
    assert cart[0]["product"]["name"] == "Gold Ring"


def test_add_unknown_variant(client, auth, user, product):
    resp = client.post(
        "/api/cart",
        json={"product_id": product.id, "variant_id": "missing", "quantity": 1},
        headers=auth(user),
    )
    assert resp.status_code == 404
    assert resp.json()["detail"] == "Product variant not found"


def test_update_and_remove(client, auth, user, make_user, two_variants):
    product, a, _ = two_variants
    headers = auth(user)
    item = client.post("/api/cart", json=line(product, a, 1), headers=headers).json()

    updated = client.patch(f"/api/cart/{item['id']}", json={"quantity": 4}, headers=headers)
    assert updated.json()["quantity"] == 4
    assert client.patch(f"/api/cart/{item['id']}", json={"quantity": 0}, headers=headers).status_code == 422

    stranger = auth(make_user(email="other@example.com"))
    assert client.patch(f"/api/cart/{item['id']}", json={"quantity": 2}, headers=stranger).status_code == 404
    assert client.delete(f"/api/cart/{item['id']}", headers=stranger).status_code == 404

    assert client.delete(f"/api/cart/{item['id']}", headers=headers).json() == {"success": True}
    assert client.get("/api/cart", headers=headers).json() == []


def test_sync_merges_duplicate_lines(client, auth, user, two_variants):
    product, a, b = two_variants
    headers = auth(user)
    client.post("/api/cart", json=line(product, b, 5), headers=headers)

    resp = client.post(
        "/api/cart/sync",
        json={"items": [line(product, a, 1), line(product, a, 2)]},
        headers=headers,
    )
    assert resp.status_code == 200
    cart = resp.json()
    assert [(i["variant_id"], i["quantity"]) for i in cart] == [(a.id, 3)]


def test_repeated_sync_is_idempotent(client, auth, user, two_variants, Session):
    product, a, _ = two_variants
    headers = auth(user)
    payload = {"items": [line(product, a, 1), line(product, a, 2)]}

    for _ in range(2):
        resp = client.post("/api/cart/sync", json=payload, headers=headers)
        assert resp.status_code == 200
        assert [(i["variant_id"], i["quantity"]) for i in resp.json()] == [(a.id, 3)]

    with Session() as db:
        rows = db.query(CartItem).filter(CartItem.user_id == user.id).all()
        assert [(r.variant_id, r.quantity) for r in rows] == [(a.id, 3)]


def test_sync_with_unknown_variant_keeps_server_cart(client, auth, user, two_variants):
    product, a, _ = two_variants
    headers = auth(user)
    client.post("/api/cart", json=line(product, a, 2), headers=headers)

    resp = client.post(
        "/api/cart/sync",
        json={"items": [{"product_id": product.id, "variant_id": "missing", "quantity": 1}]},
        headers=headers,
    )
    assert resp.status_code == 404
    cart = client.get("/api/cart", headers=headers).json()
    assert [(i["variant_id"], i["quantity"]) for i in cart] == [(a.id, 2)]


def test_sync_with_empty_cart_clears_server(client, auth, user, two_variants):
    product, a, _ = two_variants
    headers = auth(user)
    client.post("/api/cart", json=line(product, a, 2), headers=headers)
    assert client.post("/api/cart/sync", json={"items": []}, headers=headers).json() == []


def test_merge_items():
    merged = merge_items([
        CartItemIn(product_id="p", variant_id="a", quantity=1),
        CartItemIn(product_id="p", variant_id="b", quantity=1),
        CartItemIn(product_id="p", variant_id="a", quantity=2),
    ])
    assert [(m.variant_id, m.quantity) for m in merged] == [("a", 3), ("b", 1)]


def test_coupon_check(client):
    assert client.post("/api/cart/coupon", json={"code": "save10"}).json() == {
        "valid": True,
        "code": "SAVE10",
        "percent": 10,
    }
    assert client.post("/api/cart/coupon", json={"code": "NOPE"}).json()["valid"] is False
