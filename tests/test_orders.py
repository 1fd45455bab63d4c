import csv
import io
from datetime import datetime, timezone

import pytest

from nek.services.orders_service import generate_order_number


@pytest.fixture
def variant(product):
    return product.variants[0]


def place(client, headers, product, variant, shipping_address, quantity=2, **extra):
    payload = {
        "items": [{"product_id": product.id, "variant_id": variant.id, "quantity": quantity}],
        "shipping_address": shipping_address,
        "shipping_method": "standard",
        "payment_method": "card",
    }
    payload.update(extra)
    return client.post("/api/orders", json=payload, headers=headers)


def inventory_of(client, product):
    return client.get(f"/api/products/{product.id}").json()["variants"][0]["inventory"]


def test_order_number_format():
    number = generate_order_number(now=1700000000.5)
    prefix, millis, suffix = number.split("-")
    assert prefix == "NEK"
    assert millis == "1700000000500"
    assert len(suffix) == 9
    assert suffix == suffix.upper()


def test_place_order(client, auth, user, product, variant, shipping_address, mailer):
    headers = auth(user)
    client.post(
        "/api/cart",
        json={"product_id": product.id, "variant_id": variant.id, "quantity": 2},
        headers=headers,
    )

    resp = place(client, headers, product, variant, shipping_address)
    assert resp.status_code == 201
    order = resp.json()
    assert order["status"] == "pending"
    assert order["payment_status"] == "pending"
    assert order["order_number"].startswith("NEK-")
    assert order["item_count"] == 2
    assert order["subtotal"] == 200.0
    assert order["total"] == 231.99
    assert order["items"][0]["price"] == 100.0
    assert order["billing_address"] == order["shipping_address"]

    assert inventory_of(client, product) == 3
    assert client.get("/api/cart", headers=headers).json() == []

    mailer.join()
    sent = mailer.transport.sent
    assert len(sent) == 1
    assert sent[0].to == shipping_address["email"]
    assert sent[0].subject == f"Order Confirmation - {order['order_number']}"


def test_coupon_is_recorded_only_when_valid(client, auth, user, product, variant, shipping_address):
    headers = auth(user)
    with_coupon = place(client, headers, product, variant, shipping_address, quantity=1, coupon_code="save10").json()
    assert with_coupon["coupon_code"] == "SAVE10"
    assert with_coupon["discount"] == 10.0

    bogus = place(client, headers, product, variant, shipping_address, quantity=1, coupon_code="BOGUS").json()
    assert bogus["coupon_code"] is None
    assert bogus["discount"] == 0.0


def test_insufficient_inventory_rolls_back(client, auth, user, product, variant, shipping_address, mailer):
    headers = auth(user)
    resp = place(client, headers, product, variant, shipping_address, quantity=6)
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Insufficient inventory for RING-GOLD-7"

    assert inventory_of(client, product) == 5
    assert client.get("/api/orders", headers=headers).json() == []
    mailer.join()
    assert mailer.transport.sent == []


def test_unknown_variant_is_404(client, auth, user, product, shipping_address):
    resp = client.post(
        "/api/orders",
        json={
            "items": [{"product_id": product.id, "variant_id": "missing", "quantity": 1}],
            "shipping_address": shipping_address,
            "payment_method": "card",
        },
        headers=auth(user),
    )
    assert resp.status_code == 404


def test_order_validation(client, auth, user, product, variant, shipping_address):
    headers = auth(user)
    assert place(client, headers, product, variant, shipping_address, shipping_method="drone").status_code == 422
    assert place(client, headers, product, variant, shipping_address, quantity=0).status_code == 422
    resp = client.post(
        "/api/orders",
        json={"items": [], "shipping_address": shipping_address, "payment_method": "card"},
        headers=headers,
    )
    assert resp.status_code == 422


def test_customer_cancel_does_not_restock(client, auth, user, product, variant, shipping_address):
    headers = auth(user)
    order = place(client, headers, product, variant, shipping_address, payment_status="paid").json()

    resp = client.post(f"/api/orders/{order['id']}/cancel", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["status"] == "cancelled"
    assert resp.json()["payment_status"] == "pending"
    assert inventory_of(client, product) == 3

    again = client.post(f"/api/orders/{order['id']}/cancel", headers=headers)
    assert again.status_code == 400
    assert again.json()["detail"] == "Order cannot be cancelled"


def test_shipped_order_cannot_be_cancelled(client, auth, user, admin, product, variant, shipping_address):
    headers = auth(user)
    order = place(client, headers, product, variant, shipping_address).json()
    client.patch(f"/api/admin/orders/{order['id']}", json={"status": "shipped"}, headers=auth(admin))

    resp = client.post(f"/api/orders/{order['id']}/cancel", headers=headers)
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Order cannot be cancelled"


def test_orders_are_private(client, auth, user, make_user, admin, product, variant, shipping_address):
    order = place(client, auth(user), product, variant, shipping_address).json()
    other = auth(make_user(email="other@example.com"))

    assert client.get(f"/api/orders/{order['id']}", headers=other).status_code == 404
    assert client.get(f"/api/orders/number/{order['order_number']}", headers=other).status_code == 404
    assert client.post(f"/api/orders/{order['id']}/cancel", headers=other).status_code == 404
    assert client.get("/api/orders", headers=other).json() == []

    assert client.get(f"/api/orders/{order['id']}", headers=auth(admin)).status_code == 200
    listed = client.get("/api/orders", params={"userId": user.id}, headers=auth(admin)).json()
    assert [o["id"] for o in listed] == [order["id"]]
    # a customer cannot point userId at someone else
    assert client.get("/api/orders", params={"userId": user.id}, headers=other).json() == []


def test_track_by_order_number(client, auth, user, product, variant, shipping_address):
    headers = auth(user)
    order = place(client, headers, product, variant, shipping_address).json()
    resp = client.get(f"/api/orders/number/{order['order_number']}", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["id"] == order["id"]


def test_orders_require_login(client):
    assert client.get("/api/orders").status_code == 401


def test_admin_update_is_unrestricted(client, auth, user, admin, product, variant, shipping_address):
    order = place(client, auth(user), product, variant, shipping_address).json()
    admin_headers = auth(admin)

    resp = client.patch(
        f"/api/admin/orders/{order['id']}",
        json={"status": "delivered", "payment_status": "paid", "tracking_number": "1Z999", "admin_notes": "left at door"},
        headers=admin_headers,
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "delivered"
    assert body["payment_status"] == "paid"
    assert body["tracking_number"] == "1Z999"
    assert body["admin_notes"] == "left at door"

    back = client.patch(f"/api/admin/orders/{order['id']}", json={"status": "pending"}, headers=admin_headers)
    assert back.json()["status"] == "pending"
    assert back.json()["tracking_number"] == "1Z999"

    bad = client.patch(f"/api/admin/orders/{order['id']}", json={"status": "lost"}, headers=admin_headers)
    assert bad.status_code == 422


def test_admin_order_routes_require_admin(client, auth, user):
    assert client.get("/api/admin/orders", headers=auth(user)).status_code == 403
    assert client.get("/api/admin/orders").status_code == 401


def test_admin_list_orders(client, auth, user, admin, product, variant, shipping_address):
    headers = auth(user)
    first = place(client, headers, product, variant, shipping_address, quantity=1, payment_status="paid").json()
    place(client, headers, product, variant, shipping_address, quantity=1)

    resp = client.get("/api/admin/orders", params={"pageSize": 1000}, headers=auth(admin))
    assert resp.status_code == 200
    body = resp.json()
    assert body["pagination"]["page_size"] == 50
    assert body["pagination"]["total"] == 2
    assert body["metrics"]["total_orders"] == 2
    assert body["metrics"]["paid_revenue"] == first["total"]
    assert body["metrics"]["status_counts"] == {"pending": 2}

    small = client.get("/api/admin/orders", params={"pageSize": 1}, headers=auth(admin)).json()
    assert small["pagination"]["page_size"] == 5

    paid = client.get("/api/admin/orders", params={"paymentStatus": "paid"}, headers=auth(admin)).json()
    assert [o["id"] for o in paid["data"]] == [first["id"]]

    by_number = client.get("/api/admin/orders", params={"search": first["order_number"]}, headers=auth(admin)).json()
    assert by_number["pagination"]["total"] == 1

    by_email = client.get("/api/admin/orders", params={"search": "jane@"}, headers=auth(admin)).json()
    assert by_email["pagination"]["total"] == 2


def test_csv_export_is_named_by_utc_date(client, auth, admin):
    before = datetime.now(timezone.utc).strftime("%Y-%m-%d")
    resp = client.get("/api/admin/orders", params={"format": "csv"}, headers=auth(admin))
    after = datetime.now(timezone.utc).strftime("%Y-%m-%d")

    assert resp.headers["content-disposition"] in {
        f'attachment; filename="orders-{day}.csv"' for day in (before, after)
    }


def test_csv_export_quotes_every_field(client, auth, user, admin, product, variant, shipping_address):
    shipping_address.update(first_name='Jo "JJ"', last_name="Smith, Jr.")
    order = place(client, auth(user), product, variant, shipping_address).json()

    resp = client.get("/api/admin/orders", params={"format": "csv"}, headers=auth(admin))
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/csv")
    assert resp.headers["content-disposition"].startswith('attachment; filename="orders-')

    lines = resp.text.split("\n")
    assert lines[0] == (
        '"Order Number","Customer Name","Customer Email","Status","Payment Status",'
        '"Total","Items","Tracking Number","Created At","Updated At"'
    )
    assert '"Jo ""JJ"" Smith, Jr."' in lines[1]
    assert not resp.text.endswith("\n")

    row = next(csv.reader(io.StringIO(lines[1])))
    assert row[0] == order["order_number"]
    assert row[1] == 'Jo "JJ" Smith, Jr.'
    assert row[2] == shipping_address["email"]
    assert row[5] == "231.99"
    assert row[6] == "2"
    assert row[8].endswith("Z")


def test_admin_stats(client, auth, user, admin, product, variant, shipping_address):
    place(client, auth(user), product, variant, shipping_address, payment_status="paid")
    stats = client.get("/api/admin/stats", headers=auth(admin)).json()
    assert stats["orders"]["total"] == 1
    assert stats["orders"]["pending"] == 1
    assert stats["orders"]["total_revenue"] == 231.99
    assert stats["products"]["total_inventory"] == 3
