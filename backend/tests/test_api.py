import pytest
from fastapi.testclient import TestClient

from storefront.main import create_app

ADDRESS = {
    "name": "Ada Lovelace",
    "street": "1 Analytical Way",
    "city": "London",
    "zip_code": "N1 9GU",
    "country": "UK",
}


@pytest.fixture
def client(session_factory, cache, clock):
    app = create_app(
        session_factory=session_factory, cart_cache=cache, clock=clock, start_scheduler=False
    )
    with TestClient(app) as c:
        yield c


def _add(client, user_id="u1", product_id="hoodie-1", size="M", color="black", quantity=2):
    return client.post(
        f"/api/cart/{user_id}/items",
        json={"product_id": product_id, "size": size, "color": color, "quantity": quantity},
    )


def _checkout(client, user_id="u1", headers=None, discount_cents=0):
    return client.post(
        "/api/orders",
        json={
            "user_id": user_id,
            "shipping_address": ADDRESS,
            "billing_address": ADDRESS,
            "payment_reference": "pay_ref_1",
            "discount_cents": discount_cents,
        },
        headers=headers or {},
    )


def test_health_ok(client):
    res = client.get("/api/health")
    assert res.status_code == 200
    body = res.json()
    assert body["status"] == "ok"
    assert body["db"] is True
    assert body["cart_cache"] is True


def test_cart_endpoints(client):
    res = client.get("/api/cart/u1")
    assert res.status_code == 200
    assert res.json()["items"] == []

    res = _add(client)
    assert res.status_code == 200
    body = res.json()
    assert body["total_items"] == 2
    assert body["total_price"] == 2000
    assert body["items"][0]["name"] == "Oversized Hoodie"

    res = client.put(
        "/api/cart/u1/items",
        json={"product_id": "hoodie-1", "size": "M", "color": "black", "quantity": 3},
    )
    assert res.status_code == 200
    assert res.json()["total_items"] == 3

    res = client.put(
        "/api/cart/u1/items",
        json={"product_id": "tee-1", "size": "M", "color": "white", "quantity": 3},
    )
    assert res.status_code == 404

    res = client.delete(
        "/api/cart/u1/items",
        params={"product_id": "hoodie-1", "size": "M", "color": "black"},
    )
    assert res.status_code == 200
    assert res.json()["items"] == []


def test_add_unknown_or_inactive_product(client):
    assert _add(client, product_id="nope").status_code == 404
    assert _add(client, product_id="jacket-old", size="L", color="olive").status_code == 400
    assert _add(client, quantity=0).status_code == 422


def test_validate_endpoint(client):
    _add(client, product_id="tee-1", size="S", color="white", quantity=3)
    res = client.get("/api/cart/u1/validate")
    assert res.status_code == 200
    body = res.json()
    assert body["is_valid"] is False
    assert body["issues"] == ["Only 1 units of Boxy Tee (S/white) are available"]


def test_sync_endpoints(client):
    _add(client)
    res = client.post("/api/cart/sync/u1")
    assert res.status_code == 200
    assert res.json()["outcome"] == "uploaded_initial"

    res = client.post("/api/cart/sync/u1")
    assert res.json()["outcome"] == "in_sync"

    status = client.get("/api/cart/sync/u1/status").json()
    assert status["is_in_sync"] is True
    assert status["sync_version"] == 1
    assert status["auto_sync"] is False

    assert client.post("/api/cart/sync/u1/start").json()["created"] is True
    assert client.get("/api/cart/sync/u1/status").json()["auto_sync"] is True
    assert client.post("/api/cart/sync/u1/stop").json()["removed"] is True

    assert client.delete("/api/cart/sync/u1").json()["removed"] is True
    assert client.get("/api/cart/sync/u1/status").json()["remote_last_modified"] is None


def test_checkout_and_order_lifecycle(client):
    _add(client)
    res = _checkout(client, headers={"Idempotency-Key": "idem-123"})
    assert res.status_code == 201
    order = res.json()
    assert order["total_cents"] == 2360
    assert order["tax_cents"] == 360
    assert order["status_display"] == "Order Placed"
    assert order["lines"][0]["quantity"] == 2

    # same key -> same order, no duplicate
    again = _checkout(client, headers={"Idempotency-Key": "idem-123"})
    assert again.status_code == 201
    assert again.json()["id"] == order["id"]

    assert client.get("/api/cart/u1").json()["items"] == []
    inv = client.get("/api/inventory/hoodie-1").json()
    assert inv["variants"] == [{"size": "M", "color": "black", "quantity": 8}]

    res = client.get(f"/api/orders/{order['id']}")
    assert res.status_code == 200
    assert res.json()["order_number"] == order["order_number"]
    assert client.get("/api/orders/9999").status_code == 404

    listing = client.get("/api/orders/user/u1").json()
    assert listing["total"] == 1

    url = f"/api/admin/orders/{order['id']}/status"
    assert client.post(url, json={"status": "shipped"}).status_code == 409
    assert client.post(url, json={"status": "processing"}).status_code == 200
    res = client.post(url, json={"status": "cancelled", "reason": "out of budget"})
    assert res.status_code == 200
    assert res.json()["status"] == "cancelled"
    inv = client.get("/api/inventory/hoodie-1").json()
    assert inv["total"] == 10


def test_checkout_errors(client):
    res = _checkout(client)
    assert res.status_code == 400
    assert res.json()["detail"]["code"] == "EMPTY_CART"

    _add(client, product_id="tee-1", size="S", color="white", quantity=2)
    res = _checkout(client)
    assert res.status_code == 409
    detail = res.json()["detail"]
    assert detail["code"] == "INSUFFICIENT_INVENTORY"
    assert (detail["available"], detail["requested"]) == (1, 2)


def test_inventory_unknown_product(client):
    assert client.get("/api/inventory/nope").status_code == 404


def test_merge_guest_cart_endpoint(client):
    _add(client, quantity=1)
    res = client.post(
        "/api/cart/u1/merge",
        json={
            "items": [
                {"product_id": "hoodie-1", "size": "M", "color": "black", "quantity": 2},
                {"product_id": "cap-1", "size": "OS", "color": "red", "quantity": 1},
                {"product_id": "nope", "size": "M", "color": "black", "quantity": 1},
                {"product_id": "jacket-old", "size": "L", "color": "olive", "quantity": 1},
            ]
        },
    )
    assert res.status_code == 200
    body = res.json()
    lines = {(it["product_id"], it["quantity"]) for it in body["items"]}
    assert lines == {("hoodie-1", 3), ("cap-1", 1)}
    assert body["total_price"] == 3 * 1000 + 150

    res = client.post("/api/cart/u2/merge", json={"items": []})
    assert res.status_code == 200
    assert res.json()["items"] == []


def test_checkout_discount_above_subtotal(client):
    _add(client, product_id="cap-1", size="OS", color="red", quantity=1)
    res = _checkout(client, discount_cents=151)
    assert res.status_code == 400
    assert res.json()["detail"]["code"] == "INVALID_DISCOUNT"
    assert client.get("/api/cart/u1").json()["total_items"] == 1
