import asyncio
from decimal import Decimal

from sqlalchemy.future import select

from technexus import models
from technexus.database import SessionLocal


def _order(client, user, items, **extra):
    data = {"items": items, "shipping_address": "Plot 12, Msasani, Dar es Salaam", "phone": "+255700000001"}
    data.update(extra)
    return client.post("/api/orders", json=data, headers=user["headers"])


def test_order_uses_effective_price_and_freezes_it(client, admin, customer, make_product):
    product = make_product(price="1000.00", discount_price="800.00", stock=5)

    res = _order(client, customer, [{"product_id": product["id"], "quantity": 2}])
    assert res.status_code == 201, res.text
    order = res.json()
    assert Decimal(order["total_amount"]) == Decimal("1600.00")
    assert order["status"] == "pending"
    assert order["payment_method"] == "cash_on_delivery"
    assert "order_items" not in order

    # later catalog changes do not touch the placed order
    update = {"name": "Laptop", "price": "5000.00", "discount_price": None, "stock": 3}
    assert client.put(f"/api/products/{product['id']}", json=update, headers=admin["headers"]).status_code == 200

    detail = client.get(f"/api/orders/{order['id']}", headers=customer["headers"]).json()
    assert Decimal(detail["total_amount"]) == Decimal("1600.00")
    assert len(detail["order_items"]) == 1
    assert Decimal(detail["order_items"][0]["price"]) == Decimal("800.00")
    assert detail["order_items"][0]["quantity"] == 2
    assert detail["order_items"][0]["product"]["name"] == "Laptop"


def test_order_decrements_stock(client, customer, make_product):
    product = make_product(stock=5)
    assert _order(client, customer, [{"product_id": product["id"], "quantity": 3}]).status_code == 201
    assert client.get(f"/api/products/{product['id']}").json()["stock"] == 2


def test_out_of_stock_has_no_side_effects(client, customer, make_product):
    plenty = make_product(name="Mouse", price="20.00", stock=10)
    scarce = make_product(name="Monitor", price="300.00", stock=1)

    res = _order(client, customer, [{"product_id": plenty["id"], "quantity": 2}, {"product_id": scarce["id"], "quantity": 2}])
    assert res.status_code == 409
    assert "Insufficient stock" in res.json()["detail"]

    assert client.get("/api/orders", headers=customer["headers"]).json() == []
    assert client.get(f"/api/products/{plenty['id']}").json()["stock"] == 10
    assert client.get(f"/api/products/{scarce['id']}").json()["stock"] == 1


def test_unknown_product_fails(client, customer, make_product):
    product = make_product()
    res = _order(client, customer, [{"product_id": product["id"], "quantity": 1}, {"product_id": 9999, "quantity": 1}])
    assert res.status_code == 404
    assert res.json()["detail"] == "Product 9999 not found"
    assert client.get(f"/api/products/{product['id']}").json()["stock"] == 5


def test_order_input_validation(client, customer, make_product):
    product = make_product()
    assert _order(client, customer, []).status_code == 400
    res = _order(client, customer, [{"product_id": product["id"], "quantity": 1}], shipping_address="  ")
    assert res.status_code == 400
    assert res.json()["detail"] == "Shipping address is required"
    assert _order(client, customer, [{"product_id": product["id"], "quantity": 0}]).status_code == 422


def test_order_requires_authentication(client, make_product):
    product = make_product()
    res = client.post("/api/orders", json={"items": [{"product_id": product["id"], "quantity": 1}]})
    assert res.status_code == 401


def test_coupon_below_minimum_is_ignored(client, customer, make_product, make_coupon):
    product = make_product(price="5000.00", stock=5)
    make_coupon(code="BIG", min_purchase_amount="10000")

    res = _order(client, customer, [{"product_id": product["id"], "quantity": 1}], coupon_code="BIG")
    assert res.status_code == 201
    order = res.json()
    assert Decimal(order["discount_amount"]) == 0
    assert Decimal(order["total_amount"]) == Decimal("5000.00")
    assert order["coupon_code"] is None


def test_unknown_coupon_is_ignored(client, customer, make_product):
    product = make_product(price="100.00")
    res = _order(client, customer, [{"product_id": product["id"], "quantity": 1}], coupon_code="NOPE")
    assert res.status_code == 201
    assert Decimal(res.json()["total_amount"]) == Decimal("100.00")


def test_percentage_coupon_applies_and_counts_use(client, admin, customer, make_product, make_coupon):
    product = make_product(price="2000.00", stock=5)
    make_coupon(code="SAVE10", discount_percentage=10, discount_amount="500")

    res = _order(client, customer, [{"product_id": product["id"], "quantity": 1}], coupon_code="SAVE10")
    order = res.json()
    assert Decimal(order["discount_amount"]) == Decimal("200.00")
    assert Decimal(order["total_amount"]) == Decimal("1800.00")
    assert order["coupon_code"] == "SAVE10"

    coupons = client.get("/api/coupons", headers=admin["headers"]).json()
    assert coupons[0]["used_count"] == 1


def test_flat_coupon_never_makes_total_negative(client, customer, make_product, make_coupon):
    product = make_product(price="300.00")
    make_coupon(code="FLAT", discount_percentage=None, discount_amount="500")

    order = _order(client, customer, [{"product_id": product["id"], "quantity": 1}], coupon_code="FLAT").json()
    assert Decimal(order["discount_amount"]) == Decimal("300.00")
    assert Decimal(order["total_amount"]) == 0


def test_exhausted_coupon_is_ignored(client, customer, make_product, make_coupon):
    product = make_product(price="100.00", stock=10)
    make_coupon(code="ONCE", max_uses=1)

    first = _order(client, customer, [{"product_id": product["id"], "quantity": 1}], coupon_code="ONCE").json()
    second = _order(client, customer, [{"product_id": product["id"], "quantity": 1}], coupon_code="ONCE").json()
    assert Decimal(first["total_amount"]) == Decimal("90.00")
    assert Decimal(second["total_amount"]) == Decimal("100.00")


def test_completion_awards_loyalty_points_once(client, admin, customer, make_product):
    product = make_product(price="1250.00", stock=5)
    order = _order(client, customer, [{"product_id": product["id"], "quantity": 2}]).json()
    url = f"/api/orders/{order['id']}/status"

    res = client.patch(url, json={"status": "completed"}, headers=admin["headers"])
    assert res.status_code == 200
    assert res.json()["status"] == "completed"
    assert client.patch(url, json={"status": "completed"}, headers=admin["headers"]).status_code == 200

    async def balance():
        async with SessionLocal() as session:
            result = await session.execute(
                select(models.LoyaltyPoints).where(models.LoyaltyPoints.user_id == customer["id"])
            )
            return result.scalar_one()

    points = asyncio.run(balance())
    assert points.points == 25
    assert points.lifetime_points == 25


def test_status_update_is_admin_only(client, customer, make_product):
    product = make_product()
    order = _order(client, customer, [{"product_id": product["id"], "quantity": 1}]).json()
    res = client.patch(f"/api/orders/{order['id']}/status", json={"status": "completed"}, headers=customer["headers"])
    assert res.status_code == 403


def test_status_update_unknown_order(client, admin):
    res = client.patch("/api/orders/424242/status", json={"status": "shipped"}, headers=admin["headers"])
    assert res.status_code == 404


def test_tracking_update(client, admin, customer, make_product):
    product = make_product()
    order = _order(client, customer, [{"product_id": product["id"], "quantity": 1}]).json()
    res = client.patch(
        f"/api/orders/{order['id']}/tracking",
        json={"tracking_number": "TZ123", "tracking_url": "https://track.example/TZ123"},
        headers=admin["headers"],
    )
    assert res.status_code == 200
    assert res.json()["tracking_number"] == "TZ123"


def test_order_visibility(client, admin, customer, other_customer, make_product):
    product = make_product()
    order = _order(client, customer, [{"product_id": product["id"], "quantity": 1}]).json()

    assert client.get(f"/api/orders/{order['id']}", headers=other_customer["headers"]).status_code == 403
    assert client.get(f"/api/orders/{order['id']}", headers=admin["headers"]).status_code == 200
    assert client.get("/api/orders", headers=other_customer["headers"]).json() == []

    listed = client.get("/api/orders", headers=admin["headers"]).json()
    assert [o["id"] for o in listed] == [order["id"]]
    assert listed[0]["full_name"] == "Asha Mwita"
