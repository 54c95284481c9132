from decimal import Decimal

import pytest
from httpx import ASGITransport, AsyncClient

from storefront.core.permissions import Role
from storefront.core.security import create_access_token
from storefront.main import create_app


@pytest.fixture
async def client(context):
    app = create_app(context=context)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c


@pytest.fixture
def auth(settings):
    def _auth(role: Role, user_id: int = 7, username: str = "alice"):
        token = create_access_token(settings, subject=user_id, username=username, role=role)
        return {"Authorization": f"Bearer {token}"}
    return _auth


@pytest.fixture
def order_body(products):
    def _order_body(name="Widget", quantity=2, unit_price="5.00"):
        total = Decimal(unit_price) * quantity
        return {
            "items": [{
                "product_id": products[name],
                "product_name": name,
                "quantity": quantity,
                "unit_price": unit_price,
                "total_price": str(total),
            }],
            "total_amount": str(total),
            "payment_method": "CARD",
            "shipping_address": "1 Main St",
        }
    return _order_body


class TestCreateOrderEndpoint:
    async def test_customer_places_order(self, client, auth, order_body, products):
        body = order_body(quantity=2)
        body["customer_id"] = 999  # ignored, taken from the token
        body["id"] = 5  # ignored

        response = await client.post("/api/v1/orders", json=body, headers=auth(Role.CUSTOMER))

        assert response.status_code == 201
        data = response.json()
        assert data["customer_id"] == 7
        assert data["customer_username"] == "alice"
        assert data["status"] == "PENDING"
        assert Decimal(data["total_amount"]) == Decimal("10.00")
        assert data["item_count"] == 2

        product = await client.get(f"/api/v1/products/{products['Widget']}", headers=auth(Role.CUSTOMER))
        assert product.json()["quantity"] == 8

    async def test_insufficient_stock_is_conflict(self, client, auth, order_body, products):
        response = await client.post(
            "/api/v1/orders", json=order_body("Gadget", 4, "12.50"), headers=auth(Role.CUSTOMER)
        )

        assert response.status_code == 409
        data = response.json()
        assert data["type"] == "InsufficientStockError"
        assert data["details"]["available"] == 3
        assert data["details"]["requested"] == 4

    async def test_inconsistent_totals_rejected(self, client, auth, order_body, products):
        body = order_body()
        body["total_amount"] = "1.00"

        response = await client.post("/api/v1/orders", json=body, headers=auth(Role.CUSTOMER))

        assert response.status_code == 422
        assert response.json()["type"] == "OrderValidationError"

    async def test_sub_cent_prices_rejected(self, client, auth, order_body, products):
        response = await client.post(
            "/api/v1/orders", json=order_body(quantity=2, unit_price="0.125"), headers=auth(Role.CUSTOMER)
        )

        assert response.status_code == 422
        assert response.json()["details"]["unit_price"] == "0.125"
        product = await client.get(f"/api/v1/products/{products['Widget']}", headers=auth(Role.CUSTOMER))
        assert product.json()["quantity"] == 10

    async def test_employee_cannot_create(self, client, auth, order_body, products):
        response = await client.post("/api/v1/orders", json=order_body(), headers=auth(Role.EMPLOYEE))
        assert response.status_code == 403

    async def test_invalid_token(self, client, order_body, products):
        response = await client.post(
            "/api/v1/orders", json=order_body(), headers={"Authorization": "Bearer not-a-token"}
        )
        assert response.status_code == 401


class TestStatusEndpoint:
    async def test_employee_cancels_and_stock_returns(self, client, auth, order_body, products):
        created = (await client.post(
            "/api/v1/orders", json=order_body(quantity=3), headers=auth(Role.CUSTOMER)
        )).json()

        response = await client.put(
            f"/api/v1/orders/{created['id']}/status",
            json={"status": "CANCELLED", "notes": "out of area"},
            headers=auth(Role.EMPLOYEE, user_id=50, username="staff"),
        )

        assert response.status_code == 200
        assert response.json()["status"] == "CANCELLED"
        product = await client.get(f"/api/v1/products/{products['Widget']}", headers=auth(Role.EMPLOYEE))
        assert product.json()["quantity"] == 10

        history = await client.get(f"/api/v1/orders/{created['id']}/history", headers=auth(Role.CUSTOMER))
        assert [h["to_status"] for h in history.json()] == ["PENDING", "CANCELLED"]
        assert history.json()[1]["changed_by"] == 50

    async def test_customer_cannot_change_status(self, client, auth, order_body, products):
        created = (await client.post(
            "/api/v1/orders", json=order_body(), headers=auth(Role.CUSTOMER)
        )).json()

        response = await client.put(
            f"/api/v1/orders/{created['id']}/status",
            json={"status": "CANCELLED"},
            headers=auth(Role.CUSTOMER),
        )
        assert response.status_code == 403

    async def test_unknown_order(self, client, auth, products):
        response = await client.put(
            "/api/v1/orders/31337/status", json={"status": "SHIPPED"}, headers=auth(Role.ADMIN)
        )
        assert response.status_code == 404

    async def test_unknown_status_value(self, client, auth, products):
        response = await client.put(
            "/api/v1/orders/1/status", json={"status": "CONFIRMED"}, headers=auth(Role.ADMIN)
        )
        assert response.status_code == 422


class TestOrderReadEndpoints:
    async def test_visibility(self, client, auth, order_body, products):
        alice = auth(Role.CUSTOMER, user_id=1, username="alice")
        bob = auth(Role.CUSTOMER, user_id=2, username="bob")
        order = (await client.post("/api/v1/orders", json=order_body(), headers=alice)).json()

        assert (await client.get(f"/api/v1/orders/{order['id']}", headers=alice)).status_code == 200
        assert (await client.get(f"/api/v1/orders/{order['id']}", headers=bob)).status_code == 403
        assert (await client.get(f"/api/v1/orders/{order['id']}", headers=auth(Role.EMPLOYEE))).status_code == 200

        mine = (await client.get("/api/v1/orders/mine", headers=bob)).json()
        assert mine["total"] == 0

    async def test_listing_requires_view_all(self, client, auth, order_body, products):
        await client.post("/api/v1/orders", json=order_body(), headers=auth(Role.CUSTOMER))

        assert (await client.get("/api/v1/orders", headers=auth(Role.CUSTOMER))).status_code == 403

        response = await client.get("/api/v1/orders", params={"status": "PENDING"}, headers=auth(Role.EMPLOYEE))
        assert response.status_code == 200
        assert response.json()["total"] == 1

    async def test_management_views(self, client, auth, order_body, products):
        await client.post("/api/v1/orders", json=order_body(), headers=auth(Role.CUSTOMER))
        employee = auth(Role.EMPLOYEE)

        by_status = await client.get("/api/v1/orders/by-status/PENDING", headers=employee)
        recent = await client.get("/api/v1/orders/recent", headers=employee)
        stats = await client.get("/api/v1/orders/stats", headers=employee)

        assert by_status.json()["total"] == 1
        assert recent.json()["total"] == 1
        assert stats.json()["total_orders"] == 1
        assert stats.json()["completed_orders"] == 0

        assert (await client.get("/api/v1/orders/stats", headers=auth(Role.CUSTOMER))).status_code == 403

    async def test_stream_requires_view_all(self, client, auth, products):
        response = await client.get("/api/v1/orders/stream", headers=auth(Role.CUSTOMER))
        assert response.status_code == 403


class TestProductEndpoints:
    async def test_create_and_adjust(self, client, auth):
        admin = auth(Role.ADMIN)
        created = await client.post(
            "/api/v1/products",
            json={"name": "Sprocket", "cost": "1.00", "price": "2.00", "quantity": 4},
            headers=admin,
        )
        assert created.status_code == 201
        product_id = created.json()["id"]

        restocked = await client.post(
            f"/api/v1/products/{product_id}/stock", json={"delta": 6, "reason": "delivery"}, headers=admin
        )
        assert restocked.json()["quantity"] == 10

        shrunk = await client.post(f"/api/v1/products/{product_id}/stock", json={"delta": -25}, headers=admin)
        assert shrunk.json()["quantity"] == 0

    async def test_customer_cannot_manage(self, client, auth, products):
        customer = auth(Role.CUSTOMER)
        response = await client.post(
            "/api/v1/products",
            json={"name": "Nope", "cost": "1.00", "price": "2.00"},
            headers=customer,
        )
        assert response.status_code == 403
        assert (await client.get("/api/v1/products", headers=customer)).json()["total"] == 3

    async def test_low_stock(self, client, auth, products):
        response = await client.get("/api/v1/products/low-stock", headers=auth(Role.EMPLOYEE))
        assert [p["name"] for p in response.json()] == ["LastOne", "Gadget"]

    async def test_unknown_product(self, client, auth):
        response = await client.get("/api/v1/products/404", headers=auth(Role.CUSTOMER))
        assert response.status_code == 404


async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["database"] == "connected"
