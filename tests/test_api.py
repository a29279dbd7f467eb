"""
HTTP-level tests for the FastAPI app, run against the in-memory Supabase double.

Checks routing, status codes, error translation and that money goes out as
two-decimal strings.
"""

from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from api.main import app


@pytest.fixture
def client(fake_db):
    return TestClient(app)


def _create_customer(client, **overrides):
    body = {"name": "Asha Traders", "credit_limit": "5000"}
    body.update(overrides)
    response = client.post("/api/v1/customers", json=body)
    assert response.status_code == 201, response.text
    return response.json()


def _create_product(client, stock="10", sku="RICE-5KG"):
    response = client.post(
        "/api/v1/products",
        json={"name": "Basmati Rice 5kg", "sku": sku, "selling_price": "500", "current_stock": stock},
    )
    assert response.status_code == 201, response.text
    return response.json()


def _create_sale(client, customer_id, product_id, quantity="2"):
    return client.post(
        "/api/v1/sales",
        json={
            "customer_id": customer_id,
            "items": [{"product_id": product_id, "quantity": quantity, "unit_price": "500"}],
        },
    )


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_sale_and_payment_flow(client):
    customer = _create_customer(client)
    product = _create_product(client)

    response = _create_sale(client, customer["customer_id"], product["product_id"])
    assert response.status_code == 201, response.text
    sale = response.json()
    assert sale["total"] == "1000.00"
    assert sale["balance"] == "1000.00"
    assert sale["payment_status"] == "pending"

    response = client.post(
        "/api/v1/payments",
        json={
            "customer_id": customer["customer_id"],
            "amount": "1200",
            "payment_method": "cash",
            "allocations": [{"sale_id": sale["sale_id"], "amount": "1200"}],
        },
    )
    assert response.status_code == 201, response.text
    payment = response.json()
    assert payment["total_allocated"] == "1000.00"
    assert payment["remaining_amount"] == "200.00"

    paid_sale = client.get(f"/api/v1/sales/{sale['sale_id']}").json()
    assert paid_sale["payment_status"] == "paid"

    unallocated = client.get(f"/api/v1/payments/unallocated/{customer['customer_id']}").json()
    assert [p["payment_id"] for p in unallocated] == [payment["payment_id"]]
    assert client.get(f"/api/v1/payments/pending/{customer['customer_id']}").json() == []

    statement = client.get(f"/api/v1/customers/{customer['customer_id']}/statement").json()
    assert statement["customer"]["outstanding_amount"] == "0.00"
    assert statement["sales_stats"]["total_sales"] == 1
    assert statement["payment_stats"]["total_amount"] == "1200.00"
    assert statement["overall_status"] == "clear"


def test_unknown_sale_is_404(client):
    response = client.get(f"/api/v1/sales/{uuid4()}")
    assert response.status_code == 404


def test_insufficient_stock_is_400(client, fake_db):
    customer = _create_customer(client)
    product = _create_product(client, stock="1")

    response = _create_sale(client, customer["customer_id"], product["product_id"], quantity="5")

    assert response.status_code == 400
    assert fake_db.rows("sales") == []


def test_invalid_body_is_422(client):
    customer = _create_customer(client)
    response = client.post("/api/v1/sales", json={"customer_id": customer["customer_id"], "items": []})
    assert response.status_code == 422


def test_duplicate_sku_is_409(client):
    _create_product(client)
    response = client.post("/api/v1/products", json={"name": "Other rice", "sku": "rice-5kg"})
    assert response.status_code == 409


def test_cancel_and_cancel_again(client):
    customer = _create_customer(client)
    product = _create_product(client)
    sale = _create_sale(client, customer["customer_id"], product["product_id"]).json()

    response = client.post(f"/api/v1/sales/{sale['sale_id']}/cancel")
    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"

    stock = client.get(f"/api/v1/products/{product['product_id']}").json()["current_stock"]
    assert stock in ("10", "10.00")

    again = client.post(f"/api/v1/sales/{sale['sale_id']}/cancel")
    assert again.status_code == 400


def test_customer_list_filters_on_credit_status(client):
    owing = _create_customer(client, name="Small Limit", credit_limit="100")
    _create_customer(client, name="Clear Customer")
    product = _create_product(client)
    _create_sale(client, owing["customer_id"], product["product_id"])

    response = client.get("/api/v1/customers", params={"credit_status": "over_limit"})

    assert response.status_code == 200
    body = response.json()
    assert [c["name"] for c in body["items"]] == ["Small Limit"]
    assert body["pagination"]["total_count"] == 1


def test_customer_update_and_delete(client):
    customer = _create_customer(client)

    response = client.patch(f"/api/v1/customers/{customer['customer_id']}", json={"city": "Pune"})
    assert response.status_code == 200
    assert response.json()["full_address"] == "Pune"

    assert client.delete(f"/api/v1/customers/{customer['customer_id']}").status_code == 204
    assert client.get(f"/api/v1/customers/{customer['customer_id']}").status_code == 404


def test_delete_customer_who_owes_is_400(client):
    customer = _create_customer(client)
    product = _create_product(client)
    _create_sale(client, customer["customer_id"], product["product_id"])

    assert client.delete(f"/api/v1/customers/{customer['customer_id']}").status_code == 400
