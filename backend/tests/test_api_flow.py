"""End-to-end journey over HTTP: sign-up, approval, stock and a sale."""
from __future__ import annotations

from conftest import PASSWORD, login
from tenant_erp.models import ActivityLog


def _register(client) -> dict:
    response = client.post(
        "/api/v1/companies/register",
        json={
            "company_name": "Omega Goods",
            "email": "office@omega.test",
            "phone": "+15550100",
            "admin_name": "Olga Owner",
            "admin_email": "olga@omega.test",
            "admin_password": PASSWORD,
        },
    )
    assert response.status_code == 201
    return response.json()["company"]


def test_company_journey_from_signup_to_refund(client, db_session, super_admin) -> None:
    company = _register(client)
    assert company["status"] == "PENDING"
    assert login(client, "olga@omega.test").status_code == 403

    login(client, super_admin.email)
    approved = client.patch(
        f"/api/v1/companies/{company['id']}/approve",
        json={"subscription": {"plan": "BASIC"}},
    )
    assert approved.status_code == 200
    assert approved.json()["subscription"]["plan"] == "BASIC"
    client.cookies.clear()

    assert login(client, "olga@omega.test").status_code == 200
    product = client.post(
        "/api/v1/products",
        json={"name": "Lamp", "sku": "L-1", "base_price": "10.00"},
    ).json()

    stocked = client.post("/api/v1/inventory/stock-in", json={"product_id": product["id"], "quantity": 5})
    assert stocked.status_code == 200
    assert stocked.json()["inventory"]["current_stock"] == 5

    oversold = client.post(
        "/api/v1/sales/invoices",
        json={
            "items": [{"product_id": product["id"], "quantity": 6, "unit_price": "10.00"}],
            "payment_method": "CASH",
        },
    )
    assert oversold.status_code == 400
    assert oversold.json()["code"] == "INSUFFICIENT_STOCK"

    sale = client.post(
        "/api/v1/sales/invoices",
        json={
            "customer_name": "Walk-in",
            "items": [{"product_id": product["id"], "quantity": 2, "unit_price": "10.00", "tax": "1.00"}],
            "payment_method": "CASH",
            "paid_amount": "5",
        },
    )
    assert sale.status_code == 201
    invoice = sale.json()
    assert invoice["invoice_number"].startswith("INV-")
    assert invoice["payment_status"] == "PARTIAL"
    assert invoice["grand_total"] == "21.00"

    levels = client.get("/api/v1/inventory").json()["data"]
    assert levels[0]["current_stock"] == 3
    assert levels[0]["is_low_stock"] is True

    refunded = client.post(f"/api/v1/sales/invoices/{invoice['id']}/refund")
    assert refunded.status_code == 200
    assert refunded.json()["status"] == "REFUNDED"

    movements = client.get("/api/v1/inventory/movements").json()
    assert movements["pagination"]["total"] == 3

    registered = db_session.query(ActivityLog).filter(ActivityLog.action == "COMPANY_REGISTERED").one()
    assert registered.details["admin_password"] == "[REDACTED]"


def test_suspended_company_locks_out_its_users(client, db_session, company_a, admin_a, super_admin) -> None:
    login(client, super_admin.email)
    assert client.patch(f"/api/v1/companies/{company_a.id}/suspend").status_code == 200
    client.cookies.clear()

    response = login(client, admin_a.email)

    assert response.status_code == 403
    assert response.json()["code"] == "ACCOUNT_INACTIVE"
