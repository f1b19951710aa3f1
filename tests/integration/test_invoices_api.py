"""
Integration tests for invoice, client and dashboard endpoints.
"""
from datetime import date
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from invoicedesk.api.deps import get_today
from invoicedesk.main import app

TODAY = date(2026, 10, 19)


@pytest.fixture
def fixed_today(client: TestClient):
    app.dependency_overrides[get_today] = lambda: TODAY
    return TODAY


@pytest.fixture
def billing_client(client: TestClient) -> dict:
    return client.post("/api/v1/clients", json={"name": "Johnson & Partners", "email": "ap@johnson.example"}).json()


def _create(client: TestClient, billing_client: dict, **overrides) -> dict:
    body = {
        "client_id": billing_client["id"],
        "matter": "Estate planning",
        "issue_date": "2026-10-01",
        "due_date": "2026-10-31",
        "line_items": [
            {"description": "Consultation", "quantity": "2", "rate": "250.00"},
            {"description": "Filing fee", "rate": "75.50"},
        ],
    }
    body.update(overrides)
    response = client.post("/api/v1/invoices", json=body)
    assert response.status_code == 201, response.text
    return response.json()


class TestClients:

    def test_create_and_search(self, client: TestClient, billing_client):
        client.post("/api/v1/clients", json={"name": "Acme Holdings"})

        response = client.get("/api/v1/clients", params={"search": "JOHN"})

        assert response.status_code == 200
        assert [c["name"] for c in response.json()] == ["Johnson & Partners"]

    def test_blank_name_rejected(self, client: TestClient):
        response = client.post("/api/v1/clients", json={"name": ""})

        assert response.status_code == 400


class TestInvoiceCrud:

    def test_create(self, client: TestClient, billing_client):
        data = _create(client, billing_client, invoice_number="INV-100")

        assert data["status"] == "draft"
        assert Decimal(data["total"]) == Decimal("575.50")
        assert [item["position"] for item in data["line_items"]] == [0, 1]
        assert data["client"]["name"] == "Johnson & Partners"

    def test_create_rejects_bad_dates(self, client: TestClient, billing_client):
        response = client.post(
            "/api/v1/invoices",
            json={"client_id": billing_client["id"], "issue_date": "2026-10-01", "due_date": "2026-09-01"},
        )

        assert response.status_code == 400
        assert response.json()["details"]["errors"][0]["field"] == "due_date"

    def test_duplicate_number_conflicts(self, client: TestClient, billing_client):
        _create(client, billing_client, invoice_number="INV-100")

        response = client.post(
            "/api/v1/invoices",
            json={"client_id": billing_client["id"], "invoice_number": "INV-100"},
        )

        assert response.status_code == 409

    def test_update_only_sent_fields(self, client: TestClient, billing_client):
        created = _create(client, billing_client)

        response = client.put(f"/api/v1/invoices/{created['id']}", json={"matter": "Probate"})

        assert response.status_code == 200
        data = response.json()
        assert data["matter"] == "Probate"
        assert Decimal(data["total"]) == Decimal("575.50")

    def test_delete_draft(self, client: TestClient, billing_client):
        created = _create(client, billing_client)

        assert client.delete(f"/api/v1/invoices/{created['id']}").status_code == 204
        response = client.get(f"/api/v1/invoices/{created['id']}")
        assert response.status_code == 404
        assert response.json()["error_code"] == "IDK-202"


class TestTransitions:

    def test_send_pay_reverse(self, client: TestClient, billing_client, fixed_today):
        created = _create(client, billing_client)

        sent = client.post(f"/api/v1/invoices/{created['id']}/send").json()
        assert sent["status"] == "sent"
        assert sent["sent_at"] is not None

        paid = client.post(f"/api/v1/invoices/{created['id']}/payment").json()
        assert paid["status"] == "paid"
        assert paid["payment_date"] == TODAY.isoformat()

        reversed_ = client.delete(f"/api/v1/invoices/{created['id']}/payment").json()
        assert reversed_["status"] == "sent"
        assert reversed_["payment_date"] is None

    def test_sent_invoice_is_read_only(self, client: TestClient, billing_client):
        created = _create(client, billing_client)
        client.post(f"/api/v1/invoices/{created['id']}/send")

        assert client.put(f"/api/v1/invoices/{created['id']}", json={"matter": "Other"}).status_code == 409
        assert client.delete(f"/api/v1/invoices/{created['id']}").status_code == 409

    def test_pay_draft_conflicts(self, client: TestClient, billing_client):
        created = _create(client, billing_client)

        response = client.post(f"/api/v1/invoices/{created['id']}/payment", json={"payment_date": "2026-10-05"})

        assert response.status_code == 409
        assert response.json()["kind"] == "conflict"


class TestOverdue:

    def test_overdue_is_derived(self, client: TestClient, billing_client, fixed_today):
        late = _create(client, billing_client, invoice_number="INV-LATE", due_date="2026-10-10")
        _create(client, billing_client, invoice_number="INV-OPEN", due_date="2026-11-10")
        for invoice in client.get("/api/v1/invoices").json()["items"]:
            client.post(f"/api/v1/invoices/{invoice['id']}/send")

        overdue = client.get("/api/v1/invoices", params={"status": "overdue"}).json()
        assert [i["invoice_number"] for i in overdue["items"]] == ["INV-LATE"]
        assert overdue["items"][0]["status"] == "overdue"

        paid = client.post(f"/api/v1/invoices/{late['id']}/payment", json={"payment_date": "2026-10-18"}).json()
        assert paid["status"] == "paid"
        assert client.get("/api/v1/invoices", params={"status": "overdue"}).json()["total"] == 0

    def test_invalid_status_filter(self, client: TestClient):
        response = client.get("/api/v1/invoices", params={"status": "archived"})

        assert response.status_code == 400
        assert response.json()["error_code"] == "IDK-100"


class TestDashboard:

    def test_summary(self, client: TestClient, billing_client, fixed_today):
        late = _create(client, billing_client, invoice_number="INV-LATE", due_date="2026-10-10")
        _create(client, billing_client, invoice_number="INV-DRAFT")
        client.post(f"/api/v1/invoices/{late['id']}/send")

        response = client.get("/api/v1/dashboard")

        assert response.status_code == 200
        data = response.json()
        assert data["as_of"] == TODAY.isoformat()
        assert data["invoices"]["overdue"]["count"] == 1
        assert Decimal(data["invoices"]["overdue"]["total"]) == Decimal("575.50")
        assert data["invoices"]["draft"]["count"] == 1
        assert data["documents"]["awaiting_review"] == 0
        assert len(data["recent_invoices"]) == 2
