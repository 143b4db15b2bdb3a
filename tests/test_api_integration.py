"""
Integration tests for the Loan Servicing API
Tests end-to-end workflows using FastAPI TestClient
"""

import pytest
from fastapi.testclient import TestClient

import loan_servicing.api.deps as deps
from loan_servicing.api import create_app
from loan_servicing.api.deps import ServicingSystem
from loan_servicing.config import ServicingConfig
from loan_servicing.storage import InMemoryStorage


@pytest.fixture
def system():
    return ServicingSystem(storage=InMemoryStorage(), config=ServicingConfig(storage_backend="memory"))


@pytest.fixture
def client(system):
    """Create a test client with an in-memory servicing system"""
    original_system = deps.servicing_system
    deps.servicing_system = system

    yield TestClient(create_app())

    deps.servicing_system = original_system


CLIENT_PAYLOAD = {
    "name": "Lena Borrower",
    "email": "lena@example.com",
    "phone": "+15550155",
    "assigned_staff": "staff-1",
    "loan_amount": 10000,
    "loan_start_date": "2024-01-01",
    "frequency": "Weekly",
    "interest_rate": 5,
    "interest_type": "Installment",
    "tenure": 16
}


def _create_client(client, **overrides):
    payload = dict(CLIENT_PAYLOAD)
    payload.update(overrides)
    r = client.post("/clients", json=payload)
    assert r.status_code == 201
    return r.json()


class TestHealthEndpoints:
    """Test basic health and root endpoints"""

    def test_health(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        assert r.json()["status"] == "healthy"

    def test_root(self, client):
        r = client.get("/")
        assert r.status_code == 200
        data = r.json()
        assert data["name"] == "Loan Servicing API"
        assert "payments" in data["endpoints"]


class TestClientFlow:
    """Client creation, listing, update and deletion"""

    def test_create_client(self, client):
        data = _create_client(client)

        assert data["message"] == "Client created with loan and payment schedule"
        assert data["loan"]["total_payable"] == "18000.00"
        assert data["loan"]["installment_amount"] == "1125.00"
        assert len(data["installments"]) == 16
        assert data["installments"][0]["due_date"] == "2024-01-08"

    def test_create_client_invalid_frequency(self, client):
        r = client.post("/clients", json={**CLIENT_PAYLOAD, "frequency": "Daily"})
        assert r.status_code == 400
        assert "Invalid frequency" in r.json()["detail"]

    def test_create_client_configured_defaults(self, client):
        payload = dict(CLIENT_PAYLOAD)
        del payload["frequency"], payload["interest_type"], payload["tenure"]

        data = client.post("/clients", json=payload).json()

        assert data["loan"]["frequency"] == "Weekly"
        assert data["loan"]["interest_type"] == "Installment"
        assert data["loan"]["tenure"] == 16

    def test_create_client_missing_field(self, client):
        payload = dict(CLIENT_PAYLOAD)
        del payload["loan_amount"]
        r = client.post("/clients", json=payload)
        assert r.status_code == 400
        assert r.json()["detail"] == "Invalid request"

    def test_get_client(self, client):
        created = _create_client(client)
        client_id = created["client"]["id"]

        r = client.get(f"/clients/{client_id}")

        assert r.status_code == 200
        data = r.json()
        assert data["client"]["email"] == "lena@example.com"
        assert data["next_due"] == "2024-01-08"
        assert data["fully_paid"] is False

    def test_get_missing_client(self, client):
        r = client.get("/clients/nope")
        assert r.status_code == 404
        assert r.json() == {"detail": "Client not found"}

    def test_list_clients(self, client):
        _create_client(client, email="a@example.com")
        _create_client(client, email="b@example.com", assigned_staff="staff-2")

        assert client.get("/clients").json()["count"] == 2
        filtered = client.get("/clients", params={"assigned_staff": "staff-2"}).json()
        assert [c["email"] for c in filtered["clients"]] == ["b@example.com"]

    def test_update_client_and_terms(self, client):
        created = _create_client(client)
        client_id = created["client"]["id"]

        r = client.put(f"/clients/{client_id}", json={"phone": "+15550999", "interest_rate": 10})

        assert r.status_code == 200
        data = r.json()
        assert data["client"]["phone"] == "+15550999"
        assert data["loan"]["total_payable"] == "26000.00"
        assert all(i["amount"] == "1625.00" for i in data["installments"])

    def test_rejected_terms_leave_client_unchanged(self, client):
        created = _create_client(client)
        client_id = created["client"]["id"]

        r = client.put(f"/clients/{client_id}", json={"name": "Changed Name", "frequency": "Daily"})

        assert r.status_code == 400
        data = client.get(f"/clients/{client_id}").json()
        assert data["client"]["name"] == "Lena Borrower"
        assert data["loan"]["frequency"] == "Weekly"

    def test_delete_client(self, client):
        created = _create_client(client)
        client_id = created["client"]["id"]

        assert client.delete(f"/clients/{client_id}").status_code == 200
        assert client.get(f"/clients/{client_id}").status_code == 404


class TestLoanEndpoints:
    """Loan details and term edits"""

    def test_get_loan_and_installments(self, client):
        loan_id = _create_client(client)["loan"]["id"]

        assert client.get(f"/loans/{loan_id}").json()["tenure"] == 16
        r = client.get(f"/loans/{loan_id}/installments")
        assert r.json()["count"] == 16

    def test_edit_terms(self, client):
        created = _create_client(client)
        loan_id = created["loan"]["id"]
        client.post("/payments/manual", json={"client_id": created["client"]["id"], "amount": 2250})

        r = client.put(f"/loans/{loan_id}/terms", json={"interest_rate": 10})

        assert r.status_code == 200
        data = r.json()
        assert data["loan"]["remaining_amount"] == "23750.00"
        pending = [i for i in data["installments"] if i["status"] == "Pending"]
        assert [i["installment_no"] for i in pending] == list(range(3, 17))

    def test_missing_loan(self, client):
        assert client.get("/loans/nope").status_code == 404
        assert client.put("/loans/nope/terms", json={"tenure": 4}).status_code == 404


class TestPaymentFlow:
    """Manual and card payments"""

    def test_partial_then_overpayment(self, client):
        created = _create_client(client, loan_amount=1000, interest_rate=0, tenure=1)
        client_id = created["client"]["id"]

        r = client.post("/payments/manual", json={"client_id": client_id, "amount": 400})
        assert r.status_code == 200
        data = r.json()
        assert data["remainder"]["amount"] == "600.00"
        assert data["loan"]["remaining_amount"] == "600.00"

        r = client.post("/payments/manual", json={
            "client_id": client_id, "amount": 700, "payment_mode": "Bank Transfer"
        })
        data = r.json()
        assert data["overpayment"]["amount"] == "100.00"
        assert data["overpayment"]["kind"] == "overpayment"
        assert data["loan"]["status"] == "Completed"

        r = client.post("/payments/manual", json={"client_id": client_id, "amount": 10})
        assert r.status_code == 409

    def test_invalid_amount(self, client):
        client_id = _create_client(client)["client"]["id"]
        r = client.post("/payments/manual", json={"client_id": client_id, "amount": -5})
        assert r.status_code == 400

    def test_manual_rejects_card_mode(self, client):
        client_id = _create_client(client)["client"]["id"]
        r = client.post("/payments/manual", json={
            "client_id": client_id, "amount": 100, "payment_mode": "Stripe"
        })
        assert r.status_code == 400

    def test_amount_out_of_range(self, client):
        client_id = _create_client(client)["client"]["id"]
        r = client.post("/payments/manual", json={"client_id": client_id, "amount": "1e30"})
        assert r.status_code == 400
        assert "out of range" in r.json()["detail"]

    def test_stripe_webhook_requires_transaction_id(self, client):
        client_id = _create_client(client)["client"]["id"]
        event = {"client_id": client_id, "amount": 1125, "transaction_id": ""}

        r = client.post("/payments/stripe/webhook", json=event)

        assert r.status_code == 400
        history = client.get(f"/payments/client/{client_id}").json()["payments"]
        assert all(p["status"] == "Pending" for p in history)

    def test_unknown_client_payment(self, client):
        r = client.post("/payments/manual", json={"client_id": "nope", "amount": 100})
        assert r.status_code == 404

    def test_stripe_webhook(self, client):
        client_id = _create_client(client)["client"]["id"]
        event = {"client_id": client_id, "amount": 1125, "transaction_id": "pi_001"}

        r = client.post("/payments/stripe/webhook", json=event)
        assert r.status_code == 200
        data = r.json()
        assert data["received"] is True
        assert data["processed_payments"][0]["payment_mode"] == "Stripe"
        assert data["processed_payments"][0]["transaction_id"] == "pi_001"

        duplicate = client.post("/payments/stripe/webhook", json=event).json()
        assert duplicate == {"received": True, "duplicate": True}

    def test_payment_history(self, client):
        client_id = _create_client(client)["client"]["id"]
        client.post("/payments/manual", json={"client_id": client_id, "amount": 1125})

        data = client.get(f"/payments/client/{client_id}").json()

        assert data["count"] == 16
        assert data["payments"][0]["status"] == "Paid"
        assert client.get("/payments/client/nope").status_code == 404


class TestRemindersAndDashboard:
    """Reminder triggers, notification logs and dashboard totals"""

    def test_run_reminders(self, client):
        _create_client(client)

        r = client.post("/reminders/run", json={"run_date": "2024-01-20"})

        assert r.status_code == 200
        data = r.json()
        assert data["bulk"] is True
        assert data["marked_overdue"] == 2
        assert data["sent"] == 3

        logs = client.get("/reminders/logs").json()
        assert logs["count"] == 3

    def test_manual_reminder(self, client):
        client_id = _create_client(client)["client"]["id"]

        r = client.post("/reminders/manual", json={
            "client_id": client_id, "channel": "WhatsApp", "message": "Sent a chat reminder"
        })

        assert r.status_code == 200
        assert r.json()["log"]["category"] == "Manual"

    def test_manual_reminder_validation(self, client):
        client_id = _create_client(client)["client"]["id"]
        r = client.post("/reminders/manual", json={"client_id": client_id, "channel": "SMS", "message": "x"})
        assert r.status_code == 400
        r = client.post("/reminders/manual", json={"client_id": "nope", "message": "x"})
        assert r.status_code == 404

    def test_dashboard_summary(self, client):
        created = _create_client(client)
        client.post("/payments/manual", json={"client_id": created["client"]["id"], "amount": 1125})

        data = client.get("/dashboard/summary").json()

        assert data["total_clients"] == 1
        assert data["total_collected"] == "1125.00"
        assert data["total_pending"] == "16875.00"
