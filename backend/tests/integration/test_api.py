"""
Integration tests for API endpoints.
"""

import pytest
from typing import Generator
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from core.database import get_db
from main import app


@pytest.fixture
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """TestClient whose requests run on the test's rollback session."""
    def override_get_db() -> Generator[Session, None, None]:
        try:
            yield db_session
        finally:
            # Don't close the session as it's managed by the test fixture
            pass

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.pop(get_db, None)


def create_billable_appointment(client: TestClient, lines=(("CONS", "1000.00", 1),)) -> int:
    """Register patient, doctor, catalog services and an appointment with lines via the API."""
    patient = client.post("/api/patients", json={"full_name": "Amina Yusuf"}).json()
    doctor = client.post("/api/doctors", json={"full_name": "Dr. Daniel Mensah"}).json()
    appointment = client.post("/api/appointments", json={
        "patient_id": patient["id"],
        "doctor_id": doctor["id"],
        "scheduled_start": "2025-09-22T09:00:00+03:00",
        "scheduled_end": "2025-09-22T09:30:00+03:00",
    }).json()
    for code, price, quantity in lines:
        service = client.post("/api/services", json={
            "code": code, "name": code.title(), "price": price, "duration_minutes": 30
        }).json()
        response = client.post(
            f"/api/appointments/{appointment['id']}/services",
            json={"service_id": service["id"], "quantity": quantity}
        )
        assert response.status_code == 201
    return appointment["id"]


class TestAPIIntegration:
    """Integration tests for the basic endpoints."""

    def test_root_endpoint(self):
        """Test the root API endpoint."""
        client = TestClient(app)
        response = client.get("/")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "running"
        assert "version" in data

    def test_health_endpoint(self):
        """Test the health check endpoint."""
        client = TestClient(app)
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}


class TestCatalogAndLinesAPI:
    """Test catalog and ledger line endpoints."""

    def test_lines_listing_with_total(self, client: TestClient):
        appointment_id = create_billable_appointment(client, (("CONS", "1000.00", 1), ("LAB", "225.50", 2)))

        response = client.get(f"/api/appointments/{appointment_id}/services")

        assert response.status_code == 200
        data = response.json()
        assert len(data["lines"]) == 2
        assert data["lines"][1]["line_total"] == "451.00"
        assert data["total"] == "1451.00"

    def test_price_update_does_not_touch_lines(self, client: TestClient):
        appointment_id = create_billable_appointment(client)
        service_id = client.get("/api/services").json()["services"][0]["id"]

        response = client.put(f"/api/services/{service_id}/price", json={"price": "1500.00"})
        assert response.status_code == 200
        assert response.json()["price"] == "1500.00"

        lines = client.get(f"/api/appointments/{appointment_id}/services").json()["lines"]
        assert lines[0]["price_at_time"] == "1000.00"

    def test_deactivated_service_cannot_be_attached(self, client: TestClient):
        appointment_id = create_billable_appointment(client, ())
        service = client.post("/api/services", json={
            "code": "OLD", "name": "Old", "price": "10.00", "duration_minutes": 10
        }).json()
        client.post(f"/api/services/{service['id']}/deactivate")

        response = client.post(f"/api/appointments/{appointment_id}/services", json={"service_id": service["id"]})

        assert response.status_code == 422
        assert response.json()["error_code"] == "SERVICE_INACTIVE"

    @pytest.mark.parametrize("quantity", [0, 32768, 10**12])
    def test_out_of_range_quantity_is_422(self, client: TestClient, quantity):
        appointment_id = create_billable_appointment(client, ())
        service = client.post("/api/services", json={
            "code": "GAUZE", "name": "Gauze", "price": "1.00", "duration_minutes": 5
        }).json()

        response = client.post(
            f"/api/appointments/{appointment_id}/services",
            json={"service_id": service["id"], "quantity": quantity}
        )

        assert response.status_code == 422
        assert client.get(f"/api/appointments/{appointment_id}/services").json()["lines"] == []

    def test_remove_line(self, client: TestClient):
        appointment_id = create_billable_appointment(client)
        service_id = client.get(f"/api/appointments/{appointment_id}/services").json()["lines"][0]["service_id"]

        response = client.delete(f"/api/appointments/{appointment_id}/services/{service_id}")

        assert response.status_code == 204
        assert client.get(f"/api/appointments/{appointment_id}/services").json()["lines"] == []

    def test_unknown_appointment_is_404(self, client: TestClient):
        response = client.get("/api/appointments/999999")

        assert response.status_code == 404
        body = response.json()
        assert body["error"] == "NotFoundError"
        assert body["error_code"] == "NOT_FOUND"
        assert body["details"] == {"appointment_id": 999999}


class TestBillingAPI:
    """Test invoice and payment endpoints."""

    def _invoice(self, client: TestClient, total: str = "2000.00") -> dict:
        appointment_id = create_billable_appointment(client, (("CONS", total, 1),))
        response = client.post(f"/api/billing/appointments/{appointment_id}/invoice")
        assert response.status_code == 201
        return response.json()

    def test_create_invoice(self, client: TestClient):
        invoice = self._invoice(client, "2000.00")

        assert invoice["total_amount"] == "2000.00"
        assert invoice["amount_due"] == "2000.00"
        assert invoice["status"] == "pending"

    def test_duplicate_invoice_is_422(self, client: TestClient):
        invoice = self._invoice(client)

        response = client.post(f"/api/billing/appointments/{invoice['appointment_id']}/invoice")

        assert response.status_code == 422
        assert response.json()["error_code"] == "INVOICE_ALREADY_EXISTS"

    def test_total_above_money_ceiling_is_422(self, client: TestClient):
        appointment_id = create_billable_appointment(
            client, (("SURG", "99999999.99", 1), ("ICU", "99999999.99", 1))
        )

        response = client.post(f"/api/billing/appointments/{appointment_id}/invoice")

        assert response.status_code == 422
        assert response.json()["error_code"] == "INVOICE_TOTAL_TOO_LARGE"

    def test_payment_lifecycle(self, client: TestClient):
        invoice = self._invoice(client, "2000.00")
        url = f"/api/billing/invoices/{invoice['id']}/payments"

        first = client.post(url, json={"amount": "1000.00", "payment_method": "cash"})
        assert first.status_code == 201
        assert first.json()["invoice"]["status"] == "partial"
        assert first.json()["invoice"]["amount_due"] == "1000.00"

        second = client.post(url, json={
            "amount": "1000.00", "payment_method": "mobile_money", "reference": "MTK-TRX-1001"
        })
        assert second.json()["invoice"]["status"] == "paid"
        second_payment_id = second.json()["payment"]["id"]

        reversed_response = client.delete(f"/api/billing/payments/{second_payment_id}")
        assert reversed_response.status_code == 200
        assert reversed_response.json()["status"] == "partial"
        assert reversed_response.json()["amount_due"] == "1000.00"

        payments = client.get(url).json()["payments"]
        assert [p["paid_amount"] for p in payments] == ["1000.00"]

    def test_invoice_detail_includes_lines_and_payments(self, client: TestClient):
        invoice = self._invoice(client, "800.00")
        client.post(f"/api/billing/invoices/{invoice['id']}/payments", json={"amount": 300, "payment_method": "card"})

        detail = client.get(f"/api/billing/invoices/{invoice['id']}").json()

        assert detail["amount_due"] == "500.00"
        assert len(detail["lines"]) == 1
        assert [p["paid_amount"] for p in detail["payments"]] == ["300.00"]

    @pytest.mark.parametrize("amount", ["0", "-50.00"])
    def test_non_positive_payment_is_422(self, client: TestClient, amount):
        invoice = self._invoice(client)

        response = client.post(
            f"/api/billing/invoices/{invoice['id']}/payments",
            json={"amount": amount, "payment_method": "cash"}
        )

        assert response.status_code == 422
        assert response.json()["error_code"] == "NON_POSITIVE_PAYMENT"

    def test_invalid_method_is_422(self, client: TestClient):
        invoice = self._invoice(client)

        response = client.post(
            f"/api/billing/invoices/{invoice['id']}/payments",
            json={"amount": "10.00", "payment_method": "cheque"}
        )

        assert response.status_code == 422
        assert response.json()["error_code"] == "INVALID_PAYMENT_METHOD"

    def test_payment_on_missing_invoice_is_404(self, client: TestClient):
        response = client.post("/api/billing/invoices/999999/payments", json={"amount": "10.00", "payment_method": "cash"})
        assert response.status_code == 404

    def test_cancelled_invoice_rejects_payment(self, client: TestClient):
        invoice = self._invoice(client)

        cancel = client.post(f"/api/billing/invoices/{invoice['id']}/cancel", json={"reason": "Booked in error"})
        assert cancel.status_code == 200
        assert cancel.json()["status"] == "cancelled"

        response = client.post(
            f"/api/billing/invoices/{invoice['id']}/payments",
            json={"amount": "10.00", "payment_method": "cash"}
        )
        assert response.status_code == 422
        assert response.json()["error_code"] == "INVOICE_CANCELLED"

    def test_reverse_unknown_payment_is_404(self, client: TestClient):
        response = client.delete("/api/billing/payments/999999")
        assert response.status_code == 404

    def test_list_invoices_with_filters(self, client: TestClient):
        invoice = self._invoice(client, "100.00")
        client.post(f"/api/billing/invoices/{invoice['id']}/payments", json={"amount": "100.00", "payment_method": "cash"})

        paid = client.get("/api/billing/invoices", params={"status": "paid", "patient_id": invoice["patient_id"]})
        assert [i["id"] for i in paid.json()["invoices"]] == [invoice["id"]]

        bad = client.get("/api/billing/invoices", params={"status": "bogus"})
        assert bad.status_code == 422

    def test_audit_endpoint(self, client: TestClient):
        self._invoice(client)

        response = client.get("/api/billing/audit")

        assert response.status_code == 200
        assert response.json() == {"consistent": True, "drifted": []}
