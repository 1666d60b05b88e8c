"""
Integration tests for issuing invoices from appointment service lines.
"""

import pytest
from decimal import Decimal
from sqlalchemy.orm import Session

from core.constants import MAX_MONEY_AMOUNT
from core.exceptions import NotFoundError, ValidationError
from models import Invoice, InvoiceStatus
from services import AppointmentService, CatalogService, InvoiceService

from tests.conftest import (
    create_appointment, create_invoiced_appointment, create_patient, create_service
)


class TestCreateInvoice:
    """Test invoice materialization."""

    def test_total_is_sum_of_line_totals(self, db_session: Session):
        appointment = create_appointment(db_session)
        consultation = create_service(db_session, "CONS", "1000.00")
        blood_test = create_service(db_session, "BLOOD", "450.50")
        AppointmentService.add_service_line(db_session, appointment.id, consultation.id)
        AppointmentService.add_service_line(db_session, appointment.id, blood_test.id, quantity=2)

        invoice = InvoiceService.create_invoice(db_session, appointment.id)

        assert invoice.total_amount == Decimal("1901.00")
        assert invoice.amount_due == Decimal("1901.00")
        assert invoice.status == InvoiceStatus.PENDING.value
        assert invoice.issued_at is not None

    def test_patient_is_copied_from_appointment(self, db_session: Session):
        patient = create_patient(db_session, "Grace Otieno")
        appointment, invoice = create_invoiced_appointment(db_session, patient=patient)

        assert invoice.patient_id == patient.id == appointment.patient_id

    def test_zero_line_appointment_is_paid_immediately(self, db_session: Session):
        appointment = create_appointment(db_session)

        invoice = InvoiceService.create_invoice(db_session, appointment.id)

        assert invoice.total_amount == Decimal("0.00")
        assert invoice.amount_due == Decimal("0.00")
        assert invoice.status == InvoiceStatus.PAID.value
        assert invoice.payments == []

    def test_zero_priced_lines_are_paid_immediately(self, db_session: Session):
        appointment = create_appointment(db_session)
        free_checkup = create_service(db_session, "FREE", "0.00")
        AppointmentService.add_service_line(db_session, appointment.id, free_checkup.id, quantity=3)

        invoice = InvoiceService.create_invoice(db_session, appointment.id)

        assert invoice.status == InvoiceStatus.PAID.value

    def test_second_invoice_for_same_appointment_rejected(self, db_session: Session):
        appointment, invoice = create_invoiced_appointment(db_session)

        with pytest.raises(ValidationError) as exc_info:
            InvoiceService.create_invoice(db_session, appointment.id)

        assert exc_info.value.error_code == "INVOICE_ALREADY_EXISTS"
        assert exc_info.value.details["invoice_id"] == invoice.id
        assert db_session.query(Invoice).filter(Invoice.appointment_id == appointment.id).count() == 1

    def test_unknown_appointment(self, db_session: Session):
        with pytest.raises(NotFoundError):
            InvoiceService.create_invoice(db_session, 999999)

    def test_lines_added_after_invoicing_do_not_change_total(self, db_session: Session):
        appointment, invoice = create_invoiced_appointment(db_session, [("CONS", "1000.00", 1)])
        xray = create_service(db_session, "XRAY", "800.00")

        AppointmentService.add_service_line(db_session, appointment.id, xray.id)
        db_session.refresh(invoice)

        assert invoice.total_amount == Decimal("1000.00")
        assert AppointmentService.compute_lines_total(db_session, appointment.id) == Decimal("1800.00")

    def test_total_uses_price_snapshot_not_live_catalog(self, db_session: Session):
        appointment = create_appointment(db_session)
        service = create_service(db_session, "VACC", "300.00")
        AppointmentService.add_service_line(db_session, appointment.id, service.id)

        CatalogService.update_price(db_session, service.id, "999.00")
        invoice = InvoiceService.create_invoice(db_session, appointment.id)

        assert invoice.total_amount == Decimal("300.00")

    def test_total_above_money_ceiling_rejected(self, db_session: Session):
        appointment = create_appointment(db_session)
        first = create_service(db_session, "SURG", "99999999.99")
        second = create_service(db_session, "ICU", "99999999.99")
        AppointmentService.add_service_line(db_session, appointment.id, first.id)
        AppointmentService.add_service_line(db_session, appointment.id, second.id)

        with pytest.raises(ValidationError) as exc_info:
            InvoiceService.create_invoice(db_session, appointment.id)

        assert exc_info.value.error_code == "INVOICE_TOTAL_TOO_LARGE"
        assert exc_info.value.details["total_amount"] == "199999999.98"
        assert db_session.query(Invoice).filter(Invoice.appointment_id == appointment.id).count() == 0

    def test_total_at_money_ceiling_accepted(self, db_session: Session):
        appointment = create_appointment(db_session)
        service = create_service(db_session, "SURG", "99999999.99")
        AppointmentService.add_service_line(db_session, appointment.id, service.id)

        invoice = InvoiceService.create_invoice(db_session, appointment.id)

        assert invoice.total_amount == MAX_MONEY_AMOUNT


class TestInvoiceQueries:
    """Test invoice lookups and listing."""

    def test_get_invoice_for_appointment(self, db_session: Session):
        appointment, invoice = create_invoiced_appointment(db_session)
        assert InvoiceService.get_invoice_for_appointment(db_session, appointment.id).id == invoice.id

    def test_get_invoice_for_uninvoiced_appointment(self, db_session: Session):
        appointment = create_appointment(db_session)
        with pytest.raises(NotFoundError):
            InvoiceService.get_invoice_for_appointment(db_session, appointment.id)

    def test_get_missing_invoice(self, db_session: Session):
        with pytest.raises(NotFoundError):
            InvoiceService.get_invoice(db_session, 999999)

    def test_list_filters_by_patient_and_status(self, db_session: Session):
        patient = create_patient(db_session, "Joseph Kamau")
        _, pending = create_invoiced_appointment(db_session, [("CONS", "1000.00", 1)], patient=patient)
        _, paid = create_invoiced_appointment(db_session, [], patient=patient)
        create_invoiced_appointment(db_session, [("CONS", "1000.00", 1)])

        mine = InvoiceService.list_invoices(db_session, patient_id=patient.id)
        assert {i.id for i in mine} == {pending.id, paid.id}

        mine_paid = InvoiceService.list_invoices(db_session, patient_id=patient.id, status="paid")
        assert [i.id for i in mine_paid] == [paid.id]

    def test_list_newest_first(self, db_session: Session):
        _, first = create_invoiced_appointment(db_session, [])
        _, second = create_invoiced_appointment(db_session, [])

        ids = [i.id for i in InvoiceService.list_invoices(db_session)]
        assert ids.index(second.id) < ids.index(first.id)

    def test_list_rejects_unknown_status(self, db_session: Session):
        with pytest.raises(ValidationError):
            InvoiceService.list_invoices(db_session, status="settled")


class TestCancelInvoice:
    """Test the administrative cancellation transition."""

    def test_cancel_keeps_amount_due(self, db_session: Session):
        _, invoice = create_invoiced_appointment(db_session, [("CONS", "1000.00", 1)])

        cancelled = InvoiceService.cancel_invoice(db_session, invoice.id, reason="Duplicate booking")

        assert cancelled.status == InvoiceStatus.CANCELLED.value
        assert cancelled.is_cancelled
        assert cancelled.amount_due == Decimal("1000.00")
        assert "Duplicate booking" in cancelled.notes

    def test_cancel_is_idempotent(self, db_session: Session):
        _, invoice = create_invoiced_appointment(db_session)
        assert not invoice.is_cancelled
        InvoiceService.cancel_invoice(db_session, invoice.id, reason="first")

        again = InvoiceService.cancel_invoice(db_session, invoice.id, reason="second")

        assert again.status == InvoiceStatus.CANCELLED.value
        assert "second" not in (again.notes or "")

    def test_cancel_missing_invoice(self, db_session: Session):
        with pytest.raises(NotFoundError):
            InvoiceService.cancel_invoice(db_session, 999999)
