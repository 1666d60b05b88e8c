"""
Concurrency tests for the billing transactions.

These use real, committed transactions on separate connections: the
per-test rollback session cannot show lost updates.
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal

import pytest
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool

from core.database import commit_billing_transaction, create_db_engine
from core.exceptions import ConflictError, ValidationError
from models import Invoice, InvoiceStatus, Payment
from services import InvoiceService, PaymentService, ReconciliationService
import services.reconciliation_service as reconciliation_module

from tests.conftest import TEST_DATABASE_URL, create_appointment, create_invoiced_appointment


def run_concurrently(*calls):
    """Start all calls at the same moment; return (results, errors) in call order."""
    barrier = threading.Barrier(len(calls))

    def wrapped(call):
        barrier.wait()
        try:
            return call(), None
        except Exception as e:
            return None, e

    with ThreadPoolExecutor(max_workers=len(calls)) as executor:
        outcomes = list(executor.map(wrapped, calls))
    return [o[0] for o in outcomes], [o[1] for o in outcomes]


class TestConcurrentPayments:
    """Two callers paying the same invoice at once."""

    def _issue_invoice(self, session_factory, total: str) -> int:
        with session_factory() as db:
            _, invoice = create_invoiced_appointment(db, [("CONS", total, 1)])
            db.commit()
            return invoice.id

    def _pay(self, session_factory, invoice_id: int, amount: str):
        def call():
            with session_factory() as db:
                invoice, payment = PaymentService.apply_payment(db, invoice_id, amount, "cash")
                commit_billing_transaction(db)
                return payment.id
        return call

    def test_two_concurrent_halves_settle_invoice(self, session_factory):
        """500 + 500 against 1000 must end exactly paid: no lost update."""
        invoice_id = self._issue_invoice(session_factory, "1000.00")

        results, errors = run_concurrently(
            self._pay(session_factory, invoice_id, "500.00"),
            self._pay(session_factory, invoice_id, "500.00"),
        )

        assert errors == [None, None]
        assert len(set(results)) == 2
        with session_factory() as db:
            invoice = db.query(Invoice).filter(Invoice.id == invoice_id).one()
            assert invoice.amount_due == Decimal("0.00")
            assert invoice.status == InvoiceStatus.PAID.value
            assert db.query(Payment).filter(Payment.invoice_id == invoice_id).count() == 2
            assert ReconciliationService.find_inconsistent_invoices(db) == []

    def test_concurrent_apply_and_reverse_stay_consistent(self, session_factory):
        invoice_id = self._issue_invoice(session_factory, "2000.00")
        with session_factory() as db:
            _, existing = PaymentService.apply_payment(db, invoice_id, "1000.00", "card")
            commit_billing_transaction(db)
            existing_id = existing.id

        def reverse():
            with session_factory() as db:
                PaymentService.reverse_payment(db, existing_id)
                commit_billing_transaction(db)

        _, errors = run_concurrently(self._pay(session_factory, invoice_id, "300.00"), reverse)

        assert errors == [None, None]
        with session_factory() as db:
            invoice = db.query(Invoice).filter(Invoice.id == invoice_id).one()
            assert invoice.amount_due == Decimal("1700.00")
            assert invoice.status == InvoiceStatus.PARTIAL.value

    def test_concurrent_reversals_of_same_payment(self, session_factory):
        """Exactly one reversal wins; the other sees the payment gone."""
        invoice_id = self._issue_invoice(session_factory, "1000.00")
        with session_factory() as db:
            _, payment = PaymentService.apply_payment(db, invoice_id, "1000.00", "cash")
            commit_billing_transaction(db)
            payment_id = payment.id

        def reverse():
            with session_factory() as db:
                invoice = PaymentService.reverse_payment(db, payment_id)
                commit_billing_transaction(db)
                return invoice.status

        results, errors = run_concurrently(reverse, reverse)

        assert sorted(r for r in results if r) == ["pending"]
        assert len([e for e in errors if e is not None]) == 1
        with session_factory() as db:
            invoice = db.query(Invoice).filter(Invoice.id == invoice_id).one()
            assert invoice.amount_due == Decimal("1000.00")
            assert invoice.status == InvoiceStatus.PENDING.value


class TestConcurrentInvoicing:
    """Two callers invoicing the same appointment at once."""

    def test_exactly_one_invoice_is_created(self, session_factory):
        with session_factory() as db:
            appointment = create_appointment(db)
            db.commit()
            appointment_id = appointment.id

        def invoice():
            with session_factory() as db:
                created = InvoiceService.create_invoice(db, appointment_id)
                commit_billing_transaction(db)
                return created.id

        results, errors = run_concurrently(invoice, invoice)

        assert len([r for r in results if r is not None]) == 1
        failures = [e for e in errors if e is not None]
        assert len(failures) == 1
        assert isinstance(failures[0], ValidationError)
        assert failures[0].error_code == "INVOICE_ALREADY_EXISTS"
        with session_factory() as db:
            assert db.query(Invoice).filter(Invoice.appointment_id == appointment_id).count() == 1


class TestLockTimeout:
    """A caller that cannot get the invoice lock in time gets a ConflictError."""

    def test_lock_wait_timeout_is_conflict(self, session_factory, db_engine, monkeypatch):
        with session_factory() as db:
            _, invoice = create_invoiced_appointment(db, [("CONS", "1000.00", 1)])
            db.commit()
            invoice_id = invoice.id

        if db_engine.dialect.name == "sqlite":
            impatient_engine = create_db_engine(
                TEST_DATABASE_URL, poolclass=NullPool, connect_args={"timeout": 0.2}
            )
        else:
            monkeypatch.setattr(reconciliation_module, "BILLING_LOCK_TIMEOUT_MS", 200)
            impatient_engine = db_engine
        impatient_factory = sessionmaker(bind=impatient_engine, autoflush=False, expire_on_commit=False)

        holder = session_factory()
        try:
            ReconciliationService.lock_invoice(holder, invoice_id)

            with impatient_factory() as db:
                with pytest.raises(ConflictError) as exc_info:
                    PaymentService.apply_payment(db, invoice_id, "100.00", "cash")
            assert exc_info.value.status_code == 409
        finally:
            holder.rollback()
            holder.close()
            if impatient_engine is not db_engine:
                impatient_engine.dispose()

        with session_factory() as db:
            assert db.query(Payment).filter(Payment.invoice_id == invoice_id).count() == 0
            invoice = db.query(Invoice).filter(Invoice.id == invoice_id).one()
            assert invoice.status == InvoiceStatus.PENDING.value
