"""
Nightly billing consistency audit.

Once a day, checks that every non-cancelled invoice's amount_due and status
still match its payment journal and logs an error for each one that does
not. The audit only reports; drift is a bug to investigate, not something
to repair silently.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler  # type: ignore
from apscheduler.triggers.cron import CronTrigger  # type: ignore
from sqlalchemy.orm import Session

from core.config import BILLING_AUDIT_HOUR
from core.constants import BILLING_AUDIT_JOB_ID
from core.database import get_db_context
from services.reconciliation_service import ReconciliationService
from utils.datetime_utils import CLINIC_TZ

logger = logging.getLogger(__name__)

# Global singleton instance
_billing_audit_scheduler: Optional['BillingAuditScheduler'] = None


def run_invoice_audit(db: Session) -> List[Dict[str, Any]]:
    """
    Audit all invoices and log every drifted one.

    Returns:
        The drifted invoices (empty when the ledger is consistent)
    """
    drifted = ReconciliationService.find_inconsistent_invoices(db)
    for entry in drifted:
        logger.error(
            f"Invoice {entry['invoice_id']} is out of sync with its payments: "
            f"amount_due {entry['stored_amount_due']} (expected {entry['expected_amount_due']}), "
            f"status {entry['stored_status']} (expected {entry['expected_status']})"
        )
    if not drifted:
        logger.info("Invoice audit passed: all invoices consistent with their payments")
    return drifted


class BillingAuditScheduler:
    """
    Scheduler for the invoice consistency audit.

    Runs daily at BILLING_AUDIT_HOUR clinic time.
    """

    def __init__(self, hour: int = BILLING_AUDIT_HOUR):
        # Database sessions are created fresh for each run
        self.scheduler = AsyncIOScheduler(timezone=CLINIC_TZ)
        self.hour = hour
        self._is_started = False

    async def start_scheduler(self) -> None:
        """Start the background scheduler. Called during application startup."""
        if self._is_started:
            logger.warning("Billing audit scheduler is already started")
            return

        self.scheduler.add_job(  # type: ignore
            self._run_audit,
            CronTrigger(hour=self.hour, minute=0, timezone=CLINIC_TZ),
            id=BILLING_AUDIT_JOB_ID,
            name="Invoice consistency audit",
            replace_existing=True,
            misfire_grace_time=3600,  # Allow 1 hour grace time if server was down
        )

        self.scheduler.start()
        self._is_started = True
        logger.info(f"Billing audit scheduler started (runs daily at {self.hour}:00 clinic time)")

    async def stop_scheduler(self) -> None:
        """Stop the background scheduler. Called during application shutdown."""
        if self._is_started:
            self.scheduler.shutdown(wait=True)
            self._is_started = False
            logger.info("Billing audit scheduler stopped")

    async def _run_audit(self) -> None:
        logger.info("Starting scheduled invoice audit...")
        # Blocking database work stays off the event loop
        await asyncio.to_thread(self._execute_audit)

    def _execute_audit(self) -> None:
        with get_db_context() as db:
            try:
                drifted = run_invoice_audit(db)
                logger.info(f"Scheduled invoice audit completed: {len(drifted)} drifted invoice(s)")
            except Exception as e:
                logger.exception(f"Error during scheduled invoice audit: {e}")
                # Don't re-raise - allow scheduler to continue


def get_billing_audit_scheduler() -> BillingAuditScheduler:
    """Get the global billing audit scheduler instance."""
    global _billing_audit_scheduler
    if _billing_audit_scheduler is None:
        _billing_audit_scheduler = BillingAuditScheduler()
    return _billing_audit_scheduler


async def start_billing_audit_scheduler() -> None:
    """Start the global billing audit scheduler."""
    scheduler = get_billing_audit_scheduler()
    await scheduler.start_scheduler()


async def stop_billing_audit_scheduler() -> None:
    """Stop the global billing audit scheduler."""
    global _billing_audit_scheduler
    if _billing_audit_scheduler:
        await _billing_audit_scheduler.stop_scheduler()
