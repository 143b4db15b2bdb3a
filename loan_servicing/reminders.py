"""
Payment Reminder Scan

Scans unpaid installments, marks past-due ones Overdue and sends Due Soon,
Due Today and Overdue notices. The scan is a plain callable task: a cron
job, a worker or the API's manual trigger decides when it runs.
"""

from datetime import date, timedelta
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .locks import LoanLockRegistry
from .logging_config import get_logger, log_action
from .models import (
    Client, Installment, InstallmentStatus, NotificationCategory, utc_now
)
from .notifications import NotificationService
from .repositories import ClientRepository, InstallmentRepository
from .storage import StorageInterface


@dataclass
class ReminderRunResult:
    """Summary of one reminder scan"""
    run_date: date
    bulk: bool = False
    marked_overdue: int = 0
    sent: int = 0
    failed: int = 0
    notices: List[Dict[str, str]] = field(default_factory=list)


def reminder_message(category: NotificationCategory, client: Client, installment: Installment) -> str:
    due = installment.due_date.isoformat()
    if category == NotificationCategory.DUE_SOON:
        return f"Hello {client.name}, your payment of {installment.amount} is due on {due}."
    if category == NotificationCategory.DUE_TODAY:
        return f"URGENT: Hello {client.name}, your payment of {installment.amount} is due TODAY."
    return (f"OVERDUE ALERT: {client.name}, your payment of {installment.amount} "
            f"was due on {due}. Please pay immediately.")


class ReminderScanner:
    """
    Daily reminder task.

    The daily run sends Due Soon exactly ``lead_days`` before the due date,
    Due Today on the due date and Overdue ``overdue_delay_days`` after it.
    A bulk run (manual trigger) notifies every client with an installment
    overdue, due today or due within ``lead_days``.
    """

    def __init__(
        self,
        storage: StorageInterface,
        installments: InstallmentRepository,
        clients: ClientRepository,
        locks: LoanLockRegistry,
        notifier: NotificationService,
        lead_days: int = 3,
        overdue_delay_days: int = 1
    ):
        self.storage = storage
        self.installments = installments
        self.clients = clients
        self.locks = locks
        self.notifier = notifier
        self.lead_days = lead_days
        self.overdue_delay_days = overdue_delay_days
        self.logger = get_logger("loan_servicing.reminders")

    def run(self, today: Optional[date] = None, bulk: bool = False,
            assigned_staff: Optional[str] = None) -> ReminderRunResult:
        """
        Run one scan.

        Args:
            today: Scan date (defaults to the current UTC date)
            bulk: Notify every due/overdue installment instead of exact-day checks
            assigned_staff: Restrict the scan to one staff member's clients
        """
        today = today or utc_now().date()
        result = ReminderRunResult(run_date=today, bulk=bulk)

        open_installments = self.installments.open_across_loans()
        if assigned_staff:
            allowed = {c.id for c in self.clients.list(assigned_staff)}
            open_installments = [i for i in open_installments if i.client_id in allowed]

        clients: Dict[str, Optional[Client]] = {}
        for installment in open_installments:
            if installment.due_date < today and installment.status == InstallmentStatus.PENDING:
                if self._mark_overdue(installment):
                    result.marked_overdue += 1

            category = self._categorize(installment.due_date, today, bulk)
            if category is None:
                continue

            if installment.client_id not in clients:
                clients[installment.client_id] = self.clients.get(installment.client_id)
            client = clients[installment.client_id]
            if not client or not client.email:
                continue

            delivered = self.notifier.notify(
                client.id, category, reminder_message(category, client, installment),
                loan_id=installment.loan_id
            )
            if delivered:
                result.sent += 1
            else:
                result.failed += 1
            result.notices.append({
                "client_id": client.id,
                "installment_id": installment.id,
                "category": category.value,
            })

        log_action(
            self.logger, "info", "Reminder scan completed",
            action="reminders.run",
            extra={
                "run_date": today.isoformat(),
                "bulk": bulk,
                "marked_overdue": result.marked_overdue,
                "sent": result.sent,
                "failed": result.failed,
            }
        )
        return result

    def _categorize(self, due_date: date, today: date, bulk: bool) -> Optional[NotificationCategory]:
        if bulk:
            if due_date < today:
                return NotificationCategory.OVERDUE
            if due_date == today:
                return NotificationCategory.DUE_TODAY
            if due_date <= today + timedelta(days=self.lead_days):
                return NotificationCategory.DUE_SOON
            return None

        if due_date == today + timedelta(days=self.lead_days):
            return NotificationCategory.DUE_SOON
        if due_date == today:
            return NotificationCategory.DUE_TODAY
        if due_date + timedelta(days=self.overdue_delay_days) == today:
            return NotificationCategory.OVERDUE
        return None

    def _mark_overdue(self, installment: Installment) -> bool:
        """Flip a past-due installment to Overdue unless a payment got there first"""
        with self.locks.hold(installment.loan_id), self.storage.atomic():
            current = self.installments.get(installment.id)
            if not current or current.status != InstallmentStatus.PENDING:
                return False
            self.installments.update(installment.id, {
                "status": InstallmentStatus.OVERDUE,
                "updated_at": utc_now(),
            })
        installment.status = InstallmentStatus.OVERDUE
        return True
