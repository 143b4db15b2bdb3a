"""
Service wiring and API dependencies
"""

from typing import Optional

from ..allocation import PaymentAllocator
from ..config import ServicingConfig, get_config
from ..lifecycle import LoanLifecycleController
from ..locks import LoanLockRegistry
from ..notifications import NotificationService
from ..reminders import ReminderScanner
from ..reporting import PortfolioReporter
from ..repositories import (
    ClientRepository, InstallmentRepository, LoanRepository, NotificationLogRepository
)
from ..storage import StorageInterface, create_storage


class ServicingSystem:
    """Loan servicing back office with all components initialized"""

    def __init__(self, storage: Optional[StorageInterface] = None,
                 config: Optional[ServicingConfig] = None):
        self.config = config or get_config()

        # Initialize storage
        self.storage = storage or create_storage(self.config.storage_backend, self.config.database_path)

        # Repositories
        self.clients = ClientRepository(self.storage)
        self.loans = LoanRepository(self.storage)
        self.installments = InstallmentRepository(self.storage)
        self.notification_logs = NotificationLogRepository(self.storage)

        # Core components
        self.locks = LoanLockRegistry()
        self.notifications = NotificationService.from_config(
            self.notification_logs, self.clients, self.config
        )
        self.allocator = PaymentAllocator(
            self.storage, self.loans, self.installments, self.clients, self.locks,
            overpayment_installment_no=self.config.overpayment_installment_no
        )
        self.lifecycle = LoanLifecycleController(
            self.storage, self.clients, self.loans, self.installments,
            self.allocator, self.locks, notifier=self.notifications
        )
        self.reminders = ReminderScanner(
            self.storage, self.installments, self.clients, self.locks, self.notifications,
            lead_days=self.config.reminder_lead_days,
            overdue_delay_days=self.config.overdue_reminder_delay_days
        )
        self.reporter = PortfolioReporter(self.clients, self.loans, self.installments)

    def close(self) -> None:
        self.storage.close()


# Global servicing system instance, created on first use
servicing_system: Optional[ServicingSystem] = None


def get_servicing_system() -> ServicingSystem:
    global servicing_system
    if servicing_system is None:
        servicing_system = ServicingSystem()
    return servicing_system
