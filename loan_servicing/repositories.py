"""
Entity Repositories

One repository per entity over a StorageInterface. The lifecycle controller
and allocator only talk to these; joins between clients, loans and
installments are sequential filtered queries.
"""

from typing import Any, Dict, Iterable, List, Optional, Sequence

from .models import (
    Client, Loan, Installment, NotificationLog,
    InstallmentStatus, InstallmentKind, OUTSTANDING_STATUSES
)
from .storage import StorageInterface


class _Repository:
    table: str = ""
    record_type = None

    def __init__(self, storage: StorageInterface):
        self.storage = storage

    def get(self, record_id: str):
        data = self.storage.load(self.table, record_id)
        if data:
            return self.record_type.from_dict(data)
        return None

    def find(self, filters: Dict[str, Any], order_by: Optional[Sequence[str]] = None) -> list:
        return [self.record_type.from_dict(data) for data in self.storage.find(self.table, filters, order_by)]

    def find_one(self, filters: Dict[str, Any], order_by: Optional[Sequence[str]] = None):
        data = self.storage.find_one(self.table, filters, order_by)
        if data:
            return self.record_type.from_dict(data)
        return None

    def add(self, record) -> None:
        self.storage.save(self.table, record.id, record.to_dict())

    def add_many(self, records: Iterable) -> None:
        payload = [record.to_dict() for record in records]
        if payload:
            self.storage.save_many(self.table, payload)

    def save(self, record) -> None:
        self.storage.save(self.table, record.id, record.to_dict())

    def update(self, record_id: str, changes: Dict[str, Any]):
        """Update fields and return the new record (None if missing)"""
        data = self.storage.update(self.table, record_id, changes)
        if data:
            return self.record_type.from_dict(data)
        return None

    def delete(self, record_id: str) -> bool:
        return self.storage.delete(self.table, record_id)

    def delete_many(self, filters: Dict[str, Any]) -> int:
        return self.storage.delete_many(self.table, filters)


class ClientRepository(_Repository):
    table = "clients"
    record_type = Client

    def list(self, assigned_staff: Optional[str] = None) -> List[Client]:
        filters = {"assigned_staff": assigned_staff} if assigned_staff else {}
        return self.find(filters, order_by=["-created_at"])


class LoanRepository(_Repository):
    table = "loans"
    record_type = Loan

    def for_client(self, client_id: str) -> Optional[Loan]:
        return self.find_one({"client_id": client_id}, order_by=["created_at"])


class InstallmentRepository(_Repository):
    table = "installments"
    record_type = Installment

    _LEDGER_ORDER = ["installment_no", "due_date", "created_at"]

    def for_loan(self, loan_id: str) -> List[Installment]:
        return self.find({"loan_id": loan_id}, order_by=self._LEDGER_ORDER)

    def for_client(self, client_id: str) -> List[Installment]:
        return self.find({"client_id": client_id}, order_by=self._LEDGER_ORDER)

    def outstanding(self, loan_id: str) -> List[Installment]:
        """Pending and overdue scheduled installments, oldest position first"""
        return self.find({
            "loan_id": loan_id,
            "kind": InstallmentKind.SCHEDULED,
            "status": list(OUTSTANDING_STATUSES),
        }, order_by=self._LEDGER_ORDER)

    def paid(self, loan_id: str) -> List[Installment]:
        return self.find({"loan_id": loan_id, "status": InstallmentStatus.PAID})

    def open_across_loans(self) -> List[Installment]:
        """Every installment that is not yet paid, for reminder scans"""
        return self.find({"status": list(OUTSTANDING_STATUSES)}, order_by=["due_date", "installment_no"])

    def delete_pending(self, loan_id: str) -> int:
        return self.delete_many({
            "loan_id": loan_id,
            "kind": InstallmentKind.SCHEDULED,
            "status": InstallmentStatus.PENDING,
        })


class NotificationLogRepository(_Repository):
    table = "notification_logs"
    record_type = NotificationLog

    def recent(self, client_ids: Optional[Iterable[str]] = None, limit: int = 50) -> List[NotificationLog]:
        filters: Dict[str, Any] = {}
        if client_ids is not None:
            filters["client_id"] = list(client_ids)
        return self.find(filters, order_by=["-sent_at"])[:limit]
