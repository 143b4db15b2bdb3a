"""
Portfolio Reporting

Dashboard aggregates over the whole loan book, or over the clients assigned
to one staff member.
"""

from decimal import Decimal
from datetime import date, timedelta
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .models import InstallmentStatus, LoanStatus, utc_now
from .money import ZERO, round_money, sum_money
from .repositories import ClientRepository, InstallmentRepository, LoanRepository


UPCOMING_WINDOW_DAYS = 7
TOP_STAFF = 5


@dataclass
class PortfolioSummary:
    total_clients: int
    total_loans: int
    total_loan_amount: Decimal
    total_collected: Decimal
    total_pending: Decimal
    total_overdue: Decimal
    active_loans: int
    completed_loans: int
    upcoming_dues: int
    overdue_clients: int
    collection_rate: Decimal
    staff_collections: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_clients": self.total_clients,
            "total_loans": self.total_loans,
            "total_loan_amount": str(self.total_loan_amount),
            "total_collected": str(self.total_collected),
            "total_pending": str(self.total_pending),
            "total_overdue": str(self.total_overdue),
            "active_loans": self.active_loans,
            "completed_loans": self.completed_loans,
            "upcoming_dues": self.upcoming_dues,
            "overdue_clients": self.overdue_clients,
            "collection_rate": str(self.collection_rate),
            "staff_collections": [
                {"assigned_staff": row["assigned_staff"], "total_collected": str(row["total_collected"])}
                for row in self.staff_collections
            ],
        }


class PortfolioReporter:
    """Builds dashboard summaries from the repositories"""

    def __init__(self, clients: ClientRepository, loans: LoanRepository,
                 installments: InstallmentRepository):
        self.clients = clients
        self.loans = loans
        self.installments = installments

    def summary(self, today: Optional[date] = None,
                assigned_staff: Optional[str] = None) -> PortfolioSummary:
        today = today or utc_now().date()

        clients = self.clients.list(assigned_staff)
        staff_by_client = {c.id: c.assigned_staff for c in clients}
        client_ids = list(staff_by_client)

        loans = self.loans.find({"client_id": client_ids})
        ledger = self.installments.find({"client_id": client_ids})

        total_loan_amount = sum_money(loan.loan_amount for loan in loans)
        total_collected = sum_money(loan.total_paid for loan in loans)
        total_pending = sum_money(loan.remaining_amount for loan in loans)

        open_items = [i for i in ledger if i.is_outstanding]
        past_due = [i for i in open_items if i.due_date < today]
        window_end = today + timedelta(days=UPCOMING_WINDOW_DAYS)
        upcoming = [i for i in open_items if today <= i.due_date <= window_end]

        collected_by_staff: Dict[str, Decimal] = {}
        for item in ledger:
            if item.status != InstallmentStatus.PAID:
                continue
            staff = staff_by_client.get(item.client_id)
            collected_by_staff[staff] = collected_by_staff.get(staff, ZERO) + item.amount
        staff_collections = sorted(
            ({"assigned_staff": staff, "total_collected": round_money(amount)}
             for staff, amount in collected_by_staff.items()),
            key=lambda row: row["total_collected"],
            reverse=True
        )[:TOP_STAFF]

        collection_rate = ZERO
        if total_loan_amount > ZERO:
            collection_rate = round_money(total_collected / total_loan_amount * Decimal(100))

        return PortfolioSummary(
            total_clients=len(clients),
            total_loans=len(loans),
            total_loan_amount=total_loan_amount,
            total_collected=total_collected,
            total_pending=total_pending,
            total_overdue=sum_money(i.amount for i in past_due),
            active_loans=sum(1 for loan in loans if loan.status == LoanStatus.ACTIVE),
            completed_loans=sum(1 for loan in loans if loan.status == LoanStatus.COMPLETED),
            upcoming_dues=len(upcoming),
            overdue_clients=len({i.client_id for i in past_due}),
            collection_rate=collection_rate,
            staff_collections=staff_collections
        )
