"""
Loan Lifecycle Controller

Orchestrates client and loan creation, loan term edits with schedule
regeneration, and payment recording. Keeps each loan's aggregate totals
(total paid, remaining amount, status) consistent with its installment
ledger. Multi-step writes run inside one storage transaction, and any
mutation of a loan's ledger holds that loan's lock.
"""

from contextlib import ExitStack
from datetime import date, datetime
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from .allocation import AllocationResult, PaymentAllocator
from .errors import ConflictError, NotFoundError, ValidationError
from .financials import (
    LoanFinancials, WEEKS_PER_PERIOD, compute_financials,
    derive_installment_count, parse_frequency, parse_interest_type
)
from .locks import LoanLockRegistry
from .logging_config import get_logger, log_action
from .models import (
    Client, ClientStatus, Installment, InstallmentKind, InstallmentStatus,
    Loan, LoanStatus, NotificationCategory, new_id, utc_now
)
from .notifications import NotificationService
from .repositories import ClientRepository, InstallmentRepository, LoanRepository
from .schedule import ScheduledInstallment, generate_schedule
from .storage import StorageInterface


@dataclass
class ClientOverview:
    """A client joined with its loan and installment ledger"""
    client: Client
    loan: Optional[Loan] = None
    installments: List[Installment] = field(default_factory=list)

    @property
    def next_due(self) -> Optional[date]:
        """Due date of the earliest unpaid installment"""
        open_dates = [i.due_date for i in self.installments if i.is_outstanding]
        return min(open_dates) if open_dates else None

    @property
    def fully_paid(self) -> bool:
        return self.loan is not None and self.loan.is_completed


def parse_date(value: Any, field_name: str = "loan_start_date") -> date:
    """Accept a date, datetime or ISO-8601 string"""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            pass
    raise ValidationError(f"{field_name} must be a valid ISO-8601 date")


def _require_text(value: Any, field_name: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{field_name} is required")
    return str(value).strip()


def _normalize_email(value: Any) -> str:
    email = _require_text(value, "email").lower()
    local, _, domain = email.partition("@")
    if not local or "." not in domain:
        raise ValidationError("Valid email is required")
    return email


class LoanLifecycleController:
    """
    Manages the loan lifecycle from creation through settlement
    """

    def __init__(
        self,
        storage: StorageInterface,
        clients: ClientRepository,
        loans: LoanRepository,
        installments: InstallmentRepository,
        allocator: PaymentAllocator,
        locks: LoanLockRegistry,
        notifier: Optional[NotificationService] = None,
        clock: Callable[[], datetime] = utc_now
    ):
        self.storage = storage
        self.clients = clients
        self.loans = loans
        self.installments = installments
        self.allocator = allocator
        self.locks = locks
        self.notifier = notifier
        self.clock = clock
        self.logger = get_logger("loan_servicing.lifecycle")

    # Creation

    def create_client_with_loan(
        self,
        name: str,
        email: str,
        phone: str,
        assigned_staff: str,
        loan_amount: Any,
        loan_start_date: Any,
        frequency: Any = "Weekly",
        interest_rate: Any = 0,
        interest_type: Any = "Installment",
        tenure: Optional[Any] = None,
        duration_weeks: Optional[Any] = None
    ) -> Tuple[Client, Loan, List[Installment]]:
        """
        Create a client together with its loan and installment schedule.

        All input is validated before the first write; the three writes
        (client, loan, installments) commit or roll back together.
        """
        name = _require_text(name, "name")
        email = _normalize_email(email)
        phone = _require_text(phone, "phone")
        assigned_staff = _require_text(assigned_staff, "assigned_staff")
        start = parse_date(loan_start_date)
        financials = compute_financials(
            loan_amount, interest_rate, frequency, interest_type,
            tenure=tenure, duration_weeks=duration_weeks
        )

        now = self.clock()
        client = Client(
            id=new_id(),
            created_at=now,
            updated_at=now,
            name=name,
            email=email,
            phone=phone,
            assigned_staff=assigned_staff,
            status=ClientStatus.ACTIVE
        )

        with self.storage.atomic():
            self.clients.add(client)
            loan, installments = self._open_loan(client.id, financials, start)

        log_action(
            self.logger, "info", "Client created with loan and payment schedule",
            action="client.create", client_id=client.id, loan_id=loan.id,
            extra={"installments": len(installments), "total_payable": str(loan.total_payable)}
        )
        return client, loan, installments

    def create_loan_with_schedule(
        self,
        client_id: str,
        principal: Any,
        rate: Any,
        frequency: Any,
        interest_type: Any,
        start_date: Any,
        tenure: Optional[Any] = None,
        duration_weeks: Optional[Any] = None
    ) -> Tuple[Loan, List[Installment]]:
        """Open a loan (with schedule) for an existing client without one"""
        start = parse_date(start_date)
        financials = compute_financials(
            principal, rate, frequency, interest_type,
            tenure=tenure, duration_weeks=duration_weeks
        )

        with self.storage.atomic():
            if not self.clients.get(client_id):
                raise NotFoundError(f"Client {client_id} not found")
            if self.loans.for_client(client_id):
                raise ConflictError("Client already has a loan")
            loan, installments = self._open_loan(client_id, financials, start)

        log_action(
            self.logger, "info", "Loan created with payment schedule",
            action="loan.create", client_id=client_id, loan_id=loan.id,
            extra={"installments": len(installments)}
        )
        return loan, installments

    def _open_loan(self, client_id: str, financials: LoanFinancials,
                   start: date) -> Tuple[Loan, List[Installment]]:
        now = self.clock()
        loan = Loan(
            id=new_id(),
            created_at=now,
            updated_at=now,
            client_id=client_id,
            loan_amount=financials.principal,
            loan_start_date=start,
            tenure=financials.installment_count,
            interest_rate=financials.interest_rate,
            frequency=financials.frequency,
            interest_type=financials.interest_type,
            installment_amount=financials.installment_amount,
            total_interest=financials.total_interest,
            total_payable=financials.total_payable,
            status=LoanStatus.ACTIVE
        )
        self.loans.add(loan)

        schedule = generate_schedule(loan.total_payable, start, loan.frequency, loan.tenure)
        installments = self._materialize(loan, schedule)
        self.installments.add_many(installments)
        return loan, installments

    def _materialize(self, loan: Loan, schedule: List[ScheduledInstallment]) -> List[Installment]:
        now = self.clock()
        return [
            Installment(
                id=new_id(),
                created_at=now,
                updated_at=now,
                loan_id=loan.id,
                client_id=loan.client_id,
                installment_no=entry.installment_no,
                amount=entry.amount,
                due_date=entry.due_date,
                status=entry.status
            )
            for entry in schedule
        ]

    # Payments

    def record_payment(
        self,
        client_id: str,
        amount: Any,
        payment_mode: Any = "Cash",
        transaction_id: Optional[str] = None
    ) -> AllocationResult:
        """
        Record a payment for a client's loan using waterfall allocation.

        Raises:
            NotFoundError: the client has no loan
            ConflictError: the loan has no outstanding installments
        """
        loan = self.loans.for_client(client_id)
        if not loan:
            raise NotFoundError("Loan not found for this client")

        result = self.allocator.allocate(loan.id, amount, payment_mode, transaction_id)

        if self.notifier:
            self.notifier.notify(
                client_id,
                NotificationCategory.PAYMENT_RECEIVED,
                f"We received your payment of {result.amount}. "
                f"Remaining balance: {result.loan.remaining_amount}.",
                loan_id=loan.id,
                subject="Payment Received"
            )
        return result

    def payment_recorded(self, transaction_id: str) -> bool:
        """Whether a payment with this external transaction id was already applied"""
        return self.installments.find_one({"transaction_id": transaction_id}) is not None

    # Term edits

    def edit_loan_terms(
        self,
        loan_id: str,
        loan_amount: Optional[Any] = None,
        interest_rate: Optional[Any] = None,
        frequency: Optional[Any] = None,
        interest_type: Optional[Any] = None,
        tenure: Optional[Any] = None,
        duration_weeks: Optional[Any] = None,
        loan_start_date: Optional[Any] = None
    ) -> Loan:
        """
        Edit loan terms and regenerate the unpaid part of the schedule.

        Supplied fields are merged over the stored ones. Pending installments
        are deleted and a fresh schedule is generated; entries at or below
        the highest non-pending installment number are discarded, the rest
        are inserted. Paid and overdue installments are never touched.
        """
        financial_fields = (loan_amount, interest_rate, frequency, interest_type, tenure, duration_weeks)
        terms_changed = any(value is not None for value in financial_fields)
        new_start = parse_date(loan_start_date) if loan_start_date is not None else None

        with self.locks.hold(loan_id), self.storage.atomic():
            loan = self.loans.get(loan_id)
            if not loan:
                raise NotFoundError(f"Loan {loan_id} not found")
            if not terms_changed and new_start is None:
                return loan

            new_frequency = parse_frequency(frequency) if frequency is not None else loan.frequency
            new_interest_type = (
                parse_interest_type(interest_type) if interest_type is not None else loan.interest_type
            )
            if tenure is not None or duration_weeks is not None:
                count = derive_installment_count(new_frequency, tenure, duration_weeks)
            elif new_frequency != loan.frequency:
                # Keep the loan's duration in weeks when only the frequency changes
                weeks = loan.tenure * WEEKS_PER_PERIOD[loan.frequency]
                count = derive_installment_count(new_frequency, duration_weeks=weeks)
            else:
                count = loan.tenure

            financials = compute_financials(
                loan_amount if loan_amount is not None else loan.loan_amount,
                interest_rate if interest_rate is not None else loan.interest_rate,
                new_frequency,
                new_interest_type,
                tenure=count
            )

            was_completed = loan.is_completed
            loan.loan_amount = financials.principal
            loan.interest_rate = financials.interest_rate
            loan.frequency = financials.frequency
            loan.interest_type = financials.interest_type
            loan.tenure = financials.installment_count
            loan.installment_amount = financials.installment_amount
            loan.total_interest = financials.total_interest
            loan.total_payable = financials.total_payable
            if new_start is not None:
                loan.loan_start_date = new_start
            loan.apply_total_paid(loan.total_paid)
            self.loans.save(loan)

            deleted, inserted = self._regenerate(loan)
            if not loan.is_completed and not self.installments.outstanding(loan.id):
                raise ConflictError(
                    "New terms leave a balance but no installment to collect it; extend the tenure"
                )
            self._sync_client_status(loan, was_completed)

        log_action(
            self.logger, "info", "Loan terms updated and schedule regenerated",
            action="loan.edit_terms", client_id=loan.client_id, loan_id=loan.id,
            extra={
                "deleted_pending": deleted,
                "inserted": inserted,
                "total_payable": str(loan.total_payable),
                "remaining_amount": str(loan.remaining_amount),
            }
        )
        return loan

    def _regenerate(self, loan: Loan) -> Tuple[int, int]:
        deleted = self.installments.delete_pending(loan.id)

        schedule = generate_schedule(loan.total_payable, loan.loan_start_date, loan.frequency, loan.tenure)
        history = [
            i for i in self.installments.for_loan(loan.id)
            if i.kind == InstallmentKind.SCHEDULED and i.status != InstallmentStatus.PENDING
        ]
        max_paid_installment = max((i.installment_no for i in history), default=0)

        future = [entry for entry in schedule if entry.installment_no > max_paid_installment]
        if loan.is_completed:
            future = []
        self.installments.add_many(self._materialize(loan, future))
        return deleted, len(future)

    def _sync_client_status(self, loan: Loan, was_completed: bool) -> None:
        if loan.is_completed and not was_completed:
            self.clients.update(loan.client_id, {"status": ClientStatus.PAID, "updated_at": utc_now()})
        elif was_completed and not loan.is_completed:
            self.clients.update(loan.client_id, {"status": ClientStatus.ACTIVE, "updated_at": utc_now()})

    # Clients

    def update_client(
        self,
        client_id: str,
        name: Optional[str] = None,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        status: Optional[Any] = None,
        assigned_staff: Optional[str] = None
    ) -> Client:
        """Update contact details or status of a client"""
        changes = {}
        if name is not None:
            changes["name"] = _require_text(name, "name")
        if email is not None:
            changes["email"] = _normalize_email(email)
        if phone is not None:
            changes["phone"] = _require_text(phone, "phone")
        if assigned_staff is not None:
            changes["assigned_staff"] = _require_text(assigned_staff, "assigned_staff")
        if status is not None:
            try:
                changes["status"] = ClientStatus(status) if not isinstance(status, ClientStatus) else status
            except ValueError:
                raise ValidationError(f"Invalid client status '{status}'")

        client = self.clients.get(client_id)
        if not client:
            raise NotFoundError("Client not found")
        if not changes:
            return client

        changes["updated_at"] = self.clock()
        return self.clients.update(client_id, changes)

    def update_client_and_terms(
        self,
        client_id: str,
        client_fields: Optional[Dict[str, Any]] = None,
        loan_terms: Optional[Dict[str, Any]] = None
    ) -> Client:
        """Apply client detail changes and loan term edits as one unit"""
        terms = {key: value for key, value in (loan_terms or {}).items() if value is not None}
        loan = self.loans.for_client(client_id) if terms else None

        with ExitStack() as stack:
            if loan:
                stack.enter_context(self.locks.hold(loan.id))
            stack.enter_context(self.storage.atomic())
            client = self.update_client(client_id, **(client_fields or {}))
            if loan:
                self.edit_loan_terms(loan.id, **terms)
        return client

    def get_client(self, client_id: str) -> Client:
        client = self.clients.get(client_id)
        if not client:
            raise NotFoundError("Client not found")
        return client

    def get_client_overview(self, client_id: str) -> ClientOverview:
        client = self.get_client(client_id)
        return ClientOverview(
            client=client,
            loan=self.loans.for_client(client_id),
            installments=self.installments.for_client(client_id)
        )

    def list_clients(self, assigned_staff: Optional[str] = None) -> List[ClientOverview]:
        return [
            ClientOverview(
                client=client,
                loan=self.loans.for_client(client.id),
                installments=self.installments.for_client(client.id)
            )
            for client in self.clients.list(assigned_staff)
        ]

    def get_client_installments(self, client_id: str) -> List[Installment]:
        self.get_client(client_id)
        return self.installments.for_client(client_id)

    def delete_client(self, client_id: str) -> None:
        """Delete a client together with its loan and installments"""
        self.get_client(client_id)
        loan_ids = [loan.id for loan in self.loans.find({"client_id": client_id})]

        with self.storage.atomic():
            self.installments.delete_many({"client_id": client_id})
            self.loans.delete_many({"client_id": client_id})
            self.clients.delete(client_id)

        for loan_id in loan_ids:
            self.locks.discard(loan_id)
        log_action(self.logger, "info", "Client and associated data deleted",
                   action="client.delete", client_id=client_id)

    # Loans

    def get_loan(self, loan_id: str) -> Loan:
        loan = self.loans.get(loan_id)
        if not loan:
            raise NotFoundError(f"Loan {loan_id} not found")
        return loan

    def get_loan_installments(self, loan_id: str) -> List[Installment]:
        self.get_loan(loan_id)
        return self.installments.for_loan(loan_id)
