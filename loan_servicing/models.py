"""
Domain Records

Clients, loans, installments and notification log entries as stored
records. Money fields are Decimal, dates are ``datetime.date``.
"""

from decimal import Decimal
from datetime import datetime, date, timezone
from dataclasses import dataclass, field
from typing import Any, Dict, Optional
from enum import Enum
import uuid

from .money import ZERO, round_money
from .storage import StorageRecord


class Frequency(Enum):
    """Installment frequency"""
    WEEKLY = "Weekly"
    BI_WEEKLY = "Bi-Weekly"
    MONTHLY = "Monthly"


class InterestType(Enum):
    """How interest is charged"""
    INSTALLMENT = "Installment"  # Rate applies per installment period
    FLAT = "Flat"                # Rate applies once to principal


class LoanStatus(Enum):
    ACTIVE = "Active"
    PENDING = "Pending"
    OVERDUE = "Overdue"
    COMPLETED = "Completed"


class ClientStatus(Enum):
    ACTIVE = "Active"
    PENDING = "Pending"
    OVERDUE = "Overdue"
    PAID = "Paid"


class InstallmentStatus(Enum):
    PENDING = "Pending"
    PAID = "Paid"
    OVERDUE = "Overdue"


class InstallmentKind(Enum):
    """Distinguishes real schedule positions from the overpayment bucket"""
    SCHEDULED = "scheduled"
    OVERPAYMENT = "overpayment"


class PaymentMode(Enum):
    CASH = "Cash"
    BANK_TRANSFER = "Bank Transfer"
    STRIPE = "Stripe"


class NotificationChannel(Enum):
    EMAIL = "Email"
    WHATSAPP = "WhatsApp"


class NotificationCategory(Enum):
    DUE_SOON = "Due Soon"
    DUE_TODAY = "Due Today"
    OVERDUE = "Overdue"
    MANUAL = "Manual"
    PAYMENT_RECEIVED = "Payment Received"


class NotificationStatus(Enum):
    SENT = "Sent"
    FAILED = "Failed"


OUTSTANDING_STATUSES = (InstallmentStatus.PENDING, InstallmentStatus.OVERDUE)


def new_id() -> str:
    return str(uuid.uuid4())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def _parse_date(value: Any) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(value[:10])


@dataclass
class Client(StorageRecord):
    """Borrower; owns zero or one loan"""
    name: str
    email: str
    phone: str
    assigned_staff: str
    status: ClientStatus = ClientStatus.ACTIVE

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Client':
        return cls(
            id=data['id'],
            created_at=_parse_datetime(data['created_at']),
            updated_at=_parse_datetime(data['updated_at']),
            name=data['name'],
            email=data['email'],
            phone=data.get('phone', ''),
            assigned_staff=data['assigned_staff'],
            status=ClientStatus(data.get('status', ClientStatus.ACTIVE.value))
        )


@dataclass
class Loan(StorageRecord):
    """Loan terms plus aggregate repayment totals"""
    client_id: str
    loan_amount: Decimal
    loan_start_date: date
    tenure: int
    interest_rate: Decimal
    frequency: Frequency
    interest_type: InterestType
    installment_amount: Decimal
    total_interest: Decimal
    total_payable: Decimal
    total_paid: Decimal = ZERO
    remaining_amount: Optional[Decimal] = None
    status: LoanStatus = LoanStatus.ACTIVE

    def __post_init__(self):
        if self.remaining_amount is None:
            self.remaining_amount = round_money(self.total_payable - self.total_paid)

    @property
    def is_completed(self) -> bool:
        return self.status == LoanStatus.COMPLETED

    def apply_total_paid(self, total_paid: Decimal) -> None:
        """Set total paid and recompute remaining amount and completion"""
        self.total_paid = round_money(total_paid)
        self.remaining_amount = round_money(self.total_payable - self.total_paid)
        if self.remaining_amount <= ZERO:
            self.status = LoanStatus.COMPLETED
        elif self.status == LoanStatus.COMPLETED:
            self.status = LoanStatus.ACTIVE
        self.updated_at = utc_now()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Loan':
        return cls(
            id=data['id'],
            created_at=_parse_datetime(data['created_at']),
            updated_at=_parse_datetime(data['updated_at']),
            client_id=data['client_id'],
            loan_amount=Decimal(data['loan_amount']),
            loan_start_date=_parse_date(data['loan_start_date']),
            tenure=int(data['tenure']),
            interest_rate=Decimal(data['interest_rate']),
            frequency=Frequency(data['frequency']),
            interest_type=InterestType(data['interest_type']),
            installment_amount=Decimal(data['installment_amount']),
            total_interest=Decimal(data['total_interest']),
            total_payable=Decimal(data['total_payable']),
            total_paid=Decimal(data.get('total_paid', '0')),
            remaining_amount=Decimal(data['remaining_amount']) if data.get('remaining_amount') is not None else None,
            status=LoanStatus(data.get('status', LoanStatus.ACTIVE.value))
        )


@dataclass
class Installment(StorageRecord):
    """One scheduled (or paid) slice of a loan's total payable"""
    loan_id: str
    client_id: str
    installment_no: int
    amount: Decimal
    due_date: date
    status: InstallmentStatus = InstallmentStatus.PENDING
    paid_date: Optional[datetime] = None
    payment_mode: Optional[PaymentMode] = None
    transaction_id: Optional[str] = None
    kind: InstallmentKind = InstallmentKind.SCHEDULED

    @property
    def is_outstanding(self) -> bool:
        return self.kind == InstallmentKind.SCHEDULED and self.status in OUTSTANDING_STATUSES

    def mark_paid(self, amount: Decimal, payment_mode: PaymentMode, paid_at: datetime,
                  transaction_id: Optional[str] = None) -> None:
        self.amount = round_money(amount)
        self.status = InstallmentStatus.PAID
        self.paid_date = paid_at
        self.payment_mode = payment_mode
        self.transaction_id = transaction_id
        self.updated_at = paid_at

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Installment':
        return cls(
            id=data['id'],
            created_at=_parse_datetime(data['created_at']),
            updated_at=_parse_datetime(data['updated_at']),
            loan_id=data['loan_id'],
            client_id=data['client_id'],
            installment_no=int(data['installment_no']),
            amount=Decimal(data['amount']),
            due_date=_parse_date(data['due_date']),
            status=InstallmentStatus(data.get('status', InstallmentStatus.PENDING.value)),
            paid_date=_parse_datetime(data.get('paid_date')),
            payment_mode=PaymentMode(data['payment_mode']) if data.get('payment_mode') else None,
            transaction_id=data.get('transaction_id'),
            kind=InstallmentKind(data.get('kind', InstallmentKind.SCHEDULED.value))
        )


@dataclass
class NotificationLog(StorageRecord):
    """Record of a reminder or notice sent to a client"""
    client_id: str
    channel: NotificationChannel
    category: NotificationCategory
    message: str
    status: NotificationStatus = NotificationStatus.SENT
    loan_id: Optional[str] = None
    sent_at: datetime = field(default_factory=utc_now)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'NotificationLog':
        return cls(
            id=data['id'],
            created_at=_parse_datetime(data['created_at']),
            updated_at=_parse_datetime(data['updated_at']),
            client_id=data['client_id'],
            channel=NotificationChannel(data['channel']),
            category=NotificationCategory(data['category']),
            message=data['message'],
            status=NotificationStatus(data.get('status', NotificationStatus.SENT.value)),
            loan_id=data.get('loan_id'),
            sent_at=_parse_datetime(data['sent_at'])
        )
