"""
Payment Allocator

Waterfall allocation of an incoming payment across a loan's outstanding
installments, oldest installment number first. At most one installment is
split per payment; any excess becomes a paid overpayment record.
"""

from decimal import Decimal
from datetime import datetime
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional

from .errors import ConflictError, IntegrityError, NotFoundError, ValidationError
from .locks import LoanLockRegistry
from .logging_config import get_logger, log_action
from .models import (
    Installment, InstallmentKind, InstallmentStatus, Loan, ClientStatus,
    PaymentMode, new_id, utc_now
)
from .money import ZERO, round_money, sum_money, to_decimal
from .repositories import ClientRepository, InstallmentRepository, LoanRepository
from .storage import StorageInterface


@dataclass
class AllocationResult:
    """Outcome of allocating one payment"""
    loan: Loan
    amount: Decimal
    processed: List[Installment] = field(default_factory=list)
    remainder: Optional[Installment] = None
    overpayment: Optional[Installment] = None

    @property
    def completed(self) -> bool:
        return self.loan.is_completed


def parse_payment_mode(value: Any) -> PaymentMode:
    if isinstance(value, PaymentMode):
        return value
    if value is None:
        return PaymentMode.CASH
    try:
        return PaymentMode(value)
    except ValueError:
        raise ValidationError(
            f"Invalid payment mode '{value}'. Expected one of: {', '.join(m.value for m in PaymentMode)}"
        )


class PaymentAllocator:
    """
    Applies payments to the installment ledger.

    Each allocation holds the loan's lock and runs in one storage
    transaction: read outstanding installments, mark paid / split, record
    overpayment, recompute loan totals.
    """

    def __init__(
        self,
        storage: StorageInterface,
        loans: LoanRepository,
        installments: InstallmentRepository,
        clients: ClientRepository,
        locks: LoanLockRegistry,
        overpayment_installment_no: int = 99,
        clock: Callable[[], datetime] = utc_now
    ):
        self.storage = storage
        self.loans = loans
        self.installments = installments
        self.clients = clients
        self.locks = locks
        self.overpayment_installment_no = overpayment_installment_no
        self.clock = clock
        self.logger = get_logger("loan_servicing.allocation")

    def allocate(
        self,
        loan_id: str,
        amount: Any,
        payment_mode: Any = PaymentMode.CASH,
        transaction_id: Optional[str] = None
    ) -> AllocationResult:
        """
        Allocate a payment to a loan.

        Args:
            loan_id: Loan receiving the payment
            amount: Incoming amount (> 0)
            payment_mode: Cash, Bank Transfer or Stripe
            transaction_id: External reference (card payments)

        Returns:
            AllocationResult with the paid installments and updated loan

        Raises:
            ValidationError: amount or payment mode invalid
            NotFoundError: loan does not exist
            ConflictError: no outstanding installments remain
            IntegrityError: the split remainder could not be written
        """
        incoming = round_money(to_decimal(amount, "amount"))
        if incoming <= ZERO:
            raise ValidationError("amount must be greater than zero")
        mode = parse_payment_mode(payment_mode)

        with self.locks.hold(loan_id), self.storage.atomic():
            loan = self.loans.get(loan_id)
            if not loan:
                raise NotFoundError(f"Loan {loan_id} not found")

            outstanding = self.installments.outstanding(loan_id)
            if not outstanding:
                raise ConflictError("Loan is already fully paid. No pending installments found.")

            result = AllocationResult(loan=loan, amount=incoming)
            paid_at = self.clock()
            remaining = incoming

            for installment in outstanding:
                if remaining <= ZERO:
                    break

                if remaining < installment.amount:
                    result.remainder = self._split(installment, remaining, mode, paid_at, transaction_id)
                    result.processed.append(installment)
                    remaining = ZERO
                else:
                    remaining -= installment.amount
                    installment.mark_paid(installment.amount, mode, paid_at, transaction_id)
                    self.installments.save(installment)
                    result.processed.append(installment)

            if remaining > ZERO:
                result.overpayment = self._record_overpayment(loan, remaining, mode, paid_at, transaction_id)

            self._refresh_totals(loan)

        log_action(
            self.logger, "info", f"Payment of {incoming} allocated",
            action="payment.allocate", loan_id=loan.id, client_id=loan.client_id,
            extra={
                "installments_paid": [i.installment_no for i in result.processed],
                "split": result.remainder is not None,
                "overpayment": str(result.overpayment.amount) if result.overpayment else None,
                "total_paid": str(loan.total_paid),
                "remaining_amount": str(loan.remaining_amount),
                "status": loan.status.value,
            }
        )
        return result

    def _split(
        self,
        installment: Installment,
        paid_amount: Decimal,
        mode: PaymentMode,
        paid_at: datetime,
        transaction_id: Optional[str]
    ) -> Installment:
        """Pay part of an installment and re-open the rest as a new record"""
        original = Installment.from_dict(installment.to_dict())

        installment.mark_paid(paid_amount, mode, paid_at, transaction_id)
        self.installments.save(installment)

        remainder = Installment(
            id=new_id(),
            created_at=paid_at,
            updated_at=paid_at,
            loan_id=original.loan_id,
            client_id=original.client_id,
            installment_no=original.installment_no,
            amount=round_money(original.amount - paid_amount),
            due_date=original.due_date,
            status=original.status
        )
        try:
            self.installments.add(remainder)
        except Exception as exc:
            # Compensate: restore the installment exactly as it was
            self.installments.save(original)
            log_action(
                self.logger, "error",
                f"Failed to record remainder of installment #{original.installment_no}; partial payment reverted",
                action="payment.split_rollback", loan_id=original.loan_id, client_id=original.client_id,
                extra={"error": str(exc)}
            )
            raise IntegrityError("Failed to record partial payment. Please try again.") from exc

        return remainder

    def _record_overpayment(
        self,
        loan: Loan,
        amount: Decimal,
        mode: PaymentMode,
        paid_at: datetime,
        transaction_id: Optional[str]
    ) -> Installment:
        overpayment = Installment(
            id=new_id(),
            created_at=paid_at,
            updated_at=paid_at,
            loan_id=loan.id,
            client_id=loan.client_id,
            installment_no=self.overpayment_installment_no,
            amount=round_money(amount),
            due_date=paid_at.date(),
            status=InstallmentStatus.PAID,
            paid_date=paid_at,
            payment_mode=mode,
            transaction_id=transaction_id,
            kind=InstallmentKind.OVERPAYMENT
        )
        self.installments.add(overpayment)
        return overpayment

    def _refresh_totals(self, loan: Loan) -> None:
        """Recompute totals from the ledger and settle the client when complete"""
        total_paid = sum_money(i.amount for i in self.installments.paid(loan.id))
        loan.apply_total_paid(total_paid)
        self.loans.save(loan)

        if loan.is_completed:
            self.clients.update(loan.client_id, {
                "status": ClientStatus.PAID,
                "updated_at": utc_now(),
            })
