"""
Pydantic schemas for API requests and responses
"""

from decimal import Decimal
from datetime import date
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from ..lifecycle import ClientOverview
from ..models import Installment


# Client schemas
class CreateClientRequest(BaseModel):
    name: str
    email: str
    phone: str
    assigned_staff: str = Field(..., description="Id of the staff member handling the client")
    loan_amount: Decimal
    loan_start_date: date
    frequency: Optional[str] = Field(None, description="Weekly, Bi-Weekly or Monthly")
    interest_rate: Decimal = Field(Decimal("0"), description="Percent")
    interest_type: Optional[str] = Field(None, description="Installment or Flat")
    tenure: Optional[int] = Field(None, description="Number of installments")
    duration_weeks: Optional[int] = Field(None, description="Loan duration in weeks")


class LoanTermsRequest(BaseModel):
    loan_amount: Optional[Decimal] = None
    interest_rate: Optional[Decimal] = None
    frequency: Optional[str] = None
    interest_type: Optional[str] = None
    tenure: Optional[int] = None
    duration_weeks: Optional[int] = None
    loan_start_date: Optional[date] = None


class UpdateClientRequest(LoanTermsRequest):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    status: Optional[str] = None
    assigned_staff: Optional[str] = None

    def client_fields(self) -> Dict[str, Any]:
        return self.model_dump(include={"name", "email", "phone", "status", "assigned_staff"})

    def loan_terms(self) -> Dict[str, Any]:
        return self.model_dump(exclude={"name", "email", "phone", "status", "assigned_staff"})


# Payment schemas
class ManualPaymentRequest(BaseModel):
    client_id: str
    amount: Decimal
    payment_mode: str = Field("Cash", description="Cash or Bank Transfer")


class StripeWebhookRequest(BaseModel):
    client_id: str
    amount: Decimal
    transaction_id: str = Field(..., min_length=1)


# Reminder schemas
class RunRemindersRequest(BaseModel):
    run_date: Optional[date] = None
    bulk: bool = True
    assigned_staff: Optional[str] = None


class ManualReminderRequest(BaseModel):
    client_id: str
    channel: str = Field("WhatsApp", description="Email or WhatsApp")
    message: str


def overview_response(overview: ClientOverview) -> Dict[str, Any]:
    next_due = overview.next_due
    return {
        "client": overview.client.to_dict(),
        "loan": overview.loan.to_dict() if overview.loan else None,
        "installments": installments_response(overview.installments),
        "next_due": next_due.isoformat() if next_due else None,
        "fully_paid": overview.fully_paid,
    }


def installments_response(installments: List[Installment]) -> List[Dict[str, Any]]:
    return [installment.to_dict() for installment in installments]
