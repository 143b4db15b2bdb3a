"""
Payment endpoints
"""

from fastapi import APIRouter, Depends

from .deps import ServicingSystem, get_servicing_system
from .schemas import ManualPaymentRequest, StripeWebhookRequest, installments_response
from ..allocation import AllocationResult
from ..errors import ValidationError
from ..logging_config import get_logger, log_action
from ..models import PaymentMode


router = APIRouter()
logger = get_logger("loan_servicing.api.payments")

MANUAL_MODES = (PaymentMode.CASH.value, PaymentMode.BANK_TRANSFER.value)


def allocation_response(result: AllocationResult) -> dict:
    return {
        "processed_payments": installments_response(result.processed),
        "remainder": result.remainder.to_dict() if result.remainder else None,
        "overpayment": result.overpayment.to_dict() if result.overpayment else None,
        "loan": result.loan.to_dict()
    }


@router.post("/manual")
async def record_manual_payment(
    request: ManualPaymentRequest,
    system: ServicingSystem = Depends(get_servicing_system)
):
    """Record a cash or bank transfer payment using waterfall allocation"""
    if request.payment_mode not in MANUAL_MODES:
        raise ValidationError(f"payment_mode must be one of: {', '.join(MANUAL_MODES)}")

    result = system.lifecycle.record_payment(
        request.client_id, request.amount, request.payment_mode
    )
    return {"message": "Payment recorded successfully", **allocation_response(result)}


@router.post("/stripe/webhook")
async def stripe_webhook(
    request: StripeWebhookRequest,
    system: ServicingSystem = Depends(get_servicing_system)
):
    """Card payment confirmation; allocated like a manual payment"""
    if system.lifecycle.payment_recorded(request.transaction_id):
        log_action(logger, "info", "Duplicate card payment confirmation ignored",
                   action="payment.stripe_duplicate", client_id=request.client_id,
                   extra={"transaction_id": request.transaction_id})
        return {"received": True, "duplicate": True}

    result = system.lifecycle.record_payment(
        request.client_id, request.amount, PaymentMode.STRIPE,
        transaction_id=request.transaction_id
    )
    return {"received": True, **allocation_response(result)}


@router.get("/client/{client_id}")
async def get_client_payments(
    client_id: str,
    system: ServicingSystem = Depends(get_servicing_system)
):
    """Get the full installment history of a client"""
    installments = system.lifecycle.get_client_installments(client_id)
    return {
        "count": len(installments),
        "payments": installments_response(installments)
    }
