"""
Loan endpoints
"""

from fastapi import APIRouter, Depends

from .deps import ServicingSystem, get_servicing_system
from .schemas import LoanTermsRequest, installments_response


router = APIRouter()


@router.get("/{loan_id}")
async def get_loan(
    loan_id: str,
    system: ServicingSystem = Depends(get_servicing_system)
):
    """Get loan details"""
    return system.lifecycle.get_loan(loan_id).to_dict()


@router.put("/{loan_id}/terms")
async def edit_loan_terms(
    loan_id: str,
    request: LoanTermsRequest,
    system: ServicingSystem = Depends(get_servicing_system)
):
    """Edit loan terms; unpaid installments are regenerated"""
    loan = system.lifecycle.edit_loan_terms(loan_id, **request.model_dump())
    return {
        "message": "Loan terms updated",
        "loan": loan.to_dict(),
        "installments": installments_response(system.lifecycle.get_loan_installments(loan_id))
    }


@router.get("/{loan_id}/installments")
async def get_loan_installments(
    loan_id: str,
    system: ServicingSystem = Depends(get_servicing_system)
):
    """Get the installment ledger of a loan"""
    installments = system.lifecycle.get_loan_installments(loan_id)
    return {
        "loan_id": loan_id,
        "count": len(installments),
        "installments": installments_response(installments)
    }
