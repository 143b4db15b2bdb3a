"""
Client endpoints
"""

from typing import Optional
from fastapi import APIRouter, Depends, status

from .deps import ServicingSystem, get_servicing_system
from .schemas import (
    CreateClientRequest, UpdateClientRequest, installments_response, overview_response
)


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_client(
    request: CreateClientRequest,
    system: ServicingSystem = Depends(get_servicing_system)
):
    """Create a client with a loan and its payment schedule"""
    client, loan, installments = system.lifecycle.create_client_with_loan(
        name=request.name,
        email=request.email,
        phone=request.phone,
        assigned_staff=request.assigned_staff,
        loan_amount=request.loan_amount,
        loan_start_date=request.loan_start_date,
        frequency=request.frequency or system.config.default_frequency,
        interest_rate=request.interest_rate,
        interest_type=request.interest_type or system.config.default_interest_type,
        tenure=request.tenure,
        duration_weeks=request.duration_weeks
    )

    return {
        "message": "Client created with loan and payment schedule",
        "client": client.to_dict(),
        "loan": loan.to_dict(),
        "installments": installments_response(installments)
    }


@router.get("")
async def list_clients(
    assigned_staff: Optional[str] = None,
    system: ServicingSystem = Depends(get_servicing_system)
):
    """List clients, newest first, with their next due date"""
    overviews = system.lifecycle.list_clients(assigned_staff)
    return {
        "count": len(overviews),
        "clients": [
            {
                **overview.client.to_dict(),
                "loan": overview.loan.to_dict() if overview.loan else None,
                "next_due": overview.next_due.isoformat() if overview.next_due else None,
                "fully_paid": overview.fully_paid,
            }
            for overview in overviews
        ]
    }


@router.get("/{client_id}")
async def get_client(
    client_id: str,
    system: ServicingSystem = Depends(get_servicing_system)
):
    """Get a client with loan and installments"""
    return overview_response(system.lifecycle.get_client_overview(client_id))


@router.put("/{client_id}")
async def update_client(
    client_id: str,
    request: UpdateClientRequest,
    system: ServicingSystem = Depends(get_servicing_system)
):
    """Update client details and/or loan terms"""
    system.lifecycle.update_client_and_terms(
        client_id, request.client_fields(), request.loan_terms()
    )

    return {
        "message": "Client updated successfully",
        **overview_response(system.lifecycle.get_client_overview(client_id))
    }


@router.delete("/{client_id}")
async def delete_client(
    client_id: str,
    system: ServicingSystem = Depends(get_servicing_system)
):
    """Delete a client with its loan and installments"""
    system.lifecycle.delete_client(client_id)
    return {"message": "Client and associated data deleted"}
