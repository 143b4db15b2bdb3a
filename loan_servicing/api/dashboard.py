"""
Dashboard endpoints
"""

from typing import Optional
from fastapi import APIRouter, Depends

from .deps import ServicingSystem, get_servicing_system


router = APIRouter()


@router.get("/summary")
async def get_summary(
    assigned_staff: Optional[str] = None,
    system: ServicingSystem = Depends(get_servicing_system)
):
    """Portfolio totals, optionally for one staff member's clients"""
    return system.reporter.summary(assigned_staff=assigned_staff).to_dict()
