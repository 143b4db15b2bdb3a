"""
Reminder endpoints
"""

from typing import Optional
from fastapi import APIRouter, Depends

from .deps import ServicingSystem, get_servicing_system
from .schemas import ManualReminderRequest, RunRemindersRequest
from ..errors import NotFoundError, ValidationError
from ..models import NotificationChannel


router = APIRouter()


@router.post("/run")
async def run_reminders(
    request: RunRemindersRequest,
    system: ServicingSystem = Depends(get_servicing_system)
):
    """Trigger a reminder scan (bulk mode by default)"""
    result = system.reminders.run(
        today=request.run_date, bulk=request.bulk, assigned_staff=request.assigned_staff
    )
    return {
        "message": f"Reminder run completed. Sent {result.sent} notifications.",
        "run_date": result.run_date.isoformat(),
        "bulk": result.bulk,
        "marked_overdue": result.marked_overdue,
        "sent": result.sent,
        "failed": result.failed,
        "notices": result.notices
    }


@router.post("/manual")
async def log_manual_reminder(
    request: ManualReminderRequest,
    system: ServicingSystem = Depends(get_servicing_system)
):
    """Log a reminder sent by staff outside the system"""
    try:
        channel = NotificationChannel(request.channel)
    except ValueError:
        raise ValidationError(f"Invalid channel '{request.channel}'")
    if not system.clients.get(request.client_id):
        raise NotFoundError("Client not found")

    entry = system.notifications.log_manual(request.client_id, channel, request.message)
    return {"message": "Log created", "log": entry.to_dict()}


@router.get("/logs")
async def get_notification_logs(
    assigned_staff: Optional[str] = None,
    limit: int = 50,
    system: ServicingSystem = Depends(get_servicing_system)
):
    """Most recent notification log entries"""
    logs = system.notifications.list_logs(assigned_staff, limit)
    return {"count": len(logs), "logs": [entry.to_dict() for entry in logs]}
