from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from crmflow.api.deps import get_reminder_repo, get_reminder_service
from crmflow.repositories.reminder_repository import ReminderRepository
from crmflow.schemas.common import ReminderStatus
from crmflow.schemas.reminder import ReminderCreate, ReminderOut
from crmflow.services.reminder_service import ReminderService

router = APIRouter(prefix="/reminders", tags=["Reminders"])


@router.get("", response_model=List[ReminderOut])
async def list_reminders(
    assigned_to: Optional[str] = Query(None),
    lead_id: Optional[UUID] = Query(None),
    status: Optional[ReminderStatus] = Query(
        None, description="``overdue`` selects pending reminders past due"
    ),
    service: ReminderService = Depends(get_reminder_service),
) -> List[ReminderOut]:
    reminders = await service.list_reminders(
        assigned_to=assigned_to, lead_id=lead_id, status=status
    )
    return [ReminderOut.from_model(r) for r in reminders]


@router.post("", response_model=ReminderOut, status_code=201)
async def create_reminder(
    request_body: ReminderCreate,
    service: ReminderService = Depends(get_reminder_service),
    reminder_repo: ReminderRepository = Depends(get_reminder_repo),
) -> ReminderOut:
    reminder = await service.create(request_body)
    await reminder_repo.commit()
    return ReminderOut.from_model(reminder)


@router.post("/{reminder_id}/complete", response_model=ReminderOut)
async def complete_reminder(
    reminder_id: UUID,
    service: ReminderService = Depends(get_reminder_service),
    reminder_repo: ReminderRepository = Depends(get_reminder_repo),
) -> ReminderOut:
    """Mark a pending reminder done; any other status is a 400."""
    reminder = await service.complete(reminder_id)
    await reminder_repo.commit()
    return ReminderOut.from_model(reminder)


@router.post("/{reminder_id}/cancel", response_model=ReminderOut)
async def cancel_reminder(
    reminder_id: UUID,
    service: ReminderService = Depends(get_reminder_service),
    reminder_repo: ReminderRepository = Depends(get_reminder_repo),
) -> ReminderOut:
    reminder = await service.cancel(reminder_id)
    await reminder_repo.commit()
    return ReminderOut.from_model(reminder)
