from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from crmflow.schemas.common import ReminderPriority, ReminderStatus, ReminderType


def effective_status(status: str, due_date: datetime, now: datetime) -> str:
    """Return ``overdue`` for a pending reminder past its due date.

    ``overdue`` is derived on read, never stored.
    """
    if status == ReminderStatus.pending.value and now > due_date:
        return ReminderStatus.overdue.value
    return status


class ReminderCreate(BaseModel):
    """Request body for POST /api/v1/reminders."""

    lead_id: UUID
    assigned_to: str = Field(..., min_length=1)
    reminder_type: ReminderType
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    due_date: datetime
    priority: ReminderPriority = ReminderPriority.medium
    created_by: str = Field(..., min_length=1)


class ReminderOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    lead_id: UUID
    assigned_to: str
    reminder_type: ReminderType
    title: str
    description: Optional[str] = None
    due_date: datetime
    status: ReminderStatus
    priority: ReminderPriority
    created_by: str
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    effective_status: ReminderStatus = ReminderStatus.pending

    @classmethod
    def from_model(cls, reminder, now: Optional[datetime] = None) -> "ReminderOut":
        out = cls.model_validate(reminder)
        out.effective_status = ReminderStatus(
            effective_status(
                out.status.value, out.due_date, now or datetime.now(timezone.utc)
            )
        )
        return out
