import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional, Union
from uuid import UUID

from crmflow.core.constants import ALLOWED_REMINDER_TRANSITIONS
from crmflow.core.exceptions import (
    InvalidStatusTransitionError,
    ReminderNotFoundError,
)
from crmflow.models.reminder import FollowUpReminder
from crmflow.repositories.base import to_uuid
from crmflow.repositories.reminder_repository import ReminderRepository
from crmflow.schemas.common import ReminderStatus
from crmflow.schemas.reminder import ReminderCreate, effective_status

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReminderService:
    """Follow-up reminders: creation, listing and status changes.

    ``overdue`` is never written; it is derived from ``due_date`` when a
    reminder is read (see :func:`crmflow.schemas.reminder.effective_status`).
    """

    def __init__(
        self,
        reminder_repo: ReminderRepository,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._reminder_repo = reminder_repo
        self._clock = clock

    async def create_reminder(
        self,
        lead_id: Union[UUID, str],
        assigned_to: str,
        reminder_type: str,
        title: str,
        description: str,
        due_date: datetime,
        priority: str,
        created_by: str,
    ) -> UUID:
        """Create a pending reminder and return its ID."""
        reminder = await self._reminder_repo.create(
            lead_id=to_uuid(lead_id, "lead id"),
            assigned_to=assigned_to,
            reminder_type=reminder_type,
            title=title,
            description=description,
            due_date=due_date,
            priority=priority,
            created_by=created_by,
            status=ReminderStatus.pending.value,
        )
        logger.info(
            "Reminder %s (%s) for lead %s due %s",
            reminder.id,
            reminder_type,
            lead_id,
            due_date.isoformat(),
        )
        return reminder.id

    async def create(self, data: ReminderCreate) -> FollowUpReminder:
        reminder_id = await self.create_reminder(
            lead_id=data.lead_id,
            assigned_to=data.assigned_to,
            reminder_type=data.reminder_type.value,
            title=data.title,
            description=data.description or "",
            due_date=data.due_date,
            priority=data.priority.value,
            created_by=data.created_by,
        )
        return await self.get(reminder_id)

    async def get(self, reminder_id: UUID) -> FollowUpReminder:
        reminder = await self._reminder_repo.get_by_id(reminder_id)
        if not reminder:
            raise ReminderNotFoundError()
        return reminder

    async def list_reminders(
        self,
        assigned_to: Optional[str] = None,
        lead_id: Optional[UUID] = None,
        status: Optional[ReminderStatus] = None,
    ) -> List[FollowUpReminder]:
        """List reminders by due date.

        Filtering on ``overdue`` selects pending reminders past their due
        date, since that status is never stored.
        """
        if status == ReminderStatus.overdue:
            pending = await self._reminder_repo.list_reminders(
                assigned_to=assigned_to,
                lead_id=lead_id,
                status=ReminderStatus.pending.value,
            )
            now = self._clock()
            return [
                r
                for r in pending
                if effective_status(r.status, r.due_date, now)
                == ReminderStatus.overdue.value
            ]
        return await self._reminder_repo.list_reminders(
            assigned_to=assigned_to,
            lead_id=lead_id,
            status=status.value if status else None,
        )

    async def list_overdue(self) -> List[FollowUpReminder]:
        return await self._reminder_repo.list_pending_due_before(self._clock())

    async def complete(self, reminder_id: UUID) -> FollowUpReminder:
        return await self._transition(
            reminder_id, ReminderStatus.completed, completed_at=self._clock()
        )

    async def cancel(self, reminder_id: UUID) -> FollowUpReminder:
        return await self._transition(reminder_id, ReminderStatus.cancelled)

    async def _transition(
        self,
        reminder_id: UUID,
        new_status: ReminderStatus,
        completed_at: Optional[datetime] = None,
    ) -> FollowUpReminder:
        reminder = await self.get(reminder_id)
        allowed = ALLOWED_REMINDER_TRANSITIONS.get(reminder.status, [])
        if new_status.value not in allowed:
            raise InvalidStatusTransitionError(
                f"Cannot move reminder from '{reminder.status}' to '{new_status.value}'"
            )
        reminder = await self._reminder_repo.set_status(
            reminder, new_status.value, completed_at=completed_at
        )
        logger.info("Reminder %s -> %s", reminder_id, new_status.value)
        return reminder
