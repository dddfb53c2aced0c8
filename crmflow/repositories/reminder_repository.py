from datetime import datetime
from typing import Any, List, Optional
from uuid import UUID

from sqlalchemy import select

from crmflow.models.reminder import FollowUpReminder
from crmflow.repositories.base import BaseRepository


class ReminderRepository(BaseRepository):
    """Encapsulates queries against the ``follow_up_reminders`` table."""

    async def get_by_id(self, reminder_id: UUID) -> Optional[FollowUpReminder]:
        result = await self._db.execute(
            select(FollowUpReminder).where(FollowUpReminder.id == reminder_id)
        )
        return result.scalar_one_or_none()

    async def create(self, **kwargs: Any) -> FollowUpReminder:
        """Insert a new reminder and return it with server defaults loaded."""
        return await self._save(FollowUpReminder(**kwargs))

    async def list_reminders(
        self,
        assigned_to: Optional[str] = None,
        lead_id: Optional[UUID] = None,
        status: Optional[str] = None,
    ) -> List[FollowUpReminder]:
        """Return reminders ordered by due date, soonest first."""
        query = select(FollowUpReminder)
        if assigned_to is not None:
            query = query.where(FollowUpReminder.assigned_to == assigned_to)
        if lead_id is not None:
            query = query.where(FollowUpReminder.lead_id == lead_id)
        if status is not None:
            query = query.where(FollowUpReminder.status == status)
        query = query.order_by(FollowUpReminder.due_date.asc())
        result = await self._db.execute(query)
        return list(result.scalars().all())

    async def list_pending_due_before(self, now: datetime) -> List[FollowUpReminder]:
        """Pending reminders whose due date has passed."""
        result = await self._db.execute(
            select(FollowUpReminder)
            .where(
                FollowUpReminder.status == "pending",
                FollowUpReminder.due_date < now,
            )
            .order_by(FollowUpReminder.due_date.asc())
        )
        return list(result.scalars().all())

    async def set_status(
        self,
        reminder: FollowUpReminder,
        status: str,
        completed_at: Optional[datetime] = None,
    ) -> FollowUpReminder:
        reminder.status = status
        if completed_at is not None:
            reminder.completed_at = completed_at
        await self._db.flush()
        return reminder
