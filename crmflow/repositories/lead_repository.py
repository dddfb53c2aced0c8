from datetime import datetime
from typing import Any, Dict, List, Optional, Union
from uuid import UUID

from sqlalchemy import func, inspect, or_, select, update

from crmflow.core.constants import TERMINAL_LEAD_STATUSES
from crmflow.models.lead import Lead
from crmflow.repositories.base import BaseRepository, to_uuid


def lead_to_record(lead: Lead) -> Dict[str, Any]:
    """Flatten a ``Lead`` row into the mapping conditions are evaluated on.

    Columns holding ``NULL`` are left out so that conditions on them
    never match.
    """
    record: Dict[str, Any] = {}
    for column in inspect(Lead).columns:
        value = getattr(lead, column.key)
        if value is None:
            continue
        record[column.key] = str(value) if isinstance(value, UUID) else value
    return record


class LeadRepository(BaseRepository):
    """Lead provider: reads for rule evaluation, writes for actions."""

    async def get_by_id(self, lead_id: UUID) -> Optional[Lead]:
        """Return a single lead by primary key, or ``None``."""
        result = await self._db.execute(select(Lead).where(Lead.id == lead_id))
        return result.scalar_one_or_none()

    async def get_record(self, lead_id: UUID) -> Optional[Dict[str, Any]]:
        """Return the lead as a flat record, or ``None``."""
        lead = await self.get_by_id(lead_id)
        return lead_to_record(lead) if lead else None

    async def update_status(self, lead_id: Union[UUID, str], new_status: str) -> None:
        await self._db.execute(
            update(Lead)
            .where(Lead.id == to_uuid(lead_id, "lead id"))
            .values(status=new_status)
        )

    async def assign_agent(
        self, lead_id: Union[UUID, str], agent_id: Union[UUID, str]
    ) -> None:
        """Point the lead at *agent_id*; agent IDs arrive as text from rules."""
        agent_uuid = to_uuid(agent_id, "agent")
        await self._db.execute(
            update(Lead)
            .where(Lead.id == to_uuid(lead_id, "lead id"))
            .values(assigned_agent_id=agent_uuid)
        )

    async def find_not_contacted_since(self, cutoff: datetime) -> List[Lead]:
        """Active leads whose last contact (or creation) is before *cutoff*."""
        result = await self._db.execute(
            select(Lead).where(
                Lead.status.notin_(TERMINAL_LEAD_STATUSES),
                func.coalesce(Lead.last_contact, Lead.created_at) < cutoff,
            )
        )
        return list(result.scalars().all())

    async def find_kyc_pending_since(self, cutoff: datetime) -> List[Lead]:
        """Leads still waiting on KYC that registered before *cutoff*."""
        result = await self._db.execute(
            select(Lead).where(
                Lead.status.notin_(TERMINAL_LEAD_STATUSES),
                Lead.kyc_status == "pending",
                Lead.registration_date < cutoff,
            )
        )
        return list(result.scalars().all())

    async def find_high_value_inactive(
        self, min_balance: float, cutoff: datetime
    ) -> List[Lead]:
        """High-balance leads with no contact since *cutoff*."""
        result = await self._db.execute(
            select(Lead).where(
                Lead.status.notin_(TERMINAL_LEAD_STATUSES),
                Lead.balance >= min_balance,
                or_(Lead.last_contact.is_(None), Lead.last_contact < cutoff),
            )
        )
        return list(result.scalars().all())
