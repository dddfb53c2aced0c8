from typing import List, Optional
from uuid import UUID

from sqlalchemy import and_, func, select

from crmflow.core.constants import TERMINAL_LEAD_STATUSES
from crmflow.models.agent import Agent
from crmflow.models.lead import Lead
from crmflow.repositories.base import BaseRepository


class AgentRepository(BaseRepository):
    """Encapsulates every SQL query that touches the ``agents`` table."""

    async def get_by_id(self, agent_id: UUID) -> Optional[Agent]:
        """Return a single agent by primary key, or ``None``."""
        result = await self._db.execute(select(Agent).where(Agent.id == agent_id))
        return result.scalar_one_or_none()

    async def get_active_agent_ids(self) -> List[UUID]:
        """Return IDs of active agents in a stable order (by ID)."""
        result = await self._db.execute(
            select(Agent.id).where(Agent.is_active.is_(True)).order_by(Agent.id)
        )
        return list(result.scalars().all())

    async def get_least_loaded_agent_id(self) -> Optional[UUID]:
        """Return the active agent with the fewest non-terminal leads.

        Ties go to the lowest agent ID so the choice is deterministic.
        """
        workload = func.count(Lead.id)
        query = (
            select(Agent.id)
            .outerjoin(
                Lead,
                and_(
                    Lead.assigned_agent_id == Agent.id,
                    Lead.status.notin_(TERMINAL_LEAD_STATUSES),
                ),
            )
            .where(Agent.is_active.is_(True))
            .group_by(Agent.id)
            .order_by(workload.asc(), Agent.id.asc())
            .limit(1)
        )
        result = await self._db.execute(query)
        return result.scalar_one_or_none()
