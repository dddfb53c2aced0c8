from datetime import datetime
from typing import List
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert

from crmflow.models.escalation_state import EscalationState
from crmflow.repositories.base import BaseRepository


class EscalationStateRepository(BaseRepository):
    """Persists which escalation levels already fired per (rule, lead)."""

    async def get_or_create(
        self, escalation_rule_id: UUID, lead_id: UUID, triggered_at: datetime
    ) -> EscalationState:
        """Return the state row, creating it with *triggered_at* if absent.

        ``ON CONFLICT DO NOTHING`` keeps the first observed trigger time
        when two tickers race on the same pair.
        """
        await self._db.execute(
            insert(EscalationState)
            .values(
                escalation_rule_id=escalation_rule_id,
                lead_id=lead_id,
                triggered_at=triggered_at,
            )
            .on_conflict_do_nothing(constraint="uq_escalation_state_rule_lead")
        )
        result = await self._db.execute(
            select(EscalationState).where(
                EscalationState.escalation_rule_id == escalation_rule_id,
                EscalationState.lead_id == lead_id,
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()

    async def compare_and_set_levels(
        self, state_id: UUID, expected_version: int, levels_fired: List[int]
    ) -> bool:
        """Write *levels_fired* only if nobody else updated the row.

        Returns ``False`` when the version moved underneath us.
        """
        result = await self._db.execute(
            update(EscalationState)
            .where(
                EscalationState.id == state_id,
                EscalationState.version == expected_version,
            )
            .values(
                levels_fired=sorted(levels_fired),
                version=expected_version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
