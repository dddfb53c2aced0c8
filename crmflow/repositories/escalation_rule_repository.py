from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import select

from crmflow.models.escalation_rule import EscalationRuleModel
from crmflow.repositories.base import BaseRepository


class EscalationRuleRepository(BaseRepository):
    """Encapsulates queries against the ``escalation_rules`` table."""

    async def get_by_id(self, rule_id: UUID) -> Optional[EscalationRuleModel]:
        result = await self._db.execute(
            select(EscalationRuleModel).where(EscalationRuleModel.id == rule_id)
        )
        return result.scalar_one_or_none()

    async def list_rules(self, active_only: bool = False) -> List[EscalationRuleModel]:
        """Return escalation rules, newest first."""
        query = select(EscalationRuleModel)
        if active_only:
            query = query.where(EscalationRuleModel.is_active.is_(True))
        query = query.order_by(EscalationRuleModel.created_at.desc())
        result = await self._db.execute(query)
        return list(result.scalars().all())

    async def create(self, **kwargs: Any) -> EscalationRuleModel:
        return await self._save(EscalationRuleModel(**kwargs))

    async def update(
        self, rule: EscalationRuleModel, changes: Dict[str, Any]
    ) -> EscalationRuleModel:
        return await self._apply(rule, changes)

    async def delete(self, rule: EscalationRuleModel) -> None:
        await self._remove(rule)
