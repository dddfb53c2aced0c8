"""Rule store: CRUD against the ``workflow_rules`` table."""

from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import select

from crmflow.models.workflow_rule import WorkflowRuleModel
from crmflow.repositories.base import BaseRepository


class WorkflowRuleRepository(BaseRepository):
    async def get_by_id(self, rule_id: UUID) -> Optional[WorkflowRuleModel]:
        result = await self._db.execute(
            select(WorkflowRuleModel).where(WorkflowRuleModel.id == rule_id)
        )
        return result.scalar_one_or_none()

    async def list_rules(
        self, rule_type: Optional[str] = None, active_only: bool = False
    ) -> List[WorkflowRuleModel]:
        """Return rules ordered by priority DESC, then oldest first."""
        query = select(WorkflowRuleModel)
        if rule_type is not None:
            query = query.where(WorkflowRuleModel.type == rule_type)
        if active_only:
            query = query.where(WorkflowRuleModel.is_active.is_(True))
        query = query.order_by(
            WorkflowRuleModel.priority.desc(), WorkflowRuleModel.created_at.asc()
        )
        result = await self._db.execute(query)
        return list(result.scalars().all())

    async def create(self, **kwargs: Any) -> WorkflowRuleModel:
        return await self._save(WorkflowRuleModel(**kwargs))

    async def update(
        self, rule: WorkflowRuleModel, changes: Dict[str, Any]
    ) -> WorkflowRuleModel:
        return await self._apply(rule, changes)

    async def delete(self, rule: WorkflowRuleModel) -> None:
        await self._remove(rule)
