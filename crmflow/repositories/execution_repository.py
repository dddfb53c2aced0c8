"""Execution log: append-only store for ``WorkflowExecution`` records."""

from typing import List, Optional
from uuid import UUID

from sqlalchemy import select, update

from crmflow.models.workflow_execution import WorkflowExecutionModel
from crmflow.repositories.base import BaseRepository, to_uuid
from crmflow.schemas.workflow import WorkflowExecution


class ExecutionRepository(BaseRepository):
    """Records execution attempts.

    A row is inserted when the execution is created and updated as it
    moves through its states; rows are never deleted.
    """

    async def record(self, execution: WorkflowExecution) -> None:
        """Insert a freshly created execution."""
        self._db.add(
            WorkflowExecutionModel(
                id=execution.id,
                rule_id=execution.rule_id,
                lead_id=to_uuid(execution.lead_id, "lead id"),
                status=execution.status.value,
                started_at=execution.started_at,
            )
        )
        await self._db.flush()

    async def update(self, execution: WorkflowExecution) -> None:
        """Persist the status/result fields of an execution."""
        await self._db.execute(
            update(WorkflowExecutionModel)
            .where(WorkflowExecutionModel.id == execution.id)
            .values(
                status=execution.status.value,
                completed_at=execution.completed_at,
                error_message=execution.error_message,
                result_data=execution.result_data,
            )
        )

    async def get_by_id(self, execution_id: UUID) -> Optional[WorkflowExecutionModel]:
        result = await self._db.execute(
            select(WorkflowExecutionModel).where(
                WorkflowExecutionModel.id == execution_id
            )
        )
        return result.scalar_one_or_none()

    async def list_executions(
        self,
        rule_id: Optional[UUID] = None,
        lead_id: Optional[UUID] = None,
        limit: int = 100,
    ) -> List[WorkflowExecutionModel]:
        """Return the most recent executions, newest first."""
        query = select(WorkflowExecutionModel)
        if rule_id is not None:
            query = query.where(WorkflowExecutionModel.rule_id == rule_id)
        if lead_id is not None:
            query = query.where(WorkflowExecutionModel.lead_id == lead_id)
        query = query.order_by(WorkflowExecutionModel.started_at.desc()).limit(limit)
        result = await self._db.execute(query)
        return list(result.scalars().all())
