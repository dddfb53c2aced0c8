from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from crmflow.api.deps import get_execution_repo
from crmflow.core.exceptions import ExecutionNotFoundError
from crmflow.repositories.execution_repository import ExecutionRepository
from crmflow.schemas.workflow import WorkflowExecutionOut

router = APIRouter(prefix="/workflow-executions", tags=["Workflow Executions"])


@router.get("", response_model=List[WorkflowExecutionOut])
async def list_workflow_executions(
    rule_id: Optional[UUID] = Query(None),
    lead_id: Optional[UUID] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    execution_repo: ExecutionRepository = Depends(get_execution_repo),
) -> List[WorkflowExecutionOut]:
    """Most recent executions first, optionally filtered by rule or lead."""
    rows = await execution_repo.list_executions(
        rule_id=rule_id, lead_id=lead_id, limit=limit
    )
    return [WorkflowExecutionOut.model_validate(row) for row in rows]


@router.get("/{execution_id}", response_model=WorkflowExecutionOut)
async def get_workflow_execution(
    execution_id: UUID,
    execution_repo: ExecutionRepository = Depends(get_execution_repo),
) -> WorkflowExecutionOut:
    row = await execution_repo.get_by_id(execution_id)
    if not row:
        raise ExecutionNotFoundError()
    return WorkflowExecutionOut.model_validate(row)
