from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request

from crmflow.api.deps import get_workflow_service
from crmflow.core.rate_limit import limiter
from crmflow.schemas.common import RuleType
from crmflow.schemas.workflow import (
    ExecuteRuleRequest,
    WorkflowEventRequest,
    WorkflowExecutionOut,
    WorkflowRuleCreate,
    WorkflowRuleOut,
    WorkflowRuleUpdate,
)
from crmflow.services.workflow_service import WorkflowService

router = APIRouter(prefix="/workflow-rules", tags=["Workflow Rules"])


@router.get("", response_model=List[WorkflowRuleOut])
async def list_workflow_rules(
    type: Optional[RuleType] = Query(None, description="Only rules of this type"),
    active_only: bool = Query(False),
    service: WorkflowService = Depends(get_workflow_service),
) -> List[WorkflowRuleOut]:
    """List rules in evaluation order (priority DESC, oldest first)."""
    rules = await service.list_rules(rule_type=type, active_only=active_only)
    return [WorkflowRuleOut.model_validate(rule) for rule in rules]


@router.post("", response_model=WorkflowRuleOut, status_code=201)
async def create_workflow_rule(
    request_body: WorkflowRuleCreate,
    service: WorkflowService = Depends(get_workflow_service),
) -> WorkflowRuleOut:
    rule = await service.create_rule(request_body)
    return WorkflowRuleOut.model_validate(rule)


@router.post("/events", response_model=List[WorkflowExecutionOut])
async def process_workflow_event(
    request_body: WorkflowEventRequest,
    service: WorkflowService = Depends(get_workflow_service),
) -> List[WorkflowExecutionOut]:
    """Run every matching active rule of ``rule_type`` against one lead.

    Returns one execution per matched rule, in evaluation order.
    """
    executions = await service.process_event(
        request_body.rule_type, request_body.lead_id
    )
    return [WorkflowExecutionOut.model_validate(e.model_dump()) for e in executions]


@router.get("/{rule_id}", response_model=WorkflowRuleOut)
async def get_workflow_rule(
    rule_id: UUID,
    service: WorkflowService = Depends(get_workflow_service),
) -> WorkflowRuleOut:
    rule = await service.get_rule(rule_id)
    return WorkflowRuleOut.model_validate(rule)


@router.patch("/{rule_id}", response_model=WorkflowRuleOut)
async def update_workflow_rule(
    rule_id: UUID,
    request_body: WorkflowRuleUpdate,
    service: WorkflowService = Depends(get_workflow_service),
) -> WorkflowRuleOut:
    rule = await service.update_rule(rule_id, request_body)
    return WorkflowRuleOut.model_validate(rule)


@router.delete("/{rule_id}", status_code=204)
async def delete_workflow_rule(
    rule_id: UUID,
    service: WorkflowService = Depends(get_workflow_service),
) -> None:
    await service.delete_rule(rule_id)


@router.post("/{rule_id}/execute", response_model=WorkflowExecutionOut)
@limiter.limit("30/minute")
async def execute_workflow_rule(
    request: Request,
    rule_id: UUID,
    request_body: ExecuteRuleRequest,
    service: WorkflowService = Depends(get_workflow_service),
) -> WorkflowExecutionOut:
    """Run one rule against one lead on demand.

    Rate-limited to 30 requests/minute per IP.  A lead that does not
    match the rule's conditions yields a ``completed`` execution with
    ``result_data.message == "Conditions not met"``.
    """
    execution = await service.execute_rule(rule_id, request_body.lead_id)
    return WorkflowExecutionOut.model_validate(execution.model_dump())
