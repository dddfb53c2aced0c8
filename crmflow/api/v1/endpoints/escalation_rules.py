import logging
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from crmflow.api.deps import get_escalation_rule_repo, get_escalation_service
from crmflow.core.exceptions import EscalationRuleNotFoundError
from crmflow.repositories.escalation_rule_repository import EscalationRuleRepository
from crmflow.schemas.escalation import (
    EscalationRuleCreate,
    EscalationRuleOut,
    EscalationRuleUpdate,
    EscalationRunResponse,
)
from crmflow.services.escalation_service import EscalationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/escalation-rules", tags=["Escalation Rules"])


@router.get("", response_model=List[EscalationRuleOut])
async def list_escalation_rules(
    active_only: bool = Query(False),
    rule_repo: EscalationRuleRepository = Depends(get_escalation_rule_repo),
) -> List[EscalationRuleOut]:
    rules = await rule_repo.list_rules(active_only=active_only)
    return [EscalationRuleOut.model_validate(rule) for rule in rules]


@router.post("", response_model=EscalationRuleOut, status_code=201)
async def create_escalation_rule(
    request_body: EscalationRuleCreate,
    rule_repo: EscalationRuleRepository = Depends(get_escalation_rule_repo),
) -> EscalationRuleOut:
    """Create an escalation ladder; levels must be numbered ``1..n``."""
    rule = await rule_repo.create(**request_body.model_dump(mode="json"))
    await rule_repo.commit()
    logger.info("Created escalation rule %s (%s)", rule.id, rule.trigger_condition)
    return EscalationRuleOut.model_validate(rule)


@router.post("/run", response_model=EscalationRunResponse)
async def run_escalations_now(
    service: EscalationService = Depends(get_escalation_service),
) -> EscalationRunResponse:
    """Run one escalation pass immediately instead of waiting for the loop."""
    return await service.run_once()


@router.get("/{rule_id}", response_model=EscalationRuleOut)
async def get_escalation_rule(
    rule_id: UUID,
    rule_repo: EscalationRuleRepository = Depends(get_escalation_rule_repo),
) -> EscalationRuleOut:
    rule = await rule_repo.get_by_id(rule_id)
    if not rule:
        raise EscalationRuleNotFoundError()
    return EscalationRuleOut.model_validate(rule)


@router.patch("/{rule_id}", response_model=EscalationRuleOut)
async def update_escalation_rule(
    rule_id: UUID,
    request_body: EscalationRuleUpdate,
    rule_repo: EscalationRuleRepository = Depends(get_escalation_rule_repo),
) -> EscalationRuleOut:
    rule = await rule_repo.get_by_id(rule_id)
    if not rule:
        raise EscalationRuleNotFoundError()
    rule = await rule_repo.update(
        rule, request_body.model_dump(mode="json", exclude_unset=True)
    )
    await rule_repo.commit()
    return EscalationRuleOut.model_validate(rule)


@router.delete("/{rule_id}", status_code=204)
async def delete_escalation_rule(
    rule_id: UUID,
    rule_repo: EscalationRuleRepository = Depends(get_escalation_rule_repo),
) -> None:
    rule = await rule_repo.get_by_id(rule_id)
    if not rule:
        raise EscalationRuleNotFoundError()
    await rule_repo.delete(rule)
    await rule_repo.commit()
