import asyncio
import logging
import weakref
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from crmflow.core.cache import CacheService
from crmflow.core.config import settings
from crmflow.core.constants import ACTIVE_RULES_CACHE_PREFIX
from crmflow.core.exceptions import (
    InactiveRuleError,
    LeadNotFoundError,
    RuleNotFoundError,
)
from crmflow.models.workflow_rule import WorkflowRuleModel
from crmflow.repositories.execution_repository import ExecutionRepository
from crmflow.repositories.lead_repository import LeadRepository
from crmflow.repositories.workflow_rule_repository import WorkflowRuleRepository
from crmflow.schemas.common import ExecutionStatus, RuleType
from crmflow.schemas.workflow import (
    WorkflowExecution,
    WorkflowRule,
    WorkflowRuleCreate,
    WorkflowRuleUpdate,
    check_action_vocabulary,
    parse_action,
)
from crmflow.services.action_dispatcher import ActionDispatcher
from crmflow.services.condition_evaluator import evaluate
from crmflow.services.rule_selector import select_applicable

logger = logging.getLogger(__name__)


def _active_rules_key(rule_type: str) -> str:
    return f"{ACTIVE_RULES_CACHE_PREFIX}:{rule_type}"


class WorkflowService:
    """Rule management and the evaluate-then-dispatch pipeline.

    Dispatches for the same ``(lead_id, rule_type)`` pair are serialized
    through a process-wide lock registry, so two events for one lead
    never interleave their actions.  Different pairs run concurrently.
    """

    # Process-wide; locks disappear once nobody is waiting on them
    _locks: "weakref.WeakValueDictionary[Tuple[str, str], asyncio.Lock]" = (
        weakref.WeakValueDictionary()
    )

    def __init__(
        self,
        rule_repo: WorkflowRuleRepository,
        lead_repo: LeadRepository,
        execution_repo: ExecutionRepository,
        dispatcher: ActionDispatcher,
        cache: Optional[CacheService] = None,
    ) -> None:
        self._rule_repo = rule_repo
        self._lead_repo = lead_repo
        self._execution_repo = execution_repo
        self._dispatcher = dispatcher
        self._cache: CacheService = cache or CacheService()

    # ------------------------------------------------------------------
    # Rule management
    # ------------------------------------------------------------------

    async def list_rules(
        self, rule_type: Optional[RuleType] = None, active_only: bool = False
    ) -> List[WorkflowRuleModel]:
        return await self._rule_repo.list_rules(
            rule_type=rule_type.value if rule_type else None,
            active_only=active_only,
        )

    async def get_rule(self, rule_id: UUID) -> WorkflowRuleModel:
        rule = await self._rule_repo.get_by_id(rule_id)
        if not rule:
            raise RuleNotFoundError()
        return rule

    async def create_rule(self, data: WorkflowRuleCreate) -> WorkflowRuleModel:
        payload = data.model_dump(mode="json")
        rule = await self._rule_repo.create(**payload)
        await self._rule_repo.commit()
        await self._cache.invalidate([_active_rules_key(rule.type)])
        logger.info("Created %s rule %s (%s)", rule.type, rule.id, rule.name)
        return rule

    async def update_rule(
        self, rule_id: UUID, data: WorkflowRuleUpdate
    ) -> WorkflowRuleModel:
        rule = await self.get_rule(rule_id)
        changes = data.model_dump(mode="json", exclude_unset=True)
        old_type = rule.type
        new_type = changes.get("type") or old_type

        # Type and action list must stay compatible, whichever one changed
        if "type" in changes or "actions" in changes:
            raw_actions = changes.get("actions", rule.actions or [])
            actions = [parse_action(raw) for raw in raw_actions]
            check_action_vocabulary(new_type, actions)

        rule = await self._rule_repo.update(rule, changes)
        await self._rule_repo.commit()
        await self._cache.invalidate(
            {_active_rules_key(old_type), _active_rules_key(new_type)}
        )
        logger.info("Updated rule %s: %s", rule_id, ", ".join(sorted(changes)))
        return rule

    async def delete_rule(self, rule_id: UUID) -> None:
        rule = await self.get_rule(rule_id)
        rule_type = rule.type
        await self._rule_repo.delete(rule)
        await self._rule_repo.commit()
        await self._cache.invalidate([_active_rules_key(rule_type)])
        logger.info("Deleted rule %s", rule_id)

    async def active_rules(self, rule_type: RuleType) -> List[WorkflowRule]:
        """Active rules of one type, served from Redis when cached."""
        key = _active_rules_key(rule_type.value)
        cached = await self._cache.get_json(key)
        if cached is not None:
            return [WorkflowRule.model_validate(item) for item in cached]

        rows = await self._rule_repo.list_rules(
            rule_type=rule_type.value, active_only=True
        )
        rules = [WorkflowRule.model_validate(row) for row in rows]
        await self._cache.set_json(
            key,
            [rule.model_dump(mode="json") for rule in rules],
            ttl=settings.REDIS_CACHE_TTL,
        )
        return rules

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def process_event(
        self, rule_type: RuleType, lead_id: UUID
    ) -> List[WorkflowExecution]:
        """Run every matching active rule of *rule_type* for one lead.

        A rule whose dispatch blows up is logged and skipped; the rest of
        the batch still runs.
        """
        async with self._lock_for(lead_id, rule_type):
            record = await self._load_record(lead_id)
            rules = await self.active_rules(rule_type)
            matched = select_applicable(rules, rule_type, record)
            logger.info(
                "Event %s for lead %s matched %d of %d rule(s)",
                rule_type.value,
                lead_id,
                len(matched),
                len(rules),
            )

            executions: List[WorkflowExecution] = []
            for rule in matched:
                try:
                    execution = await self._dispatcher.dispatch(rule, record)
                    await self._rule_repo.commit()
                except Exception:
                    logger.error(
                        "Dispatch of rule %s for lead %s aborted",
                        rule.id,
                        lead_id,
                        exc_info=True,
                    )
                    await self._rule_repo.rollback()
                    continue
                executions.append(execution)
                # Later rules act on the lead as earlier rules left it
                record = await self._load_record(lead_id)
            return executions

    async def execute_rule(self, rule_id: UUID, lead_id: UUID) -> WorkflowExecution:
        """Run one rule against one lead on demand."""
        row = await self.get_rule(rule_id)
        rule = WorkflowRule.model_validate(row)
        if not rule.is_active:
            raise InactiveRuleError()

        async with self._lock_for(lead_id, rule.type):
            record = await self._load_record(lead_id)
            if not evaluate(rule.conditions, record):
                execution = await self._record_no_match(rule, lead_id)
            else:
                execution = await self._dispatcher.dispatch(rule, record)
            await self._rule_repo.commit()
            return execution

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _lock_for(self, lead_id: UUID, rule_type: Any) -> asyncio.Lock:
        type_value = rule_type.value if hasattr(rule_type, "value") else str(rule_type)
        key = (str(lead_id), type_value)
        lock = WorkflowService._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            WorkflowService._locks[key] = lock
        return lock

    async def _load_record(self, lead_id: UUID) -> Dict[str, Any]:
        record = await self._lead_repo.get_record(lead_id)
        if record is None:
            raise LeadNotFoundError()
        return record

    async def _record_no_match(
        self, rule: WorkflowRule, lead_id: UUID
    ) -> WorkflowExecution:
        execution = WorkflowExecution(rule_id=rule.id, lead_id=lead_id)
        await self._execution_repo.record(execution)
        execution.transition(ExecutionStatus.running)
        execution.result_data = {"message": "Conditions not met"}
        execution.transition(ExecutionStatus.completed)
        await self._execution_repo.update(execution)
        logger.info("Rule %s not applicable to lead %s", rule.id, lead_id)
        return execution
