"""Tests for WorkflowService orchestration (events, on-demand runs, rule CRUD)."""

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from crmflow.core.cache import CacheService
from crmflow.core.exceptions import (
    InactiveRuleError,
    InvalidParametersError,
    LeadNotFoundError,
    RuleNotFoundError,
)
from crmflow.schemas.common import ExecutionStatus, RuleType
from crmflow.schemas.workflow import (
    WorkflowExecution,
    WorkflowRuleCreate,
    WorkflowRuleUpdate,
)
from crmflow.services.workflow_service import WorkflowService

_US_CONDITION = [{"field": "country", "operator": "equals", "value": "US"}]


def _rule_row(
    *,
    name="rule",
    priority=1,
    conditions=None,
    actions=None,
    is_active=True,
    rule_type="lead_assignment",
):
    row = MagicMock()
    row.id = uuid4()
    row.name = name
    row.type = rule_type
    row.conditions = conditions if conditions is not None else []
    row.actions = actions if actions is not None else [
        {"type": "assign_agent", "parameters": {"strategy": "round_robin"}}
    ]
    row.is_active = is_active
    row.priority = priority
    row.created_by = None
    row.created_at = datetime(2026, 1, 1, tzinfo=timezone.utc)
    row.updated_at = None
    return row


def _completed(rule, lead_id) -> WorkflowExecution:
    execution = WorkflowExecution(rule_id=rule.id, lead_id=lead_id)
    execution.transition(ExecutionStatus.running)
    execution.transition(ExecutionStatus.completed)
    return execution


def _make_service(rows, record=None, cache=None):
    lead_id = uuid4()
    rule_repo = AsyncMock()
    rule_repo.list_rules = AsyncMock(return_value=rows)
    lead_repo = AsyncMock()
    lead_repo.get_record = AsyncMock(
        return_value=None if record is False else {"id": str(lead_id), **(record or {})}
    )
    execution_repo = AsyncMock()
    dispatcher = AsyncMock()
    dispatcher.dispatch = AsyncMock(
        side_effect=lambda rule, rec: _completed(rule, lead_id)
    )
    service = WorkflowService(
        rule_repo=rule_repo,
        lead_repo=lead_repo,
        execution_repo=execution_repo,
        dispatcher=dispatcher,
        cache=cache or CacheService(),
    )
    return service, lead_id, dispatcher, rule_repo, execution_repo


class TestProcessEvent:
    """Event-driven evaluation of all rules of one type."""

    @pytest.mark.asyncio
    async def test_us_lead_dispatches_matching_rule(self):
        row = _rule_row(conditions=_US_CONDITION)
        service, lead_id, dispatcher, rule_repo, _ = _make_service(
            [row], record={"country": "US"}
        )

        executions = await service.process_event(RuleType.lead_assignment, lead_id)

        assert len(executions) == 1
        dispatcher.dispatch.assert_awaited_once()
        rule_repo.commit.assert_awaited()

    @pytest.mark.asyncio
    async def test_uk_lead_never_dispatches(self):
        row = _rule_row(conditions=_US_CONDITION)
        service, lead_id, dispatcher, _, _ = _make_service(
            [row], record={"country": "UK"}
        )

        executions = await service.process_event(RuleType.lead_assignment, lead_id)

        assert executions == []
        dispatcher.dispatch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_dispatch_order_follows_priority(self):
        low = _rule_row(name="low", priority=1)
        high = _rule_row(name="high", priority=9)
        service, lead_id, dispatcher, _, _ = _make_service([low, high])

        await service.process_event(RuleType.lead_assignment, lead_id)

        names = [call.args[0].name for call in dispatcher.dispatch.await_args_list]
        assert names == ["high", "low"]

    @pytest.mark.asyncio
    async def test_one_failing_rule_does_not_stop_batch(self):
        first = _rule_row(name="first", priority=3)
        broken = _rule_row(name="broken", priority=2)
        last = _rule_row(name="last", priority=1)
        service, lead_id, dispatcher, rule_repo, _ = _make_service(
            [first, broken, last]
        )

        def dispatch(rule, record):
            if rule.name == "broken":
                raise RuntimeError("database went away")
            return _completed(rule, lead_id)

        dispatcher.dispatch = AsyncMock(side_effect=dispatch)

        executions = await service.process_event(RuleType.lead_assignment, lead_id)

        assert len(executions) == 2
        assert dispatcher.dispatch.await_count == 3
        rule_repo.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_missing_lead_raises(self):
        service, lead_id, _, _, _ = _make_service([], record=False)
        with pytest.raises(LeadNotFoundError):
            await service.process_event(RuleType.lead_assignment, lead_id)

    @pytest.mark.asyncio
    async def test_same_lead_and_type_are_serialized(self):
        """Two events for one lead never run their dispatches concurrently."""
        row = _rule_row()
        service, lead_id, dispatcher, _, _ = _make_service([row])
        in_flight = 0
        peak = 0

        async def slow_dispatch(rule, record):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return _completed(rule, lead_id)

        dispatcher.dispatch = AsyncMock(side_effect=slow_dispatch)

        await asyncio.gather(
            service.process_event(RuleType.lead_assignment, lead_id),
            service.process_event(RuleType.lead_assignment, lead_id),
        )

        assert dispatcher.dispatch.await_count == 2
        assert peak == 1

    @pytest.mark.asyncio
    async def test_active_rules_served_from_cache(self, mock_redis, mock_cache):
        """A cache hit skips the rule store entirely."""
        row = _rule_row()
        service, lead_id, _, rule_repo, _ = _make_service([row], cache=mock_cache)

        await service.process_event(RuleType.lead_assignment, lead_id)
        mock_redis.setex.assert_awaited_once()
        cached_payload = mock_redis.setex.await_args.args[2]

        mock_redis.get = AsyncMock(return_value=cached_payload)
        rule_repo.list_rules.reset_mock()
        await service.process_event(RuleType.lead_assignment, lead_id)

        rule_repo.list_rules.assert_not_awaited()


class TestExecuteRule:
    """On-demand execution of a single rule."""

    @pytest.mark.asyncio
    async def test_missing_rule(self):
        service, lead_id, _, rule_repo, _ = _make_service([])
        rule_repo.get_by_id = AsyncMock(return_value=None)
        with pytest.raises(RuleNotFoundError):
            await service.execute_rule(uuid4(), lead_id)

    @pytest.mark.asyncio
    async def test_inactive_rule(self):
        row = _rule_row(is_active=False)
        service, lead_id, dispatcher, rule_repo, _ = _make_service([])
        rule_repo.get_by_id = AsyncMock(return_value=row)
        with pytest.raises(InactiveRuleError):
            await service.execute_rule(row.id, lead_id)
        dispatcher.dispatch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_conditions_not_met_records_completed_execution(self):
        row = _rule_row(conditions=_US_CONDITION)
        service, lead_id, dispatcher, rule_repo, execution_repo = _make_service(
            [], record={"country": "UK"}
        )
        rule_repo.get_by_id = AsyncMock(return_value=row)

        execution = await service.execute_rule(row.id, lead_id)

        assert execution.status == ExecutionStatus.completed
        assert execution.result_data == {"message": "Conditions not met"}
        dispatcher.dispatch.assert_not_awaited()
        execution_repo.record.assert_awaited_once()
        execution_repo.update.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_matching_lead_is_dispatched(self):
        row = _rule_row(conditions=_US_CONDITION)
        service, lead_id, dispatcher, rule_repo, _ = _make_service(
            [], record={"country": "US"}
        )
        rule_repo.get_by_id = AsyncMock(return_value=row)

        execution = await service.execute_rule(row.id, lead_id)

        assert execution.status == ExecutionStatus.completed
        dispatcher.dispatch.assert_awaited_once()
        rule_repo.commit.assert_awaited_once()


class TestRuleWrites:
    """Rule CRUD returns the stored record and invalidates the cache."""

    @pytest.mark.asyncio
    async def test_create_invalidates_type_cache(self, mock_redis, mock_cache):
        created = _rule_row()
        service, _, _, rule_repo, _ = _make_service([], cache=mock_cache)
        rule_repo.create = AsyncMock(return_value=created)

        result = await service.create_rule(
            WorkflowRuleCreate(
                name="US leads",
                type=RuleType.lead_assignment,
                conditions=_US_CONDITION,
                actions=[{"type": "assign_agent", "parameters": {"strategy": "round_robin"}}],
            )
        )

        assert result is created
        rule_repo.commit.assert_awaited_once()
        mock_redis.delete.assert_awaited_once_with("workflow_rules:active:lead_assignment")

    @pytest.mark.asyncio
    async def test_update_type_checks_existing_actions(self):
        """Moving an escalate rule to email_automation is rejected."""
        row = _rule_row(
            rule_type="escalation",
            actions=[{"type": "escalate", "parameters": {"escalate_to": ["m"]}}],
        )
        service, _, _, rule_repo, _ = _make_service([])
        rule_repo.get_by_id = AsyncMock(return_value=row)

        with pytest.raises(InvalidParametersError):
            await service.update_rule(
                row.id, WorkflowRuleUpdate(type=RuleType.email_automation)
            )
        rule_repo.update.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_delete_missing_rule(self):
        service, _, _, rule_repo, _ = _make_service([])
        rule_repo.get_by_id = AsyncMock(return_value=None)
        with pytest.raises(RuleNotFoundError):
            await service.delete_rule(uuid4())
