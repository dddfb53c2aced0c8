"""Tests for the ActionDispatcher: ordering, fail-fast and parameter errors."""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError

from crmflow.core.exceptions import CollaboratorError
from crmflow.schemas.common import ExecutionStatus, RuleType
from crmflow.schemas.workflow import WorkflowRule
from crmflow.services.action_dispatcher import ActionDispatcher, render_template
from crmflow.services.rule_selector import select_applicable

_NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _make_collaborators():
    agent_pool = AsyncMock()
    agent_pool.next_round_robin_agent = AsyncMock(return_value=uuid4())
    agent_pool.least_loaded_agent = AsyncMock(return_value=uuid4())

    lead_writer = AsyncMock()
    notifier = AsyncMock()
    notifier.send_email = AsyncMock(return_value={"status": "sent"})
    notifier.notify = AsyncMock(return_value={"notification_id": "n-1"})

    reminder_store = AsyncMock()
    reminder_store.create_reminder = AsyncMock(return_value=uuid4())

    execution_log = AsyncMock()
    statuses = []
    execution_log.record = AsyncMock(
        side_effect=lambda execution: statuses.append(execution.status)
    )
    execution_log.update = AsyncMock(
        side_effect=lambda execution: statuses.append(execution.status)
    )
    return {
        "agent_pool": agent_pool,
        "lead_writer": lead_writer,
        "notifier": notifier,
        "reminder_store": reminder_store,
        "execution_log": execution_log,
    }, statuses


def _make_dispatcher(collaborators, **kwargs) -> ActionDispatcher:
    return ActionDispatcher(clock=lambda: _NOW, **collaborators, **kwargs)


def _rule(actions, rule_type=RuleType.lead_assignment, conditions=None) -> WorkflowRule:
    return WorkflowRule(
        name="test rule",
        type=rule_type,
        conditions=conditions or [],
        actions=actions,
        priority=1,
    )


def _lead(**fields):
    record = {"id": str(uuid4()), "email": "lead@example.com", "first_name": "Ada"}
    record.update(fields)
    return record


class TestDispatchSuccess:
    """Happy-path dispatching."""

    @pytest.mark.asyncio
    async def test_specific_agent_end_to_end(self):
        """A US lead matches the US rule and is assigned to agent-42."""
        rule = _rule(
            actions=[
                {
                    "type": "assign_agent",
                    "parameters": {"strategy": "specific_agent", "agent_id": "agent-42"},
                }
            ],
            conditions=[{"field": "country", "operator": "equals", "value": "US"}],
        )
        lead = _lead(country="US")
        assert select_applicable([rule], RuleType.lead_assignment, lead) == [rule]

        collaborators, statuses = _make_collaborators()
        execution = await _make_dispatcher(collaborators).dispatch(rule, lead)

        assert execution.status == ExecutionStatus.completed
        assert execution.result_data["actions"][0]["agent_id"] == "agent-42"
        assert statuses == [
            ExecutionStatus.pending,
            ExecutionStatus.running,
            ExecutionStatus.completed,
        ]
        collaborators["lead_writer"].assign_agent.assert_awaited_once()
        assert execution.completed_at is not None

    @pytest.mark.asyncio
    async def test_uk_lead_never_reaches_dispatcher(self):
        rule = _rule(
            actions=[
                {
                    "type": "assign_agent",
                    "parameters": {"strategy": "specific_agent", "agent_id": "agent-42"},
                }
            ],
            conditions=[{"field": "country", "operator": "equals", "value": "US"}],
        )
        assert select_applicable([rule], RuleType.lead_assignment, _lead(country="UK")) == []

    @pytest.mark.asyncio
    async def test_workload_based_uses_least_loaded(self):
        collaborators, _ = _make_collaborators()
        agent_id = uuid4()
        collaborators["agent_pool"].least_loaded_agent = AsyncMock(return_value=agent_id)
        rule = _rule([{"type": "assign_agent", "parameters": {"strategy": "workload_based"}}])

        execution = await _make_dispatcher(collaborators).dispatch(rule, _lead())

        assert execution.result_data["actions"][0]["agent_id"] == str(agent_id)
        collaborators["agent_pool"].next_round_robin_agent.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_follow_up_due_date_and_assignee(self):
        """Reminders go to the assigned agent, due ``delay_hours`` from now."""
        collaborators, _ = _make_collaborators()
        rule = _rule(
            [{"type": "create_reminder", "parameters": {"delay_hours": 48, "reminder_type": "call"}}],
            rule_type=RuleType.follow_up,
        )
        lead = _lead(assigned_agent_id="agent-7")

        execution = await _make_dispatcher(collaborators).dispatch(rule, lead)

        assert execution.status == ExecutionStatus.completed
        kwargs = collaborators["reminder_store"].create_reminder.await_args.kwargs
        assert kwargs["assigned_to"] == "agent-7"
        assert kwargs["due_date"] == _NOW + timedelta(hours=48)
        assert kwargs["reminder_type"] == "call"

    @pytest.mark.asyncio
    async def test_later_actions_see_earlier_assignment(self):
        """A task created after assign_agent goes to the new agent."""
        collaborators, _ = _make_collaborators()
        rule = _rule(
            [
                {"type": "assign_agent", "parameters": {"strategy": "specific_agent", "agent_id": "agent-9"}},
                {"type": "create_task", "parameters": {"title": "Call $first_name"}},
            ]
        )

        await _make_dispatcher(collaborators).dispatch(rule, _lead())

        kwargs = collaborators["reminder_store"].create_reminder.await_args.kwargs
        assert kwargs["assigned_to"] == "agent-9"
        assert kwargs["title"] == "Call Ada"

    @pytest.mark.asyncio
    async def test_escalate_notifies_every_target(self):
        collaborators, _ = _make_collaborators()
        rule = _rule(
            [{"type": "escalate", "parameters": {"escalate_to": ["mgr-1", "mgr-2"]}}],
            rule_type=RuleType.escalation,
        )

        execution = await _make_dispatcher(collaborators).dispatch(rule, _lead())

        assert execution.status == ExecutionStatus.completed
        assert collaborators["notifier"].notify.await_count == 2
        assert execution.result_data["actions"][0]["escalated_to"] == ["mgr-1", "mgr-2"]


class TestDispatchFailures:
    """Fail-fast and parameter validation."""

    @pytest.mark.asyncio
    async def test_fail_fast_stops_after_failing_action(self):
        """[A ok, B fails, C ok] runs A and B only; C never runs."""
        collaborators, _ = _make_collaborators()
        collaborators["agent_pool"].next_round_robin_agent = AsyncMock(
            side_effect=CollaboratorError("pool down")
        )
        rule = _rule(
            [
                {"type": "send_email", "parameters": {"subject": "Hi"}},
                {"type": "assign_agent", "parameters": {"strategy": "round_robin"}},
                {"type": "create_task", "parameters": {}},
            ]
        )

        execution = await _make_dispatcher(collaborators).dispatch(rule, _lead())

        assert execution.status == ExecutionStatus.failed
        collaborators["notifier"].send_email.assert_awaited_once()
        collaborators["agent_pool"].next_round_robin_agent.assert_awaited_once()
        collaborators["reminder_store"].create_reminder.assert_not_awaited()
        assert "Action 2 (assign_agent)" in execution.error_message
        assert "pool down" in execution.error_message
        # The email's result is kept; nothing is rolled back
        assert len(execution.result_data["actions"]) == 1

    @pytest.mark.asyncio
    async def test_missing_agent_id_fails_before_running(self):
        """specific_agent without agent_id goes pending -> failed, no side effect."""
        collaborators, statuses = _make_collaborators()
        rule = _rule(
            [
                {"type": "send_email", "parameters": {}},
                {"type": "assign_agent", "parameters": {"strategy": "specific_agent"}},
            ]
        )

        execution = await _make_dispatcher(collaborators).dispatch(rule, _lead())

        assert execution.status == ExecutionStatus.failed
        assert ExecutionStatus.running not in statuses
        assert statuses == [ExecutionStatus.pending, ExecutionStatus.failed]
        assert "agent_id" in execution.error_message
        collaborators["notifier"].send_email.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_action_not_allowed_for_rule_type(self):
        collaborators, statuses = _make_collaborators()
        rule = _rule(
            [{"type": "escalate", "parameters": {"escalate_to": ["mgr"]}}],
            rule_type=RuleType.email_automation,
        )

        execution = await _make_dispatcher(collaborators).dispatch(rule, _lead())

        assert execution.status == ExecutionStatus.failed
        assert statuses == [ExecutionStatus.pending, ExecutionStatus.failed]
        collaborators["notifier"].notify.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_action_type_fails(self):
        collaborators, _ = _make_collaborators()
        rule = _rule([{"type": "launch_rocket", "parameters": {}}])

        execution = await _make_dispatcher(collaborators).dispatch(rule, _lead())

        assert execution.status == ExecutionStatus.failed
        assert "launch_rocket" in execution.error_message

    @pytest.mark.asyncio
    async def test_collaborator_timeout_fails_execution(self):
        collaborators, _ = _make_collaborators()

        async def slow_send(*args, **kwargs):
            await asyncio.sleep(1)

        collaborators["notifier"].send_email = AsyncMock(side_effect=slow_send)
        rule = _rule([{"type": "send_email", "parameters": {}}])

        execution = await _make_dispatcher(collaborators, action_timeout=0.01).dispatch(
            rule, _lead()
        )

        assert execution.status == ExecutionStatus.failed
        assert "timed out" in execution.error_message

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_recorded(self):
        collaborators, _ = _make_collaborators()
        collaborators["lead_writer"].update_status = AsyncMock(
            side_effect=RuntimeError("connection reset")
        )
        rule = _rule([{"type": "update_status", "parameters": {"status": "contacted"}}])

        execution = await _make_dispatcher(collaborators).dispatch(rule, _lead())

        assert execution.status == ExecutionStatus.failed
        assert "connection reset" in execution.error_message

    @pytest.mark.asyncio
    async def test_email_without_recipient_fails(self):
        collaborators, _ = _make_collaborators()
        rule = _rule([{"type": "send_email", "parameters": {}}])
        lead = _lead()
        del lead["email"]

        execution = await _make_dispatcher(collaborators).dispatch(rule, lead)

        assert execution.status == ExecutionStatus.failed
        collaborators["notifier"].send_email.assert_not_awaited()


class TestRenderTemplate:
    def test_known_and_unknown_placeholders(self):
        assert render_template("Hi $first_name, $missing", {"first_name": "Ada"}) == (
            "Hi Ada, $missing"
        )


class TestLeadIdentifiers:
    """Lead records are plain mappings; their ``id`` is opaque."""

    @staticmethod
    def _us_rule():
        return _rule(
            actions=[
                {
                    "type": "assign_agent",
                    "parameters": {"strategy": "specific_agent", "agent_id": "agent-42"},
                }
            ],
            conditions=[{"field": "country", "operator": "equals", "value": "US"}],
        )

    @pytest.mark.asyncio
    async def test_record_without_id_completes(self):
        rule = self._us_rule()
        lead = {"country": "US"}
        assert select_applicable([rule], RuleType.lead_assignment, lead) == [rule]

        collaborators, _ = _make_collaborators()
        execution = await _make_dispatcher(collaborators).dispatch(rule, lead)

        assert execution.status == ExecutionStatus.completed
        assert execution.lead_id is None
        assert execution.result_data["actions"][0]["agent_id"] == "agent-42"
        collaborators["lead_writer"].assign_agent.assert_awaited_once_with(None, "agent-42")

    @pytest.mark.asyncio
    async def test_non_uuid_id_is_passed_through(self):
        collaborators, _ = _make_collaborators()

        execution = await _make_dispatcher(collaborators).dispatch(
            self._us_rule(), {"id": "lead-1", "country": "US"}
        )

        assert execution.status == ExecutionStatus.completed
        assert execution.lead_id == "lead-1"
        collaborators["lead_writer"].assign_agent.assert_awaited_once_with(
            "lead-1", "agent-42"
        )


class TestSavepoints:
    """Each action runs in its own savepoint scope."""

    @staticmethod
    def _recording_savepoint(events):
        @asynccontextmanager
        async def savepoint():
            events.append("begin")
            try:
                yield
            except Exception:
                events.append("rollback")
                raise
            events.append("release")

        return savepoint

    @pytest.mark.asyncio
    async def test_failed_store_write_still_records_failed_execution(self):
        """A constraint violation undoes only the failing action."""
        collaborators, statuses = _make_collaborators()
        collaborators["lead_writer"].assign_agent = AsyncMock(
            side_effect=IntegrityError(
                "UPDATE leads SET assigned_agent_id=...",
                {},
                Exception("violates foreign key constraint"),
            )
        )
        events = []
        rule = _rule(
            [
                {"type": "send_email", "parameters": {"subject": "Welcome"}},
                {
                    "type": "assign_agent",
                    "parameters": {"strategy": "specific_agent", "agent_id": str(uuid4())},
                },
                {"type": "create_task", "parameters": {}},
            ]
        )

        execution = await _make_dispatcher(
            collaborators, savepoint=self._recording_savepoint(events)
        ).dispatch(rule, _lead())

        assert events == ["begin", "release", "begin", "rollback"]
        assert execution.status == ExecutionStatus.failed
        assert statuses[-1] == ExecutionStatus.failed
        assert "Action 2 (assign_agent)" in execution.error_message
        assert execution.result_data["actions"][0]["type"] == "send_email"
        collaborators["reminder_store"].create_reminder.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_every_successful_action_releases_its_savepoint(self):
        collaborators, _ = _make_collaborators()
        events = []
        rule = _rule(
            [
                {"type": "send_email", "parameters": {}},
                {"type": "create_task", "parameters": {}},
            ]
        )

        execution = await _make_dispatcher(
            collaborators, savepoint=self._recording_savepoint(events)
        ).dispatch(rule, _lead())

        assert execution.status == ExecutionStatus.completed
        assert events == ["begin", "release", "begin", "release"]
