"""Tests for EscalationService: claiming levels, running them, isolation."""

from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest

from crmflow.core.exceptions import NoAgentAvailableError
from crmflow.schemas.escalation import EscalationLevel, EscalationRule
from crmflow.services import escalation_service
from crmflow.services.escalation_service import EscalationService

_NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)


def _rule(trigger="no_contact_24h", levels=None) -> EscalationRule:
    return EscalationRule(
        name="Stale lead",
        trigger_condition=trigger,
        escalation_levels=levels
        or [
            EscalationLevel(level=1, delay_hours=0, escalate_to=["mgr-1", "mgr-2"]),
            EscalationLevel(level=2, delay_hours=4, escalate_to=["director"]),
        ],
    )


def _state(levels_fired=None, triggered_hours_ago=1, version=1):
    state = MagicMock()
    state.id = uuid4()
    state.version = version
    state.levels_fired = levels_fired or []
    state.triggered_at = _NOW - timedelta(hours=triggered_hours_ago)
    return state


def _lead(**fields):
    record = {"id": str(uuid4()), "first_name": "Ada", "last_name": "Lovelace"}
    record.update(fields)
    return record


def _make_service(rules, leads, state=None, claimed=True):
    rule_repo = AsyncMock()
    rule_repo.list_rules = AsyncMock(return_value=rules)

    state_repo = AsyncMock()
    state_repo.get_or_create = AsyncMock(return_value=state or _state())
    state_repo.compare_and_set_levels = AsyncMock(return_value=claimed)

    lead_repo = AsyncMock()
    lead_repo.find_not_contacted_since = AsyncMock(return_value=leads)
    lead_repo.find_kyc_pending_since = AsyncMock(return_value=leads)
    lead_repo.find_high_value_inactive = AsyncMock(return_value=leads)

    agent_pool = AsyncMock()
    notifier = AsyncMock()
    reminder_service = AsyncMock()

    service = EscalationService(
        rule_repo=rule_repo,
        state_repo=state_repo,
        lead_repo=lead_repo,
        agent_pool=agent_pool,
        notifier=notifier,
        reminder_service=reminder_service,
    )
    mocks = {
        "state_repo": state_repo,
        "lead_repo": lead_repo,
        "agent_pool": agent_pool,
        "notifier": notifier,
        "reminder_service": reminder_service,
    }
    return service, mocks


@pytest.fixture(autouse=True)
def plain_lead_records():
    """Leads in these tests are already plain dicts."""
    with patch.object(escalation_service, "lead_to_record", side_effect=dict):
        yield


class TestRunOnce:
    @pytest.mark.asyncio
    async def test_fires_first_level_and_notifies_each_target(self):
        lead = _lead()
        service, mocks = _make_service([_rule()], [lead])

        result = await service.run_once(now=_NOW)

        assert result.levels_fired == 1
        assert result.leads_checked == 1
        assert result.rules_checked == 1
        args = mocks["state_repo"].compare_and_set_levels.await_args.args
        assert args[2] == [1]
        assert mocks["notifier"].notify.await_count == 2
        title = mocks["notifier"].notify.await_args.args[1]
        assert title == "Escalation level 1: Stale lead"
        mocks["state_repo"].commit.assert_awaited()

    @pytest.mark.asyncio
    async def test_lost_claim_skips_level(self):
        service, mocks = _make_service([_rule()], [_lead()], claimed=False)

        result = await service.run_once(now=_NOW)

        assert result.levels_fired == 0
        mocks["notifier"].notify.assert_not_awaited()
        mocks["state_repo"].rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_level_not_yet_due(self):
        state = _state(levels_fired=[1], triggered_hours_ago=2)
        service, mocks = _make_service([_rule()], [_lead()], state=state)

        result = await service.run_once(now=_NOW)

        assert result.levels_fired == 0
        mocks["state_repo"].compare_and_set_levels.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_second_level_after_cumulative_delay(self):
        state = _state(levels_fired=[1], triggered_hours_ago=5)
        service, mocks = _make_service([_rule()], [_lead()], state=state)

        result = await service.run_once(now=_NOW)

        assert result.levels_fired == 1
        args = mocks["state_repo"].compare_and_set_levels.await_args.args
        assert args[1] == state.version
        assert args[2] == [1, 2]
        mocks["notifier"].notify.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unsupported_trigger_selects_no_leads(self):
        service, mocks = _make_service([_rule(trigger="complaint_unresolved")], [_lead()])

        result = await service.run_once(now=_NOW)

        assert result.leads_checked == 0
        mocks["state_repo"].get_or_create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_trigger_routes_to_matching_query(self):
        service, mocks = _make_service([_rule(trigger="overdue_kyc")], [])

        await service.run_once(now=_NOW)

        mocks["lead_repo"].find_kyc_pending_since.assert_awaited_once_with(
            _NOW - timedelta(hours=72)
        )
        mocks["lead_repo"].find_not_contacted_since.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failed_lead_is_rolled_back_and_isolated(self):
        """A failing reassign for one lead does not stop the next one."""
        rule = _rule(
            levels=[
                EscalationLevel(
                    level=1, delay_hours=0, action_type="reassign", escalate_to=["mgr"]
                )
            ]
        )
        agent_id = uuid4()
        service, mocks = _make_service([rule], [_lead(), _lead()])
        mocks["agent_pool"].least_loaded_agent = AsyncMock(
            side_effect=[NoAgentAvailableError(), agent_id]
        )

        result = await service.run_once(now=_NOW)

        assert result.leads_checked == 2
        assert result.levels_fired == 1
        mocks["state_repo"].rollback.assert_awaited_once()
        mocks["lead_repo"].assign_agent.assert_awaited_once()
        assert mocks["lead_repo"].assign_agent.await_args.args[1] == agent_id

    @pytest.mark.asyncio
    async def test_create_task_goes_to_current_agent(self):
        rule = _rule(
            levels=[
                EscalationLevel(
                    level=1, delay_hours=0, action_type="create_task", escalate_to=["mgr"]
                )
            ]
        )
        service, mocks = _make_service([rule], [_lead(assigned_agent_id="agent-5")])

        await service.run_once(now=_NOW)

        kwargs = mocks["reminder_service"].create_reminder.await_args.kwargs
        assert kwargs["assigned_to"] == "agent-5"
        assert kwargs["priority"] == "urgent"
        assert kwargs["due_date"] == _NOW
        assert kwargs["created_by"] == "system"

    @pytest.mark.asyncio
    async def test_message_template_is_rendered(self):
        rule = _rule(
            levels=[
                EscalationLevel(
                    level=1,
                    delay_hours=0,
                    escalate_to=["mgr"],
                    message_template="$first_name has gone quiet",
                )
            ]
        )
        service, mocks = _make_service([rule], [_lead()])

        await service.run_once(now=_NOW)

        assert mocks["notifier"].notify.await_args.args[2] == "Ada has gone quiet"


class TestRunEscalations:
    @pytest.mark.asyncio
    async def test_uses_fresh_session_and_returns_summary(self):
        session = MagicMock()

        @asynccontextmanager
        async def session_factory():
            yield session

        service = AsyncMock()
        service.run_once = AsyncMock(
            return_value=escalation_service.EscalationRunResponse(
                rules_checked=0, leads_checked=0, levels_fired=0
            )
        )
        with patch.object(
            escalation_service, "build_escalation_service", return_value=service
        ) as build:
            result = await escalation_service.run_escalations(session_factory)

        build.assert_called_once_with(session)
        assert result.rules_checked == 0
