import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from crmflow.core.config import settings
from crmflow.core.constants import (
    HIGH_VALUE_INACTIVE_HOURS,
    KYC_OVERDUE_HOURS,
    NO_CONTACT_TRIGGER_HOURS,
)
from crmflow.models.lead import Lead
from crmflow.repositories.agent_repository import AgentRepository
from crmflow.repositories.escalation_rule_repository import EscalationRuleRepository
from crmflow.repositories.escalation_state_repository import EscalationStateRepository
from crmflow.repositories.lead_repository import LeadRepository, lead_to_record
from crmflow.repositories.notification_repository import NotificationRepository
from crmflow.repositories.reminder_repository import ReminderRepository
from crmflow.schemas.common import EscalationActionType, EscalationTrigger
from crmflow.schemas.escalation import (
    EscalationLevel,
    EscalationRule,
    EscalationRunResponse,
)
from crmflow.services.action_dispatcher import SYSTEM_ACTOR, render_template
from crmflow.services.agent_pool import AgentPool
from crmflow.services.escalation_scheduler import tick
from crmflow.services.notifier import Notifier
from crmflow.services.reminder_service import ReminderService

logger = logging.getLogger(__name__)


class EscalationService:
    """Walks every active escalation ladder one step forward.

    Each (rule, lead) pair keeps its progress in ``escalation_states``.
    A level is claimed with a compare-and-set on the state's ``version``
    and its action runs inside the same transaction, so two tickers can
    never both fire it and a failed action leaves the level unfired.
    """

    def __init__(
        self,
        rule_repo: EscalationRuleRepository,
        state_repo: EscalationStateRepository,
        lead_repo: LeadRepository,
        agent_pool: AgentPool,
        notifier: Notifier,
        reminder_service: ReminderService,
    ) -> None:
        self._rule_repo = rule_repo
        self._state_repo = state_repo
        self._lead_repo = lead_repo
        self._agent_pool = agent_pool
        self._notifier = notifier
        self._reminder_service = reminder_service

    async def run_once(self, now: Optional[datetime] = None) -> EscalationRunResponse:
        """One pass over all active escalation rules."""
        now = now or datetime.now(timezone.utc)
        rows = await self._rule_repo.list_rules(active_only=True)
        rules = [EscalationRule.model_validate(row) for row in rows]

        leads_checked = 0
        levels_fired = 0
        for rule in rules:
            leads = await self._find_triggered_leads(rule.trigger_condition, now)
            # Plain records survive a rollback of a failed lead
            records = [lead_to_record(lead) for lead in leads]
            leads_checked += len(records)
            for record in records:
                try:
                    levels_fired += await self._advance(rule, record, now)
                except Exception:
                    logger.warning(
                        "Escalation %s failed for lead %s",
                        rule.id,
                        record.get("id"),
                        exc_info=True,
                    )
                    await self._state_repo.rollback()

        if levels_fired:
            logger.info(
                "Escalation pass: %d rule(s), %d lead(s), %d level(s) fired",
                len(rules),
                leads_checked,
                levels_fired,
            )
        return EscalationRunResponse(
            rules_checked=len(rules),
            leads_checked=leads_checked,
            levels_fired=levels_fired,
        )

    async def _find_triggered_leads(self, trigger: str, now: datetime) -> List[Lead]:
        if trigger in NO_CONTACT_TRIGGER_HOURS:
            cutoff = now - timedelta(hours=NO_CONTACT_TRIGGER_HOURS[trigger])
            return await self._lead_repo.find_not_contacted_since(cutoff)
        if trigger == EscalationTrigger.overdue_kyc.value:
            cutoff = now - timedelta(hours=KYC_OVERDUE_HOURS)
            return await self._lead_repo.find_kyc_pending_since(cutoff)
        if trigger == EscalationTrigger.high_value_inactive.value:
            cutoff = now - timedelta(hours=HIGH_VALUE_INACTIVE_HOURS)
            return await self._lead_repo.find_high_value_inactive(
                settings.HIGH_VALUE_BALANCE_THRESHOLD, cutoff
            )
        logger.debug("Trigger %s selects no leads", trigger)
        return []

    async def _advance(
        self, rule: EscalationRule, record: Dict[str, Any], now: datetime
    ) -> int:
        lead_id = UUID(str(record["id"]))
        state = await self._state_repo.get_or_create(rule.id, lead_id, now)
        # Keep the first observation time even if the level action fails
        await self._state_repo.commit()

        fired = set(state.levels_fired or [])
        due = tick(rule, state.triggered_at, now, fired)
        if not due:
            return 0

        level = due[0]
        claimed = await self._state_repo.compare_and_set_levels(
            state.id, state.version, sorted(fired | {level.level})
        )
        if not claimed:
            logger.info(
                "Level %d of %s for lead %s already fired elsewhere",
                level.level,
                rule.id,
                lead_id,
            )
            await self._state_repo.rollback()
            return 0

        await self._run_level(rule, level, record, now)
        await self._state_repo.commit()
        logger.info(
            "Escalation %s level %d (%s) fired for lead %s",
            rule.name,
            level.level,
            level.action_type.value,
            lead_id,
        )
        return 1

    async def _run_level(
        self,
        rule: EscalationRule,
        level: EscalationLevel,
        record: Dict[str, Any],
        now: datetime,
    ) -> None:
        lead_id = UUID(str(record["id"]))
        name = f"{record.get('first_name', '')} {record.get('last_name', '')}".strip()
        message = (
            render_template(level.message_template, record)
            if level.message_template
            else f"Lead {name or lead_id} escalated: {rule.trigger_condition} "
            f"(level {level.level})"
        )
        title = f"Escalation level {level.level}: {rule.name}"
        data = {
            "lead_id": str(lead_id),
            "escalation_rule_id": str(rule.id),
            "level": level.level,
        }

        if level.action_type == EscalationActionType.reassign:
            agent_id = await self._agent_pool.least_loaded_agent()
            await self._lead_repo.assign_agent(lead_id, agent_id)
            record["assigned_agent_id"] = str(agent_id)
            data["agent_id"] = str(agent_id)
        elif level.action_type == EscalationActionType.create_task:
            assignee = (
                record.get("assigned_agent_id")
                or (level.escalate_to[0] if level.escalate_to else None)
                or SYSTEM_ACTOR
            )
            await self._reminder_service.create_reminder(
                lead_id=lead_id,
                assigned_to=str(assignee),
                reminder_type="custom",
                title=title,
                description=message,
                due_date=now,
                priority="urgent",
                created_by=SYSTEM_ACTOR,
            )

        for user_id in level.escalate_to:
            await self._notifier.notify(user_id, title, message, data=data)


def build_escalation_service(session: AsyncSession) -> EscalationService:
    """Wire an ``EscalationService`` onto one session."""
    return EscalationService(
        rule_repo=EscalationRuleRepository(session),
        state_repo=EscalationStateRepository(session),
        lead_repo=LeadRepository(session),
        agent_pool=AgentPool(AgentRepository(session)),
        notifier=Notifier(NotificationRepository(session)),
        reminder_service=ReminderService(ReminderRepository(session)),
    )


async def run_escalations(
    session_factory: Callable[..., AsyncSession],
) -> EscalationRunResponse:
    """One-shot escalation pass on a fresh session.

    Parameters:
        session_factory: An async context-manager callable that yields
            an ``AsyncSession`` (e.g. ``AsyncSessionLocal``).
    """
    async with session_factory() as session:
        return await build_escalation_service(session).run_once()


async def start_escalation_loop(
    session_factory: Callable[..., AsyncSession],
    interval_seconds: Optional[int] = None,
) -> None:
    """Infinite loop running an escalation pass on a fixed interval."""
    interval = interval_seconds or settings.ESCALATION_CHECK_INTERVAL_SECONDS
    logger.info("Escalation background task started (interval=%ds)", interval)
    while True:
        try:
            await run_escalations(session_factory)
        except Exception:
            logger.error("Escalation cycle failed", exc_info=True)
        await asyncio.sleep(interval)
