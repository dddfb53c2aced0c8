import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from string import Template
from typing import (
    Any,
    AsyncContextManager,
    AsyncIterator,
    Callable,
    Dict,
    List,
    Mapping,
    MutableMapping,
    Optional,
)
from uuid import UUID

from crmflow.core.exceptions import (
    CollaboratorError,
    CrmFlowError,
    InvalidParametersError,
)
from crmflow.schemas.common import AssignmentStrategy, ExecutionStatus
from crmflow.schemas.workflow import (
    AssignAgentAction,
    CreateReminderAction,
    CreateTaskAction,
    EscalateAction,
    SendEmailAction,
    UpdateStatusAction,
    WorkflowAction,
    WorkflowExecution,
    WorkflowRule,
    check_action_vocabulary,
    parse_action,
)
from crmflow.services.collaborators import (
    AgentPool,
    ExecutionLog,
    LeadWriter,
    Notifier,
    ReminderStore,
)

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@asynccontextmanager
async def _no_savepoint() -> AsyncIterator[None]:
    yield


def _lead_ref(record: Mapping[str, Any]) -> Optional[str]:
    lead_id = record.get("id")
    return None if lead_id is None else str(lead_id)


def render_template(text: str, record: Mapping[str, Any]) -> str:
    """Substitute ``$field`` placeholders with lead values; unknown ones stay."""
    return Template(text).safe_substitute({k: str(v) for k, v in record.items()})


class ActionDispatcher:
    """Runs a matched rule's actions against one lead.

    Actions execute in order and the dispatcher stops at the first
    failure.  Nothing is rolled back: side effects of actions that
    already succeeded (an email sent, an agent assigned) stay applied.

    Parameters are parsed into their typed variant before anything runs,
    so a parameter error moves the execution from ``pending`` straight
    to ``failed`` without any side effect.

    *action_timeout* bounds each collaborator call; a timeout counts as
    a collaborator failure.

    *savepoint* opens a scope around each action; when the action fails
    its writes inside the scope are undone and the failure is still
    recorded.  Actions that completed before it keep their effects.
    """

    def __init__(
        self,
        agent_pool: AgentPool,
        lead_writer: LeadWriter,
        notifier: Notifier,
        reminder_store: ReminderStore,
        execution_log: ExecutionLog,
        action_timeout: Optional[float] = None,
        actor_id: str = SYSTEM_ACTOR,
        clock: Callable[[], datetime] = _utcnow,
        savepoint: Optional[Callable[[], AsyncContextManager[Any]]] = None,
    ) -> None:
        self._agent_pool = agent_pool
        self._lead_writer = lead_writer
        self._notifier = notifier
        self._reminder_store = reminder_store
        self._execution_log = execution_log
        self._action_timeout = action_timeout
        self._actor_id = actor_id
        self._clock = clock
        self._savepoint = savepoint or _no_savepoint

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def dispatch(
        self, rule: WorkflowRule, record: Mapping[str, Any]
    ) -> WorkflowExecution:
        """Execute *rule*'s actions for the lead in *record*."""
        lead_id = _lead_ref(record)
        execution = WorkflowExecution(
            rule_id=rule.id, lead_id=lead_id, started_at=self._clock()
        )
        await self._execution_log.record(execution)

        try:
            actions = [parse_action(raw) for raw in rule.actions]
            check_action_vocabulary(rule.type.value, actions)
        except InvalidParametersError as exc:
            logger.warning("Rule %s rejected before dispatch: %s", rule.id, exc.detail)
            return await self._fail(execution, exc.detail, results=[])

        execution.transition(ExecutionStatus.running)
        await self._execution_log.update(execution)
        logger.info(
            "Dispatching rule %s (%d action(s)) for lead %s",
            rule.id,
            len(actions),
            lead_id,
        )

        # Transient working copy; actions see earlier actions' effects
        working: Dict[str, Any] = dict(record)
        results: List[Dict[str, Any]] = []
        for position, action in enumerate(actions, start=1):
            try:
                async with self._savepoint():
                    result = await self._run_action(action, working, rule)
            except CrmFlowError as exc:
                return await self._fail(
                    execution,
                    f"Action {position} ({action.type}) failed: {exc.detail}",
                    results=results,
                )
            except Exception as exc:
                logger.warning(
                    "Unexpected error in action %s of rule %s",
                    action.type,
                    rule.id,
                    exc_info=True,
                )
                return await self._fail(
                    execution,
                    f"Action {position} ({action.type}) failed: {exc}",
                    results=results,
                )
            results.append(result)

        execution.result_data = {"actions": results}
        execution.transition(ExecutionStatus.completed)
        await self._execution_log.update(execution)
        logger.info("Rule %s completed for lead %s", rule.id, lead_id)
        return execution

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _fail(
        self,
        execution: WorkflowExecution,
        message: str,
        results: List[Dict[str, Any]],
    ) -> WorkflowExecution:
        execution.error_message = message
        execution.result_data = {"actions": results}
        execution.transition(ExecutionStatus.failed)
        await self._execution_log.update(execution)
        logger.warning(
            "Execution %s of rule %s failed: %s",
            execution.id,
            execution.rule_id,
            message,
        )
        return execution

    async def _call(self, awaitable):
        """Await a collaborator call under the per-action timeout."""
        if self._action_timeout is None:
            return await awaitable
        try:
            return await asyncio.wait_for(awaitable, timeout=self._action_timeout)
        except asyncio.TimeoutError:
            raise CollaboratorError(
                f"Collaborator call timed out after {self._action_timeout:g}s"
            )

    async def _run_action(
        self,
        action: WorkflowAction,
        record: MutableMapping[str, Any],
        rule: WorkflowRule,
    ) -> Dict[str, Any]:
        if isinstance(action, AssignAgentAction):
            return await self._assign_agent(action, record)
        if isinstance(action, SendEmailAction):
            return await self._send_email(action, record)
        if isinstance(action, CreateTaskAction):
            task_id = await self._create_follow_up(
                record,
                reminder_type="custom",
                title=action.parameters.title,
                description=action.parameters.description,
                delay_hours=action.parameters.delay_hours,
                priority=action.parameters.priority.value,
            )
            return {"type": "create_task", "task_id": str(task_id)}
        if isinstance(action, UpdateStatusAction):
            new_status = action.parameters.status.value
            await self._call(
                self._lead_writer.update_status(_lead_ref(record), new_status)
            )
            record["status"] = new_status
            return {"type": "update_status", "new_status": new_status}
        if isinstance(action, CreateReminderAction):
            reminder_id = await self._create_follow_up(
                record,
                reminder_type=action.parameters.reminder_type.value,
                title=action.parameters.title,
                description=action.parameters.description,
                delay_hours=action.parameters.delay_hours,
                priority=action.parameters.priority.value,
            )
            return {"type": "create_reminder", "reminder_id": str(reminder_id)}
        if isinstance(action, EscalateAction):
            return await self._escalate(action, record, rule)
        raise InvalidParametersError(f"Unknown action type: {action.type}")

    async def _assign_agent(
        self, action: AssignAgentAction, record: MutableMapping[str, Any]
    ) -> Dict[str, Any]:
        strategy = action.parameters.strategy
        if strategy == AssignmentStrategy.specific_agent:
            agent_id = action.parameters.agent_id
        elif strategy == AssignmentStrategy.workload_based:
            agent_id = await self._call(self._agent_pool.least_loaded_agent())
        else:
            agent_id = await self._call(self._agent_pool.next_round_robin_agent())

        agent_id = str(agent_id)
        await self._call(
            self._lead_writer.assign_agent(_lead_ref(record), agent_id)
        )
        record["assigned_agent_id"] = agent_id
        return {
            "type": "assign_agent",
            "strategy": strategy.value,
            "agent_id": agent_id,
        }

    async def _send_email(
        self, action: SendEmailAction, record: Mapping[str, Any]
    ) -> Dict[str, Any]:
        params = action.parameters
        recipient = params.to or record.get("email")
        if not recipient:
            raise InvalidParametersError("send_email needs a recipient address")
        response = await self._call(
            self._notifier.send_email(
                recipient,
                render_template(params.subject, record),
                render_template(params.content, record),
            )
        )
        return {"type": "send_email", "to": recipient, "result": response}

    async def _create_follow_up(
        self,
        record: Mapping[str, Any],
        reminder_type: str,
        title: str,
        description: str,
        delay_hours: float,
        priority: str,
    ) -> UUID:
        due_date = self._clock() + timedelta(hours=delay_hours)
        return await self._call(
            self._reminder_store.create_reminder(
                lead_id=_lead_ref(record),
                assigned_to=str(record.get("assigned_agent_id") or self._actor_id),
                reminder_type=reminder_type,
                title=render_template(title, record),
                description=render_template(description, record),
                due_date=due_date,
                priority=priority,
                created_by=self._actor_id,
            )
        )

    async def _escalate(
        self,
        action: EscalateAction,
        record: Mapping[str, Any],
        rule: WorkflowRule,
    ) -> Dict[str, Any]:
        params = action.parameters
        lead_name = f"{record.get('first_name', '')} {record.get('last_name', '')}".strip()
        message = (
            render_template(params.message, record)
            if params.message
            else f"Lead {lead_name or _lead_ref(record)} has been escalated"
        )
        notifications = []
        for target in params.escalate_to:
            notifications.append(
                await self._call(
                    self._notifier.notify(
                        target,
                        "Lead Escalation",
                        message,
                        data={
                            "lead_id": _lead_ref(record),
                            "rule_id": str(rule.id),
                            "escalated_by": self._actor_id,
                        },
                        priority=params.priority.value,
                    )
                )
            )
        return {
            "type": "escalate",
            "escalated_to": list(params.escalate_to),
            "notifications": notifications,
        }
