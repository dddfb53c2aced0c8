"""Workflow rule, action and execution schemas.

``WorkflowAction`` is a discriminated union on ``type``: each variant
carries only the parameters that are legal for it.  Rules are persisted
as plain JSON, so :func:`parse_action` is used both when a rule is
written and again when it is dispatched.
"""

from datetime import datetime, timezone
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
    model_validator,
)
from typing_extensions import Self

from crmflow.core.config import settings
from crmflow.core.constants import (
    ALLOWED_ACTIONS_BY_RULE_TYPE,
    ALLOWED_EXECUTION_TRANSITIONS,
)
from crmflow.core.exceptions import (
    InvalidParametersError,
    InvalidStatusTransitionError,
)
from crmflow.schemas.common import (
    AssignmentStrategy,
    ConditionLogic,
    ConditionOperator,
    ExecutionStatus,
    LeadStatus,
    ReminderPriority,
    ReminderType,
    RuleType,
)


# ---------------------------------------------------------------------------
# Conditions
# ---------------------------------------------------------------------------


class WorkflowCondition(BaseModel):
    """One ``field operator value`` test against a lead record.

    ``logic`` says how this condition combines with the *next* one; it
    is ignored on the last condition of a rule.  Operator and logic stay
    plain strings here so a stored rule with an unknown operator still
    loads (and simply never matches).
    """

    field: str
    operator: str
    value: Any = None
    logic: str = "and"


class WorkflowConditionIn(WorkflowCondition):
    """Strictly validated condition accepted on rule writes."""

    field: str = Field(..., min_length=1)
    operator: ConditionOperator
    logic: ConditionLogic = ConditionLogic.and_


# ---------------------------------------------------------------------------
# Action parameter variants
# ---------------------------------------------------------------------------


def _default_delay_hours() -> float:
    return float(settings.DEFAULT_REMINDER_DELAY_HOURS)


class AssignAgentParameters(BaseModel):
    strategy: AssignmentStrategy = AssignmentStrategy.round_robin
    agent_id: Optional[str] = None

    @model_validator(mode="after")
    def require_agent_for_specific_strategy(self) -> Self:
        if self.strategy == AssignmentStrategy.specific_agent and not self.agent_id:
            raise ValueError("agent_id is required for specific_agent assignment")
        return self


class SendEmailParameters(BaseModel):
    subject: str = "Automated Email"
    content: str = ""
    template_id: Optional[str] = None
    to: Optional[str] = None


class CreateTaskParameters(BaseModel):
    title: str = "Automated Task"
    description: str = ""
    delay_hours: float = Field(default_factory=_default_delay_hours, ge=0)
    priority: ReminderPriority = ReminderPriority.medium


class UpdateStatusParameters(BaseModel):
    status: LeadStatus


class CreateReminderParameters(BaseModel):
    reminder_type: ReminderType = ReminderType.custom
    title: str = "Follow-up Reminder"
    description: str = ""
    delay_hours: float = Field(default_factory=_default_delay_hours, ge=0)
    priority: ReminderPriority = ReminderPriority.medium


class EscalateParameters(BaseModel):
    escalate_to: List[str] = Field(..., min_length=1)
    message: Optional[str] = None
    priority: ReminderPriority = ReminderPriority.high


class AssignAgentAction(BaseModel):
    type: Literal["assign_agent"] = "assign_agent"
    parameters: AssignAgentParameters = Field(default_factory=AssignAgentParameters)


class SendEmailAction(BaseModel):
    type: Literal["send_email"] = "send_email"
    parameters: SendEmailParameters = Field(default_factory=SendEmailParameters)


class CreateTaskAction(BaseModel):
    type: Literal["create_task"] = "create_task"
    parameters: CreateTaskParameters = Field(default_factory=CreateTaskParameters)


class UpdateStatusAction(BaseModel):
    type: Literal["update_status"] = "update_status"
    parameters: UpdateStatusParameters


class CreateReminderAction(BaseModel):
    type: Literal["create_reminder"] = "create_reminder"
    parameters: CreateReminderParameters = Field(
        default_factory=CreateReminderParameters
    )


class EscalateAction(BaseModel):
    type: Literal["escalate"] = "escalate"
    parameters: EscalateParameters


WorkflowAction = Annotated[
    Union[
        AssignAgentAction,
        SendEmailAction,
        CreateTaskAction,
        UpdateStatusAction,
        CreateReminderAction,
        EscalateAction,
    ],
    Field(discriminator="type"),
]

_action_adapter: TypeAdapter = TypeAdapter(WorkflowAction)


def parse_action(raw: Any) -> WorkflowAction:
    """Parse a stored ``{"type", "parameters"}`` mapping into its variant.

    Raises :class:`InvalidParametersError` when the type is unknown or
    the parameters do not fit it.
    """
    if isinstance(raw, BaseModel):
        raw = raw.model_dump()
    try:
        return _action_adapter.validate_python(raw)
    except ValidationError as exc:
        action_type = raw.get("type") if isinstance(raw, dict) else None
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
            for err in exc.errors()
        )
        raise InvalidParametersError(
            f"Invalid parameters for action {action_type!r}: {problems}"
        ) from exc


def check_action_vocabulary(rule_type: str, actions: List[WorkflowAction]) -> None:
    """Reject actions that are not legal for *rule_type*."""
    allowed = ALLOWED_ACTIONS_BY_RULE_TYPE.get(rule_type, frozenset())
    for action in actions:
        if action.type not in allowed:
            raise InvalidParametersError(
                f"Action {action.type!r} is not allowed on {rule_type} rules"
            )


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


class WorkflowRule(BaseModel):
    """In-memory copy of a stored rule used during one evaluation pass."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(default_factory=uuid4)
    name: str
    type: RuleType
    conditions: List[WorkflowCondition] = Field(default_factory=list)
    # Raw action mappings; parsed into typed variants by the dispatcher
    actions: List[Dict[str, Any]] = Field(default_factory=list)
    is_active: bool = True
    priority: int = 0
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class WorkflowRuleCreate(BaseModel):
    """Request body for POST /api/v1/workflow-rules."""

    name: str = Field(..., min_length=1, max_length=200)
    type: RuleType
    conditions: List[WorkflowConditionIn] = Field(default_factory=list)
    actions: List[WorkflowAction] = Field(default_factory=list)
    is_active: bool = True
    priority: int = 0
    created_by: Optional[str] = None

    @model_validator(mode="after")
    def validate_action_vocabulary(self) -> Self:
        try:
            check_action_vocabulary(self.type.value, self.actions)
        except InvalidParametersError as exc:
            raise ValueError(exc.detail)
        return self


class WorkflowRuleUpdate(BaseModel):
    """Request body for PATCH /api/v1/workflow-rules/{rule_id}."""

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    type: Optional[RuleType] = None
    conditions: Optional[List[WorkflowConditionIn]] = None
    actions: Optional[List[WorkflowAction]] = None
    is_active: Optional[bool] = None
    priority: Optional[int] = None


class WorkflowRuleOut(WorkflowRule):
    pass


class ExecuteRuleRequest(BaseModel):
    lead_id: UUID


class WorkflowEventRequest(BaseModel):
    """Request body for POST /api/v1/workflow-rules/events."""

    rule_type: RuleType
    lead_id: UUID


# ---------------------------------------------------------------------------
# Executions
# ---------------------------------------------------------------------------


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WorkflowExecution(BaseModel):
    """Audit record of one attempt to run a rule against one lead.

    ``pending -> running -> completed | failed``; a parameter error can
    also move ``pending`` straight to ``failed``.  Terminal states are
    absorbing.

    ``lead_id`` is the lead record's identifier kept as opaque text;
    a record without one yields ``lead_id=None``.
    """

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(default_factory=uuid4)
    rule_id: UUID
    lead_id: Optional[str] = None
    status: ExecutionStatus = ExecutionStatus.pending
    started_at: datetime = Field(default_factory=_utcnow)
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None
    result_data: Optional[Dict[str, Any]] = None

    @field_validator("lead_id", mode="before")
    @classmethod
    def _lead_id_as_text(cls, value: Any) -> Any:
        return None if value is None else str(value)

    def transition(self, new_status: ExecutionStatus) -> None:
        allowed = ALLOWED_EXECUTION_TRANSITIONS.get(self.status.value, [])
        if new_status.value not in allowed:
            raise InvalidStatusTransitionError(
                f"Cannot transition execution from {self.status.value} "
                f"to {new_status.value}"
            )
        self.status = new_status
        if new_status in (ExecutionStatus.completed, ExecutionStatus.failed):
            self.completed_at = _utcnow()

    @property
    def is_terminal(self) -> bool:
        return self.status in (ExecutionStatus.completed, ExecutionStatus.failed)


class WorkflowExecutionOut(WorkflowExecution):
    pass
