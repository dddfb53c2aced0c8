"""Pydantic schemas package: re-exports for convenience."""

# Common enums
from crmflow.schemas.common import (
    RuleType as RuleType,
    ConditionOperator as ConditionOperator,
    ConditionLogic as ConditionLogic,
    ActionType as ActionType,
    AssignmentStrategy as AssignmentStrategy,
    ExecutionStatus as ExecutionStatus,
    ReminderType as ReminderType,
    ReminderStatus as ReminderStatus,
    ReminderPriority as ReminderPriority,
    LeadStatus as LeadStatus,
    KycStatus as KycStatus,
    EscalationTrigger as EscalationTrigger,
    EscalationActionType as EscalationActionType,
    SuccessResponse as SuccessResponse,
)

# Workflow schemas
from crmflow.schemas.workflow import (
    WorkflowCondition as WorkflowCondition,
    WorkflowConditionIn as WorkflowConditionIn,
    WorkflowAction as WorkflowAction,
    WorkflowRule as WorkflowRule,
    WorkflowRuleCreate as WorkflowRuleCreate,
    WorkflowRuleUpdate as WorkflowRuleUpdate,
    WorkflowRuleOut as WorkflowRuleOut,
    WorkflowExecution as WorkflowExecution,
    WorkflowExecutionOut as WorkflowExecutionOut,
    ExecuteRuleRequest as ExecuteRuleRequest,
    WorkflowEventRequest as WorkflowEventRequest,
    parse_action as parse_action,
)

# Escalation schemas
from crmflow.schemas.escalation import (
    EscalationLevel as EscalationLevel,
    EscalationRule as EscalationRule,
    EscalationRuleCreate as EscalationRuleCreate,
    EscalationRuleUpdate as EscalationRuleUpdate,
    EscalationRuleOut as EscalationRuleOut,
    EscalationRunResponse as EscalationRunResponse,
)

# Reminder schemas
from crmflow.schemas.reminder import (
    ReminderCreate as ReminderCreate,
    ReminderOut as ReminderOut,
)
