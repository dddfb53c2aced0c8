from enum import Enum
from pydantic import BaseModel


class RuleType(str, Enum):
    lead_assignment = "lead_assignment"
    email_automation = "email_automation"
    follow_up = "follow_up"
    escalation = "escalation"


class ConditionOperator(str, Enum):
    equals = "equals"
    not_equals = "not_equals"
    contains = "contains"
    greater_than = "greater_than"
    less_than = "less_than"
    in_ = "in"
    not_in = "not_in"


class ConditionLogic(str, Enum):
    and_ = "and"
    or_ = "or"


class ActionType(str, Enum):
    assign_agent = "assign_agent"
    send_email = "send_email"
    create_task = "create_task"
    update_status = "update_status"
    create_reminder = "create_reminder"
    escalate = "escalate"


class AssignmentStrategy(str, Enum):
    round_robin = "round_robin"
    workload_based = "workload_based"
    specific_agent = "specific_agent"


class ExecutionStatus(str, Enum):
    pending = "pending"
    running = "running"
    completed = "completed"
    failed = "failed"


class ReminderType(str, Enum):
    call = "call"
    email = "email"
    meeting = "meeting"
    custom = "custom"


class ReminderStatus(str, Enum):
    pending = "pending"
    completed = "completed"
    overdue = "overdue"
    cancelled = "cancelled"


class ReminderPriority(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"
    urgent = "urgent"


class LeadStatus(str, Enum):
    new = "new"
    contacted = "contacted"
    qualified = "qualified"
    active = "active"
    inactive = "inactive"
    converted = "converted"
    lost = "lost"


class KycStatus(str, Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


class EscalationTrigger(str, Enum):
    no_contact_24h = "no_contact_24h"
    no_contact_48h = "no_contact_48h"
    no_contact_72h = "no_contact_72h"
    overdue_kyc = "overdue_kyc"
    high_value_inactive = "high_value_inactive"
    complaint_unresolved = "complaint_unresolved"


class EscalationActionType(str, Enum):
    notify = "notify"
    reassign = "reassign"
    create_task = "create_task"


class SuccessResponse(BaseModel):
    """Generic success response base."""

    success: bool = True
