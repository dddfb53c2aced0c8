from crmflow.models.base import Base
from crmflow.models.lead import Lead
from crmflow.models.agent import Agent
from crmflow.models.workflow_rule import WorkflowRuleModel
from crmflow.models.workflow_execution import WorkflowExecutionModel
from crmflow.models.escalation_rule import EscalationRuleModel
from crmflow.models.escalation_state import EscalationState
from crmflow.models.reminder import FollowUpReminder
from crmflow.models.notification import Notification

__all__ = [
    "Base",
    "Lead",
    "Agent",
    "WorkflowRuleModel",
    "WorkflowExecutionModel",
    "EscalationRuleModel",
    "EscalationState",
    "FollowUpReminder",
    "Notification",
]
