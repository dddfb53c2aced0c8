"""Repository layer: all database access goes through here.

Repositories encapsulate SQLAlchemy queries so that the service layer
and the workflow engine only contain business logic.
"""

from crmflow.repositories.lead_repository import LeadRepository
from crmflow.repositories.agent_repository import AgentRepository
from crmflow.repositories.workflow_rule_repository import WorkflowRuleRepository
from crmflow.repositories.execution_repository import ExecutionRepository
from crmflow.repositories.escalation_rule_repository import EscalationRuleRepository
from crmflow.repositories.escalation_state_repository import EscalationStateRepository
from crmflow.repositories.reminder_repository import ReminderRepository
from crmflow.repositories.notification_repository import NotificationRepository

__all__ = [
    "LeadRepository",
    "AgentRepository",
    "WorkflowRuleRepository",
    "ExecutionRepository",
    "EscalationRuleRepository",
    "EscalationStateRepository",
    "ReminderRepository",
    "NotificationRepository",
]
