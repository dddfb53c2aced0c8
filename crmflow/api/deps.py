"""API-layer dependency functions.

Re-exports all dependency factories from ``crmflow.dependencies`` so that
endpoint modules only need to import from ``crmflow.api.deps``.
"""

from crmflow.dependencies import (
    # Repository factories
    get_lead_repo,
    get_agent_repo,
    get_rule_repo,
    get_execution_repo,
    get_escalation_rule_repo,
    get_escalation_state_repo,
    get_reminder_repo,
    get_notification_repo,
    # Collaborator factories
    get_agent_pool,
    get_notifier,
    get_reminder_service,
    get_action_dispatcher,
    # Service factories
    get_workflow_service,
    get_escalation_service,
    # Redis
    get_redis_client,
    get_cache_service,
)

__all__ = [
    "get_lead_repo",
    "get_agent_repo",
    "get_rule_repo",
    "get_execution_repo",
    "get_escalation_rule_repo",
    "get_escalation_state_repo",
    "get_reminder_repo",
    "get_notification_repo",
    "get_agent_pool",
    "get_notifier",
    "get_reminder_service",
    "get_action_dispatcher",
    "get_workflow_service",
    "get_escalation_service",
    "get_redis_client",
    "get_cache_service",
]
