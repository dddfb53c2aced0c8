from typing import Dict, FrozenSet, List

RULE_TYPES: FrozenSet[str] = frozenset(
    {"lead_assignment", "email_automation", "follow_up", "escalation"}
)

RULE_TYPE_CHECK_CLAUSE: str = (
    f"type IN ({', '.join(repr(t) for t in sorted(RULE_TYPES))})"
)

# Which action types each rule type may carry
ALLOWED_ACTIONS_BY_RULE_TYPE: Dict[str, FrozenSet[str]] = {
    "lead_assignment": frozenset(
        {
            "assign_agent",
            "send_email",
            "update_status",
            "create_task",
            "create_reminder",
        }
    ),
    "email_automation": frozenset({"send_email", "create_task"}),
    "follow_up": frozenset({"create_reminder", "create_task", "send_email"}),
    "escalation": frozenset(
        {
            "escalate",
            "assign_agent",
            "send_email",
            "create_task",
            "update_status",
        }
    ),
}

# Terminal lead states; escalation triggers ignore these leads
TERMINAL_LEAD_STATUSES: FrozenSet[str] = frozenset({"converted", "lost"})

ALLOWED_EXECUTION_TRANSITIONS: Dict[str, List[str]] = {
    "pending": ["running", "failed"],
    "running": ["completed", "failed"],
    "completed": [],  # terminal
    "failed": [],  # terminal
}

ALLOWED_REMINDER_TRANSITIONS: Dict[str, List[str]] = {
    "pending": ["completed", "cancelled"],
    "completed": [],  # terminal
    "cancelled": [],  # terminal
}

# Hours of silence for the ``no_contact_*`` escalation triggers
NO_CONTACT_TRIGGER_HOURS: Dict[str, int] = {
    "no_contact_24h": 24,
    "no_contact_48h": 48,
    "no_contact_72h": 72,
}
HIGH_VALUE_INACTIVE_HOURS: int = 48
KYC_OVERDUE_HOURS: int = 72

# Redis key prefix for cached active rule lists (one key per rule type)
ACTIVE_RULES_CACHE_PREFIX: str = "workflow_rules:active"
