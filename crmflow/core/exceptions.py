class CrmFlowError(Exception):
    """Base class for all workflow-engine domain exceptions.

    Every custom exception in this module inherits from here so that a
    single ``except CrmFlowError`` clause can catch any domain error.
    """

    def __init__(self, detail: str = "An error occurred"):
        self.detail = detail
        super().__init__(detail)


class RuleNotFoundError(CrmFlowError):
    """Raised when a requested workflow rule does not exist."""

    def __init__(self, detail: str = "Workflow rule not found"):
        super().__init__(detail)


class EscalationRuleNotFoundError(CrmFlowError):
    """Raised when a requested escalation rule does not exist."""

    def __init__(self, detail: str = "Escalation rule not found"):
        super().__init__(detail)


class LeadNotFoundError(CrmFlowError):
    """Raised when a requested lead does not exist."""

    def __init__(self, detail: str = "Lead not found"):
        super().__init__(detail)


class ReminderNotFoundError(CrmFlowError):
    """Raised when a follow-up reminder does not exist."""

    def __init__(self, detail: str = "Reminder not found"):
        super().__init__(detail)


class ExecutionNotFoundError(CrmFlowError):
    """Raised when a workflow execution record does not exist."""

    def __init__(self, detail: str = "Workflow execution not found"):
        super().__init__(detail)


class InactiveRuleError(CrmFlowError):
    """Raised when an on-demand execution targets an inactive rule."""

    def __init__(self, detail: str = "Workflow rule is not active"):
        super().__init__(detail)


class InvalidParametersError(CrmFlowError):
    """Raised when an action's parameters do not fit its type.

    Always raised before any side effect of the action takes place.
    """

    def __init__(self, detail: str = "Invalid action parameters"):
        super().__init__(detail)


class CollaboratorError(CrmFlowError):
    """Raised when an external collaborator call fails or times out.

    Side effects of earlier actions in the same rule are not undone.
    """

    def __init__(self, detail: str = "External collaborator call failed"):
        super().__init__(detail)


class NoAgentAvailableError(CollaboratorError):
    """Raised when the agent pool has no active agent to hand out."""

    def __init__(self, detail: str = "No active agent available for assignment"):
        super().__init__(detail)


class EscalationOrderError(CrmFlowError):
    """Raised when escalation levels are not contiguous and ascending."""

    def __init__(self, detail: str = "Escalation levels must be numbered 1..n in order"):
        super().__init__(detail)


class InvalidStatusTransitionError(CrmFlowError):
    """Raised when an invalid status transition is attempted."""

    def __init__(self, detail: str = "Invalid status transition"):
        super().__init__(detail)
