"""Collaborator contracts consumed by the action dispatcher.

The dispatcher only ever talks to these protocols; concrete
implementations are injected by the caller (see ``crmflow.dependencies``).
"""

from datetime import datetime
from typing import Any, Dict, Optional, Protocol
from uuid import UUID

from crmflow.schemas.workflow import WorkflowExecution


class AgentPool(Protocol):
    """Hands out agents for ``assign_agent`` actions."""

    async def next_round_robin_agent(self) -> UUID: ...

    async def least_loaded_agent(self) -> UUID: ...


class LeadWriter(Protocol):
    """Lead mutations performed by actions.

    ``lead_id`` is the record's identifier as text, passed through as is.
    """

    async def assign_agent(self, lead_id: Optional[str], agent_id: str) -> None: ...

    async def update_status(self, lead_id: Optional[str], new_status: str) -> None: ...


class Notifier(Protocol):
    """Outbound email and in-app notifications."""

    async def send_email(self, to: str, subject: str, body: str) -> Dict[str, Any]: ...

    async def notify(
        self,
        user_id: str,
        title: str,
        message: str,
        data: Optional[Dict[str, Any]] = None,
        priority: str = "high",
    ) -> Dict[str, Any]: ...


class ReminderStore(Protocol):
    """Creates follow-up reminders for ``create_task``/``create_reminder``."""

    async def create_reminder(
        self,
        lead_id: Optional[str],
        assigned_to: str,
        reminder_type: str,
        title: str,
        description: str,
        due_date: datetime,
        priority: str,
        created_by: str,
    ) -> UUID: ...


class ExecutionLog(Protocol):
    """Append-only audit trail of executions."""

    async def record(self, execution: WorkflowExecution) -> None: ...

    async def update(self, execution: WorkflowExecution) -> None: ...
