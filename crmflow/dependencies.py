import logging

from fastapi import Depends
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from crmflow.core.config import settings
from crmflow.core.database import get_db

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Redis client factory
# ---------------------------------------------------------------------------


async def get_redis_client() -> Redis:
    """Get an async Redis client instance using connection pooling."""
    try:
        client = Redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
        )
        await client.ping()
        return client
    except Exception:
        logger.warning("Redis unavailable, caching disabled for this request")
        return None  # type: ignore[return-value]


async def get_cache_service(
    redis_client: Redis = Depends(get_redis_client),
):
    """Build a :class:`CacheService` backed by the shared Redis client."""
    from crmflow.core.cache import CacheService

    return CacheService(redis_client=redis_client)


# ---------------------------------------------------------------------------
# Repository factory functions (one per repository, each gets the shared db)
# ---------------------------------------------------------------------------


async def get_lead_repo(
    db: AsyncSession = Depends(get_db),
):
    from crmflow.repositories.lead_repository import LeadRepository

    return LeadRepository(db)


async def get_agent_repo(
    db: AsyncSession = Depends(get_db),
):
    from crmflow.repositories.agent_repository import AgentRepository

    return AgentRepository(db)


async def get_rule_repo(
    db: AsyncSession = Depends(get_db),
):
    from crmflow.repositories.workflow_rule_repository import WorkflowRuleRepository

    return WorkflowRuleRepository(db)


async def get_execution_repo(
    db: AsyncSession = Depends(get_db),
):
    from crmflow.repositories.execution_repository import ExecutionRepository

    return ExecutionRepository(db)


async def get_escalation_rule_repo(
    db: AsyncSession = Depends(get_db),
):
    from crmflow.repositories.escalation_rule_repository import (
        EscalationRuleRepository,
    )

    return EscalationRuleRepository(db)


async def get_escalation_state_repo(
    db: AsyncSession = Depends(get_db),
):
    from crmflow.repositories.escalation_state_repository import (
        EscalationStateRepository,
    )

    return EscalationStateRepository(db)


async def get_reminder_repo(
    db: AsyncSession = Depends(get_db),
):
    from crmflow.repositories.reminder_repository import ReminderRepository

    return ReminderRepository(db)


async def get_notification_repo(
    db: AsyncSession = Depends(get_db),
):
    from crmflow.repositories.notification_repository import NotificationRepository

    return NotificationRepository(db)


# ---------------------------------------------------------------------------
# Collaborator factories
# ---------------------------------------------------------------------------


async def get_agent_pool(
    agent_repo=Depends(get_agent_repo),
    cache=Depends(get_cache_service),
):
    from crmflow.services.agent_pool import AgentPool

    return AgentPool(agent_repo=agent_repo, cache=cache)


async def get_notifier(
    notification_repo=Depends(get_notification_repo),
):
    from crmflow.services.notifier import Notifier

    return Notifier(notification_repo=notification_repo)


async def get_reminder_service(
    reminder_repo=Depends(get_reminder_repo),
):
    from crmflow.services.reminder_service import ReminderService

    return ReminderService(reminder_repo=reminder_repo)


async def get_action_dispatcher(
    agent_pool=Depends(get_agent_pool),
    lead_repo=Depends(get_lead_repo),
    notifier=Depends(get_notifier),
    reminder_service=Depends(get_reminder_service),
    execution_repo=Depends(get_execution_repo),
):
    """Build an :class:`ActionDispatcher` wired to the request's session."""
    from crmflow.services.action_dispatcher import ActionDispatcher

    return ActionDispatcher(
        agent_pool=agent_pool,
        lead_writer=lead_repo,
        notifier=notifier,
        reminder_store=reminder_service,
        execution_log=execution_repo,
        action_timeout=settings.ACTION_TIMEOUT_SECONDS,
        savepoint=execution_repo.savepoint,
    )


# ---------------------------------------------------------------------------
# Service factory functions
# ---------------------------------------------------------------------------


async def get_workflow_service(
    rule_repo=Depends(get_rule_repo),
    lead_repo=Depends(get_lead_repo),
    execution_repo=Depends(get_execution_repo),
    dispatcher=Depends(get_action_dispatcher),
    cache=Depends(get_cache_service),
):
    """Build a :class:`WorkflowService` with injected dependencies."""
    from crmflow.services.workflow_service import WorkflowService

    return WorkflowService(
        rule_repo=rule_repo,
        lead_repo=lead_repo,
        execution_repo=execution_repo,
        dispatcher=dispatcher,
        cache=cache,
    )


async def get_escalation_service(
    rule_repo=Depends(get_escalation_rule_repo),
    state_repo=Depends(get_escalation_state_repo),
    lead_repo=Depends(get_lead_repo),
    agent_pool=Depends(get_agent_pool),
    notifier=Depends(get_notifier),
    reminder_service=Depends(get_reminder_service),
):
    """Build an :class:`EscalationService` with injected dependencies."""
    from crmflow.services.escalation_service import EscalationService

    return EscalationService(
        rule_repo=rule_repo,
        state_repo=state_repo,
        lead_repo=lead_repo,
        agent_pool=agent_pool,
        notifier=notifier,
        reminder_service=reminder_service,
    )
