import logging
from typing import Optional
from uuid import UUID

from crmflow.core.cache import CacheService
from crmflow.core.exceptions import NoAgentAvailableError
from crmflow.repositories.agent_repository import AgentRepository

logger = logging.getLogger(__name__)

# Redis key for the workflow round-robin pointer
_ROUND_ROBIN_KEY = "round_robin:workflow_agents"
# TTL for the round-robin key (24 hours), daily counter reset
_ROUND_ROBIN_TTL = 86400


class AgentPool:
    """Hands out agents for ``assign_agent`` actions.

    The round-robin counter is persisted in Redis so it is shared across
    worker processes.  If Redis is unavailable, an in-process fallback
    counter is used.
    """

    # In-process fallback when Redis is unavailable
    _fallback_counter: int = 0

    def __init__(
        self, agent_repo: AgentRepository, cache: Optional[CacheService] = None
    ) -> None:
        self._agent_repo = agent_repo
        self._cache: CacheService = cache or CacheService()

    async def next_round_robin_agent(self) -> UUID:
        """Return the next active agent in rotation (agents ordered by ID)."""
        agent_ids = await self._agent_repo.get_active_agent_ids()
        if not agent_ids:
            raise NoAgentAvailableError()

        counter = await self._cache.incr(_ROUND_ROBIN_KEY, ttl=_ROUND_ROBIN_TTL)
        if counter is not None:
            agent_id = agent_ids[(counter - 1) % len(agent_ids)]
        else:
            counter = AgentPool._fallback_counter
            AgentPool._fallback_counter += 1
            agent_id = agent_ids[counter % len(agent_ids)]

        logger.debug("Round-robin picked agent %s of %d", agent_id, len(agent_ids))
        return agent_id

    async def least_loaded_agent(self) -> UUID:
        """Return the active agent with the fewest open leads."""
        agent_id = await self._agent_repo.get_least_loaded_agent_id()
        if agent_id is None:
            raise NoAgentAvailableError()
        return agent_id
