from typing import Any, Dict, Optional
from uuid import UUID

from crmflow.models.notification import Notification
from crmflow.repositories.base import BaseRepository


class NotificationRepository(BaseRepository):
    """Writes in-app notifications."""

    async def create(
        self,
        user_id: str,
        title: str,
        message: str,
        type: str = "system",
        priority: str = "medium",
        data: Optional[Dict[str, Any]] = None,
        related_entity_type: Optional[str] = None,
        related_entity_id: Optional[UUID] = None,
    ) -> Notification:
        return await self._save(
            Notification(
                user_id=user_id,
                title=title,
                message=message,
                type=type,
                priority=priority,
                data=data,
                related_entity_type=related_entity_type,
                related_entity_id=related_entity_id,
            )
        )
