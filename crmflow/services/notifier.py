import logging
from typing import Any, Dict, Optional
from uuid import UUID

import httpx

from crmflow.core.config import settings
from crmflow.core.exceptions import CollaboratorError
from crmflow.repositories.notification_repository import NotificationRepository

logger = logging.getLogger(__name__)

# Timeout for calls to the transactional email API (seconds).
_EMAIL_TIMEOUT = 10.0


class Notifier:
    """Outbound email over an HTTP API plus in-app notification rows.

    With no ``EMAIL_API_URL`` configured, emails are logged and reported
    as ``logged`` instead of being sent.
    """

    def __init__(
        self,
        notification_repo: NotificationRepository,
        email_api_url: Optional[str] = None,
        email_api_key: Optional[str] = None,
        email_from: Optional[str] = None,
    ) -> None:
        self._notification_repo = notification_repo
        self._email_api_url: str = (
            email_api_url if email_api_url is not None else settings.EMAIL_API_URL
        )
        self._email_api_key: str = (
            email_api_key if email_api_key is not None else settings.EMAIL_API_KEY
        )
        self._email_from: str = email_from or settings.EMAIL_FROM

    async def send_email(self, to: str, subject: str, body: str) -> Dict[str, Any]:
        if not self._email_api_url:
            logger.info("Email (log-only) to %s: %s", to, subject)
            return {"status": "logged", "to": to, "subject": subject}

        payload = {
            "from": self._email_from,
            "to": [to],
            "subject": subject,
            "text": body,
        }
        headers = {"Authorization": f"Bearer {self._email_api_key}"}
        try:
            async with httpx.AsyncClient(timeout=_EMAIL_TIMEOUT) as client:
                response = await client.post(
                    self._email_api_url, json=payload, headers=headers
                )
                response.raise_for_status()
        except httpx.TimeoutException:
            logger.error("Email API timed out: %s", self._email_api_url)
            raise CollaboratorError("Email service timed out")
        except httpx.HTTPStatusError as exc:
            logger.error(
                "Email API returned %s: %s",
                exc.response.status_code,
                self._email_api_url,
            )
            raise CollaboratorError(
                f"Email service returned {exc.response.status_code}"
            )
        except httpx.HTTPError as exc:
            logger.error("Email API unreachable: %s (%s)", self._email_api_url, exc)
            raise CollaboratorError("Email service unavailable")

        message_id = None
        try:
            message_id = response.json().get("id")
        except ValueError:
            pass
        logger.info("Email sent to %s: %s", to, subject)
        return {"status": "sent", "to": to, "subject": subject, "message_id": message_id}

    async def notify(
        self,
        user_id: str,
        title: str,
        message: str,
        data: Optional[Dict[str, Any]] = None,
        priority: str = "high",
    ) -> Dict[str, Any]:
        """Store an in-app notification for *user_id*."""
        lead_id = (data or {}).get("lead_id")
        notification = await self._notification_repo.create(
            user_id=user_id,
            title=title,
            message=message,
            type="escalation",
            priority=priority,
            data=data,
            related_entity_type="lead" if lead_id else None,
            related_entity_id=UUID(str(lead_id)) if lead_id else None,
        )
        logger.info("Notification for %s: %s", user_id, title)
        return {"user_id": user_id, "notification_id": str(notification.id)}
