from sqlalchemy import Column, String, Text, Boolean, DateTime, Index, text
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.sql import func

from crmflow.models.base import Base


class Notification(Base):
    """In-app notification written by ``escalate`` actions."""

    __tablename__ = "notifications"
    id = Column(UUID(as_uuid=True), primary_key=True, server_default=func.gen_random_uuid())
    user_id = Column(String(100), nullable=False)
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    type = Column(String(30), nullable=False, server_default="system")
    priority = Column(String(20), nullable=False, server_default="medium")
    data = Column(JSONB)
    related_entity_type = Column(String(50))
    related_entity_id = Column(UUID(as_uuid=True))
    is_read = Column(Boolean, nullable=False, server_default=text("false"))
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (Index("idx_notifications_user_unread", "user_id", "is_read"),)
