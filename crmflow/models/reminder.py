from sqlalchemy import Column, String, Text, DateTime, CheckConstraint, Index, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func

from crmflow.models.base import Base


class FollowUpReminder(Base):
    __tablename__ = "follow_up_reminders"
    id = Column(UUID(as_uuid=True), primary_key=True, server_default=func.gen_random_uuid())
    lead_id = Column(UUID(as_uuid=True), ForeignKey("leads.id", ondelete="CASCADE"), nullable=False)
    assigned_to = Column(String(100), nullable=False)
    reminder_type = Column(String(20), nullable=False)
    title = Column(String(200), nullable=False)
    description = Column(Text)
    due_date = Column(DateTime(timezone=True), nullable=False)
    status = Column(String(20), nullable=False, server_default="pending")
    priority = Column(String(20), nullable=False, server_default="medium")
    created_by = Column(String(100), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    completed_at = Column(DateTime(timezone=True))

    __table_args__ = (
        Index("idx_reminders_assigned_status_due", "assigned_to", "status", "due_date"),
        CheckConstraint("reminder_type IN ('call', 'email', 'meeting', 'custom')", name="ck_reminder_type"),
        CheckConstraint("status IN ('pending', 'completed', 'cancelled')", name="ck_reminder_status"),
        CheckConstraint("priority IN ('low', 'medium', 'high', 'urgent')", name="ck_reminder_priority"),
    )
