from sqlalchemy import Column, String, Boolean, DateTime, text
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.sql import func

from crmflow.models.base import Base


class EscalationRuleModel(Base):
    """Time-ordered escalation ladder fired for leads matching a trigger.

    ``escalation_levels`` is a JSONB array of ``EscalationLevel``
    objects, numbered ``1..n`` in order.
    """

    __tablename__ = "escalation_rules"
    id = Column(UUID(as_uuid=True), primary_key=True, server_default=func.gen_random_uuid())
    name = Column(String(200), nullable=False)
    trigger_condition = Column(String(50), nullable=False)
    escalation_levels = Column(JSONB, nullable=False, server_default=text("'[]'::jsonb"))
    is_active = Column(Boolean, nullable=False, server_default=text("true"))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
