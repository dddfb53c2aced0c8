from sqlalchemy import Column, String, Integer, Boolean, DateTime, CheckConstraint, Index, text
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.sql import func

from crmflow.core.constants import RULE_TYPE_CHECK_CLAUSE
from crmflow.models.base import Base


class WorkflowRuleModel(Base):
    """Stored automation rule.

    ``conditions`` and ``actions`` are JSONB arrays of the shapes
    described by ``WorkflowCondition`` and ``WorkflowAction``.  Higher
    ``priority`` is evaluated first; ties go to the older rule.
    """

    __tablename__ = "workflow_rules"
    id = Column(UUID(as_uuid=True), primary_key=True, server_default=func.gen_random_uuid())
    name = Column(String(200), nullable=False)
    type = Column(String(30), nullable=False)
    conditions = Column(JSONB, nullable=False, server_default=text("'[]'::jsonb"))
    actions = Column(JSONB, nullable=False, server_default=text("'[]'::jsonb"))
    is_active = Column(Boolean, nullable=False, server_default=text("true"))
    priority = Column(Integer, nullable=False, server_default=text("0"))
    created_by = Column(String(100))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("idx_workflow_rules_type_active_priority", "type", "is_active", "priority"),
        CheckConstraint(RULE_TYPE_CHECK_CLAUSE, name="ck_workflow_rule_type"),
    )
