from sqlalchemy import Column, String, Text, DateTime, CheckConstraint, Index, ForeignKey
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.sql import func

from crmflow.models.base import Base


class WorkflowExecutionModel(Base):
    """Append-only audit row for one rule run against one lead."""

    __tablename__ = "workflow_executions"
    id = Column(UUID(as_uuid=True), primary_key=True)
    rule_id = Column(
        UUID(as_uuid=True),
        ForeignKey("workflow_rules.id", ondelete="CASCADE"),
        nullable=False,
    )
    lead_id = Column(
        UUID(as_uuid=True),
        ForeignKey("leads.id", ondelete="CASCADE"),
        nullable=False,
    )
    status = Column(String(20), nullable=False, server_default="pending")
    started_at = Column(DateTime(timezone=True), server_default=func.now())
    completed_at = Column(DateTime(timezone=True))
    error_message = Column(Text)
    result_data = Column(JSONB)

    __table_args__ = (
        Index("idx_workflow_executions_rule_lead", "rule_id", "lead_id"),
        CheckConstraint(
            "status IN ('pending', 'running', 'completed', 'failed')",
            name="ck_execution_status",
        ),
    )
