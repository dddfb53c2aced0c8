from sqlalchemy import Column, Integer, DateTime, ForeignKey, UniqueConstraint, ARRAY, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func

from crmflow.models.base import Base


class EscalationState(Base):
    """Progress of one escalation rule for one lead.

    ``version`` is bumped on every write so concurrent tickers can use a
    compare-and-set update and never fire the same level twice.
    """

    __tablename__ = "escalation_states"
    id = Column(UUID(as_uuid=True), primary_key=True, server_default=func.gen_random_uuid())
    escalation_rule_id = Column(
        UUID(as_uuid=True),
        ForeignKey("escalation_rules.id", ondelete="CASCADE"),
        nullable=False,
    )
    lead_id = Column(
        UUID(as_uuid=True),
        ForeignKey("leads.id", ondelete="CASCADE"),
        nullable=False,
    )
    triggered_at = Column(DateTime(timezone=True), nullable=False)
    levels_fired = Column(ARRAY(Integer), nullable=False, server_default=text("'{}'"))
    version = Column(Integer, nullable=False, server_default=text("0"))
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("escalation_rule_id", "lead_id", name="uq_escalation_state_rule_lead"),
    )
