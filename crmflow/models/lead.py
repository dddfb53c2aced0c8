from sqlalchemy import Column, String, Numeric, DateTime, CheckConstraint, Index, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from sqlalchemy import text

from crmflow.models.base import Base


class Lead(Base):
    """Prospective or onboarded brokerage customer.

    Workflow conditions are evaluated against the flat record built from
    these columns (``country``, ``status``, ``balance``, ``kyc_status``
    and friends).  ``last_contact`` drives the ``no_contact_*``
    escalation triggers.
    """

    __tablename__ = "leads"
    id = Column(UUID(as_uuid=True), primary_key=True, server_default=func.gen_random_uuid())
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=False)
    phone = Column(String(30))
    country = Column(String(100), nullable=False)
    status = Column(String(30), nullable=False, server_default="new")
    balance = Column(Numeric(15, 2), nullable=False, server_default=text("0"))
    bonus_amount = Column(Numeric(15, 2), nullable=False, server_default=text("0"))
    kyc_status = Column(String(20))
    assigned_agent_id = Column(
        UUID(as_uuid=True), ForeignKey("agents.id", ondelete="SET NULL")
    )
    last_contact = Column(DateTime(timezone=True))
    registration_date = Column(DateTime(timezone=True), server_default=func.now())
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    assigned_agent = relationship("Agent", back_populates="leads")

    __table_args__ = (
        Index("idx_leads_assigned_agent_status", "assigned_agent_id", "status"),
        Index("idx_leads_last_contact", "last_contact"),
        CheckConstraint(
            "status IN ('new', 'contacted', 'qualified', 'active', 'inactive', 'converted', 'lost')",
            name="ck_lead_status",
        ),
        CheckConstraint(
            "kyc_status IS NULL OR kyc_status IN ('pending', 'approved', 'rejected')",
            name="ck_lead_kyc_status",
        ),
    )
