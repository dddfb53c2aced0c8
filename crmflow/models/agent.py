from sqlalchemy import Column, String, Boolean, DateTime, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from crmflow.models.base import Base


class Agent(Base):
    """Sales agent that leads can be assigned to.

    Workload is not stored; it is the number of assigned leads that are
    not in a terminal status, computed on demand by the agent pool.
    """

    __tablename__ = "agents"
    id = Column(UUID(as_uuid=True), primary_key=True, server_default=func.gen_random_uuid())
    full_name = Column(String(200), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    is_active = Column(Boolean, nullable=False, server_default=text("true"))
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    leads = relationship("Lead", back_populates="assigned_agent")
