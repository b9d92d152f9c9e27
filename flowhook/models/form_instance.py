import uuid

from sqlalchemy import Column, ForeignKey, Text
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID
from sqlalchemy.sql import func

from flowhook.database import Base


class FormInstance(Base):
    __tablename__ = "form_instances"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("tenants.id"), nullable=False)
    execution_id = Column(UUID(as_uuid=True), ForeignKey("workflow_executions.id"))
    step_execution_id = Column(UUID(as_uuid=True), ForeignKey("workflow_step_executions.id"))
    name = Column(Text)
    status = Column(Text, nullable=False, default="Pending")  # Pending, Approved, Rejected
    approval_by = Column(Text)
    approval_at = Column(TIMESTAMP(timezone=True))
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())
    updated_at = Column(TIMESTAMP(timezone=True))
