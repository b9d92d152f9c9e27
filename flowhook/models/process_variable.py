import uuid

from sqlalchemy import Column, ForeignKey, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID
from sqlalchemy.sql import func

from flowhook.database import Base


class ProcessVariable(Base):
    __tablename__ = "process_variables"
    __table_args__ = (UniqueConstraint("execution_id", "name", name="uq_process_variables_execution_name"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    execution_id = Column(UUID(as_uuid=True), ForeignKey("workflow_executions.id"), nullable=False)
    name = Column(Text, nullable=False)
    value = Column(Text)
    set_by = Column(Text)
    source_type = Column(Text)  # validator, qrcode, form_approval
    updated_at = Column(TIMESTAMP(timezone=True), server_default=func.now())
