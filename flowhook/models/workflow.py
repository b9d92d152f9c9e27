import uuid

from sqlalchemy import Boolean, Column, ForeignKey, Integer, Text
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID
from sqlalchemy.sql import func

from flowhook.database import Base
from flowhook.models.types import JSONType


class WorkflowDefinition(Base):
    __tablename__ = "workflow_definitions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("tenants.id"), nullable=False)
    name = Column(Text, nullable=False)
    description = Column(Text)
    status = Column(Text, nullable=False, default="Enabled")  # Enabled, Disabled
    activation_type = Column(Text, nullable=False, default="manual")  # webhook, manual, schedule
    definition_json = Column(JSONType, nullable=False, default=dict)
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())


class WorkflowExecution(Base):
    __tablename__ = "workflow_executions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    workflow_definition_id = Column(UUID(as_uuid=True), ForeignKey("workflow_definitions.id"), nullable=False)
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("tenants.id"), nullable=False)
    status = Column(Text, nullable=False, default="Running")
    current_step = Column(Integer, default=0)
    is_waiting = Column(Boolean, nullable=False, default=False)
    waiting_for_user = Column(Text)  # sender id the execution is paused on
    waiting_since = Column(TIMESTAMP(timezone=True))
    current_waiting_step = Column(Integer)  # cached hint, the flagged step row wins
    last_user_activity = Column(TIMESTAMP(timezone=True))
    initiated_by = Column(Text)
    created_by = Column(Text)
    input_json = Column(JSONType)
    started_at = Column(TIMESTAMP(timezone=True), server_default=func.now())
    ended_at = Column(TIMESTAMP(timezone=True))


class WorkflowStepExecution(Base):
    __tablename__ = "workflow_step_executions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    execution_id = Column(UUID(as_uuid=True), ForeignKey("workflow_executions.id"), nullable=False)
    step_index = Column(Integer)
    step_type = Column(Text)
    status = Column(Text, nullable=False, default="Running")
    is_waiting = Column(Boolean, nullable=False, default=False)
    waiting_for_user = Column(Text)
    validation_config = Column(JSONType)
    received_payload_json = Column(JSONType)
    started_at = Column(TIMESTAMP(timezone=True), server_default=func.now())
    ended_at = Column(TIMESTAMP(timezone=True))
