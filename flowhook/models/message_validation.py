import uuid

from sqlalchemy import Boolean, Column, ForeignKey, Integer, Text
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID
from sqlalchemy.sql import func

from flowhook.database import Base


class MessageValidation(Base):
    """One row per inbound attempt against a waiting step. Insert-only."""

    __tablename__ = "message_validations"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    execution_id = Column(UUID(as_uuid=True), ForeignKey("workflow_executions.id"), nullable=False)
    step_index = Column(Integer, nullable=False)
    user_wa_id = Column(Text)
    raw_input = Column(Text)
    message_type = Column(Text)
    media_ref = Column(Text)
    is_valid = Column(Boolean, nullable=False)
    error_message = Column(Text)
    processed_data = Column(Text)
    validator_kind = Column(Text, nullable=False, default="default")
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())
