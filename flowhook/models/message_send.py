import uuid

from sqlalchemy import Column, ForeignKey, Integer, Text
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID
from sqlalchemy.sql import func

from flowhook.database import Base


class MessageSend(Base):
    """A batch of outbound messages; counters are always re-derived from recipients."""

    __tablename__ = "message_sends"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("tenants.id"), nullable=False)
    execution_id = Column(UUID(as_uuid=True), ForeignKey("workflow_executions.id"))
    total = Column(Integer, nullable=False, default=0)
    success_count = Column(Integer, nullable=False, default=0)
    failed_count = Column(Integer, nullable=False, default=0)
    status = Column(Text, nullable=False, default="Pending")
    completed_at = Column(TIMESTAMP(timezone=True))
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())
    updated_at = Column(TIMESTAMP(timezone=True))


class MessageRecipient(Base):
    __tablename__ = "message_recipients"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    message_send_id = Column(UUID(as_uuid=True), ForeignKey("message_sends.id"), nullable=False)
    phone_number = Column(Text, nullable=False)
    provider_message_id = Column(Text, index=True)
    status = Column(Text, nullable=False, default="Pending")
    sent_at = Column(TIMESTAMP(timezone=True))
    delivered_at = Column(TIMESTAMP(timezone=True))
    read_at = Column(TIMESTAMP(timezone=True))
    failed_at = Column(TIMESTAMP(timezone=True))
    error_code = Column(Text)
    error_message = Column(Text)
    updated_at = Column(TIMESTAMP(timezone=True))
