import uuid

from sqlalchemy import Boolean, Column, Text
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID
from sqlalchemy.sql import func

from flowhook.database import Base
from flowhook.models.types import JSONType


class Tenant(Base):
    __tablename__ = "tenants"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(Text, nullable=False)
    webhook_token = Column(Text, nullable=False, unique=True)  # opaque token in the webhook URL
    verify_token = Column(Text)  # hub.verify_token for the subscribe handshake
    app_secret = Column(Text)  # X-Hub-Signature-256 key, optional
    api_key = Column(Text)  # Graph API bearer token
    phone_number_id = Column(Text)
    menu_settings = Column(JSONType, nullable=False, default=dict)  # per-tenant menu text overrides
    is_active = Column(Boolean, default=True)
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())
