from typing import List, Literal, Optional, Union
from uuid import UUID

from pydantic import AliasChoices, BaseModel, Field


class ContactProfile(BaseModel):
    name: Optional[str] = None


class Contact(BaseModel):
    wa_id: Optional[str] = None
    profile: Optional[ContactProfile] = None


class TextContent(BaseModel):
    body: str = ""


class ReplySelection(BaseModel):
    id: str
    title: Optional[str] = None
    description: Optional[str] = None


class InteractiveContent(BaseModel):
    type: str
    button_reply: Optional[ReplySelection] = None
    list_reply: Optional[ReplySelection] = None


class ImageContent(BaseModel):
    id: str
    mime_type: Optional[str] = None
    sha256: Optional[str] = None
    caption: Optional[str] = None


class DocumentContent(BaseModel):
    id: str
    mime_type: Optional[str] = None
    sha256: Optional[str] = None
    filename: Optional[str] = None
    caption: Optional[str] = None


class InboundMessage(BaseModel):
    id: str
    sender: Optional[str] = Field(default=None, validation_alias=AliasChoices("from", "sender"))
    timestamp: Optional[Union[int, str]] = None
    type: str
    text: Optional[TextContent] = None
    interactive: Optional[InteractiveContent] = None
    image: Optional[ImageContent] = None
    document: Optional[DocumentContent] = None


class StatusError(BaseModel):
    code: Optional[Union[int, str]] = None
    title: Optional[str] = None
    message: Optional[str] = None


class StatusUpdate(BaseModel):
    id: str
    status: str
    timestamp: Optional[Union[int, str]] = None
    recipient_id: Optional[str] = None
    errors: Optional[List[StatusError]] = None


class ChangeMetadata(BaseModel):
    display_phone_number: Optional[str] = None
    phone_number_id: Optional[str] = None


class ChangeValue(BaseModel):
    messaging_product: Optional[str] = None
    metadata: Optional[ChangeMetadata] = None
    contacts: Optional[List[Contact]] = None
    messages: Optional[List[InboundMessage]] = None
    statuses: Optional[List[StatusUpdate]] = None


class Change(BaseModel):
    field: Optional[str] = None
    value: ChangeValue


class Entry(BaseModel):
    id: Optional[str] = None
    changes: List[Change]


class WebhookEnvelope(BaseModel):
    object: Optional[str] = None
    entry: List[Entry]


class WebhookResponse(BaseModel):
    success: bool
    message: str
    execution_id: Optional[UUID] = None
    action: Optional[str] = None


class FormDecisionRequest(BaseModel):
    status: Literal["Approved", "Rejected"]
    decided_by: Optional[str] = None


class FormDecisionResponse(BaseModel):
    success: bool
    form_instance_id: UUID
    execution_id: Optional[UUID] = None
    message: str


class DedupStatsResponse(BaseModel):
    count: int
    oldest: Optional[str] = None
    newest: Optional[str] = None
    ttl_hours: float
    backend: str
