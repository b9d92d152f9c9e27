"""Canonical inbound events produced by the extractor.

Every raw provider envelope maps to exactly one of these shapes. Messages from
users (text, interactive replies, images, documents) share the ``BaseMessage``
fields so the router can treat them uniformly; delivery receipts arrive as a
``StatusBatch``; anything that cannot be parsed is ``Unrecognized``.
"""

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Union
from uuid import UUID


class MessageKind(str, Enum):
    TEXT = "text"
    INTERACTIVE_BUTTON = "interactive_button"
    INTERACTIVE_LIST = "interactive_list"
    IMAGE = "image"
    DOCUMENT = "document"
    STATUS_BATCH = "status_batch"
    UNRECOGNIZED = "unrecognized"


@dataclass(frozen=True)
class BaseMessage(ABC):
    external_id: str
    sender_id: str
    timestamp: datetime
    text_body: str = ""
    contact_name: Optional[str] = None
    media_ref: Optional[str] = None

    @property
    @abstractmethod
    def kind(self) -> MessageKind:
        pass


@dataclass(frozen=True)
class TextMessage(BaseMessage):
    @property
    def kind(self) -> MessageKind:
        return MessageKind.TEXT


@dataclass(frozen=True)
class InteractiveMessage(BaseMessage):
    interactive_type: str = "button_reply"
    title: Optional[str] = None

    @property
    def kind(self) -> MessageKind:
        if self.interactive_type == "list_reply":
            return MessageKind.INTERACTIVE_LIST
        return MessageKind.INTERACTIVE_BUTTON


@dataclass(frozen=True)
class ImageMessage(BaseMessage):
    mime_type: Optional[str] = None
    caption: Optional[str] = None

    @property
    def kind(self) -> MessageKind:
        return MessageKind.IMAGE


@dataclass(frozen=True)
class DocumentMessage(BaseMessage):
    mime_type: Optional[str] = None
    caption: Optional[str] = None
    filename: Optional[str] = None

    @property
    def kind(self) -> MessageKind:
        return MessageKind.DOCUMENT


@dataclass(frozen=True)
class StatusEvent:
    external_message_id: str
    status: str
    timestamp: datetime
    recipient_id: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None


@dataclass(frozen=True)
class StatusBatch:
    events: List[StatusEvent] = field(default_factory=list)

    @property
    def kind(self) -> MessageKind:
        return MessageKind.STATUS_BATCH


@dataclass(frozen=True)
class Unrecognized:
    reason: str
    external_id: Optional[str] = None
    message_type: Optional[str] = None

    @property
    def kind(self) -> MessageKind:
        return MessageKind.UNRECOGNIZED


UserMessage = Union[TextMessage, InteractiveMessage, ImageMessage, DocumentMessage]
MediaMessage = Union[ImageMessage, DocumentMessage]
CanonicalEvent = Union[TextMessage, InteractiveMessage, ImageMessage, DocumentMessage, StatusBatch, Unrecognized]


@dataclass
class RoutingOutcome:
    """What the router did with one inbound message."""

    action: str
    execution_id: Optional[UUID] = None
    detail: Optional[str] = None


def message_to_payload(message: Optional[BaseMessage], **extra) -> Optional[dict]:
    """JSON-safe dict of a canonical message, for storage and engine calls."""
    if message is None:
        return None
    payload = asdict(message)
    payload["timestamp"] = message.timestamp.isoformat()
    payload["kind"] = message.kind.value
    payload.update(extra)
    return payload
