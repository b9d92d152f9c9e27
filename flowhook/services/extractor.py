from datetime import datetime, timezone
from typing import Any, Optional, Union

from pydantic import ValidationError

from flowhook.logging_config import get_logger
from flowhook.schemas.webhook import ChangeValue, InboundMessage, StatusUpdate, WebhookEnvelope
from flowhook.services.events import (
    CanonicalEvent,
    DocumentMessage,
    ImageMessage,
    InteractiveMessage,
    StatusBatch,
    StatusEvent,
    TextMessage,
    Unrecognized,
)

logger = get_logger("extractor")


def _parse_epoch(value: Optional[Union[int, str]]) -> Optional[datetime]:
    if value is None or value == "":
        return None
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        return None


def _status_event(status: StatusUpdate) -> Optional[StatusEvent]:
    timestamp = _parse_epoch(status.timestamp)
    if timestamp is None:
        logger.warning(
            "Dropping status with unparseable timestamp",
            extra={"context": {"message_id": status.id, "timestamp": status.timestamp}},
        )
        return None

    error_code = None
    error_message = None
    if status.errors:
        first = status.errors[0]
        error_code = str(first.code) if first.code is not None else None
        error_message = first.title or first.message

    return StatusEvent(
        external_message_id=status.id,
        status=status.status.strip().lower(),
        timestamp=timestamp,
        recipient_id=status.recipient_id,
        error_code=error_code,
        error_message=error_message,
    )


def _user_message(value: ChangeValue, message: InboundMessage) -> CanonicalEvent:
    contact = value.contacts[0] if value.contacts else None
    sender_id = (contact.wa_id if contact else None) or message.sender
    if not sender_id:
        return Unrecognized(reason="missing sender", external_id=message.id, message_type=message.type)

    common = {
        "external_id": message.id,
        "sender_id": sender_id,
        "timestamp": _parse_epoch(message.timestamp) or datetime.now(timezone.utc),
        "contact_name": contact.profile.name if contact and contact.profile else None,
    }

    if message.type == "text":
        body = message.text.body if message.text else ""
        return TextMessage(text_body=body, **common)

    if message.type == "interactive":
        interactive = message.interactive
        selection = None
        if interactive is not None:
            selection = interactive.button_reply or interactive.list_reply
        if selection is None:
            return Unrecognized(reason="interactive reply without selection", external_id=message.id)
        return InteractiveMessage(
            text_body=selection.id,
            interactive_type=interactive.type,
            title=selection.title,
            **common,
        )

    if message.type == "image":
        if message.image is None:
            return Unrecognized(reason="image message without media", external_id=message.id)
        return ImageMessage(
            text_body=message.image.caption or "",
            media_ref=message.image.id,
            mime_type=message.image.mime_type,
            caption=message.image.caption,
            **common,
        )

    if message.type == "document":
        if message.document is None:
            return Unrecognized(reason="document message without media", external_id=message.id)
        return DocumentMessage(
            text_body=message.document.caption or "",
            media_ref=message.document.id,
            mime_type=message.document.mime_type,
            caption=message.document.caption,
            filename=message.document.filename,
            **common,
        )

    return Unrecognized(reason="unsupported message type", external_id=message.id, message_type=message.type)


def _extract(payload: Any) -> CanonicalEvent:
    try:
        envelope = WebhookEnvelope.model_validate(payload)
    except ValidationError as exc:
        logger.info("Unparseable webhook envelope", extra={"context": {"errors": exc.error_count()}})
        return Unrecognized(reason="invalid envelope")

    if not envelope.entry or not envelope.entry[0].changes:
        return Unrecognized(reason="empty envelope")

    value = envelope.entry[0].changes[0].value

    if value.statuses:
        events = [event for event in (_status_event(status) for status in value.statuses) if event]
        return StatusBatch(events=events)

    if value.messages:
        return _user_message(value, value.messages[0])

    return Unrecognized(reason="no messages or statuses")


def extract(payload: Any) -> CanonicalEvent:
    """Turn a raw provider envelope into one canonical event. Never raises."""
    try:
        return _extract(payload)
    except Exception as exc:
        logger.error("Extractor failed", extra={"context": {"error": str(exc)}}, exc_info=True)
        return Unrecognized(reason="extractor error")
