from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional
from uuid import UUID

from flowhook.logging_config import get_logger
from flowhook.models import MessageRecipient, MessageSend
from flowhook.services.events import StatusEvent
from flowhook.services.ports import ExecutionStore
from flowhook.services.state_machine import (
    PROVIDER_STATUS_MAP,
    SUCCESS_STATUSES,
    BatchStatus,
    DeliveryStatus,
    InvalidTransitionError,
    derive_batch_status,
    transition,
)

logger = get_logger("delivery_status")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class StatusProcessingSummary:
    applied: int = 0
    ignored: int = 0
    untracked: int = 0
    batches: list = field(default_factory=list)


def apply_status_event(recipient: MessageRecipient, event: StatusEvent) -> bool:
    """Move one recipient through the delivery state machine. True if it changed."""
    target = PROVIDER_STATUS_MAP.get(event.status)
    if target is None:
        logger.info("Ignoring unknown delivery status", extra={"context": {"status": event.status}})
        return False

    current = DeliveryStatus(recipient.status or DeliveryStatus.PENDING.value)
    try:
        recipient.status = transition(current, target).value
    except InvalidTransitionError as exc:
        logger.debug(
            "Delivery status not applied",
            extra={"context": {"provider_message_id": event.external_message_id, "error": exc.message}},
        )
        return False

    timestamp = event.timestamp

    if target == DeliveryStatus.SENT:
        recipient.sent_at = timestamp
    elif target == DeliveryStatus.DELIVERED:
        recipient.delivered_at = timestamp
        if recipient.sent_at is None:
            recipient.sent_at = timestamp
    elif target == DeliveryStatus.READ:
        recipient.read_at = timestamp
        if recipient.delivered_at is None:
            recipient.delivered_at = timestamp
        if recipient.sent_at is None:
            recipient.sent_at = timestamp
    elif target == DeliveryStatus.FAILED:
        recipient.failed_at = timestamp
        recipient.error_code = event.error_code
        recipient.error_message = event.error_message

    return True


def recompute_batch(batch: MessageSend, recipients: Iterable[MessageRecipient], now: datetime) -> BatchStatus:
    """Re-derive batch counters and status from the full recipient set."""
    statuses = [DeliveryStatus(recipient.status or DeliveryStatus.PENDING.value) for recipient in recipients]
    batch.total = len(statuses)
    batch.success_count = sum(1 for status in statuses if status in SUCCESS_STATUSES)
    batch.failed_count = sum(1 for status in statuses if status == DeliveryStatus.FAILED)

    status = derive_batch_status(batch.total, batch.success_count, batch.failed_count)
    batch.status = status.value
    if status == BatchStatus.COMPLETED and batch.completed_at is None:
        batch.completed_at = now
    batch.updated_at = now
    return status


class DeliveryStatusProcessor:
    def __init__(self, store: ExecutionStore, clock: Callable[[], datetime] = _utcnow):
        self.store = store
        self.clock = clock

    async def process(self, events: Iterable[StatusEvent]) -> StatusProcessingSummary:
        summary = StatusProcessingSummary()
        touched: dict[UUID, None] = {}

        for event in events:
            recipient = await self.store.find_recipient(event.external_message_id, event.recipient_id)
            if recipient is None:
                logger.info(
                    "Status for untracked message",
                    extra={"context": {"message_id": event.external_message_id, "recipient": event.recipient_id}},
                )
                summary.untracked += 1
                continue

            if not apply_status_event(recipient, event):
                summary.ignored += 1
                continue

            recipient.updated_at = self.clock()
            await self.store.save(recipient)
            summary.applied += 1
            touched[recipient.message_send_id] = None

            if event.status == "failed":
                logger.warning(
                    "Message delivery failed",
                    extra={
                        "context": {
                            "message_id": event.external_message_id,
                            "error_code": event.error_code,
                            "error": event.error_message,
                        }
                    },
                )

        for batch_id in touched:
            status = await self._refresh_batch(batch_id)
            if status is not None:
                summary.batches.append({"id": str(batch_id), "status": status.value})

        return summary

    async def _refresh_batch(self, batch_id: UUID) -> Optional[BatchStatus]:
        batch = await self.store.get_message_send(batch_id)
        if batch is None:
            logger.warning("Recipient references missing batch", extra={"context": {"batch_id": str(batch_id)}})
            return None
        recipients = await self.store.list_recipients(batch_id)
        status = recompute_batch(batch, recipients, self.clock())
        await self.store.save(batch)
        return status
