"""Inbound webhook pipeline: extract, deduplicate, resolve tenant, route.

Every outcome, including failures, is returned as a ``Result`` so the HTTP
layer can always acknowledge the provider with a 200.
"""

import hashlib
import hmac
from typing import Any, Optional

from flowhook.logging_config import LoggerAdapter, get_logger
from flowhook.models import Tenant
from flowhook.services.dedup_service import DedupLedger
from flowhook.services.delivery_status_service import DeliveryStatusProcessor
from flowhook.services.errors import EngineError
from flowhook.services.events import RoutingOutcome, StatusBatch, Unrecognized
from flowhook.services.extractor import extract
from flowhook.services.ports import ExecutionStore
from flowhook.services.result import ErrorCode, Result
from flowhook.services.router_service import MessageRouter

logger = get_logger("webhook_service")

SIGNATURE_PREFIX = "sha256="


def verify_signature(app_secret: str, raw_body: bytes, signature_header: Optional[str]) -> bool:
    """Check an ``X-Hub-Signature-256`` header against the raw request body."""
    if not signature_header or not signature_header.startswith(SIGNATURE_PREFIX):
        return False
    expected = hmac.new(app_secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature_header[len(SIGNATURE_PREFIX) :])


def verify_subscription(tenant: Optional[Tenant], mode: Optional[str], token: Optional[str]) -> bool:
    """Provider subscribe handshake: mode must be subscribe and the token must match the tenant's."""
    if tenant is None or not tenant.verify_token:
        return False
    return mode == "subscribe" and token is not None and hmac.compare_digest(token, tenant.verify_token)


class WebhookProcessor:
    def __init__(
        self,
        store: ExecutionStore,
        ledger: DedupLedger,
        router: MessageRouter,
        status_processor: DeliveryStatusProcessor,
    ):
        self.store = store
        self.ledger = ledger
        self.router = router
        self.status_processor = status_processor

    async def process(self, tenant_token: str, payload: Any) -> Result[RoutingOutcome]:
        event = extract(payload)

        if isinstance(event, Unrecognized):
            logger.info(
                "No valid message data",
                extra={"context": {"reason": event.reason, "message_type": event.message_type}},
            )
            return Result.success(RoutingOutcome(action="ignored", detail=event.reason))

        if isinstance(event, StatusBatch):
            return await self._process_statuses(event)

        log = LoggerAdapter(logger, {"message_id": event.external_id, "sender": event.sender_id})

        if await self.ledger.is_processed(event.external_id):
            log.info("Duplicate message skipped")
            return Result.success(RoutingOutcome(action="duplicate"))

        tenant = await self.store.get_tenant_by_token(tenant_token)
        if tenant is None:
            log.warning("Tenant not found for webhook token")
            return Result.failure("Tenant not found", ErrorCode.TENANT_NOT_FOUND)

        if not await self.ledger.try_mark(event.external_id):
            log.info("Duplicate message skipped")
            return Result.success(RoutingOutcome(action="duplicate"))

        try:
            outcome = await self.router.route(tenant, event)
            await self.store.commit()
        except EngineError as exc:
            # State is committed before every engine call; the message stays marked.
            log.error(
                "Engine call failed after state was committed",
                context={"tenant_id": str(tenant.id), "error": exc.message},
            )
            return Result.failure(exc.message, ErrorCode.ENGINE_ERROR)
        except Exception as exc:
            await self.ledger.unmark(event.external_id)
            await self.store.rollback()
            log.error(
                "Message processing failed",
                context={"tenant_id": str(tenant.id), "error": str(exc)},
                exc_info=True,
            )
            return Result.failure(str(exc) or exc.__class__.__name__, ErrorCode.UNEXPECTED_ERROR)

        log.info("Message processed", context={"action": outcome.action})
        return Result.success(outcome)

    async def _process_statuses(self, batch: StatusBatch) -> Result[RoutingOutcome]:
        try:
            summary = await self.status_processor.process(batch.events)
            await self.store.commit()
        except Exception as exc:
            await self.store.rollback()
            logger.error(
                "Status processing failed",
                extra={"context": {"events": len(batch.events), "error": str(exc)}},
                exc_info=True,
            )
            return Result.failure(str(exc) or exc.__class__.__name__, ErrorCode.UNEXPECTED_ERROR)

        logger.info(
            "Status update processed",
            extra={"context": {"applied": summary.applied, "ignored": summary.ignored, "untracked": summary.untracked}},
        )
        return Result.success(RoutingOutcome(action="status_processed", detail=f"{summary.applied} applied"))
