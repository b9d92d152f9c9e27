import json

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import PlainTextResponse
from starlette.requests import ClientDisconnect

from flowhook.dependencies import get_processor, get_store
from flowhook.logging_config import get_logger
from flowhook.schemas.webhook import WebhookResponse
from flowhook.services.ports import ExecutionStore
from flowhook.services.webhook_service import WebhookProcessor, verify_signature, verify_subscription

logger = get_logger("webhook")

router = APIRouter()

RESULT_MESSAGES = {
    "ignored": "No valid message data",
    "duplicate": "Duplicate message skipped",
    "status_processed": "Status update processed",
    "menu_sent": "Menu sent",
    "menu_resent": "Invalid choice, menu resent",
    "execution_started": "Workflow started",
}


@router.get("/webhook/{tenant_token}", response_class=PlainTextResponse)
async def verify_webhook(
    tenant_token: str,
    hub_mode: str | None = Query(default=None, alias="hub.mode"),
    hub_verify_token: str | None = Query(default=None, alias="hub.verify_token"),
    hub_challenge: str | None = Query(default=None, alias="hub.challenge"),
    store: ExecutionStore = Depends(get_store),
):
    """Provider subscription handshake."""
    tenant = await store.get_tenant_by_token(tenant_token)
    if not verify_subscription(tenant, hub_mode, hub_verify_token):
        logger.warning("Webhook verification rejected", extra={"context": {"mode": hub_mode}})
        raise HTTPException(status_code=403, detail="Verification failed")
    return hub_challenge or ""


@router.post("/webhook/{tenant_token}", response_model=WebhookResponse)
async def handle_webhook(
    tenant_token: str,
    request: Request,
    store: ExecutionStore = Depends(get_store),
    processor: WebhookProcessor = Depends(get_processor),
):
    """Receive provider callbacks. Always answers 200 so the provider does not retry-storm."""
    try:
        raw_body = await request.body()
    except ClientDisconnect:
        logger.warning("Client disconnected before body was read")
        return WebhookResponse(success=False, message="Client disconnected")

    try:
        payload = json.loads(raw_body or b"null")
    except ValueError:
        return WebhookResponse(success=True, message=RESULT_MESSAGES["ignored"])

    try:
        tenant = await store.get_tenant_by_token(tenant_token)
        if tenant is not None and tenant.app_secret:
            signature = request.headers.get("X-Hub-Signature-256")
            if not verify_signature(tenant.app_secret, raw_body, signature):
                logger.warning("Invalid webhook signature", extra={"context": {"tenant_id": str(tenant.id)}})
                return WebhookResponse(success=False, message="Invalid signature")

        result = await processor.process(tenant_token, payload)
    except Exception as exc:
        logger.error("Webhook handler failed", extra={"context": {"error": str(exc)}}, exc_info=True)
        return WebhookResponse(success=False, message="Internal error")

    if not result.ok:
        return WebhookResponse(success=False, message=result.error or "Processing failed")

    outcome = result.value
    return WebhookResponse(
        success=True,
        message=RESULT_MESSAGES.get(outcome.action, "Message processed"),
        execution_id=outcome.execution_id,
        action=outcome.action,
    )
