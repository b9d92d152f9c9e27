from typing import List, Optional

import httpx

from flowhook.config import settings
from flowhook.logging_config import get_logger
from flowhook.models import Tenant
from flowhook.services.errors import SendError
from flowhook.services.media_service import graph_url
from flowhook.services.ports import ButtonOption, ListRow, MessageSender

logger = get_logger("sender_service")

MAX_REPLY_BUTTONS = 3


class GraphMessageSender(MessageSender):
    """Sends text and interactive messages through the Graph messages endpoint."""

    def __init__(self, timeout: float | None = None):
        self.timeout = timeout or settings.http_timeout_seconds

    async def _post(self, tenant: Tenant, payload: dict) -> dict:
        if not tenant.api_key or not tenant.phone_number_id:
            raise SendError("Tenant has no messaging credentials configured")

        url = graph_url(f"{tenant.phone_number_id}/messages")
        headers = {"Authorization": f"Bearer {tenant.api_key}"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(url, json=payload, headers=headers)
        except httpx.HTTPError as exc:
            raise SendError(f"Send request failed: {exc}") from exc

        if response.status_code >= 400:
            logger.warning(
                "Send rejected by provider",
                extra={"context": {"status_code": response.status_code, "type": payload.get("type")}},
            )
            raise SendError(f"Provider returned {response.status_code}")
        return response.json()

    async def send_text(self, tenant: Tenant, to: str, body: str) -> None:
        await self._post(
            tenant,
            {"messaging_product": "whatsapp", "to": to, "type": "text", "text": {"body": body}},
        )

    async def send_buttons(self, tenant: Tenant, to: str, body: str, buttons: List[ButtonOption]) -> None:
        await self._post(
            tenant,
            {
                "messaging_product": "whatsapp",
                "to": to,
                "type": "interactive",
                "interactive": {
                    "type": "button",
                    "body": {"text": body},
                    "action": {
                        "buttons": [
                            {"type": "reply", "reply": {"id": button.id, "title": button.title}}
                            for button in buttons[:MAX_REPLY_BUTTONS]
                        ]
                    },
                },
            },
        )

    async def send_list(
        self,
        tenant: Tenant,
        to: str,
        body: str,
        button_text: str,
        section_title: str,
        rows: List[ListRow],
        header: Optional[str] = None,
        footer: Optional[str] = None,
    ) -> None:
        interactive = {
            "type": "list",
            "body": {"text": body},
            "action": {
                "button": button_text,
                "sections": [
                    {
                        "title": section_title,
                        "rows": [
                            {"id": row.id, "title": row.title, "description": row.description or ""}
                            for row in rows
                        ],
                    }
                ],
            },
        }
        if header:
            interactive["header"] = {"type": "text", "text": header}
        if footer:
            interactive["footer"] = {"text": footer}

        await self._post(
            tenant,
            {"messaging_product": "whatsapp", "to": to, "type": "interactive", "interactive": interactive},
        )


async def send_list_with_fallback(
    sender: MessageSender,
    tenant: Tenant,
    to: str,
    body: str,
    button_text: str,
    section_title: str,
    rows: List[ListRow],
    fallback_hint: str,
    header: Optional[str] = None,
    footer: Optional[str] = None,
    fallback_body: Optional[str] = None,
) -> str:
    """Send a list message, retrying as plain text plus hint. Returns the shape that went out."""
    try:
        await sender.send_list(tenant, to, body, button_text, section_title, rows, header=header, footer=footer)
        return "list"
    except SendError as exc:
        logger.warning("List send failed, falling back to text", extra={"context": {"to": to, "error": exc.message}})
    await sender.send_text(tenant, to, (fallback_body or body) + fallback_hint)
    return "text"


async def send_buttons_with_fallback(
    sender: MessageSender,
    tenant: Tenant,
    to: str,
    body: str,
    buttons: List[ButtonOption],
    fallback_hint: str,
) -> str:
    try:
        await sender.send_buttons(tenant, to, body, buttons)
        return "buttons"
    except SendError as exc:
        logger.warning("Button send failed, falling back to text", extra={"context": {"to": to, "error": exc.message}})
    await sender.send_text(tenant, to, body + fallback_hint)
    return "text"


async def send_text_safely(sender: MessageSender, tenant: Tenant, to: str, body: Optional[str]) -> bool:
    """Best-effort prompt to the user; failures are logged, never raised."""
    if not body:
        return False
    try:
        await sender.send_text(tenant, to, body)
        return True
    except SendError as exc:
        logger.error("Text send failed", extra={"context": {"to": to, "error": exc.message}})
        return False
