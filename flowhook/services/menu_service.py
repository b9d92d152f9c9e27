"""Workflow menu: texts, rendering, and mapping a reply to a workflow."""

from dataclasses import dataclass, fields
from typing import Iterable, List, Optional

from flowhook.logging_config import get_logger
from flowhook.models import Tenant, WorkflowDefinition
from flowhook.services.ports import ButtonOption, ListRow, MessageSender
from flowhook.services.sender_service import send_buttons_with_fallback, send_list_with_fallback, send_text_safely

logger = get_logger("menu_service")

OPTION_PREFIX = "option_"
MAX_LIST_ROWS = 10
MAX_REPLY_BUTTONS = 3
ROW_TITLE_LIMIT = 24
ROW_DESCRIPTION_LIMIT = 72
BUTTON_TITLE_LIMIT = 20


@dataclass
class MenuSettings:
    welcome_message: str = "Welcome! Please choose a service:"
    no_function_message: str = "No services are available right now."
    menu_title: str = "Services"
    menu_footer: str = ""
    menu_button_text: str = "Open menu"
    section_title: str = "Available services"
    default_option_description: str = ""
    input_error_message: str = "That input was not valid, please try again."
    fallback_message: str = "\n\nReply with a number to choose, or type \"menu\" to show the menu again."
    system_error_message: str = "Something went wrong, please try again later."
    form_pending_message: str = "Your form is waiting for approval. We will let you know once it is reviewed."
    menu_style: str = "list"  # list, buttons, auto

    @classmethod
    def from_tenant(cls, tenant: Optional[Tenant]) -> "MenuSettings":
        overrides = (tenant.menu_settings if tenant is not None else None) or {}
        known = {field.name for field in fields(cls)}
        return cls(**{key: value for key, value in overrides.items() if key in known and value is not None})


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


def normalize_reply(text: Optional[str]) -> str:
    """Lowercase, trim, and unwrap ``option_<n>`` button ids to ``<n>``."""
    normalized = (text or "").strip().lower()
    if normalized.startswith(OPTION_PREFIX):
        suffix = normalized[len(OPTION_PREFIX) :]
        if suffix.isdigit():
            return str(int(suffix))
    return normalized


def is_menu_request(normalized: str, keywords: Iterable[str]) -> bool:
    if not normalized:
        return True
    return normalized in {keyword.strip().lower() for keyword in keywords}


def resolve_choice(normalized: str, workflows: List[WorkflowDefinition]) -> Optional[WorkflowDefinition]:
    """1-based index first, then workflow name contained in the reply."""
    if not normalized or not workflows:
        return None

    if normalized.isdigit():
        index = int(normalized)
        if 1 <= index <= len(workflows):
            return workflows[index - 1]

    for workflow in workflows:
        name = (workflow.name or "").strip().lower()
        if name and name in normalized:
            return workflow
    return None


def build_menu_rows(workflows: List[WorkflowDefinition], menu: MenuSettings) -> List[ListRow]:
    rows = []
    for position, workflow in enumerate(workflows[:MAX_LIST_ROWS], start=1):
        description = workflow.description or menu.default_option_description
        rows.append(
            ListRow(
                id=f"{OPTION_PREFIX}{position}",
                title=_truncate(f"{position}. {workflow.name}", ROW_TITLE_LIMIT),
                description=_truncate(description, ROW_DESCRIPTION_LIMIT) if description else None,
            )
        )
    return rows


def build_menu_text(workflows: List[WorkflowDefinition], menu: MenuSettings) -> str:
    lines = [menu.welcome_message, ""]
    lines.extend(f"{position}. {workflow.name}" for position, workflow in enumerate(workflows, start=1))
    return "\n".join(lines)


async def send_menu(
    sender: MessageSender,
    tenant: Tenant,
    to: str,
    workflows: List[WorkflowDefinition],
    menu: MenuSettings,
) -> str:
    """Send the workflow menu. Returns the shape that was sent."""
    if not workflows:
        await send_text_safely(sender, tenant, to, menu.no_function_message)
        return "no_function"

    use_buttons = menu.menu_style == "buttons" or (
        menu.menu_style == "auto" and len(workflows) <= MAX_REPLY_BUTTONS
    )
    if use_buttons:
        buttons = [
            ButtonOption(id=f"{OPTION_PREFIX}{position}", title=_truncate(workflow.name, BUTTON_TITLE_LIMIT))
            for position, workflow in enumerate(workflows[:MAX_REPLY_BUTTONS], start=1)
        ]
        return await send_buttons_with_fallback(
            sender,
            tenant,
            to,
            build_menu_text(workflows, menu),
            buttons,
            menu.fallback_message,
        )

    return await send_list_with_fallback(
        sender,
        tenant,
        to,
        body=menu.welcome_message,
        button_text=menu.menu_button_text,
        section_title=menu.section_title,
        rows=build_menu_rows(workflows, menu),
        fallback_hint=menu.fallback_message,
        header=menu.menu_title or None,
        footer=menu.menu_footer or None,
        fallback_body=build_menu_text(workflows, menu),
    )
