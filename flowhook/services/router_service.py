from datetime import datetime, timezone
from typing import Callable, Iterable, Optional

from flowhook.config import settings
from flowhook.logging_config import get_logger
from flowhook.models import Tenant, WorkflowExecution
from flowhook.services.errors import EngineError
from flowhook.services.events import RoutingOutcome, UserMessage, message_to_payload
from flowhook.services.menu_service import MenuSettings, is_menu_request, normalize_reply, resolve_choice, send_menu
from flowhook.services.ports import ExecutionEngine, ExecutionStore, MessageSender
from flowhook.services.sender_service import send_text_safely
from flowhook.services.state_machine import ExecutionStatus
from flowhook.services.waiting_service import WaitingStateResolver

logger = get_logger("router")

EXECUTION_CREATOR = "MetaWebhook"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MessageRouter:
    """Decides what an inbound user message means.

    Order, first match wins: a paused execution waiting on this sender, a menu
    request, a menu choice that starts a workflow, otherwise the menu is resent.
    """

    def __init__(
        self,
        store: ExecutionStore,
        sender: MessageSender,
        engine: ExecutionEngine,
        resolver: WaitingStateResolver,
        menu_keywords: Optional[Iterable[str]] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.sender = sender
        self.engine = engine
        self.resolver = resolver
        self.menu_keywords = list(menu_keywords if menu_keywords is not None else settings.menu_keywords)
        self.clock = clock

    async def route(self, tenant: Tenant, message: UserMessage) -> RoutingOutcome:
        waiting = await self.store.find_waiting_execution(tenant.id, message.sender_id)
        if waiting is not None:
            logger.info(
                "Message continues waiting execution",
                extra={"context": {"execution_id": str(waiting.id), "status": waiting.status}},
            )
            return await self.resolver.resolve(tenant, waiting, message)

        menu = MenuSettings.from_tenant(tenant)
        workflows = await self.store.list_menu_workflows(tenant.id)
        reply = normalize_reply(message.text_body)

        if is_menu_request(reply, self.menu_keywords):
            shape = await send_menu(self.sender, tenant, message.sender_id, workflows, menu)
            return RoutingOutcome(action="menu_sent", detail=shape)

        workflow = resolve_choice(reply, workflows)
        if workflow is None:
            logger.info(
                "No workflow matches reply, resending menu",
                extra={"context": {"sender": message.sender_id, "reply": reply[:50]}},
            )
            shape = await send_menu(self.sender, tenant, message.sender_id, workflows, menu)
            return RoutingOutcome(action="menu_resent", detail=shape)

        now = self.clock()
        execution = await self.store.add_execution(
            WorkflowExecution(
                workflow_definition_id=workflow.id,
                tenant_id=tenant.id,
                status=ExecutionStatus.RUNNING.value,
                current_step=0,
                is_waiting=False,
                initiated_by=message.sender_id,
                created_by=EXECUTION_CREATOR,
                input_json=message_to_payload(message),
                last_user_activity=now,
                started_at=now,
            )
        )
        await self.store.commit()
        try:
            await self.engine.start(workflow, execution, message.sender_id)
        except EngineError:
            await send_text_safely(self.sender, tenant, message.sender_id, menu.system_error_message)
            raise

        logger.info(
            "Started workflow from menu choice",
            extra={"context": {"execution_id": str(execution.id), "workflow": workflow.name}},
        )
        return RoutingOutcome(action="execution_started", execution_id=execution.id, detail=workflow.name)
