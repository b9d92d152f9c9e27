"""Resolution of replies to executions that are paused waiting for the user.

The step-execution row whose own ``is_waiting`` flag is set is the source of
truth for which step is paused; the execution header's
``current_waiting_step`` is only a fallback hint when no row is flagged.

State changes are committed before the engine is called; the engine reads
and updates the same rows from its own connection.
"""

import json
from datetime import datetime, timezone
from typing import Callable, Optional
from uuid import UUID

from flowhook.logging_config import get_logger
from flowhook.models import MessageValidation, Tenant, WorkflowExecution, WorkflowStepExecution
from flowhook.services.errors import EngineError, MediaFetchError
from flowhook.services.events import (
    DocumentMessage,
    ImageMessage,
    MediaMessage,
    RoutingOutcome,
    UserMessage,
    message_to_payload,
)
from flowhook.services.menu_service import MenuSettings
from flowhook.services.ports import (
    ExecutionEngine,
    ExecutionStore,
    MediaFetcher,
    MessageSender,
    QRDecoder,
    Validator,
)
from flowhook.services.result import ErrorCode, Result
from flowhook.services.sender_service import send_text_safely
from flowhook.services.state_machine import ExecutionStatus, FormStatus, StepStatus
from flowhook.services.validators import build_validator

logger = get_logger("waiting_service")

QR_NODE_TYPE = "waitForQRCode"
FORM_NODE_TYPE = "sendEForm"
QR_VALIDATOR_KIND = "qrcode"
QR_UNREADABLE_ERROR = "QR code could not be recognised"
DEFAULT_QR_ERROR_MESSAGE = "We could not read a QR code from that image. Please send a clear photo of the QR code."
DEFAULT_QR_SUCCESS_MESSAGE = "QR code received, thank you."
QR_APOLOGY_MESSAGE = "An error occurred while processing your QR code, please try again later."
FORM_APPROVAL_ACTOR = "FormApproval"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _node_types(node: dict) -> set:
    data = node.get("data") if isinstance(node.get("data"), dict) else {}
    return {node.get("type"), data.get("type")}


def find_node(definition_json: Optional[dict], node_type: str, step_index: Optional[int] = None) -> Optional[dict]:
    """Node of the given type, preferring the one at ``step_index``."""
    nodes = (definition_json or {}).get("nodes") or []
    if step_index is not None and 0 <= step_index < len(nodes):
        candidate = nodes[step_index]
        if isinstance(candidate, dict) and node_type in _node_types(candidate):
            return candidate
    for node in nodes:
        if isinstance(node, dict) and node_type in _node_types(node):
            return node
    return None


def node_config(node: dict) -> dict:
    data = node.get("data")
    return data if isinstance(data, dict) else node


class WaitingStateResolver:
    def __init__(
        self,
        store: ExecutionStore,
        sender: MessageSender,
        engine: ExecutionEngine,
        media_fetcher: MediaFetcher,
        qr_decoder: QRDecoder,
        validator_factory: Callable[[Optional[dict]], Validator] = build_validator,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.sender = sender
        self.engine = engine
        self.media_fetcher = media_fetcher
        self.qr_decoder = qr_decoder
        self.validator_factory = validator_factory
        self.clock = clock

    async def resolve(self, tenant: Tenant, execution: WorkflowExecution, message: UserMessage) -> RoutingOutcome:
        menu = MenuSettings.from_tenant(tenant)
        status = execution.status

        if status == ExecutionStatus.WAITING_FOR_FORM_APPROVAL.value:
            # Resumed by the approval decision, not by chat replies.
            await send_text_safely(self.sender, tenant, message.sender_id, menu.form_pending_message)
            return RoutingOutcome(action="form_pending", execution_id=execution.id)

        step = await self.store.find_waiting_step(execution.id)
        step_index = self._step_index(execution, step)

        if status == ExecutionStatus.WAITING_FOR_QR_CODE.value:
            return await self._resolve_qr(tenant, execution, step, step_index, message, menu)
        return await self._resolve_wait_reply(tenant, execution, step, step_index, message, menu)

    @staticmethod
    def _step_index(execution: WorkflowExecution, step: Optional[WorkflowStepExecution]) -> int:
        if step is not None and step.step_index is not None:
            return step.step_index
        if step is None:
            logger.warning(
                "No flagged waiting step, using header hint",
                extra={"context": {"execution_id": str(execution.id), "hint": execution.current_waiting_step}},
            )
        return execution.current_waiting_step or 0

    def _release_execution(self, execution: WorkflowExecution, now: datetime) -> None:
        execution.is_waiting = False
        execution.waiting_since = None
        execution.last_user_activity = now
        execution.status = ExecutionStatus.RUNNING.value

    async def _resolve_qr(
        self,
        tenant: Tenant,
        execution: WorkflowExecution,
        step: Optional[WorkflowStepExecution],
        step_index: int,
        message: UserMessage,
        menu: MenuSettings,
    ) -> RoutingOutcome:
        definition = await self.store.get_workflow_definition(execution.workflow_definition_id)
        node = find_node(definition.definition_json if definition else None, QR_NODE_TYPE, step_index)
        if node is None:
            logger.error(
                "QR wait node not found in workflow definition",
                extra={"context": {"execution_id": str(execution.id), "step_index": step_index}},
            )
            await send_text_safely(self.sender, tenant, message.sender_id, menu.system_error_message)
            return RoutingOutcome(action="qr_misconfigured", execution_id=execution.id)

        config = node_config(node)
        error_prompt = config.get("qrCodeErrorMessage") or DEFAULT_QR_ERROR_MESSAGE

        if not isinstance(message, ImageMessage) or not message.media_ref:
            await send_text_safely(self.sender, tenant, message.sender_id, error_prompt)
            return RoutingOutcome(action="qr_prompted", execution_id=execution.id, detail="no image")

        try:
            media = await self.media_fetcher.fetch(tenant, message.media_ref)
        except MediaFetchError as exc:
            logger.warning(
                "QR media fetch failed",
                extra={"context": {"execution_id": str(execution.id), "error": exc.message}},
            )
            await send_text_safely(self.sender, tenant, message.sender_id, error_prompt)
            return RoutingOutcome(action="qr_prompted", execution_id=execution.id, detail="media unavailable")

        try:
            value = await self.qr_decoder.decode(media.content)
        except Exception as exc:
            logger.error(
                "QR decoder failed",
                extra={"context": {"execution_id": str(execution.id), "error": str(exc)}},
                exc_info=True,
            )
            value = None

        processed = {"caption": message.caption}
        if value:
            processed["qr_code_value"] = value
        await self.store.add_validation(
            MessageValidation(
                execution_id=execution.id,
                step_index=step_index,
                user_wa_id=message.sender_id,
                raw_input=value or "",
                message_type=message.kind.value,
                media_ref=message.media_ref,
                is_valid=bool(value),
                error_message=None if value else QR_UNREADABLE_ERROR,
                processed_data=json.dumps(processed, ensure_ascii=False),
                validator_kind=QR_VALIDATOR_KIND,
                created_at=self.clock(),
            )
        )

        if not value:
            await send_text_safely(self.sender, tenant, message.sender_id, error_prompt)
            return RoutingOutcome(action="qr_rejected", execution_id=execution.id)

        variable = config.get("qrCodeVariable")
        if variable:
            await self.store.set_process_variable(execution.id, variable, value, message.sender_id, QR_VALIDATOR_KIND)

        now = self.clock()
        if step is not None:
            step.is_waiting = False
            step.status = StepStatus.COMPLETED.value
            step.ended_at = now
            await self.store.save(step)
        self._release_execution(execution, now)
        await self.store.save(execution)
        await self.store.commit()

        try:
            await self.engine.resume(execution, message_to_payload(message, qr_code_value=value))
        except EngineError:
            await send_text_safely(self.sender, tenant, message.sender_id, QR_APOLOGY_MESSAGE)
            raise

        await send_text_safely(
            self.sender,
            tenant,
            message.sender_id,
            config.get("qrCodeSuccessMessage") or DEFAULT_QR_SUCCESS_MESSAGE,
        )

        logger.info(
            "QR code accepted",
            extra={"context": {"execution_id": str(execution.id), "step_index": step_index}},
        )
        return RoutingOutcome(action="qr_accepted", execution_id=execution.id)

    async def _fetch_reply_media(
        self, tenant: Tenant, execution: WorkflowExecution, message: MediaMessage
    ) -> Optional[dict]:
        """Download an image or document reply. Returns its metadata, or None if unavailable."""
        try:
            media = await self.media_fetcher.fetch(tenant, message.media_ref)
        except MediaFetchError as exc:
            logger.warning(
                "Reply media fetch failed",
                extra={"context": {"execution_id": str(execution.id), "error": exc.message}},
            )
            return None

        return {
            "media_ref": message.media_ref,
            "mime_type": media.mime_type or message.mime_type,
            "filename": media.filename or getattr(message, "filename", None),
            "size": len(media.content),
        }

    async def _resolve_wait_reply(
        self,
        tenant: Tenant,
        execution: WorkflowExecution,
        step: Optional[WorkflowStepExecution],
        step_index: int,
        message: UserMessage,
        menu: MenuSettings,
    ) -> RoutingOutcome:
        payload = message_to_payload(message)
        if step is not None:
            step.received_payload_json = payload

        media = None
        if isinstance(message, (ImageMessage, DocumentMessage)) and message.media_ref:
            media = await self._fetch_reply_media(tenant, execution, message)

        validator = self.validator_factory(step.validation_config if step is not None else None)
        outcome = await validator.validate(message.text_body, execution, step_index, message)

        if outcome.is_valid and outcome.target_variable:
            await self.store.set_process_variable(
                execution.id, outcome.target_variable, outcome.processed_data, message.sender_id, "validator"
            )

        processed_data = outcome.processed_data
        if media is not None:
            processed_data = json.dumps({"value": outcome.processed_data, **media}, ensure_ascii=False)

        await self.store.add_validation(
            MessageValidation(
                execution_id=execution.id,
                step_index=step_index,
                user_wa_id=message.sender_id,
                raw_input=message.text_body,
                message_type=message.kind.value,
                media_ref=message.media_ref,
                is_valid=outcome.is_valid,
                error_message=outcome.error_message,
                processed_data=processed_data,
                validator_kind=outcome.validator_kind or "default",
                created_at=self.clock(),
            )
        )

        if not outcome.is_valid:
            if step is not None:
                await self.store.save(step)
            prompt = outcome.suggestion_message or outcome.error_message or menu.input_error_message
            await send_text_safely(self.sender, tenant, message.sender_id, prompt)
            return RoutingOutcome(action="wait_reply_rejected", execution_id=execution.id)

        # The step keeps its is_waiting flag; resume locates it and completes it.
        self._release_execution(execution, self.clock())
        await self.store.save(*(entity for entity in (execution, step) if entity is not None))
        await self.store.commit()

        resume_payload = message_to_payload(message, processed_data=outcome.processed_data)
        if media is not None:
            resume_payload["media"] = media
        try:
            await self.engine.resume(execution, resume_payload)
        except EngineError:
            await send_text_safely(self.sender, tenant, message.sender_id, menu.system_error_message)
            raise

        logger.info(
            "Wait reply accepted",
            extra={"context": {"execution_id": str(execution.id), "step_index": step_index}},
        )
        return RoutingOutcome(action="wait_reply_accepted", execution_id=execution.id)

    async def continue_after_form_approval(
        self,
        form_instance_id: UUID,
        new_status: str,
        decided_by: Optional[str] = None,
    ) -> Result[UUID]:
        """Apply an out-of-band approval decision and resume the paused execution."""
        if new_status not in {FormStatus.APPROVED.value, FormStatus.REJECTED.value}:
            return Result.failure(f"Unsupported form status '{new_status}'", ErrorCode.INVALID_STATUS)

        form = await self.store.get_form_instance(form_instance_id)
        if form is None:
            return Result.failure("Form instance not found", ErrorCode.FORM_NOT_FOUND)
        if form.execution_id is None:
            return Result.failure("Form instance has no execution", ErrorCode.EXECUTION_NOT_FOUND)

        execution = await self.store.get_execution(form.execution_id)
        if execution is None:
            return Result.failure("Execution not found", ErrorCode.EXECUTION_NOT_FOUND)
        if execution.status != ExecutionStatus.WAITING_FOR_FORM_APPROVAL.value:
            logger.info(
                "Ignoring form decision, execution not waiting for approval",
                extra={"context": {"execution_id": str(execution.id), "status": execution.status}},
            )
            return Result.failure(
                "Execution is not waiting for form approval", ErrorCode.NOT_WAITING, value=execution.id
            )

        now = self.clock()
        form.status = new_status
        form.approval_by = decided_by
        form.approval_at = now
        form.updated_at = now
        await self.store.save(form)

        definition = await self.store.get_workflow_definition(execution.workflow_definition_id)
        node = find_node(definition.definition_json if definition else None, FORM_NODE_TYPE)
        variable = node_config(node).get("approvalResultVariable") if node else None
        if variable:
            await self.store.set_process_variable(
                execution.id, variable, new_status, decided_by or FORM_APPROVAL_ACTOR, "form_approval"
            )
        await self.store.commit()

        execution_id = execution.id
        form_id = form.id
        try:
            await self.engine.resume(execution, None)
        except EngineError as exc:
            logger.error(
                "Engine resume failed after form decision",
                extra={"context": {"execution_id": str(execution_id), "error": exc.message}},
            )
            return Result.failure(exc.message, ErrorCode.ENGINE_ERROR, value=execution_id)

        logger.info(
            "Form decision applied",
            extra={"context": {"execution_id": str(execution_id), "form_id": str(form_id), "status": new_status}},
        )
        return Result.success(execution_id)
