"""Interfaces of the collaborators the webhook core depends on.

The default adapters live in sibling modules (``store``, ``media_service``,
``sender_service``, ``qr_service``, ``engine_client``, ``validators``); tests
substitute in-memory fakes.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, List, Optional
from uuid import UUID

from flowhook.models import (
    FormInstance,
    MessageRecipient,
    MessageSend,
    MessageValidation,
    Tenant,
    WorkflowDefinition,
    WorkflowExecution,
    WorkflowStepExecution,
)
from flowhook.services.events import BaseMessage


@dataclass
class ValidationOutcome:
    is_valid: bool
    validator_kind: str = "default"
    error_message: Optional[str] = None
    suggestion_message: Optional[str] = None
    processed_data: Optional[str] = None
    target_variable: Optional[str] = None
    additional_data: dict = field(default_factory=dict)


@dataclass
class MediaPayload:
    content: bytes
    mime_type: Optional[str] = None
    filename: Optional[str] = None


@dataclass
class ButtonOption:
    id: str
    title: str


@dataclass
class ListRow:
    id: str
    title: str
    description: Optional[str] = None


class ExecutionStore(ABC):
    """Persistence of tenants, workflow executions, and delivery tracking."""

    @abstractmethod
    async def get_tenant_by_token(self, webhook_token: str) -> Optional[Tenant]:
        pass

    @abstractmethod
    async def find_waiting_execution(self, tenant_id: UUID, sender_id: str) -> Optional[WorkflowExecution]:
        pass

    @abstractmethod
    async def get_execution(self, execution_id: UUID) -> Optional[WorkflowExecution]:
        pass

    @abstractmethod
    async def find_waiting_step(self, execution_id: UUID) -> Optional[WorkflowStepExecution]:
        """The step-execution of this execution whose own is_waiting flag is set."""
        pass

    @abstractmethod
    async def get_workflow_definition(self, definition_id: UUID) -> Optional[WorkflowDefinition]:
        pass

    @abstractmethod
    async def list_menu_workflows(self, tenant_id: UUID) -> List[WorkflowDefinition]:
        """Enabled, webhook-activated definitions of the tenant, in menu order."""
        pass

    @abstractmethod
    async def add_execution(self, execution: WorkflowExecution) -> WorkflowExecution:
        pass

    @abstractmethod
    async def save(self, *entities: Any) -> None:
        pass

    @abstractmethod
    async def add_validation(self, record: MessageValidation) -> MessageValidation:
        pass

    @abstractmethod
    async def set_process_variable(
        self, execution_id: UUID, name: str, value: Optional[str], set_by: str, source_type: str
    ) -> None:
        pass

    @abstractmethod
    async def get_form_instance(self, form_instance_id: UUID) -> Optional[FormInstance]:
        pass

    @abstractmethod
    async def find_recipient(self, provider_message_id: str, phone_number: Optional[str]) -> Optional[MessageRecipient]:
        pass

    @abstractmethod
    async def get_message_send(self, message_send_id: UUID) -> Optional[MessageSend]:
        pass

    @abstractmethod
    async def list_recipients(self, message_send_id: UUID) -> List[MessageRecipient]:
        pass

    @abstractmethod
    async def commit(self) -> None:
        pass

    @abstractmethod
    async def rollback(self) -> None:
        pass


class Validator(ABC):
    kind = "default"

    @abstractmethod
    async def validate(
        self,
        text: str,
        execution: WorkflowExecution,
        step_index: int,
        message: Optional[BaseMessage] = None,
    ) -> ValidationOutcome:
        pass


class MediaFetcher(ABC):
    @abstractmethod
    async def fetch(self, tenant: Tenant, media_id: str) -> MediaPayload:
        """Download media bytes. Raises MediaFetchError on failure."""
        pass


class QRDecoder(ABC):
    @abstractmethod
    async def decode(self, content: bytes) -> Optional[str]:
        """Decoded QR text, or None when no code can be read."""
        pass


class ExecutionEngine(ABC):
    @abstractmethod
    async def start(self, definition: WorkflowDefinition, execution: WorkflowExecution, initiator: str) -> None:
        pass

    @abstractmethod
    async def resume(self, execution: WorkflowExecution, message: Optional[dict]) -> None:
        pass


class MessageSender(ABC):
    @abstractmethod
    async def send_text(self, tenant: Tenant, to: str, body: str) -> None:
        """Raises SendError on failure."""
        pass

    @abstractmethod
    async def send_buttons(self, tenant: Tenant, to: str, body: str, buttons: List[ButtonOption]) -> None:
        pass

    @abstractmethod
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
        pass
