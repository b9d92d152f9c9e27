from datetime import datetime, timezone
from typing import Any, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from flowhook.models import (
    FormInstance,
    MessageRecipient,
    MessageSend,
    MessageValidation,
    ProcessVariable,
    Tenant,
    WorkflowDefinition,
    WorkflowExecution,
    WorkflowStepExecution,
)
from flowhook.services.ports import ExecutionStore

WEBHOOK_ACTIVATION = "webhook"
ENABLED_STATUS = "Enabled"


class SqlExecutionStore(ExecutionStore):
    """ExecutionStore over a SQLAlchemy session. Writes are flushed, the caller commits."""

    def __init__(self, db: Session):
        self.db = db

    async def get_tenant_by_token(self, webhook_token: str) -> Optional[Tenant]:
        if not webhook_token:
            return None
        return (
            self.db.query(Tenant)
            .filter(Tenant.webhook_token == webhook_token, Tenant.is_active.is_not(False))
            .first()
        )

    async def find_waiting_execution(self, tenant_id: UUID, sender_id: str) -> Optional[WorkflowExecution]:
        return (
            self.db.query(WorkflowExecution)
            .filter(
                WorkflowExecution.tenant_id == tenant_id,
                WorkflowExecution.waiting_for_user == sender_id,
                WorkflowExecution.is_waiting.is_(True),
            )
            .order_by(WorkflowExecution.waiting_since.desc())
            .first()
        )

    async def get_execution(self, execution_id: UUID) -> Optional[WorkflowExecution]:
        return self.db.query(WorkflowExecution).filter(WorkflowExecution.id == execution_id).first()

    async def find_waiting_step(self, execution_id: UUID) -> Optional[WorkflowStepExecution]:
        return (
            self.db.query(WorkflowStepExecution)
            .filter(
                WorkflowStepExecution.execution_id == execution_id,
                WorkflowStepExecution.is_waiting.is_(True),
            )
            .first()
        )

    async def get_workflow_definition(self, definition_id: UUID) -> Optional[WorkflowDefinition]:
        return self.db.query(WorkflowDefinition).filter(WorkflowDefinition.id == definition_id).first()

    async def list_menu_workflows(self, tenant_id: UUID) -> List[WorkflowDefinition]:
        return (
            self.db.query(WorkflowDefinition)
            .filter(
                WorkflowDefinition.tenant_id == tenant_id,
                WorkflowDefinition.status == ENABLED_STATUS,
                WorkflowDefinition.activation_type == WEBHOOK_ACTIVATION,
            )
            .order_by(WorkflowDefinition.created_at.asc(), WorkflowDefinition.name.asc())
            .all()
        )

    async def add_execution(self, execution: WorkflowExecution) -> WorkflowExecution:
        self.db.add(execution)
        self.db.flush()
        return execution

    async def save(self, *entities: Any) -> None:
        for entity in entities:
            self.db.add(entity)
        self.db.flush()

    async def add_validation(self, record: MessageValidation) -> MessageValidation:
        self.db.add(record)
        self.db.flush()
        return record

    async def set_process_variable(
        self, execution_id: UUID, name: str, value: Optional[str], set_by: str, source_type: str
    ) -> None:
        variable = (
            self.db.query(ProcessVariable)
            .filter(ProcessVariable.execution_id == execution_id, ProcessVariable.name == name)
            .first()
        )
        if variable is None:
            variable = ProcessVariable(execution_id=execution_id, name=name)
            self.db.add(variable)
        variable.value = value
        variable.set_by = set_by
        variable.source_type = source_type
        variable.updated_at = datetime.now(timezone.utc)
        self.db.flush()

    async def get_form_instance(self, form_instance_id: UUID) -> Optional[FormInstance]:
        return self.db.query(FormInstance).filter(FormInstance.id == form_instance_id).first()

    async def find_recipient(self, provider_message_id: str, phone_number: Optional[str]) -> Optional[MessageRecipient]:
        query = self.db.query(MessageRecipient).filter(MessageRecipient.provider_message_id == provider_message_id)
        if phone_number:
            query = query.filter(MessageRecipient.phone_number == phone_number)
        return query.first()

    async def get_message_send(self, message_send_id: UUID) -> Optional[MessageSend]:
        return self.db.query(MessageSend).filter(MessageSend.id == message_send_id).first()

    async def list_recipients(self, message_send_id: UUID) -> List[MessageRecipient]:
        return self.db.query(MessageRecipient).filter(MessageRecipient.message_send_id == message_send_id).all()

    async def commit(self) -> None:
        self.db.commit()

    async def rollback(self) -> None:
        self.db.rollback()
