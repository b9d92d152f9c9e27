from flowhook.models.form_instance import FormInstance
from flowhook.models.message_send import MessageRecipient, MessageSend
from flowhook.models.message_validation import MessageValidation
from flowhook.models.process_variable import ProcessVariable
from flowhook.models.tenant import Tenant
from flowhook.models.workflow import WorkflowDefinition, WorkflowExecution, WorkflowStepExecution

__all__ = [
    "Tenant",
    "WorkflowDefinition",
    "WorkflowExecution",
    "WorkflowStepExecution",
    "MessageValidation",
    "ProcessVariable",
    "FormInstance",
    "MessageSend",
    "MessageRecipient",
]
