import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import datetime, timezone
from uuid import uuid4

import pytest

from flowhook.models import (
    FormInstance,
    MessageRecipient,
    MessageSend,
    Tenant,
    WorkflowDefinition,
    WorkflowExecution,
    WorkflowStepExecution,
)
from flowhook.services.dedup_service import InMemoryDedupLedger
from flowhook.services.delivery_status_service import DeliveryStatusProcessor
from flowhook.services.errors import MediaFetchError, SendError
from flowhook.services.ports import (
    ExecutionEngine,
    ExecutionStore,
    MediaFetcher,
    MediaPayload,
    MessageSender,
    QRDecoder,
)
from flowhook.services.router_service import MessageRouter
from flowhook.services.waiting_service import WaitingStateResolver
from flowhook.services.webhook_service import WebhookProcessor

FIXED_NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def fixed_clock():
    return FIXED_NOW


class FakeStore(ExecutionStore):
    def __init__(self):
        self.tenants = []
        self.workflows = []
        self.executions = []
        self.steps = []
        self.validations = []
        self.variables = {}
        self.forms = []
        self.batches = []
        self.recipients = []
        self.saved = []
        self.commits = 0
        self.rollbacks = 0

    async def get_tenant_by_token(self, webhook_token):
        return next((t for t in self.tenants if t.webhook_token == webhook_token), None)

    async def find_waiting_execution(self, tenant_id, sender_id):
        return next(
            (
                e
                for e in self.executions
                if e.tenant_id == tenant_id and e.waiting_for_user == sender_id and e.is_waiting
            ),
            None,
        )

    async def get_execution(self, execution_id):
        return next((e for e in self.executions if e.id == execution_id), None)

    async def find_waiting_step(self, execution_id):
        return next((s for s in self.steps if s.execution_id == execution_id and s.is_waiting), None)

    async def get_workflow_definition(self, definition_id):
        return next((w for w in self.workflows if w.id == definition_id), None)

    async def list_menu_workflows(self, tenant_id):
        return [
            w
            for w in self.workflows
            if w.tenant_id == tenant_id and w.status == "Enabled" and w.activation_type == "webhook"
        ]

    async def add_execution(self, execution):
        if execution.id is None:
            execution.id = uuid4()
        self.executions.append(execution)
        return execution

    async def save(self, *entities):
        self.saved.extend(entities)

    async def add_validation(self, record):
        self.validations.append(record)
        return record

    async def set_process_variable(self, execution_id, name, value, set_by, source_type):
        self.variables[(execution_id, name)] = value

    async def get_form_instance(self, form_instance_id):
        return next((f for f in self.forms if f.id == form_instance_id), None)

    async def find_recipient(self, provider_message_id, phone_number):
        return next(
            (
                r
                for r in self.recipients
                if r.provider_message_id == provider_message_id
                and (phone_number is None or r.phone_number == phone_number)
            ),
            None,
        )

    async def get_message_send(self, message_send_id):
        return next((b for b in self.batches if b.id == message_send_id), None)

    async def list_recipients(self, message_send_id):
        return [r for r in self.recipients if r.message_send_id == message_send_id]

    async def commit(self):
        self.commits += 1

    async def rollback(self):
        self.rollbacks += 1


class FakeSender(MessageSender):
    def __init__(self, fail_interactive=False):
        self.fail_interactive = fail_interactive
        self.texts = []
        self.lists = []
        self.buttons = []

    async def send_text(self, tenant, to, body):
        self.texts.append((to, body))

    async def send_buttons(self, tenant, to, body, buttons):
        if self.fail_interactive:
            raise SendError("buttons rejected")
        self.buttons.append((to, body, buttons))

    async def send_list(self, tenant, to, body, button_text, section_title, rows, header=None, footer=None):
        if self.fail_interactive:
            raise SendError("list rejected")
        self.lists.append((to, body, rows))


class FakeEngine(ExecutionEngine):
    def __init__(self, fail_with=None, store=None):
        self.fail_with = fail_with
        self.store = store
        self.started = []
        self.resumed = []
        self.commits_at_call = []

    def _record_call(self):
        if self.store is not None:
            self.commits_at_call.append(self.store.commits)

    async def start(self, definition, execution, initiator):
        self._record_call()
        if self.fail_with:
            raise self.fail_with
        self.started.append((definition, execution, initiator))

    async def resume(self, execution, message):
        self._record_call()
        if self.fail_with:
            raise self.fail_with
        self.resumed.append((execution, message))


class FakeMediaFetcher(MediaFetcher):
    def __init__(self, content=b"image-bytes", fail=False, mime_type="image/jpeg", filename=None):
        self.content = content
        self.fail = fail
        self.mime_type = mime_type
        self.filename = filename
        self.requested = []

    async def fetch(self, tenant, media_id):
        self.requested.append(media_id)
        if self.fail:
            raise MediaFetchError("download failed")
        return MediaPayload(content=self.content, mime_type=self.mime_type, filename=self.filename)


class FakeQRDecoder(QRDecoder):
    def __init__(self, value=None):
        self.value = value
        self.decoded = []

    async def decode(self, content):
        self.decoded.append(content)
        return self.value


def make_tenant(**overrides):
    values = {
        "id": uuid4(),
        "name": "Acme",
        "webhook_token": "tok-acme",
        "verify_token": "verify-me",
        "api_key": "graph-key",
        "phone_number_id": "1000",
        "menu_settings": {},
        "is_active": True,
    }
    values.update(overrides)
    return Tenant(**values)


def make_workflow(tenant, name, **overrides):
    values = {
        "id": uuid4(),
        "tenant_id": tenant.id,
        "name": name,
        "status": "Enabled",
        "activation_type": "webhook",
        "definition_json": {"nodes": []},
    }
    values.update(overrides)
    return WorkflowDefinition(**values)


def make_execution(tenant, workflow, sender="85291234567", **overrides):
    values = {
        "id": uuid4(),
        "workflow_definition_id": workflow.id,
        "tenant_id": tenant.id,
        "status": "Waiting",
        "is_waiting": True,
        "waiting_for_user": sender,
        "waiting_since": FIXED_NOW,
        "current_waiting_step": 0,
    }
    values.update(overrides)
    return WorkflowExecution(**values)


def make_step(execution, step_index, is_waiting=True, **overrides):
    values = {
        "id": uuid4(),
        "execution_id": execution.id,
        "step_index": step_index,
        "status": "Waiting" if is_waiting else "Completed",
        "is_waiting": is_waiting,
    }
    values.update(overrides)
    return WorkflowStepExecution(**values)


def make_form(tenant, execution, **overrides):
    values = {"id": uuid4(), "tenant_id": tenant.id, "execution_id": execution.id, "status": "Pending"}
    values.update(overrides)
    return FormInstance(**values)


def make_batch(tenant, **overrides):
    values = {"id": uuid4(), "tenant_id": tenant.id, "total": 0, "success_count": 0, "failed_count": 0}
    values.update(overrides)
    values.setdefault("status", "InProgress")
    return MessageSend(**values)


def make_recipient(batch, phone, provider_message_id, status="Pending", **overrides):
    values = {
        "id": uuid4(),
        "message_send_id": batch.id,
        "phone_number": phone,
        "provider_message_id": provider_message_id,
        "status": status,
    }
    values.update(overrides)
    return MessageRecipient(**values)


def text_envelope(text, message_id="wamid.1", sender="85291234567", name="Chan"):
    return {
        "object": "whatsapp_business_account",
        "entry": [
            {
                "id": "waba-1",
                "changes": [
                    {
                        "field": "messages",
                        "value": {
                            "messaging_product": "whatsapp",
                            "metadata": {"phone_number_id": "1000"},
                            "contacts": [{"wa_id": sender, "profile": {"name": name}}],
                            "messages": [
                                {
                                    "from": sender,
                                    "id": message_id,
                                    "timestamp": "1767225600",
                                    "type": "text",
                                    "text": {"body": text},
                                }
                            ],
                        },
                    }
                ],
            }
        ],
    }


def status_envelope(statuses):
    return {
        "object": "whatsapp_business_account",
        "entry": [{"id": "waba-1", "changes": [{"field": "messages", "value": {"statuses": statuses}}]}],
    }


class Harness:
    """Wires the real pipeline around in-memory collaborators."""

    def __init__(self, qr_value=None, media_fail=False, fail_interactive=False, engine_error=None):
        self.store = FakeStore()
        self.sender = FakeSender(fail_interactive=fail_interactive)
        self.engine = FakeEngine(fail_with=engine_error, store=self.store)
        self.media = FakeMediaFetcher(fail=media_fail)
        self.qr = FakeQRDecoder(value=qr_value)
        self.ledger = InMemoryDedupLedger(clock=fixed_clock)
        self.resolver = WaitingStateResolver(
            store=self.store,
            sender=self.sender,
            engine=self.engine,
            media_fetcher=self.media,
            qr_decoder=self.qr,
            clock=fixed_clock,
        )
        self.router = MessageRouter(
            store=self.store,
            sender=self.sender,
            engine=self.engine,
            resolver=self.resolver,
            menu_keywords=["menu", "選單"],
            clock=fixed_clock,
        )
        self.processor = WebhookProcessor(
            store=self.store,
            ledger=self.ledger,
            router=self.router,
            status_processor=DeliveryStatusProcessor(self.store, clock=fixed_clock),
        )
        self.tenant = make_tenant()
        self.store.tenants.append(self.tenant)

    def add_workflows(self, *names):
        workflows = [make_workflow(self.tenant, name) for name in names]
        self.store.workflows.extend(workflows)
        return workflows


@pytest.fixture
def harness():
    return Harness()
