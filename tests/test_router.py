import asyncio
from datetime import datetime, timezone

import pytest

from conftest import Harness, make_execution, make_step

from flowhook.services.errors import EngineError
from flowhook.services.events import DocumentMessage, InteractiveMessage, TextMessage


def text(body, sender="85291234567", message_id="wamid.1"):
    return TextMessage(
        external_id=message_id,
        sender_id=sender,
        timestamp=datetime(2026, 3, 1, tzinfo=timezone.utc),
        text_body=body,
    )


def button(selection_id, sender="85291234567"):
    return InteractiveMessage(
        external_id="wamid.btn",
        sender_id=sender,
        timestamp=datetime(2026, 3, 1, tzinfo=timezone.utc),
        text_body=selection_id,
        interactive_type="button_reply",
    )


class TestMenuRouting:
    def test_empty_text_sends_menu(self):
        h = Harness()
        h.add_workflows("Expense Claim")

        outcome = asyncio.run(h.router.route(h.tenant, text("")))

        assert outcome.action == "menu_sent"
        assert len(h.sender.lists) == 1

    def test_menu_keyword_sends_menu(self):
        h = Harness()
        h.add_workflows("Expense Claim")

        outcome = asyncio.run(h.router.route(h.tenant, text("選單")))

        assert outcome.action == "menu_sent"

    def test_out_of_range_choice_resends_menu(self):
        h = Harness()
        h.add_workflows("Expense Claim", "Leave Request", "IT Support")

        outcome = asyncio.run(h.router.route(h.tenant, text("99")))

        assert outcome.action == "menu_resent"
        assert len(h.sender.lists) == 1
        assert h.engine.started == []
        assert h.store.executions == []

    def test_substring_starts_second_workflow(self):
        h = Harness()
        workflows = h.add_workflows("Expense Claim", "Leave Request", "IT Support")

        outcome = asyncio.run(h.router.route(h.tenant, text("please open a Leave Request for me")))

        assert outcome.action == "execution_started"
        definition, execution, initiator = h.engine.started[0]
        assert definition is workflows[1]
        assert execution.workflow_definition_id == workflows[1].id
        assert initiator == "85291234567"
        assert outcome.execution_id == execution.id

    def test_new_execution_is_bound_to_sender(self):
        h = Harness()
        h.add_workflows("Expense Claim")

        asyncio.run(h.router.route(h.tenant, text("1")))

        execution = h.store.executions[0]
        assert execution.status == "Running"
        assert execution.current_step == 0
        assert execution.initiated_by == "85291234567"
        assert execution.created_by == "MetaWebhook"
        assert execution.input_json["text_body"] == "1"
        assert execution.tenant_id == h.tenant.id

    def test_button_option_and_typed_number_route_identically(self):
        by_button = Harness()
        by_text = Harness()
        button_flows = by_button.add_workflows("Expense Claim", "Leave Request", "IT Support")
        text_flows = by_text.add_workflows("Expense Claim", "Leave Request", "IT Support")

        button_outcome = asyncio.run(by_button.router.route(by_button.tenant, button("option_3")))
        text_outcome = asyncio.run(by_text.router.route(by_text.tenant, text("3")))

        assert button_outcome.action == text_outcome.action == "execution_started"
        assert by_button.engine.started[0][0] is button_flows[2]
        assert by_text.engine.started[0][0] is text_flows[2]

    def test_disabled_workflows_are_not_offered(self):
        h = Harness()
        enabled, disabled = h.add_workflows("Expense Claim", "Leave Request")
        disabled.status = "Disabled"

        outcome = asyncio.run(h.router.route(h.tenant, text("2")))

        assert outcome.action == "menu_resent"
        rows = h.sender.lists[0][2]
        assert [row.id for row in rows] == ["option_1"]


class TestWaitingPrecedence:
    def test_waiting_execution_wins_over_menu_choice(self):
        h = Harness()
        (workflow,) = h.add_workflows("Expense Claim")
        execution = make_execution(h.tenant, workflow)
        h.store.executions.append(execution)
        h.store.steps.append(make_step(execution, 0))

        outcome = asyncio.run(h.router.route(h.tenant, text("1")))

        assert outcome.action == "wait_reply_accepted"
        assert h.engine.started == []
        assert h.engine.resumed[0][0] is execution

    def test_other_senders_waiting_execution_is_ignored(self):
        h = Harness()
        (workflow,) = h.add_workflows("Expense Claim")
        h.store.executions.append(make_execution(h.tenant, workflow, sender="someone-else"))

        outcome = asyncio.run(h.router.route(h.tenant, text("menu")))

        assert outcome.action == "menu_sent"


class TestExecutionStart:
    def test_execution_is_committed_before_engine_start(self):
        h = Harness()
        h.add_workflows("Expense Claim")

        outcome = asyncio.run(h.router.route(h.tenant, text("1")))

        assert outcome.action == "execution_started"
        assert h.engine.commits_at_call == [1]

    def test_engine_start_failure_apologises_and_propagates(self):
        h = Harness(engine_error=EngineError("engine down"))
        h.add_workflows("Expense Claim")

        with pytest.raises(EngineError):
            asyncio.run(h.router.route(h.tenant, text("1")))

        assert len(h.store.executions) == 1
        assert h.store.commits == 1
        assert h.sender.texts == [("85291234567", "Something went wrong, please try again later.")]

    def test_document_without_waiting_execution_resends_menu(self):
        h = Harness()
        h.add_workflows("Expense Claim")
        message = DocumentMessage(
            external_id="wamid.doc",
            sender_id="85291234567",
            timestamp=datetime(2026, 3, 1, tzinfo=timezone.utc),
            media_ref="media-doc",
            filename="invoice.pdf",
        )

        outcome = asyncio.run(h.router.route(h.tenant, message))

        assert outcome.action == "menu_sent"
        assert h.media.requested == []
