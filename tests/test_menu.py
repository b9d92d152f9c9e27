import asyncio

from conftest import FakeSender, make_tenant, make_workflow

from flowhook.services.menu_service import (
    MenuSettings,
    build_menu_rows,
    is_menu_request,
    normalize_reply,
    resolve_choice,
    send_menu,
)


class TestNormalizeReply:
    def test_option_prefix_is_unwrapped(self):
        assert normalize_reply("option_3") == "3"

    def test_option_prefix_case_and_padding(self):
        assert normalize_reply("  OPTION_03 ") == "3"

    def test_option_with_non_numeric_suffix_is_kept(self):
        assert normalize_reply("option_x") == "option_x"

    def test_none_is_empty(self):
        assert normalize_reply(None) == ""


class TestMenuRequest:
    def test_empty_text_requests_menu(self):
        assert is_menu_request("", ["menu"]) is True

    def test_localized_keyword(self):
        assert is_menu_request(normalize_reply(" 選單 "), ["menu", "選單"]) is True

    def test_keyword_is_case_insensitive(self):
        assert is_menu_request(normalize_reply("MENU"), ["Menu"]) is True

    def test_other_text_is_not_menu(self):
        assert is_menu_request("menus please", ["menu"]) is False


class TestResolveChoice:
    def setup_method(self):
        tenant = make_tenant()
        self.workflows = [
            make_workflow(tenant, "Expense Claim"),
            make_workflow(tenant, "Leave Request"),
            make_workflow(tenant, "IT Support"),
        ]

    def test_numeric_index_is_one_based(self):
        assert resolve_choice("2", self.workflows) is self.workflows[1]

    def test_out_of_range_index(self):
        assert resolve_choice("99", self.workflows) is None

    def test_zero_is_out_of_range(self):
        assert resolve_choice("0", self.workflows) is None

    def test_name_contained_in_reply(self):
        assert resolve_choice("i want to file a leave request today", self.workflows) is self.workflows[1]

    def test_no_match(self):
        assert resolve_choice("weather", self.workflows) is None

    def test_empty_workflow_list(self):
        assert resolve_choice("1", []) is None


class TestMenuRows:
    def test_rows_are_numbered_and_truncated(self):
        tenant = make_tenant()
        workflows = [
            make_workflow(tenant, "Short"),
            make_workflow(tenant, "A very long workflow name indeed", description="d" * 100),
        ]

        rows = build_menu_rows(workflows, MenuSettings())

        assert rows[0].id == "option_1"
        assert rows[0].title == "1. Short"
        assert rows[1].id == "option_2"
        assert len(rows[1].title) == 24
        assert rows[1].title.endswith("...")
        assert len(rows[1].description) == 72

    def test_at_most_ten_rows(self):
        tenant = make_tenant()
        workflows = [make_workflow(tenant, f"Flow {i}") for i in range(12)]

        assert len(build_menu_rows(workflows, MenuSettings())) == 10


class TestMenuSettings:
    def test_tenant_overrides(self):
        tenant = make_tenant(menu_settings={"welcome_message": "Hi!", "unknown_key": "x", "menu_footer": None})

        menu = MenuSettings.from_tenant(tenant)

        assert menu.welcome_message == "Hi!"
        assert menu.menu_footer == ""

    def test_defaults_without_tenant(self):
        assert MenuSettings.from_tenant(None).menu_style == "list"


class TestSendMenu:
    def test_sends_list(self):
        tenant = make_tenant()
        sender = FakeSender()
        workflows = [make_workflow(tenant, "Expense Claim")]

        shape = asyncio.run(send_menu(sender, tenant, "852", workflows, MenuSettings()))

        assert shape == "list"
        assert len(sender.lists) == 1
        assert sender.texts == []

    def test_list_failure_falls_back_to_text_with_hint(self):
        tenant = make_tenant()
        sender = FakeSender(fail_interactive=True)
        workflows = [make_workflow(tenant, "Expense Claim"), make_workflow(tenant, "Leave Request")]
        menu = MenuSettings()

        shape = asyncio.run(send_menu(sender, tenant, "852", workflows, menu))

        assert shape == "text"
        body = sender.texts[0][1]
        assert "1. Expense Claim" in body
        assert "2. Leave Request" in body
        assert body.endswith(menu.fallback_message)

    def test_auto_style_uses_buttons_for_short_menus(self):
        tenant = make_tenant(menu_settings={"menu_style": "auto"})
        sender = FakeSender()
        workflows = [make_workflow(tenant, "Expense Claim"), make_workflow(tenant, "Leave Request")]

        shape = asyncio.run(send_menu(sender, tenant, "852", workflows, MenuSettings.from_tenant(tenant)))

        assert shape == "buttons"
        buttons = sender.buttons[0][2]
        assert [b.id for b in buttons] == ["option_1", "option_2"]

    def test_button_failure_falls_back_to_text(self):
        tenant = make_tenant(menu_settings={"menu_style": "buttons"})
        sender = FakeSender(fail_interactive=True)
        workflows = [make_workflow(tenant, "Expense Claim")]

        shape = asyncio.run(send_menu(sender, tenant, "852", workflows, MenuSettings.from_tenant(tenant)))

        assert shape == "text"
        assert len(sender.texts) == 1

    def test_no_workflows_sends_no_function_message(self):
        tenant = make_tenant()
        sender = FakeSender()
        menu = MenuSettings()

        shape = asyncio.run(send_menu(sender, tenant, "852", [], menu))

        assert shape == "no_function"
        assert sender.texts == [("852", menu.no_function_message)]
