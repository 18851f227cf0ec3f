"""Tests for element discovery post-processing and the fill/click/restore loop."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import make_config
from vibedqa.core import interactor as interactor_mod
from vibedqa.core.interactor import (
    Interactor, dedupe_elements, is_external_link, is_fillable, is_navigation_link, sort_scan_order,
)
from vibedqa.models.types import (
    ActionKind, BoundingBox, ChangeKind, DiscoveredElement, Outcome, Screenshot, StateChange,
    StateSnapshot,
)


BASE = "https://example.com/"


def el(text="Go", tag="button", type_=None, href=None, box=None, visible=True):
    return DiscoveredElement(
        selector=tag, tag=tag, type=type_ or tag, text=text, href=href,
        is_visible=visible, bounding_box=box,
    )


def fake_page(url=BASE):
    page = MagicMock()
    page.url = url
    page.viewport_size = {"width": 1280, "height": 720}
    page.go_back = AsyncMock()
    page.goto = AsyncMock()
    return page


def fake_locator():
    loc = MagicMock()
    loc.is_visible = AsyncMock(return_value=True)
    loc.scroll_into_view_if_needed = AsyncMock()
    loc.click = AsyncMock()
    loc.fill = AsyncMock()
    loc.select_option = AsyncMock()
    return loc


def build(config=None, changes=None):
    state = MagicMock()
    state.snapshot = AsyncMock(return_value=StateSnapshot(10, 100))
    state.wait_for_stable = AsyncMock()
    state.detect_changes = AsyncMock(return_value=changes or [])
    state.try_dismiss_modal = AsyncMock(return_value=True)

    shots = MagicMock()
    shots.capture = AsyncMock(side_effect=lambda page, name, **_: Screenshot(
        path=f"/tmp/{name}.png", url=page.url, viewport="desktop",
        theme="light", language="auto", state=name,
    ))

    errors = MagicMock()
    events = []
    inter = Interactor(
        config or make_config(BASE), shots, state, errors,
        on_progress=lambda kind, data: events.append(kind),
    )
    return inter, state, shots, errors, events


class TestDiscoveryHelpers:

    def test_dedupe_by_tag_type_text_and_top(self):
        raw = [
            {"tag": "button", "type": "button", "text": "Save", "top": 100.2},
            {"tag": "button", "type": "button", "text": "Save", "top": 99.8},
            {"tag": "button", "type": "button", "text": "Save", "top": 300},
            {"tag": "a", "type": "a", "text": "Save", "top": 100},
        ]
        assert len(dedupe_elements(raw)) == 3

    def test_sort_rows_then_columns(self):
        right = el("right", box=BoundingBox(500, 105, 10, 10))
        left = el("left", box=BoundingBox(10, 100, 10, 10))
        below = el("below", box=BoundingBox(0, 400, 10, 10))
        top = el("top", box=BoundingBox(900, 0, 10, 10))

        ordered = sort_scan_order([below, right, left, top])

        assert [e.text for e in ordered] == ["top", "left", "right", "below"]

    def test_external_link(self):
        assert is_external_link("https://other.com/x", BASE, BASE)
        assert not is_external_link("/about", BASE, BASE)
        assert not is_external_link("#top", BASE, BASE)

    def test_navigation_link(self):
        assert is_navigation_link("/about", BASE)
        assert is_navigation_link("https://example.com/pricing", BASE)
        assert not is_navigation_link("#modal", BASE)
        assert not is_navigation_link("?tab=2", BASE)


class TestClickPhase:

    @pytest.mark.asyncio
    async def test_skips_external_and_navigation_links(self):
        inter, *_ = build()
        inter.click_element = AsyncMock()
        page = fake_page()

        await inter.click_elements(page, [
            el("Partner", tag="a", href="https://partner.org/"),
            el("About", tag="a", href="/about"),
            el("Jump", tag="a", href="#faq"),
            el("Open Modal"),
        ])

        clicked = [call.args[1].text for call in inter.click_element.await_args_list]
        assert clicked == ["Jump", "Open Modal"]

    @pytest.mark.asyncio
    async def test_respects_max_clicks(self):
        inter, *_ = build(make_config(BASE, max_clicks_per_page=2))
        inter.click_element = AsyncMock()

        await inter.click_elements(fake_page(), [el(f"b{i}") for i in range(5)])

        assert inter.click_element.await_count == 2

    @pytest.mark.asyncio
    async def test_element_not_found_is_no_change(self, monkeypatch):
        monkeypatch.setattr(interactor_mod, "resolve_locator", AsyncMock(return_value=None))
        inter, *_ = build()

        await inter.click_element(fake_page(), el("Ghost"))

        log = inter.get_interactions()[0]
        assert log.outcome == Outcome.NO_CHANGE
        assert log.error == "Element not found"

    @pytest.mark.asyncio
    async def test_inert_click_is_success_with_note(self, monkeypatch):
        loc = fake_locator()
        monkeypatch.setattr(interactor_mod, "resolve_locator", AsyncMock(return_value=loc))
        inter, _, shots, errors, _ = build()

        await inter.click_element(fake_page(), el("Nothing"))

        log = inter.get_interactions()[0]
        assert log.action == ActionKind.CLICK
        assert log.outcome == Outcome.SUCCESS
        assert log.note == "No state change observed"
        assert log.screenshot_path is None
        shots.capture.assert_not_awaited()
        errors.set_current_action.assert_called_with("click: Nothing")

    @pytest.mark.asyncio
    async def test_modal_change_is_captured_and_dismissed(self, monkeypatch):
        loc = fake_locator()
        monkeypatch.setattr(interactor_mod, "resolve_locator", AsyncMock(return_value=loc))
        change = StateChange(ChangeKind.MODAL_APPEARED, "Modal/dialog appeared", BASE, BASE)
        inter, state, shots, _, events = build(changes=[change])

        await inter.click_element(fake_page(), el("Open Modal"))

        log = inter.get_interactions()[0]
        assert log.outcome == Outcome.SUCCESS
        assert log.changes == (ChangeKind.MODAL_APPEARED,)
        assert log.screenshot_path.endswith("after_click_Open_Modal.png")
        state.try_dismiss_modal.assert_awaited_once()
        assert "state_change" in events

    @pytest.mark.asyncio
    async def test_url_change_navigates_back(self, monkeypatch):
        loc = fake_locator()
        monkeypatch.setattr(interactor_mod, "resolve_locator", AsyncMock(return_value=loc))
        page = fake_page()

        async def click(**_):
            page.url = BASE + "detail"

        async def go_back(**_):
            page.url = BASE

        loc.click = AsyncMock(side_effect=click)
        page.go_back = AsyncMock(side_effect=go_back)
        change = StateChange(ChangeKind.URL_CHANGED, "URL changed", BASE, BASE + "detail")
        inter, state, *_ = build(changes=[change])

        await inter.click_element(page, el("Details"))

        page.go_back.assert_awaited_once()
        page.goto.assert_not_awaited()
        assert page.url == BASE
        state.try_dismiss_modal.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_click_error_is_logged_and_restored(self, monkeypatch):
        loc = fake_locator()
        monkeypatch.setattr(interactor_mod, "resolve_locator", AsyncMock(return_value=loc))
        page = fake_page()

        async def click(**_):
            page.url = BASE + "elsewhere"
            raise TimeoutError("Timeout 5000ms exceeded")

        loc.click = AsyncMock(side_effect=click)
        inter, *_ = build()
        inter.safe_go_back = AsyncMock(return_value=True)

        await inter.click_element(page, el("Flaky"))

        log = inter.get_interactions()[0]
        assert log.outcome == Outcome.ERROR
        assert "Timeout" in log.error
        inter.safe_go_back.assert_awaited_once_with(page, BASE)

    @pytest.mark.asyncio
    async def test_one_failure_does_not_stop_the_loop(self, monkeypatch):
        good = fake_locator()
        bad = fake_locator()
        bad.click = AsyncMock(side_effect=RuntimeError("Element is detached"))
        resolver = AsyncMock(side_effect=[bad, good])
        monkeypatch.setattr(interactor_mod, "resolve_locator", resolver)
        inter, *_ = build()

        await inter.click_elements(fake_page(), [el("First"), el("Second")])

        assert [i.outcome for i in inter.get_interactions()] == [Outcome.ERROR, Outcome.SUCCESS]


class TestRestoration:

    @pytest.mark.asyncio
    async def test_go_back_landing_elsewhere_falls_back_to_goto(self):
        inter, *_ = build()
        page = fake_page(BASE + "detail")

        async def go_back(**_):
            page.url = BASE + "somewhere-else"

        async def goto(url, **_):
            page.url = url

        page.go_back = AsyncMock(side_effect=go_back)
        page.goto = AsyncMock(side_effect=goto)

        assert await inter.safe_go_back(page, BASE) is True
        page.goto.assert_awaited_once()
        assert page.url == BASE

    @pytest.mark.asyncio
    async def test_restoration_failure_is_not_fatal(self):
        inter, *_ = build()
        page = fake_page(BASE + "detail")
        page.go_back = AsyncMock(side_effect=RuntimeError("no history"))
        page.goto = AsyncMock(side_effect=RuntimeError("net::ERR_ABORTED"))

        assert await inter.safe_go_back(page, BASE) is False


class TestFillPhase:

    @pytest.mark.asyncio
    async def test_fills_text_inputs_with_typed_values(self, monkeypatch):
        email, textarea = fake_locator(), fake_locator()
        monkeypatch.setattr(interactor_mod, "resolve_locator", AsyncMock(side_effect=[email, textarea]))
        inter, _, shots, *_ = build()

        await inter.fill_inputs(fake_page(), [
            el("Email", tag="input", type_="email"),
            el("Message", tag="textarea"),
        ])

        email.fill.assert_awaited_once()
        assert email.fill.await_args.args[0] == "test@vibedqa.com"
        assert "VibedQA" in textarea.fill.await_args.args[0]
        assert all(i.outcome == Outcome.SUCCESS for i in inter.get_interactions())
        shots.capture.assert_awaited_once()
        assert shots.capture.await_args.args[1] == "form_filled"

    @pytest.mark.asyncio
    async def test_select_picks_second_option(self, monkeypatch):
        select = fake_locator()
        placeholder, real = MagicMock(), MagicMock()
        placeholder.get_attribute = AsyncMock(return_value="")
        real.get_attribute = AsyncMock(return_value="kr")
        select.locator = MagicMock(return_value=MagicMock(all=AsyncMock(return_value=[placeholder, real])))
        monkeypatch.setattr(interactor_mod, "resolve_locator", AsyncMock(return_value=select))
        inter, _, shots, *_ = build()

        await inter.fill_inputs(fake_page(), [el("Country", tag="select")])

        select.select_option.assert_awaited_once()
        assert select.select_option.await_args.args[0] == "kr"
        assert inter.get_interactions()[0].target == "Country (select)"
        shots.capture.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_select_with_single_option_is_skipped(self, monkeypatch):
        select = fake_locator()
        only = MagicMock()
        select.locator = MagicMock(return_value=MagicMock(all=AsyncMock(return_value=[only])))
        monkeypatch.setattr(interactor_mod, "resolve_locator", AsyncMock(return_value=select))
        inter, *_ = build()

        await inter.fill_inputs(fake_page(), [el("Only", tag="select")])

        select.select_option.assert_not_awaited()
        assert inter.get_interactions() == []

    @pytest.mark.asyncio
    async def test_fill_failure_is_recorded(self, monkeypatch):
        broken = fake_locator()
        broken.fill = AsyncMock(side_effect=RuntimeError("Element is not editable"))
        monkeypatch.setattr(interactor_mod, "resolve_locator", AsyncMock(return_value=broken))
        inter, *_ = build()

        await inter.fill_inputs(fake_page(), [el("Name", tag="input", type_="text")])

        log = inter.get_interactions()[0]
        assert log.action == ActionKind.INPUT
        assert log.outcome == Outcome.ERROR


class TestInteractWithPage:

    @pytest.mark.asyncio
    async def test_toggles_gate_phases(self):
        inter, *_ = build(make_config(BASE, enable_click=False, enable_input=False))
        inter.fill_inputs = AsyncMock()
        inter.click_elements = AsyncMock()
        page = fake_page()
        page.evaluate = AsyncMock(return_value=[
            {"tag": "input", "type": "text", "text": "Name", "isVisible": True, "top": 10},
            {"tag": "button", "type": "button", "text": "Go", "isVisible": True, "top": 50},
        ])

        await inter.interact_with_page(page)

        inter.fill_inputs.assert_not_awaited()
        inter.click_elements.assert_not_awaited()
        assert inter.elements_found == 2

    @pytest.mark.asyncio
    async def test_invisible_elements_are_dropped(self):
        inter, *_, events = build()
        inter.fill_inputs = AsyncMock()
        inter.click_elements = AsyncMock()
        page = fake_page()
        page.evaluate = AsyncMock(return_value=[
            {"tag": "button", "type": "button", "text": "Shown", "isVisible": True, "top": 10},
            {"tag": "button", "type": "button", "text": "Hidden", "isVisible": False, "top": 20},
        ])

        await inter.interact_with_page(page)

        clickables = inter.click_elements.await_args.args[1]
        assert [e.text for e in clickables] == ["Shown"]
        assert "elements_found" in events

    @pytest.mark.asyncio
    async def test_discovery_failure_yields_empty_log(self):
        inter, *_ = build()
        page = fake_page()
        page.evaluate = AsyncMock(side_effect=RuntimeError("Target closed"))

        assert await inter.interact_with_page(page) == []

    @pytest.mark.asyncio
    async def test_submit_and_button_inputs_are_clicked(self, monkeypatch):
        monkeypatch.setattr(interactor_mod, "resolve_locator", AsyncMock(return_value=fake_locator()))
        inter, *_ = build()
        page = fake_page()
        page.evaluate = AsyncMock(return_value=[
            {"tag": "input", "type": "email", "text": "Email", "isVisible": True, "top": 10},
            {"tag": "input", "type": "submit", "text": "Send", "isVisible": True, "top": 80},
            {"tag": "input", "type": "button", "text": "Reset", "isVisible": True, "top": 120},
        ])

        log = await inter.interact_with_page(page)

        clicked = [i.target for i in log if i.action == ActionKind.CLICK]
        typed = [i.target for i in log if i.action == ActionKind.INPUT]
        assert clicked == ["Send", "Reset"]
        assert typed == ["Email"]

    def test_fill_phase_routing(self):
        assert is_fillable(el("Name", tag="input", type_="text"))
        assert is_fillable(el("Bio", tag="textarea"))
        assert is_fillable(el("Country", tag="select"))
        assert not is_fillable(el("Send", tag="input", type_="submit"))
        assert not is_fillable(el("Agree", tag="input", type_="checkbox"))
        assert not is_fillable(el("Go"))
