"""Tests for DOM fingerprinting, change detection and modal dismissal."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from vibedqa.models.types import ChangeKind, StateSnapshot
from vibedqa.utils import state_detector as sd
from vibedqa.utils.state_detector import StateDetector, diff_states


URL = "https://example.com/"


def kinds(changes):
    return [c.kind for c in changes]


class TestStateSnapshot:

    def test_descriptor_format(self):
        snap = StateSnapshot(element_count=120, text_length=3400, modal_count=1, input_count=4)
        assert snap.descriptor == "el:120|txt:3400|modal:1|inputs:4"

    def test_is_empty(self):
        assert StateSnapshot(element_count=5, text_length=0).is_empty
        assert not StateSnapshot(element_count=50, text_length=0).is_empty
        assert not StateSnapshot(element_count=5, text_length=1).is_empty


class TestDiffStates:

    @pytest.mark.parametrize("snap", [
        StateSnapshot(100, 2000, 0, 3),
        StateSnapshot(0, 0, 0, 0),
        StateSnapshot(3, 0, 1, 0),
    ])
    def test_reflexive_null(self, snap):
        assert diff_states(URL, snap, URL, snap) == []

    def test_url_changed(self):
        snap = StateSnapshot(100, 2000)
        changes = diff_states(URL, snap, URL + "about", snap)
        assert kinds(changes) == [ChangeKind.URL_CHANGED]
        assert changes[0].after_url == URL + "about"

    def test_modal_appeared_and_dom_changed(self):
        before = StateSnapshot(100, 2000, 0, 0)
        after = StateSnapshot(110, 2100, 1, 0)
        assert kinds(diff_states(URL, before, URL, after)) == [
            ChangeKind.MODAL_APPEARED, ChangeKind.DOM_CHANGED,
        ]

    def test_modal_closing_is_not_modal_appeared(self):
        before = StateSnapshot(100, 2000, 1, 0)
        after = StateSnapshot(100, 2000, 0, 0)
        assert diff_states(URL, before, URL, after) == []

    def test_input_count_alone_is_not_dom_change(self):
        assert diff_states(URL, StateSnapshot(10, 10, 0, 1), URL, StateSnapshot(10, 10, 0, 2)) == []

    def test_page_emptied(self):
        before = StateSnapshot(200, 5000)
        after = StateSnapshot(4, 0)
        assert kinds(diff_states(URL, before, URL, after)) == [
            ChangeKind.DOM_CHANGED, ChangeKind.PAGE_EMPTIED,
        ]

    def test_priority_order_with_everything(self):
        before = StateSnapshot(200, 5000, 0, 0)
        after = StateSnapshot(5, 0, 1, 0)
        assert kinds(diff_states(URL, before, URL + "x", after)) == [
            ChangeKind.URL_CHANGED, ChangeKind.MODAL_APPEARED,
            ChangeKind.DOM_CHANGED, ChangeKind.PAGE_EMPTIED,
        ]


def _page(evaluate=None):
    page = MagicMock()
    page.url = URL
    page.evaluate = evaluate or AsyncMock()
    page.wait_for_timeout = AsyncMock()
    page.wait_for_load_state = AsyncMock()
    page.wait_for_function = AsyncMock()
    page.keyboard.press = AsyncMock()
    return page


def _invisible_locator():
    loc = MagicMock()
    loc.first = loc
    loc.is_visible = AsyncMock(return_value=False)
    loc.click = AsyncMock()
    return loc


class TestStateDetector:

    @pytest.mark.asyncio
    async def test_snapshot_reads_counters(self):
        page = _page(AsyncMock(return_value={"elements": 12, "text": 300, "modals": 1, "inputs": 2}))
        snap = await StateDetector().snapshot(page)
        assert snap == StateSnapshot(12, 300, 1, 2)

    @pytest.mark.asyncio
    async def test_snapshot_failure_is_zero(self):
        page = _page(AsyncMock(side_effect=RuntimeError("Execution context was destroyed")))
        assert await StateDetector().snapshot(page) == StateSnapshot()

    @pytest.mark.asyncio
    async def test_detect_changes_against_same_state(self):
        page = _page(AsyncMock(return_value={"elements": 12, "text": 300, "modals": 0, "inputs": 0}))
        before = StateSnapshot(12, 300, 0, 0)
        assert await StateDetector().detect_changes(page, URL, before) == []

    @pytest.mark.asyncio
    async def test_wait_for_stable_survives_timeouts(self):
        page = _page(AsyncMock(return_value=True))
        page.wait_for_load_state = AsyncMock(side_effect=TimeoutError("load"))
        page.wait_for_function = AsyncMock(side_effect=TimeoutError("loader"))

        await StateDetector().wait_for_stable(page, timeout_ms=10)

        page.wait_for_function.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_wait_for_stable_skips_poll_without_loader(self):
        page = _page(AsyncMock(return_value=False))
        await StateDetector().wait_for_stable(page)
        page.wait_for_function.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_dismiss_modal_with_escape(self):
        page = _page(AsyncMock(return_value=False))
        assert await StateDetector().try_dismiss_modal(page) is True
        page.keyboard.press.assert_awaited_once_with("Escape")

    @pytest.mark.asyncio
    async def test_dismiss_modal_via_close_button(self):
        close = MagicMock()
        close.first = close
        close.is_visible = AsyncMock(return_value=True)
        clicked = []
        close.click = AsyncMock(side_effect=lambda **_: clicked.append(True))

        async def evaluate(script, *args):
            return not clicked

        page = _page(AsyncMock(side_effect=evaluate))
        page.get_by_role = MagicMock(return_value=close)
        page.locator = MagicMock(return_value=_invisible_locator())

        assert await StateDetector().try_dismiss_modal(page) is True
        page.get_by_role.assert_called_with("button", name="Close", exact=False)

    @pytest.mark.asyncio
    async def test_dismiss_modal_falls_back_to_force_hide(self):
        hidden = []

        async def evaluate(script, *args):
            if script == sd._FORCE_HIDE_JS:
                hidden.append(True)
                return None
            return not hidden

        page = _page(AsyncMock(side_effect=evaluate))
        page.get_by_role = MagicMock(return_value=_invisible_locator())
        page.locator = MagicMock(return_value=_invisible_locator())

        assert await StateDetector().try_dismiss_modal(page) is True
        assert hidden == [True]
        assert page.get_by_role.call_count == len(sd.CLOSE_BUTTON_NAMES)
        assert page.locator.call_count == len(sd.CLOSE_BUTTON_SELECTORS)

    @pytest.mark.asyncio
    async def test_dismiss_modal_reports_failure(self):
        page = _page(AsyncMock(return_value=True))
        page.get_by_role = MagicMock(return_value=_invisible_locator())
        page.locator = MagicMock(return_value=_invisible_locator())

        assert await StateDetector().try_dismiss_modal(page) is False
