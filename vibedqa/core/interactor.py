"""Element discovery and interaction for a single page visit.

Discovers everything a user could click or type into, fills inputs with
test data, clicks each same-page element, and watches what changed. Any
meaningful change is captured and then undone (modal closed, URL restored)
so the next element is exercised from the same baseline.

Every action is isolated: a missing element, a timeout or a thrown error
is logged as data and the loop moves on.
"""

from __future__ import annotations

import functools
import logging
import re
from urllib.parse import urljoin, urlparse

from playwright.async_api import Locator, Page

from vibedqa.config import CLICKABLE_SELECTORS, INPUT_SELECTORS, CrawlConfig
from vibedqa.core.screenshotter import Screenshotter
from vibedqa.models.types import (
    ActionKind, ChangeKind, DiscoveredElement, InteractionLog, Outcome,
    ProgressCallback, StateChange,
)
from vibedqa.utils.element_resolver import resolve_locator
from vibedqa.utils.error_collector import ErrorCollector
from vibedqa.utils.state_detector import StateDetector
from vibedqa.utils.test_data import get_form_value, is_text_like


logger = logging.getLogger(__name__)


CURSOR_CANDIDATE_TAGS = ["div", "span", "img", "svg", "li", "label", "figure", "picture", "i"]

ROW_TOLERANCE_PX = 20
VISIBLE_BELOW_FOLD_PX = 200

VISIBILITY_TIMEOUT_MS = 1000
SCROLL_TIMEOUT_MS = 2000
CLICK_TIMEOUT_MS = 5000
FILL_TIMEOUT_MS = 3000
GO_BACK_TIMEOUT_MS = 5000


_DISCOVER_ELEMENTS_JS = """({clickSel, inputSel, cursorTags, vpWidth, vpHeight, belowFold}) => {
    const results = [];
    const processed = new WeakSet();

    function isVisible(el, rect) {
        const style = window.getComputedStyle(el);
        return style.display !== 'none' &&
               style.visibility !== 'hidden' &&
               style.opacity !== '0' &&
               rect.width > 0 && rect.height > 0 &&
               rect.top < vpHeight + belowFold;
    }

    function add(el) {
        if (processed.has(el)) return;
        processed.add(el);

        const rect = el.getBoundingClientRect();
        const tag = el.tagName.toLowerCase();
        const type = el.getAttribute('type') || el.getAttribute('role') || tag;
        const text = (
            (el.textContent || '').trim() ||
            el.getAttribute('aria-label') ||
            el.getAttribute('placeholder') ||
            el.getAttribute('title') ||
            el.getAttribute('name') ||
            el.getAttribute('alt') ||
            ''
        ).replace(/\\s+/g, ' ').slice(0, 80);

        results.push({
            selector: el.id ? `${tag}#${el.id}` : tag,
            id: el.id || null,
            tag,
            type,
            text,
            href: el.getAttribute('href'),
            isVisible: isVisible(el, rect),
            top: rect.top,
            boundingBox: rect.width > 0
                ? {x: rect.x, y: rect.y, width: rect.width, height: rect.height}
                : null,
        });
    }

    // 1. Semantic selectors
    for (const el of document.querySelectorAll(`${clickSel}, ${inputSel}`)) add(el);

    // 2. Anything styled as clickable
    for (const tag of cursorTags) {
        for (const el of document.querySelectorAll(tag)) {
            if (processed.has(el)) continue;
            if (window.getComputedStyle(el).cursor !== 'pointer') continue;
            const r = el.getBoundingClientRect();
            if (r.width < 8 || r.height < 8) continue;
            if (r.width > vpWidth * 2 && r.height > vpHeight * 2) continue;
            add(el);
        }
    }

    // 3. Icons and images: register their interactive ancestor
    for (const el of document.querySelectorAll('img, svg')) {
        if (processed.has(el)) continue;
        const parent = el.closest('a, button, [role="button"], [onclick]');
        if (parent) add(parent);
    }

    return results;
}"""


def is_fillable(element: DiscoveredElement) -> bool:
    """Selects and text-like fields go to the fill phase; submit/button inputs are clicked."""
    return element.tag == "select" or is_text_like(element.tag, element.type)


def dedupe_elements(raw: list[dict]) -> list[dict]:
    """Collapse candidates sharing (tag, type, text, rounded top)."""
    seen: set[tuple] = set()
    unique = []
    for item in raw:
        key = (item.get("tag"), item.get("type"), item.get("text"), round(item.get("top") or 0))
        if key in seen:
            continue
        seen.add(key)
        unique.append(item)
    return unique


def _scan_order(a: DiscoveredElement, b: DiscoveredElement) -> int:
    if not a.bounding_box or not b.bounding_box:
        return 0
    dy = a.bounding_box.y - b.bounding_box.y
    if abs(dy) > ROW_TOLERANCE_PX:
        return -1 if dy < 0 else 1
    dx = a.bounding_box.x - b.bounding_box.x
    return -1 if dx < 0 else (1 if dx > 0 else 0)


def sort_scan_order(elements: list[DiscoveredElement]) -> list[DiscoveredElement]:
    """Top-to-bottom, then left-to-right within a 20px row."""
    return sorted(elements, key=functools.cmp_to_key(_scan_order))


def is_external_link(href: str, current_url: str, base_url: str) -> bool:
    """True when the href leaves the target host (unparseable counts as external)."""
    try:
        resolved = urlparse(urljoin(current_url, href))
        base = urlparse(base_url)
    except ValueError:
        return True
    return (resolved.hostname or "").lower() != (base.hostname or "").lower()


def is_navigation_link(href: str, current_url: str) -> bool:
    """True for same-host links to another path; those belong to the Explorer."""
    try:
        resolved = urlparse(urljoin(current_url, href))
        current = urlparse(current_url)
    except ValueError:
        return False
    return (
        (resolved.hostname or "").lower() == (current.hostname or "").lower()
        and (resolved.path or "/") != (current.path or "/")
    )


def _slug(label: str) -> str:
    return re.sub(r"\W+", "_", label)[:30]


class Interactor:
    """Fills and clicks everything on the current page, one action at a time."""

    def __init__(
        self,
        config: CrawlConfig,
        screenshotter: Screenshotter,
        state_detector: StateDetector,
        error_collector: ErrorCollector,
        on_progress: ProgressCallback | None = None,
    ):
        self.config = config
        self.screenshotter = screenshotter
        self.state = state_detector
        self.errors = error_collector
        self._progress = on_progress or (lambda *_: None)
        self._interactions: list[InteractionLog] = []
        self.elements_found = 0

    async def discover_elements(self, page: Page) -> list[DiscoveredElement]:
        viewport = page.viewport_size or {"width": 1280, "height": 720}
        try:
            raw = await page.evaluate(_DISCOVER_ELEMENTS_JS, {
                "clickSel": CLICKABLE_SELECTORS,
                "inputSel": INPUT_SELECTORS,
                "cursorTags": CURSOR_CANDIDATE_TAGS,
                "vpWidth": viewport["width"],
                "vpHeight": viewport["height"],
                "belowFold": VISIBLE_BELOW_FOLD_PX,
            })
        except Exception as e:
            logger.warning("Element discovery failed: %s", str(e)[:120])
            return []

        elements = sort_scan_order([DiscoveredElement.from_dict(r) for r in dedupe_elements(raw)])

        visible = sum(1 for e in elements if e.is_visible)
        cursor_count = sum(1 for e in elements if e.tag in CURSOR_CANDIDATE_TAGS)
        logger.info("Found %s interactive elements (%s visible)", len(elements), visible)
        logger.debug("  selector-matched: %s, cursor:pointer: %s", len(elements) - cursor_count, cursor_count)
        return elements

    async def interact_with_page(self, page: Page) -> list[InteractionLog]:
        """Fill phase then click phase. Returns this page's interaction log."""
        self._interactions = []
        elements = [e for e in await self.discover_elements(page) if e.is_visible]
        self.elements_found = len(elements)

        inputs = [e for e in elements if is_fillable(e)]
        clickables = [e for e in elements if not is_fillable(e)]
        self._emit("elements_found", {
            "url": page.url,
            "total": len(elements),
            "inputs": len(inputs),
            "clickables": len(clickables),
        })

        if self.config.enable_input and inputs:
            await self.fill_inputs(page, inputs)

        if self.config.enable_click:
            await self.click_elements(page, clickables)

        return self.get_interactions()

    def get_interactions(self) -> list[InteractionLog]:
        return self.get_interactions()

    # -- fill phase ---------------------------------------------------------

    async def fill_inputs(self, page: Page, inputs: list[DiscoveredElement]):
        filled_text = 0
        for element in inputs:
            label = element.label
            url = page.url
            try:
                locator = await resolve_locator(page, element)
                if locator is None:
                    self._log(ActionKind.INPUT, label, element.selector, url,
                              Outcome.NO_CHANGE, error="Element not found")
                    continue
                if not await self._is_visible(locator):
                    continue

                if element.tag == "select":
                    await self._fill_select(locator, element, url)
                elif is_text_like(element.tag, element.type):
                    await self._fill_text(locator, element, url)
                    filled_text += 1
            except Exception as e:
                msg = str(e)
                logger.debug("Input failed on %r: %s", label, msg[:60])
                self._log(ActionKind.INPUT, label, element.selector, url, Outcome.ERROR, error=msg)

        if filled_text:
            try:
                await self.screenshotter.capture(page, "form_filled")
            except Exception as e:
                logger.debug("form_filled capture failed: %s", str(e)[:80])

    async def _fill_text(self, locator: Locator, element: DiscoveredElement, url: str):
        value = get_form_value(element.tag if element.tag == "textarea" else element.type)
        logger.info('TYPING into "%s"', element.label)
        self.errors.set_current_action(f"input: {element.label}")
        await self._scroll_into_view(locator)
        await locator.fill(value, timeout=FILL_TIMEOUT_MS)
        self._log(ActionKind.INPUT, element.label, element.selector, url, Outcome.SUCCESS)

    async def _fill_select(self, locator: Locator, element: DiscoveredElement, url: str):
        options = await locator.locator("option:not([disabled])").all()
        if len(options) < 2:
            return
        # The first option is usually a placeholder.
        value = await options[1].get_attribute("value")
        if value is None:
            value = (await options[1].text_content() or "").strip()
        label = f"{element.label} (select)"
        self.errors.set_current_action(f"input: {label}")
        await locator.select_option(value, timeout=FILL_TIMEOUT_MS)
        logger.info('SELECTING "%s" in %s', value, label)
        self._log(ActionKind.INPUT, label, element.selector, url, Outcome.SUCCESS)

    # -- click phase --------------------------------------------------------

    async def click_elements(self, page: Page, clickables: list[DiscoveredElement]):
        max_clicks = self.config.max_clicks_per_page
        clicks = 0
        for element in clickables:
            if clicks >= max_clicks:
                logger.debug("Reached max clicks (%s), stopping", max_clicks)
                break

            if element.tag == "a" and element.href:
                if is_external_link(element.href, page.url, self.config.url):
                    logger.debug("Skipping external link: %s -> %s", element.text, element.href)
                    continue
                if is_navigation_link(element.href, page.url):
                    logger.debug("Skipping nav link: %s -> %s", element.text, element.href)
                    continue

            await self.click_element(page, element)
            clicks += 1

    async def click_element(self, page: Page, element: DiscoveredElement):
        """Click one element, record the outcome, undo any state change."""
        label = element.label
        logger.info('CLICKING "%s"...', label)
        self.errors.set_current_action(f"click: {label}")
        self._emit("action", {"action": "click", "target": label[:60], "page": page.url})

        before_url = page.url
        before = await self.state.snapshot(page)

        try:
            locator = await resolve_locator(page, element)
            if locator is None:
                self._log(ActionKind.CLICK, label, element.selector, before_url,
                          Outcome.NO_CHANGE, error="Element not found")
                return

            if not await self._is_visible(locator):
                logger.debug("Element %r no longer visible, skipping", label)
                self._log(ActionKind.CLICK, label, element.selector, before_url,
                          Outcome.NO_CHANGE, error="Not visible")
                return

            await self._scroll_into_view(locator)
            await locator.click(timeout=CLICK_TIMEOUT_MS)
            await self.state.wait_for_stable(page)

            changes = await self.state.detect_changes(page, before_url, before)
            if not changes:
                self._log(ActionKind.CLICK, label, element.selector, before_url,
                          Outcome.SUCCESS, note="No state change observed")
                logger.debug("Click on %r: no state change detected", label)
                return

            shot = await self.screenshotter.capture(page, f"after_click_{_slug(label)}")
            self._log(
                ActionKind.CLICK, label, element.selector, before_url, Outcome.SUCCESS,
                screenshot_path=shot.path,
                note="; ".join(c.description for c in changes),
                changes=tuple(c.kind for c in changes),
            )
            self._emit("state_change", {
                "target": label[:60],
                "changes": [c.kind.value for c in changes],
            })
            await self.restore_state(page, before_url, changes)

        except Exception as e:
            msg = str(e)
            logger.debug("Click failed on %r: %s", label, msg[:80])
            self._log(ActionKind.CLICK, label, element.selector, before_url, Outcome.ERROR, error=msg)
            if page.url != before_url:
                await self.safe_go_back(page, before_url)

    # -- restoration --------------------------------------------------------

    async def restore_state(self, page: Page, original_url: str, changes: list[StateChange]) -> bool:
        kinds = {c.kind for c in changes}
        restored = True

        if ChangeKind.MODAL_APPEARED in kinds:
            if not await self.state.try_dismiss_modal(page):
                logger.warning("Modal could not be dismissed on %s", page.url)
                restored = False

        if ChangeKind.URL_CHANGED in kinds and page.url != original_url:
            restored = await self.safe_go_back(page, original_url) and restored

        return restored

    async def safe_go_back(self, page: Page, target_url: str) -> bool:
        """History back, verified; direct navigation when back lands elsewhere."""
        try:
            await page.go_back(timeout=GO_BACK_TIMEOUT_MS)
            await self.state.wait_for_stable(page)
            if page.url == target_url:
                return True
            logger.debug("Back landed on %s, navigating to %s", page.url, target_url)
        except Exception as e:
            logger.debug("History back failed: %s", str(e)[:80])

        try:
            await page.goto(target_url, timeout=self.config.timeout_ms, wait_until="domcontentloaded")
            await self.state.wait_for_stable(page)
            return True
        except Exception as e:
            logger.warning("Could not restore page to %s: %s", target_url, str(e)[:80])
            return False

    # -- helpers ------------------------------------------------------------

    async def _is_visible(self, locator: Locator) -> bool:
        try:
            return await locator.is_visible(timeout=VISIBILITY_TIMEOUT_MS)
        except Exception:
            return False

    async def _scroll_into_view(self, locator: Locator):
        try:
            await locator.scroll_into_view_if_needed(timeout=SCROLL_TIMEOUT_MS)
        except Exception:
            pass

    def _log(
        self,
        action: ActionKind,
        target: str,
        selector: str,
        url: str,
        outcome: Outcome,
        error: str | None = None,
        screenshot_path: str | None = None,
        note: str | None = None,
        changes: tuple[ChangeKind, ...] = (),
    ):
        self._interactions.append(InteractionLog(
            action=action,
            target=target,
            selector=selector,
            url=url,
            outcome=outcome,
            error=error,
            screenshot_path=screenshot_path,
            note=note,
            changes=changes,
        ))

    def _emit(self, event_type: str, data: dict):
        try:
            self._progress(event_type, data)
        except Exception:
            pass
