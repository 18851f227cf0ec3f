"""DOM state fingerprinting, change detection and recovery helpers.

Change detection is purely quantitative: four counters are read from the
live page and compared. Anything that does not move a counter (a colour
change, a swapped label of equal length) is invisible here.

Stability waits and modal dismissal are best-effort. They never raise and
never block past their timeouts.
"""

from __future__ import annotations

import logging

from playwright.async_api import Page

from vibedqa.models.types import ChangeKind, StateChange, StateSnapshot


logger = logging.getLogger(__name__)


MODAL_SELECTORS = (
    '[role="dialog"], [role="alertdialog"], [aria-modal="true"], '
    ".modal, .modal-overlay, .overlay"
)

LOADER_SELECTORS = (
    '.loading, .spinner, [role="progressbar"], .skeleton, [aria-busy="true"]'
)

CLOSE_BUTTON_NAMES: list[tuple[str, bool]] = [
    ("Close", False),
    ("Cancel", False),
    ("Dismiss", False),
    ("X", True),
]

CLOSE_BUTTON_SELECTORS = [
    '[role="dialog"] button[aria-label]',
    '[role="dialog"] button',
    '[aria-modal="true"] button',
    ".modal button.close",
    ".modal .close-button",
    ".modal-close",
    '[data-dismiss="modal"]',
]

SETTLE_DELAY_MS = 500
LOADER_TIMEOUT_MS = 5000


_SNAPSHOT_JS = """(modalSel) => {
    const body = document.body;
    if (!body) return null;

    function visible(el) {
        const s = window.getComputedStyle(el);
        return s.display !== 'none' && s.visibility !== 'hidden' && s.opacity !== '0';
    }

    let modals = 0;
    for (const el of document.querySelectorAll(modalSel)) {
        if (visible(el)) modals++;
    }

    let inputs = 0;
    for (const el of document.querySelectorAll('input:not([type="hidden"]), textarea, select')) {
        const r = el.getBoundingClientRect();
        if (r.width > 0 && r.height > 0 && visible(el)) inputs++;
    }

    return {
        elements: document.querySelectorAll('*').length,
        text: (body.innerText || '').trim().length,
        modals,
        inputs,
    };
}"""

_MODAL_VISIBLE_JS = """(modalSel) => {
    for (const el of document.querySelectorAll(modalSel)) {
        const s = window.getComputedStyle(el);
        if (s.display !== 'none' && s.visibility !== 'hidden' && s.opacity !== '0') return true;
    }
    return false;
}"""

_HAS_LOADER_JS = "(sel) => document.querySelectorAll(sel).length > 0"

_NO_LOADER_JS = "(sel) => document.querySelectorAll(sel).length === 0"

_FORCE_HIDE_JS = """(modalSel) => {
    for (const el of document.querySelectorAll(modalSel)) {
        el.style.setProperty('display', 'none', 'important');
    }
    for (const el of document.querySelectorAll('body *')) {
        const s = window.getComputedStyle(el);
        if ((s.position === 'fixed' || s.position === 'absolute') &&
            s.zIndex !== 'auto' && parseInt(s.zIndex, 10) > 50 &&
            el.offsetWidth > window.innerWidth * 0.5 &&
            el.offsetHeight > window.innerHeight * 0.5) {
            el.style.setProperty('display', 'none', 'important');
        }
    }
}"""


def diff_states(
    before_url: str,
    before: StateSnapshot,
    after_url: str,
    after: StateSnapshot,
) -> list[StateChange]:
    """Compare two fingerprints. Several changes can fire for one action."""
    changes: list[StateChange] = []

    if after_url != before_url:
        changes.append(StateChange(
            ChangeKind.URL_CHANGED,
            f"URL changed: {before_url} -> {after_url}",
            before_url, after_url,
        ))

    if after.modal_count > before.modal_count:
        changes.append(StateChange(
            ChangeKind.MODAL_APPEARED,
            f"Modal/dialog appeared ({after.modal_count} detected)",
            before_url, after_url,
        ))

    if after.element_count != before.element_count or after.text_length != before.text_length:
        changes.append(StateChange(
            ChangeKind.DOM_CHANGED,
            f"DOM changed: elements {before.element_count}->{after.element_count}, "
            f"text {before.text_length}->{after.text_length}",
            before_url, after_url,
        ))

    # An already-blank page that stayed blank is not a new problem.
    if after.is_empty and (changes or after != before):
        changes.append(StateChange(
            ChangeKind.PAGE_EMPTIED,
            "Page appears empty (no text content)",
            before_url, after_url,
        ))

    return changes


class StateDetector:
    """Snapshots the page and decides whether an action changed it."""

    async def snapshot(self, page: Page) -> StateSnapshot:
        try:
            raw = await page.evaluate(_SNAPSHOT_JS, MODAL_SELECTORS)
        except Exception as e:
            logger.debug("Snapshot failed: %s", str(e)[:100])
            return StateSnapshot()
        if not raw:
            return StateSnapshot()
        return StateSnapshot(
            element_count=int(raw.get("elements", 0)),
            text_length=int(raw.get("text", 0)),
            modal_count=int(raw.get("modals", 0)),
            input_count=int(raw.get("inputs", 0)),
        )

    async def detect_changes(
        self, page: Page, before_url: str, before: StateSnapshot,
    ) -> list[StateChange]:
        after_url = page.url
        after = await self.snapshot(page)
        changes = diff_states(before_url, before, after_url, after)
        logger.debug("State %s -> %s", before.descriptor, after.descriptor)

        for change in changes:
            if change.kind == ChangeKind.PAGE_EMPTIED:
                logger.warning("Page appears empty after interaction")
            else:
                logger.info("> %s", change.description)
        return changes

    async def wait_for_stable(self, page: Page, timeout_ms: int = 3000):
        """Wait for DOM ready, a short settle delay, then any visible loaders."""
        try:
            await page.wait_for_load_state("domcontentloaded", timeout=timeout_ms)
        except Exception:
            logger.debug("domcontentloaded not reached in %sms, continuing", timeout_ms)

        try:
            await page.wait_for_timeout(SETTLE_DELAY_MS)
            has_loader = await page.evaluate(_HAS_LOADER_JS, LOADER_SELECTORS)
        except Exception:
            return

        if not has_loader:
            return

        logger.debug("Loading indicator detected, waiting...")
        try:
            await page.wait_for_function(_NO_LOADER_JS, arg=LOADER_SELECTORS, timeout=LOADER_TIMEOUT_MS)
        except Exception:
            logger.debug("Loader still present after %sms, continuing", LOADER_TIMEOUT_MS)

    async def is_modal_visible(self, page: Page) -> bool:
        try:
            return bool(await page.evaluate(_MODAL_VISIBLE_JS, MODAL_SELECTORS))
        except Exception:
            return False

    async def try_dismiss_modal(self, page: Page) -> bool:
        """Close whatever modal is open. True when no modal is visible afterwards."""
        try:
            await page.keyboard.press("Escape")
            await page.wait_for_timeout(400)
        except Exception:
            pass

        if not await self.is_modal_visible(page):
            return True

        for name, exact in CLOSE_BUTTON_NAMES:
            button = page.get_by_role("button", name=name, exact=exact).first
            if await self._click_if_visible(page, button):
                if not await self.is_modal_visible(page):
                    logger.debug("Modal dismissed via %r button", name)
                    return True

        for selector in CLOSE_BUTTON_SELECTORS:
            button = page.locator(selector).first
            if await self._click_if_visible(page, button):
                if not await self.is_modal_visible(page):
                    logger.debug("Modal dismissed via %s", selector)
                    return True

        try:
            await page.evaluate(_FORCE_HIDE_JS, MODAL_SELECTORS)
            await page.wait_for_timeout(300)
        except Exception as e:
            logger.debug("Force-hide failed: %s", str(e)[:100])

        dismissed = not await self.is_modal_visible(page)
        if dismissed:
            logger.debug("Modal force-hidden via JS")
        return dismissed

    async def _click_if_visible(self, page: Page, locator) -> bool:
        try:
            if not await locator.is_visible(timeout=300):
                return False
            await locator.click(timeout=2000)
            await page.wait_for_timeout(400)
            return True
        except Exception:
            return False
