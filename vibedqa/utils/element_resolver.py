"""Re-locate a previously discovered element in the live DOM.

The page may have re-rendered between discovery and use, so a stored
element is found again through an ordered chain of strategies. The first
strategy that yields a locator wins; None means every strategy failed and
the caller should skip the element.
"""

from __future__ import annotations

import logging
import re
from typing import Awaitable, Callable

from playwright.async_api import Locator, Page

from vibedqa.models.types import DiscoveredElement


logger = logging.getLogger(__name__)


ROLE_MAP = {
    "button": "button",
    "submit": "button",
    "a": "link",
    "link": "link",
    "tab": "tab",
    "menuitem": "menuitem",
    "option": "option",
}

BOX_TOLERANCE_PX = 15
MAX_TEXT_LEN = 60
MAX_SCAN_CANDIDATES = 200
# Discovery collapses whitespace and truncates text to this length.
DISCOVERED_TEXT_LEN = 80

Resolver = Callable[[Page, DiscoveredElement], Awaitable["Locator | None"]]


def role_for(element: DiscoveredElement) -> str | None:
    return ROLE_MAP.get(element.type) or ROLE_MAP.get(element.tag)


def normalize_text(text: str) -> str:
    return " ".join(text.split())[:DISCOVERED_TEXT_LEN].strip()


def _usable_text(element: DiscoveredElement, min_len: int = 1) -> str | None:
    text = (element.text or "").strip()
    if min_len <= len(text) < MAX_TEXT_LEN:
        return text
    return None


async def by_id(page: Page, element: DiscoveredElement) -> Locator | None:
    if not element.element_id:
        return None
    loc = page.locator(f"[id={_css_string(element.element_id)}]")
    if await loc.count() > 0:
        return loc.first
    return None


async def by_role_and_text(page: Page, element: DiscoveredElement) -> Locator | None:
    text = _usable_text(element)
    role = role_for(element)
    if not text or not role:
        return None
    exact = page.get_by_role(role, name=text, exact=True)
    if await exact.count() > 0:
        return exact.first
    fuzzy = page.get_by_role(role, name=text, exact=False)
    if await fuzzy.count() > 0:
        return fuzzy.first
    return None


async def by_tag_and_text(page: Page, element: DiscoveredElement) -> Locator | None:
    text = _usable_text(element, min_len=2)
    if not text:
        return None
    words = r"\s+".join(re.escape(word) for word in text.split())
    pattern = re.compile(rf"^\s*{words}\s*$")
    loc = page.locator(element.tag).filter(has_text=pattern)
    if await loc.count() > 0:
        return loc.first
    return None


async def by_bounding_box(page: Page, element: DiscoveredElement) -> Locator | None:
    box = element.bounding_box
    if not box:
        return None
    candidates = await page.locator(f"{element.tag}:visible").all()
    for candidate in candidates[:MAX_SCAN_CANDIDATES]:
        live = await candidate.bounding_box()
        if (
            live
            and abs(live["x"] - box.x) < BOX_TOLERANCE_PX
            and abs(live["y"] - box.y) < BOX_TOLERANCE_PX
        ):
            return candidate
    return None


async def by_visible_text(page: Page, element: DiscoveredElement) -> Locator | None:
    wanted = (element.text or "").strip()
    if not wanted:
        return None
    candidates = await page.locator(f"{element.tag}:visible").all()
    for candidate in candidates[:MAX_SCAN_CANDIDATES]:
        text = await candidate.text_content()
        if text and normalize_text(text) == wanted:
            return candidate
    return None


STRATEGIES: list[tuple[str, Resolver]] = [
    ("id", by_id),
    ("role", by_role_and_text),
    ("tag_text", by_tag_and_text),
    ("bounding_box", by_bounding_box),
    ("visible_text", by_visible_text),
]


async def resolve_locator(
    page: Page,
    element: DiscoveredElement,
    strategies: list[tuple[str, Resolver]] | None = None,
) -> Locator | None:
    """Walk the strategy chain and return the first live match."""
    for name, strategy in strategies or STRATEGIES:
        try:
            loc = await strategy(page, element)
        except Exception as e:
            logger.debug("Resolver %s failed for %r: %s", name, element.label, str(e)[:80])
            continue
        if loc is not None:
            logger.debug("Resolved %r via %s", element.label, name)
            return loc
    return None


def _css_string(value: str) -> str:
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'
