"""Per-viewport crawl loop.

For each configured viewport: open an isolated context, then pull URLs from
the Explorer breadth-first and visit each one fully (load, capture, link
discovery, interaction) before dequeuing the next.
"""

from __future__ import annotations

import logging
from datetime import datetime
from urllib.parse import urlparse

from playwright.async_api import BrowserContext, async_playwright

from vibedqa.config import BROWSER_ARGS, USER_AGENT, CrawlConfig, Viewport, detect_chromium_path
from vibedqa.core.explorer import Explorer
from vibedqa.core.interactor import Interactor
from vibedqa.core.screenshotter import Screenshotter
from vibedqa.models.types import (
    ActionKind, ConsoleError, CrawlResult, ErrorKind, PageCrawlResult, ProgressCallback,
)
from vibedqa.utils.error_collector import ErrorCollector
from vibedqa.utils.file_manager import FileManager
from vibedqa.utils.state_detector import StateDetector


logger = logging.getLogger(__name__)


_COLLECT_LINKS_JS = """() => Array.from(document.querySelectorAll('a[href]'))
    .map(a => a.href)
    .filter(Boolean)"""


def initial_state_name(url: str) -> str:
    """`initial_about_team` for /about/team, `initial_root` for /."""
    path = urlparse(url).path
    if not path or path == "/":
        return "initial_root"
    return "initial" + path.replace("/", "_")


async def crawl(
    config: CrawlConfig,
    file_manager: FileManager,
    on_progress: ProgressCallback | None = None,
) -> CrawlResult:
    result = CrawlResult(started_at=datetime.now())
    emit = _emitter(on_progress)

    launch_options: dict = {"headless": config.headless, "args": BROWSER_ARGS}
    chromium_path = config.chromium_path or detect_chromium_path()
    if chromium_path:
        launch_options["executable_path"] = chromium_path
        logger.debug("Using Chromium: %s", chromium_path)

    async with async_playwright() as pw:
        browser = await pw.chromium.launch(**launch_options)
        try:
            for viewport in config.viewports:
                logger.info("Viewport: %s (%sx%s)", viewport.name, viewport.width, viewport.height)
                emit("viewport_start", viewport.to_dict())

                context = await browser.new_context(**_context_options(config, viewport))
                try:
                    result.pages.extend(
                        await crawl_viewport(context, config, viewport, file_manager, on_progress)
                    )
                finally:
                    await context.close()
        finally:
            await browser.close()

    result.completed_at = datetime.now()
    return result


async def crawl_viewport(
    context: BrowserContext,
    config: CrawlConfig,
    viewport: Viewport,
    file_manager: FileManager,
    on_progress: ProgressCallback | None = None,
) -> list[PageCrawlResult]:
    """BFS over one viewport. Components live exactly as long as this call."""
    explorer = Explorer(config)
    explorer.init(config.url)
    screenshotter = Screenshotter(file_manager, viewport.name, config.theme, config.language)
    state_detector = StateDetector()
    error_collector = ErrorCollector()

    pages = []
    while explorer.has_more():
        entry = explorer.next()
        pages.append(await crawl_page(
            context, entry.url, entry.depth, config, viewport.name,
            explorer, screenshotter, state_detector, error_collector, on_progress,
        ))
    logger.info("Viewport %s done: %s pages, %s URLs seen", viewport.name, len(pages), explorer.visited_count)
    return pages


async def crawl_page(
    context: BrowserContext,
    url: str,
    depth: int,
    config: CrawlConfig,
    viewport_name: str,
    explorer: Explorer,
    screenshotter: Screenshotter,
    state_detector: StateDetector,
    error_collector: ErrorCollector,
    on_progress: ProgressCallback | None = None,
) -> PageCrawlResult:
    """Visit one URL. A failed load becomes a zero-content result, never an exception."""
    emit = _emitter(on_progress)
    logger.info("NAVIGATING to %s", url)
    logger.debug("Depth: %s/%s", depth, config.max_depth)
    emit("visiting_page", {"url": url, "depth": depth, "viewport": viewport_name})

    page = await context.new_page()
    shots_before = screenshotter.count
    try:
        error_collector.clear()
        error_collector.attach(page)
        error_collector.set_current_action(ActionKind.PAGE_LOAD.value)

        await page.goto(url, timeout=config.timeout_ms, wait_until="domcontentloaded")
        await state_detector.wait_for_stable(page)

        await screenshotter.capture(page, initial_state_name(url))

        try:
            hrefs = await page.evaluate(_COLLECT_LINKS_JS)
        except Exception as e:
            logger.debug("Link collection failed on %s: %s", url, str(e)[:100])
            hrefs = []
        discovered = explorer.discover_links(hrefs, depth, page.url)
        if discovered:
            emit("links_discovered", {"url": url, "count": len(discovered), "links": discovered})

        interactor = Interactor(config, screenshotter, state_detector, error_collector, on_progress)
        interactions = await interactor.interact_with_page(page)

        result = PageCrawlResult(
            url=url,
            depth=depth,
            viewport=viewport_name,
            screenshots=tuple(screenshotter.since(shots_before)),
            interactions=tuple(interactions),
            errors=error_collector.get_errors(),
            discovered_links=tuple(discovered),
            elements_found=interactor.elements_found,
            elements_clicked=sum(1 for i in interactions if i.action == ActionKind.CLICK),
        )

    except Exception as e:
        msg = str(e)
        logger.error("Failed to crawl %s: %s", url, msg[:100])
        result = PageCrawlResult(
            url=url,
            depth=depth,
            viewport=viewport_name,
            errors=(ConsoleError(kind=ErrorKind.OTHER, message=f"Page load failed: {msg}", url=url),),
        )
    finally:
        try:
            await page.close()
        except Exception:
            pass

    emit("page_complete", {
        "url": url,
        "depth": depth,
        "viewport": viewport_name,
        "interactions": len(result.interactions),
        "errors": len(result.errors),
        "screenshots": len(result.screenshots),
    })
    return result


def _context_options(config: CrawlConfig, viewport: Viewport) -> dict:
    options = {
        "viewport": {"width": viewport.width, "height": viewport.height},
        "user_agent": USER_AGENT,
        "ignore_https_errors": True,
        "color_scheme": "dark" if config.theme == "dark" else "light",
    }
    if config.language and config.language != "auto":
        options["locale"] = config.language
    return options


def _emitter(on_progress: ProgressCallback | None):
    def emit(event_type: str, data: dict):
        if not on_progress:
            return
        try:
            on_progress(event_type, data)
        except Exception:
            pass
    return emit
