"""Analysis phase: screenshots through the vision engine, runtime errors into issues."""

from __future__ import annotations

import asyncio
import logging
import uuid

from vibedqa.core.ai_engine import GeminiEngine
from vibedqa.models.types import (
    AnalysisResult, ConsoleError, CrawlResult, ErrorKind, Issue, IssueCategory,
    ProgressCallback, Screenshot, Severity,
)


logger = logging.getLogger(__name__)


AI_CALL_DELAY_S = 1.0
MAX_SCREENSHOTS_TO_ANALYZE = 30
MAX_CONSOLE_LINES = 20

SEVERITY_ORDER = {Severity.CRITICAL: 0, Severity.WARNING: 1, Severity.INFO: 2}


def unique_screenshots(crawl_result: CrawlResult, limit: int = MAX_SCREENSHOTS_TO_ANALYZE) -> list[Screenshot]:
    seen: set[str] = set()
    unique = []
    for page in crawl_result.pages:
        for shot in page.screenshots:
            if shot.path in seen:
                continue
            seen.add(shot.path)
            unique.append(shot)
    return unique[:limit]


def errors_to_issues(errors: list[ConsoleError]) -> list[Issue]:
    """JavaScript errors become critical issues, HTTP 5xx become warnings."""
    issues = []
    for error in errors:
        is_js = error.kind == ErrorKind.JAVASCRIPT
        is_5xx = error.kind == ErrorKind.NETWORK and (error.status_code or 0) >= 500
        if not (is_js or is_5xx):
            continue
        issues.append(Issue(
            id=f"console-{uuid.uuid4().hex[:10]}",
            severity=Severity.CRITICAL if is_js else Severity.WARNING,
            category=IssueCategory.ERROR,
            title="JavaScript Error" if is_js else f"HTTP {error.status_code} Error",
            description=error.message[:200],
            location=f"Page: {error.url}",
            fix_suggestion=(
                "Check the stack trace and add proper error handling or null checks."
                if is_js else
                "Verify the server endpoint is running and responding correctly."
            ),
        ))
    return issues


def sort_issues(issues: list[Issue]) -> list[Issue]:
    return sorted(issues, key=lambda i: SEVERITY_ORDER.get(i.severity, 2))


async def analyze(
    crawl_result: CrawlResult,
    engine: GeminiEngine | None = None,
    on_progress: ProgressCallback | None = None,
    delay_s: float = AI_CALL_DELAY_S,
) -> AnalysisResult:
    engine = engine or GeminiEngine()
    result = AnalysisResult()

    if not engine.available:
        logger.warning("GEMINI_API_KEY not set, skipping AI analysis")
        logger.warning("Export GEMINI_API_KEY=your_key to enable screenshot analysis")
    else:
        await _analyze_screenshots(crawl_result, engine, result, on_progress, delay_s)

    errors = [e for p in crawl_result.pages for e in p.errors]
    result.errors_analyzed = len(errors)
    result.issues.extend(errors_to_issues(errors))
    result.issues = sort_issues(result.issues)
    return result


async def _analyze_screenshots(
    crawl_result: CrawlResult,
    engine: GeminiEngine,
    result: AnalysisResult,
    on_progress: ProgressCallback | None,
    delay_s: float,
):
    screenshots = unique_screenshots(crawl_result)
    console_by_page = {
        (p.url, p.viewport): [f"[{e.kind.value}] {e.message}" for e in p.errors][:MAX_CONSOLE_LINES]
        for p in crawl_result.pages
    }
    page_of_shot = {
        s.path: (p.url, p.viewport) for p in crawl_result.pages for s in p.screenshots
    }

    logger.info("Analyzing %s screenshots with Gemini Vision...", len(screenshots))

    for index, shot in enumerate(screenshots, start=1):
        context = f"URL: {shot.url}, State: {shot.state}, Viewport: {shot.viewport}"
        logger.debug("[%s/%s] Analyzing: %s (%s)", index, len(screenshots), shot.state, shot.path)

        logs = console_by_page.get(page_of_shot.get(shot.path), [])
        vision = await engine.analyze_file(shot.path, context, console_logs=logs or None)
        for issue in vision.issues:
            issue.screenshot_path = shot.path

        result.issues.extend(vision.issues)
        result.console_annotations.extend(vision.console_annotations)
        result.screenshots_analyzed += 1
        logger.info("  -> %s issue(s) found [%s/%s]", len(vision.issues), index, len(screenshots))

        if on_progress:
            try:
                on_progress("screenshot_analyzed", {
                    "path": shot.path, "issues": len(vision.issues),
                    "index": index, "total": len(screenshots),
                })
            except Exception:
                pass

        if index < len(screenshots):
            await asyncio.sleep(delay_s)
