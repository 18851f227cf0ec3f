"""Crawl, analyze, report. The single entry point used by the CLI and the API."""

from __future__ import annotations

import logging
import time

from vibedqa.config import CrawlConfig
from vibedqa.core.ai_engine import GeminiEngine
from vibedqa.core.analyzer import analyze
from vibedqa.core.crawler import crawl
from vibedqa.core.report import write_report
from vibedqa.models.types import ProgressCallback, Report
from vibedqa.utils.file_manager import FileManager


logger = logging.getLogger(__name__)


async def run_pipeline(
    config: CrawlConfig,
    on_progress: ProgressCallback | None = None,
    engine: GeminiEngine | None = None,
) -> tuple[Report, str]:
    """Run a full scan. Returns the report and the path of report.html."""
    started = time.monotonic()
    logger.info("Target: %s", config.url)
    logger.info(
        "Settings: depth=%s, click=%s, input=%s, nav=%s",
        config.max_depth, config.enable_click, config.enable_input, config.enable_navigation,
    )

    file_manager = FileManager(config.output_dir, config.url)
    file_manager.init()

    logger.info("Phase 1: Autonomous crawling...")
    crawl_result = await crawl(config, file_manager, on_progress)
    logger.info(
        "Crawl complete. %s pages, %s interactions, %s screenshots, %s errors collected.",
        len(crawl_result.pages), crawl_result.total_interactions,
        crawl_result.total_screenshots, crawl_result.total_errors,
    )

    logger.info("Phase 2: AI analysis...")
    analysis = await analyze(crawl_result, engine or GeminiEngine(config.ai_model), on_progress)
    logger.info("Analysis complete. %s issues found.", len(analysis.issues))

    logger.info("Phase 3: Generating report...")
    report = Report(
        url=config.url,
        config=config.to_dict(),
        crawl=crawl_result,
        analysis=analysis,
        duration_ms=int((time.monotonic() - started) * 1000),
    )
    report_path = write_report(report, file_manager)

    if on_progress:
        try:
            on_progress("scan_complete", {"report_path": report_path, **report.summary()})
        except Exception:
            pass

    return report, report_path
