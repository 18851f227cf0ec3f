#!/usr/bin/env python3
"""
VibedQA CLI Scanner
Usage: python scan.py https://example.com [--depth 3] [--viewport desktop,mobile] [--headful]
"""

import argparse
import asyncio
import json
import logging
import sys

from rich.console import Console

from vibedqa.config import DEFAULT_AI_MODEL, DEFAULT_OUTPUT_DIR, ConfigError, CrawlConfig
from vibedqa.core.pipeline import run_pipeline
from vibedqa.core.report import print_report
from vibedqa.logging_config import setup_logging


logger = logging.getLogger("vibedqa.cli")
console = Console()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vibedqa",
        description="VibedQA - autonomous crawl-and-interact QA for web apps",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="Examples:\n"
               "  python scan.py https://example.com\n"
               "  python scan.py https://myapp.com --depth 1 --viewport desktop,mobile\n"
               "  python scan.py localhost:3000 --no-navigate --max-clicks 20",
    )
    parser.add_argument("url", help="Website URL to scan")
    parser.add_argument("--depth", type=int, default=3, help="Max link depth to explore (default: 3)")
    parser.add_argument("--viewport", default="desktop", help="Viewports to test, comma separated (default: desktop)")
    parser.add_argument("--lang", default="auto", help="Languages, comma separated (default: auto)")
    parser.add_argument("--theme", default="light", help="Themes, comma separated (default: light)")
    parser.add_argument("--max-clicks", type=int, default=50, help="Max clicks per page (default: 50)")
    parser.add_argument("--timeout", type=int, default=30000, help="Navigation timeout in ms (default: 30000)")
    parser.add_argument("--no-click", action="store_true", help="Disable click exploration")
    parser.add_argument("--no-input", action="store_true", help="Disable form filling")
    parser.add_argument("--no-navigate", action="store_true", help="Disable link traversal")
    parser.add_argument("--output", default=DEFAULT_OUTPUT_DIR, help=f"Report directory (default: {DEFAULT_OUTPUT_DIR})")
    parser.add_argument("--ai-model", default=DEFAULT_AI_MODEL, help=f"Gemini model (default: {DEFAULT_AI_MODEL})")
    parser.add_argument("--chromium-path", default=None, help="Chromium executable (default: auto-detect)")
    parser.add_argument("--headful", action="store_true", help="Run browser visibly")
    parser.add_argument("--json", action="store_true", help="Print the report as JSON instead of a table")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    parser.add_argument("--log-file", default=None, help="Also write logs to this file")
    return parser


def config_from_args(args: argparse.Namespace) -> CrawlConfig:
    return CrawlConfig.from_options(
        args.url,
        viewports=args.viewport,
        languages=args.lang,
        themes=args.theme,
        max_depth=args.depth,
        max_clicks_per_page=args.max_clicks,
        timeout_ms=args.timeout,
        enable_click=not args.no_click,
        enable_input=not args.no_input,
        enable_navigation=not args.no_navigate,
        output_dir=args.output,
        ai_model=args.ai_model,
        verbose=args.verbose,
        headless=not args.headful,
        chromium_path=args.chromium_path,
    )


def _cli_progress(event_type: str, data: dict):
    if event_type == "viewport_start":
        console.print(f"\n   [bold]{data.get('name', '')}[/bold] {data.get('width')}x{data.get('height')}")
    elif event_type == "page_complete":
        console.print(
            f"   [dim]done[/dim] {data.get('url', '')[:70]}  "
            f"{data.get('interactions', 0)} actions, {data.get('errors', 0)} errors, "
            f"{data.get('screenshots', 0)} shots"
        )
    elif event_type == "scan_complete":
        console.print(f"\n   Done: {data.get('pages_scanned', 0)} pages, {data.get('issues_found', 0)} issues\n")


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(verbose=args.verbose, log_file=args.log_file)

    try:
        config = config_from_args(args)
    except ConfigError as e:
        logger.error("Invalid configuration: %s", e)
        return 2

    if not args.json:
        console.print(f"\n  VibedQA scanning [bold]{config.url}[/bold]")
        console.print(
            f"  Depth: {config.max_depth} | Viewports: {', '.join(v.name for v in config.viewports)}"
            f" | Mode: {'headless' if config.headless else 'headful'}\n"
        )

    try:
        report, report_path = asyncio.run(
            run_pipeline(config, on_progress=None if args.json else _cli_progress)
        )
    except KeyboardInterrupt:
        logger.error("Scan interrupted")
        return 130
    except Exception as e:
        logger.exception("Fatal error during scan: %s", e)
        return 1

    if args.json:
        print(json.dumps(report.to_dict(), indent=2, default=str))
    else:
        print_report(report, console, report_path)
    return 0


if __name__ == "__main__":
    sys.exit(main())
