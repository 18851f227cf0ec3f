"""Render a finished scan: rich terminal summary, standalone HTML, raw JSON."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from jinja2 import Environment, FileSystemLoader
from rich.console import Console
from rich.markup import escape as escape_markup
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from vibedqa.models.types import Report, Severity
from vibedqa.utils.file_manager import FileManager


logger = logging.getLogger(__name__)


SEVERITY_COLORS = {"critical": "red bold", "warning": "yellow", "info": "cyan"}


def print_report(report: Report, console: Console | None = None, report_path: str | None = None):
    """Print the scan summary using Rich."""
    console = console or Console()
    summary = report.summary()

    header = Text()
    header.append("\n VibedQA Scan Report\n", style="bold")
    header.append(f" {report.url}\n", style="dim")
    header.append(f" {summary['pages_scanned']} pages scanned in {report.duration_ms / 1000:.1f}s\n", style="dim")
    console.print(Panel(header, border_style="magenta"))

    table = Table(show_header=False, padding=(0, 1), box=None)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Pages scanned", str(summary["pages_scanned"]))
    table.add_row("Elements clicked", str(summary["elements_clicked"]))
    table.add_row("Screenshots", str(summary["screenshots_taken"]))
    table.add_row("Issues found", str(summary["issues_found"]))
    table.add_row(Text("  Critical", style=SEVERITY_COLORS["critical"]), str(summary["critical"]))
    table.add_row(Text("  Warning", style=SEVERITY_COLORS["warning"]), str(summary["warning"]))
    table.add_row(Text("  Info", style=SEVERITY_COLORS["info"]), str(summary["info"]))
    table.add_row("Console errors", str(summary["console_errors"]))
    console.print(table)
    console.print()

    if report.analysis.issues:
        issues = Table(show_header=True, header_style="bold", padding=(0, 1))
        issues.add_column("Sev", width=8)
        issues.add_column("Category", width=12)
        issues.add_column("Issue", min_width=40)
        issues.add_column("Location", max_width=35)
        for issue in report.analysis.issues[:25]:
            issues.add_row(
                Text(issue.severity.value, style=SEVERITY_COLORS.get(issue.severity.value, "white")),
                issue.category.value,
                issue.title[:60],
                _short(issue.location, 35),
            )
        console.print(issues)
        console.print()

    if report.console_errors:
        console.print(f"  [dim]Console errors: {len(report.console_errors)}[/dim]")
        for err in report.console_errors[:5]:
            console.print(f"    [dim]- {escape_markup(f'[{err.kind.value}] {err.message[:120]}')}[/dim]")
        console.print()

    if report_path:
        console.print(f"  Full report: [bold]{report_path}[/bold]\n")


def _short(url: str, width: int) -> str:
    short = url.replace("https://", "").replace("http://", "")
    return short if len(short) <= width else short[: width - 3] + "..."


TEMPLATE_DIR = Path(__file__).parent.parent / "templates"

_env = Environment(loader=FileSystemLoader(str(TEMPLATE_DIR)), autoescape=True)

ISSUE_SECTIONS = (
    (Severity.CRITICAL, "Critical Issues"),
    (Severity.WARNING, "Warnings"),
    (Severity.INFO, "Info / Suggestions"),
)


def generate_html_report(report: Report, base_dir: str | None = None) -> str:
    """Standalone HTML. Screenshot paths are made relative to `base_dir` when given."""
    summary = report.summary()

    def screenshot_src(path: str) -> str:
        return os.path.relpath(path, base_dir) if base_dir else path

    issue_sections = []
    for severity, heading in ISSUE_SECTIONS:
        issues = [i for i in report.analysis.issues if i.severity == severity]
        if issues:
            issue_sections.append((heading, issues))

    stats = (
        ("pages", summary["pages_scanned"], "Pages"),
        ("", summary["elements_clicked"], "Clicks"),
        ("", summary["screenshots_taken"], "Screenshots"),
        ("critical", summary["critical"], "Critical"),
        ("warning", summary["warning"], "Warnings"),
        ("info", summary["info"], "Info"),
    )

    template = _env.get_template("report.html.j2")
    return template.render(
        report=report,
        stats=stats,
        issue_sections=issue_sections,
        console_errors=report.console_errors,
        interactions=report.interactions,
        screenshot_src=screenshot_src,
    )


def write_report(report: Report, file_manager: FileManager) -> str:
    """Write report.html and report-data.json. Returns the HTML path."""
    html = generate_html_report(report, base_dir=str(file_manager.base_dir))
    path = file_manager.write_report(html)
    file_manager.write_json("report-data.json", report.to_dict())
    logger.info("HTML report saved: %s", path)
    return str(path)
