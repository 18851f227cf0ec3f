from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable


class ActionKind(str, Enum):
    CLICK = "click"
    INPUT = "input"
    NAVIGATE = "navigate"
    PAGE_LOAD = "page_load"


class Outcome(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    NO_CHANGE = "no_change"


class ErrorKind(str, Enum):
    CSP = "csp"
    JAVASCRIPT = "javascript"
    NETWORK = "network"
    OTHER = "other"


class ChangeKind(str, Enum):
    URL_CHANGED = "url-changed"
    MODAL_APPEARED = "modal-appeared"
    DOM_CHANGED = "dom-changed"
    PAGE_EMPTIED = "page-emptied"


class Severity(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


class IssueCategory(str, Enum):
    LAYOUT = "layout"
    TEXT = "text"
    DARKMODE = "darkmode"
    RESPONSIVE = "responsive"
    I18N = "i18n"
    UX = "ux"
    ERROR = "error"
    INTERACTION = "interaction"
    SECURITY = "security"


ProgressCallback = Callable[[str, dict], None]


@dataclass(frozen=True)
class FrontierEntry:
    url: str
    depth: int


@dataclass(frozen=True)
class BoundingBox:
    x: float
    y: float
    width: float
    height: float


@dataclass(frozen=True)
class DiscoveredElement:
    """An interactive element found on the live page.

    Only valid for the page visit it was discovered in: the DOM may change
    after any action, so the element is re-resolved before each use.
    """

    selector: str       # hint only: "tag" or "tag#id"
    tag: str
    type: str           # type attribute, else role, else tag
    text: str
    href: str | None = None
    is_visible: bool = True
    bounding_box: BoundingBox | None = None
    element_id: str | None = None

    @property
    def label(self) -> str:
        return self.text or self.type or self.tag

    @classmethod
    def from_dict(cls, raw: dict) -> "DiscoveredElement":
        box = raw.get("boundingBox")
        return cls(
            selector=raw.get("selector") or raw.get("tag", ""),
            tag=raw.get("tag", ""),
            type=raw.get("type") or raw.get("tag", ""),
            text=raw.get("text") or "",
            href=raw.get("href") or None,
            is_visible=bool(raw.get("isVisible", True)),
            bounding_box=BoundingBox(box["x"], box["y"], box["width"], box["height"]) if box else None,
            element_id=raw.get("id") or None,
        )


@dataclass(frozen=True)
class StateSnapshot:
    """Quantitative fingerprint of the DOM at one instant."""

    element_count: int = 0
    text_length: int = 0
    modal_count: int = 0
    input_count: int = 0

    @property
    def descriptor(self) -> str:
        return (
            f"el:{self.element_count}|txt:{self.text_length}"
            f"|modal:{self.modal_count}|inputs:{self.input_count}"
        )

    @property
    def is_empty(self) -> bool:
        return self.text_length == 0 and self.element_count < 10


@dataclass(frozen=True)
class StateChange:
    kind: ChangeKind
    description: str
    before_url: str
    after_url: str
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "description": self.description,
            "before_url": self.before_url,
            "after_url": self.after_url,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class InteractionLog:
    action: ActionKind
    target: str
    selector: str
    url: str
    outcome: Outcome
    error: str | None = None
    screenshot_path: str | None = None
    note: str | None = None
    changes: tuple[ChangeKind, ...] = ()
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "action": self.action.value,
            "target": self.target,
            "selector": self.selector,
            "url": self.url,
            "result": self.outcome.value,
            "error": self.error,
            "screenshot_path": self.screenshot_path,
            "note": self.note,
            "changes": [c.value for c in self.changes],
        }


@dataclass(frozen=True)
class ConsoleError:
    kind: ErrorKind
    message: str
    url: str
    trigger_action: str | None = None
    status_code: int | None = None
    stack_trace: str | None = None
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        return {
            "type": self.kind.value,
            "message": self.message,
            "url": self.url,
            "timestamp": self.timestamp.isoformat(),
            "trigger_action": self.trigger_action,
            "status_code": self.status_code,
            "stack_trace": self.stack_trace,
        }


@dataclass(frozen=True)
class Screenshot:
    path: str
    url: str
    viewport: str
    theme: str
    language: str
    state: str
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        return {
            "path": self.path,
            "url": self.url,
            "viewport": self.viewport,
            "theme": self.theme,
            "language": self.language,
            "state": self.state,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class PageCrawlResult:
    url: str
    depth: int
    viewport: str
    screenshots: tuple[Screenshot, ...] = ()
    interactions: tuple[InteractionLog, ...] = ()
    errors: tuple[ConsoleError, ...] = ()
    discovered_links: tuple[str, ...] = ()
    elements_found: int = 0
    elements_clicked: int = 0

    def to_dict(self) -> dict:
        return {
            "url": self.url,
            "depth": self.depth,
            "viewport": self.viewport,
            "screenshots": [s.to_dict() for s in self.screenshots],
            "interactions": [i.to_dict() for i in self.interactions],
            "errors": [e.to_dict() for e in self.errors],
            "discovered_links": list(self.discovered_links),
            "elements_found": self.elements_found,
            "elements_clicked": self.elements_clicked,
        }


@dataclass
class CrawlResult:
    pages: list[PageCrawlResult] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.now)
    completed_at: datetime | None = None

    @property
    def total_screenshots(self) -> int:
        return sum(len(p.screenshots) for p in self.pages)

    @property
    def total_interactions(self) -> int:
        return sum(len(p.interactions) for p in self.pages)

    @property
    def total_errors(self) -> int:
        return sum(len(p.errors) for p in self.pages)

    @property
    def duration_ms(self) -> int:
        end = self.completed_at or datetime.now()
        return int((end - self.started_at).total_seconds() * 1000)


@dataclass
class Issue:
    severity: Severity
    category: IssueCategory
    title: str
    description: str = ""
    location: str = "unknown"
    fix_suggestion: str = ""
    screenshot_path: str = ""
    id: str = ""

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "severity": self.severity.value,
            "category": self.category.value,
            "title": self.title,
            "description": self.description,
            "location": self.location,
            "fix_suggestion": self.fix_suggestion,
            "screenshot_path": self.screenshot_path,
        }


@dataclass
class ElementAssessment:
    element: str
    status: str
    note: str = ""


@dataclass
class ConsoleAnnotation:
    original_message: str
    kind: ErrorKind
    severity: Severity
    root_cause: str = ""
    fix_suggestion: str = ""


@dataclass
class VisionResult:
    issues: list[Issue] = field(default_factory=list)
    elements: list[ElementAssessment] = field(default_factory=list)
    console_annotations: list[ConsoleAnnotation] = field(default_factory=list)


@dataclass
class AnalysisResult:
    issues: list[Issue] = field(default_factory=list)
    screenshots_analyzed: int = 0
    errors_analyzed: int = 0
    console_annotations: list[ConsoleAnnotation] = field(default_factory=list)


@dataclass
class Report:
    url: str
    config: dict
    crawl: CrawlResult
    analysis: AnalysisResult
    scan_date: datetime = field(default_factory=datetime.now)
    duration_ms: int = 0

    @property
    def interactions(self) -> list[InteractionLog]:
        return [i for p in self.crawl.pages for i in p.interactions]

    @property
    def console_errors(self) -> list[ConsoleError]:
        return [e for p in self.crawl.pages for e in p.errors]

    @property
    def screenshots(self) -> list[Screenshot]:
        return [s for p in self.crawl.pages for s in p.screenshots]

    def summary(self) -> dict:
        issues = self.analysis.issues
        return {
            "pages_scanned": len(self.crawl.pages),
            "elements_clicked": sum(1 for i in self.interactions if i.action == ActionKind.CLICK),
            "screenshots_taken": self.crawl.total_screenshots,
            "issues_found": len(issues),
            "critical": sum(1 for i in issues if i.severity == Severity.CRITICAL),
            "warning": sum(1 for i in issues if i.severity == Severity.WARNING),
            "info": sum(1 for i in issues if i.severity == Severity.INFO),
            "console_errors": len(self.console_errors),
        }

    def to_dict(self) -> dict:
        return {
            "url": self.url,
            "scan_date": self.scan_date.isoformat(),
            "duration_ms": self.duration_ms,
            "config": self.config,
            "summary": self.summary(),
            "issues": [i.to_dict() for i in self.analysis.issues],
            "console_errors": [e.to_dict() for e in self.console_errors],
            "interaction_log": [i.to_dict() for i in self.interactions],
            "screenshots": [s.to_dict() for s in self.screenshots],
            "pages": [p.to_dict() for p in self.crawl.pages],
        }
