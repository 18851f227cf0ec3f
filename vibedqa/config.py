"""Crawl configuration, defaults and browser discovery.

A CrawlConfig is built once (from CLI flags or an API request), validated,
and then passed read-only to every component for the whole crawl.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from urllib.parse import urlparse


class ConfigError(ValueError):
    """Raised for configuration that makes a crawl impossible to start."""


@dataclass(frozen=True)
class Viewport:
    name: str
    width: int
    height: int

    def to_dict(self) -> dict:
        return {"name": self.name, "width": self.width, "height": self.height}


DEFAULT_VIEWPORTS: dict[str, Viewport] = {
    "desktop": Viewport("desktop", 1280, 720),
    "mobile": Viewport("mobile", 390, 844),
}

USER_AGENT = "VibedQA/0.1.0 (Autonomous QA Bot)"

BROWSER_ARGS = ["--no-sandbox", "--disable-setuid-sandbox", "--disable-dev-shm-usage"]

DEFAULT_OUTPUT_DIR = "./vibedqa-reports"
DEFAULT_AI_MODEL = "gemini-2.0-flash"

CLICKABLE_SELECTORS = ", ".join([
    "button",
    "a[href]",
    'input[type="submit"]',
    'input[type="button"]',
    "select",
    '[role="button"]',
    '[role="tab"]',
    '[role="menuitem"]',
    '[role="option"]',
    '[role="link"]',
    "[onclick]",
])

INPUT_SELECTORS = ", ".join([
    'input[type="text"]',
    'input[type="email"]',
    'input[type="password"]',
    'input[type="number"]',
    'input[type="url"]',
    'input[type="tel"]',
    'input[type="search"]',
    "input:not([type])",
    "textarea",
    "select",
])

_CHROMIUM_CANDIDATES = [
    "/usr/bin/chromium-browser",
    "/usr/bin/chromium",
    "/usr/bin/google-chrome-stable",
    "/usr/bin/google-chrome",
]


@dataclass(frozen=True)
class CrawlConfig:
    """Everything a crawl needs to know. Immutable for the duration of a crawl."""

    url: str
    viewports: tuple[Viewport, ...] = (DEFAULT_VIEWPORTS["desktop"],)
    languages: tuple[str, ...] = ("auto",)
    themes: tuple[str, ...] = ("light",)
    max_depth: int = 3
    max_clicks_per_page: int = 50
    timeout_ms: int = 30000
    enable_click: bool = True
    enable_input: bool = True
    enable_navigation: bool = True
    output_dir: str = DEFAULT_OUTPUT_DIR
    ai_model: str = DEFAULT_AI_MODEL
    verbose: bool = False
    headless: bool = True
    chromium_path: str | None = None

    def __post_init__(self):
        parsed = urlparse(self.url)
        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            raise ConfigError(f"Invalid target URL: {self.url!r}")
        if self.max_depth < 0:
            raise ConfigError("max_depth must be >= 0")
        if self.max_clicks_per_page < 0:
            raise ConfigError("max_clicks_per_page must be >= 0")
        if self.timeout_ms <= 0:
            raise ConfigError("timeout_ms must be > 0")
        if not self.viewports:
            raise ConfigError("at least one viewport is required")

    @property
    def hostname(self) -> str:
        return (urlparse(self.url).hostname or "").lower()

    @property
    def language(self) -> str:
        return self.languages[0] if self.languages else "auto"

    @property
    def theme(self) -> str:
        return self.themes[0] if self.themes else "light"

    @classmethod
    def from_options(
        cls,
        url: str,
        viewports: str | list[str] = "desktop",
        languages: str | list[str] = "auto",
        themes: str | list[str] = "light",
        **kwargs,
    ) -> "CrawlConfig":
        """Build a config from CLI/API primitives (comma lists, bare hosts)."""
        url = url.strip()
        if url and "://" not in url:
            url = f"https://{url}"
        return cls(
            url=url,
            viewports=tuple(resolve_viewport(name) for name in _split(viewports)),
            languages=tuple(_split(languages)) or ("auto",),
            themes=tuple(_split(themes)) or ("light",),
            **kwargs,
        )

    def to_dict(self) -> dict:
        return {
            "url": self.url,
            "viewports": [v.to_dict() for v in self.viewports],
            "languages": list(self.languages),
            "themes": list(self.themes),
            "max_depth": self.max_depth,
            "max_clicks_per_page": self.max_clicks_per_page,
            "timeout_ms": self.timeout_ms,
            "enable_click": self.enable_click,
            "enable_input": self.enable_input,
            "enable_navigation": self.enable_navigation,
            "output_dir": self.output_dir,
            "ai_model": self.ai_model,
        }


def resolve_viewport(name: str) -> Viewport:
    return DEFAULT_VIEWPORTS.get(name.strip().lower(), DEFAULT_VIEWPORTS["desktop"])


def detect_chromium_path() -> str | None:
    """Find a Chromium binary. None means Playwright's bundled browser."""
    candidates = [os.environ.get("CHROMIUM_PATH"), *_CHROMIUM_CANDIDATES]
    for path in candidates:
        if path and os.path.exists(path):
            return path
    return None


def _split(value: str | list[str]) -> list[str]:
    items = value.split(",") if isinstance(value, str) else value
    return [v.strip() for v in items if v and v.strip()]
