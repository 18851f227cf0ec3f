"""Passive runtime-error capture for one page visit.

Listens to console messages, uncaught exceptions, HTTP responses and failed
requests. Every entry is tagged with the action that was running when it
arrived, so a report can say which click broke the page.
"""

from __future__ import annotations

import logging
from urllib.parse import urlparse

from playwright.async_api import Page

from vibedqa.models.types import ConsoleError, ErrorKind


logger = logging.getLogger(__name__)


# Infrastructure chatter that would otherwise drown real application errors.
NOISE_URL_PATTERNS = (
    "/cdn-cgi/rum",
    "/cdn-cgi/trace",
    "/cdn-cgi/challenge-platform",
    "/cdn-cgi/beacon",
    "fonts.googleapis.com",
    "fonts.gstatic.com",
    "favicon.ico",
)

NOISE_EXTENSIONS = (".woff", ".woff2", ".ttf", ".otf", ".eot")

_CSP_KEYWORDS = ("content security policy", "csp")
_JS_KEYWORDS = ("typeerror", "referenceerror", "syntaxerror", "rangeerror")
_NETWORK_KEYWORDS = ("404", "500", "cors", "net::", "failed to fetch")


def classify_error(message: str) -> ErrorKind:
    lower = message.lower()
    if any(k in lower for k in _CSP_KEYWORDS):
        return ErrorKind.CSP
    if any(k in lower for k in _JS_KEYWORDS):
        return ErrorKind.JAVASCRIPT
    if any(k in lower for k in _NETWORK_KEYWORDS):
        return ErrorKind.NETWORK
    return ErrorKind.OTHER


def is_noise_url(url: str) -> bool:
    if not url:
        return False
    lower = url.lower()
    if any(p in lower for p in NOISE_URL_PATTERNS):
        return True
    path = urlparse(lower).path
    return path.endswith(NOISE_EXTENSIONS)


class ErrorCollector:
    """Append-only, page-scoped buffer of runtime errors."""

    def __init__(self):
        self._errors: list[ConsoleError] = []
        self._current_action = ""

    def set_current_action(self, action: str):
        self._current_action = action

    def attach(self, page: Page):
        """Subscribe to the page's event streams. Call once per page."""

        def on_console(msg):
            if msg.type != "error":
                return
            source = (msg.location or {}).get("url", "")
            if is_noise_url(source) and msg.text.lower().startswith("failed to load resource"):
                return
            self.record_console(msg.text, page.url)

        def on_page_error(error):
            self.record_exception(
                getattr(error, "message", None) or str(error),
                page.url,
                getattr(error, "stack", None),
            )

        def on_response(response):
            if response.status >= 400:
                self.record_response(
                    response.request.method, response.url, response.status, page.url,
                )

        def on_request_failed(request):
            failure = request.failure
            if failure:
                self.record_request_failed(request.url, failure, page.url)

        page.on("console", on_console)
        page.on("pageerror", on_page_error)
        page.on("response", on_response)
        page.on("requestfailed", on_request_failed)

    def record_console(self, text: str, page_url: str):
        self._append(ConsoleError(
            kind=classify_error(text),
            message=text,
            url=page_url,
            trigger_action=self._current_action or None,
        ))
        logger.error("CONSOLE ERROR: %s", text[:120])

    def record_exception(self, message: str, page_url: str, stack: str | None = None):
        self._append(ConsoleError(
            kind=ErrorKind.JAVASCRIPT,
            message=message,
            url=page_url,
            trigger_action=self._current_action or None,
            stack_trace=stack,
        ))
        logger.error("JS CRASH: %s", message[:120])

    def record_response(self, method: str, request_url: str, status: int, page_url: str):
        if is_noise_url(request_url):
            logger.debug("Ignoring noise response %s %s", status, request_url)
            return
        self._append(ConsoleError(
            kind=ErrorKind.NETWORK,
            message=f"{method} {request_url} {status}",
            url=page_url,
            trigger_action=self._current_action or None,
            status_code=status,
        ))
        if status >= 500:
            logger.error("HTTP %s: %s", status, request_url)
        else:
            logger.debug("HTTP %s: %s", status, request_url)

    def record_request_failed(self, request_url: str, failure: str, page_url: str):
        if is_noise_url(request_url):
            logger.debug("Ignoring noise request failure %s", request_url)
            return
        self._append(ConsoleError(
            kind=ErrorKind.NETWORK,
            message=f"Request failed: {request_url} - {failure}",
            url=page_url,
            trigger_action=self._current_action or None,
        ))
        logger.debug("Request failed: %s", request_url)

    def get_errors(self) -> tuple[ConsoleError, ...]:
        return tuple(self._errors)

    def clear(self):
        """Reset between page visits."""
        self._errors.clear()
        self._current_action = ""

    def _append(self, error: ConsoleError):
        self._errors.append(error)
