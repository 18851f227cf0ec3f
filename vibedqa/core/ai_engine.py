"""Gemini vision engine for VibedQA.

Turns a screenshot (plus page context and, optionally, the console lines
captured around it) into issues. The model is asked for JSON; anything
else it sends back degrades to an empty result, never an exception.

Usage: one GeminiEngine instance per scan.
"""

from __future__ import annotations

import asyncio
import base64
import json
import logging
import os
import re
import uuid

from vibedqa.config import DEFAULT_AI_MODEL
from vibedqa.models.types import (
    ConsoleAnnotation, ElementAssessment, ErrorKind, Issue, IssueCategory, Severity, VisionResult,
)


logger = logging.getLogger(__name__)


SCREENSHOT_PROMPT = """You are a senior QA engineer analyzing a web application screenshot.
Identify any visual issues in this screenshot.

Check for:
1. Layout issues: elements overlapping, overflow, misalignment, broken grid
2. Text issues: truncation, unreadable text, wrong encoding, text overflow
3. Dark mode issues: low contrast, invisible elements, background/text color conflicts
4. Responsive issues: elements too small, horizontal scroll, broken layout
5. Hardcoded strings: text in the wrong language for the rest of the UI
6. UX anti-patterns: tiny click targets (<44px), unclear CTAs, missing labels
7. Visual bugs: broken images, missing icons, rendering artifacts
8. Error states: 404 pages, blank screens, error messages, crash screens

For each issue found, provide:
- severity: "critical" | "warning" | "info"
- category: "layout" | "text" | "darkmode" | "responsive" | "i18n" | "ux" | "error" | "interaction" | "security"
- title: brief issue title
- description: what the issue is and where it appears
- location: where on the screen (e.g. "top-right", "center", "navigation bar")
- fixSuggestion: specific developer-centric fix (CSS change, component prop, etc.)

Respond ONLY in JSON. No markdown, no backticks.
{"issues": [{"severity": "...", "category": "...", "title": "...", "description": "...", "location": "...", "fixSuggestion": "..."}]}"""

CONSOLE_PROMPT = """
Raw console logs captured while this state was reached:
{logs}

In addition to "issues", also return:
- "interactiveElements": every button, link, input or dropdown you can see, as
  {{"element": "<label>", "status": "reachable|broken|obscured|error_state", "note": "..."}}
- "consoleAnalysis": one entry per console line, as
  {{"originalMessage": "...", "type": "csp|javascript|network|other",
    "severity": "critical|warning|info", "rootCause": "...", "fixSuggestion": "..."}}
If this screen is a 404 or a crash, report it as a critical "error" issue."""

_CATEGORY_ALIASES = {
    "runtime_error": IssueCategory.ERROR,
    "contrast": IssueCategory.DARKMODE,
}


def strip_fences(text: str) -> str:
    cleaned = (text or "").strip()
    if cleaned.startswith("```"):
        cleaned = re.sub(r"^```\w*\n?", "", cleaned)
        cleaned = re.sub(r"\n?```\s*$", "", cleaned)
    return cleaned.strip()


def validate_severity(value) -> Severity:
    try:
        return Severity(str(value).strip().lower())
    except ValueError:
        return Severity.INFO


def validate_category(value) -> IssueCategory:
    key = str(value).strip().lower()
    if key in _CATEGORY_ALIASES:
        return _CATEGORY_ALIASES[key]
    try:
        return IssueCategory(key)
    except ValueError:
        return IssueCategory.UX


def _error_kind(value) -> ErrorKind:
    try:
        return ErrorKind(str(value).strip().lower())
    except ValueError:
        return ErrorKind.OTHER


def parse_vision_response(text: str | None, screenshot_path: str = "") -> VisionResult:
    """Model output to VisionResult. Malformed or empty output gives an empty result."""
    if not text:
        return VisionResult()
    try:
        data = json.loads(strip_fences(text))
    except (json.JSONDecodeError, TypeError):
        logger.debug("Unparseable model output: %s", text[:120])
        return VisionResult()
    if not isinstance(data, dict):
        return VisionResult()

    result = VisionResult()
    for item in _dicts(data.get("issues")):
        result.issues.append(Issue(
            id=f"issue-{uuid.uuid4().hex[:10]}",
            severity=validate_severity(item.get("severity")),
            category=validate_category(item.get("category")),
            title=item.get("title") or "Untitled issue",
            description=item.get("description") or "",
            location=item.get("location") or "unknown",
            fix_suggestion=item.get("fixSuggestion") or item.get("fix_suggestion") or item.get("suggestion") or "",
            screenshot_path=screenshot_path,
        ))

    for item in _dicts(data.get("interactiveElements")):
        result.elements.append(ElementAssessment(
            element=item.get("element") or item.get("label") or "",
            status=str(item.get("status") or "unknown").lower(),
            note=item.get("note") or "",
        ))

    for item in _dicts(data.get("consoleAnalysis")):
        result.console_annotations.append(ConsoleAnnotation(
            original_message=item.get("originalMessage") or item.get("message") or "",
            kind=_error_kind(item.get("type")),
            severity=validate_severity(item.get("severity") or item.get("level")),
            root_cause=item.get("rootCause") or "",
            fix_suggestion=item.get("fixSuggestion") or item.get("suggestion") or "",
        ))
    return result


def _dicts(value) -> list[dict]:
    if not isinstance(value, list):
        return []
    return [v for v in value if isinstance(v, dict)]


class GeminiEngine:
    """Wraps the Gemini vision calls used by the analysis phase."""

    def __init__(self, model_name: str = DEFAULT_AI_MODEL):
        self._model_name = model_name
        self._model = None
        self._call_count = 0

    def _ensure_model(self):
        if self._model:
            return
        api_key = os.environ.get("GEMINI_API_KEY")
        if not api_key:
            raise RuntimeError("GEMINI_API_KEY not set")
        import google.generativeai as genai
        genai.configure(api_key=api_key)
        self._model = genai.GenerativeModel(
            self._model_name,
            generation_config={"temperature": 0.0},
        )

    @property
    def available(self) -> bool:
        return bool(os.environ.get("GEMINI_API_KEY"))

    @property
    def stats(self) -> dict:
        return {"calls": self._call_count, "model": self._model_name}

    async def _call(self, parts: list) -> str | None:
        if not self.available:
            return None

        self._ensure_model()
        self._call_count += 1

        def _sync():
            resp = self._model.generate_content(parts)
            return resp.text if resp and resp.text else None

        return await asyncio.to_thread(_sync)

    async def analyze_screenshot(
        self,
        image_bytes: bytes,
        mime_type: str,
        context: str,
        console_logs: list[str] | None = None,
        screenshot_path: str = "",
    ) -> VisionResult:
        """Ask the model about one screenshot. Any failure returns an empty VisionResult."""
        prompt = f"Page context: {context}\n\n{SCREENSHOT_PROMPT}"
        if console_logs:
            prompt += CONSOLE_PROMPT.format(logs="\n".join(console_logs))

        try:
            text = await self._call([
                {"mime_type": mime_type, "data": base64.b64encode(image_bytes).decode()},
                prompt,
            ])
        except Exception as e:
            logger.warning("AI analysis failed for %s: %s", screenshot_path or context, str(e)[:80])
            return VisionResult()

        return parse_vision_response(text, screenshot_path)

    async def analyze_file(
        self,
        path: str,
        context: str,
        console_logs: list[str] | None = None,
    ) -> VisionResult:
        try:
            with open(path, "rb") as f:
                data = f.read()
        except OSError as e:
            logger.warning("Cannot read screenshot %s: %s", path, e)
            return VisionResult()
        return await self.analyze_screenshot(data, "image/png", context, console_logs, screenshot_path=path)
