"""Per-run artifact directory: screenshots, HTML report, raw JSON."""

from __future__ import annotations

import json
import re
from datetime import datetime
from pathlib import Path
from urllib.parse import urlparse


class FileManager:
    """Owns `<output>/<host>-<YYYYMMDD>-<HHMMSS>/` and its `screenshots/` dir."""

    def __init__(self, output_dir: str, target_url: str, now: datetime | None = None):
        parsed = urlparse(target_url)
        host = (parsed.hostname or parsed.path.rstrip("/").split("/")[-1] or "local").replace(".", "-")
        stamp = (now or datetime.now()).strftime("%Y%m%d-%H%M%S")
        self.base_dir = Path(output_dir).resolve() / f"{host}-{stamp}"
        self.screenshot_dir = self.base_dir / "screenshots"

    def init(self):
        self.screenshot_dir.mkdir(parents=True, exist_ok=True)

    def screenshot_path(self, name: str) -> Path:
        safe = re.sub(r"[^a-zA-Z0-9_-]", "_", name)
        return self.screenshot_dir / f"{safe}.png"

    @property
    def report_path(self) -> Path:
        return self.base_dir / "report.html"

    def write_report(self, html: str) -> Path:
        self.report_path.write_text(html, encoding="utf-8")
        return self.report_path

    def write_json(self, filename: str, data) -> Path:
        path = self.base_dir / filename
        path.write_text(json.dumps(data, indent=2, default=str), encoding="utf-8")
        return path
