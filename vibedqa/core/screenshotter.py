"""Full-page captures tagged with viewport/theme/language/state."""

from __future__ import annotations

import logging

from playwright.async_api import Page

from vibedqa.models.types import Screenshot
from vibedqa.utils.file_manager import FileManager


logger = logging.getLogger(__name__)


class Screenshotter:
    def __init__(
        self,
        file_manager: FileManager,
        viewport: str = "desktop",
        theme: str = "light",
        language: str = "auto",
    ):
        self._files = file_manager
        self.viewport = viewport
        self.theme = theme
        self.language = language
        self._screenshots: list[Screenshot] = []
        self._counter = 0

    async def capture(self, page: Page, state: str, full_page: bool = True) -> Screenshot:
        self._counter += 1
        name = f"{self._counter:03d}_{state}"
        path = self._files.screenshot_path(name)

        await page.screenshot(path=str(path), full_page=full_page)

        shot = Screenshot(
            path=str(path),
            url=page.url,
            viewport=self.viewport,
            theme=self.theme,
            language=self.language,
            state=state,
        )
        self._screenshots.append(shot)
        logger.info("CAPTURE: %s", path.name)
        return shot

    @property
    def count(self) -> int:
        return len(self._screenshots)

    def since(self, index: int) -> list[Screenshot]:
        """Screenshots captured after the first `index` ones."""
        return list(self._screenshots[index:])
