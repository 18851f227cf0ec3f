"""Shared fixtures: configs, artifact dirs, a local test site and a browser probe."""

import asyncio
from concurrent.futures import ThreadPoolExecutor
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest

from vibedqa.config import CrawlConfig
from vibedqa.utils.file_manager import FileManager


def make_config(url: str = "https://example.com", **kwargs) -> CrawlConfig:
    return CrawlConfig(url=url, **kwargs)


@pytest.fixture
def config():
    return make_config()


@pytest.fixture
def file_manager(tmp_path):
    fm = FileManager(str(tmp_path), "https://example.com")
    fm.init()
    return fm


class _SiteHandler(BaseHTTPRequestHandler):
    routes: dict[str, tuple[int, str]] = {}

    def do_GET(self):
        path = self.path.split("?", 1)[0]
        status, body = self.routes.get(path, (404, "<html><body></body></html>"))
        payload = body.encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(payload)))
        self.end_headers()
        self.wfile.write(payload)

    def log_message(self, format, *args):
        pass


@pytest.fixture
def local_site():
    """Serve a dict of {path: (status, html)} on 127.0.0.1; yields (base_url, routes)."""
    routes: dict[str, tuple[int, str]] = {}
    handler = type("Handler", (_SiteHandler,), {"routes": routes})
    server = ThreadingHTTPServer(("127.0.0.1", 0), handler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield f"http://127.0.0.1:{server.server_address[1]}", routes
    finally:
        server.shutdown()
        server.server_close()


async def _can_launch_browser() -> bool:
    from playwright.async_api import async_playwright

    from vibedqa.config import BROWSER_ARGS, detect_chromium_path

    options = {"headless": True, "args": BROWSER_ARGS}
    path = detect_chromium_path()
    if path:
        options["executable_path"] = path
    try:
        async with async_playwright() as pw:
            browser = await pw.chromium.launch(**options)
            await browser.close()
        return True
    except Exception:
        return False


@pytest.fixture(scope="session")
def browser_available():
    # Separate thread and loop from the test session.
    with ThreadPoolExecutor(max_workers=1) as pool:
        ok = pool.submit(asyncio.run, _can_launch_browser()).result()
    if not ok:
        pytest.skip("No launchable Chromium for integration tests")
    return True
