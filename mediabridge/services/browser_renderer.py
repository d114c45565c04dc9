from __future__ import annotations

import asyncio

from playwright.sync_api import Error as PlaywrightError, sync_playwright  # type: ignore[import-not-found]

from mediabridge.services.proxy import BROWSER_USER_AGENT


class BrowserRenderingError(Exception):
    """Raised when Playwright fails to render a page."""


class BrowserRenderer:
    def __init__(self, headless: bool = True, timeout_seconds: float = 45.0) -> None:
        self.headless = headless
        # Playwright expects milliseconds for most timeouts.
        self.timeout_ms = int(timeout_seconds * 1000)

    async def render(self, url: str) -> str:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._render_sync, url)

    def _render_sync(self, url: str) -> str:
        try:
            with sync_playwright() as playwright:
                browser = playwright.chromium.launch(headless=self.headless)
                context = browser.new_context(
                    user_agent=BROWSER_USER_AGENT,
                    viewport={"width": 1280, "height": 800},
                    extra_http_headers={"Accept-Language": "en-US,en;q=0.9"},
                )
                page = context.new_page()
                page.set_default_navigation_timeout(self.timeout_ms)
                page.goto(url, wait_until="domcontentloaded", timeout=self.timeout_ms)
                page.wait_for_selector('meta[property="og:image"]', state="attached", timeout=self.timeout_ms)
                html = page.content()
                context.close()
                browser.close()
                return html
        except PlaywrightError as exc:  # pragma: no cover - requires browser runtime
            raise BrowserRenderingError(str(exc)) from exc
