from __future__ import annotations

import logging
import re
from typing import Iterable, Optional
from urllib.parse import urlparse

import httpx

from mediabridge.services.browser_renderer import BrowserRenderer, BrowserRenderingError
from mediabridge.services.extraction import is_http_url
from mediabridge.services.proxy import BROWSER_USER_AGENT

logger = logging.getLogger(__name__)

_META_PATTERNS = (
    re.compile(r'<meta\s+property="og:image"\s+content="([^"]+)"', re.IGNORECASE),
    re.compile(r'<meta\s+content="([^"]+)"\s+property="og:image"', re.IGNORECASE),
    re.compile(r'<meta\s+name="twitter:image"\s+content="([^"]+)"', re.IGNORECASE),
)


def extract_preview_image(html: str) -> Optional[str]:
    for pattern in _META_PATTERNS:
        match = pattern.search(html)
        if match:
            candidate = match.group(1).replace("&amp;", "&")
            if is_http_url(candidate):
                return candidate
    return None


class ThumbnailService:
    """Best-effort preview image lookup for a source post; never raises."""

    def __init__(
        self,
        request_timeout: float = 5.0,
        browser_renderer: Optional[BrowserRenderer] = None,
        js_heavy_hosts: Optional[Iterable[str]] = None,
    ) -> None:
        self.request_timeout = request_timeout
        self.browser_renderer = browser_renderer
        self.js_heavy_hosts = {host.lower() for host in (js_heavy_hosts or [])}

    async def lookup(self, source_url: str) -> Optional[str]:
        html = await self._fetch_via_http(source_url)
        thumbnail = extract_preview_image(html) if html else None
        if thumbnail is None and self._should_use_browser(source_url):
            html = await self._render_with_browser(source_url)
            thumbnail = extract_preview_image(html) if html else None
        return thumbnail

    async def _fetch_via_http(self, url: str) -> Optional[str]:
        try:
            async with httpx.AsyncClient(timeout=self.request_timeout, follow_redirects=True) as client:
                response = await client.get(
                    url, headers={"User-Agent": BROWSER_USER_AGENT, "Accept": "text/html"}
                )
        except httpx.HTTPError as exc:
            logger.info("Thumbnail page fetch failed", extra={"url": url, "error": str(exc)})
            return None
        if response.status_code >= 400:
            return None
        return response.text

    async def _render_with_browser(self, url: str) -> Optional[str]:
        if self.browser_renderer is None:
            return None
        try:
            return await self.browser_renderer.render(url)
        except BrowserRenderingError as exc:
            logger.info("Thumbnail browser render failed", extra={"url": url, "error": str(exc)})
            return None

    def _should_use_browser(self, url: str) -> bool:
        hostname = urlparse(url).hostname or ""
        return hostname.lower() in self.js_heavy_hosts
