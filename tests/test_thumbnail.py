"""Tests for best-effort thumbnail lookup."""

from __future__ import annotations

import httpx
import pytest
import respx

from mediabridge.services.browser_renderer import BrowserRenderingError
from mediabridge.services.thumbnail import ThumbnailService, extract_preview_image

PAGE = "https://x.test/p/abc"


class FakeRenderer:
    def __init__(self, html: str | None = None, error: bool = False) -> None:
        self.html = html
        self.error = error
        self.calls: list[str] = []

    async def render(self, url: str) -> str:
        self.calls.append(url)
        if self.error:
            raise BrowserRenderingError("no browser")
        return self.html or ""


def test_extracts_og_image() -> None:
    html = '<head><meta property="og:image" content="https://cdn.test/t.jpg?a=1&amp;b=2"></head>'

    assert extract_preview_image(html) == "https://cdn.test/t.jpg?a=1&b=2"


def test_falls_back_to_twitter_image() -> None:
    html = '<meta name="twitter:image" content="https://cdn.test/tw.jpg">'

    assert extract_preview_image(html) == "https://cdn.test/tw.jpg"


def test_ignores_relative_images() -> None:
    assert extract_preview_image('<meta property="og:image" content="/t.jpg">') is None


@respx.mock
@pytest.mark.asyncio
async def test_lookup_over_http() -> None:
    respx.get(PAGE).mock(
        return_value=httpx.Response(200, text='<meta property="og:image" content="https://cdn.test/t.jpg">')
    )

    assert await ThumbnailService().lookup(PAGE) == "https://cdn.test/t.jpg"


@respx.mock
@pytest.mark.asyncio
async def test_js_heavy_host_uses_browser() -> None:
    respx.get(PAGE).mock(return_value=httpx.Response(200, text="<html></html>"))
    renderer = FakeRenderer('<meta property="og:image" content="https://cdn.test/r.jpg">')
    service = ThumbnailService(browser_renderer=renderer, js_heavy_hosts=["x.test"])

    assert await service.lookup(PAGE) == "https://cdn.test/r.jpg"
    assert renderer.calls == [PAGE]


@respx.mock
@pytest.mark.asyncio
async def test_failures_yield_none() -> None:
    respx.get(PAGE).mock(side_effect=httpx.ConnectError("refused"))
    service = ThumbnailService(browser_renderer=FakeRenderer(error=True), js_heavy_hosts=["x.test"])

    assert await service.lookup(PAGE) is None
