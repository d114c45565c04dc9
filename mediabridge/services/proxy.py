from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import AsyncIterator, Mapping, Optional
from urllib.parse import quote, urlparse

import httpx

logger = logging.getLogger(__name__)

BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

RELAYED_HEADERS = (
    "content-type",
    "content-length",
    "content-range",
    "accept-ranges",
    "content-encoding",
)


class ProxyError(Exception):
    """Base exception for media proxy failures."""

    status_code = 502


class InvalidProxyTarget(ProxyError):
    status_code = 400


class UpstreamUnavailable(ProxyError):
    status_code = 502


@dataclass(slots=True)
class UpstreamStream:
    response: httpx.Response
    client: httpx.AsyncClient

    @property
    def status_code(self) -> int:
        return self.response.status_code

    @property
    def ok(self) -> bool:
        return self.response.status_code < 400

    async def iter_bytes(self) -> AsyncIterator[bytes]:
        async for chunk in self.response.aiter_raw():
            yield chunk

    async def aclose(self) -> None:
        await self.response.aclose()
        await self.client.aclose()


def content_disposition(filename: Optional[str], download: bool) -> str:
    """Header value that is always latin-1 safe; non-ASCII names go in ``filename*``."""
    name = (filename or "download").replace('"', "").replace("\r", "").replace("\n", "")
    disposition = "attachment" if download else "inline"
    if name.isascii():
        return f'{disposition}; filename="{name}"'
    fallback = name.encode("ascii", "ignore").decode("ascii").strip() or "download"
    if fallback.startswith("."):
        fallback = f"download{fallback}"
    return f"{disposition}; filename=\"{fallback}\"; filename*=UTF-8''{quote(name, safe='')}"


class MediaProxy:
    def __init__(self, timeout: float = 30.0, referers: Optional[Mapping[str, str]] = None) -> None:
        self.timeout = timeout
        self.referers = {host.lower(): origin for host, origin in (referers or {}).items()}

    def upstream_headers(self, url: str, range_header: Optional[str] = None) -> dict[str, str]:
        headers = {"User-Agent": BROWSER_USER_AGENT, "Accept": "*/*"}
        if range_header:
            headers["Range"] = range_header
        origin = self._referer_for(url)
        if origin:
            headers["Referer"] = f"{origin}/"
            headers["Origin"] = origin
        return headers

    async def open(self, url: str, range_header: Optional[str] = None) -> UpstreamStream:
        if not url or not url.startswith("http") or not urlparse(url).netloc:
            raise InvalidProxyTarget("A valid media URL is required.")

        client = httpx.AsyncClient(timeout=self.timeout, follow_redirects=True)
        request = client.build_request("GET", url, headers=self.upstream_headers(url, range_header))
        try:
            response = await client.send(request, stream=True)
        except httpx.TimeoutException as exc:
            await client.aclose()
            raise UpstreamUnavailable("Upstream media request timed out.") from exc
        except httpx.RequestError as exc:
            await client.aclose()
            raise UpstreamUnavailable(f"Could not reach upstream media: {exc}") from exc

        logger.info(
            "Upstream media opened",
            extra={
                "url": url[:100],
                "status": response.status_code,
                "size": response.headers.get("content-length"),
            },
        )
        return UpstreamStream(response=response, client=client)

    @staticmethod
    def response_headers(upstream: UpstreamStream, disposition: str) -> dict[str, str]:
        headers = {
            name: upstream.response.headers[name]
            for name in RELAYED_HEADERS
            if name in upstream.response.headers
        }
        headers.setdefault("content-type", "application/octet-stream")
        headers["content-disposition"] = disposition
        headers["access-control-allow-origin"] = "*"
        headers["cache-control"] = "public, max-age=3600"
        return headers

    def _referer_for(self, url: str) -> Optional[str]:
        hostname = (urlparse(url).hostname or "").lower()
        for suffix, origin in self.referers.items():
            if hostname == suffix or hostname.endswith(f".{suffix}"):
                return origin
        return None
