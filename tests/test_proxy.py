"""Tests for the same-origin media proxy."""

from __future__ import annotations

import httpx
import pytest
import respx
from fastapi.testclient import TestClient

from mediabridge.services.proxy import MediaProxy, content_disposition

MEDIA = "https://cdn.test/v.mp4"
BODY = b"\x00\x00\x00\x18ftypmp42" * 32


class TestProxyRoute:
    def test_download_sets_attachment_and_relays_bytes(self, client: TestClient) -> None:
        with respx.mock:
            respx.get(MEDIA).mock(
                return_value=httpx.Response(200, content=BODY, headers={"Content-Type": "video/mp4"})
            )

            response = client.get("/api/proxy", params={"url": MEDIA, "filename": "x.mp4", "download": "true"})

        assert response.status_code == 200
        assert response.headers["content-disposition"] == 'attachment; filename="x.mp4"'
        assert response.headers["content-type"] == "video/mp4"
        assert response.headers["access-control-allow-origin"] == "*"
        assert response.content == BODY

    def test_inline_by_default(self, client: TestClient) -> None:
        with respx.mock:
            respx.get(MEDIA).mock(return_value=httpx.Response(200, content=BODY))

            response = client.get("/api/proxy", params={"url": MEDIA})

        assert response.headers["content-disposition"] == 'inline; filename="download"'
        assert response.headers["content-type"] == "application/octet-stream"

    def test_range_passthrough(self, client: TestClient) -> None:
        with respx.mock:
            route = respx.get(MEDIA).mock(
                return_value=httpx.Response(
                    206,
                    content=BODY[:100],
                    headers={
                        "Content-Type": "video/mp4",
                        "Content-Range": f"bytes 0-99/{len(BODY)}",
                        "Accept-Ranges": "bytes",
                    },
                )
            )

            response = client.get("/api/proxy", params={"url": MEDIA}, headers={"Range": "bytes=0-99"})

        assert route.calls.last.request.headers["Range"] == "bytes=0-99"
        assert response.status_code == 206
        assert response.headers["content-range"] == f"bytes 0-99/{len(BODY)}"
        assert response.headers["accept-ranges"] == "bytes"
        assert response.content == BODY[:100]

    def test_head_returns_headers_only(self, client: TestClient) -> None:
        with respx.mock:
            respx.get(MEDIA).mock(
                return_value=httpx.Response(200, content=BODY, headers={"Content-Type": "video/mp4"})
            )

            response = client.head("/api/proxy", params={"url": MEDIA})

        assert response.status_code == 200
        assert response.headers["content-length"] == str(len(BODY))
        assert response.headers["content-type"] == "video/mp4"
        assert response.content == b""

    @pytest.mark.parametrize("params", [{}, {"url": "ftp://cdn.test/v.mp4"}, {"url": "javascript:alert(1)"}])
    def test_rejects_missing_or_invalid_url(self, client: TestClient, params: dict) -> None:
        response = client.get("/api/proxy", params=params)

        assert response.status_code == 400
        assert "error" in response.json()

    def test_relays_upstream_error_status(self, client: TestClient) -> None:
        with respx.mock:
            respx.get(MEDIA).mock(return_value=httpx.Response(404))

            response = client.get("/api/proxy", params={"url": MEDIA})

        assert response.status_code == 404
        assert response.json() == {"error": "Failed to fetch media"}

    def test_connection_failure_is_bad_gateway(self, client: TestClient) -> None:
        with respx.mock:
            respx.get(MEDIA).mock(side_effect=httpx.ConnectError("refused"))

            response = client.get("/api/proxy", params={"url": MEDIA})

        assert response.status_code == 502
        assert "error" in response.json()


class TestUpstreamHeaders:
    def test_referer_for_known_cdn(self, media_proxy: MediaProxy) -> None:
        headers = media_proxy.upstream_headers("https://scontent-lhr8-1.cdninstagram.com/v/t51/x.mp4")

        assert headers["Referer"] == "https://www.instagram.com/"
        assert headers["Origin"] == "https://www.instagram.com"
        assert "Mozilla/5.0" in headers["User-Agent"]

    def test_no_referer_for_unknown_host(self, media_proxy: MediaProxy) -> None:
        headers = media_proxy.upstream_headers(MEDIA, "bytes=0-")

        assert "Referer" not in headers
        assert headers["Range"] == "bytes=0-"

    def test_suffix_match_requires_label_boundary(self, media_proxy: MediaProxy) -> None:
        headers = media_proxy.upstream_headers("https://evilcdninstagram.com/x.mp4")

        assert "Referer" not in headers


def test_content_disposition_strips_quotes() -> None:
    assert content_disposition('a"b.mp4', True) == 'attachment; filename="ab.mp4"'


def test_content_disposition_keeps_plain_ascii_form() -> None:
    assert content_disposition("x.mp4", False) == 'inline; filename="x.mp4"'


def test_content_disposition_encodes_non_ascii_names() -> None:
    value = content_disposition("वीडियो.mp4", True)

    value.encode("latin-1")
    assert value == (
        'attachment; filename="download.mp4"; '
        "filename*=UTF-8''%E0%A4%B5%E0%A5%80%E0%A4%A1%E0%A4%BF%E0%A4%AF%E0%A5%8B.mp4"
    )


def test_non_ascii_filename_is_served(client: TestClient) -> None:
    with respx.mock:
        respx.get(MEDIA).mock(
            return_value=httpx.Response(200, content=BODY, headers={"Content-Type": "video/mp4"})
        )

        response = client.get(
            "/api/proxy", params={"url": MEDIA, "filename": "वीडियो.mp4", "download": "true"}
        )

    assert response.status_code == 200
    assert response.content == BODY
    disposition = response.headers["content-disposition"]
    assert disposition.startswith('attachment; filename="download.mp4"; filename*=UTF-8\'\'')
