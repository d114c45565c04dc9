"""Pytest fixtures for mediabridge tests."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

import pytest
from fastapi.testclient import TestClient

from mediabridge.core.config import ExtractorInstance
from mediabridge.dependencies import (
    get_media_proxy,
    get_resolver,
    get_thumbnail_service,
    get_transcriber,
)
from mediabridge.main import create_app
from mediabridge.services.proxy import MediaProxy
from mediabridge.services.resolver import ProviderResolver
from mediabridge.services.transcriber import Transcriber

PRIMARY = "https://primary.test/"
SECONDARY = "https://secondary.test/"
SPEECH_BASE = "https://speech.test/v1"


@pytest.fixture
def providers() -> list[ExtractorInstance]:
    return [ExtractorInstance(url=PRIMARY), ExtractorInstance(url=SECONDARY)]


@pytest.fixture
def resolver(providers: list[ExtractorInstance]) -> ProviderResolver:
    return ProviderResolver(providers=providers, provider_timeout=1.0, deadline_seconds=None)


@pytest.fixture
def media_proxy() -> MediaProxy:
    return MediaProxy(timeout=1.0, referers={"cdninstagram.com": "https://www.instagram.com"})


@pytest.fixture
def transcriber() -> Transcriber:
    return Transcriber(
        api_base_url=SPEECH_BASE,
        api_key="test-key",
        model="whisper-large-v3",
        prompt="style prompt",
        timeout=1.0,
        max_media_bytes=1024,
    )


@pytest.fixture
def client(resolver: ProviderResolver, media_proxy: MediaProxy, transcriber: Transcriber) -> TestClient:
    app = create_app()
    app.dependency_overrides[get_resolver] = lambda: resolver
    app.dependency_overrides[get_media_proxy] = lambda: media_proxy
    app.dependency_overrides[get_transcriber] = lambda: transcriber
    app.dependency_overrides[get_thumbnail_service] = lambda: None
    return TestClient(app)


@pytest.fixture
def cache_dir(tmp_path: Path) -> Path:
    return tmp_path / "transcripts"


@asynccontextmanager
async def drip_server(content_type: str, interval: float = 0.25, total: float = 3.0) -> AsyncIterator[str]:
    """Local HTTP server that sends headers at once, then one body byte per ``interval``."""
    writers: list[asyncio.StreamWriter] = []

    async def handle(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        writers.append(writer)
        try:
            await reader.readuntil(b"\r\n\r\n")
            length = int(total / interval)
            writer.write(
                f"HTTP/1.1 200 OK\r\nContent-Type: {content_type}\r\nContent-Length: {length}\r\n\r\n".encode()
            )
            await writer.drain()
            for _ in range(length):
                await asyncio.sleep(interval)
                if writer.is_closing():
                    break
                writer.write(b" ")
                await writer.drain()
        except (OSError, asyncio.IncompleteReadError):
            pass
        finally:
            writer.close()

    server = await asyncio.start_server(handle, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    try:
        yield f"http://127.0.0.1:{port}/"
    finally:
        for writer in writers:
            writer.close()
        server.close()
        await server.wait_closed()
