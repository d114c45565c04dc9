from __future__ import annotations

from functools import lru_cache
from typing import Optional

from mediabridge.core.config import settings
from mediabridge.services.browser_renderer import BrowserRenderer
from mediabridge.services.proxy import MediaProxy
from mediabridge.services.resolver import ProviderResolver
from mediabridge.services.thumbnail import ThumbnailService
from mediabridge.services.transcriber import Transcriber
from mediabridge.services.transcript_cache import TranscriptCache


@lru_cache
def _browser_renderer() -> BrowserRenderer:
    return BrowserRenderer(
        headless=settings.playwright_headless,
        timeout_seconds=settings.browser_timeout,
    )


@lru_cache
def get_resolver() -> ProviderResolver:
    return ProviderResolver(
        providers=settings.provider_chain(),
        provider_timeout=settings.provider_timeout,
        deadline_seconds=settings.resolution_deadline_seconds,
    )


@lru_cache
def get_thumbnail_service() -> Optional[ThumbnailService]:
    if not settings.thumbnail_lookup:
        return None
    return ThumbnailService(
        request_timeout=settings.thumbnail_timeout,
        browser_renderer=_browser_renderer(),
        js_heavy_hosts=settings.js_heavy_hosts,
    )


@lru_cache
def get_media_proxy() -> MediaProxy:
    return MediaProxy(timeout=settings.proxy_timeout, referers=settings.proxy_referers)


@lru_cache
def get_transcriber() -> Transcriber:
    cache = None
    if settings.transcript_cache_dir is not None:
        cache = TranscriptCache(settings.transcript_cache_dir, settings.transcript_cache_ttl)
    return Transcriber(
        api_base_url=settings.speech_api_base_url,
        api_key=settings.speech_api_key,
        model=settings.speech_model,
        prompt=settings.speech_prompt,
        timeout=settings.speech_timeout,
        max_media_bytes=settings.max_media_bytes,
        rewrite_model=settings.rewrite_model,
        rewrite_prompt=settings.rewrite_prompt,
        cache=cache,
    )
