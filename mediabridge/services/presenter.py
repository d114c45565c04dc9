from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple
from urllib.parse import urlencode

from mediabridge.services.extraction import (
    ErrorResult,
    ExtractionResult,
    PickerResult,
    SingleResult,
    SourceRequest,
)
from mediabridge.services.history import HistoryEntry

PROXY_PATH = "/api/proxy"
DOWNLOAD_STAGGER_SECONDS = 0.5


def proxy_url(media_url: str, filename: Optional[str] = None, download: bool = False) -> str:
    params = {"url": media_url}
    if filename:
        params["filename"] = filename
    if download:
        params["download"] = "true"
    return f"{PROXY_PATH}?{urlencode(params)}"


@dataclass(frozen=True, slots=True)
class MediaLink:
    kind: str
    filename: str
    preview_url: str
    download_url: str
    thumbnail_url: Optional[str] = None


@dataclass(frozen=True, slots=True)
class ScheduledDownload:
    delay_seconds: float
    url: str
    filename: str


@dataclass(frozen=True, slots=True)
class ResultView:
    status: str
    message: Optional[str] = None
    items: Tuple[MediaLink, ...] = ()
    download_all: Tuple[ScheduledDownload, ...] = ()
    # Raw media URL handed to the transcription endpoint.
    transcript_source: Optional[str] = None


def _link(media_url: str, kind: str, filename: str, thumbnail_url: Optional[str]) -> MediaLink:
    return MediaLink(
        kind=kind,
        filename=filename,
        preview_url=proxy_url(media_url, filename),
        download_url=proxy_url(media_url, filename, download=True),
        thumbnail_url=proxy_url(thumbnail_url, "thumbnail.jpg") if thumbnail_url else None,
    )


def present(result: ExtractionResult, stagger: float = DOWNLOAD_STAGGER_SECONDS) -> ResultView:
    if isinstance(result, ErrorResult):
        return ResultView(status="error", message=result.message)

    if isinstance(result, SingleResult):
        link = _link(result.media_url, result.kind, result.filename, result.thumbnail_url)
        return ResultView(
            status="single",
            items=(link,),
            transcript_source=result.media_url if result.kind in {"video", "audio"} else None,
        )

    links = tuple(
        _link(item.media_url, item.kind, item.filename, item.thumbnail_url) for item in result.items
    )
    schedule = tuple(
        ScheduledDownload(delay_seconds=index * stagger, url=link.download_url, filename=link.filename)
        for index, link in enumerate(links)
    )
    return ResultView(status="picker", items=links, download_all=schedule)


def download_payload(result: ExtractionResult) -> Dict[str, Any]:
    """JSON body returned by ``POST /api/download`` for a successful resolution."""
    if isinstance(result, SingleResult):
        payload: Dict[str, Any] = {
            "status": "single",
            "type": result.kind,
            "url": proxy_url(result.media_url, result.filename),
            "media_url": result.media_url,
            "filename": result.filename,
            "mime": result.mime_hint,
        }
        if result.thumbnail_url:
            payload["thumb"] = proxy_url(result.thumbnail_url, "thumbnail.jpg")
        return payload

    if isinstance(result, PickerResult):
        picker = []
        for item in result.items:
            entry = {
                "type": item.kind,
                "url": proxy_url(item.media_url, item.filename),
                "media_url": item.media_url,
                "filename": item.filename,
            }
            if item.thumbnail_url:
                entry["thumb"] = proxy_url(item.thumbnail_url, "thumbnail.jpg")
            picker.append(entry)
        payload = {"status": "picker", "picker": picker, "filename": result.items[0].filename}
        if result.audio_url:
            payload["audio"] = proxy_url(result.audio_url, result.audio_filename)
        return payload

    raise ValueError("Error results have no download payload")


def history_entry(
    request: SourceRequest,
    result: ExtractionResult,
    timestamp: Optional[int] = None,
) -> Optional[HistoryEntry]:
    """History record for a successful result; errors are never recorded."""
    if isinstance(result, ErrorResult):
        return None
    stamp = timestamp if timestamp is not None else int(time.time() * 1000)

    if isinstance(result, SingleResult):
        return HistoryEntry(
            source_url=request.url,
            timestamp=stamp,
            kind=result.kind,
            title=result.filename,
            proxied_download_url=proxy_url(result.media_url, result.filename, download=True),
            thumbnail_url=result.thumbnail_url,
        )

    first = result.items[0]
    return HistoryEntry(
        source_url=request.url,
        timestamp=stamp,
        kind=first.kind,
        title=first.filename,
        proxied_download_url=proxy_url(first.media_url, first.filename, download=True),
        thumbnail_url=first.thumbnail_url,
        picker=[{"url": item.media_url, "type": item.kind} for item in result.items],
    )
