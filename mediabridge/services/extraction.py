from __future__ import annotations

import hashlib
import mimetypes
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Any, Literal, Optional, Tuple, Union
from urllib.parse import urlparse

Mode = Literal["auto", "audio"]
MediaKind = Literal["photo", "video", "audio"]

PHOTO_EXTENSIONS = frozenset({".jpg", ".jpeg", ".png", ".webp", ".heic"})
SINGLE_STATUSES = frozenset({"tunnel", "redirect", "stream"})
FAILURE_STATUSES = frozenset({"error", "rate-limit"})

# Provider error codes that blame the submitted link rather than the provider.
CLIENT_ERROR_PREFIXES = ("error.api.link.", "error.api.content.")

_DEFAULT_EXTENSIONS = {"photo": "jpg", "video": "mp4", "audio": "mp3"}
_DEFAULT_MIME = {"photo": "image/jpeg", "video": "video/mp4", "audio": "audio/mpeg"}


@dataclass(frozen=True, slots=True)
class SourceRequest:
    url: str
    mode: Mode = "auto"


@dataclass(frozen=True, slots=True)
class SingleResult:
    media_url: str
    filename: str
    mime_hint: str
    kind: MediaKind
    thumbnail_url: Optional[str] = None


@dataclass(frozen=True, slots=True)
class PickerItem:
    media_url: str
    kind: Literal["photo", "video"]
    filename: str
    thumbnail_url: Optional[str] = None


@dataclass(frozen=True, slots=True)
class PickerResult:
    items: Tuple[PickerItem, ...]
    audio_url: Optional[str] = None
    audio_filename: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.items:
            raise ValueError("PickerResult requires at least one item")


@dataclass(frozen=True, slots=True)
class ErrorResult:
    message: str
    code: Optional[str] = None

    @property
    def client_caused(self) -> bool:
        return bool(self.code) and self.code.startswith(CLIENT_ERROR_PREFIXES)

    @property
    def rate_limited(self) -> bool:
        code = self.code or ""
        return code == "rate-limit" or ".rate" in code


ExtractionResult = Union[SingleResult, PickerResult, ErrorResult]


def is_http_url(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    parsed = urlparse(value)
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)


def infer_kind(url: str) -> Literal["photo", "video"]:
    """Guess photo/video from the extension of the URL path (query ignored)."""
    suffix = PurePosixPath(urlparse(url).path).suffix.lower()
    return "photo" if suffix in PHOTO_EXTENSIONS else "video"


def source_prefix(source_url: str) -> str:
    hostname = (urlparse(source_url).hostname or "").lower()
    if hostname.startswith("www."):
        hostname = hostname[4:]
    label = hostname.split(".")[0] if hostname else ""
    return label or "media"


def synthesize_filename(
    media_url: str,
    kind: MediaKind,
    mode: Mode,
    prefix: str = "media",
    index: Optional[int] = None,
) -> str:
    digest = hashlib.sha256(media_url.encode("utf-8")).hexdigest()[:10]
    extension = "mp3" if mode == "audio" else _DEFAULT_EXTENSIONS[kind]
    position = f"_{index + 1}" if index is not None else ""
    return f"{prefix}_{kind}{position}_{digest}.{extension}"


def build_request_body(request: SourceRequest, api_version: str = "v10") -> dict[str, Any]:
    """Canonical extractor request body for the given API generation."""
    audio = request.mode == "audio"
    if api_version == "legacy":
        body: dict[str, Any] = {
            "url": request.url,
            "vQuality": "1080",
            "filenamePattern": "basic",
            "isAudioOnly": audio,
        }
        if audio:
            body["aFormat"] = "mp3"
        return body

    body = {
        "url": request.url,
        "videoQuality": "1080",
        "filenameStyle": "basic",
        "downloadMode": "audio" if audio else "auto",
    }
    if audio:
        body["audioFormat"] = "mp3"
    return body


def normalize_reply(payload: Any, request: SourceRequest) -> ExtractionResult:
    """Map one provider reply onto the closed set of result shapes.

    Recognized statuses: tunnel/redirect/stream (single file), picker
    (carousel), error and rate-limit (failures). Everything else, and any
    success shape that carries a non-absolute media URL, becomes an
    ErrorResult.
    """
    if not isinstance(payload, dict):
        return ErrorResult("Provider reply is not a JSON object.", code="reply.malformed")

    status = payload.get("status")
    if status in SINGLE_STATUSES:
        return _normalize_single(payload, request)
    if status == "picker":
        return _normalize_picker(payload, request)
    if status in FAILURE_STATUSES:
        return _normalize_error(payload, status)
    return ErrorResult(f"Unsupported provider reply status: {status!r}.", code="reply.unsupported")


def _normalize_single(payload: dict[str, Any], request: SourceRequest) -> ExtractionResult:
    media_url = payload.get("url")
    if not is_http_url(media_url):
        return ErrorResult("Provider reply has no usable media URL.", code="reply.invalid")

    filename = payload.get("filename") or None
    kind: MediaKind
    if request.mode == "audio":
        kind = "audio"
    else:
        kind = infer_kind(filename) if filename else infer_kind(media_url)
    if not filename:
        filename = synthesize_filename(media_url, kind, request.mode, source_prefix(request.url))

    mime_hint = mimetypes.guess_type(filename)[0] or _DEFAULT_MIME[kind]
    thumb = payload.get("thumb")
    return SingleResult(
        media_url=media_url,
        filename=filename,
        mime_hint=mime_hint,
        kind=kind,
        thumbnail_url=thumb if is_http_url(thumb) else None,
    )


def _normalize_picker(payload: dict[str, Any], request: SourceRequest) -> ExtractionResult:
    raw_items = payload.get("picker")
    if not isinstance(raw_items, list) or not raw_items:
        return ErrorResult("Provider returned an empty picker.", code="reply.invalid")

    prefix = source_prefix(request.url)
    items = []
    for index, raw in enumerate(raw_items):
        media_url = raw.get("url") if isinstance(raw, dict) else None
        if not is_http_url(media_url):
            return ErrorResult("Picker item has no usable media URL.", code="reply.invalid")
        declared = raw.get("type")
        if declared == "photo":
            kind: Literal["photo", "video"] = "photo"
        elif declared in {"video", "gif"}:
            kind = "video"
        else:
            kind = infer_kind(media_url)
        thumb = raw.get("thumb")
        items.append(
            PickerItem(
                media_url=media_url,
                kind=kind,
                filename=synthesize_filename(media_url, kind, "auto", prefix, index),
                thumbnail_url=thumb if is_http_url(thumb) else None,
            )
        )

    audio_url = payload.get("audio")
    audio_url = audio_url if is_http_url(audio_url) else None
    audio_filename = None
    if audio_url:
        audio_filename = payload.get("audioFilename") or synthesize_filename(
            audio_url, "audio", "audio", prefix
        )
    return PickerResult(items=tuple(items), audio_url=audio_url, audio_filename=audio_filename)


def _normalize_error(payload: dict[str, Any], status: str) -> ErrorResult:
    error = payload.get("error")
    code: Optional[str] = None
    if isinstance(error, dict):
        code = error.get("code")
    elif isinstance(error, str):
        code = error
    message = payload.get("text") or code or "Provider reported an error."
    if status == "rate-limit":
        code = code or "rate-limit"
    return ErrorResult(str(message), code=code)
