from __future__ import annotations

import asyncio
import hashlib
import json
import logging
from dataclasses import asdict, dataclass
from pathlib import PurePosixPath
from typing import Optional, Tuple
from urllib.parse import parse_qs, urlparse

import httpx

from mediabridge.services.extraction import is_http_url
from mediabridge.services.proxy import BROWSER_USER_AGENT
from mediabridge.services.transcript_cache import TranscriptCache

logger = logging.getLogger(__name__)


class TranscriptionError(Exception):
    """Base exception for transcription failures."""

    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code


class TranscriptionConfigError(TranscriptionError):
    status_code = 500


class InvalidMediaURL(TranscriptionError):
    status_code = 400


class MediaFetchError(TranscriptionError):
    status_code = 502


class MediaTooLargeError(TranscriptionError):
    status_code = 413


class SpeechAPIError(TranscriptionError):
    """Raised when the speech-to-text API rejects the upload."""


@dataclass(frozen=True, slots=True)
class Transcript:
    script: str
    raw_transcript: str

    def to_json(self) -> str:
        return json.dumps(asdict(self), ensure_ascii=False)

    @classmethod
    def from_json(cls, document: str) -> "Transcript":
        data = json.loads(document)
        return cls(script=data["script"], raw_transcript=data["raw_transcript"])


def unwrap_proxy_url(url: str) -> str:
    """Turn a same-origin ``/api/proxy?url=...`` link back into its upstream URL."""
    if url.startswith("/"):
        target = parse_qs(urlparse(url).query).get("url")
        if target:
            return target[0]
    return url


class Transcriber:
    def __init__(
        self,
        api_base_url: str,
        api_key: Optional[str],
        model: str,
        prompt: str,
        timeout: float = 120.0,
        max_media_bytes: int = 25 * 1024 * 1024,
        rewrite_model: Optional[str] = None,
        rewrite_prompt: str = "",
        cache: Optional[TranscriptCache] = None,
    ) -> None:
        self.api_base_url = api_base_url.rstrip("/")
        self.api_key = api_key
        self.model = model
        self.prompt = prompt
        self.timeout = timeout
        self.max_media_bytes = max_media_bytes
        self.rewrite_model = rewrite_model
        self.rewrite_prompt = rewrite_prompt
        self.cache = cache

    async def transcribe(self, media_url: str) -> Transcript:
        if not self.api_key:
            raise TranscriptionConfigError("Speech API key is not configured.")

        url = unwrap_proxy_url(media_url)
        if not is_http_url(url):
            raise InvalidMediaURL("A valid media URL is required.")

        payload, content_type = await self._download(url)
        digest = hashlib.sha256(payload).hexdigest()

        if self.cache is not None:
            cached = await self.cache.get(digest)
            if cached is not None:
                try:
                    transcript = Transcript.from_json(cached)
                except (ValueError, KeyError, TypeError):
                    logger.warning("Ignoring unreadable cached transcript", extra={"digest": digest})
                else:
                    logger.info("Transcript cache hit", extra={"digest": digest})
                    return transcript

        raw_text = await self._speech_to_text(payload, self._upload_name(url), content_type)
        script = await self._rewrite(raw_text) if self.rewrite_model else raw_text
        transcript = Transcript(script=script, raw_transcript=raw_text)

        if self.cache is not None:
            await self.cache.set(digest, transcript.to_json())
        logger.info("Transcription complete", extra={"digest": digest, "length": len(raw_text)})
        return transcript

    async def _download(self, url: str) -> Tuple[bytes, str]:
        try:
            return await asyncio.wait_for(self._read_media(url), self.timeout)
        except asyncio.TimeoutError as exc:
            raise MediaFetchError("Could not fetch media: download timed out.") from exc

    async def _read_media(self, url: str) -> Tuple[bytes, str]:
        chunks = []
        received = 0
        try:
            async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
                async with client.stream("GET", url, headers={"User-Agent": BROWSER_USER_AGENT}) as response:
                    if response.status_code >= 400:
                        raise MediaFetchError(
                            f"Could not fetch media: upstream returned HTTP {response.status_code}."
                        )
                    content_type = response.headers.get("content-type", "application/octet-stream")
                    if "text/html" in content_type.lower():
                        raise MediaFetchError("Could not obtain audio: the link returned a web page.", 422)
                    declared = response.headers.get("content-length")
                    if declared and declared.isdigit() and int(declared) > self.max_media_bytes:
                        raise MediaTooLargeError(self._too_large_message())
                    async for chunk in response.aiter_bytes():
                        received += len(chunk)
                        if received > self.max_media_bytes:
                            raise MediaTooLargeError(self._too_large_message())
                        chunks.append(chunk)
        except httpx.TimeoutException as exc:
            raise MediaFetchError("Could not fetch media: download timed out.") from exc
        except httpx.RequestError as exc:
            raise MediaFetchError(f"Could not fetch media: {exc}") from exc

        if not received:
            raise MediaFetchError("Could not obtain audio: the media file is empty.", 422)
        return b"".join(chunks), content_type.split(";")[0].strip()

    async def _speech_to_text(self, payload: bytes, filename: str, content_type: str) -> str:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    f"{self.api_base_url}/audio/transcriptions",
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    data={
                        "model": self.model,
                        "prompt": self.prompt,
                        "temperature": "0",
                        "response_format": "json",
                    },
                    files={"file": (filename, payload, content_type)},
                )
        except httpx.RequestError as exc:
            raise SpeechAPIError(f"Speech API unreachable: {exc}", 502) from exc

        if response.status_code >= 400:
            raise SpeechAPIError(
                f"Speech API error: {response.text[:500]}", response.status_code
            )
        try:
            return response.json()["text"]
        except (ValueError, KeyError, TypeError) as exc:
            raise SpeechAPIError("Speech API returned an unexpected reply.", 502) from exc

    async def _rewrite(self, text: str) -> str:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    f"{self.api_base_url}/chat/completions",
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    json={
                        "model": self.rewrite_model,
                        "temperature": 0,
                        "max_tokens": 1024,
                        "messages": [
                            {"role": "system", "content": self.rewrite_prompt},
                            {"role": "user", "content": f"Convert this text to Romanized Hinglish:\n\n{text}"},
                        ],
                    },
                )
            response.raise_for_status()
            content = response.json()["choices"][0]["message"]["content"]
        except (httpx.HTTPError, ValueError, KeyError, IndexError, TypeError) as exc:
            logger.warning("Script rewrite failed, using raw transcript", extra={"error": str(exc)})
            return text
        return content or text

    @staticmethod
    def _upload_name(url: str) -> str:
        name = PurePosixPath(urlparse(url).path).name
        return name if "." in name else "media.mp4"

    def _too_large_message(self) -> str:
        limit_mb = self.max_media_bytes / (1024 * 1024)
        return f"Media file is too large to transcribe (limit {limit_mb:.0f} MB)."
