from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence

import httpx

from mediabridge.core.config import ExtractorInstance
from mediabridge.services.extraction import (
    ErrorResult,
    ExtractionResult,
    SourceRequest,
    build_request_body,
    is_http_url,
    normalize_reply,
)

logger = logging.getLogger(__name__)

INTERNAL_USER_AGENT = "mediabridge-internal/1.0"
# Text the platform returns when it intercepts a loopback call to the container.
LOOPBACK_REJECTION_MARKERS = ("error code: 1003", "Direct IP access")


class ResolutionError(Exception):
    """Raised when a source URL cannot be resolved to media."""

    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code


class InvalidSourceError(ResolutionError):
    status_code = 400


class Deadline:
    """Overall time budget shared by every provider attempt of one resolution."""

    def __init__(self, seconds: Optional[float], clock=time.monotonic) -> None:
        self._clock = clock
        self._expires_at = None if seconds is None else clock() + seconds

    def remaining(self) -> Optional[float]:
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - self._clock())

    @property
    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    def clamp(self, timeout: float) -> float:
        remaining = self.remaining()
        return timeout if remaining is None else min(timeout, remaining)


@dataclass(slots=True)
class Attempt:
    provider: str
    error: Optional[str] = None
    # "network" (timeout/connection), "upstream" (bad reply) or "provider" (explicit error)
    category: Optional[str] = None
    result: Optional[ErrorResult] = None


@dataclass(slots=True)
class Resolution:
    result: ExtractionResult
    provider: Optional[str] = None
    attempts: List[Attempt] = field(default_factory=list)

    @property
    def status_code(self) -> int:
        if not isinstance(self.result, ErrorResult):
            return 200
        if self.result.client_caused:
            return 400
        last = self.attempts[-1] if self.attempts else None
        if self.result.rate_limited or self.result.code == "deadline":
            return 503
        if last is None:
            return 500
        if last.category == "network":
            return 503
        return 502


class ProviderResolver:
    def __init__(
        self,
        providers: Sequence[ExtractorInstance],
        provider_timeout: float = 10.0,
        deadline_seconds: Optional[float] = None,
        clock=time.monotonic,
    ) -> None:
        self.providers = list(providers)
        self.provider_timeout = provider_timeout
        self.deadline_seconds = deadline_seconds
        self._clock = clock

    async def resolve(self, request: SourceRequest) -> Resolution:
        """Try providers in order; the first usable reply wins."""
        if not is_http_url(request.url):
            raise InvalidSourceError("A valid http(s) URL is required.")

        deadline = Deadline(self.deadline_seconds, self._clock)
        attempts: List[Attempt] = []
        for provider in self.providers:
            if deadline.expired:
                logger.warning(
                    "Resolution deadline reached",
                    extra={"url": request.url, "tried": len(attempts)},
                )
                break
            attempt = Attempt(provider=provider.url)
            attempts.append(attempt)
            logger.info("Trying provider", extra={"provider": provider.url, "url": request.url})
            result = await self._attempt(provider, request, deadline.clamp(self.provider_timeout), attempt)
            if result is not None:
                logger.info("Resolved via provider", extra={"provider": provider.url})
                return Resolution(result=result, provider=provider.url, attempts=attempts)
            logger.warning(
                "Provider failed",
                extra={"provider": provider.url, "error": attempt.error},
            )

        return Resolution(result=self._summarize(attempts, deadline.expired), attempts=attempts)

    async def _attempt(
        self,
        provider: ExtractorInstance,
        request: SourceRequest,
        timeout: float,
        attempt: Attempt,
    ) -> Optional[ExtractionResult]:
        try:
            response = await asyncio.wait_for(self._post(provider, request, timeout), timeout)
        except (httpx.TimeoutException, asyncio.TimeoutError):
            self._fail(attempt, "network", "Provider timed out.")
            return None
        except httpx.RequestError as exc:
            self._fail(attempt, "network", f"Connection failed: {exc}")
            return None

        if response.status_code >= 400:
            self._fail(attempt, "upstream", f"Provider returned HTTP {response.status_code}.")
            return None

        body = response.text
        if any(marker in body for marker in LOOPBACK_REJECTION_MARKERS):
            self._fail(attempt, "upstream", "Internal call was intercepted by the platform firewall.")
            return None

        content_type = response.headers.get("content-type", "").lower()
        if "json" not in content_type:
            self._fail(attempt, "upstream", "Provider returned a non-JSON reply.")
            return None
        try:
            payload: Any = json.loads(body)
        except ValueError:
            self._fail(attempt, "upstream", "Provider returned malformed JSON.")
            return None

        result = normalize_reply(payload, request)
        if isinstance(result, ErrorResult):
            category = "provider" if (result.code or "").startswith(("error.", "rate-limit")) else "upstream"
            self._fail(attempt, category, result.message)
            attempt.result = result
            return None
        return result

    async def _post(self, provider: ExtractorInstance, request: SourceRequest, timeout: float) -> httpx.Response:
        async with httpx.AsyncClient(timeout=timeout) as client:
            return await client.post(
                provider.url,
                json=build_request_body(request, provider.api_version),
                headers=self._headers(provider),
            )

    @staticmethod
    def _headers(provider: ExtractorInstance) -> dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if provider.internal:
            headers["User-Agent"] = INTERNAL_USER_AGENT
        if provider.api_key:
            headers["Authorization"] = f"Api-Key {provider.api_key}"
        return headers

    @staticmethod
    def _fail(attempt: Attempt, category: str, message: str) -> None:
        attempt.category = category
        attempt.error = message

    @staticmethod
    def _summarize(attempts: List[Attempt], deadline_expired: bool = False) -> ErrorResult:
        if deadline_expired and not attempts:
            return ErrorResult("Resolution deadline exceeded.", code="deadline")
        if not attempts:
            return ErrorResult("No download servers are configured.", code="config.empty")
        last = attempts[-1]
        if last.result is not None:
            return ErrorResult(
                f"All download servers failed. Last error: {last.result.message}",
                code=last.result.code,
            )
        return ErrorResult(f"All download servers failed. Last error: {last.error}")
