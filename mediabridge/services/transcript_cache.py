from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Optional

import aiofiles  # type: ignore[import-not-found]

logger = logging.getLogger(__name__)


class TranscriptCache:
    """Content-addressed transcript store: one JSON document per media digest.

    Lookups and writes never raise; an unreadable entry is a miss.
    """

    def __init__(self, directory: Path, ttl_seconds: Optional[float] = None) -> None:
        self.directory = directory
        self.ttl_seconds = ttl_seconds

    def path_for(self, digest: str) -> Path:
        return self.directory / f"transcript-{digest}.json"

    async def get(self, digest: str) -> Optional[str]:
        path = self.path_for(digest)
        try:
            if not path.exists():
                return None
            if self.ttl_seconds is not None and time.time() - path.stat().st_mtime > self.ttl_seconds:
                return None
            async with aiofiles.open(path, "r", encoding="utf-8") as file:
                return await file.read()
        except OSError as exc:
            logger.warning("Transcript cache read failed", extra={"digest": digest, "error": str(exc)})
            return None

    async def set(self, digest: str, document: str) -> None:
        path = self.path_for(digest)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(path, "w", encoding="utf-8") as file:
                await file.write(document)
        except OSError as exc:
            logger.warning("Transcript cache write failed", extra={"digest": digest, "error": str(exc)})
