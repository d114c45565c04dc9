from __future__ import annotations

from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ExtractorInstance(BaseModel):
    url: str
    api_version: Literal["v10", "legacy"] = "v10"
    api_key: Optional[str] = None
    internal: bool = False


DEFAULT_SPEECH_PROMPT = (
    "Namaste dosto, swagat hai aapka is nayi video mein. "
    "Aaj hum baat karenge AI, Tech, aur viral content ke baare mein."
)

DEFAULT_REWRITE_PROMPT = (
    "You are a Romanized Hinglish scriptwriter. Never use Devanagari characters; "
    "write Hindi words with English letters and keep technical terms in English. "
    "Return a hook line, three or four short bullet points and a closing call to action."
)


class Settings(BaseSettings):
    extractor_instances: List[ExtractorInstance] = Field(
        default_factory=lambda: [
            ExtractorInstance(url="https://api.cobalt.tools"),
            ExtractorInstance(url="https://cobalt.api.kwiatekmiki.pl"),
            ExtractorInstance(url="https://dl.khames.com/api"),
            ExtractorInstance(url="http://127.0.0.1:9000"),
        ]
    )
    internal_extractor_url: Optional[str] = None
    provider_timeout: float = 10.0
    resolution_deadline_seconds: float = 30.0

    proxy_timeout: float = 30.0
    proxy_referers: Dict[str, str] = Field(
        default_factory=lambda: {
            "cdninstagram.com": "https://www.instagram.com",
            "fbcdn.net": "https://www.instagram.com",
            "tiktokcdn.com": "https://www.tiktok.com",
            "tiktokcdn-us.com": "https://www.tiktok.com",
        }
    )

    speech_api_base_url: str = "https://api.groq.com/openai/v1"
    speech_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("speech_api_key", "groq_api_key"),
    )
    speech_model: str = "whisper-large-v3"
    speech_prompt: str = DEFAULT_SPEECH_PROMPT
    speech_timeout: float = 120.0
    rewrite_model: Optional[str] = None
    rewrite_prompt: str = DEFAULT_REWRITE_PROMPT
    max_media_bytes: int = 25 * 1024 * 1024
    transcript_cache_dir: Optional[Path] = Path("./data/transcripts")
    transcript_cache_ttl: float = 7 * 24 * 3600

    thumbnail_lookup: bool = True
    thumbnail_timeout: float = 5.0
    js_heavy_hosts: List[str] = Field(default_factory=lambda: ["www.instagram.com"])
    browser_timeout: float = 45.0
    playwright_headless: bool = True

    host: str = "127.0.0.1"
    port: int = 8000

    cors_origins: List[str] = Field(
        default_factory=lambda: ["http://localhost:5173", "http://localhost:3000"]
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    def provider_chain(self) -> List[ExtractorInstance]:
        """Internal instance first (when configured), then the public list in order."""
        chain: List[ExtractorInstance] = []
        if self.internal_extractor_url:
            chain.append(ExtractorInstance(url=self.internal_extractor_url, internal=True))
        chain.extend(self.extractor_instances)
        return chain

    @staticmethod
    def current_timestamp() -> str:
        return datetime.now(tz=timezone.utc).isoformat()


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
