from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel


class DownloadRequest(BaseModel):
    url: Optional[str] = None
    mode: Literal["auto", "audio"] = "auto"


class PickerEntry(BaseModel):
    type: Literal["photo", "video"]
    url: str
    media_url: str
    filename: str
    thumb: Optional[str] = None


class DownloadResponse(BaseModel):
    status: Literal["single", "picker"]
    type: Optional[Literal["photo", "video", "audio"]] = None
    url: Optional[str] = None
    media_url: Optional[str] = None
    filename: Optional[str] = None
    mime: Optional[str] = None
    thumb: Optional[str] = None
    picker: Optional[List[PickerEntry]] = None
    audio: Optional[str] = None


class TranscribeRequest(BaseModel):
    url: Optional[str] = None


class TranscribeResponse(BaseModel):
    script: str
    raw_transcript: str


class ErrorResponse(BaseModel):
    error: str
