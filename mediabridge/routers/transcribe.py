from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from mediabridge.dependencies import get_transcriber
from mediabridge.models.schemas import ErrorResponse, TranscribeRequest, TranscribeResponse
from mediabridge.services.transcriber import Transcriber, TranscriptionError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["transcribe"])


@router.post(
    "/transcribe",
    response_model=TranscribeResponse,
    responses={400: {"model": ErrorResponse}, 413: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
)
async def transcribe(
    payload: TranscribeRequest,
    transcriber: Transcriber = Depends(get_transcriber),
):
    if not payload.url:
        return JSONResponse({"error": "URL is required"}, status_code=400)

    logger.info("Processing transcription request", extra={"url": payload.url[:100]})
    try:
        transcript = await transcriber.transcribe(payload.url)
    except TranscriptionError as exc:
        logger.warning("Transcription failed", extra={"url": payload.url[:100], "error": str(exc)})
        return JSONResponse({"error": str(exc)}, status_code=exc.status_code)

    return TranscribeResponse(script=transcript.script, raw_transcript=transcript.raw_transcript)
