from __future__ import annotations

import dataclasses
import logging
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from mediabridge.dependencies import get_resolver, get_thumbnail_service
from mediabridge.models.schemas import DownloadRequest, DownloadResponse, ErrorResponse
from mediabridge.services.extraction import ErrorResult, SingleResult, SourceRequest
from mediabridge.services.presenter import download_payload
from mediabridge.services.resolver import ProviderResolver, ResolutionError
from mediabridge.services.thumbnail import ThumbnailService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["download"])


@router.post(
    "/download",
    response_model=DownloadResponse,
    response_model_exclude_none=True,
    responses={400: {"model": ErrorResponse}, 502: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)
async def resolve_download(
    payload: DownloadRequest,
    resolver: ProviderResolver = Depends(get_resolver),
    thumbnails: Optional[ThumbnailService] = Depends(get_thumbnail_service),
):
    if not payload.url or not payload.url.strip():
        return JSONResponse({"error": "URL is required"}, status_code=400)

    request = SourceRequest(url=payload.url.strip(), mode=payload.mode)
    logger.info("Processing download request", extra={"url": request.url, "mode": request.mode})
    try:
        resolution = await resolver.resolve(request)
    except ResolutionError as exc:
        return JSONResponse({"error": str(exc)}, status_code=exc.status_code)

    result = resolution.result
    if isinstance(result, ErrorResult):
        logger.warning(
            "Download resolution failed",
            extra={"url": request.url, "error": result.message, "attempts": len(resolution.attempts)},
        )
        return JSONResponse({"error": result.message}, status_code=resolution.status_code)

    if (
        isinstance(result, SingleResult)
        and result.thumbnail_url is None
        and result.kind != "audio"
        and thumbnails is not None
    ):
        thumbnail = await thumbnails.lookup(request.url)
        if thumbnail:
            result = dataclasses.replace(result, thumbnail_url=thumbnail)

    return download_payload(result)
