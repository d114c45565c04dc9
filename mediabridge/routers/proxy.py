from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response, StreamingResponse
from starlette.background import BackgroundTask

from mediabridge.dependencies import get_media_proxy
from mediabridge.services.proxy import MediaProxy, ProxyError, content_disposition

logger = logging.getLogger(__name__)

router = APIRouter(tags=["proxy"])


@router.api_route("/proxy", methods=["GET", "HEAD"])
async def proxy_media(
    request: Request,
    url: Optional[str] = None,
    filename: Optional[str] = None,
    download: bool = False,
    proxy: MediaProxy = Depends(get_media_proxy),
) -> Response:
    if not url or not url.startswith("http"):
        return JSONResponse({"error": "Media URL is required"}, status_code=400)

    disposition = content_disposition(filename, download)
    try:
        upstream = await proxy.open(url, request.headers.get("range"))
    except ProxyError as exc:
        logger.warning("Proxy upstream failed", extra={"url": url[:100], "error": str(exc)})
        return JSONResponse({"error": str(exc)}, status_code=exc.status_code)

    if not upstream.ok:
        status = upstream.status_code
        await upstream.aclose()
        logger.warning("Proxy upstream rejected request", extra={"url": url[:100], "status": status})
        return JSONResponse({"error": "Failed to fetch media"}, status_code=status)

    headers = proxy.response_headers(upstream, disposition)
    if request.method == "HEAD":
        await upstream.aclose()
        return Response(status_code=upstream.status_code, headers=headers)

    try:
        return StreamingResponse(
            upstream.iter_bytes(),
            status_code=upstream.status_code,
            headers=headers,
            background=BackgroundTask(upstream.aclose),
        )
    except Exception:
        await upstream.aclose()
        raise
